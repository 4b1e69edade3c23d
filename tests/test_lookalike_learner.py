from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

import pytest

from mailshield.errors import BrandNotFoundError
from mailshield.modules import lookalike_learner
from mailshield.modules.lookalike_learner import LookalikeLearner, extract_pattern


def homoglyph_detection(attacker, tenant_id=None):
    return {
        'attacker_domain': attacker,
        'target_brand': 'PayPal',
        'target_domain': 'paypal.com',
        'attack_type': 'homoglyph',
        'confidence': 0.9,
        'tenant_id': tenant_id,
    }


def cousin_detection(attacker, brand, domain):
    return {
        'attacker_domain': attacker,
        'target_brand': brand,
        'target_domain': domain,
        'attack_type': 'cousin',
        'confidence': 0.75,
    }


@pytest.fixture
def learner():
    return LookalikeLearner()


def test_extract_pattern():
    assert extract_pattern('login-paypal', 'paypal') == 'login-'
    assert extract_pattern('paypal-secure', 'paypal') == '-secure'
    assert extract_pattern('paypa1', 'paypal') == 'paypa1'


def test_tenant_brand_lookalike(learner):
    learner.add_tenant_brand('acme', {'domain': 'acmecorp.com', 'brand_name': 'AcmeCorp'})

    result = learner.detect_with_learning('acme', 'acmec0rp.com')
    assert result['is_lookalike'] is True
    assert result['target_brand'] == 'AcmeCorp'
    assert result['attack_type'] == 'homoglyph'
    assert result['final_confidence'] == 0.9


def test_tenant_brands_are_isolated(learner):
    learner.add_tenant_brand('acme', {'domain': 'acmecorp.com', 'brand_name': 'AcmeCorp'})
    assert learner.detect_with_learning('globex', 'acmec0rp.com')['is_lookalike'] is False
    assert learner.get_tenant_brands('globex') == []


def test_own_domains_never_flagged(learner):
    learner.add_tenant_brand('acme', {'domain': 'acmecorp.com'})
    assert learner.detect_with_learning('acme', 'acmecorp.com')['is_lookalike'] is False
    assert learner.detect_with_learning('acme', 'portal.acmecorp.com')['is_lookalike'] is False
    assert learner.detect_with_learning(None, 'www.paypal.com')['is_lookalike'] is False


def test_protected_brand_without_tenant(learner):
    result = learner.detect_with_learning(None, 'paypa1.com')
    assert result['target_brand'] == 'PayPal'
    assert result['learning_boost'] == 0.0


def test_invalid_domain_is_not_lookalike(learner):
    assert learner.detect_with_learning('acme', 'x')['is_lookalike'] is False
    assert learner.detect_with_learning('acme', '')['is_lookalike'] is False


def test_brand_management_errors(learner):
    with pytest.raises(ValueError):
        learner.add_tenant_brand('acme', {'domain': ''})
    with pytest.raises(BrandNotFoundError):
        learner.remove_tenant_brand('acme', 'nothere.com')


def test_confirmed_variant_is_learned(learner):
    learner.record_lookalike_detection(homoglyph_detection('paypa1-secure.com'))
    learner.record_lookalike_detection(homoglyph_detection('paypa1-secure.com'))

    # not caught statically, and nothing confirmed yet
    assert learner.detect_with_learning(None, 'paypa1-new.com')['is_lookalike'] is False

    adjusted = learner.record_feedback({
        'attacker_domain': 'paypa1-secure.com',
        'was_correct': True,
        'confirmed_threat': True,
        'feedback_source': 'analyst',
    })
    assert adjusted == 1

    result = learner.detect_with_learning(None, 'paypa1-new.com')
    assert result['is_lookalike'] is True
    assert result['target_brand'] == 'PayPal'
    assert result['matched_pattern']['pattern'] == '-secure'
    assert result['learning_boost'] > 0
    assert result['final_confidence'] > 0.8


def test_tenant_learning_stays_with_tenant(learner):
    learner.record_lookalike_detection(homoglyph_detection('paypa1-secure.com', tenant_id='acme'))
    learner.record_lookalike_detection(homoglyph_detection('paypa1-secure.com', tenant_id='acme'))
    learner.record_feedback({'attacker_domain': 'paypa1-secure.com', 'tenant_id': 'acme',
                             'was_correct': True, 'feedback_source': 'analyst'})

    assert learner.detect_with_learning('acme', 'paypa1-new.com')['is_lookalike'] is True
    assert learner.detect_with_learning('globex', 'paypa1-new.com')['is_lookalike'] is False


def test_false_positive_lowers_confidence(learner):
    learner.record_lookalike_detection(homoglyph_detection('paypa1-secure.com'))
    adjusted = learner.record_feedback({'attacker_domain': 'paypa1-secure.com', 'was_correct': False})
    assert adjusted == 1

    pattern = learner.get_learned_patterns('PayPal')[0]
    assert pattern['feedback_score'] == pytest.approx(-0.2)
    assert pattern['average_confidence'] == pytest.approx(0.8)
    assert learner.calculate_adaptive_confidence('paypa1-secure.com', 0.9, 'PayPal') < 0.9


def test_unconfirmed_correct_feedback_changes_nothing(learner):
    learner.record_lookalike_detection(homoglyph_detection('paypa1-secure.com'))
    assert learner.record_feedback({'attacker_domain': 'paypa1-secure.com',
                                    'was_correct': True, 'confirmed_threat': False}) == 0
    assert learner.get_learned_patterns('PayPal')[0]['feedback_score'] == 0.0


def test_fragment_generalizes_across_three_brands(learner):
    learner.record_lookalike_detection(cousin_detection('login-paypal.com', 'PayPal', 'paypal.com'))
    learner.record_lookalike_detection(cousin_detection('login-chase.com', 'Chase', 'chase.com'))
    assert learner.get_stats()['generalized_patterns'] == 0

    learner.record_lookalike_detection(cousin_detection('login-netflix.com', 'Netflix', 'netflix.com'))
    generalized = [p for p in learner.get_learned_patterns() if p['is_generalized']]
    assert len(generalized) == 1
    assert generalized[0]['pattern'] == 'login-'
    assert generalized[0]['target_brand'] == '*'

    adjusted = learner.record_feedback({'attacker_domain': 'login-netflix.com',
                                        'was_correct': True, 'feedback_source': 'analyst'})
    assert adjusted == 2

    result = learner.detect_with_learning(None, 'login-unknownbank.com')
    assert result['is_lookalike'] is True
    assert result['attack_type'] == 'cousin'
    assert result['matched_pattern']['is_generalized'] is True


def test_concurrent_detections_are_all_counted(learner):
    with ThreadPoolExecutor(max_workers=8) as executor:
        list(executor.map(lambda _: learner.record_lookalike_detection(homoglyph_detection('paypa1.com')), range(50)))

    assert learner.get_learned_patterns('PayPal')[0]['occurrences'] == 50
    assert learner.get_stats()['detections'] == 50


def test_feedback_is_audited(audit_sink):
    learner = LookalikeLearner(audit_sink=audit_sink)
    learner.record_feedback({'attacker_domain': 'PayPa1-Secure.com', 'was_correct': False,
                             'feedback_source': 'analyst', 'tenant_id': 'acme'})
    event = audit_sink.events('feedback')[0]
    assert event['tenant_id'] == 'acme'
    assert event['attacker_domain'] == 'paypa1-secure.com'
    assert event['feedback_source'] == 'analyst'


def dated_detection(attacker, confidence, days_ago):
    detection = homoglyph_detection(attacker)
    detection['confidence'] = confidence
    detection['timestamp'] = datetime.now() - timedelta(days=days_ago)
    return detection


def test_recent_detections_outweigh_old_ones():
    learner = LookalikeLearner()
    learner.record_lookalike_detection(dated_detection('paypa1.com', 0.6, days_ago=60))
    learner.record_lookalike_detection(dated_detection('paypa1.com', 0.95, days_ago=0))
    recent_last = learner.get_learned_patterns('PayPal')[0]['average_confidence']
    assert abs(recent_last - 0.95) < abs(0.775 - 0.95)

    learner = LookalikeLearner()
    learner.record_lookalike_detection(dated_detection('paypa1.com', 0.6, days_ago=0))
    learner.record_lookalike_detection(dated_detection('paypa1.com', 0.95, days_ago=60))
    recent_first = learner.get_learned_patterns('PayPal')[0]['average_confidence']
    assert recent_first < 0.775
    assert abs(recent_first - 0.6) < abs(0.775 - 0.6)


def test_late_arriving_old_detection_has_little_weight(learner):
    learner.record_lookalike_detection(dated_detection('paypa1.com', 0.9, days_ago=0))
    learner.record_lookalike_detection(dated_detection('paypa1.com', 0.5, days_ago=90))
    pattern = learner.get_learned_patterns('PayPal')[0]
    assert pattern['average_confidence'] > 0.89
    assert pattern['occurrences'] == 2


def test_domain_index_is_bounded(learner, monkeypatch):
    monkeypatch.setattr(lookalike_learner, 'MAX_INDEXED_DOMAINS', 3)
    for i in range(5):
        learner.record_lookalike_detection(homoglyph_detection(f'paypa1-{i}.com'))

    assert len(learner._domain_index) == 3
    assert (None, 'paypa1-0.com') not in learner._domain_index
    assert (None, 'paypa1-4.com') in learner._domain_index
    assert learner.get_learned_patterns('PayPal')[0]['occurrences'] == 5
