from mailshield.modules.bec_patterns import (
    check_bec_patterns, extract_amounts, assess_amount_risk, detect_compound_attack, quick_bec_check,
)


def test_wire_transfer_subject_matches_wire_fraud():
    matches = check_bec_patterns("Urgent: Wire Transfer Needed", "")
    categories = {m['category'] for m in matches}
    assert 'wire_fraud' in categories
    assert 'urgency_pressure' in categories

    wire = next(m for m in matches if m['id'] == 'wire_transfer_request')
    assert wire['severity'] == 'critical'
    assert wire['matches'][0]['location'] == 'subject'
    assert wire['matches'][0]['text'] == 'wire transfer'


def test_subject_and_body_hits_both_count():
    subject_only = check_bec_patterns("wire transfer", "")
    both = check_bec_patterns("wire transfer", "please confirm the wire transfer")
    score = lambda ms: next(m['score'] for m in ms if m['id'] == 'wire_transfer_request')
    assert score(both) > score(subject_only)


def test_scores_are_capped_and_sorted():
    body = ("wire transfer, wire payment, wire funds, bank transfer, bank wire, "
            "transfer funds, routing number, swift code")
    matches = check_bec_patterns("", body)
    assert matches[0]['score'] == 1.0
    scores = [m['score'] for m in matches]
    assert scores == sorted(scores, reverse=True)


def test_benign_text_has_no_patterns():
    assert check_bec_patterns("Lunch on Friday?", "Are we still meeting for lunch on Friday?") == []
    assert check_bec_patterns("", "") == []


def test_extract_amounts_formats():
    amounts = extract_amounts("Send $12,345.67 plus 5000 USD and USD 250")
    assert [a['amount'] for a in amounts] == [12345.67, 5000.0, 250.0]
    assert amounts[0]['original'] == '$12,345.67'


def test_extract_amounts_reports_overlaps_once():
    amounts = extract_amounts("$1,000 dollars")
    assert len(amounts) == 1
    assert amounts[0]['amount'] == 1000.0


def test_amount_risk_boundaries():
    def level(value):
        return assess_amount_risk([{'amount': value}])['risk_level']

    assert level(100000) == 'critical'
    assert level(99999) == 'high'
    assert level(25000) == 'high'
    assert level(24999) == 'medium'
    assert level(5000) == 'medium'
    assert level(4999.99) == 'low'


def test_amount_risk_without_amounts():
    risk = assess_amount_risk([])
    assert risk == {'has_high_risk_amount': False, 'max_amount': 0.0, 'risk_level': 'low'}


def test_compound_attack_needs_two_patterns():
    assert detect_compound_attack([])['is_compound_attack'] is False
    single = [{'category': 'wire_fraud'}]
    assert detect_compound_attack(single)['is_compound_attack'] is False


def test_compound_attack_critical_combo():
    result = detect_compound_attack([{'category': 'wire_fraud'}, {'category': 'urgency_pressure'}])
    assert result['is_compound_attack'] is True
    assert result['severity'] == 'critical'


def test_compound_attack_financial_with_pressure_is_high():
    result = detect_compound_attack([{'category': 'payroll_diversion'}, {'category': 'urgency_pressure'}])
    assert result['severity'] == 'high'


def test_compound_attack_many_unrelated_patterns_is_medium():
    matches = [{'category': 'credential_theft'}, {'category': 'payroll_diversion'}, {'category': 'credential_theft'}]
    result = detect_compound_attack(matches)
    assert result['is_compound_attack'] is True
    assert result['severity'] == 'medium'


def test_quick_check_flags_amount_with_pattern():
    result = quick_bec_check("Wire transfer", "Please send $50,000 to the new account.")
    assert result['is_suspicious'] is True
    assert result['max_amount'] == 50000.0
    assert 'Wire Transfer Request' in result['top_patterns']


def test_quick_check_benign():
    result = quick_bec_check("Minutes", "Attached are the minutes from the meeting.")
    assert result['is_suspicious'] is False
    assert result['urgency_level'] == 'low'
    assert result['categories'] == []
