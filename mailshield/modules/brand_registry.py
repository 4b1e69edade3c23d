"""
Protected brand registry and character tables used by the impersonation
analyzers.

BRAND_CATEGORIES lists the categories a brand can belong to. Each registry
entry carries the brand's canonical domain, display name, category and
optional aliases (alternative names the brand is known by).
"""

BRAND_CATEGORIES = (
    'financial', 'tech', 'ecommerce', 'social', 'enterprise',
    'shipping', 'government', 'healthcare', 'telecom', 'media',
)

PROTECTED_BRANDS = [
    # Financial services
    {'domain': 'paypal.com', 'brand': 'PayPal', 'category': 'financial'},
    {'domain': 'bankofamerica.com', 'brand': 'Bank of America', 'category': 'financial', 'aliases': ['bofa', 'boa']},
    {'domain': 'chase.com', 'brand': 'Chase', 'category': 'financial', 'aliases': ['jpmorgan']},
    {'domain': 'wellsfargo.com', 'brand': 'Wells Fargo', 'category': 'financial'},
    {'domain': 'capitalone.com', 'brand': 'Capital One', 'category': 'financial'},
    {'domain': 'citi.com', 'brand': 'Citibank', 'category': 'financial', 'aliases': ['citibank']},
    {'domain': 'americanexpress.com', 'brand': 'American Express', 'category': 'financial', 'aliases': ['amex']},
    {'domain': 'discover.com', 'brand': 'Discover', 'category': 'financial'},
    {'domain': 'fidelity.com', 'brand': 'Fidelity', 'category': 'financial'},
    {'domain': 'schwab.com', 'brand': 'Charles Schwab', 'category': 'financial'},
    {'domain': 'vanguard.com', 'brand': 'Vanguard', 'category': 'financial'},
    {'domain': 'tdameritrade.com', 'brand': 'TD Ameritrade', 'category': 'financial'},
    {'domain': 'usbank.com', 'brand': 'US Bank', 'category': 'financial'},
    {'domain': 'pnc.com', 'brand': 'PNC Bank', 'category': 'financial'},
    {'domain': 'stripe.com', 'brand': 'Stripe', 'category': 'financial'},

    # Tech
    {'domain': 'microsoft.com', 'brand': 'Microsoft', 'category': 'tech'},
    {'domain': 'apple.com', 'brand': 'Apple', 'category': 'tech', 'aliases': ['icloud']},
    {'domain': 'google.com', 'brand': 'Google', 'category': 'tech', 'aliases': ['gmail', 'youtube']},
    {'domain': 'amazon.com', 'brand': 'Amazon', 'category': 'tech', 'aliases': ['aws']},
    {'domain': 'meta.com', 'brand': 'Meta', 'category': 'tech', 'aliases': ['facebook']},
    {'domain': 'netflix.com', 'brand': 'Netflix', 'category': 'tech'},
    {'domain': 'adobe.com', 'brand': 'Adobe', 'category': 'tech'},
    {'domain': 'oracle.com', 'brand': 'Oracle', 'category': 'tech'},
    {'domain': 'salesforce.com', 'brand': 'Salesforce', 'category': 'tech'},
    {'domain': 'dropbox.com', 'brand': 'Dropbox', 'category': 'tech'},
    {'domain': 'zoom.us', 'brand': 'Zoom', 'category': 'tech'},
    {'domain': 'slack.com', 'brand': 'Slack', 'category': 'tech'},

    # E-commerce
    {'domain': 'ebay.com', 'brand': 'eBay', 'category': 'ecommerce'},
    {'domain': 'walmart.com', 'brand': 'Walmart', 'category': 'ecommerce'},
    {'domain': 'target.com', 'brand': 'Target', 'category': 'ecommerce'},
    {'domain': 'bestbuy.com', 'brand': 'Best Buy', 'category': 'ecommerce'},
    {'domain': 'costco.com', 'brand': 'Costco', 'category': 'ecommerce'},
    {'domain': 'homedepot.com', 'brand': 'Home Depot', 'category': 'ecommerce'},
    {'domain': 'etsy.com', 'brand': 'Etsy', 'category': 'ecommerce'},
    {'domain': 'aliexpress.com', 'brand': 'AliExpress', 'category': 'ecommerce'},

    # Social
    {'domain': 'linkedin.com', 'brand': 'LinkedIn', 'category': 'social'},
    {'domain': 'twitter.com', 'brand': 'Twitter', 'category': 'social', 'aliases': ['x']},
    {'domain': 'instagram.com', 'brand': 'Instagram', 'category': 'social'},
    {'domain': 'tiktok.com', 'brand': 'TikTok', 'category': 'social'},
    {'domain': 'pinterest.com', 'brand': 'Pinterest', 'category': 'social'},
    {'domain': 'reddit.com', 'brand': 'Reddit', 'category': 'social'},

    # Enterprise software
    {'domain': 'docusign.com', 'brand': 'DocuSign', 'category': 'enterprise'},
    {'domain': 'servicenow.com', 'brand': 'ServiceNow', 'category': 'enterprise'},
    {'domain': 'workday.com', 'brand': 'Workday', 'category': 'enterprise'},
    {'domain': 'atlassian.com', 'brand': 'Atlassian', 'category': 'enterprise', 'aliases': ['jira', 'confluence']},
    {'domain': 'hubspot.com', 'brand': 'HubSpot', 'category': 'enterprise'},
    {'domain': 'zendesk.com', 'brand': 'Zendesk', 'category': 'enterprise'},
    {'domain': 'intuit.com', 'brand': 'Intuit', 'category': 'enterprise', 'aliases': ['quickbooks', 'turbotax']},
    {'domain': 'github.com', 'brand': 'GitHub', 'category': 'enterprise'},

    # Shipping and logistics
    {'domain': 'fedex.com', 'brand': 'FedEx', 'category': 'shipping'},
    {'domain': 'ups.com', 'brand': 'UPS', 'category': 'shipping'},
    {'domain': 'usps.com', 'brand': 'USPS', 'category': 'shipping'},
    {'domain': 'dhl.com', 'brand': 'DHL', 'category': 'shipping'},
    {'domain': 'ontrac.com', 'brand': 'OnTrac', 'category': 'shipping'},

    # Government
    {'domain': 'irs.gov', 'brand': 'IRS', 'category': 'government'},
    {'domain': 'ssa.gov', 'brand': 'Social Security Administration', 'category': 'government'},

    # Healthcare
    {'domain': 'unitedhealthcare.com', 'brand': 'UnitedHealthcare', 'category': 'healthcare'},
    {'domain': 'cvs.com', 'brand': 'CVS', 'category': 'healthcare'},

    # Telecom
    {'domain': 'att.com', 'brand': 'AT&T', 'category': 'telecom'},
    {'domain': 'verizon.com', 'brand': 'Verizon', 'category': 'telecom'},
    {'domain': 't-mobile.com', 'brand': 'T-Mobile', 'category': 'telecom'},
    {'domain': 'xfinity.com', 'brand': 'Xfinity', 'category': 'telecom', 'aliases': ['comcast']},
    {'domain': 'spectrum.com', 'brand': 'Spectrum', 'category': 'telecom'},

    # Media and entertainment
    {'domain': 'spotify.com', 'brand': 'Spotify', 'category': 'media'},
    {'domain': 'hulu.com', 'brand': 'Hulu', 'category': 'media'},
    {'domain': 'disneyplus.com', 'brand': 'Disney+', 'category': 'media', 'aliases': ['disney']},
    {'domain': 'hbomax.com', 'brand': 'HBO Max', 'category': 'media', 'aliases': ['hbo']},
    {'domain': 'peacocktv.com', 'brand': 'Peacock', 'category': 'media'},
]

# Confusable characters: target character -> look-alikes
HOMOGLYPHS = {
    'a': ['а', 'ɑ', 'α', '@', 'ａ', 'ä', 'à', 'á', 'â', 'ã'],
    'b': ['ƅ', 'Ь', 'ｂ', 'ḃ'],
    'c': ['с', 'ϲ', '¢', 'ｃ', 'ç'],
    'd': ['ԁ', 'ɗ', 'ｄ', 'ḋ'],
    'e': ['е', 'ё', '℮', 'ｅ', 'é', 'è', 'ê', 'ë', '3'],
    'f': ['ｆ', 'ƒ'],
    'g': ['ɡ', 'ց', 'ｇ', 'ġ', '9'],
    'h': ['һ', 'հ', 'ｈ', 'ḣ'],
    'i': ['і', 'ı', '1', 'l', '|', 'ｉ', 'í', 'ì', 'î', 'ï'],
    'j': ['ј', 'ʝ', 'ｊ'],
    'k': ['κ', 'ķ', 'ｋ', 'ḱ'],
    'l': ['ӏ', 'ɭ', '1', 'i', '|', 'ｌ', 'ĺ'],
    'm': ['м', 'ṃ', 'ｍ', 'ṁ'],
    'n': ['ո', 'ņ', 'ｎ', 'ń', 'ñ'],
    'o': ['о', 'ο', '0', 'ө', 'ｏ', 'ó', 'ò', 'ô', 'ö', 'õ'],
    'p': ['р', 'ρ', 'ｐ'],
    'q': ['ԛ', 'գ', 'ｑ'],
    'r': ['г', 'ɾ', 'ｒ', 'ŕ'],
    's': ['ѕ', 'ꜱ', '$', 'ｓ', 'ś', 'š', '5'],
    't': ['т', 'ţ', 'ｔ', 'ṫ'],
    'u': ['υ', 'ս', 'ｕ', 'ú', 'ù', 'û', 'ü'],
    'v': ['ѵ', 'ν', 'ｖ'],
    'w': ['ѡ', 'ω', 'ｗ', 'ẃ'],
    'x': ['х', 'χ', 'ｘ'],
    'y': ['у', 'ү', 'ｙ', 'ý', 'ÿ'],
    'z': ['ᴢ', 'ʐ', 'ｚ', 'ż', 'ź'],
    '0': ['о', 'ο', 'o', '０'],
    '1': ['l', 'i', '|', '１'],
    '2': ['２', 'ƨ'],
    '3': ['３', 'з'],
    '4': ['４'],
    '5': ['５', 'ƽ'],
    '6': ['６', 'б'],
    '7': ['７'],
    '8': ['８'],
    '9': ['９', 'g'],
}

# QWERTY neighbours for adjacent-key typos
ADJACENT_KEYS = {
    'q': ['w', 'a'], 'w': ['q', 'e', 's'], 'e': ['w', 'r', 'd'], 'r': ['e', 't', 'f'],
    't': ['r', 'y', 'g'], 'y': ['t', 'u', 'h'], 'u': ['y', 'i', 'j'], 'i': ['u', 'o', 'k'],
    'o': ['i', 'p', 'l'], 'p': ['o', 'l'], 'a': ['q', 's', 'z'], 's': ['a', 'w', 'd', 'x'],
    'd': ['s', 'e', 'f', 'c'], 'f': ['d', 'r', 'g', 'v'], 'g': ['f', 't', 'h', 'b'],
    'h': ['g', 'y', 'j', 'n'], 'j': ['h', 'u', 'k', 'm'], 'k': ['j', 'i', 'l'],
    'l': ['k', 'o', 'p'], 'z': ['a', 's', 'x'], 'x': ['z', 's', 'd', 'c'],
    'c': ['x', 'd', 'f', 'v'], 'v': ['c', 'f', 'g', 'b'], 'b': ['v', 'g', 'h', 'n'],
    'n': ['b', 'h', 'j', 'm'], 'm': ['n', 'j', 'k'],
}

COUSIN_SUFFIXES = [
    '-secure', '-login', '-verify', '-account', '-support', '-help',
    '-service', '-online', '-portal', '-access', '-update', '-alert',
    '-confirm', '-billing', '-payment', '-security', '-auth',
]

COUSIN_PREFIXES = [
    'secure-', 'login-', 'my-', 'account-', 'support-', 'help-',
    'service-', 'online-', 'portal-', 'mail-', 'web-', 'app-',
]

# Two-level public suffixes treated as a single TLD
SECOND_LEVEL_TLDS = {'co.uk', 'org.uk', 'ac.uk', 'gov.uk', 'com.au', 'net.au', 'co.nz', 'co.jp', 'com.br', 'co.in'}
