"""Extension registry, feature flags and payment gateway configuration status."""
import json

EXTENSION_REGISTRY = (
    {
        'id': 'core',
        'name': 'Core Platform',
        'description': 'Authentication, RBAC, audit logging, and foundational services.',
        'version': '1.0.0',
        'category': 'core',
    },
    {
        'id': 'content',
        'name': 'Content Management',
        'description': 'Services, destinations, banners, and custom sections.',
        'version': '1.0.0',
        'category': 'content',
        'requires': ['core'],
    },
    {
        'id': 'media',
        'name': 'Media Library',
        'description': 'Managed uploads, previews, and storage governance.',
        'version': '1.0.0',
        'category': 'ops',
        'requires': ['core'],
    },
    {
        'id': 'backups',
        'name': 'Backups & Export',
        'description': 'On-demand export and backup snapshots.',
        'version': '1.0.0',
        'category': 'ops',
        'requires': ['core'],
    },
    {
        'id': 'seo',
        'name': 'SEO Toolkit',
        'description': 'Metadata, sitemaps, and structured data helpers.',
        'version': '1.0.0',
        'category': 'marketing',
        'requires': ['core', 'content'],
    },
)

PAYMENT_GATEWAYS = (
    {
        'id': 'stripe',
        'name': 'Stripe',
        'description': 'Card payments with global coverage.',
        'supports': ['card', 'wallet'],
        'key_setting': 'STRIPE_SECRET_KEY',
        'mode_setting': 'STRIPE_MODE',
    },
    {
        'id': 'razorpay',
        'name': 'Razorpay',
        'description': 'India-first payments (UPI, cards, netbanking).',
        'supports': ['card', 'upi', 'netbanking'],
        'key_setting': 'RAZORPAY_KEY_ID',
        'mode_setting': 'RAZORPAY_MODE',
    },
)


def get_extension_registry():
    return [dict(item) for item in EXTENSION_REGISTRY]


def parse_extension_flags(raw):
    if not raw:
        return {}
    if isinstance(raw, dict):
        return {str(key): bool(value) for key, value in raw.items()}
    try:
        parsed = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        return {}
    if not isinstance(parsed, dict):
        return {}
    return {str(key): bool(value) for key, value in parsed.items()}


def get_payment_gateway_configs(config):
    gateways = []
    for gateway in PAYMENT_GATEWAYS:
        mode = (config.get(gateway['mode_setting']) or '').strip().lower()
        gateways.append({
            'id': gateway['id'],
            'name': gateway['name'],
            'description': gateway['description'],
            'supports': list(gateway['supports']),
            'status': 'enabled' if config.get(gateway['key_setting']) else 'disabled',
            'mode': 'live' if mode == 'live' else 'test',
        })
    return gateways
