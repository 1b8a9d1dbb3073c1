from copy import deepcopy

from flask import current_app

from .audit import log_audit
from .models import ThemeConfig, commit_changes, db

TOKEN_GROUPS = ('colors', 'typography', 'spacing', 'radii', 'shadows')

DEFAULT_THEME_TOKENS = {
    'colors': {
        'primary': '#1a4d2e',
        'secondary': '#cba36d',
        'background': '#ffffff',
        'foreground': '#0f172a',
    },
    'typography': {
        'heading': "'Playfair Display', serif",
        'body': "'Inter', sans-serif",
    },
    'spacing': {
        'section': '4rem',
        'card': '2rem',
    },
    'radii': {
        'card': '12px',
        'button': '999px',
    },
    'shadows': {
        'card': '0 12px 32px rgba(15, 23, 42, 0.08)',
    },
}


def resolve_tenant_id(value=None):
    tenant_id = (value or '').strip()[:80]
    return tenant_id or current_app.config.get('DEFAULT_TENANT_ID', 'default')


def merge_with_defaults(tokens):
    merged = deepcopy(DEFAULT_THEME_TOKENS)
    for group in TOKEN_GROUPS:
        stored = (tokens or {}).get(group)
        if isinstance(stored, dict):
            merged[group].update(stored)
    return merged


def get_theme_tokens(tenant_id):
    config = ThemeConfig.query.filter_by(tenant_id=tenant_id).first()
    if config is None:
        return deepcopy(DEFAULT_THEME_TOKENS)
    return merge_with_defaults(config.tokens)


def save_theme_tokens(tenant_id, tokens, actor):
    config = ThemeConfig.query.filter_by(tenant_id=tenant_id).first()
    if config is None:
        config = ThemeConfig(tenant_id=tenant_id)
        db.session.add(config)
    config.tokens = tokens
    config.updated_by_id = getattr(actor, 'user_id', None)
    commit_changes()
    log_audit(actor, 'theme.update', ThemeConfig.__tablename__, {'tenantId': tenant_id})
    return {'tenantId': tenant_id, 'tokens': config.tokens}
