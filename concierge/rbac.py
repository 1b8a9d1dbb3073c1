"""Role/permission table for the admin console.

The table is static configuration: every authorization decision in the app
goes through :func:`has_permission` so the mapping can be audited in one place.
"""

ROLE_ADMIN = 'admin'
ROLE_EDITOR = 'editor'
ROLE_VIEWER = 'viewer'
ROLES = (ROLE_ADMIN, ROLE_EDITOR, ROLE_VIEWER)
ROLE_DEFAULT = ROLE_VIEWER

PERMISSIONS = (
    'content:read',
    'content:write',
    'requests:read',
    'users:read',
    'users:write',
    'audit:read',
    'backups:read',
    'extensions:read',
    'license:read',
    'license:write',
    'theme:read',
    'theme:write',
    'payments:read',
)

ROLE_PERMISSIONS = {
    ROLE_ADMIN: frozenset(PERMISSIONS),
    ROLE_EDITOR: frozenset({
        'content:read',
        'content:write',
        'requests:read',
    }),
    ROLE_VIEWER: frozenset({
        'content:read',
        'requests:read',
    }),
}


def normalize_role(value, default=ROLE_DEFAULT):
    candidate = (value or '').strip().lower()
    if candidate in ROLES:
        return candidate
    return default


def has_permission(role, permission):
    return permission in ROLE_PERMISSIONS.get(role, frozenset())


def permissions_for(role):
    granted = ROLE_PERMISSIONS.get(role, frozenset())
    return [permission for permission in PERMISSIONS if permission in granted]
