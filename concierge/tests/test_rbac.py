import pytest

from concierge.rbac import PERMISSIONS, has_permission, normalize_role, permissions_for

EXPECTED_GRANTS = {
    "admin": set(PERMISSIONS),
    "editor": {"content:read", "content:write", "requests:read"},
    "viewer": {"content:read", "requests:read"},
}


def test_permission_catalog_is_complete():
    assert len(PERMISSIONS) == 13
    assert len(set(PERMISSIONS)) == 13


@pytest.mark.parametrize("role", sorted(EXPECTED_GRANTS))
@pytest.mark.parametrize("permission", PERMISSIONS)
def test_role_permission_table(role, permission):
    assert has_permission(role, permission) is (permission in EXPECTED_GRANTS[role])


def test_unknown_role_and_permission_are_denied():
    assert has_permission("owner", "content:read") is False
    assert has_permission(None, "content:read") is False
    assert has_permission("admin", "content:publish") is False


def test_normalize_role_defaults_to_viewer():
    assert normalize_role("Editor") == "editor"
    assert normalize_role(" admin ") == "admin"
    assert normalize_role("superuser") == "viewer"
    assert normalize_role(None) == "viewer"


def test_permissions_for_keeps_catalog_order():
    assert permissions_for("viewer") == ["content:read", "requests:read"]
    assert permissions_for("nobody") == []
