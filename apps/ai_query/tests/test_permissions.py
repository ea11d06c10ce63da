"""Role defaults, manage-implies-all, custom permissions."""

from apps.ai_query.services.permissions import Permission, has_permission, is_admin, parse_permissions


def test_system_admin_allowed_everything() -> None:
    assert has_permission("system_admin", "anything", "delete")


def test_admin_defaults() -> None:
    assert has_permission("admin", "ai_insights", "use")
    assert has_permission("admin", "inventory", "delete")  # manage implies every action
    assert not has_permission("admin", "billing", "read")


def test_user_defaults() -> None:
    assert has_permission("user", "tool_changes", "create")
    assert not has_permission("user", "tool_changes", "delete")
    assert not has_permission("user", "ai_insights", "use")


def test_unknown_role_has_nothing() -> None:
    assert not has_permission(None, "reports", "read")
    assert not has_permission("guest", "reports", "read")


def test_custom_permissions_extend_role() -> None:
    custom = parse_permissions({"ai_insights": ["use"], "reports": "export"})
    assert Permission("reports", "export") in custom
    assert has_permission("user", "ai_insights", "use", custom)
    assert has_permission("user", "reports", "export", custom)


def test_custom_wildcard_manage() -> None:
    assert has_permission("user", "settings", "delete", [Permission("*", "manage")])


def test_parse_permissions_ignores_bad_input() -> None:
    assert parse_permissions(None) == []
    assert parse_permissions(["ai_insights"]) == []
    assert parse_permissions({"ai_insights": 3}) == []


def test_is_admin() -> None:
    assert is_admin("admin")
    assert is_admin("system_admin")
    assert not is_admin("user")
    assert not is_admin(None)
