"""Tests for global permission resolution and the last-admin invariant."""

from teamchat.models.role import Role
from teamchat.models.user import User
from teamchat.services import access_control as ac
from teamchat.services.access_control import access_control


def make_role(name, **permissions) -> Role:
    role = Role(name=name)
    role.permissions = permissions
    return role


def make_user(user_id, roles, is_active=True) -> User:
    user = User(id=user_id, username=user_id, display_name=user_id, is_active=is_active)
    user.roles = roles
    return user


class TestHasPermission:
    def test_only_literal_true_grants(self):
        role = make_role("odd", a=True, b="true", c=1, d=False)
        assert ac.has_permission(role, "a") is True
        assert ac.has_permission(role, "b") is False
        assert ac.has_permission(role, "c") is False
        assert ac.has_permission(role, "d") is False
        assert ac.has_permission(role, "missing") is False

    def test_missing_role_denies(self):
        assert ac.has_permission(None, "user_management") is False


class TestPrincipalPermissions:
    def setup_method(self):
        self.role_map = {
            "writer": make_role("writer", send_messages=True),
            "uploader": make_role("uploader", file_upload=True),
        }

    def test_unknown_roles_are_ignored(self):
        assert ac.principal_has_permission(self.role_map, ["ghost"], "send_messages") is False
        assert ac.principal_has_permission(self.role_map, ["ghost", "writer"], "send_messages") is True

    def test_no_roles_denies(self):
        assert ac.principal_has_permission(self.role_map, [], "send_messages") is False
        assert ac.principal_has_any_permission(self.role_map, [], ["send_messages"]) is False

    def test_all_unions_grants_across_roles(self):
        perms = ["send_messages", "file_upload"]
        assert ac.principal_has_all_permissions(self.role_map, ["writer"], perms) is False
        assert ac.principal_has_all_permissions(self.role_map, ["writer", "uploader"], perms) is True

    def test_all_with_empty_requirement_is_true(self):
        assert ac.principal_has_all_permissions(self.role_map, [], []) is True

    def test_any_matches_single_grant(self):
        assert ac.principal_has_any_permission(self.role_map, ["uploader"], ["send_messages", "file_upload"]) is True
        assert ac.principal_has_any_permission(self.role_map, ["uploader"], ["user_management"]) is False
        assert ac.principal_has_any_permission(self.role_map, ["uploader"], []) is False

    def test_collect_permissions(self):
        assert ac.collect_permissions(self.role_map, ["writer", "uploader"]) == {"send_messages", "file_upload"}


class TestLastAdminInvariant:
    def test_cannot_strip_last_admin(self):
        admin = make_user("a1", ["admin"])
        decision = ac.check_role_change(admin, ["member"], [admin, make_user("m1", ["member"])])
        assert decision.allowed is False
        assert decision.reason == ac.LAST_ADMIN_ROLE_REMOVAL

    def test_inactive_admins_do_not_count(self):
        admin = make_user("a1", ["admin"])
        dormant = make_user("a2", ["admin"], is_active=False)
        assert ac.check_role_change(admin, ["member"], [admin, dormant]).allowed is False

    def test_can_strip_admin_when_another_is_active(self):
        admin = make_user("a1", ["admin"])
        other = make_user("a2", ["admin", "member"])
        assert ac.check_role_change(admin, ["member"], [admin, other]).allowed is True

    def test_keeping_admin_role_is_allowed(self):
        admin = make_user("a1", ["admin"])
        assert ac.check_role_change(admin, ["admin", "member"], [admin]).allowed is True

    def test_non_admin_role_change_is_allowed(self):
        member = make_user("m1", ["member"])
        assert ac.check_role_change(member, ["viewer"], [member]).allowed is True

    def test_self_deactivation_refused_before_admin_count(self):
        admin = make_user("a1", ["admin"])
        decision = ac.check_deactivation(admin, "a1", [admin])
        assert decision.allowed is False
        assert decision.reason == ac.SELF_DEACTIVATION

    def test_cannot_deactivate_last_admin(self):
        admin = make_user("a1", ["admin"])
        decision = ac.check_deactivation(admin, "someone-else", [admin])
        assert decision.reason == ac.LAST_ADMIN_DEACTIVATION

    def test_deactivate_admin_with_peer(self):
        admin = make_user("a1", ["admin"])
        peer = make_user("a2", ["admin"])
        assert ac.check_deactivation(admin, "a2", [admin, peer]).allowed is True

    def test_deactivate_member(self):
        admin = make_user("a1", ["admin"])
        member = make_user("m1", ["member"])
        assert ac.check_deactivation(member, "a1", [admin, member]).allowed is True


class TestAccessControlService:
    def test_seeded_admin_has_every_permission(self, db):
        perms = access_control.get_permissions(db, ["admin"])
        assert {"user_management", "channel_management", "system_settings", "backup_management"} <= perms

    def test_viewer_cannot_send(self, db):
        assert access_control.principal_has_permission(db, ["viewer"], "message_send") is False
        assert access_control.principal_has_permission(db, ["member"], "message_send") is True

    def test_unknown_user_is_not_found(self, db):
        decision = access_control.assert_role_change_allowed(db, "nope", ["member"])
        assert decision.code == "not_found"
        decision = access_control.assert_deactivation_allowed(db, "nope", "admin")
        assert decision.code == "not_found"

    def test_last_admin_in_database(self, db, admin):
        decision = access_control.assert_role_change_allowed(db, admin.id, ["member"])
        assert decision.allowed is False
        assert decision.code == "invariant_violation"
