"""
Tests 201-240: Grant lifecycle policy, RBAC and team rules (pure functions).
"""
import dataclasses
import datetime
import uuid

import pytest

from ssgms.exceptions import ConflictError, PermissionDeniedError, ValidationError
from ssgms.middleware.auth import AuthContext
from ssgms.rbac import ALL_PERMISSIONS, ROLE_PERMISSIONS, has_permission
from ssgms.schemas import GrantWithRelations, collapse_relation
from ssgms.services import grant_policy, team


def actor(role):
    return AuthContext(user_id=uuid.uuid4(), email=f"{role}@example.test", role=role)


@dataclasses.dataclass
class Row:
    email: str
    status: str | None
    tag: str = ""


class TestRBAC:

    def test_201_super_admin_has_every_permission(self):
        assert ROLE_PERMISSIONS["super_admin"] == set(ALL_PERMISSIONS)

    def test_202_deletes_are_super_admin_only(self):
        for perm in ("grants.delete", "disbursements.delete", "team.delete", "team.reset_link", "team.update_role"):
            assert has_permission("super_admin", perm)
            assert not has_permission("admin", perm)
            assert not has_permission("user", perm)

    def test_203_every_role_may_advance_status(self):
        for role in ("user", "admin", "super_admin"):
            assert has_permission(role, "grants.advance_status")

    def test_204_unknown_role_has_nothing(self):
        assert actor("auditor").permissions == set()


class TestGrantPolicy:

    # =================================================================
    # Tests 211-219: status handling
    # =================================================================

    def test_211_status_filter_is_order_independent_and_duplicate_tolerant(self):
        assert grant_policy.parse_status_filter("ongoing,approved,ongoing") == \
            grant_policy.parse_status_filter("approved,ongoing") == ("approved", "ongoing")

    def test_212_status_filter_ignores_unknown_tokens_and_case(self):
        assert grant_policy.parse_status_filter(" Completed , bogus,") == ("completed",)
        assert grant_policy.parse_status_filter(None) == ()

    def test_213_status_advance_any_transition_allowed(self):
        """No forward-only ordering: ongoing -> approved is accepted."""
        staff = actor("user")
        patch = grant_policy.plan_status_advance("ongoing", "approved", staff)
        assert patch == {"status": "approved", "user_id": staff.user_id}

    def test_214_status_advance_to_same_value_is_a_no_op(self):
        assert grant_policy.plan_status_advance("Approved", "approved", actor("user")) is None

    def test_215_status_advance_rejects_unknown_status(self):
        with pytest.raises(ValidationError, match="Invalid status"):
            grant_policy.plan_status_advance("approved", "archived", actor("admin"))

    # =================================================================
    # Tests 221-229: privileged operations
    # =================================================================

    def test_221_staff_cannot_create_edit_or_delete(self):
        staff = actor("user")
        for check in (grant_policy.ensure_can_create, grant_policy.ensure_can_edit, grant_policy.ensure_can_delete):
            with pytest.raises(PermissionDeniedError):
                check(staff)

    def test_222_admin_can_edit_but_not_delete(self):
        admin = actor("admin")
        grant_policy.ensure_can_edit(admin)
        with pytest.raises(PermissionDeniedError):
            grant_policy.ensure_can_delete(admin)

    @pytest.mark.parametrize("reason", [None, "", "   \n\t"])
    def test_223_blank_deletion_reason_rejected(self, reason):
        with pytest.raises(ValidationError, match="reason is required"):
            grant_policy.require_deletion_reason(reason)

    def test_224_deletion_reason_trimmed(self):
        assert grant_policy.require_deletion_reason("  duplicate entry ") == "duplicate entry"

    def test_225_grant_fields_validated(self):
        with pytest.raises(ValidationError):
            grant_policy.validate_grant_fields(project_name="   ")
        with pytest.raises(ValidationError):
            grant_policy.validate_grant_fields(amount_approved="-0.01")
        with pytest.raises(ValidationError):
            grant_policy.validate_grant_fields(amount_approved="abc")
        cleaned = grant_policy.validate_grant_fields(project_name=" Road ", amount_approved="0", status="ONGOING")
        assert cleaned == {"project_name": "Road", "amount_approved": 0, "status": "ongoing"}

    def test_226_deletion_snapshot_uses_normalized_relations(self):
        g = GrantWithRelations.model_validate({
            "id": 9,
            "project_name": "Clinic",
            "amount_approved": "2500.00",
            "status": "ongoing",
            "created_at": datetime.datetime(2024, 1, 1),
            "fund_sources": [{"id": 1, "source_name": "Federal"}],
            "grant_years": {"id": 3, "year_value": 2024},
        })
        assert grant_policy.deletion_snapshot(g) == {
            "projectName": "Clinic",
            "amountApproved": 2500.0,
            "fundSource": "Federal",
            "year": 2024,
            "status": "ongoing",
        }

    def test_227_collapse_relation_shapes(self):
        assert collapse_relation([]) is None
        assert collapse_relation(None) is None
        assert collapse_relation([{"a": 1}, {"a": 2}]) == {"a": 1}
        assert collapse_relation({"a": 1}) == {"a": 1}

    def test_228_grant_filter_combines_criteria(self):
        class G:
            def __init__(self, name, status, year_id):
                self.project_name, self.status, self.year_id, self.fund_source_id = name, status, year_id, 1

        rows = [G("Water Pipes", "approved", 1), G("Waterfront", "completed", 1), G("Roads", "approved", 2)]
        criteria = grant_policy.GrantFilter(search="water", statuses=("approved",))
        assert [g.project_name for g in criteria.apply(rows)] == ["Water Pipes"]
        assert len(grant_policy.GrantFilter().apply(rows)) == 3


class TestTeamRules:

    # =================================================================
    # Tests 231-240: collapse, invites, role changes, resets, deletes
    # =================================================================

    def test_231_collapse_prefers_active_row(self):
        rows = [
            Row("ana@example.test", "invited", "placeholder"),
            Row("Ana@Example.test", "active", "registered"),
            Row("bo@example.test", "invited", "first"),
            Row("bo@example.test", "invited", "second"),
        ]
        collapsed = team.collapse_profiles(rows)
        assert [r.tag for r in collapsed] == ["registered", "first"]

    def test_232_collapse_is_idempotent(self):
        rows = [Row("c@example.test", None), Row("a@example.test", "active"), Row("b@example.test", "invited")]
        once = team.collapse_profiles(rows)
        assert team.collapse_profiles(once) == once
        assert [r.email for r in once] == ["a@example.test", "b@example.test", "c@example.test"]

    def test_233_null_status_counts_as_active(self):
        rows = [Row("d@example.test", "invited", "inv"), Row("d@example.test", None, "legacy")]
        assert [r.tag for r in team.collapse_profiles(rows)] == ["legacy"]

    def test_234_cannot_change_own_role(self):
        boss = actor("super_admin")
        with pytest.raises(ValidationError, match="You cannot change your own role."):
            team.validate_role_change(boss, boss.user_id, "user")

    def test_235_role_change_requires_super_admin(self):
        with pytest.raises(PermissionDeniedError):
            team.validate_role_change(actor("admin"), uuid.uuid4(), "admin")
        assert team.validate_role_change(actor("super_admin"), uuid.uuid4(), " Admin ") == "admin"

    def test_236_invite_rules(self):
        admin = actor("admin")
        assert team.validate_invite(admin, " new@example.test ", "admin") == ("new@example.test", "admin")
        with pytest.raises(ValidationError):
            team.validate_invite(admin, "new@example.test", "super_admin")
        with pytest.raises(ValidationError):
            team.validate_invite(admin, "not-an-email", "user")
        with pytest.raises(ConflictError):
            team.validate_invite(admin, "New@Example.test", "user", ["new@example.test"])
        with pytest.raises(PermissionDeniedError):
            team.validate_invite(actor("user"), "x@example.test", "user")

    def test_237_reset_link_only_for_active_members(self):
        boss = actor("super_admin")
        team.ensure_reset_link_allowed(boss, Row("a@example.test", "active"))
        with pytest.raises(ValidationError):
            team.ensure_reset_link_allowed(boss, Row("a@example.test", "invited"))
        with pytest.raises(PermissionDeniedError):
            team.ensure_reset_link_allowed(actor("admin"), Row("a@example.test", "active"))

    def test_238_deletion_plan_depends_on_status(self):
        boss = actor("super_admin")
        assert team.plan_profile_deletion(boss, Row("a@example.test", "invited")) == team.DELETE_ROW_ONLY
        assert team.plan_profile_deletion(boss, Row("a@example.test", "active")) == team.DELETE_IDENTITY_ACCOUNT
        with pytest.raises(PermissionDeniedError):
            team.plan_profile_deletion(actor("admin"), Row("a@example.test", "invited"))
