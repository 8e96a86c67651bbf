"""Tests for principals and the role-based permission evaluator."""

from samples import AwsDefinition

from credentia.security import (
    SYSTEM_PRINCIPAL,
    AccessControlled,
    Authorization,
    Principal,
    RoleBasedPermissionEvaluator,
    is_admin,
)


class TestPrincipal:
    def test_roles(self):
        p = Principal("alice", roles=frozenset({"ops", "dev"}))
        assert p.has_any_role(["qa", "ops"])
        assert not p.has_any_role([])

    def test_admin(self):
        assert is_admin(SYSTEM_PRINCIPAL)
        assert not is_admin(Principal("alice"))
        assert not is_admin(None)


class TestEvaluator:
    def test_none_principal_denied(self):
        assert not RoleBasedPermissionEvaluator().has_permission(None, "x", Authorization.READ)

    def test_admin_allowed(self, admin):
        target = AwsDefinition(name="prod", permissions={"WRITE": ["nobody"]})
        assert RoleBasedPermissionEvaluator().has_permission(admin, target, Authorization.WRITE)

    def test_access_controlled_target(self, alice, bob):
        target = AwsDefinition(name="prod", permissions={"WRITE": ["ops"]})
        assert isinstance(target, AccessControlled)
        evaluator = RoleBasedPermissionEvaluator()
        assert evaluator.has_permission(alice, target, Authorization.WRITE)
        assert not evaluator.has_permission(bob, target, Authorization.WRITE)
        assert evaluator.has_permission(bob, target, Authorization.READ)

    def test_other_targets_open(self, bob):
        assert RoleBasedPermissionEvaluator().has_permission(bob, object(), Authorization.WRITE)

    def test_account_names_resolved_through_lookup(self, evaluator, accounts, alice, bob):
        accounts["prod"] = AwsDefinition(name="prod", permissions={"WRITE": ["ops"]})
        assert evaluator.has_permission(alice, "prod", Authorization.WRITE, target_type="account")
        assert not evaluator.has_permission(bob, "prod", Authorization.WRITE, target_type="account")
        assert not evaluator.has_permission(alice, "ghost", Authorization.WRITE, target_type="account")

    def test_account_without_lookup_denied(self, alice):
        evaluator = RoleBasedPermissionEvaluator()
        assert not evaluator.has_permission(alice, "prod", Authorization.READ, target_type="account")
