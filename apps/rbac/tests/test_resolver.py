"""
Unit tests for RBACService resolution and meta-permission gates.
"""
import pytest
from unittest.mock import patch

from apps.rbac.catalog import Resource, Action
from apps.rbac.roles import GlobalRole, ProjectRole
from apps.rbac.services import RBACService


class TestCalculateEffectivePermissions:

    def test_viewer_with_owner_project_role(self):
        effective = RBACService.calculate_effective_permissions('viewer', 'owner')
        assert 'executions.delete' in effective
        assert 'test_suites.create' in effective
        assert 'users.read' not in effective

    def test_tester_contributor_gains_test_case_edits(self):
        effective = RBACService.calculate_effective_permissions(GlobalRole.TESTER, ProjectRole.CONTRIBUTOR)
        assert {'test_cases.create', 'test_cases.update', 'reports.export'} <= effective

    def test_qa_engineer_contributor_in_project(self):
        effective = RBACService.calculate_effective_permissions('qa_engineer', 'contributor')
        assert RBACService.has_permission(effective, 'test_cases', 'update') is True
        assert RBACService.has_permission(effective, 'users', 'manage') is False

    def test_admin_with_viewer_project_role_keeps_everything(self):
        admin_only = RBACService.calculate_effective_permissions('admin')
        assert RBACService.calculate_effective_permissions('admin', 'viewer') == admin_only

    def test_returns_frozenset(self):
        assert isinstance(RBACService.calculate_effective_permissions('developer'), frozenset)

    @patch('apps.rbac.services.logger')
    def test_unknown_global_role_grants_nothing(self, mock_logger):
        effective = RBACService.calculate_effective_permissions('superuser')
        assert effective == frozenset()
        assert 'Unknown global role' in mock_logger.warning.call_args[0][0]

    @patch('apps.rbac.services.logger')
    def test_unknown_project_role_is_ignored(self, mock_logger):
        effective = RBACService.calculate_effective_permissions('viewer', 'lead')
        assert effective == RBACService.calculate_effective_permissions('viewer')
        assert 'Unknown project role' in mock_logger.warning.call_args[0][0]


class TestHasPermission:

    def test_granted(self):
        effective = RBACService.calculate_effective_permissions('qa_engineer')
        assert RBACService.has_permission(effective, Resource.TEST_SUITES, Action.EXECUTE)

    def test_not_granted(self):
        effective = RBACService.calculate_effective_permissions('developer')
        assert not RBACService.has_permission(effective, 'test_suites', 'execute')

    def test_catalog_invalid_pair_is_denied_even_when_present(self):
        assert not RBACService.has_permission({'executions.execute'}, 'executions', 'execute')


class TestHighestRoleLevel:

    def test_global_only(self):
        assert RBACService.get_highest_role_level('tester') == 40

    def test_project_role_higher_than_global(self):
        assert RBACService.get_highest_role_level('viewer', 'maintainer') == 70

    def test_unknown_roles(self):
        assert RBACService.get_highest_role_level('nobody') == 0


class TestGates:

    @pytest.mark.parametrize('role,expected', [
        ('admin', True),
        ('manager', True),
        ('qa_engineer', False),
        ('tester', False),
        ('developer', False),
        ('viewer', False),
        ('unknown', False),
    ])
    def test_can_edit_global_roles(self, role, expected):
        assert RBACService.can_edit_global_roles(role) is expected

    def test_can_manage_users_only_for_admin(self):
        assert RBACService.can_manage_users(GlobalRole.ADMIN)
        for role in GlobalRole:
            if role is not GlobalRole.ADMIN:
                assert not RBACService.can_manage_users(role)

    @pytest.mark.parametrize('global_role,project_role,expected', [
        ('admin', None, True),
        ('manager', None, True),
        ('qa_engineer', None, False),
        ('tester', 'owner', True),
        ('developer', 'maintainer', True),
        ('qa_engineer', 'contributor', False),
        ('viewer', 'viewer', False),
    ])
    def test_can_edit_project_roles(self, global_role, project_role, expected):
        assert RBACService.can_edit_project_roles(global_role, project_role) is expected


@pytest.mark.django_db
class TestEffectivePermissionsFor:

    def test_without_project(self, viewer_user):
        assert RBACService.effective_permissions_for(viewer_user) == \
            RBACService.calculate_effective_permissions('viewer')

    def test_with_membership(self, viewer_user, project, membership):
        membership(viewer_user, project, 'contributor')
        effective = RBACService.effective_permissions_for(viewer_user, project)
        assert 'test_suites.execute' in effective

    def test_membership_in_other_project_does_not_apply(self, viewer_user, project, other_project, membership):
        membership(viewer_user, other_project, 'owner')
        effective = RBACService.effective_permissions_for(viewer_user, project)
        assert effective == RBACService.calculate_effective_permissions('viewer')
