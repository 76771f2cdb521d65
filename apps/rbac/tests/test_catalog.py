"""
Tests for the permission catalog.
"""
import pytest
from hypothesis import given, strategies as st

from apps.rbac.catalog import (
    Resource, Action, PERMISSIONS_BY_RESOURCE,
    is_valid_action, permission_code, parse_permission, all_permissions, describe_catalog,
)


class TestCatalogContents:
    """The catalog defines exactly the documented resource/action pairs."""

    def test_every_resource_has_an_entry(self):
        assert set(PERMISSIONS_BY_RESOURCE) == set(Resource)

    def test_executions_only_allow_read_and_delete(self):
        assert PERMISSIONS_BY_RESOURCE[Resource.EXECUTIONS] == (Action.READ, Action.DELETE)

    def test_users_include_manage_and_manage_permissions(self):
        actions = PERMISSIONS_BY_RESOURCE[Resource.USERS]
        assert Action.MANAGE in actions
        assert Action.MANAGE_PERMISSIONS in actions

    def test_all_permissions_count(self):
        # 5 + 5 + 4 + 2 + 3 + 6 + 2
        assert len(all_permissions()) == 27

    def test_catalog_is_read_only(self):
        with pytest.raises(TypeError):
            PERMISSIONS_BY_RESOURCE[Resource.SETTINGS] = (Action.DELETE,)


class TestIsValidAction:

    def test_valid_pair(self):
        assert is_valid_action(Resource.TEST_SUITES, Action.EXECUTE)

    def test_valid_pair_from_strings(self):
        assert is_valid_action('reports', 'export')

    def test_action_not_defined_for_resource(self):
        assert not is_valid_action(Resource.EXECUTIONS, Action.EXECUTE)
        assert not is_valid_action('settings', 'delete')

    def test_unknown_values_return_false(self):
        assert not is_valid_action('invoices', 'read')
        assert not is_valid_action('projects', 'approve')
        assert not is_valid_action(None, None)

    @given(st.text(), st.text())
    def test_never_raises_on_arbitrary_strings(self, resource, action):
        result = is_valid_action(resource, action)
        assert isinstance(result, bool)


class TestPermissionCodes:

    def test_permission_code_format(self):
        assert permission_code(Resource.TEST_CASES, Action.DELETE) == 'test_cases.delete'
        assert permission_code('users', 'manage_permissions') == 'users.manage_permissions'

    def test_parse_permission(self):
        assert parse_permission('test_suites.execute') == (Resource.TEST_SUITES, Action.EXECUTE)

    @pytest.mark.parametrize('code', ['projects', 'projects.read.extra', '', 'unknown.read', 'settings.delete'])
    def test_parse_permission_rejects_invalid_codes(self, code):
        with pytest.raises(ValueError):
            parse_permission(code)

    def test_all_permissions_parse(self):
        for code in all_permissions():
            resource, action = parse_permission(code)
            assert is_valid_action(resource, action)


def test_describe_catalog_rows():
    rows = describe_catalog()
    assert [row['resource'] for row in rows] == [resource.value for resource in PERMISSIONS_BY_RESOURCE]
    reports = next(row for row in rows if row['resource'] == 'reports')
    assert reports['actions'] == ['read', 'export', 'create']
