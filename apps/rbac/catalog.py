"""
Permission catalog.

The closed set of resources and the actions that apply to each of them.
A permission is the pair (resource, action), serialized as
``"<resource>.<action>"`` (e.g. ``'test_suites.execute'``).
"""
from enum import Enum
from types import MappingProxyType
from typing import FrozenSet, List, Dict, Tuple, Union


class Resource(str, Enum):
    """Kinds of things a permission applies to."""
    PROJECTS = 'projects'
    TEST_SUITES = 'test_suites'
    TEST_CASES = 'test_cases'
    EXECUTIONS = 'executions'
    REPORTS = 'reports'
    USERS = 'users'
    SETTINGS = 'settings'


class Action(str, Enum):
    """Verbs a permission can grant."""
    CREATE = 'create'
    READ = 'read'
    UPDATE = 'update'
    DELETE = 'delete'
    MANAGE = 'manage'
    EXECUTE = 'execute'
    EXPORT = 'export'
    MANAGE_PERMISSIONS = 'manage_permissions'


PERMISSIONS_BY_RESOURCE = MappingProxyType({
    Resource.PROJECTS: (Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE, Action.MANAGE),
    Resource.TEST_SUITES: (Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE, Action.EXECUTE),
    Resource.TEST_CASES: (Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE),
    Resource.EXECUTIONS: (Action.READ, Action.DELETE),
    Resource.REPORTS: (Action.READ, Action.EXPORT, Action.CREATE),
    Resource.USERS: (
        Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE,
        Action.MANAGE, Action.MANAGE_PERMISSIONS,
    ),
    Resource.SETTINGS: (Action.READ, Action.UPDATE),
})

ResourceLike = Union[Resource, str]
ActionLike = Union[Action, str]


def _coerce(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None


def is_valid_action(resource: ResourceLike, action: ActionLike) -> bool:
    """
    Check whether ``action`` is defined for ``resource`` in the catalog.

    Unknown resources or actions return False rather than raising.
    """
    resource = _coerce(Resource, resource)
    action = _coerce(Action, action)
    if resource is None or action is None:
        return False
    return action in PERMISSIONS_BY_RESOURCE[resource]


def permission_code(resource: ResourceLike, action: ActionLike) -> str:
    """Serialize a (resource, action) pair as ``'<resource>.<action>'``."""
    resource = getattr(resource, 'value', resource)
    action = getattr(action, 'value', action)
    return f"{resource}.{action}"


def parse_permission(code: str) -> Tuple[Resource, Action]:
    """
    Parse ``'<resource>.<action>'`` into enum members.

    Raises:
        ValueError: If the code is malformed or names a pair the catalog
            does not define.
    """
    if not isinstance(code, str) or code.count('.') != 1:
        raise ValueError(f"Malformed permission code: {code!r}")

    resource_value, action_value = code.split('.')
    resource = _coerce(Resource, resource_value)
    action = _coerce(Action, action_value)

    if resource is None or action is None or action not in PERMISSIONS_BY_RESOURCE[resource]:
        raise ValueError(f"Permission {code!r} is not in the catalog")

    return resource, action


def all_permissions() -> FrozenSet[str]:
    """Every catalog-valid permission code."""
    return frozenset(
        permission_code(resource, action)
        for resource, actions in PERMISSIONS_BY_RESOURCE.items()
        for action in actions
    )


def describe_catalog() -> List[Dict[str, object]]:
    """
    Rows for the permission matrix shown in the user management UI.

    Returns:
        List of ``{'resource': str, 'actions': [str, ...]}`` in catalog order.
    """
    return [
        {
            'resource': resource.value,
            'actions': [action.value for action in actions],
        }
        for resource, actions in PERMISSIONS_BY_RESOURCE.items()
    ]
