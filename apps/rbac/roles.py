"""
Role definitions and their permission grant tables.

Global roles apply application-wide. Project roles apply to one project
and only ever add to what the global role already grants.
"""
from enum import Enum
from types import MappingProxyType
from typing import NamedTuple, FrozenSet
from django.core.exceptions import ImproperlyConfigured

from apps.rbac.catalog import (
    PERMISSIONS_BY_RESOURCE, Resource, Action, all_permissions, is_valid_action, parse_permission,
)


class RoleInfo(NamedTuple):
    label: str
    description: str
    level: int


class _RoleEnum(str, Enum):

    @property
    def info(self) -> RoleInfo:
        return self._metadata()[self]

    @property
    def label(self) -> str:
        return self.info.label

    @property
    def description(self) -> str:
        return self.info.description

    @property
    def level(self) -> int:
        return self.info.level

    @classmethod
    def choices(cls):
        """Django field choices, in declaration order."""
        return [(role.value, role.label) for role in cls]

    @classmethod
    def _metadata(cls):
        raise NotImplementedError


class GlobalRole(_RoleEnum):
    """Application-wide role held by every user."""
    ADMIN = 'admin'
    MANAGER = 'manager'
    QA_ENGINEER = 'qa_engineer'
    TESTER = 'tester'
    DEVELOPER = 'developer'
    VIEWER = 'viewer'

    @classmethod
    def _metadata(cls):
        return GLOBAL_ROLES


class ProjectRole(_RoleEnum):
    """Role a user holds within a single project."""
    OWNER = 'owner'
    MAINTAINER = 'maintainer'
    CONTRIBUTOR = 'contributor'
    VIEWER = 'viewer'

    @classmethod
    def _metadata(cls):
        return PROJECT_ROLES


GLOBAL_ROLES = MappingProxyType({
    GlobalRole.ADMIN: RoleInfo(
        'Administrator',
        'Full access to the system. Manages users, settings and every project.',
        100,
    ),
    GlobalRole.MANAGER: RoleInfo(
        'Manager',
        'Manages projects and teams. Cannot change global settings.',
        80,
    ),
    GlobalRole.QA_ENGINEER: RoleInfo(
        'QA Engineer',
        'Creates and runs tests, maintains test cases and reports defects.',
        60,
    ),
    GlobalRole.TESTER: RoleInfo(
        'Tester',
        'Runs tests and reports defects. Cannot modify test suites.',
        40,
    ),
    GlobalRole.DEVELOPER: RoleInfo(
        'Developer',
        'Views tests and reports for the projects they work on.',
        30,
    ),
    GlobalRole.VIEWER: RoleInfo(
        'Viewer',
        'Read only. Views assigned projects and reports.',
        10,
    ),
})

PROJECT_ROLES = MappingProxyType({
    ProjectRole.OWNER: RoleInfo(
        'Owner',
        'Full control of the project. Manages members.',
        100,
    ),
    ProjectRole.MAINTAINER: RoleInfo(
        'Maintainer',
        'Manages test suites, cases and executions. Can add members.',
        70,
    ),
    ProjectRole.CONTRIBUTOR: RoleInfo(
        'Contributor',
        'Creates and edits tests. Runs test suites.',
        50,
    ),
    ProjectRole.VIEWER: RoleInfo(
        'Viewer',
        'Read only access to the project tests and reports.',
        20,
    ),
})


def _codes(*pairs) -> FrozenSet[str]:
    return frozenset(f"{resource.value}.{action.value}" for resource, action in pairs)


def _all_of(resource) -> FrozenSet[str]:
    return _codes(*((resource, action) for action in PERMISSIONS_BY_RESOURCE[resource]))


_READ_ONLY = _codes(
    (Resource.PROJECTS, Action.READ),
    (Resource.TEST_SUITES, Action.READ),
    (Resource.TEST_CASES, Action.READ),
    (Resource.EXECUTIONS, Action.READ),
    (Resource.REPORTS, Action.READ),
)

GLOBAL_ROLE_PERMISSIONS = MappingProxyType({
    GlobalRole.ADMIN: all_permissions(),
    GlobalRole.MANAGER: (
        _codes(
            (Resource.PROJECTS, Action.CREATE),
            (Resource.PROJECTS, Action.READ),
            (Resource.PROJECTS, Action.UPDATE),
            (Resource.PROJECTS, Action.MANAGE),
            (Resource.EXECUTIONS, Action.READ),
            (Resource.USERS, Action.READ),
            (Resource.SETTINGS, Action.READ),
        )
        | _all_of(Resource.TEST_SUITES)
        | _all_of(Resource.TEST_CASES)
        | _all_of(Resource.REPORTS)
    ),
    GlobalRole.QA_ENGINEER: (
        _codes(
            (Resource.PROJECTS, Action.READ),
            (Resource.TEST_SUITES, Action.CREATE),
            (Resource.TEST_SUITES, Action.READ),
            (Resource.TEST_SUITES, Action.UPDATE),
            (Resource.TEST_SUITES, Action.EXECUTE),
            (Resource.EXECUTIONS, Action.READ),
        )
        | _all_of(Resource.TEST_CASES)
        | _all_of(Resource.REPORTS)
    ),
    GlobalRole.TESTER: _READ_ONLY | _codes((Resource.TEST_SUITES, Action.EXECUTE)),
    GlobalRole.DEVELOPER: _READ_ONLY,
    GlobalRole.VIEWER: _READ_ONLY,
})

# Resources a project role may grant on; projects.read is the one exception
# outside this set.
PROJECT_SCOPED_RESOURCES = frozenset({
    Resource.TEST_SUITES,
    Resource.TEST_CASES,
    Resource.EXECUTIONS,
    Resource.REPORTS,
})
PROJECT_SCOPE_EXTRAS = _codes((Resource.PROJECTS, Action.READ))

_PROJECT_VIEWER = _READ_ONLY
_PROJECT_CONTRIBUTOR = _PROJECT_VIEWER | _codes(
    (Resource.TEST_SUITES, Action.EXECUTE),
    (Resource.TEST_CASES, Action.CREATE),
    (Resource.TEST_CASES, Action.UPDATE),
    (Resource.REPORTS, Action.EXPORT),
)
_PROJECT_MAINTAINER = _PROJECT_CONTRIBUTOR | _codes(
    (Resource.TEST_SUITES, Action.CREATE),
    (Resource.TEST_SUITES, Action.UPDATE),
    (Resource.TEST_SUITES, Action.DELETE),
    (Resource.TEST_CASES, Action.DELETE),
    (Resource.REPORTS, Action.CREATE),
)
_PROJECT_OWNER = _PROJECT_MAINTAINER | _codes((Resource.EXECUTIONS, Action.DELETE))

PROJECT_ROLE_PERMISSIONS = MappingProxyType({
    ProjectRole.OWNER: _PROJECT_OWNER,
    ProjectRole.MAINTAINER: _PROJECT_MAINTAINER,
    ProjectRole.CONTRIBUTOR: _PROJECT_CONTRIBUTOR,
    ProjectRole.VIEWER: _PROJECT_VIEWER,
})

# Ordered highest first; each role must strictly contain the next.
PROJECT_ROLE_HIERARCHY = (
    ProjectRole.OWNER,
    ProjectRole.MAINTAINER,
    ProjectRole.CONTRIBUTOR,
    ProjectRole.VIEWER,
)


def coerce_global_role(value):
    """Return the GlobalRole for ``value`` or None if it names no role."""
    try:
        return GlobalRole(value)
    except ValueError:
        return None


def coerce_project_role(value):
    """Return the ProjectRole for ``value`` or None if it names no role."""
    try:
        return ProjectRole(value)
    except ValueError:
        return None


def validate_grant_tables():
    """
    Check the grant tables against the catalog.

    Raises:
        ImproperlyConfigured: If a role grants a permission outside the
            catalog, a project role grants outside the project scope, or
            the project role hierarchy is not strictly nested.
    """
    problems = []

    for table_name, table in (
        ('GLOBAL_ROLE_PERMISSIONS', GLOBAL_ROLE_PERMISSIONS),
        ('PROJECT_ROLE_PERMISSIONS', PROJECT_ROLE_PERMISSIONS),
    ):
        for role, codes in table.items():
            for code in sorted(codes):
                try:
                    parse_permission(code)
                except ValueError:
                    problems.append(f"{table_name}[{role.value}] grants unknown permission {code}")

    missing_global = set(GlobalRole) - set(GLOBAL_ROLE_PERMISSIONS)
    missing_project = set(ProjectRole) - set(PROJECT_ROLE_PERMISSIONS)
    for role in sorted(missing_global | missing_project, key=lambda r: r.value):
        problems.append(f"Role {role.value} has no grant table entry")

    for role, codes in PROJECT_ROLE_PERMISSIONS.items():
        for code in sorted(codes - PROJECT_SCOPE_EXTRAS):
            resource, action = code.split('.', 1)
            if not is_valid_action(resource, action):
                continue
            if Resource(resource) not in PROJECT_SCOPED_RESOURCES:
                problems.append(f"Project role {role.value} grants {code} outside the project scope")

    for higher, lower in zip(PROJECT_ROLE_HIERARCHY, PROJECT_ROLE_HIERARCHY[1:]):
        higher_codes = PROJECT_ROLE_PERMISSIONS.get(higher, frozenset())
        lower_codes = PROJECT_ROLE_PERMISSIONS.get(lower, frozenset())
        if not higher_codes > lower_codes:
            problems.append(f"Project role {higher.value} must strictly contain {lower.value}")

    if problems:
        raise ImproperlyConfigured("Invalid role grant tables: " + "; ".join(problems))
