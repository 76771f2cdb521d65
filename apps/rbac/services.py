"""
RBAC and Authentication services.

Implements:
- RBACService: effective permission resolution and meta-permission gates
- MembershipService: user, global role, project role and status changes
- AuditLogService: audit trail queries
- AuthService: JWT authentication and login
"""
import logging
import time
import uuid
from datetime import timedelta
from typing import FrozenSet, Optional, Dict, Any, List

import jwt
from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email
from django.db import transaction, IntegrityError, OperationalError, InterfaceError
from django.db.models import Q
from django.utils import timezone

from apps.core.exceptions import (
    ValidationError, AuthorizationError, NotFoundError, ConflictError, TransientError,
)
from apps.core.logging import SecurityLogger
from apps.projects.models import Project
from apps.rbac.catalog import Resource, Action, is_valid_action, permission_code
from apps.rbac.models import User, ProjectMembership, AuditLog
from apps.rbac.roles import (
    GlobalRole, ProjectRole, GLOBAL_ROLE_PERMISSIONS, PROJECT_ROLE_PERMISSIONS,
    coerce_global_role, coerce_project_role,
)

logger = logging.getLogger(__name__)


class RBACService:
    """
    Effective permission resolution and the gates that protect role changes.

    Effective permissions are recomputed on every call from the grant
    tables; nothing is cached.
    """

    GLOBAL_ROLE_EDITORS = frozenset({GlobalRole.ADMIN, GlobalRole.MANAGER})
    PROJECT_ROLE_EDITORS = frozenset({ProjectRole.OWNER, ProjectRole.MAINTAINER})

    @classmethod
    def calculate_effective_permissions(cls, global_role, project_role=None) -> FrozenSet[str]:
        """
        Resolve the permission set for a global role and optional project role.

        The project role only ever adds to the global grant (set union).
        Unknown role values contribute nothing and are logged.

        Args:
            global_role: GlobalRole or its string value
            project_role: ProjectRole, its string value, or None

        Returns:
            Frozen set of permission codes (e.g., {'projects.read', 'reports.export'})
        """
        permissions = frozenset()

        resolved_global = coerce_global_role(global_role)
        if resolved_global is None:
            logger.warning(
                f"Unknown global role '{global_role}', granting no permissions",
                extra={'global_role': str(global_role)}
            )
        else:
            permissions = GLOBAL_ROLE_PERMISSIONS[resolved_global]

        if project_role is not None:
            resolved_project = coerce_project_role(project_role)
            if resolved_project is None:
                logger.warning(
                    f"Unknown project role '{project_role}', ignoring it",
                    extra={'project_role': str(project_role)}
                )
            else:
                permissions = permissions | PROJECT_ROLE_PERMISSIONS[resolved_project]

        return permissions

    @classmethod
    def has_permission(cls, effective_permissions, resource, action) -> bool:
        """Check a (resource, action) pair against a resolved permission set."""
        if not is_valid_action(resource, action):
            return False
        return permission_code(resource, action) in effective_permissions

    @classmethod
    def effective_permissions_for(cls, user: User, project=None) -> FrozenSet[str]:
        """
        Resolve a user's permissions, optionally inside a project.

        Args:
            user: User instance
            project: Project instance, project id, or None for global only
        """
        project_role = None
        if project is not None:
            membership = ProjectMembership.objects.filter(user=user, project=project).first()
            if membership:
                project_role = membership.role
        return cls.calculate_effective_permissions(user.global_role, project_role)

    @classmethod
    def get_highest_role_level(cls, global_role, project_role=None) -> int:
        """Highest ``level`` among the given roles (0 for unknown roles)."""
        levels = [0]
        resolved_global = coerce_global_role(global_role)
        if resolved_global is not None:
            levels.append(resolved_global.level)
        resolved_project = coerce_project_role(project_role) if project_role is not None else None
        if resolved_project is not None:
            levels.append(resolved_project.level)
        return max(levels)

    @classmethod
    def can_edit_global_roles(cls, actor_global_role) -> bool:
        """Only admins and managers may change a Global Role."""
        return coerce_global_role(actor_global_role) in cls.GLOBAL_ROLE_EDITORS

    @classmethod
    def can_manage_users(cls, actor_global_role) -> bool:
        """Whether the actor's global role holds users.manage_permissions."""
        return cls.has_permission(
            cls.calculate_effective_permissions(actor_global_role),
            Resource.USERS,
            Action.MANAGE_PERMISSIONS,
        )

    @classmethod
    def can_edit_project_roles(cls, actor_global_role, actor_project_role=None) -> bool:
        """
        Admins and managers may edit any project's roles; otherwise the actor
        must be owner or maintainer of the project in question.
        """
        if cls.can_edit_global_roles(actor_global_role):
            return True
        if actor_project_role is None:
            return False
        return coerce_project_role(actor_project_role) in cls.PROJECT_ROLE_EDITORS


def _retry_read(operation, description, max_retries=3):
    """
    Run a read with exponential backoff on connection-level database errors.

    Raises:
        TransientError: If every attempt fails
    """
    backoff = getattr(settings, 'READ_RETRY_BACKOFF_SECONDS', 0.1)
    last_error = None

    for attempt in range(max_retries):
        try:
            return operation()
        except (OperationalError, InterfaceError) as e:
            last_error = e
            if attempt < max_retries - 1:
                wait_time = backoff * (2 ** attempt)
                logger.warning(
                    f"{description} failed, retrying in {wait_time}s",
                    extra={'attempt': attempt + 1, 'max_retries': max_retries}
                )
                time.sleep(wait_time)
            else:
                logger.error(
                    f"{description} failed after {max_retries} attempts",
                    exc_info=True
                )

    raise TransientError(
        'The user store is temporarily unavailable, please retry',
        details={'operation': description}
    ) from last_error


def _parse_uuid(value, label):
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise NotFoundError(f"{label} '{value}' not found")


class MembershipService:
    """
    Every change to users, Global Roles, Project Roles and status.

    Each operation re-checks its gate against the acting user, locks the
    target row for the duration of the change, bumps ``User.version`` and
    writes one audit entry once the change is stored. A call that would
    leave the stored state unchanged returns the user without an audit entry.
    """

    ASSIGNABLE_STATUSES = frozenset({User.STATUS_ACTIVE, User.STATUS_INACTIVE})

    # Reads

    @classmethod
    def get_user(cls, user_id) -> User:
        """
        Fetch a user with their project memberships.

        Raises:
            NotFoundError: If the user does not exist
        """
        user_id = _parse_uuid(user_id, 'User')

        def fetch():
            return (
                User.objects
                .prefetch_related('project_roles__project')
                .filter(id=user_id)
                .first()
            )

        user = _retry_read(fetch, 'User lookup')
        if user is None:
            raise NotFoundError(f"User '{user_id}' not found")
        return user

    @classmethod
    def list_users(cls, status=None, global_role=None, search=None) -> List[User]:
        """
        List users with optional filters.

        Args:
            status: Only users with this status
            global_role: Only users with this Global Role
            search: Case-insensitive match on name or email
        """
        queryset = User.objects.prefetch_related('project_roles__project')

        if status:
            if status not in dict(User.STATUS_CHOICES):
                raise ValidationError(f"Unknown status '{status}'", details={'status': status})
            queryset = queryset.filter(status=status)

        if global_role:
            role = coerce_global_role(global_role)
            if role is None:
                raise ValidationError(f"Unknown global role '{global_role}'", details={'globalRole': global_role})
            queryset = queryset.filter(global_role=role.value)

        if search:
            queryset = queryset.filter(Q(name__icontains=search) | Q(email__icontains=search))

        return _retry_read(lambda: list(queryset), 'User listing')

    # Mutations

    @classmethod
    def invite(cls, email, global_role, actor: User, request=None) -> User:
        """
        Create a pending user with the given Global Role.

        Raises:
            ValidationError: Malformed email or unknown role
            AuthorizationError: Actor lacks users.create
            ConflictError: A user with this email already exists
        """
        email = User.objects.normalize_email(email)
        try:
            validate_email(email)
        except DjangoValidationError:
            raise ValidationError(f"Invalid email address '{email}'", details={'email': email})

        role = coerce_global_role(global_role)
        if role is None:
            raise ValidationError(f"Unknown global role '{global_role}'", details={'globalRole': global_role})

        cls._require_permission(actor, Resource.USERS, Action.CREATE)

        if User.objects.filter(email__iexact=email).exists():
            raise ConflictError(f"A user with email '{email}' already exists", details={'email': email})

        try:
            with transaction.atomic():
                user = User.objects.create(
                    email=email,
                    name=email.split('@', 1)[0],
                    global_role=role.value,
                    status=User.STATUS_PENDING,
                )
        except IntegrityError:
            raise ConflictError(f"A user with email '{email}' already exists", details={'email': email})

        AuditLog.log_action(
            user_id=user.id,
            action='user_invited',
            resource=Resource.USERS.value,
            details=f"Invited {email} as {role.value}",
            actor=actor,
            metadata={'global_role': role.value},
            request=request,
        )
        logger.info(
            "User invited",
            extra={'subject_id': str(user.id), 'global_role': role.value, 'actor_id': str(actor.id)}
        )
        return user

    @classmethod
    def update_global_role(cls, user_id, role, actor: User, expected_version=None, request=None) -> User:
        """
        Replace a user's Global Role.

        Raises:
            ValidationError: Unknown role
            AuthorizationError: Actor is neither admin nor manager
            NotFoundError: User does not exist
            ConflictError: ``expected_version`` is stale
        """
        new_role = coerce_global_role(role)
        if new_role is None:
            raise ValidationError(f"Unknown global role '{role}'", details={'role': role})

        if not RBACService.can_edit_global_roles(actor.global_role):
            SecurityLogger.log_event(
                'global_role_escalation_denied',
                level='error',
                actor_id=str(actor.id),
                actor_role=actor.global_role,
                target_user_id=str(user_id),
                requested_role=new_role.value,
            )
            raise AuthorizationError('Only administrators and managers can change global roles')

        with transaction.atomic():
            user = cls._lock_user(user_id)
            cls._check_version(user, expected_version)
            previous_role = user.global_role
            if previous_role == new_role.value:
                return user
            user.global_role = new_role.value
            cls._bump_version(user, 'global_role')

        AuditLog.log_action(
            user_id=user.id,
            action='role_changed',
            resource=Resource.USERS.value,
            details=f"Changed role from {previous_role} to {new_role.value}",
            actor=actor,
            metadata={'from': previous_role, 'to': new_role.value},
            request=request,
        )
        logger.info(
            "Global role changed",
            extra={'subject_id': str(user.id), 'from_role': previous_role,
                   'to_role': new_role.value, 'actor_id': str(actor.id)}
        )
        return user

    @classmethod
    def assign_project_role(cls, user_id, project_id, role, actor: User,
                            expected_version=None, request=None) -> User:
        """
        Grant or change a user's Project Role in a project (upsert).

        Raises:
            ValidationError: Unknown role
            NotFoundError: User or project does not exist
            AuthorizationError: Actor may not edit this project's roles
            ConflictError: ``expected_version`` is stale
        """
        new_role = coerce_project_role(role)
        if new_role is None:
            raise ValidationError(f"Unknown project role '{role}'", details={'role': role})

        project = cls.get_project(project_id)
        cls._require_project_editor(actor, project)

        with transaction.atomic():
            user = cls._lock_user(user_id)
            cls._check_version(user, expected_version)

            membership = (
                ProjectMembership.objects
                .select_for_update()
                .filter(user=user, project=project)
                .first()
            )
            previous_role = membership.role if membership else None
            if previous_role == new_role.value:
                return user

            if membership:
                membership.role = new_role.value
                membership.save(update_fields=['role', 'updated_at'])
            else:
                try:
                    with transaction.atomic():
                        ProjectMembership.objects.create(user=user, project=project, role=new_role.value)
                except IntegrityError:
                    raise ConflictError(
                        f"User is already a member of project {project.key}",
                        details={'projectId': str(project.id)}
                    )
            cls._bump_version(user)

        if previous_role is None:
            action = 'project_access_granted'
            details = f"Granted {new_role.value} access to project {project.key}"
        else:
            action = 'project_role_changed'
            details = f"Changed project {project.key} role from {previous_role} to {new_role.value}"

        AuditLog.log_action(
            user_id=user.id,
            action=action,
            resource=Resource.PROJECTS.value,
            details=details,
            actor=actor,
            metadata={'project_id': str(project.id), 'from': previous_role, 'to': new_role.value},
            request=request,
        )
        logger.info(
            "Project role assigned",
            extra={'subject_id': str(user.id), 'project_key': project.key,
                   'to_role': new_role.value, 'actor_id': str(actor.id)}
        )
        return cls.get_user(user.id)

    @classmethod
    def remove_project_role(cls, user_id, project_id, actor: User,
                            expected_version=None, request=None) -> User:
        """
        Remove a user's membership in a project.

        Raises:
            NotFoundError: User, project or membership does not exist
            AuthorizationError: Actor may not edit this project's roles
            ConflictError: ``expected_version`` is stale
        """
        project = cls.get_project(project_id)
        cls._require_project_editor(actor, project)

        with transaction.atomic():
            user = cls._lock_user(user_id)
            cls._check_version(user, expected_version)

            membership = (
                ProjectMembership.objects
                .select_for_update()
                .filter(user=user, project=project)
                .first()
            )
            if membership is None:
                raise NotFoundError(
                    f"User has no role in project {project.key}",
                    details={'projectId': str(project.id)}
                )
            previous_role = membership.role
            membership.delete()
            cls._bump_version(user)

        AuditLog.log_action(
            user_id=user.id,
            action='project_access_revoked',
            resource=Resource.PROJECTS.value,
            details=f"Revoked {previous_role} access to project {project.key}",
            actor=actor,
            metadata={'project_id': str(project.id), 'from': previous_role},
            request=request,
        )
        logger.info(
            "Project role removed",
            extra={'subject_id': str(user.id), 'project_key': project.key, 'actor_id': str(actor.id)}
        )
        return cls.get_user(user.id)

    @classmethod
    def update_status(cls, user_id, status, actor: User, expected_version=None, request=None) -> User:
        """
        Activate or deactivate a user.

        Raises:
            ValidationError: Status other than active/inactive, or actor
                deactivating themselves
            AuthorizationError: Actor lacks users.update
            NotFoundError: User does not exist
            ConflictError: ``expected_version`` is stale
        """
        if status not in cls.ASSIGNABLE_STATUSES:
            raise ValidationError(
                f"Status must be one of: {', '.join(sorted(cls.ASSIGNABLE_STATUSES))}",
                details={'status': status}
            )

        cls._require_permission(actor, Resource.USERS, Action.UPDATE)

        if status == User.STATUS_INACTIVE and str(actor.id) == str(user_id):
            raise ValidationError('You cannot deactivate your own account')

        with transaction.atomic():
            user = cls._lock_user(user_id)
            cls._check_version(user, expected_version)
            previous_status = user.status
            if previous_status == status:
                return user
            user.status = status
            cls._bump_version(user, 'status')

        AuditLog.log_action(
            user_id=user.id,
            action='status_changed',
            resource=Resource.USERS.value,
            details=f"Changed status from {previous_status} to {status}",
            actor=actor,
            metadata={'from': previous_status, 'to': status},
            request=request,
        )
        logger.info(
            "User status changed",
            extra={'subject_id': str(user.id), 'from_status': previous_status,
                   'to_status': status, 'actor_id': str(actor.id)}
        )
        return user

    @classmethod
    def delete_user(cls, user_id, actor: User, request=None) -> None:
        """
        Permanently delete a user and their memberships.

        Raises:
            ValidationError: Actor deleting themselves
            AuthorizationError: Actor lacks users.delete
            NotFoundError: User does not exist
        """
        cls._require_permission(actor, Resource.USERS, Action.DELETE)

        if str(actor.id) == str(user_id):
            raise ValidationError('You cannot delete your own account')

        with transaction.atomic():
            user = cls._lock_user(user_id)
            subject_id = user.id
            email = user.email
            user.delete()

        AuditLog.log_action(
            user_id=subject_id,
            action='user_deleted',
            resource=Resource.USERS.value,
            details=f"Deleted user {email}",
            actor=actor,
            request=request,
        )
        logger.info(
            "User deleted",
            extra={'subject_id': str(subject_id), 'actor_id': str(actor.id)}
        )

    @classmethod
    def record_authentication(cls, user: User, request=None) -> User:
        """
        Record a successful authentication.

        The first authentication of a pending user activates the account.
        """
        with transaction.atomic():
            locked = cls._lock_user(user.id)
            activated = locked.status == User.STATUS_PENDING
            locked.last_login_at = timezone.now()
            if activated:
                locked.status = User.STATUS_ACTIVE
                cls._bump_version(locked, 'status', 'last_login_at')
            else:
                locked.save(update_fields=['last_login_at', 'updated_at'])

        if activated:
            AuditLog.log_action(
                user_id=locked.id,
                action='user_activated',
                resource=Resource.USERS.value,
                details='Activated on first sign-in',
                actor=locked,
                request=request,
            )
            logger.info("User activated", extra={'subject_id': str(locked.id)})
        return locked

    # Helpers

    @classmethod
    def _lock_user(cls, user_id) -> User:
        user_id = _parse_uuid(user_id, 'User')
        user = User.objects.select_for_update().filter(id=user_id).first()
        if user is None:
            raise NotFoundError(f"User '{user_id}' not found")
        return user

    @classmethod
    def get_project(cls, project_id) -> Project:
        if project_id in (None, ''):
            raise ValidationError('projectId is required')
        project_id = _parse_uuid(project_id, 'Project')
        project = Project.objects.filter(id=project_id).first()
        if project is None:
            raise NotFoundError(f"Project '{project_id}' not found")
        return project

    @staticmethod
    def _check_version(user: User, expected_version):
        if expected_version is not None and int(expected_version) != user.version:
            raise ConflictError(
                'User was modified by someone else, reload and try again',
                details={'expectedVersion': expected_version, 'currentVersion': user.version}
            )

    @staticmethod
    def _bump_version(user: User, *fields):
        user.version += 1
        user.save(update_fields=list(fields) + ['version', 'updated_at'])

    @staticmethod
    def _require_permission(actor: User, resource, action):
        effective = RBACService.calculate_effective_permissions(actor.global_role)
        if not RBACService.has_permission(effective, resource, action):
            raise AuthorizationError(
                f"Missing permission {permission_code(resource, action)}",
                details={'required': permission_code(resource, action)}
            )

    @staticmethod
    def _require_project_editor(actor: User, project: Project):
        membership = ProjectMembership.objects.get_membership(actor, project)
        actor_project_role = membership.role if membership else None
        if not RBACService.can_edit_project_roles(actor.global_role, actor_project_role):
            raise AuthorizationError(
                f"You cannot manage roles in project {project.key}",
                details={'projectId': str(project.id)}
            )


class AuditLogService:
    """Read access to the audit trail."""

    DEFAULT_LIMIT = 10

    @classmethod
    def query_by_user(cls, user_id, limit=DEFAULT_LIMIT) -> List[AuditLog]:
        """
        Most recent audit entries for a user, newest first.

        Raises:
            ValidationError: ``limit`` outside 1..AUDIT_LOG_MAX_LIMIT
        """
        max_limit = getattr(settings, 'AUDIT_LOG_MAX_LIMIT', 100)
        try:
            limit = int(limit)
        except (TypeError, ValueError):
            raise ValidationError('limit must be an integer', details={'limit': limit})
        if not 1 <= limit <= max_limit:
            raise ValidationError(f"limit must be between 1 and {max_limit}", details={'limit': limit})

        user_id = _parse_uuid(user_id, 'User')
        return _retry_read(
            lambda: list(AuditLog.objects.for_user(user_id)[:limit]),
            'Audit log query'
        )


class AuthService:
    """
    Service for authentication operations: JWT issue/validation and login.
    """

    @classmethod
    def generate_jwt(cls, user: User) -> str:
        """
        Generate JWT token for a user.

        Args:
            user: User instance

        Returns:
            JWT token string
        """
        now = timezone.now()
        payload = {
            'user_id': str(user.id),
            'email': user.email,
            'exp': now + timedelta(hours=getattr(settings, 'JWT_EXPIRATION_HOURS', 24)),
            'iat': now,
        }

        return jwt.encode(
            payload,
            settings.JWT_SECRET_KEY,
            algorithm=getattr(settings, 'JWT_ALGORITHM', 'HS256')
        )

    @classmethod
    def validate_jwt(cls, token: str) -> Optional[Dict[str, Any]]:
        """
        Validate JWT token and return payload.

        Returns:
            Decoded payload dict or None if invalid
        """
        try:
            return jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[getattr(settings, 'JWT_ALGORITHM', 'HS256')]
            )
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None

    @classmethod
    def get_user_from_jwt(cls, token: str) -> Optional[User]:
        """
        Extract and return user from JWT token.

        Inactive users are treated as unknown.
        """
        payload = cls.validate_jwt(token)
        if not payload:
            return None

        user_id = payload.get('user_id')
        if not user_id:
            return None

        try:
            return User.objects.exclude(status=User.STATUS_INACTIVE).get(id=user_id)
        except (User.DoesNotExist, DjangoValidationError):
            return None

    @classmethod
    def login(cls, email: str, password: str, request=None) -> Optional[Dict[str, Any]]:
        """
        Authenticate user and return JWT token.

        Returns:
            Dict with user and token, or None if authentication failed
        """
        ip_address = AuditLog._get_client_ip(request) if request is not None else None
        user = User.objects.by_email(email)

        if user is None or not user.check_password(password):
            SecurityLogger.log_failed_login(email, ip_address)
            return None

        if user.status == User.STATUS_INACTIVE:
            SecurityLogger.log_failed_login(email, ip_address, reason='account_inactive')
            return None

        user = MembershipService.record_authentication(user, request=request)

        return {
            'user': user,
            'token': cls.generate_jwt(user),
        }
