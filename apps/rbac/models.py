"""
RBAC models for the HAIDA user management store.

Implements:
- User (global identity with a Global Role and lifecycle status)
- ProjectMembership (a user's Project Role in one project)
- AuditLog (append-only trail of access-control changes)
"""
import logging
from django.db import models, transaction
from django.contrib.auth.hashers import make_password, check_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_ipv46_address
from apps.core.models import BaseModel
from apps.rbac.roles import GlobalRole, ProjectRole

logger = logging.getLogger(__name__)


class UserManager(models.Manager):
    """Manager for User queries."""

    def active(self):
        """Return only active users."""
        return self.filter(status=User.STATUS_ACTIVE)

    def by_email(self, email):
        """Find user by email."""
        return self.filter(email__iexact=self.normalize_email(email)).first()

    @classmethod
    def normalize_email(cls, email):
        """
        Normalize the email address by lowercasing the domain part.
        """
        email = email or ''
        try:
            email_name, domain_part = email.strip().rsplit('@', 1)
        except ValueError:
            pass
        else:
            email = email_name + '@' + domain_part.lower()
        return email


class User(BaseModel):
    """
    A person known to HAIDA.

    Holds exactly one Global Role. Project Roles live on ProjectMembership
    rows reachable through ``project_roles``. ``version`` increases on every
    change made through MembershipService and backs optimistic concurrency.
    """

    STATUS_PENDING = 'pending'
    STATUS_ACTIVE = 'active'
    STATUS_INACTIVE = 'inactive'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_ACTIVE, 'Active'),
        (STATUS_INACTIVE, 'Inactive'),
    ]

    SSO_CHOICES = [
        ('microsoft', 'Microsoft'),
        ('google', 'Google'),
        ('okta', 'Okta'),
    ]

    email = models.EmailField(
        unique=True,
        db_index=True,
        help_text="User email address (unique)"
    )
    name = models.CharField(
        max_length=255,
        blank=True,
        help_text="Display name"
    )
    avatar = models.CharField(
        max_length=500,
        blank=True,
        help_text="Avatar URL or initials"
    )
    global_role = models.CharField(
        max_length=20,
        choices=GlobalRole.choices(),
        default=GlobalRole.VIEWER.value,
        db_index=True,
        help_text="Application-wide role"
    )
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
        db_index=True,
        help_text="Lifecycle status; pending until first authentication"
    )
    sso_source = models.CharField(
        max_length=20,
        choices=SSO_CHOICES,
        null=True,
        blank=True,
        help_text="Identity provider the account signs in with"
    )
    password_hash = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Hashed password (invited and SSO users have none)"
    )
    last_login_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Last successful authentication"
    )
    version = models.PositiveIntegerField(
        default=1,
        help_text="Incremented on every change, used for optimistic concurrency"
    )

    objects = UserManager()

    class Meta:
        db_table = 'users'
        ordering = ['name', 'email']
        indexes = [
            models.Index(fields=['status', 'global_role']),
        ]

    def __str__(self):
        return f"{self.name} ({self.email})" if self.name else self.email

    def save(self, *args, **kwargs):
        self.email = UserManager.normalize_email(self.email)
        super().save(*args, **kwargs)

    def check_password(self, raw_password):
        """Check a raw password against the stored hash."""
        if not self.password_hash:
            return False
        return check_password(raw_password, self.password_hash)

    def set_password(self, raw_password):
        """Hash and store a password."""
        self.password_hash = make_password(raw_password)

    @property
    def is_authenticated(self):
        """Always True for User instances (DRF request.user compatibility)."""
        return True

    @property
    def is_anonymous(self):
        return False

    @property
    def is_active(self):
        return self.status == self.STATUS_ACTIVE


class ProjectMembershipManager(models.Manager):
    """Manager for ProjectMembership queries."""

    def for_user(self, user):
        """Memberships of a user, with their projects."""
        return self.filter(user=user).select_related('project')

    def for_project(self, project):
        """Memberships in a project."""
        return self.filter(project=project).select_related('user')

    def get_membership(self, user, project):
        """Return the membership of ``user`` in ``project`` or None."""
        return self.filter(user=user, project=project).first()


class ProjectMembership(BaseModel):
    """
    A user's Project Role in one project.

    At most one row per (user, project).
    """

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='project_roles',
        help_text="Member"
    )
    project = models.ForeignKey(
        'projects.Project',
        on_delete=models.CASCADE,
        related_name='memberships',
        help_text="Project the role applies to"
    )
    role = models.CharField(
        max_length=20,
        choices=ProjectRole.choices(),
        help_text="Project-scoped role"
    )
    added_at = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user was added to the project"
    )

    objects = ProjectMembershipManager()

    class Meta:
        db_table = 'project_memberships'
        unique_together = [('user', 'project')]
        ordering = ['added_at']

    def __str__(self):
        return f"{self.user.email} - {self.project.key} ({self.role})"


class AuditLogImmutableError(Exception):
    """Raised on any attempt to change or remove an audit entry."""


class AuditLogQuerySet(models.QuerySet):
    """QuerySet that refuses bulk mutation of audit entries."""

    def update(self, **kwargs):
        raise AuditLogImmutableError("Audit log entries cannot be updated")

    def delete(self):
        raise AuditLogImmutableError("Audit log entries cannot be deleted")


class AuditLogManager(models.Manager.from_queryset(AuditLogQuerySet)):
    """Manager for AuditLog queries."""

    def for_user(self, user_id):
        """Entries whose subject is ``user_id``, newest first."""
        return self.filter(user_id=user_id).order_by('-timestamp', '-id')


class AuditLog(models.Model):
    """
    Append-only audit trail of user and role changes.

    ``user_id`` is the subject of the change. It is stored as a plain value
    so entries outlive the user they describe.
    """

    id = models.BigAutoField(primary_key=True)
    user_id = models.UUIDField(
        db_index=True,
        help_text="User the action was applied to"
    )
    action = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Action key (e.g., 'role_changed', 'project_access_granted')"
    )
    resource = models.CharField(
        max_length=50,
        help_text="Catalog resource affected (e.g., 'users', 'projects')"
    )
    details = models.TextField(
        blank=True,
        help_text="Human readable description of the change"
    )
    timestamp = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="When the action happened"
    )

    # Request Context
    ip_address = models.GenericIPAddressField(
        null=True,
        blank=True,
        help_text="IP address of the request"
    )
    actor_id = models.UUIDField(
        null=True,
        blank=True,
        help_text="User who performed the action (null for system actions)"
    )
    actor_email = models.EmailField(
        blank=True,
        help_text="Email of the acting user at the time of the action"
    )
    user_agent = models.TextField(
        blank=True,
        help_text="User agent string"
    )
    request_id = models.CharField(
        max_length=64,
        blank=True,
        db_index=True,
        help_text="Request ID for tracing"
    )
    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Additional context metadata"
    )

    objects = AuditLogManager()

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-timestamp', '-id']
        indexes = [
            models.Index(fields=['user_id', 'timestamp']),
            models.Index(fields=['action', 'timestamp']),
        ]

    def __str__(self):
        return f"{self.user_id} - {self.action} - {self.timestamp}"

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            raise AuditLogImmutableError("Audit log entries cannot be modified")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise AuditLogImmutableError("Audit log entries cannot be deleted")

    @classmethod
    def log_action(cls, user_id, action, resource, details='', actor=None,
                   metadata=None, request=None):
        """
        Append an audit entry.

        Args:
            user_id: Subject of the action
            action: Action key
            resource: Catalog resource affected
            details: Human readable description
            actor: User performing the action
            metadata: Additional context
            request: Django request object (for IP, user agent, request ID)

        Returns:
            AuditLog instance, or None if the entry could not be written
        """
        log_data = {
            'user_id': user_id,
            'action': action,
            'resource': resource,
            'details': details,
            'metadata': metadata or {},
        }

        if actor is not None and getattr(actor, 'is_authenticated', False):
            log_data['actor_id'] = actor.id
            log_data['actor_email'] = actor.email

        if request is not None:
            log_data['ip_address'] = cls._get_client_ip(request)
            log_data['user_agent'] = request.META.get('HTTP_USER_AGENT', '')
            log_data['request_id'] = (getattr(request, 'request_id', None) or '')[:64]

        try:
            with transaction.atomic():
                return cls.objects.create(**log_data)
        except Exception as e:
            # Fail silently - audit logging should not break the main operation
            logger.error(
                f"Failed to create audit log: {str(e)}",
                extra={'action': action, 'subject_id': str(user_id)},
                exc_info=True
            )
            return None

    @staticmethod
    def _get_client_ip(request):
        """Extract client IP from request, ignoring malformed forwarded values."""
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR', '')
        candidates = [x_forwarded_for.split(',')[0].strip(), request.META.get('REMOTE_ADDR')]
        for ip in candidates:
            if not ip:
                continue
            try:
                validate_ipv46_address(ip)
            except DjangoValidationError:
                continue
            return ip
        return None
