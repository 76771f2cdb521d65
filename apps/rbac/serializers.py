"""
RBAC serializers for REST API endpoints.

Field names follow the client contract (camelCase), mapped onto model
attributes with ``source``.

Provides serialization for:
- Authentication (login)
- Users and their project memberships
- Invites, role and status changes
- Audit logs and effective permissions
"""
from rest_framework import serializers

from apps.rbac.models import User, ProjectMembership, AuditLog
from apps.rbac.roles import GlobalRole, ProjectRole


# ===== AUTHENTICATION SERIALIZERS =====

class LoginSerializer(serializers.Serializer):
    """Serializer for user login."""

    email = serializers.EmailField(required=True)
    password = serializers.CharField(
        required=True,
        write_only=True,
        style={'input_type': 'password'}
    )


# ===== USER SERIALIZERS =====

class ProjectMembershipSerializer(serializers.ModelSerializer):
    """A user's role in one project."""

    projectId = serializers.UUIDField(source='project.id', read_only=True)
    projectKey = serializers.CharField(source='project.key', read_only=True)
    projectName = serializers.CharField(source='project.name', read_only=True)
    addedAt = serializers.DateTimeField(source='added_at', read_only=True)

    class Meta:
        model = ProjectMembership
        fields = ['projectId', 'projectKey', 'projectName', 'role', 'addedAt']
        read_only_fields = fields


class UserSerializer(serializers.ModelSerializer):
    """Serializer for User model."""

    globalRole = serializers.CharField(source='global_role', read_only=True)
    ssoSource = serializers.CharField(source='sso_source', read_only=True, allow_null=True)
    projectRoles = ProjectMembershipSerializer(source='project_roles', many=True, read_only=True)
    lastLogin = serializers.DateTimeField(source='last_login_at', read_only=True, allow_null=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)

    class Meta:
        model = User
        fields = [
            'id', 'name', 'email', 'avatar', 'globalRole', 'status', 'ssoSource',
            'projectRoles', 'lastLogin', 'createdAt', 'version',
        ]
        read_only_fields = fields


class CurrentUserSerializer(UserSerializer):
    """The authenticated user plus their effective global permissions."""

    permissions = serializers.SerializerMethodField()

    class Meta(UserSerializer.Meta):
        fields = UserSerializer.Meta.fields + ['permissions']
        read_only_fields = fields

    def get_permissions(self, obj):
        from apps.rbac.services import RBACService
        return sorted(RBACService.calculate_effective_permissions(obj.global_role))


# ===== MUTATION REQUEST SERIALIZERS =====

class InviteUserSerializer(serializers.Serializer):
    """Serializer for inviting a user."""

    email = serializers.EmailField(required=True)
    globalRole = serializers.ChoiceField(choices=GlobalRole.choices(), required=True)


class VersionedSerializer(serializers.Serializer):
    """Base for change requests carrying an optional optimistic-concurrency version."""

    version = serializers.IntegerField(required=False, min_value=1)


class GlobalRoleUpdateSerializer(VersionedSerializer):
    """Serializer for changing a user's Global Role."""

    role = serializers.ChoiceField(choices=GlobalRole.choices(), required=True)


class ProjectRoleAssignSerializer(VersionedSerializer):
    """Serializer for granting or changing a Project Role."""

    projectId = serializers.UUIDField(required=True)
    role = serializers.ChoiceField(choices=ProjectRole.choices(), required=True)


class StatusUpdateSerializer(VersionedSerializer):
    """Serializer for activating or deactivating a user."""

    status = serializers.ChoiceField(
        choices=[User.STATUS_ACTIVE, User.STATUS_INACTIVE],
        required=True
    )


# ===== AUDIT & PERMISSION SERIALIZERS =====

class AuditLogSerializer(serializers.ModelSerializer):
    """Serializer for AuditLog model."""

    userId = serializers.UUIDField(source='user_id', read_only=True)
    ipAddress = serializers.IPAddressField(source='ip_address', read_only=True, allow_null=True)
    actorEmail = serializers.EmailField(source='actor_email', read_only=True)

    class Meta:
        model = AuditLog
        fields = ['id', 'userId', 'action', 'resource', 'details', 'timestamp', 'ipAddress', 'actorEmail']
        read_only_fields = fields


class EffectivePermissionsSerializer(serializers.Serializer):
    """Resolved permissions of a user, optionally within one project."""

    globalRole = serializers.CharField()
    projectRole = serializers.CharField(allow_null=True)
    permissions = serializers.ListField(child=serializers.CharField())
