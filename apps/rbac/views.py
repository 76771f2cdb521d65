"""
RBAC REST API views.

Implements endpoints for:
- User listing and detail
- Invites, Global Role, Project Role and status changes
- User deletion
- Audit log viewing
- Effective permission lookup
"""
from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.pagination import PageNumberPagination
from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiParameter, OpenApiExample
from drf_spectacular.types import OpenApiTypes

from apps.core.permissions import requires_permissions, HasGlobalPermissions
from apps.rbac.models import ProjectMembership
from apps.rbac.services import RBACService, MembershipService, AuditLogService
from apps.rbac.serializers import (
    UserSerializer, InviteUserSerializer, GlobalRoleUpdateSerializer,
    ProjectRoleAssignSerializer, StatusUpdateSerializer, AuditLogSerializer,
    EffectivePermissionsSerializer,
)


class StandardResultsSetPagination(PageNumberPagination):
    """Standard pagination for list endpoints."""
    page_size = 50
    page_size_query_param = 'page_size'
    max_page_size = 100


USER_EXAMPLE = {
    'id': '123e4567-e89b-12d3-a456-426614174000',
    'name': 'Ana Martinez',
    'email': 'ana.manager@haida.com',
    'avatar': 'AM',
    'globalRole': 'manager',
    'status': 'active',
    'ssoSource': 'microsoft',
    'projectRoles': [
        {
            'projectId': '123e4567-e89b-12d3-a456-426614174001',
            'projectKey': 'ECM',
            'projectName': 'E-commerce Revamp',
            'role': 'owner',
            'addedAt': '2025-01-15T10:00:00Z',
        }
    ],
    'lastLogin': '2025-02-01T08:30:00Z',
    'createdAt': '2025-01-10T09:00:00Z',
    'version': 3,
}

VERSION_NOTE = '''
Send the `version` last read from the user to reject the change with
`409 CONFLICT` if someone else modified the user in the meantime.
Without it the change is last-write-wins.
'''


@extend_schema_view(
    get=extend_schema(
        tags=['Users'],
        summary='List users',
        description='''
List users with their project memberships, ordered by name.

**Required permission:** `users.read`
        ''',
        parameters=[
            OpenApiParameter('status', OpenApiTypes.STR, enum=['pending', 'active', 'inactive']),
            OpenApiParameter('globalRole', OpenApiTypes.STR,
                             enum=['admin', 'manager', 'qa_engineer', 'tester', 'developer', 'viewer']),
            OpenApiParameter('search', OpenApiTypes.STR, description='Match on name or email'),
        ],
        responses={200: UserSerializer(many=True)},
    )
)
@requires_permissions('users.read')
class UserListView(APIView):
    """
    GET /v1/users

    Required permission: users.read
    """

    permission_classes = [HasGlobalPermissions]
    pagination_class = StandardResultsSetPagination

    def get(self, request):
        users = MembershipService.list_users(
            status=request.query_params.get('status'),
            global_role=request.query_params.get('globalRole'),
            search=request.query_params.get('search'),
        )

        paginator = self.pagination_class()
        page = paginator.paginate_queryset(users, request, view=self)
        serializer = UserSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)


@extend_schema_view(
    post=extend_schema(
        tags=['Users'],
        summary='Invite user',
        description='''
Create a pending user with a Global Role. The account becomes active on
first sign-in.

**Required permission:** `users.create`
        ''',
        request=InviteUserSerializer,
        responses={
            201: OpenApiTypes.OBJECT,
            400: OpenApiTypes.OBJECT,
            403: OpenApiTypes.OBJECT,
            409: OpenApiTypes.OBJECT,
        },
        examples=[
            OpenApiExample(
                'Invite Request',
                value={'email': 'new.tester@haida.com', 'globalRole': 'tester'},
                request_only=True
            ),
        ]
    )
)
@requires_permissions('users.create')
class UserInviteView(APIView):
    """
    POST /v1/users/invite

    Required permission: users.create
    """

    permission_classes = [HasGlobalPermissions]

    def post(self, request):
        serializer = InviteUserSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = MembershipService.invite(
            email=serializer.validated_data['email'],
            global_role=serializer.validated_data['globalRole'],
            actor=request.user,
            request=request,
        )

        return Response(
            {
                'success': True,
                'message': f"Invitation sent to {user.email}",
                'user': UserSerializer(user).data,
            },
            status=status.HTTP_201_CREATED
        )


@extend_schema_view(
    get=extend_schema(
        tags=['Users'],
        summary='Get user',
        description='''
Fetch one user with their project memberships.

**Required permission:** `users.read` (not needed for your own record)
        ''',
        responses={200: UserSerializer, 403: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
        examples=[OpenApiExample('User', value=USER_EXAMPLE, response_only=True)],
    ),
    delete=extend_schema(
        tags=['Users'],
        summary='Delete user',
        description='''
Permanently delete a user and all their project memberships. The audit
trail of the user is kept.

**Required permission:** `users.delete`
        ''',
        responses={204: None, 400: OpenApiTypes.OBJECT, 403: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
    ),
)
@requires_permissions('users.read')
class UserDetailView(APIView):
    """
    GET /v1/users/{user_id}
    DELETE /v1/users/{user_id}
    """

    permission_classes = [HasGlobalPermissions]
    allow_self_access = True

    def get(self, request, user_id):
        user = MembershipService.get_user(user_id)
        return Response(UserSerializer(user).data)

    @requires_permissions('users.delete')
    def delete(self, request, user_id):
        MembershipService.delete_user(user_id, actor=request.user, request=request)
        return Response(status=status.HTTP_204_NO_CONTENT)


@extend_schema_view(
    patch=extend_schema(
        tags=['Users'],
        summary='Change Global Role',
        description='''
Replace a user's Global Role.

**Allowed for:** admin and manager
        ''' + VERSION_NOTE,
        request=GlobalRoleUpdateSerializer,
        responses={
            200: UserSerializer,
            400: OpenApiTypes.OBJECT,
            403: OpenApiTypes.OBJECT,
            404: OpenApiTypes.OBJECT,
            409: OpenApiTypes.OBJECT,
        },
        examples=[
            OpenApiExample('Change Role', value={'role': 'qa_engineer', 'version': 3}, request_only=True),
        ]
    )
)
class UserGlobalRoleView(APIView):
    """
    PATCH /v1/users/{user_id}/global-role

    The admin/manager gate is enforced by MembershipService.
    """

    def patch(self, request, user_id):
        serializer = GlobalRoleUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = MembershipService.update_global_role(
            user_id,
            serializer.validated_data['role'],
            actor=request.user,
            expected_version=serializer.validated_data.get('version'),
            request=request,
        )
        return Response(UserSerializer(MembershipService.get_user(user.id)).data)


@extend_schema_view(
    post=extend_schema(
        tags=['Users'],
        summary='Grant or change Project Role',
        description='''
Give a user a role in a project, or change the role they already have
there. Repeating the same request leaves a single membership.

**Allowed for:** admin, manager, or owner/maintainer of the project
        ''' + VERSION_NOTE,
        request=ProjectRoleAssignSerializer,
        responses={
            200: UserSerializer,
            400: OpenApiTypes.OBJECT,
            403: OpenApiTypes.OBJECT,
            404: OpenApiTypes.OBJECT,
            409: OpenApiTypes.OBJECT,
        },
        examples=[
            OpenApiExample(
                'Assign Role',
                value={'projectId': '123e4567-e89b-12d3-a456-426614174001', 'role': 'contributor'},
                request_only=True
            ),
        ]
    )
)
class UserProjectRoleView(APIView):
    """
    POST /v1/users/{user_id}/project-roles
    """

    def post(self, request, user_id):
        serializer = ProjectRoleAssignSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = MembershipService.assign_project_role(
            user_id,
            serializer.validated_data['projectId'],
            serializer.validated_data['role'],
            actor=request.user,
            expected_version=serializer.validated_data.get('version'),
            request=request,
        )
        return Response(UserSerializer(user).data)


@extend_schema_view(
    delete=extend_schema(
        tags=['Users'],
        summary='Remove Project Role',
        description='''
Remove a user's membership in a project. Their Global Role is unaffected.

**Allowed for:** admin, manager, or owner/maintainer of the project
        ''',
        responses={200: UserSerializer, 403: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
    )
)
class UserProjectRoleDetailView(APIView):
    """
    DELETE /v1/users/{user_id}/project-roles/{project_id}
    """

    def delete(self, request, user_id, project_id):
        user = MembershipService.remove_project_role(
            user_id,
            project_id,
            actor=request.user,
            request=request,
        )
        return Response(UserSerializer(user).data)


@extend_schema_view(
    patch=extend_schema(
        tags=['Users'],
        summary='Activate or deactivate user',
        description='''
Set a user's status to `active` or `inactive`. Inactive users cannot sign in.

**Required permission:** `users.update`
        ''' + VERSION_NOTE,
        request=StatusUpdateSerializer,
        responses={
            200: UserSerializer,
            400: OpenApiTypes.OBJECT,
            403: OpenApiTypes.OBJECT,
            404: OpenApiTypes.OBJECT,
            409: OpenApiTypes.OBJECT,
        },
    )
)
@requires_permissions('users.update')
class UserStatusView(APIView):
    """
    PATCH /v1/users/{user_id}/status

    Required permission: users.update
    """

    permission_classes = [HasGlobalPermissions]

    def patch(self, request, user_id):
        serializer = StatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = MembershipService.update_status(
            user_id,
            serializer.validated_data['status'],
            actor=request.user,
            expected_version=serializer.validated_data.get('version'),
            request=request,
        )
        return Response(UserSerializer(MembershipService.get_user(user.id)).data)


@extend_schema_view(
    get=extend_schema(
        tags=['Users'],
        summary='User audit log',
        description='''
Most recent audit entries for a user, newest first.

**Required permission:** `users.read` (not needed for your own log)
        ''',
        parameters=[
            OpenApiParameter('limit', OpenApiTypes.INT, description='1 to 100, default 10'),
        ],
        responses={200: AuditLogSerializer(many=True), 400: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
    )
)
@requires_permissions('users.read')
class UserAuditLogView(APIView):
    """
    GET /v1/users/{user_id}/audit-log?limit=N
    """

    permission_classes = [HasGlobalPermissions]
    allow_self_access = True

    def get(self, request, user_id):
        MembershipService.get_user(user_id)
        entries = AuditLogService.query_by_user(
            user_id,
            limit=request.query_params.get('limit', AuditLogService.DEFAULT_LIMIT)
        )
        return Response(AuditLogSerializer(entries, many=True).data)


@extend_schema_view(
    get=extend_schema(
        tags=['Users'],
        summary='Effective permissions',
        description='''
Resolve what a user may do: the grants of their Global Role, plus those of
their Project Role when `projectId` is given.

**Required permission:** `users.read` (not needed for yourself)
        ''',
        parameters=[
            OpenApiParameter('projectId', OpenApiTypes.UUID, required=False),
        ],
        responses={200: EffectivePermissionsSerializer, 403: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
    )
)
@requires_permissions('users.read')
class UserPermissionsView(APIView):
    """
    GET /v1/users/{user_id}/permissions?projectId=
    """

    permission_classes = [HasGlobalPermissions]
    allow_self_access = True

    def get(self, request, user_id):
        user = MembershipService.get_user(user_id)

        project_role = None
        project_id = request.query_params.get('projectId')
        if project_id:
            project = MembershipService.get_project(project_id)
            membership = ProjectMembership.objects.get_membership(user, project)
            project_role = membership.role if membership else None

        permissions = RBACService.calculate_effective_permissions(user.global_role, project_role)
        serializer = EffectivePermissionsSerializer({
            'globalRole': user.global_role,
            'projectRole': project_role,
            'permissions': sorted(permissions),
        })
        return Response(serializer.data)
