"""
Authentication REST API views.

Implements endpoints for:
- Login
- Current user profile
"""
from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from drf_spectacular.utils import extend_schema, OpenApiExample
from drf_spectacular.types import OpenApiTypes

from apps.core.exceptions import AuthenticationError, ValidationError
from apps.rbac.services import AuthService, MembershipService
from apps.rbac.serializers import LoginSerializer, UserSerializer, CurrentUserSerializer


@extend_schema(
    tags=['Authentication'],
    summary='Login',
    description='''
Authenticate with email and password and receive a JWT.

The first successful sign-in of an invited (pending) user activates the
account. Inactive users cannot sign in.

**No authentication required** - this is a public endpoint.
    ''',
    request=LoginSerializer,
    responses={
        200: OpenApiTypes.OBJECT,
        400: OpenApiTypes.OBJECT,
        401: OpenApiTypes.OBJECT,
    },
    examples=[
        OpenApiExample(
            'Login Request',
            value={'email': 'carlos.admin@haida.com', 'password': '********'},
            request_only=True
        ),
    ]
)
class LoginView(APIView):
    """
    POST /v1/auth/login

    Authenticate user and return JWT token.
    """
    authentication_classes = []
    permission_classes = []

    def post(self, request):
        serializer = LoginSerializer(data=request.data)

        if not serializer.is_valid():
            raise ValidationError('Validation error', details=serializer.errors)

        result = AuthService.login(
            email=serializer.validated_data['email'],
            password=serializer.validated_data['password'],
            request=request,
        )

        if not result:
            raise AuthenticationError('Invalid email or password')

        user = MembershipService.get_user(result['user'].id)
        return Response(
            {
                'token': result['token'],
                'user': UserSerializer(user).data,
            },
            status=status.HTTP_200_OK
        )


@extend_schema(
    tags=['Authentication'],
    summary='Current user',
    description='''
The authenticated user with their project memberships and the effective
permissions of their Global Role.
    ''',
    responses={200: CurrentUserSerializer, 401: OpenApiTypes.OBJECT},
)
class MeView(APIView):
    """
    GET /v1/auth/me
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        user = MembershipService.get_user(request.user.id)
        return Response(CurrentUserSerializer(user).data)
