"""
Tests for authentication endpoints and JWT handling.
"""
import jwt
import pytest
from datetime import timedelta
from unittest.mock import patch
from django.conf import settings
from django.utils import timezone
from rest_framework import status

from apps.rbac.models import AuditLog
from apps.rbac.services import AuthService, RBACService


@pytest.mark.django_db
class TestLogin:

    def test_success_returns_token_and_user(self, api_client, make_user):
        user = make_user('qa_engineer', email='luis.qa@haida.com', password='qa123')

        response = api_client.post(
            '/v1/auth/login', {'email': 'luis.qa@haida.com', 'password': 'qa123'}, format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['user']['email'] == user.email
        assert response.data['user']['lastLogin'] is not None
        payload = AuthService.validate_jwt(response.data['token'])
        assert payload['user_id'] == str(user.id)

    def test_first_login_activates_pending_user(self, api_client, make_user):
        user = make_user('tester', status='pending', email='juan@haida.com', password='tester123')

        response = api_client.post(
            '/v1/auth/login', {'email': 'juan@haida.com', 'password': 'tester123'}, format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['user']['status'] == 'active'
        assert AuditLog.objects.for_user(user.id).first().action == 'user_activated'

    @patch('apps.rbac.services.SecurityLogger.log_failed_login')
    def test_inactive_user_rejected(self, mock_failed_login, api_client, make_user):
        make_user('viewer', status='inactive', email='sofia@haida.com', password='viewer123')

        response = api_client.post(
            '/v1/auth/login', {'email': 'sofia@haida.com', 'password': 'viewer123'}, format='json'
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['code'] == 'AUTHENTICATION_FAILED'
        assert mock_failed_login.call_args[1]['reason'] == 'account_inactive'

    @patch('apps.rbac.services.SecurityLogger.log_failed_login')
    def test_wrong_password(self, mock_failed_login, api_client, make_user):
        make_user('tester', email='maria@haida.com', password='tester123')

        response = api_client.post(
            '/v1/auth/login', {'email': 'maria@haida.com', 'password': 'nope'}, format='json'
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        mock_failed_login.assert_called_once()

    def test_email_match_ignores_case(self, api_client, make_user):
        user = make_user('tester', email='New.Tester@haida.com', password='tester123')

        response = api_client.post(
            '/v1/auth/login', {'email': 'new.tester@haida.com', 'password': 'tester123'}, format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['user']['id'] == str(user.id)

    def test_user_without_password(self, api_client, make_user):
        make_user('tester', status='pending', email='invited@haida.com')

        response = api_client.post(
            '/v1/auth/login', {'email': 'invited@haida.com', 'password': 'anything'}, format='json'
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_missing_fields(self, api_client):
        response = api_client.post('/v1/auth/login', {'email': 'x@haida.com'}, format='json')
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'password' in response.data['details']


@pytest.mark.django_db
class TestJWTAuthentication:

    def test_bearer_token_authenticates(self, api_client, tester_user):
        token = AuthService.generate_jwt(tester_user)
        api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

        response = api_client.get('/v1/auth/me')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['email'] == tester_user.email
        assert set(response.data['permissions']) == RBACService.calculate_effective_permissions('tester')

    def test_expired_token(self, api_client, tester_user):
        now = timezone.now()
        token = jwt.encode(
            {'user_id': str(tester_user.id), 'exp': now - timedelta(minutes=1), 'iat': now - timedelta(hours=1)},
            settings.JWT_SECRET_KEY,
            algorithm=settings.JWT_ALGORITHM,
        )
        api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

        response = api_client.get('/v1/auth/me')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_token_signed_with_other_key(self, api_client, tester_user):
        token = jwt.encode({'user_id': str(tester_user.id)}, 'not-the-secret', algorithm='HS256')
        api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

        response = api_client.get('/v1/auth/me')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_deactivated_user_token_rejected(self, api_client, tester_user):
        token = AuthService.generate_jwt(tester_user)
        tester_user.status = 'inactive'
        tester_user.save()
        api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

        response = api_client.get('/v1/auth/me')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_malformed_header(self, api_client):
        api_client.credentials(HTTP_AUTHORIZATION='Bearer')
        response = api_client.get('/v1/auth/me')
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_no_token(self, api_client):
        response = api_client.get('/v1/auth/me')
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_permissions_reflect_role_change(self, api_client, admin_user, tester_user):
        from apps.rbac.services import MembershipService

        token = AuthService.generate_jwt(tester_user)
        api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
        MembershipService.update_global_role(tester_user.id, 'manager', actor=admin_user)

        response = api_client.get('/v1/auth/me')

        assert response.data['globalRole'] == 'manager'
        assert 'users.read' in response.data['permissions']
