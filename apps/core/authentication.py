"""
Custom DRF authentication classes.
"""
from rest_framework.authentication import BaseAuthentication, get_authorization_header
from rest_framework import exceptions


class JWTAuthentication(BaseAuthentication):
    """
    DRF authentication class for ``Authorization: Bearer <token>`` headers.

    Tokens are issued by AuthService.login. Users whose status is
    ``inactive`` are rejected even with a valid token.
    """

    keyword = b'bearer'

    def authenticate(self, request):
        """
        Return (user, token) for a valid bearer token, None if no token was sent.
        """
        auth = get_authorization_header(request).split()

        if not auth or auth[0].lower() != self.keyword:
            return None

        if len(auth) != 2:
            raise exceptions.AuthenticationFailed('Invalid authorization header.')

        try:
            token = auth[1].decode()
        except UnicodeError:
            raise exceptions.AuthenticationFailed('Invalid token encoding.')

        from apps.rbac.services import AuthService
        user = AuthService.get_user_from_jwt(token)
        if user is None:
            raise exceptions.AuthenticationFailed('Invalid or expired token.')

        return (user, token)

    def authenticate_header(self, request):
        return 'Bearer'
