from django.apps import AppConfig
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
import logging
import sys

logger = logging.getLogger(__name__)

KEY_HINT = "Generate a strong key with: python -c \"import secrets; print(secrets.token_urlsafe(50))\""


class CoreConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.core'
    verbose_name = 'Core'

    def ready(self):
        """
        Perform startup validation checks when the server starts.

        Management commands (migrate, shell, tests) skip validation so they
        run with development defaults.
        """
        if not self._is_serving():
            return

        self.validate_security_settings()
        logger.info("All startup security validations passed")

    @staticmethod
    def _is_serving():
        if len(sys.argv) > 1 and sys.argv[1] == 'runserver':
            return True
        return 'gunicorn' in sys.argv[0] or 'uvicorn' in sys.argv[0]

    def validate_security_settings(self):
        """Validate SECRET_KEY and JWT_SECRET_KEY. Weak keys are fatal only outside DEBUG."""
        debug = getattr(settings, 'DEBUG', False)
        secret_key = getattr(settings, 'SECRET_KEY', None)
        jwt_secret = getattr(settings, 'JWT_SECRET_KEY', None)

        if not secret_key:
            raise ImproperlyConfigured(f"SECRET_KEY must be set in environment variables. {KEY_HINT}")

        if not jwt_secret:
            raise ImproperlyConfigured(f"JWT_SECRET_KEY must be set in environment variables. {KEY_HINT}")

        problems = []
        if len(jwt_secret) < 32:
            problems.append(f"JWT_SECRET_KEY must be at least 32 characters long (current: {len(jwt_secret)})")
        if jwt_secret == secret_key:
            problems.append("JWT_SECRET_KEY must be different from SECRET_KEY")
        if len(set(jwt_secret)) < 16:
            problems.append("JWT_SECRET_KEY has insufficient entropy (fewer than 16 unique characters)")
        for name, value in (('SECRET_KEY', secret_key), ('JWT_SECRET_KEY', jwt_secret)):
            if 'insecure' in value.lower() or 'change-me' in value.lower():
                problems.append(f"{name} appears to be a development default")

        if not problems:
            return

        if debug:
            for problem in problems:
                logger.warning(f"⚠ {problem}")
            return

        raise ImproperlyConfigured(f"{'; '.join(problems)}. {KEY_HINT}")
