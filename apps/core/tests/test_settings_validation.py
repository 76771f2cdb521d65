"""
Tests for Django settings validation.

Validates:
- JWT_SECRET_KEY length, entropy and separation from SECRET_KEY
- Development defaults are refused outside DEBUG
- Validation only runs for serving processes
"""
import pytest
from unittest.mock import patch
from django.apps import apps
from django.core.exceptions import ImproperlyConfigured
from django.test import override_settings

STRONG_SECRET = 'k7Qp2LmX9vRt4WzN8bYc3HsJ6dFg1AeU0iOyTqPl'
STRONG_JWT_SECRET = 'Zr5Nw8Qe2Ty7Ui4Op1As6Df3Gh9Jk0LzXcVbNm'


@pytest.fixture
def core_config():
    return apps.get_app_config('core')


class TestSecurityValidation:
    """Test startup validation of SECRET_KEY and JWT_SECRET_KEY."""

    @override_settings(DEBUG=False, SECRET_KEY=STRONG_SECRET, JWT_SECRET_KEY=STRONG_JWT_SECRET)
    def test_strong_keys_pass(self, core_config):
        core_config.validate_security_settings()

    @override_settings(DEBUG=False, SECRET_KEY=STRONG_SECRET, JWT_SECRET_KEY='short_key_123')
    def test_short_jwt_secret_rejected(self, core_config):
        with pytest.raises(ImproperlyConfigured, match='at least 32 characters'):
            core_config.validate_security_settings()

    @override_settings(DEBUG=False, SECRET_KEY=STRONG_SECRET, JWT_SECRET_KEY=STRONG_SECRET)
    def test_jwt_secret_must_differ(self, core_config):
        with pytest.raises(ImproperlyConfigured, match='different from SECRET_KEY'):
            core_config.validate_security_settings()

    @override_settings(DEBUG=False, SECRET_KEY=STRONG_SECRET, JWT_SECRET_KEY='ab' * 20)
    def test_low_entropy_rejected(self, core_config):
        with pytest.raises(ImproperlyConfigured, match='insufficient entropy'):
            core_config.validate_security_settings()

    @override_settings(DEBUG=False)
    def test_development_defaults_rejected(self, core_config):
        with pytest.raises(ImproperlyConfigured, match='development default'):
            core_config.validate_security_settings()

    @override_settings(DEBUG=False, SECRET_KEY=STRONG_SECRET, JWT_SECRET_KEY='')
    def test_missing_jwt_secret(self, core_config):
        with pytest.raises(ImproperlyConfigured, match='JWT_SECRET_KEY must be set'):
            core_config.validate_security_settings()

    @override_settings(DEBUG=True, SECRET_KEY=STRONG_SECRET, JWT_SECRET_KEY='short_key_123')
    @patch('apps.core.apps.logger')
    def test_debug_only_warns(self, mock_logger, core_config):
        core_config.validate_security_settings()
        assert mock_logger.warning.called


class TestServingDetection:

    @pytest.mark.parametrize('argv,serving', [
        (['manage.py', 'runserver'], True),
        (['/usr/bin/gunicorn', 'config.wsgi'], True),
        (['manage.py', 'migrate'], False),
        (['pytest'], False),
    ])
    def test_is_serving(self, core_config, argv, serving):
        with patch('apps.core.apps.sys.argv', argv):
            assert core_config._is_serving() is serving

    def test_ready_skips_validation_outside_serving(self, core_config):
        with patch.object(core_config, 'validate_security_settings') as mock_validate:
            with patch('apps.core.apps.sys.argv', ['manage.py', 'migrate']):
                core_config.ready()
        mock_validate.assert_not_called()
