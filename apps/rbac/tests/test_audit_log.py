"""
Tests for the append-only audit trail and AuditLogService queries.
"""
import uuid
import pytest
from unittest.mock import patch, Mock
from django.test import override_settings

from apps.core.exceptions import ValidationError
from apps.rbac.models import AuditLog, AuditLogImmutableError
from apps.rbac.services import AuditLogService


@pytest.mark.django_db
class TestLogAction:

    def test_records_actor_and_request_context(self, admin_user, tester_user):
        request = Mock()
        request.META = {
            'HTTP_X_FORWARDED_FOR': '10.0.0.7, 172.16.0.1',
            'HTTP_USER_AGENT': 'pytest',
        }
        request.request_id = 'req-123'

        entry = AuditLog.log_action(
            user_id=tester_user.id,
            action='role_changed',
            resource='users',
            details='Changed role from tester to viewer',
            actor=admin_user,
            request=request,
        )

        assert entry.actor_id == admin_user.id
        assert entry.actor_email == admin_user.email
        assert entry.ip_address == '10.0.0.7'
        assert entry.user_agent == 'pytest'
        assert entry.request_id == 'req-123'
        assert entry.metadata == {}

    def test_malformed_forwarded_ip_falls_back_to_remote_addr(self, admin_user, tester_user):
        request = Mock()
        request.META = {
            'HTTP_X_FORWARDED_FOR': 'not-an-ip, 10.0.0.1',
            'REMOTE_ADDR': '192.168.1.20',
        }
        request.request_id = 'r' * 200

        entry = AuditLog.log_action(
            user_id=tester_user.id, action='role_changed', resource='users',
            actor=admin_user, request=request,
        )

        assert entry is not None
        assert entry.ip_address == '192.168.1.20'
        assert entry.request_id == 'r' * 64

    def test_no_valid_address_stores_null(self, tester_user):
        request = Mock()
        request.META = {'HTTP_X_FORWARDED_FOR': 'garbage', 'REMOTE_ADDR': ''}
        request.request_id = None

        entry = AuditLog.log_action(
            user_id=tester_user.id, action='role_changed', resource='users', request=request
        )

        assert entry.ip_address is None
        assert entry.request_id == ''

    def test_system_entry_has_no_actor(self, tester_user):
        entry = AuditLog.log_action(user_id=tester_user.id, action='user_activated', resource='users')
        assert entry.actor_id is None
        assert entry.actor_email == ''

    @patch('apps.rbac.models.logger')
    def test_failure_returns_none(self, mock_logger, tester_user):
        with patch.object(AuditLog.objects, 'create', side_effect=RuntimeError('disk full')):
            entry = AuditLog.log_action(user_id=tester_user.id, action='role_changed', resource='users')

        assert entry is None
        mock_logger.error.assert_called_once()
        assert 'Failed to create audit log' in mock_logger.error.call_args[0][0]


@pytest.mark.django_db
class TestImmutability:

    @pytest.fixture
    def entry(self, tester_user):
        return AuditLog.log_action(user_id=tester_user.id, action='user_invited', resource='users')

    def test_entry_cannot_be_modified(self, entry):
        entry.details = 'rewritten'
        with pytest.raises(AuditLogImmutableError):
            entry.save()

    def test_entry_cannot_be_deleted(self, entry):
        with pytest.raises(AuditLogImmutableError):
            entry.delete()

    def test_queryset_update_refused(self, entry):
        with pytest.raises(AuditLogImmutableError):
            AuditLog.objects.filter(id=entry.id).update(details='rewritten')

    def test_queryset_delete_refused(self, entry):
        with pytest.raises(AuditLogImmutableError):
            AuditLog.objects.all().delete()
        assert AuditLog.objects.filter(id=entry.id).exists()


@pytest.mark.django_db
class TestQueryByUser:

    def _log(self, user_id, count):
        for i in range(count):
            AuditLog.log_action(user_id=user_id, action=f'action_{i}', resource='users')

    def test_newest_first_with_default_limit(self, tester_user):
        self._log(tester_user.id, 12)

        entries = AuditLogService.query_by_user(tester_user.id)

        assert len(entries) == AuditLogService.DEFAULT_LIMIT
        assert entries[0].action == 'action_11'
        assert entries[-1].action == 'action_2'

    def test_limit_five_is_newest_first(self, tester_user):
        self._log(tester_user.id, 8)

        entries = AuditLogService.query_by_user(tester_user.id, limit=5)

        assert len(entries) == 5
        assert [e.action for e in entries] == [f'action_{i}' for i in range(7, 2, -1)]
        assert all(a.timestamp >= b.timestamp for a, b in zip(entries, entries[1:]))

    def test_only_subject_entries(self, tester_user, viewer_user):
        self._log(tester_user.id, 2)
        self._log(viewer_user.id, 3)

        entries = AuditLogService.query_by_user(viewer_user.id, limit=50)

        assert len(entries) == 3
        assert {e.user_id for e in entries} == {viewer_user.id}

    def test_unknown_user_has_empty_history(self):
        assert AuditLogService.query_by_user(uuid.uuid4()) == []

    @pytest.mark.parametrize('limit', [0, -1, 101, 'ten'])
    def test_limit_out_of_range(self, tester_user, limit):
        with pytest.raises(ValidationError):
            AuditLogService.query_by_user(tester_user.id, limit=limit)

    @override_settings(AUDIT_LOG_MAX_LIMIT=5)
    def test_limit_ceiling_is_configurable(self, tester_user):
        with pytest.raises(ValidationError):
            AuditLogService.query_by_user(tester_user.id, limit=6)
        assert AuditLogService.query_by_user(tester_user.id, limit=5) == []
