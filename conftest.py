"""
Pytest configuration and fixtures.
"""
import pytest
from django.conf import settings
import django
from django.core.management import call_command


def pytest_configure(config):
    """Configure Django settings for tests."""
    settings.DATABASES['default'] = {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
        'ATOMIC_REQUESTS': False,
    }
    settings.SECURE_SSL_REDIRECT = False
    settings.READ_RETRY_BACKOFF_SECONDS = 0
    settings.PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']
    django.setup()


@pytest.fixture(scope='session')
def django_db_setup(django_db_setup, django_db_blocker):
    """Set up test database with migrations."""
    with django_db_blocker.unblock():
        call_command('migrate', '--run-syncdb', verbosity=0)


@pytest.fixture
def api_client():
    """Return DRF API client."""
    from rest_framework.test import APIClient
    return APIClient()


@pytest.fixture
def make_user(db):
    """Factory for users with a given Global Role (active by default)."""
    from apps.rbac.models import User

    counter = {'n': 0}

    def _make_user(global_role='viewer', status='active', email=None, password=None, **extra):
        counter['n'] += 1
        user = User(
            email=email or f"{global_role}{counter['n']}@haida.com",
            name=extra.pop('name', f"{global_role.replace('_', ' ').title()} {counter['n']}"),
            global_role=global_role,
            status=status,
            **extra
        )
        if password:
            user.set_password(password)
        user.save()
        return user

    return _make_user


@pytest.fixture
def admin_user(make_user):
    return make_user('admin', email='carlos.admin@haida.com', name='Carlos Rodriguez')


@pytest.fixture
def manager_user(make_user):
    return make_user('manager', email='ana.manager@haida.com', name='Ana Garcia')


@pytest.fixture
def qa_user(make_user):
    return make_user('qa_engineer', email='luis.qa@haida.com', name='Luis Torres')


@pytest.fixture
def tester_user(make_user):
    return make_user('tester', email='maria.tester@haida.com', name='Maria Gonzalez')


@pytest.fixture
def developer_user(make_user):
    return make_user('developer', email='pedro.dev@haida.com', name='Pedro Martinez')


@pytest.fixture
def viewer_user(make_user):
    return make_user('viewer', email='sofia.viewer@haida.com', name='Sofia Lopez')


@pytest.fixture
def project(db):
    """Create a test project."""
    from apps.projects.models import Project
    return Project.objects.create(key='ECM', name='E-commerce Revamp', owner_name='Carlos Rodriguez')


@pytest.fixture
def other_project(db):
    """Create another test project."""
    from apps.projects.models import Project
    return Project.objects.create(key='MOB', name='Mobile App Launch', owner_name='Ana Garcia')


@pytest.fixture
def membership(db):
    """Factory for project memberships."""
    from apps.rbac.models import ProjectMembership

    def _membership(user, project, role):
        return ProjectMembership.objects.create(user=user, project=project, role=role)

    return _membership


@pytest.fixture
def client_for(api_client):
    """Return an API client authenticated as the given user."""
    def _client_for(user):
        api_client.force_authenticate(user=user)
        return api_client
    return _client_for
