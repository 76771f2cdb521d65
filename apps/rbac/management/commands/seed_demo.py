"""
Management command to seed demo projects and users.

Creates:
- Three demo projects (ECM, MOB, API)
- Seven demo users, one per Global Role plus an inactive and a pending user
- Their project memberships

Running it again updates the existing records in place.
This is useful for testing, demos, and development.
"""
from django.core.management.base import BaseCommand
from django.db import transaction

from apps.projects.models import Project
from apps.rbac.models import User, ProjectMembership


class Command(BaseCommand):
    help = 'Seed demo projects, users and project memberships'

    DEMO_PROJECTS = [
        {'key': 'ECM', 'name': 'E-commerce Revamp', 'owner_name': 'Carlos Rodríguez', 'status': 'active'},
        {'key': 'MOB', 'name': 'Mobile App Launch', 'owner_name': 'Ana García', 'status': 'active'},
        {'key': 'API', 'name': 'API Gateway Redesign', 'owner_name': 'Luis Torres', 'status': 'planning'},
    ]

    DEMO_USERS = [
        {
            'email': 'carlos.admin@haida.com',
            'password': 'admin123',
            'name': 'Carlos Rodríguez',
            'global_role': 'admin',
            'status': 'active',
            'sso_source': 'microsoft',
            'projects': {'ECM': 'owner', 'MOB': 'maintainer'},
        },
        {
            'email': 'ana.manager@haida.com',
            'password': 'manager123',
            'name': 'Ana García',
            'global_role': 'manager',
            'status': 'active',
            'sso_source': 'microsoft',
            'projects': {'ECM': 'maintainer', 'API': 'owner'},
        },
        {
            'email': 'luis.qa@haida.com',
            'password': 'qa123',
            'name': 'Luis Torres',
            'global_role': 'qa_engineer',
            'status': 'active',
            'sso_source': None,
            'projects': {'ECM': 'contributor', 'MOB': 'contributor'},
        },
        {
            'email': 'maria.tester@haida.com',
            'password': 'tester123',
            'name': 'María González',
            'global_role': 'tester',
            'status': 'active',
            'sso_source': None,
            'projects': {'MOB': 'contributor'},
        },
        {
            'email': 'pedro.dev@haida.com',
            'password': 'dev123',
            'name': 'Pedro Martínez',
            'global_role': 'developer',
            'status': 'active',
            'sso_source': 'google',
            'projects': {'ECM': 'viewer'},
        },
        {
            'email': 'sofia.viewer@haida.com',
            'password': 'viewer123',
            'name': 'Sofía López',
            'global_role': 'viewer',
            'status': 'inactive',
            'sso_source': None,
            'projects': {},
        },
        {
            'email': 'juan.pending@haida.com',
            'password': None,
            'name': 'Juan Ramírez',
            'global_role': 'tester',
            'status': 'pending',
            'sso_source': None,
            'projects': {},
        },
    ]

    def add_arguments(self, parser):
        parser.add_argument(
            '--without-passwords',
            action='store_true',
            help='Do not set demo passwords (users can then only sign in via SSO)',
        )

    @transaction.atomic
    def handle(self, *args, **options):
        """Create or update demo projects and users."""
        self.stdout.write('=' * 70)
        self.stdout.write('Seeding HAIDA demo data')
        self.stdout.write('=' * 70)

        self.stdout.write('\n1. Projects...')
        projects = {}
        for data in self.DEMO_PROJECTS:
            project, created = Project.objects.update_or_create(
                key=data['key'],
                defaults={
                    'name': data['name'],
                    'owner_name': data['owner_name'],
                    'status': data['status'],
                }
            )
            projects[project.key] = project
            marker = '✓ Created' if created else '↻ Updated'
            self.stdout.write(f"   {marker} {project}")

        self.stdout.write('\n2. Users and memberships...')
        for data in self.DEMO_USERS:
            user, created = User.objects.update_or_create(
                email=data['email'],
                defaults={
                    'name': data['name'],
                    'avatar': ''.join(part[0] for part in data['name'].split()[:2]).upper(),
                    'global_role': data['global_role'],
                    'status': data['status'],
                    'sso_source': data['sso_source'],
                }
            )
            if data['password'] and not options['without_passwords']:
                user.set_password(data['password'])
                user.save(update_fields=['password_hash', 'updated_at'])

            ProjectMembership.objects.filter(user=user).exclude(
                project__key__in=data['projects'].keys()
            ).delete()
            for key, role in data['projects'].items():
                ProjectMembership.objects.update_or_create(
                    user=user,
                    project=projects[key],
                    defaults={'role': role}
                )

            marker = '✓ Created' if created else '↻ Updated'
            roles = ', '.join(f"{key}:{role}" for key, role in data['projects'].items()) or 'no projects'
            self.stdout.write(
                f"   {marker} {user.email} [{user.global_role}, {user.status}] ({roles})"
            )

        self.stdout.write(self.style.SUCCESS('\n✓ Demo data ready'))
