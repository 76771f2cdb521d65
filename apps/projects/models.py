"""
Project models.
"""
from django.db import models
from apps.core.models import BaseModel


class ProjectManager(models.Manager):
    """Manager for Project queries."""

    def by_key(self, key):
        """Find project by its short key (e.g. 'ECM')."""
        return self.filter(key=key.upper()).first()

    def active(self):
        """Return projects that are not archived."""
        return self.exclude(status='archived')


class Project(BaseModel):
    """
    A QA project that users can be granted a Project Role in.
    """

    STATUS_CHOICES = [
        ('planning', 'Planning'),
        ('active', 'Active'),
        ('archived', 'Archived'),
    ]

    key = models.CharField(
        max_length=10,
        unique=True,
        db_index=True,
        help_text="Short project key shown in the UI (e.g., 'ECM')"
    )
    name = models.CharField(
        max_length=255,
        help_text="Project name"
    )
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default='active',
        db_index=True,
        help_text="Project lifecycle status"
    )
    owner_name = models.CharField(
        max_length=255,
        blank=True,
        help_text="Display name of the project owner"
    )

    objects = ProjectManager()

    class Meta:
        db_table = 'projects'
        ordering = ['key']

    def __str__(self):
        return f"{self.key} - {self.name}"

    def save(self, *args, **kwargs):
        self.key = self.key.upper()
        super().save(*args, **kwargs)
