"""
Django admin configuration for projects.
"""
from django.contrib import admin
from .models import Project


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    list_display = ['key', 'name', 'status', 'owner_name', 'created_at']
    list_filter = ['status']
    search_fields = ['key', 'name']
    readonly_fields = ['created_at', 'updated_at']
