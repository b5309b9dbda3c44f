from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User, ActivityLog


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ['username', 'email', 'name', 'role', 'branch', 'branch_context', 'is_active', 'last_access']
    list_filter = ['role', 'is_active', 'is_staff', 'is_superuser', 'branch']
    search_fields = ['username', 'email', 'name']
    ordering = ['username']
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Profile', {'fields': ('name', 'phone', 'photo', 'position', 'notification_settings')}),
        ('Hierarchy', {'fields': ('role', 'branch', 'branch_context', 'region', 'district')}),
        ('Access', {'fields': ('last_access', 'access_count')}),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ('Hierarchy', {'fields': ('name', 'role', 'branch')}),
    )


@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ['user', 'branch', 'action', 'ip_address', 'created_at']
    list_filter = ['action', 'branch', 'created_at']
    search_fields = ['user__username', 'action']
    ordering = ['-created_at']
    readonly_fields = ['user', 'branch', 'action', 'details', 'ip_address', 'created_at']
