from django.contrib.auth.models import AbstractUser
from django.db import models

from .roles import ROLE_CHOICES, STAFF


def default_user_notification_settings():
    return {'email': True, 'whatsapp': False, 'eventReminders': True}


class User(AbstractUser):
    """User account and profile in one row"""
    name = models.CharField(max_length=200, blank=True)
    phone = models.CharField(max_length=20, blank=True, null=True)
    photo = models.ImageField(upload_to='profile-photos/', blank=True, null=True)
    position = models.CharField(max_length=100, blank=True, null=True)
    role = models.CharField(max_length=30, choices=ROLE_CHOICES, default=STAFF)
    # Home branch
    branch = models.ForeignKey(
        'locations.Branch', on_delete=models.SET_NULL, null=True, blank=True, related_name='members'
    )
    # Branch a multi-branch manager is currently working against
    branch_context = models.ForeignKey(
        'locations.Branch', on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    region = models.ForeignKey(
        'locations.Region', on_delete=models.SET_NULL, null=True, blank=True, related_name='members'
    )
    district = models.ForeignKey(
        'locations.District', on_delete=models.SET_NULL, null=True, blank=True, related_name='members'
    )
    notification_settings = models.JSONField(default=default_user_notification_settings, blank=True)
    last_access = models.DateTimeField(null=True, blank=True)
    access_count = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def display_name(self):
        return self.name or self.get_full_name() or self.username

    class Meta:
        db_table = 'users'
        indexes = [
            models.Index(fields=['role'], name='idx_user_role'),
            models.Index(fields=['branch'], name='idx_user_branch'),
        ]


class ActivityLog(models.Model):
    """Activity log for user and inventory actions"""
    ACTION_CHOICES = [
        ('login', 'Login'),
        ('logout', 'Logout'),
        ('profile_updated', 'Profile Updated'),
        ('branch_context_changed', 'Branch Context Changed'),
        ('user_created', 'User Created'),
        ('user_updated', 'User Updated'),
        ('user_deleted', 'User Deleted'),
        ('item_created', 'Item Created'),
        ('item_updated', 'Item Updated'),
        ('item_deleted', 'Item Deleted'),
        ('stock_in', 'Stock In'),
        ('stock_out', 'Stock Out'),
        ('event_created', 'Event Created'),
        ('event_updated', 'Event Updated'),
        ('event_deleted', 'Event Deleted'),
        ('branch_settings_updated', 'Branch Settings Updated'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='activity_logs')
    branch = models.ForeignKey(
        'locations.Branch', on_delete=models.SET_NULL, null=True, blank=True, related_name='activity_logs'
    )
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    details = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'activity_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='idx_activity_created'),
            models.Index(fields=['action'], name='idx_activity_action'),
            models.Index(fields=['branch', '-created_at'], name='idx_activity_branch_created'),
        ]
