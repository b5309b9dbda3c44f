from django.conf import settings
from django.db import models


def default_notification_settings():
    return {'email': True, 'sms': False, 'whatsapp': False}


class Region(models.Model):
    """Top level of the branch hierarchy"""
    name = models.CharField(max_length=200, unique=True)
    description = models.TextField(blank=True, null=True)
    regional_manager = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='managed_regions'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'regions'
        ordering = ['name']


class District(models.Model):
    """Districts group branches inside a region"""
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True, null=True)
    region = models.ForeignKey(Region, on_delete=models.CASCADE, related_name='districts')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'districts'
        ordering = ['name']
        unique_together = [['region', 'name']]


class Branch(models.Model):
    """Retail branches"""
    ALERT_FREQUENCY_CHOICES = [
        ('daily', 'Daily'),
        ('weekly', 'Weekly'),
        ('monthly', 'Monthly'),
    ]

    name = models.CharField(max_length=200)
    description = models.TextField(blank=True, null=True)
    # City name, used for the weather lookup
    location = models.CharField(max_length=200, blank=True, null=True)
    region = models.ForeignKey(Region, on_delete=models.PROTECT, related_name='branches')
    district = models.ForeignKey(District, on_delete=models.PROTECT, related_name='branches')
    notification_settings = models.JSONField(default=default_notification_settings, blank=True)
    alert_frequency = models.CharField(max_length=20, choices=ALERT_FREQUENCY_CHOICES, default='weekly')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    def notifications_enabled(self, channel):
        """Whether the given channel (email/sms/whatsapp) is switched on"""
        settings_ = self.notification_settings or {}
        return bool(settings_.get(channel, default_notification_settings().get(channel, False)))

    class Meta:
        db_table = 'branches'
        ordering = ['name']
        indexes = [
            models.Index(fields=['region'], name='idx_branch_region'),
            models.Index(fields=['district'], name='idx_branch_district'),
        ]
