# Generated manually
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import stockhub.events.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('locations', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='CalendarEvent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=200)),
                ('description', models.TextField(blank=True, null=True)),
                ('event_date', models.DateField()),
                ('event_type', models.CharField(choices=[('reminder', 'Reminder'), ('meeting', 'Meeting'), ('delivery', 'Delivery'), ('inventory', 'Inventory'), ('other', 'Other')], default='reminder', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('branch', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='events', to='locations.branch')),
                ('created_by', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='calendar_events', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'calendar_events',
                'ordering': ['event_date', 'id'],
                'indexes': [
                    models.Index(fields=['branch', 'event_date'], name='idx_event_branch_date'),
                ],
            },
        ),
        migrations.CreateModel(
            name='EventAlert',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('alert_date', models.DateField()),
                ('alert_time', models.TimeField(default=stockhub.events.models.default_alert_time)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('sent', 'Sent'), ('failed', 'Failed')], default='pending', max_length=20)),
                ('sent_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('branch', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='event_alerts', to='locations.branch')),
                ('event', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='alerts', to='events.calendarevent')),
            ],
            options={
                'db_table': 'event_alerts',
                'ordering': ['alert_date', 'alert_time'],
                'indexes': [
                    models.Index(fields=['status', 'alert_date'], name='idx_event_alert_due'),
                ],
            },
        ),
    ]
