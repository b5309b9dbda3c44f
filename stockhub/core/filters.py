import django_filters

from .models import ActivityLog


class ActivityLogFilter(django_filters.FilterSet):
    action = django_filters.CharFilter(field_name='action')
    user = django_filters.NumberFilter(field_name='user_id')
    date_from = django_filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    date_to = django_filters.DateFilter(field_name='created_at', lookup_expr='date__lte')

    class Meta:
        model = ActivityLog
        fields = ['action', 'user', 'date_from', 'date_to']
