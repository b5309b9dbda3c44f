import django_filters

from .models import CalendarEvent


class CalendarEventFilter(django_filters.FilterSet):
    start = django_filters.DateFilter(field_name='event_date', lookup_expr='gte')
    end = django_filters.DateFilter(field_name='event_date', lookup_expr='lte')

    class Meta:
        model = CalendarEvent
        fields = ['start', 'end', 'event_type']
