import django_filters
from django.db.models import Q

from .models import Item, StockMovement
from .stock_status import STATUS_CHOICES, filter_status


class ItemFilter(django_filters.FilterSet):
    search = django_filters.CharFilter(method='filter_search')
    category = django_filters.CharFilter(field_name='category', lookup_expr='iexact')
    status = django_filters.ChoiceFilter(choices=[(s, s) for s in STATUS_CHOICES], method='filter_status')

    class Meta:
        model = Item
        fields = ['search', 'category', 'status']

    def filter_search(self, queryset, name, value):
        return queryset.filter(
            Q(name__icontains=value) | Q(category__icontains=value) | Q(description__icontains=value)
        )

    def filter_status(self, queryset, name, value):
        return filter_status(queryset, value)


class StockMovementFilter(django_filters.FilterSet):
    date_from = django_filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    date_to = django_filters.DateFilter(field_name='created_at', lookup_expr='date__lte')

    class Meta:
        model = StockMovement
        fields = ['item', 'movement_type', 'date_from', 'date_to']
