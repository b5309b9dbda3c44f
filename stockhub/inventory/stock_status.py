"""
Stock status classification.

critical: quantity <= threshold / 2
low:      threshold / 2 < quantity <= threshold
adequate: quantity > threshold

The rule exists twice, once for Python values and once as an ORM expression
for querysets. Both compare 2 * quantity against the threshold so no float
rounding is involved and they always agree.
"""
from django.db.models import Case, CharField, F, IntegerField, Value, When
from django.db.models.functions import Coalesce

CRITICAL = 'critical'
LOW = 'low'
ADEQUATE = 'adequate'

STATUS_CHOICES = (CRITICAL, LOW, ADEQUATE)

# Higher is worse
SEVERITY = {ADEQUATE: 0, LOW: 1, CRITICAL: 2}


def classify_stock(quantity: int, threshold: int) -> str:
    if 2 * quantity <= threshold:
        return CRITICAL
    if quantity <= threshold:
        return LOW
    return ADEQUATE


def worsened(before: str, after: str) -> bool:
    return SEVERITY[after] > SEVERITY[before]


def stock_status_expression(quantity='stock__current_quantity', threshold='threshold_level'):
    """Case expression yielding the status of each row; a missing stock row counts as 0"""
    current = Coalesce(F(quantity), Value(0), output_field=IntegerField())
    return Case(
        When(**{f'{threshold}__gte': current * 2}, then=Value(CRITICAL)),
        When(**{f'{threshold}__gte': current}, then=Value(LOW)),
        default=Value(ADEQUATE),
        output_field=CharField(),
    )


def annotate_status(queryset, quantity='stock__current_quantity', threshold='threshold_level'):
    return queryset.annotate(stock_status=stock_status_expression(quantity, threshold))


def filter_status(queryset, statuses, quantity='stock__current_quantity', threshold='threshold_level'):
    """Rows whose status is one of `statuses` (a string or an iterable)"""
    if isinstance(statuses, str):
        statuses = [statuses]
    return annotate_status(queryset, quantity, threshold).filter(stock_status__in=list(statuses))


def needs_attention(queryset, quantity='stock__current_quantity', threshold='threshold_level'):
    """Low and critical rows, worst first"""
    return filter_status(queryset, [CRITICAL, LOW], quantity, threshold).order_by(quantity, 'name')
