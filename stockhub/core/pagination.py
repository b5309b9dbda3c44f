from django.core.paginator import Paginator

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


def _positive_int(raw, default, maximum=None):
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    if value < 1:
        return default
    if maximum is not None:
        value = min(value, maximum)
    return value


def paginate(request, queryset, serializer_class, default_limit=DEFAULT_PAGE_SIZE, context=None):
    """Serialize one page of `queryset` as {'results', 'count', 'next', 'previous', ...}"""
    page = _positive_int(request.query_params.get('page'), 1)
    limit = _positive_int(request.query_params.get('limit'), default_limit, MAX_PAGE_SIZE)

    paginator = Paginator(queryset, limit)
    page_obj = paginator.get_page(page)
    serializer = serializer_class(page_obj, many=True, context=context or {'request': request})

    return {
        'results': serializer.data,
        'count': paginator.count,
        'next': page_obj.next_page_number() if page_obj.has_next() else None,
        'previous': page_obj.previous_page_number() if page_obj.has_previous() else None,
        'page': page_obj.number,
        'page_size': limit,
        'total_pages': paginator.num_pages,
    }
