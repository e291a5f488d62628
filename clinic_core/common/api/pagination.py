from __future__ import annotations

from django.conf import settings
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class DefaultPagination(PageNumberPagination):
    page_size = getattr(settings, "API_PAGE_SIZE", 20)
    page_size_query_param = "page_size"
    max_page_size = 200


def paginate(request, queryset, serializer_class, *, paginator: PageNumberPagination | None = None) -> Response:
    """
    Shared pagination helper to enforce a stable contract:
      { count, next, previous, results }
    """
    p = paginator or DefaultPagination()
    context = {"request": request}
    page = p.paginate_queryset(queryset, request)
    if page is not None:
        ser = serializer_class(page, many=True, context=context)
        return p.get_paginated_response(ser.data)

    ser = serializer_class(queryset, many=True, context=context)
    return Response(ser.data)
