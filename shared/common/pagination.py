# shared/common/pagination.py
"""
Pagination for list endpoints (appointments, packages, payments).
"""

from typing import Any, Dict

from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class StandardPagination(PageNumberPagination):
    """
    Page number pagination; ``page_size`` defaults to REST_FRAMEWORK's
    PAGE_SIZE and can be raised per request up to ``max_page_size``.
    """

    page_size_query_param = 'page_size'
    max_page_size = 200

    def get_paginated_response(self, data: Any) -> Response:
        return Response({
            'success': True,
            'count': self.page.paginator.count,
            'total_pages': self.page.paginator.num_pages,
            'current_page': self.page.number,
            'page_size': self.get_page_size(self.request),
            'next': self.get_next_link(),
            'previous': self.get_previous_link(),
            'results': data,
        })

    def get_paginated_response_schema(self, schema: Dict) -> Dict:
        return {
            'type': 'object',
            'required': ['count', 'results'],
            'properties': {
                'success': {'type': 'boolean', 'example': True},
                'count': {'type': 'integer', 'example': 42},
                'total_pages': {'type': 'integer', 'example': 3},
                'current_page': {'type': 'integer', 'example': 1},
                'page_size': {'type': 'integer', 'example': 20},
                'next': {'type': 'string', 'format': 'uri', 'nullable': True},
                'previous': {'type': 'string', 'format': 'uri', 'nullable': True},
                'results': schema,
            }
        }
