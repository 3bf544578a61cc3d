"""
Pagination for chat API.

The service layer pages conversations and messages itself (it needs the
page to mark messages read and to bump access counters), so these classes
only parse page-number parameters and render a service Page.

Query parameters:
    page: 1-based page number (default 1)
    page_size: items per page (bounded by max_page_size)

Response shape:
    {"count": int, "page": int, "page_size": int, "has_next": bool, "results": [...]}
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework.response import Response

from chat.constants import CONVERSATION_CONFIG, MESSAGE_CONFIG

if TYPE_CHECKING:
    from rest_framework.request import Request

    from chat.services import Page


class ServicePagePagination:
    """Page-number parameters in, service Page out."""

    page_query_param = "page"
    page_size_query_param = "page_size"
    page_size = 20
    max_page_size = 100

    def _positive_int(self, raw, default: int) -> int:
        try:
            value = int(raw)
        except (TypeError, ValueError):
            return default
        return value if value > 0 else default

    def get_page_params(self, request: Request) -> tuple[int, int]:
        page = self._positive_int(request.query_params.get(self.page_query_param), 1)
        page_size = self._positive_int(
            request.query_params.get(self.page_size_query_param), self.page_size
        )
        return page, min(page_size, self.max_page_size)

    def get_paginated_response(self, page: Page, data: list) -> Response:
        return Response(
            {
                "count": page.total,
                "page": page.page,
                "page_size": page.page_size,
                "has_next": page.has_next,
                "results": data,
            }
        )


class ConversationPagination(ServicePagePagination):
    """Conversation lists, most recently active first."""

    page_size = CONVERSATION_CONFIG.DEFAULT_PAGE_SIZE
    max_page_size = CONVERSATION_CONFIG.MAX_PAGE_SIZE


class MessagePagination(ServicePagePagination):
    """
    Message lists.

    Page 1 is the most recent page; items within a page are oldest first.
    """

    page_size = MESSAGE_CONFIG.DEFAULT_PAGE_SIZE
    max_page_size = MESSAGE_CONFIG.MAX_PAGE_SIZE
