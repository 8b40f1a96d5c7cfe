# req_core/common/middleware.py
from __future__ import annotations

from django.utils.deprecation import MiddlewareMixin

from req_core.common.api.exceptions import ensure_request_id


class RequestIdMiddleware(MiddlewareMixin):
    """
    Attaches request.request_id (honouring an inbound X-Request-Id)
    and echoes it on the response so error envelopes can be correlated.
    """

    HEADER = "HTTP_X_REQUEST_ID"

    def process_request(self, request):
        inbound = (request.META.get(self.HEADER) or "").strip()
        if inbound:
            request.request_id = inbound[:64]
        ensure_request_id(request)

    def process_response(self, request, response):
        rid = getattr(request, "request_id", None)
        if rid:
            response["X-Request-Id"] = rid
        return response
