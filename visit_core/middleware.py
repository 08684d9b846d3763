# visit_core/middleware.py

import uuid

from django.utils.deprecation import MiddlewareMixin

from .signals import set_request_context

REQUEST_ID_HEADER = "HTTP_X_REQUEST_ID"


class RequestContextMiddleware(MiddlewareMixin):
    """
    Tags each request with a request id, echoed in the X-Request-ID
    response header, error envelopes and rejection log lines.
    """

    def process_request(self, request):
        rid = (request.META.get(REQUEST_ID_HEADER) or "").strip()[:64] or uuid.uuid4().hex
        request.request_id = rid

        set_request_context(request_id=rid)
        return None

    def process_response(self, request, response):
        rid = getattr(request, "request_id", None)
        if rid:
            response["X-Request-ID"] = rid
        set_request_context()
        return response
