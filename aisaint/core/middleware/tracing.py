from starlette.middleware.base import BaseHTTPMiddleware

from aisaint.core.tracing import start_span
from aisaint.core.logging import get_request_id


class TracingMiddleware(BaseHTTPMiddleware):
    """Wrap each HTTP request in a span when tracing is enabled."""

    async def dispatch(self, request, call_next):
        request_id = getattr(request.state, "request_id", None) or get_request_id()
        with start_span(
            "http.request",
            {
                "http.method": request.method,
                "http.target": request.url.path,
                "request_id": request_id,
            },
        ) as span:
            response = await call_next(request)
            if span is not None:
                span.set_attribute("http.status_code", response.status_code)
            return response
