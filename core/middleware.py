"""Request tracing middleware."""

from fastapi import Request

from core.utils import ensure_trace_id

TRACE_HEADER = "X-Trace-ID"


async def trace_id_middleware(request: Request, call_next):
    """Propagate the caller's trace ID (or generate one) into state and response headers."""
    incoming = request.headers.get(TRACE_HEADER)
    if incoming:
        request.state.trace_id = incoming
    trace_id = ensure_trace_id(request)
    response = await call_next(request)
    response.headers[TRACE_HEADER] = trace_id
    return response
