"""
Correlation ID Middleware

Tags every request with a correlation ID that the JSON log formatter picks up,
so a transition can be followed from the API call through the outbox dispatch.
"""
import re
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from ...utils.logger import set_correlation_id
from ...utils.idgen import generate_correlation_id

CORRELATION_HEADER = "X-Correlation-Id"

# Caller ids end up in every log line; anything else is replaced
_ACCEPTED_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def accepted_correlation_id(value: Optional[str]) -> Optional[str]:
    if value and _ACCEPTED_ID.match(value):
        return value
    return None


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Reuses a well-formed caller header or generates one, and echoes it back"""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = (
            accepted_correlation_id(request.headers.get(CORRELATION_HEADER))
            or generate_correlation_id()
        )
        set_correlation_id(correlation_id)

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response
