# app/identity.py

from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.config import CALLER_ID_HEADER


class CallerIdentityMiddleware(BaseHTTPMiddleware):
    """
    Attach the caller identity to `request.state.user_id`.

    The identity is an opaque token forwarded by the upstream auth layer in a
    header; it is not verified here. Requests without it are anonymous.
    """

    def __init__(self, app, header_name: str = CALLER_ID_HEADER):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next):
        request.state.user_id = request.headers.get(self.header_name) or None
        return await call_next(request)


def caller_from_request(request: Request) -> Optional[str]:
    return getattr(request.state, "user_id", None)
