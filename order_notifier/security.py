"""
Security headers added to every response.
"""

from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Sets Content-Security-Policy, X-Content-Type-Options and X-Frame-Options,
    and strips X-Powered-By if anything downstream added it.
    """

    def __init__(self, app: ASGIApp, content_security_policy: str):
        super().__init__(app)
        self.content_security_policy = content_security_policy

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers["Content-Security-Policy"] = self.content_security_policy
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if "x-powered-by" in response.headers:
            del response.headers["x-powered-by"]
        return response
