from typing import Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware


DEFAULT_SECURITY_HEADERS: Dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Stamp browser hardening headers on every response."""

    def __init__(self, app, headers: Optional[Dict[str, str]] = None, enabled: bool = True):
        super().__init__(app)
        self.headers = {**DEFAULT_SECURITY_HEADERS, **(headers or {})}
        self.enabled = enabled

    async def dispatch(self, request, call_next):
        response = await call_next(request)
        if self.enabled:
            for name, value in self.headers.items():
                response.headers.setdefault(name, value)
        return response
