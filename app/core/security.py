"""
Security headers on every response, and client address resolution for rate limiting.
"""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response


def client_address(request: Request, trust_proxy_headers: bool = True) -> str:
    """
    First X-Forwarded-For hop, then X-Real-IP, then the socket peer.
    The proxy headers are client-controlled unless a trusted proxy sets them, so they are
    skipped when trust_proxy_headers is false.
    """
    if not trust_proxy_headers:
        return _peer(request)
    forwarded = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop
    real_ip = request.headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip
    return _peer(request)


def _peer(request: Request) -> str:
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
