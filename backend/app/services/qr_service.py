"""Shareable link construction and QR encoding."""

import segno
from starlette.requests import Request

from app.config import settings

SHARE_PATH = "/share/"


def get_base_url(request: Request | None = None) -> str:
    """Frontend base URL, without a trailing slash.

    Priority: FRONTEND_URL, RAILWAY_PUBLIC_DOMAIN (always https), the
    request host in production, then localhost.
    """
    if settings.frontend_url:
        return settings.frontend_url.strip().rstrip("/")

    if settings.railway_public_domain:
        domain = settings.railway_public_domain.strip()
        url = domain if domain.startswith("http") else f"https://{domain}"
        return url.rstrip("/")

    if request is not None and settings.is_production:
        host = request.headers.get("host")
        if host:
            forwarded_proto = request.headers.get("x-forwarded-proto")
            secure = request.url.scheme == "https" or forwarded_proto == "https"
            return f"{'https' if secure else 'http'}://{host}".rstrip("/")

    return "http://localhost:3000"


def build_shareable_url(token: str, request: Request | None = None) -> str:
    return f"{get_base_url(request)}{SHARE_PATH}{token}"


def encode_qr_data_url(url: str) -> str:
    """PNG QR code for `url` as a data: URL."""
    qr = segno.make_qr(url, error="m")
    return qr.png_data_uri(scale=settings.qr_scale, border=settings.qr_border)
