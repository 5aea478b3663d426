"""API middleware — CORS and security headers."""

from tx_manager.api.middleware.cors import setup_cors
from tx_manager.api.middleware.security import SecurityHeadersMiddleware

__all__ = ["SecurityHeadersMiddleware", "setup_cors"]
