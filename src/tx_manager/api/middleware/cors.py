"""CORS middleware configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi.middleware.cors import CORSMiddleware

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fastapi import FastAPI

_ALLOWED_METHODS = ["GET", "POST", "DELETE", "OPTIONS"]
_ALLOWED_HEADERS = ["Content-Type", "Cache-Control"]
_MAX_AGE = 86400


def setup_cors(app: FastAPI, allowed_origins: Sequence[str]) -> None:
    """Allow the configured origins (``*`` allows any) to call the API.

    Credentials are only allowed when origins are listed explicitly.
    """
    origins = list(allowed_origins) or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=_ALLOWED_METHODS,
        allow_headers=_ALLOWED_HEADERS,
        max_age=_MAX_AGE,
    )
