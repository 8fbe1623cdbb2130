"""Trusted caller identity.

Session validation happens upstream (the gateway in front of this service).
The gateway forwards the verified user id in a header; this middleware copies
it into ``request.state.auth`` for route handlers, which read it through
``get_current_user``.  Requests without the header carry no identity and are
rejected with 401 by any route that needs one.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from fitsync.config import Settings, get_settings
from fitsync.dependencies import AuthContext

logger = logging.getLogger("fitsync.auth")


class TrustedIdentityMiddleware(BaseHTTPMiddleware):
    """Populate request.state.auth from the gateway's identity header."""

    def __init__(self, app: Any, settings: Settings | None = None) -> None:
        super().__init__(app)
        self._header = (settings or get_settings()).trusted_user_header

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        user_id = (request.headers.get(self._header) or "").strip()
        request.state.auth = AuthContext(user_id=user_id) if user_id else None
        return await call_next(request)
