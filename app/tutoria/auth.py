from __future__ import annotations

import uuid

from flask import current_app, g, request, session

from app.tutoria.errors import AuthenticationError
from app.tutoria.principal import resolve_principal

# Claims are placed in the signed session by the external credential layer.
CLAIMS_SESSION_KEY = "claims"


def load_current_principal() -> None:
    """
    Resolves g.principal from the verified claims in the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.principal = None
    if request.path.startswith(("/health", "/healthz", "/api/widget/")):
        return

    claims = session.get(CLAIMS_SESSION_KEY)
    if not claims:
        return

    try:
        g.principal = resolve_principal(claims)
    except AuthenticationError as e:
        current_app.logger.warning(
            "Rejected session claims (request_id=%s): %s",
            g.request_id,
            e.message,
        )
        session.pop(CLAIMS_SESSION_KEY, None)
