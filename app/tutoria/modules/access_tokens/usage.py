"""
Usage tracking for capability tokens.

A successful validation bumps `usage_count` and advances `last_used_at` with a
single atomic UPDATE. Concurrent validations of the same token therefore never
lose increments, and `last_used_at` only moves forward even when a slower
request commits after a faster one.

Tracking is best effort: a failure is logged and never fails the validation.
"""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import case, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.tutoria.modules.access_tokens.models import CapabilityToken

logger = logging.getLogger(__name__)


def usage_statement(token_id: int, now: datetime):
    t = CapabilityToken
    return (
        update(t)
        .where(t.id == token_id)
        .values(
            usage_count=t.usage_count + 1,
            last_used_at=case(
                ((t.last_used_at.is_(None)) | (t.last_used_at < now), now),
                else_=t.last_used_at,
            ),
        )
        .execution_options(synchronize_session=False)
    )


def record_usage(s: Session, token_id: int, now: datetime) -> bool:
    """
    Apply one usage to the token. Returns False (after logging) when the write fails.
    The caller owns the surrounding transaction and commits it.
    """
    try:
        with s.begin_nested():
            s.execute(usage_statement(token_id, now))
    except SQLAlchemyError as e:
        logger.warning("Usage tracking failed for token %s: %s", token_id, e)
        return False
    return True
