from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sqlalchemy import Select
    from sqlalchemy.orm import Session

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def utcnow() -> datetime:
    """Naive UTC timestamp (all DateTime columns are timezone=False)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_int(raw: str | None) -> int | None:
    if raw is None:
        return None
    raw = str(raw).strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def clean_text(raw: Any, field: str) -> str | None:
    """Strip a client-supplied text field. None stays None; blank becomes None; non-strings are rejected."""
    if raw is None:
        return None
    if not isinstance(raw, str):
        from app.tutoria.errors import InvalidRequest

        raise InvalidRequest(f"{field} must be a string.")
    return raw.strip() or None


def parse_bool(raw: Any) -> bool | None:
    """Parse a query-string or JSON boolean. Returns None when absent or unrecognised."""
    if raw is None:
        return None
    if isinstance(raw, bool):
        return raw
    v = str(raw).strip().lower()
    if v in ("1", "true", "yes", "on"):
        return True
    if v in ("0", "false", "no", "off"):
        return False
    return None


def clamp_page(page: int | None, size: int | None) -> tuple[int, int]:
    page = page if page and page >= 1 else 1
    if not size or size < 1:
        size = DEFAULT_PAGE_SIZE
    return page, min(size, MAX_PAGE_SIZE)


def paginate(s: "Session", stmt: "Select", *, page: int | None, size: int | None) -> tuple[list, dict]:
    """
    Run a SELECT with offset pagination.
    Returns (rows, meta) where meta carries total/page/size/pages.
    """
    from sqlalchemy import func, select

    page, size = clamp_page(page, size)
    total = s.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar_one()
    rows = list(s.execute(stmt.offset((page - 1) * size).limit(size)).scalars().all())
    meta = {
        "total": total,
        "page": page,
        "size": size,
        "pages": math.ceil(total / size) if total else 0,
    }
    return rows, meta


def iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def page_args(args: Any) -> tuple[int | None, int | None]:
    """page / size (or pageSize) from a query-string mapping."""
    page = parse_int(args.get("page"))
    size = parse_int(args.get("size") or args.get("pageSize"))
    return page, size


def page_response(items: list, meta: dict) -> dict:
    return {"items": items, **meta}


def json_payload() -> dict:
    """The JSON object body of the current request ({} when absent)."""
    from flask import request

    from app.tutoria.errors import InvalidRequest

    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise InvalidRequest("Request body must be a JSON object.")
    return payload
