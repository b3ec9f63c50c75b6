from __future__ import annotations

import math
from datetime import date, datetime, time, timezone
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Query, status

from . import schemas
from .config import get_settings
from .errors import ValidationError
from .models import as_utc

settings = get_settings()


def verify_access_key(
    x_access_key: Annotated[str | None, Header(alias="X-Access-Key")] = None
) -> None:
    if settings.access_key and x_access_key != settings.access_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid access key",
        )


def company_scope(
    x_company_id: Annotated[int | None, Header(alias="X-Company-Id")] = None
) -> Optional[int]:
    """Company the caller is acting for; ``None`` means unscoped."""
    return x_company_id


AccessGuard = Annotated[None, Depends(verify_access_key)]
CompanyScope = Annotated[Optional[int], Depends(company_scope)]
Limit = Annotated[int, Query(ge=1, le=settings.max_page_size)]
Offset = Annotated[int, Query(ge=0)]


def parse_datetime(value: str | None, *, end_of_day: bool = False) -> Optional[datetime]:
    """Parse a date or datetime query value into timezone-aware UTC.

    A bare date used as an upper bound covers the whole day.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid date: {value}") from exc
    if end_of_day and len(value) == 10:
        parsed = datetime.combine(parsed.date(), time.max)
    return as_utc(parsed)


def day_bounds(value: str | None) -> tuple[Optional[datetime], Optional[datetime]]:
    if not value:
        return None, None
    try:
        day = date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid date: {value}") from exc
    return (
        datetime.combine(day, time.min, tzinfo=timezone.utc),
        datetime.combine(day, time.max, tzinfo=timezone.utc),
    )


def paginate(total: int, limit: int, offset: int) -> schemas.Pagination:
    return schemas.Pagination(
        total=total,
        limit=limit,
        offset=offset,
        pages=math.ceil(total / limit) if limit else 0,
    )
