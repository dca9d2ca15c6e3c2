"""Pagination helpers shared by listing operations."""

import math
from typing import Any, List, Optional, Tuple

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from job_tracker.config import settings


def clamp_page_size(page_size: Optional[int]) -> int:
    if not page_size:
        return settings.default_page_size
    return max(1, min(page_size, settings.max_page_size))


def total_pages(total: int, page_size: int) -> int:
    return math.ceil(total / page_size) if total else 0


def paginate(session: Session, stmt: Select, page: int, page_size: int) -> Tuple[List[Any], int]:
    """Run ``stmt`` for one page and count all matching rows."""
    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total = session.scalar(count_stmt) or 0

    offset = (max(page, 1) - 1) * page_size
    rows = session.scalars(stmt.offset(offset).limit(page_size)).unique().all()
    return list(rows), total
