"""Page/page-size pagination over a SELECT statement."""

from __future__ import annotations

import math
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


async def paginate(
    session: AsyncSession,
    stmt: Select,
    *,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> tuple[list[Any], dict]:
    """Run one page of ``stmt``. Returns (rows, pagination metadata)."""
    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total = (await session.execute(count_stmt)).scalar_one()

    result = await session.execute(
        stmt.offset((page - 1) * page_size).limit(page_size)
    )
    rows = list(result.all())

    return rows, {
        "page": page,
        "page_size": page_size,
        "total": total,
        "total_pages": math.ceil(total / page_size) if total else 0,
    }
