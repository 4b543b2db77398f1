"""URL slugs for properties and landlord subdomains."""

import re
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(value: str, max_length: int = 90) -> str:
    slug = _NON_ALNUM.sub("-", value.lower()).strip("-")
    return slug[:max_length].rstrip("-") or "item"


async def unique_slug(
    db: AsyncSession,
    column: Any,
    value: str,
    scope: Optional[Any] = None,
) -> str:
    """slugify(value), suffixed -2, -3, ... until no row in column has it."""
    base = slugify(value)
    query = select(column).where(column.like(f"{base}%"))
    if scope is not None:
        query = query.where(scope)
    taken = set((await db.execute(query)).scalars().all())

    candidate, n = base, 2
    while candidate in taken:
        candidate = f"{base}-{n}"
        n += 1
    return candidate
