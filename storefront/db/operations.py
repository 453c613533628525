# storefront/db/operations.py
"""Common async session helpers."""

from collections.abc import Iterable
from typing import Any

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession


def _coerce_iter(items: Iterable[Any] | None) -> list[Any] | None:
    if not items:
        return None
    return list(items)


async def commit_async(session: AsyncSession) -> None:
    await session.commit()


async def rollback_async(session: AsyncSession) -> None:
    await session.rollback()


async def flush_async(session: AsyncSession, *objects: Any) -> None:
    await session.flush(_coerce_iter(objects))


async def refresh_async(session: AsyncSession, *instances: Any, attribute_names: list[str] | None = None) -> None:
    for instance in instances:
        if attribute_names:
            await session.refresh(instance, attribute_names=attribute_names)
        else:
            await session.refresh(instance)


async def conditional_update(
    session: AsyncSession,
    model: Any,
    row_id: Any,
    *guards: Any,
    **values: Any,
) -> bool:
    """Apply ``values`` to one row only if every guard holds.

    Runs as a single ``UPDATE ... WHERE id = :id AND <guards>`` so the check
    and the write cannot interleave with another transaction. Returns whether
    the row was updated.
    """
    stmt = (
        update(model)
        .where(model.id == row_id, *guards)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount == 1
