from typing import Any, Dict, Sequence

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def _insert_for(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise ValueError(f"Upsert is not supported for dialect '{dialect}'")


async def upsert(
    db: AsyncSession,
    model,
    values: Dict[str, Any],
    index_elements: Sequence[str],
    update_columns: Sequence[str],
    returning=None,
):
    """
    INSERT ... ON CONFLICT (index_elements) DO UPDATE SET update_columns.

    Returns the value of ``returning`` (default: the model's ``id`` column)
    for the inserted or updated row.
    """
    insert = _insert_for(db)
    stmt = insert(model).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=list(index_elements),
        set_={column: stmt.excluded[column] for column in update_columns},
    )
    stmt = stmt.returning(returning if returning is not None else model.id)
    result = await db.execute(stmt)
    return result.scalar_one()
