"""Move operation: reposition a record in its showindex ordering.

Moving index 5 to 2 shifts 2, 3, 4 down by one and gives the moved row
index 2; moving 2 to 5 shifts 3, 4, 5 up by one.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from metacrud.dbop.context import DbContext, resolve_model
from metacrud.errors import ApiError, ErrorType, new_error
from metacrud.models.record import Record

logger = logging.getLogger(__name__)


def move(ctx: DbContext, model: Record | str, src_index: int, dst_index: int) -> ApiError | None:
    """Move the row at src_index to dst_index. Returns None on success."""
    if src_index == dst_index:
        return new_error(ErrorType.INTERNAL_ERROR, "NoObjectMoved").with_message("No object moved!")

    resolved = resolve_model(ctx, model)
    if isinstance(resolved, ApiError):
        return resolved
    definition, _ = resolved

    showindex_fields = definition.tag_fields("showindex")
    if not showindex_fields:
        return new_error(ErrorType.INTERNAL_ERROR, "NoShowIndexField").with_message(
            "No ShowIndex Field."
        )

    session = ctx.session
    q = session.quote
    table = definition.table_name(session.mapper)
    column = q(definition.column_name(showindex_fields[0], session.mapper))

    local_trans = not session.in_transaction
    if local_trans:
        session.begin()

    try:
        total = session.query(table).in_(column, [src_index, dst_index]).count()
    except SQLAlchemyError as exc:
        if local_trans:
            session.rollback()
        logger.error("[CountFailed] %s", exc)
        return new_error(ErrorType.INTERNAL_ERROR, "CountFailed").with_message("Count Failed.")
    if total != 2:
        if local_trans:
            session.rollback()
        return new_error(ErrorType.INTERNAL_ERROR, "ObjectNotExists").with_message(
            "One of the object does not exist."
        )

    if dst_index < src_index:
        # Up: rows in between move down one place
        offset, index_from, index_to = 1, dst_index, src_index
    else:
        offset, index_from, index_to = -1, src_index, dst_index

    if session.dialect_name in ("mysql", "mariadb"):
        assignment = f"IF({column}=?, ?, {column}+?)"
    else:
        assignment = f"(CASE WHEN {column}=? THEN ? ELSE {column}+? END)"
    sql = f"UPDATE {q(table)} SET {column}={assignment} WHERE {column}>=? AND {column}<=?"

    try:
        session.execute(sql, [src_index, dst_index, offset, index_from, index_to])
        if local_trans:
            session.commit()
    except SQLAlchemyError as exc:
        if local_trans:
            session.rollback()
        logger.error("[UpdateShowIndexFailed] %s", exc)
        return new_error(ErrorType.INTERNAL_ERROR, "UpdateShowIndexFailed").with_message(
            "Update ShowIndex Failed."
        )
    return None
