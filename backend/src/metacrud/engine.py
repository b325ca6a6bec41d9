"""Engine facade: run operations on a fresh session per call.

    engine = CrudEngine(create_db_engine(DatabaseConfig.from_env()), registry)
    engine.create("User", Params({"Name": "alice"}))

Callers that need several operations in one transaction build a
Session themselves and use the functions in metacrud.dbop directly.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from metacrud import dbop
from metacrud.dbop.context import DbContext, JoinCond
from metacrud.dbop.session import Session
from metacrud.errors import ApiError, ErrorType, new_error
from metacrud.models.record import Record
from metacrud.models.registry import ModelRegistry, NameMapper, snake_case
from metacrud.params import Params

logger = logging.getLogger(__name__)


class CrudEngine:
    """Opens a connection for each operation and closes it afterwards."""

    def __init__(self, engine: Engine, models: ModelRegistry, mapper: NameMapper = snake_case):
        self.engine = engine
        self.models = models
        self.mapper = mapper

    def _run(self, operation: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            connection = self.engine.connect()
        except SQLAlchemyError as exc:
            logger.error("[DBNotExist] %s", exc)
            return new_error(ErrorType.INTERNAL_ERROR, "DBNotExist").with_message("Database not exist.")

        session = Session(connection, self.mapper)
        try:
            return operation(DbContext(session, self.models), *args, **kwargs)
        finally:
            session.close()

    def create(
        self,
        model: Record | str,
        params: Params,
        query_settings: Mapping[str, str] | None = None,
    ) -> dict[str, Any] | None | ApiError:
        return self._run(dbop.create, model, params, query_settings)

    def list(
        self,
        model: Record | str,
        params: Params,
        query_settings: Mapping[str, str] | None = None,
        join_conds: Sequence[JoinCond] | None = None,
    ) -> dict[str, Any] | ApiError:
        return self._run(dbop.list_records, model, params, query_settings, join_conds)

    def detail(
        self,
        model: Record | str,
        params: Params,
        join_conds: Sequence[JoinCond] | None = None,
    ) -> dict[str, Any] | ApiError:
        return self._run(dbop.detail, model, params, join_conds)

    def update(
        self,
        model: Record | str,
        params: Params,
        query_settings: Mapping[str, str] | None = None,
    ) -> dict[str, int] | ApiError:
        return self._run(dbop.update, model, params, query_settings)

    def delete(self, model: Record | str, params: Params) -> dict[str, int] | ApiError:
        return self._run(dbop.delete, model, params)

    def move(self, model: Record | str, src_index: int, dst_index: int) -> ApiError | None:
        return self._run(dbop.move, model, src_index, dst_index)
