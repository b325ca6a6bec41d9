"""Declarative CRUD operations over registered models.

Every operation takes a DbContext (session + model registry) and returns
either a payload or an ApiError value:

    ctx = DbContext(Session(conn), registry)
    result = create(ctx, "User", Params({"Name": "alice"}))
    if is_error(result):
        ...
"""

from metacrud.dbop.context import DbContext
from metacrud.dbop.create import create
from metacrud.dbop.delete import delete
from metacrud.dbop.detail import detail
from metacrud.dbop.listing import list_records
from metacrud.dbop.move import move
from metacrud.dbop.session import Expr, Query, Session
from metacrud.dbop.update import update

__all__ = [
    "DbContext",
    "Expr",
    "Query",
    "Session",
    "create",
    "delete",
    "detail",
    "list_records",
    "move",
    "update",
]
