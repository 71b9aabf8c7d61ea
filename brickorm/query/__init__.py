"""Fluent query builders."""
from brickorm.query.base import BaseQuery, QueryBuilder
from brickorm.query.mutation import DeleteQuery, InsertQuery, UpdateQuery
from brickorm.query.relation import RelationOpts
from brickorm.query.select import SelectQuery

__all__ = [
    "BaseQuery",
    "DeleteQuery",
    "InsertQuery",
    "QueryBuilder",
    "RelationOpts",
    "SelectQuery",
    "UpdateQuery",
]
