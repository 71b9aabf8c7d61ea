"""Process-wide table metadata cache.

One :class:`Tables` instance belongs to each dialect (quoting is part of the
metadata).  Lookups after the first resolution of a model are lock-free
dictionary reads; building and relation resolution are serialized by a
re-entrant lock so that concurrent first use of a model is safe.
"""
from __future__ import annotations

import logging
import re
import threading
from typing import TYPE_CHECKING, Any, get_args

from pydantic import BaseModel

from brickorm.errors import ModelDeclarationError
from brickorm.schema.table import Field, Relation, RelationKind, RelationSpec, Table

if TYPE_CHECKING:
    from brickorm.dialect.base import Dialect

logger = logging.getLogger(__name__)

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def snake_case(name: str) -> str:
    """``OrderItem`` → ``order_item``."""
    return _CAMEL_RE.sub("_", name).lower()


class Tables:
    """Cache of :class:`Table` metadata keyed by model class.

    Args:
        dialect: Dialect used to quote table and column names.
    """

    def __init__(self, dialect: Dialect) -> None:
        self._dialect = dialect
        self._lock = threading.RLock()
        self._tables: dict[type, Table] = {}
        self._models: dict[str, type] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def register(self, *models: type) -> None:
        """Make models resolvable by class name and build their metadata."""
        for model in models:
            self.get(model)

    def get(self, model: type) -> Table:
        """Return the :class:`Table` for ``model``, building it on first use.

        Raises:
            ModelDeclarationError: If ``model`` is not a pydantic model or its
                declarations are inconsistent.
        """
        table = self._tables.get(model)
        if table is not None:
            return table
        with self._lock:
            table = self._tables.get(model)
            if table is None:
                table = self._build(model)
                self._tables[model] = table
                self._models[model.__name__] = model
                logger.debug("registered model %s as table %r", model.__name__, table.name)
            return table

    def resolve_model(self, ref: str | type) -> type:
        """Return the model class for a class or a registered class name."""
        if isinstance(ref, type):
            return ref
        model = self._models.get(ref)
        if model is None:
            raise ModelDeclarationError(
                ref, "model is not registered; call Tables.register() or pass the class"
            )
        return model

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def _build(self, model: type) -> Table:
        if not (isinstance(model, type) and issubclass(model, BaseModel)):
            raise ModelDeclarationError(getattr(model, "__name__", repr(model)), "not a pydantic model")

        quote = self._dialect.quote_identifier
        alias = getattr(model, "__alias__", None) or snake_case(model.__name__)
        name = getattr(model, "__tablename__", None) or alias + "s"
        specs: dict[str, RelationSpec] = dict(getattr(model, "__relations__", {}) or {})

        columns = [n for n in model.model_fields if n not in specs]
        default_pk = ("id",) if "id" in columns else ()
        pks = tuple(getattr(model, "__pk__", default_pk))
        unknown = [pk for pk in pks if pk not in columns]
        if unknown:
            raise ModelDeclarationError(model.__name__, f"primary key columns {unknown} are not fields")

        fields = tuple(
            Field(
                name=col,
                sql_name=quote(col),
                is_pk=col in pks,
                required=model.model_fields[col].is_required(),
            )
            for col in columns
        )
        field_map = {f.name: f for f in fields}
        soft_delete = self._soft_delete_field(model, field_map)
        return Table(
            model=model,
            name=name,
            alias=alias,
            sql_name=quote(name),
            sql_alias=quote(alias),
            fields=fields,
            pk_fields=tuple(field_map[pk] for pk in pks),
            relation_specs=specs,
            soft_delete_field=soft_delete,
            _tables=self,
        )

    @staticmethod
    def _soft_delete_field(model: type, field_map: dict[str, Field]) -> Field | None:
        name = getattr(model, "__soft_delete__", None)
        if name is None:
            return None
        field = field_map.get(name)
        if field is None:
            raise ModelDeclarationError(model.__name__, f"soft delete column '{name}' is not a field")
        if type(None) not in get_args(model.model_fields[name].annotation):
            raise ModelDeclarationError(model.__name__, f"soft delete column '{name}' must be nullable")
        return field

    def resolve_relations(self, table: Table) -> dict[str, Relation]:
        """Resolve ``table.relation_specs`` into :class:`Relation` objects."""
        with self._lock:
            return {
                name: self._resolve_relation(table, name, spec)
                for name, spec in table.relation_specs.items()
            }

    def _resolve_relation(self, table: Table, name: str, spec: RelationSpec) -> Relation:
        join_table = self.get(self.resolve_model(spec.model))

        if spec.kind is RelationKind.MANY_TO_MANY:
            return self._resolve_m2m(table, join_table, name, spec)

        if spec.join:
            base_names = list(spec.join.keys())
            join_names = list(spec.join.values())
        elif spec.kind is RelationKind.BELONGS_TO:
            join_names = [f.name for f in join_table.pk_fields]
            base_names = [f"{name}_{pk}" for pk in join_names]
        else:
            base_names = [f.name for f in table.pk_fields]
            join_names = [f"{table.alias}_{pk}" for pk in base_names]

        return Relation(
            name=name,
            kind=spec.kind,
            table=table,
            join_table=join_table,
            base_fields=self._fields(table, base_names, name),
            join_fields=self._fields(join_table, join_names, name),
            conditions=spec.conditions,
        )

    def _resolve_m2m(self, table: Table, join_table: Table, name: str, spec: RelationSpec) -> Relation:
        if not spec.through:
            raise ModelDeclarationError(table.model.__name__, f"relation '{name}' needs a through table")

        if spec.join:
            base_names = list(spec.join.keys())
            m2m_base = list(spec.join.values())
        else:
            base_names = [f.name for f in table.pk_fields]
            m2m_base = [f"{table.alias}_{pk}" for pk in base_names]

        if spec.through_join:
            m2m_join = list(spec.through_join.keys())
            join_names = list(spec.through_join.values())
        else:
            join_names = [f.name for f in join_table.pk_fields]
            m2m_join = [f"{join_table.alias}_{pk}" for pk in join_names]

        return Relation(
            name=name,
            kind=spec.kind,
            table=table,
            join_table=join_table,
            base_fields=self._fields(table, base_names, name),
            join_fields=self._fields(join_table, join_names, name),
            conditions=spec.conditions,
            m2m_table=spec.through,
            m2m_alias=spec.through_alias or spec.through,
            m2m_base_columns=tuple(m2m_base),
            m2m_join_columns=tuple(m2m_join),
        )

    @staticmethod
    def _fields(table: Table, names: list[str], relation: str) -> tuple[Field, ...]:
        if not names:
            raise ModelDeclarationError(
                table.model.__name__, f"relation '{relation}' has no join columns"
            )
        missing = [n for n in names if n not in table.field_map]
        if missing:
            raise ModelDeclarationError(
                table.model.__name__,
                f"relation '{relation}' references unknown columns {missing}",
            )
        return tuple(table.field_map[n] for n in names)

    def __repr__(self) -> str:
        return f"Tables(dialect={self._dialect.name!r}, models={sorted(self._models)})"

    def __len__(self) -> int:
        return len(self._tables)

    def __contains__(self, model: Any) -> bool:
        return model in self._tables
