"""SQL feature flags a dialect may declare.

A dialect's capability set is a single :class:`Feature` value; the query
engine asks ``dialect.has_feature(Feature.X)`` before emitting syntax that
is missing or spelled differently on some backends.
"""
from __future__ import annotations

import enum


class Feature(enum.IntFlag):
    """Capability bit-set."""

    NONE = 0
    CTE = enum.auto()
    WITH_VALUES = enum.auto()
    RETURNING = enum.auto()
    INSERT_RETURNING = enum.auto()
    DEFAULT_PLACEHOLDER = enum.auto()
    DOUBLE_COLON_CAST = enum.auto()
    VALUES_ROW = enum.auto()
    UPDATE_MULTI_TABLE = enum.auto()
    INSERT_TABLE_ALIAS = enum.auto()
    UPDATE_TABLE_ALIAS = enum.auto()
    DELETE_TABLE_ALIAS = enum.auto()
    AUTO_INCREMENT = enum.auto()
    IDENTITY = enum.auto()
    TABLE_CASCADE = enum.auto()
    TABLE_IDENTITY = enum.auto()
    TABLE_TRUNCATE = enum.auto()
    INSERT_ON_CONFLICT = enum.auto()
    INSERT_ON_DUPLICATE_KEY = enum.auto()
    INSERT_IGNORE = enum.auto()
    TABLE_NOT_EXISTS = enum.auto()
    OFFSET_FETCH = enum.auto()
    SELECT_EXISTS = enum.auto()
    UPDATE_FROM_TABLE = enum.auto()
    GENERATED_IDENTITY = enum.auto()
    COMPOSITE_IN = enum.auto()
    INDEX_HINTS = enum.auto()
