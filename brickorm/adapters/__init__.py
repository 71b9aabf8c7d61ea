"""Execution adapters."""
from brickorm.adapters.base import ExecResult, ExecutionAdapter

__all__ = ["ExecResult", "ExecutionAdapter"]
