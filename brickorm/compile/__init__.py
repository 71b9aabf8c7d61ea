"""SQL compilation: plans → dialect-correct SQL text."""
from brickorm.compile.builder import SelectCompiler
from brickorm.compile.context import CompilationContext, RenderMode
from brickorm.compile.formatter import Formatter, QueryAppender, RuntimeContext
from brickorm.compile.mutations import DeleteCompiler, InsertCompiler, UpdateCompiler

__all__ = [
    "CompilationContext",
    "DeleteCompiler",
    "Formatter",
    "InsertCompiler",
    "QueryAppender",
    "RenderMode",
    "RuntimeContext",
    "SelectCompiler",
    "UpdateCompiler",
]
