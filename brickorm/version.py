"""Single source of truth for the brickORM version.

Dialects declare the engine version they were written against; the
registry refuses to register a dialect whose version differs.
"""

__version__ = "0.4.0"
