"""Post-import SQL statements and replay commands."""

from .filters import FILTERS, shell_quote, sql_quote
from .statement_generator import StatementBundle, StatementGenerator

__all__ = [
    "FILTERS",
    "StatementBundle",
    "StatementGenerator",
    "shell_quote",
    "sql_quote",
]
