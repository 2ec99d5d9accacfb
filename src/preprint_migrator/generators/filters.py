"""Jinja2 filters for the SQL and shell templates.

Every value interpolated into a statement goes through one of these; the
templates never concatenate raw upstream text.
"""

import shlex


def sql_quote(value) -> str:
    """Quote a value as a MySQL string literal.

    Backslashes, single quotes and NUL bytes are backslash-escaped.

    Examples:
        >>> sql_quote("O'Brien")
        "'O\\\\'Brien'"
    """
    text = str(value)
    text = text.replace("\\", "\\\\").replace("'", "\\'").replace("\0", "\\0")
    return f"'{text}'"


def shell_quote(value) -> str:
    """Quote a value for a POSIX shell command line."""
    return shlex.quote(str(value))


FILTERS = {
    "sql": sql_quote,
    "shell": shell_quote,
}
