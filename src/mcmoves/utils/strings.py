"""String helpers for tabular output."""

from __future__ import annotations

import re

_FIELD_PATTERN = re.compile(r"\{:([<>^]?)(\d*)(?:\.\d+)?[a-zA-Z]?\}")


def get_auto_header_format(str_format: str, default_width: int = 10) -> str:
    """
    Derive a header format from a value format, keeping alignment and width of each field.

    Parameters
    ----------
    str_format : str
        Format string of the logged value(s), e.g. ``"{:>10.3f}"``.
    default_width : int, optional
        Width used when the value format does not specify one.

    Returns
    -------
    str
        A format string accepting strings, e.g. ``"{:>10s}"``.
    """

    def replace(match: re.Match) -> str:
        align = match.group(1) or ">"
        width = match.group(2) or str(default_width)
        return f"{{:{align}{width}s}}"

    return _FIELD_PATTERN.sub(replace, str_format)
