"""
Object-to-script export.

SMO-style objects expose ``script()`` returning either a string or a
collection of statements. Collections are joined into GO-separated batches.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Iterable, Protocol, runtime_checkable

from dbaquery.domain.errors import InputValidationError, SourceError

Exporter = Callable[[Any], str]

_UNSAFE_FILENAME = re.compile(r"[^\w.\-]+")


@runtime_checkable
class Scriptable(Protocol):
    def script(self) -> str | Iterable[str]: ...


def object_label(obj: Any) -> str:
    """Readable identifier for logs and failure records."""
    for attribute in ("urn", "name", "Name"):
        value = getattr(obj, attribute, None)
        if value:
            return str(value)
    return type(obj).__name__


def script_filename(obj: Any) -> str:
    return _UNSAFE_FILENAME.sub("_", object_label(obj)).strip("_")[:100] + ".sql"


def export_script(obj: Any) -> str:
    """
    Script ``obj`` to T-SQL text.

    Raises:
        InputValidationError: If the object cannot be scripted at all
        SourceError: If scripting itself fails
    """
    if not isinstance(obj, Scriptable):
        raise InputValidationError(
            f"Object of type {type(obj).__name__} cannot be scripted", target=object_label(obj)
        )
    try:
        script = obj.script()
    except Exception as e:  # exporters are caller-supplied objects
        raise SourceError(f"Scripting failed: {e}", target=object_label(obj)) from e

    if isinstance(script, str):
        return script
    return "\nGO\n".join(str(statement) for statement in script) + "\nGO\n"
