"""Shell-style ``$NAME`` / ``${NAME}`` placeholder expansion."""

from __future__ import annotations

import os
import re
from typing import Mapping

_PLACEHOLDER = re.compile(r"\$(?:\{(?P<braced>[A-Za-z_][A-Za-z0-9_]*)\}|(?P<bare>[A-Za-z_][A-Za-z0-9_]*))")


def expand_vars(text: str, environ: Mapping[str, str] | None = None) -> str:
    """Replace placeholders with values from *environ* (defaults to ``os.environ``).

    References to unset variables are left as literal text, and ``$`` not
    followed by a variable name is never touched.
    """
    env = os.environ if environ is None else environ

    def _replace(match: re.Match[str]) -> str:
        name = match.group("braced") or match.group("bare")
        value = env.get(name)
        if value is None:
            return match.group(0)
        return value

    return _PLACEHOLDER.sub(_replace, text)


def expand_bytes(content: bytes, environ: Mapping[str, str] | None = None) -> bytes:
    """Expand placeholders in raw file content, preserving undecodable bytes."""
    text = content.decode("utf-8", errors="surrogateescape")
    return expand_vars(text, environ).encode("utf-8", errors="surrogateescape")
