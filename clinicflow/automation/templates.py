from __future__ import annotations

import re
from typing import Any, Mapping

_TOKEN = re.compile(r"\{\{(\w+)\}\}")


def interpolate(template: str, variables: Mapping[str, Any]) -> str:
    """
    Replace `{{name}}` tokens with values from `variables`.

    Unknown tokens are left as-is. Substituted text is never re-scanned.
    """
    if not template or "{{" not in template:
        return template

    def _replace(match: re.Match) -> str:
        key = match.group(1)
        if key not in variables:
            return match.group(0)
        value = variables[key]
        return "" if value is None else str(value)

    return _TOKEN.sub(_replace, template)
