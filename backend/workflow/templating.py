"""Template resolution for node configuration.

Node configs may embed ``{{ path }}`` tokens that refer into the run's
variable store, e.g. ``"Order {{ order.id }} for {{ customer.name }}"`` or
``"{{ fetch_node_output.data.items.0.sku }}"``. Tokens whose path does not
resolve are left in the text untouched, so a typo shows up verbatim in the
output instead of silently disappearing.
"""

import json
import re
from typing import Any

TOKEN_PATTERN = re.compile(r"\{\{([^}]+)\}\}")

_MISSING = object()


class TemplateResolver:
    """Substitutes ``{{ path }}`` tokens and walks dotted paths.

    Resolution never raises for a missing path and never mutates its input.
    """

    @staticmethod
    def resolve(value: Any, variables: dict) -> Any:
        """Return ``value`` with every token in every string replaced.

        Dicts, lists and tuples are rebuilt recursively with the same shape;
        numbers, booleans and None pass through unchanged.
        """
        if isinstance(value, str):
            return TemplateResolver.resolve_string(value, variables)
        if isinstance(value, dict):
            return {k: TemplateResolver.resolve(v, variables) for k, v in value.items()}
        if isinstance(value, list):
            return [TemplateResolver.resolve(v, variables) for v in value]
        if isinstance(value, tuple):
            return tuple(TemplateResolver.resolve(v, variables) for v in value)
        return value

    @staticmethod
    def resolve_string(text: str, variables: dict) -> str:
        """Replace every token in a single string."""
        if "{{" not in text:
            return text

        def _replace(match: re.Match) -> str:
            path = match.group(1).strip()
            found = TemplateResolver.lookup(variables, path, default=_MISSING)
            if found is _MISSING:
                return match.group(0)
            return TemplateResolver.stringify(found)

        return TOKEN_PATTERN.sub(_replace, text)

    @staticmethod
    def lookup(obj: Any, path: str, default: Any = None) -> Any:
        """Walk a dotted path through nested dicts and lists.

        List segments must be integer indices. Stops with ``default`` on the
        first missing key, out-of-range index, None or non-container value.
        """
        if not path:
            return default

        current = obj
        for part in path.split("."):
            if isinstance(current, dict):
                if part not in current:
                    return default
                current = current[part]
            elif isinstance(current, (list, tuple)):
                try:
                    index = int(part)
                except ValueError:
                    return default
                if index < 0 or index >= len(current):
                    return default
                current = current[index]
            else:
                return default
        return current

    @staticmethod
    def stringify(value: Any) -> str:
        """Text form of a looked-up value when embedded into a string."""
        if value is None:
            return "null"
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        if isinstance(value, (dict, list, tuple)):
            return json.dumps(value, separators=(",", ":"), default=str)
        return str(value)

    @staticmethod
    def has_tokens(value: Any) -> bool:
        """Whether a string contains at least one ``{{ path }}`` token."""
        return isinstance(value, str) and TOKEN_PATTERN.search(value) is not None
