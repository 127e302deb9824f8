"""Data and logic nodes: condition, transform, set_variable.

These never leave the process; they read and write the run's variable store.
"""

import math
import re
from typing import Any, Dict

import structlog

from nodes.base_node import BaseNode, NodeKind
from workflow.context import ExecutionContext
from workflow.graph import WorkflowNode
from workflow.templating import TemplateResolver

logger = structlog.get_logger(__name__)


# ─── Condition ────────────────────────────────────────────────

# Lookup result for a field path that does not exist in the variables
MISSING = object()


def _as_text(value: Any) -> str:
    return TemplateResolver.stringify(None if value is MISSING else value)


def _as_number(value: Any) -> float:
    """Numeric coercion for ordering operators; NaN when not a number.

    A missing field is NaN, so every ordering comparison on it is False.
    None and blank text count as 0.
    """
    if value is MISSING:
        return math.nan
    if value is None:
        return 0.0
    if isinstance(value, (bool, int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def _is_empty(value: Any) -> bool:
    if value is MISSING:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return not value


def _regex_match(pattern: str, value: Any) -> bool:
    try:
        return re.search(pattern, _as_text(value)) is not None
    except re.error:
        logger.warning("Invalid regex pattern in condition", pattern=pattern)
        return False


CONDITION_OPERATORS = {
    "equals": lambda actual, expected: _as_text(actual) == expected,
    "not_equals": lambda actual, expected: _as_text(actual) != expected,
    "contains": lambda actual, expected: expected in _as_text(actual),
    "not_contains": lambda actual, expected: expected not in _as_text(actual),
    "greater_than": lambda actual, expected: _as_number(actual) > _as_number(expected),
    "less_than": lambda actual, expected: _as_number(actual) < _as_number(expected),
    "greater_than_or_equal": lambda actual, expected: _as_number(actual) >= _as_number(expected),
    "less_than_or_equal": lambda actual, expected: _as_number(actual) <= _as_number(expected),
    "starts_with": lambda actual, expected: _as_text(actual).startswith(expected),
    "ends_with": lambda actual, expected: _as_text(actual).endswith(expected),
    "regex": lambda actual, expected: _regex_match(expected, actual),
    "is_empty": lambda actual, expected: _is_empty(actual),
    "is_not_empty": lambda actual, expected: not _is_empty(actual),
}

OPERATOR_ALIASES = {
    "==": "equals",
    "===": "equals",
    "!=": "not_equals",
    "!==": "not_equals",
    ">": "greater_than",
    "<": "less_than",
    ">=": "greater_than_or_equal",
    "<=": "less_than_or_equal",
}


class ConditionNode(BaseNode):
    """Evaluate a comparison against the variable store.

    The outcome is advisory: downstream nodes run regardless of the branch.

    Config:
        field: Dotted path into the variables (templated)
        operator: See ``CONDITION_OPERATORS`` (default: equals)
        value: Value to compare against (templated, compared as text or number)
    """

    kind = NodeKind.CONDITION
    display_name = "Condition"
    description = "Compare a variable against a value"

    async def execute(self, node: WorkflowNode, context: ExecutionContext) -> Any:
        config = node.config
        field = self.resolve(config.get("field") or "", context)
        operator = str(config.get("operator") or "equals")
        raw_value = config.get("value")
        value = self.resolve(_as_text(raw_value) if raw_value is not None else "", context)

        field_value = self.lookup(context.variables, field, default=MISSING)

        check = CONDITION_OPERATORS.get(OPERATOR_ALIASES.get(operator, operator))
        if check is None:
            logger.warning("Unknown condition operator", operator=operator, node_id=node.id)
            result = False
        else:
            result = bool(check(field_value, value))

        return {
            "condition": {"field": field, "operator": operator, "value": value},
            "fieldValue": None if field_value is MISSING else field_value,
            "result": result,
            "branch": "true" if result else "false",
        }


# ─── Transform ────────────────────────────────────────────────

TRANSFORM_MODES = ("map", "filter", "pick", "merge", "template")


class TransformNode(BaseNode):
    """Reshape data from the variable store.

    Config:
        transformType / mode: map | filter | pick | merge | template (default: map)
        input: Dotted path of the data to transform (default: all variables)
        mapping: For ``map``, ``{output_key: input_path}``
        filterField / filterValue: For ``filter``, keep items whose field equals the value
        fields: For ``pick``, list of paths to copy
        sources: For ``merge``, list of variable paths whose dicts are merged
        template: For ``template``, a string with ``{{ }}`` tokens
    """

    kind = NodeKind.TRANSFORM
    display_name = "Transform"
    description = "Map, filter, pick, merge or template data"

    async def execute(self, node: WorkflowNode, context: ExecutionContext) -> Any:
        config = node.config
        mode = config.get("transformType") or config.get("mode")
        if not mode and config.get("type") in TRANSFORM_MODES:
            mode = config["type"]
        mode = mode or "map"

        input_path = config.get("input")
        if input_path:
            data = self.lookup(context.variables, self.resolve(str(input_path), context))
        else:
            data = context.variables

        if mode == "map":
            mapping = config.get("mapping") or {}
            return {
                out_key: self.lookup(data, self.resolve(str(path), context))
                for out_key, path in mapping.items()
            }

        if mode == "filter":
            if not isinstance(data, list):
                return data
            field = str(config.get("filterField") or "")
            expected = _as_text(config.get("filterValue", ""))
            return [item for item in data if _as_text(self.lookup(item, field)) == expected]

        if mode == "pick":
            return {field: self.lookup(data, field) for field in config.get("fields") or []}

        if mode == "merge":
            merged: Dict[str, Any] = {}
            for source in config.get("sources") or []:
                source_data = self.lookup(context.variables, self.resolve(str(source), context))
                if isinstance(source_data, dict):
                    merged.update(source_data)
            return merged

        if mode == "template":
            return self.resolve(str(config.get("template") or ""), context)

        logger.debug("Unknown transform mode, passing input through", mode=mode, node_id=node.id)
        return data


# ─── Set Variable ─────────────────────────────────────────────

class SetVariableNode(BaseNode):
    """Assign a (templated) value to a named variable.

    Config:
        name / variable: Variable name
        value: Value to assign; strings and nested structures are templated
    """

    kind = NodeKind.SET_VARIABLE
    display_name = "Set Variable"
    description = "Assign a value to a workflow variable"

    async def execute(self, node: WorkflowNode, context: ExecutionContext) -> Any:
        config = node.config
        name = config.get("name") or config.get("variable") or ""
        value = self.resolve(config.get("value"), context)

        if name:
            context.set_variable(name, value)
        else:
            logger.warning("set_variable node without a name", node_id=node.id)

        return {"variable": name, "value": value}


LOGIC_NODE_TYPES = {
    NodeKind.CONDITION: ConditionNode,
    NodeKind.TRANSFORM: TransformNode,
    NodeKind.SET_VARIABLE: SetVariableNode,
}
