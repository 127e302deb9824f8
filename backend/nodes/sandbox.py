"""Restricted interpreter for script nodes.

Scripts are parsed with :mod:`ast` and walked by a small interpreter that
only understands an allowlisted subset of Python:

- statements: assignment, augmented assignment, expression statements,
  ``if``/``elif``/``else``, ``for`` loops, ``break``/``continue``/``pass``
  and a top-level ``return``
- expressions: literals, names, arithmetic, comparisons, boolean logic,
  subscripts and slices, conditional expressions, f-strings, and calls to
  the functions in ``ALLOWED_CALLABLES``
- the only attribute access allowed is calling ``console.log/info/warn/error``

Nothing is compiled or ``exec``-ed. Imports, function and class
definitions, ``while`` loops, comprehensions and attribute access are
rejected before the script starts. Every statement counts against a step
budget so a script cannot spin forever, and sequence and integer results
are size-checked before they are built. A running script can be stopped
from another thread with ``ScriptInterpreter.cancel()``.

Example::

    total = 0
    for item in input["items"]:
        total += item["price"] * item["qty"]
    console.log("total", total)
    result = {"total": total, "large": total > 100}
"""

import ast
import operator
import threading
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from core.exceptions import SandboxError
from workflow.templating import TemplateResolver

MAX_STEPS = 100_000
MAX_RANGE = 100_000
MAX_SEQUENCE_LENGTH = 1_000_000
MAX_EXPONENT = 1_000
MAX_INTEGER_BITS = 100_000
_MAX_DEPTH = 100

_BIN_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
    ast.FloorDiv: operator.floordiv,
}

_CMP_OPS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

_CONSOLE_METHODS = {"log": "info", "info": "info", "warn": "warn", "error": "error"}

_FORBIDDEN_NODES = (
    ast.Import,
    ast.ImportFrom,
    ast.FunctionDef,
    ast.AsyncFunctionDef,
    ast.ClassDef,
    ast.Lambda,
    ast.While,
    ast.With,
    ast.AsyncWith,
    ast.AsyncFor,
    ast.Try,
    ast.Raise,
    ast.Global,
    ast.Nonlocal,
    ast.Delete,
    ast.ListComp,
    ast.SetComp,
    ast.DictComp,
    ast.GeneratorExp,
    ast.Await,
    ast.Yield,
    ast.YieldFrom,
    ast.NamedExpr,
)


def _bounded_range(*args: int) -> list:
    values = range(*args)
    if len(values) > MAX_RANGE:
        raise SandboxError(f"range() larger than {MAX_RANGE} items")
    return list(values)


def _checked_size(value: Any) -> Any:
    if isinstance(value, (str, list, tuple)) and len(value) > MAX_SEQUENCE_LENGTH:
        raise SandboxError("Sequence too large")
    return value


ALLOWED_CALLABLES: dict[str, Any] = {
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "round": round,
    "min": min,
    "max": max,
    "sum": sum,
    "abs": abs,
    "sorted": sorted,
    "list": list,
    "dict": dict,
    "any": any,
    "all": all,
    "range": _bounded_range,
    "enumerate": lambda seq, start=0: list(enumerate(seq, start)),
    "zip": lambda *seqs: list(zip(*seqs)),
}


@dataclass
class ScriptOutcome:
    """What a finished script produced."""

    result: Any = None
    console: list[tuple[str, str]] = field(default_factory=list)


class _Return(Exception):
    def __init__(self, value: Any):
        self.value = value


class _Break(Exception):
    pass


class _Continue(Exception):
    pass


_NO_VALUE = object()


class ScriptInterpreter:
    """Walks a parsed script against a private namespace."""

    def __init__(self, names: Optional[Mapping[str, Any]] = None, max_steps: int = MAX_STEPS):
        self.globals = dict(names or {})
        self.locals: dict[str, Any] = {}
        self.console: list[tuple[str, str]] = []
        self.max_steps = max_steps
        self.steps = 0
        self.last_expression: Any = _NO_VALUE
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        """Stop the script at its next statement. Safe to call from any thread."""
        self._cancelled.set()

    def run(self, source: str) -> ScriptOutcome:
        tree = parse_script(source)
        try:
            self._exec_block(tree.body)
        except _Return as ret:
            return ScriptOutcome(result=ret.value, console=self.console)
        except (_Break, _Continue):
            raise SandboxError("'break' or 'continue' outside loop")

        if "result" in self.locals:
            value = self.locals["result"]
        elif self.last_expression is not _NO_VALUE:
            value = self.last_expression
        else:
            value = None
        return ScriptOutcome(result=value, console=self.console)

    # ─── Statements ────────────────────────────────────────

    def _exec_block(self, body: list[ast.stmt]) -> None:
        for stmt in body:
            self._exec(stmt)

    def _exec(self, stmt: ast.stmt) -> None:
        if self._cancelled.is_set():
            raise SandboxError("Script cancelled")
        self.steps += 1
        if self.steps > self.max_steps:
            raise SandboxError(f"Script exceeded {self.max_steps} steps")

        if isinstance(stmt, ast.Expr):
            self.last_expression = self._eval(stmt.value)
        elif isinstance(stmt, ast.Assign):
            value = self._eval(stmt.value)
            for target in stmt.targets:
                self._assign(target, value)
        elif isinstance(stmt, ast.AnnAssign):
            if stmt.value is not None:
                self._assign(stmt.target, self._eval(stmt.value))
        elif isinstance(stmt, ast.AugAssign):
            op = _BIN_OPS.get(type(stmt.op))
            if op is None:
                raise SandboxError("Unsupported augmented assignment")
            current = self._eval(stmt.target)
            self._assign(stmt.target, self._binop(op, current, self._eval(stmt.value)))
        elif isinstance(stmt, ast.If):
            if self._eval(stmt.test):
                self._exec_block(stmt.body)
            else:
                self._exec_block(stmt.orelse)
        elif isinstance(stmt, ast.For):
            self._exec_for(stmt)
        elif isinstance(stmt, ast.Return):
            raise _Return(self._eval(stmt.value) if stmt.value is not None else None)
        elif isinstance(stmt, ast.Break):
            raise _Break()
        elif isinstance(stmt, ast.Continue):
            raise _Continue()
        elif isinstance(stmt, ast.Pass):
            return
        else:
            raise SandboxError(f"Unsupported statement: {type(stmt).__name__}")

    def _exec_for(self, stmt: ast.For) -> None:
        iterable = self._eval(stmt.iter)
        if isinstance(iterable, dict):
            iterable = list(iterable.keys())
        if not isinstance(iterable, (list, tuple, str)):
            raise SandboxError("for loops can only iterate lists, tuples, strings or dicts")

        broke = False
        for item in list(iterable):
            self._assign(stmt.target, item)
            try:
                self._exec_block(stmt.body)
            except _Break:
                broke = True
                break
            except _Continue:
                continue
        if not broke:
            self._exec_block(stmt.orelse)

    def _assign(self, target: ast.expr, value: Any) -> None:
        if isinstance(target, ast.Name):
            self.locals[target.id] = value
        elif isinstance(target, (ast.Tuple, ast.List)):
            values = list(value)
            if len(values) != len(target.elts):
                raise SandboxError("Unpacking length mismatch")
            for elt, item in zip(target.elts, values):
                self._assign(elt, item)
        elif isinstance(target, ast.Subscript):
            container = self._eval(target.value)
            if not isinstance(container, (dict, list)):
                raise SandboxError("Only dict and list items can be assigned")
            container[self._eval(target.slice)] = value
        else:
            raise SandboxError(f"Unsupported assignment target: {type(target).__name__}")

    # ─── Expressions ───────────────────────────────────────

    def _eval(self, node: ast.AST, depth: int = 0) -> Any:
        if depth > _MAX_DEPTH:
            raise SandboxError("Expression too deeply nested")
        nxt = depth + 1

        if isinstance(node, ast.Constant):
            return node.value

        if isinstance(node, ast.Name):
            if node.id in self.locals:
                return self.locals[node.id]
            if node.id in self.globals:
                return self.globals[node.id]
            raise SandboxError(f"Unknown name '{node.id}'")

        if isinstance(node, ast.BoolOp):
            if isinstance(node.op, ast.And):
                value: Any = True
                for operand in node.values:
                    value = self._eval(operand, nxt)
                    if not value:
                        return value
                return value
            value = False
            for operand in node.values:
                value = self._eval(operand, nxt)
                if value:
                    return value
            return value

        if isinstance(node, ast.UnaryOp):
            operand = self._eval(node.operand, nxt)
            if isinstance(node.op, ast.Not):
                return not operand
            if isinstance(node.op, ast.USub):
                return -operand
            if isinstance(node.op, ast.UAdd):
                return +operand
            raise SandboxError("Unsupported unary operator")

        if isinstance(node, ast.BinOp):
            op = _BIN_OPS.get(type(node.op))
            if op is None:
                raise SandboxError("Unsupported binary operator")
            return self._binop(op, self._eval(node.left, nxt), self._eval(node.right, nxt))

        if isinstance(node, ast.Compare):
            left = self._eval(node.left, nxt)
            for op_node, comparator in zip(node.ops, node.comparators):
                op = _CMP_OPS.get(type(op_node))
                if op is None:
                    raise SandboxError("Unsupported comparison")
                right = self._eval(comparator, nxt)
                if not op(left, right):
                    return False
                left = right
            return True

        if isinstance(node, ast.IfExp):
            if self._eval(node.test, nxt):
                return self._eval(node.body, nxt)
            return self._eval(node.orelse, nxt)

        if isinstance(node, ast.Call):
            return self._call(node, nxt)

        if isinstance(node, ast.Subscript):
            target = self._eval(node.value, nxt)
            index = self._eval(node.slice, nxt)
            if not isinstance(target, (dict, list, tuple, str)):
                raise SandboxError("Subscript target must be a dict, list, tuple or string")
            try:
                return target[index]
            except (KeyError, IndexError, TypeError) as e:
                raise SandboxError(f"Invalid subscript: {e!r}")

        if isinstance(node, ast.Slice):
            return slice(
                self._eval(node.lower, nxt) if node.lower is not None else None,
                self._eval(node.upper, nxt) if node.upper is not None else None,
                self._eval(node.step, nxt) if node.step is not None else None,
            )

        if isinstance(node, ast.Tuple):
            return tuple(self._eval(elt, nxt) for elt in node.elts)

        if isinstance(node, ast.List):
            return [self._eval(elt, nxt) for elt in node.elts]

        if isinstance(node, ast.Dict):
            result = {}
            for key, value in zip(node.keys, node.values):
                if key is None:
                    merged = self._eval(value, nxt)
                    if not isinstance(merged, dict):
                        raise SandboxError("Only dicts can be unpacked with **")
                    result.update(merged)
                else:
                    result[self._eval(key, nxt)] = self._eval(value, nxt)
            return result

        if isinstance(node, ast.JoinedStr):
            parts = []
            for value in node.values:
                if isinstance(value, ast.FormattedValue):
                    parts.append(TemplateResolver.stringify(self._eval(value.value, nxt)))
                else:
                    parts.append(str(self._eval(value, nxt)))
            return _checked_size("".join(parts))

        raise SandboxError(f"Unsupported expression: {type(node).__name__}")

    def _call(self, node: ast.Call, depth: int) -> Any:
        for kw in node.keywords:
            if kw.arg is None:
                raise SandboxError("Keyword unpacking is not allowed")
        args = [self._eval(arg, depth) for arg in node.args]
        kwargs = {kw.arg: self._eval(kw.value, depth) for kw in node.keywords}

        func = node.func
        if isinstance(func, ast.Attribute):
            if not (isinstance(func.value, ast.Name) and func.value.id == "console"):
                raise SandboxError("Attribute access is not allowed")
            level = _CONSOLE_METHODS.get(func.attr)
            if level is None:
                raise SandboxError(f"console.{func.attr} is not available")
            message = " ".join(TemplateResolver.stringify(a) for a in args)
            self.console.append((level, message))
            return None

        if not isinstance(func, ast.Name) or func.id not in ALLOWED_CALLABLES:
            name = func.id if isinstance(func, ast.Name) else type(func).__name__
            raise SandboxError(f"Call to '{name}' is not allowed")
        try:
            return _checked_size(ALLOWED_CALLABLES[func.id](*args, **kwargs))
        except SandboxError:
            raise
        except (TypeError, ValueError, ArithmeticError, KeyError, IndexError) as e:
            raise SandboxError(f"{func.id}() failed: {e}")

    @staticmethod
    def _binop(op: Any, left: Any, right: Any) -> Any:
        if op is operator.pow:
            if isinstance(right, (int, float)) and abs(right) > MAX_EXPONENT:
                raise SandboxError("Exponent too large")
            if isinstance(left, int) and isinstance(right, int) and right > 0:
                if abs(left).bit_length() * right > MAX_INTEGER_BITS:
                    raise SandboxError("Integer result too large")
        elif op is operator.mul:
            for seq, count in ((left, right), (right, left)):
                if isinstance(seq, (str, list, tuple)) and isinstance(count, int):
                    if len(seq) * count > MAX_SEQUENCE_LENGTH:
                        raise SandboxError("Sequence too large")
            if isinstance(left, int) and isinstance(right, int):
                if left.bit_length() + right.bit_length() > MAX_INTEGER_BITS:
                    raise SandboxError("Integer result too large")
        elif op is operator.add:
            if isinstance(left, (str, list, tuple)) and isinstance(right, (str, list, tuple)):
                if len(left) + len(right) > MAX_SEQUENCE_LENGTH:
                    raise SandboxError("Sequence too large")
        try:
            return op(left, right)
        except (TypeError, ArithmeticError) as e:
            raise SandboxError(str(e))


def parse_script(source: str) -> ast.Module:
    """Parse a script and reject forbidden constructs up front."""
    try:
        tree = ast.parse(source, mode="exec")
    except SyntaxError as e:
        raise SandboxError(f"Syntax error: {e.msg} (line {e.lineno})")

    for node in ast.walk(tree):
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            raise SandboxError("Imports are not allowed")
        if isinstance(node, _FORBIDDEN_NODES):
            raise SandboxError(f"{type(node).__name__} is not allowed")
        if isinstance(node, ast.Attribute):
            if not (isinstance(node.value, ast.Name) and node.value.id == "console"):
                raise SandboxError("Attribute access is not allowed")
        if isinstance(node, ast.Name) and node.id.startswith("__"):
            raise SandboxError("Dunder names are not allowed")
    return tree
