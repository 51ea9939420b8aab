"""Access policy evaluation.

Policies are boolean expressions over the caller identity::

    "admins" in groups or email.endswith("@example.com")

Only a small whitelist of Python expression syntax is accepted. CEL-style
``&&``, ``||``, ``!``, ``true``, ``false``, ``startsWith`` and ``endsWith``
are accepted as aliases so existing policies keep working.
"""

from __future__ import annotations

import ast
import logging
import operator
import re
from typing import TYPE_CHECKING, Any

from webforms.core.errors import PolicyEvaluationError

if TYPE_CHECKING:
    from webforms.schemas.forms import Credentials, FormDefinition

logger = logging.getLogger(__name__)

ATTRIBUTE_NAMES = frozenset({"user", "email", "groups"})
CONSTANT_NAMES = {"true": True, "false": False, "null": None, "True": True, "False": False, "None": None}
ALLOWED_METHODS = frozenset({"startswith", "endswith", "lower", "upper", "strip"})
ALLOWED_FUNCTIONS = {"len": len}
METHOD_ALIASES = {"startsWith": "startswith", "endsWith": "endswith"}

_ALLOWED_NODES = (
    ast.Expression,
    ast.BoolOp,
    ast.And,
    ast.Or,
    ast.UnaryOp,
    ast.Not,
    ast.Compare,
    ast.Eq,
    ast.NotEq,
    ast.In,
    ast.NotIn,
    ast.Lt,
    ast.LtE,
    ast.Gt,
    ast.GtE,
    ast.Name,
    ast.Load,
    ast.Constant,
    ast.List,
    ast.Tuple,
    ast.Set,
    ast.Call,
    ast.Attribute,
)

# Operators outside string literals.
_CEL_TOKENS = re.compile(r"""("(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')|&&|\|\||!(?!=)""")


class PolicyCompileError(ValueError):
    """Policy expression is malformed or uses forbidden syntax."""


def _translate_cel(expression: str) -> str:
    def replace(match: re.Match) -> str:
        if match.group(1):
            return match.group(1)
        token = match.group(0)
        if token == "&&":
            return " and "
        if token == "||":
            return " or "
        return " not "

    text = _CEL_TOKENS.sub(replace, expression)
    for alias, method in METHOD_ALIASES.items():
        text = re.sub(rf"\.{alias}\s*\(", f".{method}(", text)
    return text


def _check_node(node: ast.AST) -> None:
    if not isinstance(node, _ALLOWED_NODES):
        raise PolicyCompileError(f"unsupported syntax: {type(node).__name__}")

    if isinstance(node, ast.Name):
        if node.id not in ATTRIBUTE_NAMES and node.id not in CONSTANT_NAMES and node.id not in ALLOWED_FUNCTIONS:
            raise PolicyCompileError(f"unknown name: {node.id}")

    if isinstance(node, ast.Attribute):
        # Attributes are only reachable as whitelisted method calls (checked on Call).
        if node.attr not in ALLOWED_METHODS:
            raise PolicyCompileError(f"unsupported attribute: {node.attr}")

    if isinstance(node, ast.Call):
        if node.keywords:
            raise PolicyCompileError("keyword arguments are not supported")
        func = node.func
        if isinstance(func, ast.Name):
            if func.id not in ALLOWED_FUNCTIONS:
                raise PolicyCompileError(f"unknown function: {func.id}")
        elif not isinstance(func, ast.Attribute):
            raise PolicyCompileError("unsupported call")

    for child in ast.iter_child_nodes(node):
        if isinstance(child, ast.Attribute) and not (isinstance(node, ast.Call) and child is node.func):
            raise PolicyCompileError(f"unsupported attribute access: {child.attr}")
        _check_node(child)


_COMPARISONS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda left, right: left in right,
    ast.NotIn: lambda left, right: left not in right,
}


def _interpret(node: ast.AST, names: dict[str, Any]) -> Any:
    """Walk a checked expression tree with Python semantics."""
    if isinstance(node, ast.Constant):
        return node.value

    if isinstance(node, ast.Name):
        if node.id in names:
            return names[node.id]
        return CONSTANT_NAMES[node.id]

    if isinstance(node, ast.BoolOp):
        # and/or return the deciding operand, as in Python
        value: Any = None
        for operand in node.values:
            value = _interpret(operand, names)
            if isinstance(node.op, ast.And) and not value:
                return value
            if isinstance(node.op, ast.Or) and value:
                return value
        return value

    if isinstance(node, ast.UnaryOp):
        return not _interpret(node.operand, names)

    if isinstance(node, ast.Compare):
        left = _interpret(node.left, names)
        for op, comparator in zip(node.ops, node.comparators):
            right = _interpret(comparator, names)
            if not _COMPARISONS[type(op)](left, right):
                return False
            left = right
        return True

    if isinstance(node, (ast.List, ast.Tuple)):
        return [_interpret(item, names) for item in node.elts]

    if isinstance(node, ast.Set):
        return {_interpret(item, names) for item in node.elts}

    if isinstance(node, ast.Call):
        args = [_interpret(arg, names) for arg in node.args]
        if isinstance(node.func, ast.Name):
            return ALLOWED_FUNCTIONS[node.func.id](*args)
        target = _interpret(node.func.value, names)
        if not isinstance(target, str):
            raise TypeError(f"{node.func.attr}() requires a string, got {type(target).__name__}")
        return getattr(str, node.func.attr)(target, *args)

    raise PolicyEvaluationError(f"unsupported syntax: {type(node).__name__}")


class PolicyEvaluator:
    """Compiled admission policy with a single evaluate operation."""

    def __init__(self, expression: str):
        self.expression = expression
        source = _translate_cel(expression).strip()
        if not source:
            raise PolicyCompileError("empty policy expression")
        try:
            tree = ast.parse(source, mode="eval")
        except SyntaxError as exc:
            raise PolicyCompileError(f"invalid policy {expression!r}: {exc.msg}") from exc
        _check_node(tree)
        self._tree = tree.body

    def evaluate(self, attributes: dict[str, Any]) -> Any:
        """
        Evaluate the expression against identity attributes.

        Returns the raw result (callers decide what a non-boolean means).
        Raises PolicyEvaluationError on any runtime failure.
        """
        names = {name: attributes.get(name) for name in ATTRIBUTE_NAMES}
        try:
            return _interpret(self._tree, names)
        except Exception as exc:
            raise PolicyEvaluationError(str(exc) or type(exc).__name__) from exc

    def __repr__(self) -> str:
        return f"PolicyEvaluator({self.expression!r})"


def credentials_attributes(creds: Credentials) -> dict[str, Any]:
    return {
        "user": creds.user,
        "email": creds.email,
        "groups": list(creds.groups),
    }


def is_allowed(form: FormDefinition, creds: Credentials | None) -> bool:
    """
    Check form admission for the provided credentials.

    Always allowed without a policy or without credentials. Denied when the
    policy fails to evaluate or returns anything but a boolean.
    """
    evaluator = form.policy_evaluator
    if evaluator is None or creds is None:
        return True
    try:
        result = evaluator.evaluate(credentials_attributes(creds))
    except PolicyEvaluationError as exc:
        logger.error("Failed to evaluate policy for form %s: %s", form.name, exc)
        return False
    if not isinstance(result, bool):
        logger.warning(
            "Policy for form %s returned non-boolean %s, denying",
            form.name,
            type(result).__name__,
        )
        return False
    return result
