"""
Predicate compiler: typed expressions to WHERE clauses.

Class-level access to a mapped field returns a FieldReference, and Python
operators on it build an expression tree:

    (City.pop2000 > 100000) & City.name.startswith('San')

to_where_clause renders the tree as a FeatureServer filter clause:

    ((POP2000 > 100000) AND (NAME LIKE 'San%'))

Rendering rules:
- Comparisons render as (field OP value). A literal written on the left is
  moved to the right and the operator mirrored.
- Equality with None renders IS NULL / IS NOT NULL.
- Strings are single-quoted with embedded quotes doubled, datetimes render as
  TIMESTAMP 'yyyy-MM-dd HH:mm:ss', domain members render as their code.
- contains/startswith/endswith render as LIKE with % wildcards.
- & | ~ render as AND, OR and NOT. Python's and/or/not cannot be overloaded,
  so truth-testing an expression raises UnsupportedExpression.

Anything else (arithmetic, nested comparisons, unknown values) raises
UnsupportedExpression.
"""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Optional, Union

from core.domain import Domain
from core.exceptions import UnsupportedExpression

_MIRRORED = {'=': '=', '<>': '<>', '<': '>', '<=': '>=', '>': '<', '>=': '<='}


class Expression:
    """Base node. Operators build larger expressions."""

    def __eq__(self, other):
        return Comparison('=', self, _wrap(other))

    def __ne__(self, other):
        return Comparison('<>', self, _wrap(other))

    def __lt__(self, other):
        return Comparison('<', self, _wrap(other))

    def __le__(self, other):
        return Comparison('<=', self, _wrap(other))

    def __gt__(self, other):
        return Comparison('>', self, _wrap(other))

    def __ge__(self, other):
        return Comparison('>=', self, _wrap(other))

    def __and__(self, other):
        return Logical('AND', self, _wrap(other))

    def __rand__(self, other):
        return Logical('AND', _wrap(other), self)

    def __or__(self, other):
        return Logical('OR', self, _wrap(other))

    def __ror__(self, other):
        return Logical('OR', _wrap(other), self)

    def __invert__(self):
        return Not(self)

    def __add__(self, other):
        return Arithmetic('+', self, _wrap(other))

    def __radd__(self, other):
        return Arithmetic('+', _wrap(other), self)

    def __sub__(self, other):
        return Arithmetic('-', self, _wrap(other))

    def __rsub__(self, other):
        return Arithmetic('-', _wrap(other), self)

    def __mul__(self, other):
        return Arithmetic('*', self, _wrap(other))

    def __rmul__(self, other):
        return Arithmetic('*', _wrap(other), self)

    def __truediv__(self, other):
        return Arithmetic('/', self, _wrap(other))

    def __bool__(self):
        raise UnsupportedExpression(
            "Expressions cannot be truth-tested; use & | ~ instead of and/or/not, "
            "and avoid chained comparisons."
        )

    __hash__ = object.__hash__


def _wrap(value: Any) -> Expression:
    return value if isinstance(value, Expression) else Literal(value)


class FieldReference(Expression):
    """A mapped field, as seen from the record class."""

    def __init__(self, field_name: str, python_type: type = None, wire_type=None):
        self.field_name = field_name
        self.python_type = python_type
        self.wire_type = wire_type

    def contains(self, value: str) -> 'StringMatch':
        return StringMatch('contains', self, _wrap(value))

    def startswith(self, value: str) -> 'StringMatch':
        return StringMatch('startswith', self, _wrap(value))

    def endswith(self, value: str) -> 'StringMatch':
        return StringMatch('endswith', self, _wrap(value))

    def __repr__(self) -> str:
        return f"FieldReference({self.field_name!r})"


class Literal(Expression):
    def __init__(self, value: Any):
        self.value = value

    def __repr__(self) -> str:
        return f"Literal({self.value!r})"


class Comparison(Expression):
    def __init__(self, operator: str, left: Expression, right: Expression):
        self.operator = operator
        self.left = left
        self.right = right


class Logical(Expression):
    def __init__(self, operator: str, left: Expression, right: Expression):
        self.operator = operator
        self.left = left
        self.right = right


class Not(Expression):
    def __init__(self, operand: Expression):
        self.operand = operand


class StringMatch(Expression):
    def __init__(self, method: str, target: Expression, pattern: Expression):
        self.method = method
        self.target = target
        self.pattern = pattern


class Arithmetic(Expression):
    def __init__(self, operator: str, left: Expression, right: Expression):
        self.operator = operator
        self.left = left
        self.right = right


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def _quote(text: str) -> str:
    return "'" + text.replace("'", "''") + "'"


def _is_string_field(field: Optional[FieldReference]) -> Optional[bool]:
    if field is None or field.wire_type is None:
        return None
    return getattr(field.wire_type, 'value', field.wire_type) in (
        'esriFieldTypeString', 'esriFieldTypeGUID', 'esriFieldTypeGlobalID')


def render_value(value: Any, field: Optional[FieldReference] = None) -> str:
    """Render a Python value as a WHERE clause literal."""
    if value is None:
        return 'NULL'

    if isinstance(value, Domain):
        code = value.code
        as_string = _is_string_field(field)
        if as_string is None:
            as_string = isinstance(code, str)
        return _quote(str(code)) if as_string else str(code)

    if isinstance(value, Enum):
        return render_value(value.value, field)

    if isinstance(value, bool):
        return '1' if value else '0'

    if isinstance(value, (int, float)):
        return repr(value)

    if isinstance(value, str):
        return _quote(value)

    if isinstance(value, datetime):
        return f"TIMESTAMP '{value.strftime('%Y-%m-%d %H:%M:%S')}'"

    if isinstance(value, date):
        return f"TIMESTAMP '{value.strftime('%Y-%m-%d')} 00:00:00'"

    if isinstance(value, uuid.UUID):
        return _quote('{' + str(value).upper() + '}')

    raise UnsupportedExpression(f"Values of type '{type(value).__name__}' are not supported.")


def _render_operand(node: Expression, field: Optional[FieldReference]) -> str:
    if isinstance(node, FieldReference):
        return node.field_name
    if isinstance(node, Literal):
        return render_value(node.value, field)
    raise UnsupportedExpression(f"'{type(node).__name__}' is not supported as a comparison operand.")


def _render_comparison(node: Comparison) -> str:
    left, right, operator = node.left, node.right, node.operator

    if isinstance(left, Literal) and not isinstance(right, Literal):
        left, right, operator = right, left, _MIRRORED[operator]

    field = left if isinstance(left, FieldReference) else None

    if isinstance(right, Literal) and right.value is None and operator in ('=', '<>'):
        return f"({_render_operand(left, None)} {'IS NULL' if operator == '=' else 'IS NOT NULL'})"

    if isinstance(right, FieldReference) and field is None:
        field = right

    return f"({_render_operand(left, field)} {operator} {_render_operand(right, field)})"


def _render_match(node: StringMatch) -> str:
    if not isinstance(node.target, FieldReference):
        raise UnsupportedExpression(f"'{node.method}' must be called on a field.")
    if not isinstance(node.pattern, Literal) or not isinstance(node.pattern.value, str):
        raise UnsupportedExpression(f"'{node.method}' requires a string argument.")

    text = node.pattern.value
    pattern = {
        'contains': f"%{text}%",
        'startswith': f"{text}%",
        'endswith': f"%{text}",
    }[node.method]
    return f"({node.target.field_name} LIKE {_quote(pattern)})"


def _render(node: Expression) -> str:
    if isinstance(node, Comparison):
        return _render_comparison(node)

    if isinstance(node, Logical):
        return f"({_render(node.left)} {node.operator} {_render(node.right)})"

    if isinstance(node, Not):
        return f"NOT ({_render(node.operand)})"

    if isinstance(node, StringMatch):
        return _render_match(node)

    if isinstance(node, Literal) and isinstance(node.value, bool):
        return '(1=1)' if node.value else '(1=0)'

    raise UnsupportedExpression(f"'{type(node).__name__}' is not supported.")


def to_where_clause(
    predicate: Union[None, str, Expression, Callable[[type], Expression]],
    feature_type: Optional[type] = None
) -> Optional[str]:
    """
    Compile a predicate into a WHERE clause.

    Parameters:
    -----------
    predicate : None, str, Expression or Callable
        A clause passed through verbatim, an expression tree, or a callable
        that receives feature_type and returns an expression tree
    feature_type : Optional[type]
        Record class handed to callable predicates

    Returns:
    --------
    Optional[str]
        WHERE clause, or None when predicate is None

    Raises:
    -------
    UnsupportedExpression
        If the tree contains a node or value outside the supported subset
    """
    if predicate is None or isinstance(predicate, str):
        return predicate

    if not isinstance(predicate, Expression) and callable(predicate):
        predicate = predicate(feature_type)

    if not isinstance(predicate, Expression):
        raise UnsupportedExpression(f"'{type(predicate).__name__}' is not a predicate expression.")

    return _render(predicate)
