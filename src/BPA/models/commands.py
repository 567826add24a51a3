"""
Command language for the record engine.

Commands keep the wire format used by the assistant and its prompts:

    <prefix>:<operation>:<path>[:<filters>]
    <prefix>:analytics:<kind>[:<param>=<value>,...]

where ``<filters>`` is a comma separated list of ``field<op>value`` clauses and
``<op>`` is one of ``=, !=, <, <=, >, >=``.

Parsing produces a typed ``Command`` holding ``Filter`` clauses; both render
back to the wire format, so a parsed command can be logged or re-issued
verbatim.

Example:
    >>> cmd = parse_command("fb:query:userBenefits:Categoria=Comidas del Mundo,Inversion>=100")
    >>> cmd.operation, cmd.path
    (<OperationKind.QUERY: 'query'>, 'userBenefits')
    >>> [f.to_expression() for f in cmd.filters]
    ['Categoria=Comidas del Mundo', 'Inversion>=100']
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from ..core.exceptions import CommandParseError
from ..core.logging_config import get_logger

logger = get_logger(__name__)

FilterValue = Union[str, int, float, bool]

# field, operator (1-2 chars), value
_CLAUSE_RE = re.compile(r"^([^<>=!]+)([<>=!]{1,2})(.+)$", re.DOTALL)
_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_INTEGER_RE = re.compile(r"^[+-]?\d+$")
_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")


class OperationKind(str, Enum):
    GET = "get"
    QUERY = "query"
    COUNT = "count"
    SET = "set"
    UPDATE = "update"
    ANALYTICS = "analytics"


class Operator(str, Enum):
    EQ = "="
    NEQ = "!="
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="

    @classmethod
    def from_symbol(cls, symbol: str) -> "Operator":
        """Map a clause symbol to an operator; unknown pairs such as "==" mean equality."""
        try:
            return cls(symbol)
        except ValueError:
            return cls.EQ


@dataclass(frozen=True)
class Filter:
    field: str
    operator: Operator
    value: FilterValue

    def to_expression(self) -> str:
        return f"{self.field}{self.operator.value}{format_value(self.value)}"


@dataclass(frozen=True)
class Command:
    """A decoded command. For analytics, ``path`` is the analytics kind."""

    operation: OperationKind
    path: str
    filters: Tuple[Filter, ...] = ()
    prefix: str = "fb"

    @property
    def is_analytics(self) -> bool:
        return self.operation is OperationKind.ANALYTICS

    @property
    def analytics_kind(self) -> Optional[str]:
        return self.path if self.is_analytics else None

    @property
    def collection(self) -> str:
        """Path without the trailing document id."""
        head, _, _ = self.path.rpartition("/")
        return head or self.path

    @property
    def document_id(self) -> Optional[str]:
        """Trailing segment of a ``collection/document`` path."""
        head, _, tail = self.path.rpartition("/")
        return tail if head and tail else None

    def params(self) -> Dict[str, FilterValue]:
        """Named parameters of an analytics command (``=`` clauses only)."""
        return {
            f.field: f.value
            for f in self.filters
            if f.operator is Operator.EQ
        }

    def to_string(self) -> str:
        text = f"{self.prefix}:{self.operation.value}:{self.path}"
        if self.filters:
            text += ":" + ",".join(f.to_expression() for f in self.filters)
        return text

    def __str__(self) -> str:
        return self.to_string()


@dataclass
class CommandResult:
    """Outcome of one command. ``error`` set means the command failed."""

    command: str
    result: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, command: str, result: Any) -> "CommandResult":
        return cls(command=command, result=result)

    @classmethod
    def failure(cls, command: str, error: str) -> "CommandResult":
        return cls(command=command, error=error)

    def to_dict(self) -> Dict[str, Any]:
        if self.error is not None:
            return {"command": self.command, "error": self.error}
        return {"command": self.command, "result": self.result}


# ----------------------------------------------------------------------
# Values
# ----------------------------------------------------------------------

def coerce_value(raw: str) -> FilterValue:
    """
    Type a clause value: true/false -> bool, numeric literals -> int/float.

    Args:
        raw: Value text as written in the clause

    Returns:
        bool, int, float or the stripped string
    """
    text = raw.strip()
    if text == "true":
        return True
    if text == "false":
        return False
    if _NUMBER_RE.match(text):
        if _INTEGER_RE.match(text):
            return int(text)
        return float(text)
    return text


def format_value(value: FilterValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# ----------------------------------------------------------------------
# Parsing
# ----------------------------------------------------------------------

def parse_filter(clause: str) -> Optional[Filter]:
    """
    Parse one ``field<op>value`` clause.

    Clauses the operator pattern cannot match degrade to an equality on the
    text before the first ``=``; clauses without a field are dropped.

    Returns:
        Filter, or None if the clause carries nothing usable
    """
    match = _CLAUSE_RE.match(clause)
    if match:
        name, symbol, raw_value = match.groups()
        name = name.strip()
        if name:
            return Filter(name, Operator.from_symbol(symbol), coerce_value(raw_value))

    if "=" in clause:
        name, _, raw_value = clause.partition("=")
        name = name.strip()
        if name:
            return Filter(name, Operator.EQ, coerce_value(raw_value))

    logger.warning(f"Dropping unparsable filter clause: {clause!r}")
    return None


def parse_filters(expression: str) -> List[Filter]:
    """Parse a comma separated filter expression; empty clauses are ignored."""
    if not expression or not expression.strip():
        return []

    filters = []
    for clause in expression.split(","):
        if not clause.strip():
            continue
        parsed = parse_filter(clause)
        if parsed is not None:
            filters.append(parsed)
    return filters


def resolve_placeholders(path: str, context: Optional[Mapping[str, Any]] = None) -> str:
    """
    Replace ``{name}`` path segments from a parameter context.

    Unresolved placeholders are left untouched.

    Example:
        >>> resolve_placeholders("sessions/{userId}", {"userId": "u-42"})
        'sessions/u-42'
    """
    if not context:
        return path

    def _substitute(match: re.Match) -> str:
        value = context.get(match.group(1))
        return match.group(0) if value is None else str(value)

    return _PLACEHOLDER_RE.sub(_substitute, path)


def parse_command(
    text: str,
    prefix: str = "fb",
    context: Optional[Mapping[str, Any]] = None
) -> Command:
    """
    Decode a command string.

    Args:
        text: Raw command, e.g. "fb:analytics:investment:month=diciembre"
        prefix: Namespace the command must start with
        context: Values for ``{placeholder}`` path segments

    Returns:
        Command

    Raises:
        CommandParseError: If the namespace, operation or path is missing or invalid
    """
    raw = (text or "").strip()
    namespace, sep, rest = raw.partition(":")

    if namespace != prefix:
        raise CommandParseError(
            f"Command does not start with '{prefix}:'",
            details={"command": raw, "prefix": prefix}
        )

    if not sep or not rest.strip():
        raise CommandParseError(
            "Missing operation after namespace",
            details={"command": raw}
        )

    parts = rest.split(":", 2)
    op_token = parts[0].strip().lower()

    try:
        operation = OperationKind(op_token)
    except ValueError:
        raise CommandParseError(
            f"Unknown operation: {op_token}",
            details={"command": raw, "valid_operations": [op.value for op in OperationKind]}
        )

    path = parts[1].strip() if len(parts) > 1 else ""
    if not path:
        what = "analytics kind" if operation is OperationKind.ANALYTICS else "path"
        raise CommandParseError(f"Missing {what}", details={"command": raw})

    if operation is OperationKind.ANALYTICS:
        path = path.lower()
    else:
        path = resolve_placeholders(path, context)

    filters = parse_filters(parts[2]) if len(parts) > 2 else []

    return Command(
        operation=operation,
        path=path,
        filters=tuple(filters),
        prefix=prefix,
    )
