"""
Typed data model for the record engine.

Exports:
    BenefitRecord: Typed view over a store document
    Command, Filter, OperationKind, Operator: Parsed command language
    CommandResult: Per-command outcome
    parse_command, parse_filters: Command decoding
    dates: Spanish month names and DD/MM/YYYY dates
"""

from .benefit_record import BenefitRecord
from .commands import (
    Command,
    CommandResult,
    Filter,
    OperationKind,
    Operator,
    parse_command,
    parse_filters,
)

__all__ = [
    "BenefitRecord",
    "Command",
    "CommandResult",
    "Filter",
    "OperationKind",
    "Operator",
    "parse_command",
    "parse_filters",
]
