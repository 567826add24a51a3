"""
Plain-text rendering of command results.

The first CommandResult of a batch decides the rendering: analytics payloads
use a fixed Spanish template per kind, benefit record lists get a category,
month and status breakdown, counts render as ``count: N`` and anything else
is pretty-printed JSON.

This text is what users see when narration is unavailable, so
``format_results`` never raises.
"""

import json
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Mapping, Sequence, Union

from ..core.logging_config import get_logger
from ..models.commands import CommandResult

logger = get_logger(__name__)

NO_RESULTS = "No hay resultados disponibles."
NOTHING_FOUND = "No se encontraron resultados para tu consulta."

ResultLike = Union[CommandResult, Mapping[str, Any]]


def fmt_number(value: Any) -> str:
    """Render numbers without a trailing ``.0`` (50.0 -> "50")."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _signed(value: Any) -> str:
    prefix = "+" if isinstance(value, (int, float)) and value > 0 else ""
    return f"{prefix}{fmt_number(value)}"


def _as_result(item: ResultLike) -> CommandResult:
    if isinstance(item, CommandResult):
        return item
    return CommandResult(
        command=str(item.get("command", "")),
        result=item.get("result"),
        error=item.get("error"),
    )


def analytics_kind_of(command: str) -> str:
    """Kind of an analytics command string, "" for other commands."""
    parts = command.split(":")
    if len(parts) > 2 and parts[1] == "analytics":
        return parts[2].strip().lower()
    return ""


# ----------------------------------------------------------------------
# Analytics templates
# ----------------------------------------------------------------------

def _month_progress(data: Mapping[str, Any]) -> str:
    return (
        f"Progreso del mes {data['month']}: {fmt_number(data['progress'])}% "
        f"(día {data['currentDay']} de {data['lastDay']})"
    )


def _redemption_rate(data: Mapping[str, Any]) -> str:
    return (
        f"Tasa de canje para {data['date']} ({data['month']}): {fmt_number(data['redemptionRate'])}%\n"
        f"Total de beneficios: {data['totalBenefits']}\n"
        f"Beneficios canjeados: {data['totalRedeemed']}\n"
        f"Canjeados este día: {data['redeemedOnDate']} ({fmt_number(data['dailyRate'])}%)"
    )


def _historical_rate(data: Mapping[str, Any]) -> str:
    output = (
        f"Tasa de canje histórica: {fmt_number(data['globalRate'])}%\n"
        f"Total de beneficios: {data['totalBenefits']}\n"
        f"Total canjeados: {data['totalRedeemed']}\n\n"
        "Detalle por mes:\n"
    )
    for month in data["monthlyRates"]:
        output += (
            f"- {month['month']}: {fmt_number(month['redemptionRate'])}% "
            f"({month['redeemed']}/{month['total']})\n"
        )

    comparison = data.get("comparisonWithDecember")
    if comparison:
        output += (
            "\nComparación de diciembre con otros meses:\n"
            f"- Tasa diciembre: {fmt_number(comparison['decemberRate'])}%\n"
            f"- Tasa otros meses: {fmt_number(comparison['otherMonthsRate'])}%\n"
            f"- Diferencia: {_signed(comparison['difference'])}% "
            f"({'mayor' if comparison['isHigher'] else 'menor'})\n"
        )
    return output


def _benefit_status(data: Mapping[str, Any]) -> str:
    pending = ", ".join(u["name"] for u in data["usersWithPendingBenefits"])
    not_selected = ", ".join(u["name"] for u in data["usersWithNotSelectedBenefits"])
    return (
        "Estado de beneficios:\n"
        f"Total de usuarios: {data['totalUsers']}\n"
        f"Usuarios con beneficios pendientes: {data['pendingCount']}\n"
        f"Usuarios con beneficios usados: {data['usedCount']}\n"
        f"Usuarios sin selección: {data['notSelectedCount']}\n\n"
        f"Pendientes: {pending}\n\n"
        f"Sin seleccionar: {not_selected}"
    )


def _active_users(data: Mapping[str, Any]) -> str:
    output = f"Usuarios activos en {data['month']}: {data['totalActiveUsers']}\n\n"
    output += "Por género:\n"
    for entry in data["byGender"]:
        output += f"- {entry['gender']}: {entry['count']} ({fmt_number(entry['percentage'])}%)\n"
    output += "\nPor generación:\n"
    for entry in data["byGeneration"]:
        output += f"- {entry['generation']}: {entry['count']} ({fmt_number(entry['percentage'])}%)\n"
    return output


def _investment(data: Mapping[str, Any]) -> str:
    output = (
        f"Inversión en {data['month']}:\n"
        f"Total invertido: ${fmt_number(data['totalInvestment'])}\n"
        f"Total devuelto: ${fmt_number(data['totalRefund'])}\n"
        f"Inversión neta: ${fmt_number(data['netInvestment'])}\n"
        f"Beneficios: {data['countBenefits']}\n\n"
        "Por categoría:\n"
    )
    for cat in data["investmentByCategory"]:
        output += (
            f"- {cat['category']}: ${fmt_number(cat['investment'])} "
            f"({fmt_number(cat['percentage'])}%) - {cat['count']} beneficios\n"
        )
    return output


def _top_categories(data: Mapping[str, Any]) -> str:
    output = "Top 5 categorías:\n"
    for index, cat in enumerate(data["topCategories"], 1):
        output += (
            f"{index}. {cat['category']}: {cat['count']} ({fmt_number(cat['percentage'])}%) "
            f"- Tasa de canje: {fmt_number(cat['redemptionRate'])}%\n"
        )

    output += "\nTop categoría por mes:\n"
    for month in data["topCategoryByMonth"]:
        output += (
            f"- {month['month']}: {month['topCategory']} "
            f"({month['count']} beneficios - {fmt_number(month['percentage'])}%)\n"
        )

    comparison = data.get("comparisonWithDecember") or {}
    if comparison.get("topDecemberCategories"):
        output += "\nComparación diciembre vs otros meses:\n"
        output += "Diciembre:\n"
        for index, cat in enumerate(comparison["topDecemberCategories"], 1):
            output += f"{index}. {cat['category']}: {cat['count']} ({fmt_number(cat['percentage'])}%)\n"

        output += "\nOtros meses (promedio):\n"
        for index, cat in enumerate(comparison.get("topOtherMonthsCategories", []), 1):
            output += (
                f"{index}. {cat['category']}: {fmt_number(cat['averagePerMonth'])} por mes "
                f"({fmt_number(cat['percentage'])}%)\n"
            )
    return output


def _compare_december(data: Mapping[str, Any]) -> str:
    december = data["december"]
    others = data["otherMonths"]
    average = others["avgPerMonth"]
    diff = data["differences"]
    pct = data["percentageDiff"]

    output = "Comparación de diciembre con otros meses:\n\n"
    output += (
        "Diciembre:\n"
        f"- Total de beneficios: {december['total']}\n"
        f"- Canjeados: {december['redeemed']} ({fmt_number(december['redemptionRate'])}%)\n"
        f"- Pendientes: {december['pending']}\n"
        f"- No seleccionados: {december['notSelected']}\n"
        f"- Inversión: ${fmt_number(december['investment'])}\n"
        f"- Usuarios únicos: {december['uniqueUsers']}\n"
    )
    output += (
        "\nPromedios otros meses:\n"
        f"- Total de beneficios: {fmt_number(average['total'])}\n"
        f"- Canjeados: {fmt_number(average['redeemed'])} ({fmt_number(others['redemptionRate'])}%)\n"
        f"- Pendientes: {fmt_number(average['pending'])}\n"
        f"- No seleccionados: {fmt_number(average['notSelected'])}\n"
        f"- Inversión: ${fmt_number(average['investment'])}\n"
        f"- Usuarios únicos: {fmt_number(others['uniqueUsersAvg'])}\n"
    )
    output += (
        "\nDiferencias (diciembre vs promedio):\n"
        f"- Total de beneficios: {_signed(diff['total'])} ({_signed(pct['total'])}%)\n"
        f"- Canjeados: {_signed(diff['redeemed'])} ({_signed(pct['redeemed'])}%)\n"
        f"- Tasa de canje: {_signed(data['conclusion']['redemptionRateDiff'])}%\n"
        f"- Inversión: ${_signed(diff['investment'])} ({_signed(pct['investment'])}%)\n"
    )
    output += "\nTop categorías diciembre:\n"
    for index, cat in enumerate(december["topCategories"], 1):
        output += f"{index}. {cat['category']}: {cat['count']}\n"
    return output


ANALYTICS_TEMPLATES: Dict[str, Callable[[Mapping[str, Any]], str]] = {
    "month-progress": _month_progress,
    "redemption-rate": _redemption_rate,
    "historical-rate": _historical_rate,
    "benefit-status": _benefit_status,
    "active-users": _active_users,
    "investment": _investment,
    "top-categories": _top_categories,
    "compare-december": _compare_december,
}


# ----------------------------------------------------------------------
# Raw data
# ----------------------------------------------------------------------

def _is_benefit_list(value: Any) -> bool:
    return (
        isinstance(value, list)
        and len(value) > 0
        and isinstance(value[0], Mapping)
        and bool(value[0].get("Beneficio_seleccionado"))
    )


def _distribution(items: Sequence[Mapping[str, Any]], field: str, default: str) -> "OrderedDict[str, int]":
    counts: "OrderedDict[str, int]" = OrderedDict()
    for item in items:
        key = item.get(field) or default
        counts[key] = counts.get(key, 0) + 1
    return counts


def _benefit_breakdown(records: List[Mapping[str, Any]]) -> str:
    output = f"Se encontraron {len(records)} registros.\n\n"

    output += "Distribución por categoría:\n"
    for category, count in _distribution(records, "Categoria", "Sin categoría").items():
        output += f"- {category}: {count}\n"

    output += "\nDistribución por mes:\n"
    for month, count in _distribution(records, "Mes_de_beneficio", "Sin mes").items():
        output += f"- {month}: {count}\n"

    states = _distribution(records, "Estado", "Sin estado")
    if states:
        output += "\nDistribución por estado:\n"
        for state, count in states.items():
            output += f"- {state}: {count}\n"

    output += "\nInformación encontrada:"
    return output


def format_results(results: Sequence[ResultLike], query_context: str = "") -> str:
    """
    Render a batch of command results as user-facing Spanish text.

    Args:
        results: CommandResults (or their dict form) in execution order
        query_context: Original user query, used only for logging

    Returns:
        Rendered text; never raises
    """
    try:
        if not results:
            return NO_RESULTS

        first = _as_result(results[0])
        if not first.ok:
            return f"Error: {first.error}"

        payload = first.result
        kind = analytics_kind_of(first.command)

        if kind:
            if isinstance(payload, Mapping) and payload.get("error"):
                return NOTHING_FOUND
            template = ANALYTICS_TEMPLATES.get(kind)
            if template is None:
                return (
                    f"Resultado del análisis {kind}: "
                    f"{json.dumps(payload, ensure_ascii=False, indent=2, default=str)}"
                )
            return template(payload)

        if isinstance(payload, list) and not payload:
            return NOTHING_FOUND

        if _is_benefit_list(payload):
            return _benefit_breakdown(payload)

        if isinstance(payload, Mapping) and isinstance(payload.get("count"), int) \
                and not isinstance(payload.get("count"), bool):
            return f"count: {payload['count']}"

        return json.dumps(payload, ensure_ascii=False, indent=2, default=str)

    except Exception as e:
        logger.error(
            f"Error formatting results: {str(e)}",
            extra={"query": query_context},
            exc_info=True
        )
        return f"Error al formatear resultados: {str(e)}"
