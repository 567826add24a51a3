"""
Tools for the interpretation stage.

Condenses command results into a structured context (summaries, trends and
key metrics) for the narrating model, and renders the rule-based narrative
used when the model is unavailable.
"""

import re
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ...core.logging_config import get_logger
from ...engine.result_formatter import analytics_kind_of, fmt_number, format_results
from ...models.commands import CommandResult

logger = get_logger(__name__)

NOT_AVAILABLE = "No disponible"

# Summary slot per analytics kind
SUMMARY_KEYS = {
    "investment": "investment",
    "redemption-rate": "redemption",
    "historical-rate": "redemption",
    "benefit-status": "benefitStatus",
    "active-users": "activeUsers",
    "top-categories": "categories",
    "compare-december": "decemberComparison",
    "month-progress": "monthProgress",
}

TIME_KEYWORDS = {
    "mes", "meses", "enero", "febrero", "marzo", "abril", "mayo", "junio", "julio",
    "agosto", "septiembre", "octubre", "noviembre", "diciembre", "actual", "pasado", "año"
}
METRIC_KEYWORDS = {
    "gasto", "inversión", "presupuesto", "tasa", "porcentaje", "redemption",
    "canje", "beneficios", "canjeados", "usuarios", "total", "costo"
}
INTENT_KEYWORDS = {
    "comparar", "mostrar", "ver", "progreso", "avance", "estado", "rendimiento",
    "performance", "cuánto", "cuántos", "mejor", "peor"
}

_PUNCTUATION_RE = re.compile(r"[.,;:¿?!¡]")


def _share(part: float, whole: float) -> str:
    return f"{part / whole * 100:.2f}%" if whole else "0%"


def extract_keywords(query: str) -> List[str]:
    """Tag time, metric and intent words of the query ("time:diciembre", ...)."""
    keywords = []
    for word in _PUNCTUATION_RE.sub("", query.lower()).split():
        if word in TIME_KEYWORDS:
            keywords.append(f"time:{word}")
        if word in METRIC_KEYWORDS:
            keywords.append(f"metric:{word}")
        if word in INTENT_KEYWORDS:
            keywords.append(f"intent:{word}")
    return keywords


# ----------------------------------------------------------------------
# Summaries
# ----------------------------------------------------------------------

def summarize_investment(data: Mapping[str, Any]) -> Dict[str, Any]:
    by_category = data.get("investmentByCategory") or []
    total = data.get("totalInvestment") or 0
    refund = data.get("totalRefund") or 0
    return {
        "month": data.get("month") or "actual",
        "totalInvestment": total,
        "netInvestment": data.get("netInvestment") or 0,
        "refundAmount": refund,
        "refundPercentage": _share(refund, total),
        "topCategory": by_category[0]["category"] if by_category else NOT_AVAILABLE,
        "topCategoryAmount": by_category[0]["investment"] if by_category else 0,
        "categoryCount": len(by_category),
    }


def summarize_redemption(data: Mapping[str, Any]) -> Dict[str, Any]:
    if "monthlyRates" in data:
        rates = [(r["month"], r["redemptionRate"]) for r in data["monthlyRates"]]
        best = max(rates, key=lambda r: r[1], default=None)
        worst = min(rates, key=lambda r: r[1], default=None)
        return {
            "type": "historical",
            "globalRate": data.get("globalRate") or 0,
            "totalRedeemed": data.get("totalRedeemed") or 0,
            "totalBenefits": data.get("totalBenefits") or 0,
            "monthCount": len(rates),
            "bestMonth": f"{best[0]} ({fmt_number(best[1])}%)" if best else NOT_AVAILABLE,
            "worstMonth": f"{worst[0]} ({fmt_number(worst[1])}%)" if worst else NOT_AVAILABLE,
            "decemberComparison": data.get("comparisonWithDecember"),
        }

    return {
        "type": "specific",
        "date": data.get("date") or "actual",
        "month": data.get("month") or "actual",
        "redemptionRate": data.get("redemptionRate") or 0,
        "totalRedeemed": data.get("totalRedeemed") or 0,
        "totalBenefits": data.get("totalBenefits") or 0,
        "redeemedOnDate": data.get("redeemedOnDate") or 0,
        "dailyRate": data.get("dailyRate") or 0,
    }


def summarize_benefit_status(data: Mapping[str, Any]) -> Dict[str, Any]:
    total = data.get("totalUsers") or 0
    pending = data.get("pendingCount") or 0
    used = data.get("usedCount") or 0
    pending_users = data.get("usersWithPendingBenefits") or []
    return {
        "totalUsers": total,
        "usersWithPending": pending,
        "usersWithUsed": used,
        "usersWithNotSelected": data.get("notSelectedCount") or 0,
        "pendingPercentage": _share(pending, total),
        "usedPercentage": _share(used, total),
        "pendingUserSample": (
            ", ".join(u["name"] for u in pending_users[:3]) if pending_users else "Ninguno"
        ),
    }


def _distribution(entries: Sequence[Mapping[str, Any]], label: str) -> str:
    if not entries:
        return NOT_AVAILABLE
    return ", ".join(
        f"{e[label]}: {e['count']} ({fmt_number(e['percentage'])}%)" for e in entries
    )


def _dominant(entries: Sequence[Mapping[str, Any]], label: str) -> str:
    if not entries:
        return NOT_AVAILABLE
    return max(entries, key=lambda e: e["count"])[label]


def summarize_active_users(data: Mapping[str, Any]) -> Dict[str, Any]:
    by_gender = data.get("byGender") or []
    by_generation = data.get("byGeneration") or []
    return {
        "month": data.get("month") or "actual",
        "totalActiveUsers": data.get("totalActiveUsers") or 0,
        "genderDistribution": _distribution(by_gender, "gender"),
        "generationDistribution": _distribution(by_generation, "generation"),
        "dominantGender": _dominant(by_gender, "gender"),
        "dominantGeneration": _dominant(by_generation, "generation"),
    }


def summarize_categories(data: Mapping[str, Any]) -> Dict[str, Any]:
    top = data.get("topCategories") or []
    december_top = (data.get("comparisonWithDecember") or {}).get("topDecemberCategories")
    return {
        "totalCategories": data.get("totalCategories") or 0,
        "topCategory": (
            f"{top[0]['category']} ({fmt_number(top[0]['percentage'])}%)" if top else NOT_AVAILABLE
        ),
        "topCategoriesList": (
            ", ".join(
                f"{i}. {c['category']} ({fmt_number(c['percentage'])}%)" for i, c in enumerate(top, 1)
            ) if top else NOT_AVAILABLE
        ),
        "topByMonth": data.get("topCategoryByMonth") or [],
        "decemberTop": (
            ", ".join(c["category"] for c in december_top) if december_top else NOT_AVAILABLE
        ),
    }


def summarize_december_comparison(data: Mapping[str, Any]) -> Dict[str, Any]:
    december = data.get("december") or {}
    others = data.get("otherMonths") or {}
    average = others.get("avgPerMonth") or {}
    differences = data.get("differences") or {}
    percentage_diff = data.get("percentageDiff") or {}
    total_diff = differences.get("total", 0)
    redemption_diff = (data.get("conclusion") or {}).get("redemptionRateDiff", 0)
    investment_diff = differences.get("investment", 0)

    return {
        "decemberTotal": december.get("total", 0),
        "decemberRedeemed": december.get("redeemed", 0),
        "decemberRate": december.get("redemptionRate", 0),
        "decemberInvestment": december.get("investment", 0),
        "averageOtherMonths": average.get("total", 0),
        "averageOtherRedeemed": average.get("redeemed", 0),
        "averageOtherRate": others.get("redemptionRate", 0),
        "totalDifference": {
            "value": total_diff,
            "percentage": percentage_diff.get("total", 0),
            "isHigher": total_diff > 0,
        },
        "redemptionDifference": {
            "value": redemption_diff,
            "isHigher": redemption_diff > 0,
        },
        "investmentDifference": {
            "value": investment_diff,
            "percentage": percentage_diff.get("investment", 0),
            "isHigher": investment_diff > 0,
        },
    }


SUMMARIZERS = {
    "investment": summarize_investment,
    "redemption": summarize_redemption,
    "benefitStatus": summarize_benefit_status,
    "activeUsers": summarize_active_users,
    "categories": summarize_categories,
    "decemberComparison": summarize_december_comparison,
    "monthProgress": dict,
}


# ----------------------------------------------------------------------
# Trends and key metrics
# ----------------------------------------------------------------------

def identify_trends(summary: Mapping[str, Any]) -> List[str]:
    """Threshold-based observations over the summaries."""
    trends = []

    investment = summary.get("investment")
    if investment and investment["refundAmount"] > 0 and investment["totalInvestment"] > 0:
        refund_percent = investment["refundAmount"] / investment["totalInvestment"] * 100
        if refund_percent > 30:
            trends.append(f"Alta tasa de devolución ({refund_percent:.2f}%) sobre inversión total")
        elif refund_percent < 10:
            trends.append(f"Baja tasa de devolución ({refund_percent:.2f}%) sobre inversión total")

    redemption = summary.get("redemption")
    if redemption:
        if redemption["type"] == "specific" and redemption["redemptionRate"] > 0:
            rate = fmt_number(redemption["redemptionRate"])
            if redemption["redemptionRate"] > 85:
                trends.append(f"Excelente tasa de canje ({rate}%) para {redemption['month']}")
            elif redemption["redemptionRate"] < 50:
                trends.append(f"Baja tasa de canje ({rate}%) para {redemption['month']}")

        if redemption["type"] == "historical" and redemption["globalRate"] > 0:
            rate = fmt_number(redemption["globalRate"])
            if redemption["globalRate"] > 85:
                trends.append(f"Excelente tasa de canje histórica ({rate}%)")
            elif redemption["globalRate"] < 50:
                trends.append(f"Tasa de canje histórica por debajo del objetivo ({rate}%)")

    december = summary.get("decemberComparison")
    if december:
        total = december["totalDifference"]
        if total["isHigher"] and total["percentage"] > 20:
            trends.append(
                f"Diciembre tuvo un rendimiento {fmt_number(total['percentage'])}% superior al promedio"
            )
        elif not total["isHigher"] and abs(total["percentage"]) > 20:
            trends.append(
                f"Diciembre tuvo un rendimiento {fmt_number(abs(total['percentage']))}% inferior al promedio"
            )

        redemption_diff = december["redemptionDifference"]
        if redemption_diff["isHigher"] and redemption_diff["value"] > 10:
            trends.append(
                f"La tasa de canje en diciembre fue {fmt_number(redemption_diff['value'])}% superior al promedio"
            )
        elif not redemption_diff["isHigher"] and abs(redemption_diff["value"]) > 10:
            trends.append(
                f"La tasa de canje en diciembre fue {fmt_number(abs(redemption_diff['value']))}% inferior al promedio"
            )

    status = summary.get("benefitStatus")
    if status and status["totalUsers"] > 0:
        if status["usersWithPending"] > status["usersWithUsed"]:
            pending_percent = status["usersWithPending"] / status["totalUsers"] * 100
            trends.append(f"Alta proporción de beneficios pendientes ({pending_percent:.2f}%)")

        not_selected_percent = status["usersWithNotSelected"] / status["totalUsers"] * 100
        if not_selected_percent > 15:
            trends.append(
                f"Alto porcentaje de usuarios sin seleccionar beneficio ({not_selected_percent:.2f}%)"
            )

    logger.debug(f"Identified {len(trends)} trends")
    return trends


def extract_key_metrics(summary: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """Headline numbers, each as ``{name, value, context}``."""
    metrics = []

    investment = summary.get("investment")
    if investment:
        metrics.append({
            "name": "Total inversión",
            "value": investment["totalInvestment"],
            "context": f"para {investment['month']}"
        })
        metrics.append({
            "name": "Inversión neta",
            "value": investment["netInvestment"],
            "context": "después de devoluciones"
        })

    redemption = summary.get("redemption")
    if redemption:
        if redemption["type"] == "specific":
            metrics.append({
                "name": "Tasa de canje",
                "value": f"{fmt_number(redemption['redemptionRate'])}%",
                "context": f"para {redemption['month']}"
            })
        else:
            metrics.append({
                "name": "Tasa histórica",
                "value": f"{fmt_number(redemption['globalRate'])}%",
                "context": "promedio general"
            })

    active = summary.get("activeUsers")
    if active:
        metrics.append({
            "name": "Usuarios activos",
            "value": active["totalActiveUsers"],
            "context": f"en {active['month']}"
        })

    status = summary.get("benefitStatus")
    if status:
        metrics.append({
            "name": "Beneficios canjeados",
            "value": status["usersWithUsed"],
            "context": f"de {status['totalUsers']} totales"
        })
        metrics.append({
            "name": "Beneficios pendientes",
            "value": status["usersWithPending"],
            "context": f"de {status['totalUsers']} totales"
        })

    progress = summary.get("monthProgress")
    if progress:
        metrics.append({
            "name": "Progreso del mes",
            "value": f"{progress['progress']}%",
            "context": f"día {progress['currentDay']} de {progress['lastDay']}"
        })

    return metrics


# ----------------------------------------------------------------------
# Structured context
# ----------------------------------------------------------------------

def _as_result(item: Any) -> CommandResult:
    if isinstance(item, CommandResult):
        return item
    return CommandResult(item.get("command", ""), item.get("result"), item.get("error"))


def build_structured_context(results: Sequence[Any], query: str) -> Dict[str, Any]:
    """
    Condense command results for the narrating model.

    Args:
        results: CommandResults (or their dict form)
        query: Original user question

    Returns:
        dict with summary, details, trends, keyMetrics, keywords and originalQuery
    """
    context: Dict[str, Any] = {
        "originalQuery": query,
        "summary": {},
        "details": {},
        "trends": [],
        "keyMetrics": [],
        "keywords": extract_keywords(query),
    }

    for item in results:
        result = _as_result(item)
        if not result.ok:
            continue

        slot = SUMMARY_KEYS.get(analytics_kind_of(result.command))
        payload = result.result

        if slot is None:
            context["details"].setdefault("general", []).append(result.to_dict())
            continue

        if not isinstance(payload, Mapping) or payload.get("error"):
            logger.debug(f"Skipping {result.command}: no data")
            continue

        context["summary"][slot] = SUMMARIZERS[slot](payload)
        if slot != "monthProgress":
            context["details"][slot] = payload

    context["trends"] = identify_trends(context["summary"])
    context["keyMetrics"] = extract_key_metrics(context["summary"])

    logger.info(
        "Structured context generated",
        extra={
            "summary_keys": list(context["summary"]),
            "trend_count": len(context["trends"]),
            "key_metric_count": len(context["keyMetrics"])
        }
    )
    return context


# ----------------------------------------------------------------------
# Rule-based narrative
# ----------------------------------------------------------------------

def render_fallback_narrative(
    context: Mapping[str, Any],
    results: Optional[Sequence[Any]] = None
) -> str:
    """
    Narrate the structured context with fixed Spanish templates.

    When no template applies the formatted results are appended, so the
    text is never empty.
    """
    summary = context.get("summary") or {}
    parts = []

    investment = summary.get("investment")
    if investment:
        parts.append(
            f"La inversión total en {investment['month'] or 'el período actual'} fue de "
            f"${fmt_number(investment['totalInvestment'])}. "
        )
        if investment["refundAmount"] > 0:
            parts.append(
                f"Se registraron devoluciones por ${fmt_number(investment['refundAmount'])}, "
                f"resultando en una inversión neta de ${fmt_number(investment['netInvestment'])}. "
            )

    redemption = summary.get("redemption")
    if redemption:
        if redemption["type"] == "specific":
            parts.append(
                f"La tasa de canje para {redemption['month'] or 'el mes actual'} es de "
                f"{fmt_number(redemption['redemptionRate'])}%. "
            )
            if redemption["totalBenefits"] > 0:
                parts.append(
                    f"Se han canjeado {redemption['totalRedeemed']} de un total de "
                    f"{redemption['totalBenefits']} beneficios. "
                )
        else:
            parts.append(f"La tasa de canje histórica es de {fmt_number(redemption['globalRate'])}%. ")

    status = summary.get("benefitStatus")
    if status:
        parts.append(
            f"Actualmente hay {status['usersWithPending']} usuarios con beneficios pendientes "
            f"y {status['usersWithUsed']} con beneficios ya canjeados. "
        )

    progress = summary.get("monthProgress")
    if progress:
        parts.append(
            f"El mes actual lleva un progreso del {progress['progress']}% "
            f"(día {progress['currentDay']} de {progress['lastDay']}). "
        )

    active = summary.get("activeUsers")
    if active:
        parts.append(
            f"En {active['month']} hubo {active['totalActiveUsers']} usuarios activos. "
        )

    categories = summary.get("categories")
    if categories and categories["topCategory"] != NOT_AVAILABLE:
        parts.append(f"La categoría más popular es {categories['topCategory']}. ")

    december = summary.get("decemberComparison")
    if december:
        parts.append(
            f"En diciembre se registraron {december['decemberTotal']} beneficios, frente a un "
            f"promedio de {fmt_number(december['averageOtherMonths'])} en los demás meses. "
        )

    response = "He analizado la información solicitada. " + "".join(parts)

    if not parts:
        response += "\n\n" + format_results(list(results or []), context.get("originalQuery", ""))

    trends = context.get("trends") or []
    if trends:
        response += f"\n\nUna observación importante: {trends[0]} "

    return response
