"""
Analytics calculators over the benefit snapshot.

Each calculator is a pure function of the snapshot records (plus ``today``
where the current date matters) and returns a JSON-serializable dict whose
keys are part of the assistant's wire contract (``redemptionRate``,
``totalInvestment``, ``pendingCount``...).

Conventions shared by all calculators:
    - Months are lower-case Spanish names; a missing month means the current one
    - Redeemed means status Canjeado or Entregado
    - Percentages are rounded to 2 decimals and are 0 when the base is 0
    - An empty snapshot still yields the full result shape, tagged with
      ``"error": "no data"``

Kinds:
    month-progress, redemption-rate, historical-rate, benefit-status,
    active-users, investment, top-categories, compare-december
"""

import functools
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from ..core.exceptions import AnalyticsError
from ..core.logging_config import get_logger
from ..models.benefit_record import BenefitRecord
from ..models.dates import (
    days_in_month,
    format_date,
    month_name,
    month_sort_key,
    normalize_month,
    parse_date,
    previous_month_name,
    strip_accents,
)

logger = get_logger(__name__)

NO_DATA = "no data"
UNSPECIFIED = "No especificado"
DECEMBER = "diciembre"
ALL_MONTHS_SCOPE = "todos"

GENDER_LABELS = {"H": "Hombres", "M": "Mujeres"}

Records = Sequence[BenefitRecord]


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------

def percentage(part: float, whole: float) -> float:
    """part / whole as a percent rounded to 2 decimals; 0 when whole is 0."""
    if not whole:
        return 0
    return round(part / whole * 100, 2)


def _ratio(part: float, whole: float) -> float:
    return round(part / whole, 2) if whole else 0


def _amount(value: float) -> float:
    return round(value, 2)


def _name_key(name: Optional[str]) -> str:
    return strip_accents(name or "")


def _latest(records: Records) -> BenefitRecord:
    """Most recently chosen record; undated records count as the oldest."""
    return max(records, key=lambda r: r.parsed_choice_date or date.min)


def resolve_month(value: Any, today: date) -> str:
    """
    Resolve a month parameter to a Spanish month name.

    None means the current month; relative phrases ("mes actual",
    "mes pasado") are accepted, as are numbers 1-12. Unrecognized text is
    kept as-is, lower-cased, so the result reports exactly what was asked.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return month_name(today)

    month = normalize_month(value)
    if month:
        return month

    text = strip_accents(str(value)).strip()
    if text in ("actual", "mes actual", "este mes"):
        return month_name(today)
    if text in ("pasado", "mes pasado", "mes anterior"):
        return previous_month_name(today)
    return str(value).strip().lower()


def _reports_missing_data(func: Callable[..., Dict[str, Any]]) -> Callable[..., Dict[str, Any]]:
    """Tag results computed over an empty snapshot with the no-data error."""

    @functools.wraps(func)
    def wrapper(records: Records, *args, **kwargs) -> Dict[str, Any]:
        result = func(records, *args, **kwargs)
        if not records:
            logger.warning(f"{func.__name__} computed over an empty snapshot")
            return {"error": NO_DATA, **result}
        return result

    return wrapper


# ----------------------------------------------------------------------
# 1. Month progress
# ----------------------------------------------------------------------

def month_progress(today: date) -> Dict[str, Any]:
    """
    Percentage of the current month already elapsed, floored.

    Example:
        >>> month_progress(date(2024, 11, 15))
        {'currentDay': 15, 'lastDay': 30, 'progress': 50, 'month': 'noviembre'}
    """
    last_day = days_in_month(today)
    return {
        "currentDay": today.day,
        "lastDay": last_day,
        "progress": today.day * 100 // last_day,
        "month": month_name(today),
    }


# ----------------------------------------------------------------------
# 2. Redemption rate
# ----------------------------------------------------------------------

@_reports_missing_data
def redemption_rate(records: Records, target_date: date) -> Dict[str, Any]:
    """
    Redemption rate of the month containing ``target_date``.

    Args:
        records: Snapshot records
        target_date: Day being asked about

    Returns:
        dict with date, month, totalBenefits, totalRedeemed, redemptionRate,
        redeemedOnDate and dailyRate (share of the month's redemptions
        chosen on ``target_date``)
    """
    month = month_name(target_date)
    month_records = [r for r in records if r.month_key == month]
    redeemed = [r for r in month_records if r.is_redeemed]
    on_date = [r for r in redeemed if r.parsed_choice_date == target_date]

    logger.debug(
        f"Redemption rate for {format_date(target_date)}",
        extra={"total": len(month_records), "redeemed": len(redeemed), "on_date": len(on_date)}
    )

    return {
        "date": format_date(target_date),
        "month": month,
        "totalBenefits": len(month_records),
        "totalRedeemed": len(redeemed),
        "redemptionRate": percentage(len(redeemed), len(month_records)),
        "redeemedOnDate": len(on_date),
        "dailyRate": percentage(len(on_date), len(redeemed)),
    }


# ----------------------------------------------------------------------
# 3. Historical rate
# ----------------------------------------------------------------------

def _status_counts_by_month(records: Records) -> "OrderedDict[str, Dict[str, int]]":
    by_month: "OrderedDict[str, Dict[str, int]]" = OrderedDict()
    for record in records:
        month = record.month_key
        if month is None:
            continue
        counts = by_month.setdefault(
            month, {"total": 0, "redeemed": 0, "pending": 0, "notSelected": 0}
        )
        counts["total"] += 1
        if record.is_redeemed:
            counts["redeemed"] += 1
        elif record.is_pending:
            counts["pending"] += 1
        elif record.is_not_selected:
            counts["notSelected"] += 1
    return by_month


@_reports_missing_data
def historical_rate(records: Records) -> Dict[str, Any]:
    """
    Per-month redemption statistics across the whole snapshot.

    Records without a month (or with "N/A") are ignored. When december and
    at least one other month are present, december's rate is compared with
    the pooled rate of the other months.
    """
    by_month = _status_counts_by_month(records)

    monthly_rates = [
        {
            "month": month,
            "total": counts["total"],
            "redeemed": counts["redeemed"],
            "pending": counts["pending"],
            "notSelected": counts["notSelected"],
            "redemptionRate": percentage(counts["redeemed"], counts["total"]),
            "pendingRate": percentage(counts["pending"], counts["total"]),
            "notSelectedRate": percentage(counts["notSelected"], counts["total"]),
        }
        for month, counts in by_month.items()
    ]
    monthly_rates.sort(key=lambda entry: month_sort_key(entry["month"]))

    total_benefits = sum(c["total"] for c in by_month.values())
    total_redeemed = sum(c["redeemed"] for c in by_month.values())

    comparison = None
    other_months = [m for m in by_month if m != DECEMBER]
    if DECEMBER in by_month and other_months:
        december = by_month[DECEMBER]
        december_rate = december["redeemed"] / december["total"] * 100 if december["total"] else 0
        other_total = sum(by_month[m]["total"] for m in other_months)
        other_redeemed = sum(by_month[m]["redeemed"] for m in other_months)
        other_rate = other_redeemed / other_total * 100 if other_total else 0
        difference = december_rate - other_rate

        comparison = {
            "decemberRate": round(december_rate, 2),
            "otherMonthsRate": round(other_rate, 2),
            "difference": round(difference, 2),
            "percentageDifference": percentage(difference, other_rate),
            "isHigher": difference > 0,
        }

    return {
        "scope": ALL_MONTHS_SCOPE,
        "monthlyRates": monthly_rates,
        "totalBenefits": total_benefits,
        "totalRedeemed": total_redeemed,
        "globalRate": percentage(total_redeemed, total_benefits),
        "comparisonWithDecember": comparison,
    }


# ----------------------------------------------------------------------
# 4. Benefit status
# ----------------------------------------------------------------------

def _benefit_entry(record: BenefitRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "month": record.month,
        "selected": record.selected_benefit or "No seleccionado",
        "status": record.status or "Desconocido",
        "date": record.choice_date,
        "category": record.category,
        "generation": record.generation,
        "gender": record.gender,
    }


@_reports_missing_data
def benefit_status(
    records: Records, month: Optional[Any] = None, today: Optional[date] = None
) -> Dict[str, Any]:
    """
    Classify users by the status of their most recent benefit.

    Args:
        records: Snapshot records
        month: Restrict to one month (name, number or relative phrase);
            None covers every month
        today: Reference date for relative months (default: date.today())

    Returns:
        dict with totalUsers, name-sorted usersWith{Pending,Used,NotSelected}Benefits
        and the matching pendingCount, usedCount and notSelectedCount
    """
    if month is None or (isinstance(month, str) and not month.strip()):
        target = None
    else:
        target = resolve_month(month, today or date.today())
    scoped = [r for r in records if r.month_key == target] if target else list(records)

    grouped: "OrderedDict[str, List[BenefitRecord]]" = OrderedDict()
    names: Dict[str, str] = {}
    for record in scoped:
        if not record.user_id or not record.name:
            continue
        grouped.setdefault(record.user_id, []).append(record)
        names.setdefault(record.user_id, record.name)

    pending, used, not_selected = [], [], []
    for user_id, user_records in grouped.items():
        latest = _latest(user_records)
        entry = {
            "id": user_id,
            "name": names[user_id],
            "benefits": [_benefit_entry(r) for r in user_records],
            "latestBenefit": _benefit_entry(latest),
        }
        if latest.is_pending:
            pending.append(entry)
        elif latest.is_redeemed:
            used.append(entry)
        elif latest.is_not_selected:
            not_selected.append(entry)

    for bucket in (pending, used, not_selected):
        bucket.sort(key=lambda user: _name_key(user["name"]))

    logger.debug(
        "Benefit status computed",
        extra={"users": len(grouped), "pending": len(pending), "used": len(used)}
    )

    return {
        "month": target,
        "totalUsers": len(grouped),
        "usersWithPendingBenefits": pending,
        "usersWithUsedBenefits": used,
        "usersWithNotSelectedBenefits": not_selected,
        "pendingCount": len(pending),
        "usedCount": len(used),
        "notSelectedCount": len(not_selected),
    }


# ----------------------------------------------------------------------
# 5. Active users
# ----------------------------------------------------------------------

def _gender_label(code: Optional[str]) -> str:
    return GENDER_LABELS.get((code or "").upper(), UNSPECIFIED)


@_reports_missing_data
def active_users(records: Records, month: Optional[str], today: date) -> Dict[str, Any]:
    """
    Users with at least one benefit in the target month.

    Returns:
        dict with month, totalActiveUsers, name-sorted activeUsers and
        byGender / byGeneration breakdowns (count and percentage of total)
    """
    target = resolve_month(month, today)
    month_records = [r for r in records if r.month_key == target]

    by_user: "OrderedDict[str, List[BenefitRecord]]" = OrderedDict()
    for record in month_records:
        if record.user_id:
            by_user.setdefault(record.user_id, []).append(record)

    users = []
    for user_id, user_records in by_user.items():
        latest = _latest(user_records)
        users.append({
            "id": user_id,
            "name": latest.name,
            "generation": latest.generation,
            "gender": latest.gender,
            "latestBenefit": {
                "selected": latest.selected_benefit or "No seleccionado",
                "status": latest.status or "Desconocido",
                "date": latest.choice_date,
                "category": latest.category,
            },
        })

    total = len(users)
    gender_counts: "OrderedDict[str, int]" = OrderedDict()
    generation_counts: "OrderedDict[str, int]" = OrderedDict()
    for user in users:
        gender = _gender_label(user["gender"])
        gender_counts[gender] = gender_counts.get(gender, 0) + 1
        generation = user["generation"] or UNSPECIFIED
        generation_counts[generation] = generation_counts.get(generation, 0) + 1

    return {
        "month": target,
        "totalActiveUsers": total,
        "activeUsers": sorted(users, key=lambda user: _name_key(user["name"])),
        "byGender": [
            {"gender": gender, "count": count, "percentage": percentage(count, total)}
            for gender, count in gender_counts.items()
        ],
        "byGeneration": [
            {"generation": generation, "count": count, "percentage": percentage(count, total)}
            for generation, count in generation_counts.items()
        ],
    }


# ----------------------------------------------------------------------
# 6. Investment
# ----------------------------------------------------------------------

@_reports_missing_data
def investment(records: Records, month: Optional[str], today: date) -> Dict[str, Any]:
    """
    Investment and refunds for the target month, broken down by category.

    Returns:
        dict with month, totalInvestment, totalRefund, netInvestment,
        countBenefits and investmentByCategory sorted by investment (desc)
    """
    target = resolve_month(month, today)
    month_records = [r for r in records if r.month_key == target]

    total_investment = sum(r.investment_amount for r in month_records)
    total_refund = sum(r.refund_amount for r in month_records)

    by_category: "OrderedDict[str, Dict[str, float]]" = OrderedDict()
    for record in month_records:
        bucket = by_category.setdefault(record.category or UNSPECIFIED, {"investment": 0, "count": 0})
        bucket["investment"] += record.investment_amount
        bucket["count"] += 1

    breakdown = [
        {
            "category": category,
            "investment": _amount(data["investment"]),
            "count": data["count"],
            "percentage": percentage(data["investment"], total_investment),
        }
        for category, data in by_category.items()
    ]
    breakdown.sort(key=lambda entry: entry["investment"], reverse=True)

    logger.debug(
        f"Investment for {target}",
        extra={"total_investment": total_investment, "categories": len(breakdown)}
    )

    return {
        "month": target,
        "totalInvestment": _amount(total_investment),
        "totalRefund": _amount(total_refund),
        "netInvestment": _amount(total_investment - total_refund),
        "countBenefits": len(month_records),
        "investmentByCategory": breakdown,
    }


# ----------------------------------------------------------------------
# 7. Top categories
# ----------------------------------------------------------------------

def _category_totals(records: Records) -> "OrderedDict[str, Dict[str, float]]":
    totals: "OrderedDict[str, Dict[str, float]]" = OrderedDict()
    for record in records:
        data = totals.setdefault(
            record.category or UNSPECIFIED, {"count": 0, "redeemed": 0, "investment": 0}
        )
        data["count"] += 1
        if record.is_redeemed:
            data["redeemed"] += 1
        data["investment"] += record.investment_amount
    return totals


@_reports_missing_data
def top_categories(records: Records) -> Dict[str, Any]:
    """
    Category popularity overall, per month and december vs the other months.

    Returns:
        dict with topCategories (top 5), allCategories, totalCategories,
        topCategoryByMonth and comparisonWithDecember (top 3 per side)
    """
    overall = [
        {
            "category": category,
            "count": data["count"],
            "redeemed": data["redeemed"],
            "investment": _amount(data["investment"]),
            "redemptionRate": percentage(data["redeemed"], data["count"]),
            "percentage": percentage(data["count"], len(records)),
        }
        for category, data in _category_totals(records).items()
    ]
    overall.sort(key=lambda entry: entry["count"], reverse=True)

    by_month: "OrderedDict[str, List[BenefitRecord]]" = OrderedDict()
    for record in records:
        by_month.setdefault(record.month_key or UNSPECIFIED, []).append(record)

    top_by_month = []
    for month, month_records in by_month.items():
        counts = _category_totals(month_records)
        top_name, top_data = max(counts.items(), key=lambda item: item[1]["count"])
        top_by_month.append({
            "month": month,
            "topCategory": top_name,
            "count": top_data["count"],
            "percentage": percentage(top_data["count"], len(month_records)),
        })
    top_by_month.sort(key=lambda entry: month_sort_key(entry["month"]))

    december_counts = _category_totals(by_month.get(DECEMBER, []))
    december_total = sum(d["count"] for d in december_counts.values())
    december_top = sorted(
        (
            {
                "category": category,
                "count": data["count"],
                "percentage": percentage(data["count"], december_total),
            }
            for category, data in december_counts.items()
        ),
        key=lambda entry: entry["count"],
        reverse=True,
    )

    other_counts: "OrderedDict[str, Dict[str, int]]" = OrderedDict()
    for month, month_records in by_month.items():
        if month == DECEMBER:
            continue
        for category, data in _category_totals(month_records).items():
            acc = other_counts.setdefault(category, {"count": 0, "months": 0})
            acc["count"] += data["count"]
            acc["months"] += 1
    other_total = sum(d["count"] for d in other_counts.values())
    other_top = sorted(
        (
            {
                "category": category,
                "count": data["count"],
                "averagePerMonth": _ratio(data["count"], data["months"]),
                "percentage": percentage(data["count"], other_total),
            }
            for category, data in other_counts.items()
        ),
        key=lambda entry: entry["count"],
        reverse=True,
    )

    return {
        "scope": ALL_MONTHS_SCOPE,
        "topCategories": overall[:5],
        "allCategories": overall,
        "totalCategories": len(overall),
        "topCategoryByMonth": top_by_month,
        "comparisonWithDecember": {
            "topDecemberCategories": december_top[:3],
            "topOtherMonthsCategories": other_top[:3],
        },
    }


# ----------------------------------------------------------------------
# 8. December comparison
# ----------------------------------------------------------------------

_METRICS = ("total", "redeemed", "pending", "notSelected", "investment", "refund")


@dataclass
class _MonthAggregate:
    total: int = 0
    redeemed: int = 0
    pending: int = 0
    notSelected: int = 0
    investment: float = 0
    refund: float = 0

    def __post_init__(self):
        self.categories: "OrderedDict[str, int]" = OrderedDict()
        self.providers: "OrderedDict[str, int]" = OrderedDict()
        self.users: set = set()

    def add(self, record: BenefitRecord) -> None:
        self.total += 1
        self.investment += record.investment_amount
        self.refund += record.refund_amount
        if record.is_redeemed:
            self.redeemed += 1
        elif record.is_pending:
            self.pending += 1
        elif record.is_not_selected:
            self.notSelected += 1
        if record.category:
            self.categories[record.category] = self.categories.get(record.category, 0) + 1
        if record.provider:
            self.providers[record.provider] = self.providers.get(record.provider, 0) + 1
        if record.user_id:
            self.users.add(record.user_id)

    def merge(self, other: "_MonthAggregate") -> None:
        for metric in _METRICS:
            setattr(self, metric, getattr(self, metric) + getattr(other, metric))
        for category, count in other.categories.items():
            self.categories[category] = self.categories.get(category, 0) + count
        for provider, count in other.providers.items():
            self.providers[provider] = self.providers.get(provider, 0) + count
        self.users |= other.users

    @property
    def redemption_rate(self) -> float:
        return percentage(self.redeemed, self.total)

    def top_categories(self, limit: int = 3) -> List[Dict[str, Any]]:
        ranked = sorted(self.categories.items(), key=lambda item: item[1], reverse=True)
        return [{"category": category, "count": count} for category, count in ranked[:limit]]


@_reports_missing_data
def compare_december(records: Records) -> Dict[str, Any]:
    """
    December against the average of every other month.

    Returns:
        dict with december (absolute values), otherMonths (per-month
        averages), differences, percentageDiff and conclusion
    """
    by_month: Dict[str, _MonthAggregate] = {}
    for record in records:
        month = record.month_key
        if month is None:
            continue
        by_month.setdefault(month, _MonthAggregate()).add(record)

    december = by_month.get(DECEMBER, _MonthAggregate())
    other_months = sorted((m for m in by_month if m != DECEMBER), key=month_sort_key)
    month_count = len(other_months)

    others = _MonthAggregate()
    for month in other_months:
        others.merge(by_month[month])

    average = {metric: _ratio(getattr(others, metric), month_count) for metric in _METRICS}
    users_average = _ratio(len(others.users), month_count)

    differences = {
        metric: round(getattr(december, metric) - average[metric], 2)
        for metric in _METRICS
    }
    differences["users"] = round(len(december.users) - users_average, 2)

    percentage_diff = {
        metric: percentage(differences[metric], average[metric]) if average[metric] > 0 else 0
        for metric in _METRICS
    }
    percentage_diff["users"] = (
        percentage(differences["users"], users_average) if users_average > 0 else 0
    )

    other_top = [
        {**entry, "avgPerMonth": _ratio(entry["count"], month_count)}
        for entry in others.top_categories()
    ]

    logger.debug(
        "December comparison computed",
        extra={"december_total": december.total, "other_months": month_count}
    )

    return {
        "scope": ALL_MONTHS_SCOPE,
        "december": {
            "total": december.total,
            "redeemed": december.redeemed,
            "pending": december.pending,
            "notSelected": december.notSelected,
            "investment": _amount(december.investment),
            "refund": _amount(december.refund),
            "uniqueUsers": len(december.users),
            "redemptionRate": december.redemption_rate,
            "topCategories": december.top_categories(),
        },
        "otherMonths": {
            "months": other_months,
            "avgPerMonth": average,
            "uniqueUsersAvg": users_average,
            "redemptionRate": others.redemption_rate,
            "topCategories": other_top,
        },
        "differences": differences,
        "percentageDiff": percentage_diff,
        "conclusion": {
            "isHigher": differences["total"] > 0,
            "redemptionRateDiff": round(december.redemption_rate - others.redemption_rate, 2),
        },
    }


# ----------------------------------------------------------------------
# Dispatch
# ----------------------------------------------------------------------

def _truthy(value: Any) -> bool:
    return value is True or (isinstance(value, str) and value.strip().lower() == "true")


def use_cache_param(params: Mapping[str, Any]) -> bool:
    """``cache`` parameter; anything but an explicit false keeps the cache."""
    if "cache" not in params:
        return True
    return _truthy(params["cache"])


def _target_date(params: Mapping[str, Any], today: date) -> date:
    raw = params.get("date")
    parsed = parse_date(raw) if isinstance(raw, str) else None
    if raw is not None and parsed is None:
        logger.warning(f"Ignoring unparsable date parameter: {raw!r}")
    return parsed or today


CALCULATORS: Dict[str, Callable[[Records, Mapping[str, Any], date], Dict[str, Any]]] = {
    "month-progress": lambda records, params, today: month_progress(today),
    "redemption-rate": lambda records, params, today: redemption_rate(
        records, _target_date(params, today)
    ),
    "historical-rate": lambda records, params, today: historical_rate(records),
    "benefit-status": lambda records, params, today: benefit_status(
        records, params.get("month"), today
    ),
    "active-users": lambda records, params, today: active_users(records, params.get("month"), today),
    "investment": lambda records, params, today: investment(records, params.get("month"), today),
    "top-categories": lambda records, params, today: top_categories(records),
    "compare-december": lambda records, params, today: compare_december(records),
}

SNAPSHOT_FREE_KINDS = frozenset({"month-progress"})

KNOWN_KINDS = tuple(CALCULATORS)


def run_calculator(
    kind: str,
    records: Records,
    params: Optional[Mapping[str, Any]] = None,
    today: Optional[date] = None
) -> Dict[str, Any]:
    """
    Run the calculator registered for ``kind``.

    Args:
        kind: Analytics kind, e.g. "investment"
        records: Snapshot records (ignored by month-progress)
        params: Named command parameters (month, date, cache)
        today: Reference date (default: date.today())

    Raises:
        AnalyticsError: If the kind is unknown
    """
    calculator = CALCULATORS.get(kind)
    if calculator is None:
        raise AnalyticsError(
            f"Unknown analytics kind: {kind}",
            details={"kind": kind, "known_kinds": list(KNOWN_KINDS)}
        )
    return calculator(records, params or {}, today or date.today())
