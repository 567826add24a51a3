"""
Tests for the analytics calculators.

Expected figures are computed by hand from the shared dataset in conftest.
"""

from datetime import date

import pytest

from BPA.core.exceptions import AnalyticsError
from BPA.engine import analytics
from BPA.engine.analytics import (
    NO_DATA,
    active_users,
    benefit_status,
    compare_december,
    historical_rate,
    investment,
    month_progress,
    percentage,
    redemption_rate,
    resolve_month,
    run_calculator,
    top_categories,
    use_cache_param,
)


# =============================================================================
# Helpers
# =============================================================================

class TestHelpers:

    def test_percentage_rounds_to_two_decimals(self):
        assert percentage(2, 3) == 66.67
        assert percentage(1, 8) == 12.5

    def test_percentage_of_zero_base(self):
        assert percentage(5, 0) == 0

    def test_resolve_month(self, today):
        assert resolve_month(None, today) == "noviembre"
        assert resolve_month("Diciembre", today) == "diciembre"
        assert resolve_month("mes pasado", today) == "octubre"
        assert resolve_month("mes actual", today) == "noviembre"
        assert resolve_month("Smarch", today) == "smarch"

    @pytest.mark.parametrize("params,expected", [
        ({}, True),
        ({"cache": True}, True),
        ({"cache": "true"}, True),
        ({"cache": False}, False),
        ({"cache": "false"}, False),
    ])
    def test_use_cache_param(self, params, expected):
        assert use_cache_param(params) is expected


# =============================================================================
# Calculators
# =============================================================================

class TestMonthProgress:

    def test_mid_november(self, today):
        assert month_progress(today) == {
            "currentDay": 15, "lastDay": 30, "progress": 50, "month": "noviembre"
        }

    def test_progress_is_floored(self):
        assert month_progress(date(2024, 2, 10))["progress"] == 34

    def test_last_day_of_leap_february(self):
        result = month_progress(date(2024, 2, 29))
        assert result["lastDay"] == 29
        assert result["progress"] == 100


class TestRedemptionRate:

    def test_rate_for_target_date(self, records, today):
        result = redemption_rate(records, today)

        assert result["date"] == "15/11/2024"
        assert result["month"] == "noviembre"
        assert result["totalBenefits"] == 4
        assert result["totalRedeemed"] == 2
        assert result["redemptionRate"] == 50.0
        assert result["redeemedOnDate"] == 1
        assert result["dailyRate"] == 50.0

    def test_month_without_records(self, records):
        result = redemption_rate(records, date(2024, 3, 1))

        assert result["totalBenefits"] == 0
        assert result["redemptionRate"] == 0
        assert "error" not in result


class TestHistoricalRate:

    def test_monthly_rates_in_calendar_order(self, records):
        result = historical_rate(records)

        assert [m["month"] for m in result["monthlyRates"]] == ["octubre", "noviembre", "diciembre"]
        november = result["monthlyRates"][1]
        assert november["total"] == 4
        assert november["redeemed"] == 2
        assert november["pending"] == 1
        assert november["notSelected"] == 1
        assert november["redemptionRate"] == 50.0

    def test_totals_ignore_records_without_month(self, records):
        result = historical_rate(records)

        assert result["totalBenefits"] == 8
        assert result["totalRedeemed"] == 5
        assert result["globalRate"] == 62.5

    def test_december_comparison(self, records):
        comparison = historical_rate(records)["comparisonWithDecember"]

        assert comparison == {
            "decemberRate": 66.67,
            "otherMonthsRate": 60.0,
            "difference": 6.67,
            "percentageDifference": 11.11,
            "isHigher": True,
        }

    def test_no_comparison_without_december(self, records):
        without_december = [r for r in records if r.month_key != "diciembre"]
        assert historical_rate(without_december)["comparisonWithDecember"] is None


class TestBenefitStatus:

    def test_all_months(self, records):
        result = benefit_status(records)

        assert result["totalUsers"] == 6
        assert [u["name"] for u in result["usersWithPendingBenefits"]] == [
            "Bruno Díaz", "Elena Soto", "Fabio Gil"
        ]
        assert [u["name"] for u in result["usersWithUsedBenefits"]] == ["Ana Torres", "Carla Ruiz"]
        assert [u["name"] for u in result["usersWithNotSelectedBenefits"]] == ["Diego Paz"]
        assert (result["pendingCount"], result["usedCount"], result["notSelectedCount"]) == (3, 2, 1)

    def test_latest_benefit_decides_status(self, records):
        result = benefit_status(records)
        bruno = next(u for u in result["usersWithPendingBenefits"] if u["id"] == "u2")

        assert len(bruno["benefits"]) == 2
        assert bruno["latestBenefit"]["status"] == "Pendiente"

    def test_single_month(self, records):
        result = benefit_status(records, "Diciembre")

        assert result["month"] == "diciembre"
        assert result["totalUsers"] == 3
        assert result["pendingCount"] == 1
        assert result["usedCount"] == 2

    def test_relative_month(self, records, today):
        result = run_calculator("benefit-status", records, {"month": "mes pasado"}, today)

        assert result["month"] == "octubre"
        assert result["totalUsers"] == 1
        assert [u["name"] for u in result["usersWithUsedBenefits"]] == ["Carla Ruiz"]

    def test_month_number(self, records, today):
        assert run_calculator("benefit-status", records, {"month": 12}, today)["totalUsers"] == 3

    def test_out_of_range_month_is_empty(self, records, today):
        result = run_calculator("benefit-status", records, {"month": 13}, today)

        assert "error" not in result
        assert result["month"] == "13"
        assert result["totalUsers"] == 0

    def test_unselected_benefit_label(self, records):
        result = benefit_status(records, "noviembre")
        diego = result["usersWithNotSelectedBenefits"][0]

        assert diego["latestBenefit"]["selected"] == "No seleccionado"


class TestActiveUsers:

    def test_november_breakdown(self, records, today):
        result = active_users(records, "noviembre", today)

        assert result["totalActiveUsers"] == 4
        assert [u["name"] for u in result["activeUsers"]] == [
            "Ana Torres", "Bruno Díaz", "Carla Ruiz", "Diego Paz"
        ]
        assert result["byGender"] == [
            {"gender": "Mujeres", "count": 2, "percentage": 50.0},
            {"gender": "Hombres", "count": 2, "percentage": 50.0},
        ]
        assert result["byGeneration"] == [
            {"generation": "Millennial", "count": 2, "percentage": 50.0},
            {"generation": "Gen X", "count": 1, "percentage": 25.0},
            {"generation": "Gen Z", "count": 1, "percentage": 25.0},
        ]

    def test_defaults_to_current_month(self, records, today):
        assert active_users(records, None, today)["month"] == "noviembre"


class TestInvestment:

    def test_december(self, records, today):
        result = investment(records, "diciembre", today)

        assert result["totalInvestment"] == 670
        assert result["totalRefund"] == 20
        assert result["netInvestment"] == 650
        assert result["countBenefits"] == 3
        assert result["investmentByCategory"] == [
            {"category": "Experiencias", "investment": 550, "count": 2, "percentage": 82.09},
            {"category": "Comidas del Mundo", "investment": 120, "count": 1, "percentage": 17.91},
        ]

    def test_current_month_by_default(self, records, today):
        result = investment(records, None, today)

        assert result["month"] == "noviembre"
        assert result["totalInvestment"] == 450
        assert result["netInvestment"] == 400
        assert [c["category"] for c in result["investmentByCategory"]] == [
            "Comidas del Mundo", "Bienestar"
        ]

    def test_unknown_month_is_empty_not_error(self, records, today):
        result = investment(records, "Smarch", today)

        assert result["month"] == "smarch"
        assert result["countBenefits"] == 0
        assert result["investmentByCategory"] == []


class TestTopCategories:

    def test_overall_ranking(self, records):
        result = top_categories(records)

        assert result["totalCategories"] == 3
        assert [(c["category"], c["count"], c["percentage"]) for c in result["topCategories"]] == [
            ("Comidas del Mundo", 4, 44.44),
            ("Bienestar", 3, 33.33),
            ("Experiencias", 2, 22.22),
        ]
        assert result["topCategories"][0]["redemptionRate"] == 25.0
        assert result["topCategories"][1]["redemptionRate"] == 66.67

    def test_top_category_by_month(self, records):
        by_month = top_categories(records)["topCategoryByMonth"]

        assert [(m["month"], m["topCategory"], m["count"], m["percentage"]) for m in by_month] == [
            ("octubre", "Bienestar", 1, 100.0),
            ("noviembre", "Comidas del Mundo", 2, 50.0),
            ("diciembre", "Experiencias", 2, 66.67),
            ("No especificado", "Comidas del Mundo", 1, 100.0),
        ]

    def test_december_against_other_months(self, records):
        comparison = top_categories(records)["comparisonWithDecember"]

        assert comparison["topDecemberCategories"] == [
            {"category": "Experiencias", "count": 2, "percentage": 66.67},
            {"category": "Comidas del Mundo", "count": 1, "percentage": 33.33},
        ]
        others = comparison["topOtherMonthsCategories"]
        assert {c["category"] for c in others} == {"Comidas del Mundo", "Bienestar"}
        assert all(c["count"] == 3 and c["averagePerMonth"] == 1.5 for c in others)
        assert all(c["percentage"] == 50.0 for c in others)


class TestCompareDecember:

    def test_december_absolute_values(self, records):
        december = compare_december(records)["december"]

        assert december["total"] == 3
        assert december["redeemed"] == 2
        assert december["pending"] == 1
        assert december["notSelected"] == 0
        assert december["investment"] == 670
        assert december["refund"] == 20
        assert december["uniqueUsers"] == 3
        assert december["redemptionRate"] == 66.67

    def test_other_months_are_averaged(self, records):
        other = compare_december(records)["otherMonths"]

        assert other["months"] == ["octubre", "noviembre"]
        assert other["avgPerMonth"] == {
            "total": 2.5, "redeemed": 1.5, "pending": 0.5,
            "notSelected": 0.5, "investment": 265.0, "refund": 25.0,
        }
        assert other["uniqueUsersAvg"] == 2.0
        assert other["redemptionRate"] == 60.0

    def test_differences_and_conclusion(self, records):
        result = compare_december(records)

        assert result["differences"]["total"] == 0.5
        assert result["differences"]["notSelected"] == -0.5
        assert result["differences"]["investment"] == 405.0
        assert result["differences"]["users"] == 1.0
        assert result["percentageDiff"]["total"] == 20.0
        assert result["percentageDiff"]["redeemed"] == 33.33
        assert result["percentageDiff"]["investment"] == 152.83
        assert result["conclusion"] == {"isHigher": True, "redemptionRateDiff": 6.67}


# =============================================================================
# Empty snapshot / dispatch
# =============================================================================

class TestEmptySnapshot:
    """Every record-based calculator keeps its shape and reports no data."""

    @pytest.mark.parametrize("kind", [
        "redemption-rate", "historical-rate", "benefit-status",
        "active-users", "investment", "top-categories", "compare-december",
    ])
    def test_no_data_error(self, kind, today):
        result = run_calculator(kind, (), {}, today)
        assert result["error"] == NO_DATA

    def test_zero_shape_is_kept(self, today):
        result = investment((), "diciembre", today)

        assert result["totalInvestment"] == 0
        assert result["investmentByCategory"] == []

    def test_month_progress_needs_no_records(self, today):
        assert "error" not in run_calculator("month-progress", (), {}, today)


class TestRunCalculator:

    def test_unknown_kind(self, records, today):
        with pytest.raises(AnalyticsError) as exc_info:
            run_calculator("forecast", records, {}, today)

        assert exc_info.value.details["kind"] == "forecast"

    def test_date_parameter(self, records, today):
        result = run_calculator("redemption-rate", records, {"date": "05/11/2024"}, today)

        assert result["date"] == "05/11/2024"
        assert result["redeemedOnDate"] == 1

    def test_month_parameter(self, records, today):
        result = run_calculator("investment", records, {"month": "octubre"}, today)
        assert result["totalInvestment"] == 80

    def test_registry_covers_every_kind(self):
        assert set(analytics.KNOWN_KINDS) == {
            "month-progress", "redemption-rate", "historical-rate", "benefit-status",
            "active-users", "investment", "top-categories", "compare-december",
        }
