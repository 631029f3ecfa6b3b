"""
Aggregation Service - Totals of a quote budget.

Implements the pricing rules of a quote:
- Leaf-only: a line with sub-items contributes nothing of its own
- Social charges are computed per leaf and grouped by charge rate
- Agency/margin apply per leaf, then again on each aggregated charge type
- Malformed input is absorbed; every number is coalesced to zero

All functions are pure: they read the tree and settings and never modify them.
"""
import json
import logging
from typing import Any, Dict, Mapping, Optional, Union

from quote_budget.config import get_config
from quote_budget.domain.entities.aggregation import (
    AggregationResult,
    BudgetComparison,
    OptimalRates,
    OvertimeRates,
    VarianceData,
)
from quote_budget.domain.entities.budget_line import BudgetLine
from quote_budget.domain.entities.quote_settings import QuoteSettings, coerce_settings
from quote_budget.domain.exceptions import ValidationError
from quote_budget.domain.numbers import num_or_zero
from quote_budget.domain.services.budget_tree import coerce_tree, iter_leaves

logger = logging.getLogger(__name__)

# Tolerance when checking that optimal rates reproduce the target total
RATE_PRECISION = 1e-10


# =============================================================================
# Line level
# =============================================================================

def _leaf_total(line: BudgetLine, use_work_cost: bool) -> float:
    if line.is_percentage:
        return num_or_zero(line.rate) * num_or_zero(line.number) / 100
    base = num_or_zero(line.quantity) * num_or_zero(line.number) * line.unit_price(use_work_cost)
    return base + num_or_zero(line.overtime)


def calculate_social_charges(
    line: BudgetLine,
    settings: Optional[QuoteSettings],
    use_work_cost: bool = False,
) -> float:
    """
    Social charges of a single leaf.

    Charges are computed on the line total, overtime included, times the
    charge fraction of the referenced rate.

    Args:
        line: Leaf line
        settings: Quote settings holding the charge rates
        use_work_cost: Price on actual cost instead of rate

    Returns:
        Charge amount, 0 when the line references no known rate
    """
    settings = coerce_settings(settings)
    if settings is None or not line.social_charges:
        return 0.0
    rate = settings.find_rate(line.social_charges)
    if rate is None:
        return 0.0
    return _leaf_total(line, use_work_cost) * num_or_zero(rate.rate)


def calculate_line_total(
    line: BudgetLine,
    settings: Optional[QuoteSettings] = None,
    use_work_cost: bool = False,
    include_social_charges: bool = False,
) -> float:
    """
    Total of one line, summing children when it has any.

    Args:
        line: Line to price
        settings: Needed only when include_social_charges is set
        use_work_cost: Price on actual cost instead of rate
        include_social_charges: Add the line's charges; when the settings ask
            for margins on charges, agency and margin of the line are applied
            to the charged amount as well

    Returns:
        Line total
    """
    settings = coerce_settings(settings)
    if line.sub_items:
        return sum(
            calculate_line_total(child, settings, use_work_cost, include_social_charges)
            for child in line.sub_items
        )

    total = _leaf_total(line, use_work_cost)
    if not (include_social_charges and settings is not None and line.social_charges):
        return total

    charges = calculate_social_charges(line, settings, use_work_cost)
    with_charges = total + charges
    if settings.apply_social_charges_margins and charges > 0:
        agency = with_charges * num_or_zero(line.agency_percent) / 100
        margin = with_charges * num_or_zero(line.margin_percent) / 100
        return with_charges + agency + margin
    return with_charges


# =============================================================================
# Budget level
# =============================================================================

def compute_totals(
    categories: Any,
    settings: Optional[QuoteSettings],
    use_work_cost: bool = False,
) -> AggregationResult:
    """
    Aggregate a whole budget.

    Args:
        categories: Budget categories (anything else counts as empty)
        settings: Quote settings or their camelCase mapping; None behaves like
            settings without rates
        use_work_cost: Price leaves on `cost` when set (work budget)

    Returns:
        AggregationResult with all amounts; zero-valued for an empty budget
    """
    tree = coerce_tree(categories)
    if not tree:
        return AggregationResult()
    settings = coerce_settings(settings)

    rates = settings.social_charge_rates if settings is not None else []
    default_agency = num_or_zero(settings.default_agency_percent) if settings is not None else 0.0
    default_margin = num_or_zero(settings.default_margin_percent) if settings is not None else 0.0

    base_cost = 0.0
    agency = 0.0
    margin = 0.0
    charges_by_type: Dict[str, float] = {}
    total_charges = 0.0

    for category in tree:
        if category.is_social_charges:
            continue
        for leaf in iter_leaves(category.items):
            line_total = _leaf_total(leaf, use_work_cost)
            base_cost += line_total

            if leaf.social_charges and rates:
                charges = calculate_social_charges(leaf, settings, use_work_cost)
                # Zero or negative charges are legitimate and simply not accumulated
                if charges > 0:
                    charges_by_type[leaf.social_charges] = (
                        charges_by_type.get(leaf.social_charges, 0.0) + charges
                    )
                    total_charges += charges

            agency += line_total * num_or_zero(leaf.agency_percent) / 100
            margin += line_total * num_or_zero(leaf.margin_percent) / 100

    # Aggregated charges carry their own agency/margin on top of the per-line ones
    for rate_id, amount in charges_by_type.items():
        rate = settings.find_rate(rate_id)
        if rate is None:
            continue
        rate_agency = rate.agency_percent if rate.agency_percent is not None else default_agency
        rate_margin = rate.margin_percent if rate.margin_percent is not None else default_margin
        agency += amount * num_or_zero(rate_agency) / 100
        margin += amount * num_or_zero(rate_margin) / 100

    total_cost = base_cost + total_charges
    grand_total = total_cost + agency + margin

    return AggregationResult(
        base_cost=base_cost,
        social_charges_by_type=charges_by_type,
        total_social_charges=total_charges,
        total_cost=total_cost,
        agency=agency,
        margin=margin,
        agency_percent=agency / total_cost * 100 if total_cost > 0 else default_agency,
        margin_percent=margin / total_cost * 100 if total_cost > 0 else default_margin,
        grand_total=grand_total,
    )


def compute_category_totals(
    categories: Any,
    settings: Optional[QuoteSettings] = None,
    use_work_cost: bool = False,
) -> Dict[str, float]:
    """
    Base subtotal of each category, social charges bucket excluded.

    Returns:
        Mapping of category id to the sum of its line totals
    """
    return {
        category.id: sum(
            calculate_line_total(item, settings, use_work_cost) for item in category.items
        )
        for category in coerce_tree(categories)
        if not category.is_social_charges
    }


# =============================================================================
# Budget versus actual
# =============================================================================

def calculate_variance(initial: Any, current: Any) -> VarianceData:
    """
    Difference between a planned and an actual amount.

    percentage_change is 0 when the planned amount is 0.
    """
    initial_amount = num_or_zero(initial)
    current_amount = num_or_zero(current)
    difference = current_amount - initial_amount
    percentage = difference / initial_amount * 100 if initial_amount != 0 else 0.0
    return VarianceData(
        initial_amount=initial_amount,
        current_amount=current_amount,
        difference=difference,
        percentage_change=percentage,
    )


def compare_budgets(
    budget: Any,
    work_budget: Any,
    settings: Optional[QuoteSettings],
) -> BudgetComparison:
    """
    Compare the quote budget against the work budget.

    The quote is priced on rates and the work budget on actual costs.
    Category variances cover every category present on either side.

    Args:
        budget: Quote budget
        work_budget: Work budget
        settings: Quote settings

    Returns:
        BudgetComparison (differences are work minus quote)
    """
    budget_totals = compute_totals(budget, settings)
    work_totals = compute_totals(work_budget, settings, use_work_cost=True)

    planned = compute_category_totals(budget, settings)
    actual = compute_category_totals(work_budget, settings, use_work_cost=True)

    categories = {}
    for category_id in list(planned) + [key for key in actual if key not in planned]:
        categories[category_id] = calculate_variance(
            planned.get(category_id, 0.0), actual.get(category_id, 0.0)
        )

    return BudgetComparison(
        budget_totals=budget_totals,
        work_totals=work_totals,
        grand_total=calculate_variance(budget_totals.grand_total, work_totals.grand_total),
        total_cost=calculate_variance(budget_totals.total_cost, work_totals.total_cost),
        categories=categories,
    )


# =============================================================================
# Rate helpers
# =============================================================================

def calculate_optimal_rates(base_cost: Any, target_total: Any) -> OptimalRates:
    """
    Percentages that take a base cost to a target total.

    Agency is set to zero and the whole difference goes to the margin.

    Raises:
        ValidationError: If base_cost is not positive or target is not above it
    """
    base = num_or_zero(base_cost)
    target = num_or_zero(target_total)
    if base <= 0:
        raise ValidationError("base_cost", "Base cost must be positive")
    if target <= base:
        raise ValidationError("target_total", "Target total must exceed the base cost")

    margin_percent = (target / base - 1) * 100
    if abs(base * (1 + margin_percent / 100) - target) > RATE_PRECISION * max(1.0, target):
        raise ValidationError("target_total", "Target total cannot be reached exactly")

    return OptimalRates(agency_percent=0.0, margin_percent=margin_percent)


def calculate_overtime_rates(daily_rate: Any, base_hours: Optional[float] = None) -> OvertimeRates:
    """
    Hourly overtime rates from a daily rate.

    Args:
        daily_rate: Rate for a standard day
        base_hours: Hours in a standard day, defaults to configuration

    Returns:
        OvertimeRates with normal, x1.5 and x2 hourly rates
    """
    hours = num_or_zero(base_hours if base_hours is not None else get_config().overtime_base_hours)
    hourly = num_or_zero(daily_rate) / hours if hours > 0 else 0.0
    return OvertimeRates(normal=hourly, x1_5=hourly * 1.5, x2=hourly * 2)


def calculate_overtime_total(details: Union[str, Mapping[str, Any], None]) -> float:
    """
    Overtime amount from hours and hourly rates.

    Args:
        details: JSON string or mapping with normalHours/normalRate,
            x1_5Hours/x1_5Rate and x2Hours/x2Rate

    Returns:
        Sum of hours times rate; 0 for missing or malformed details
    """
    if not details:
        return 0.0
    if isinstance(details, str):
        try:
            details = json.loads(details)
        except ValueError as e:
            logger.warning(f"Malformed overtime details: {e}")
            return 0.0
    if not isinstance(details, Mapping):
        logger.warning(f"Overtime details must be a mapping, got {type(details).__name__}")
        return 0.0

    return sum(
        num_or_zero(details.get(f"{prefix}Hours")) * num_or_zero(details.get(f"{prefix}Rate"))
        for prefix in ("normal", "x1_5", "x2")
    )
