"""
Aggregation Results - Computed values derived from a budget tree.

Never persisted: recomputed from the tree every time they are needed.
"""
from dataclasses import dataclass, field
from typing import Dict


@dataclass
class AggregationResult:
    """
    Totals of a budget tree.

    Attributes:
        base_cost: Sum of leaf line totals (overtime included)
        social_charges_by_type: Charges per social charge rate id
        total_social_charges: Sum of all charges
        total_cost: base_cost + total_social_charges
        agency: Agency on lines plus agency on aggregated charges
        margin: Margin on lines plus margin on aggregated charges
        agency_percent: Effective agency as a percentage of total_cost
        margin_percent: Effective margin as a percentage of total_cost
        grand_total: total_cost + agency + margin
    """

    base_cost: float = 0.0
    social_charges_by_type: Dict[str, float] = field(default_factory=dict)
    total_social_charges: float = 0.0
    total_cost: float = 0.0
    agency: float = 0.0
    margin: float = 0.0
    agency_percent: float = 0.0
    margin_percent: float = 0.0
    grand_total: float = 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'baseCost': self.base_cost,
            'socialChargesByType': dict(self.social_charges_by_type),
            'totalSocialCharges': self.total_social_charges,
            'totalCost': self.total_cost,
            'agency': self.agency,
            'margin': self.margin,
            'agencyPercent': self.agency_percent,
            'marginPercent': self.margin_percent,
            'grandTotal': self.grand_total,
        }


@dataclass
class VarianceData:
    """Difference between a planned and an actual amount."""

    initial_amount: float
    current_amount: float
    difference: float
    percentage_change: float

    @property
    def is_overrun(self) -> bool:
        """Actual above plan."""
        return self.difference > 0

    def to_dict(self) -> dict:
        return {
            'initialAmount': self.initial_amount,
            'currentAmount': self.current_amount,
            'difference': self.difference,
            'percentageChange': self.percentage_change,
        }


@dataclass
class BudgetComparison:
    """
    Quote budget versus work budget.

    The quote side is priced on rates, the work side on actual costs.
    """

    budget_totals: AggregationResult
    work_totals: AggregationResult
    grand_total: VarianceData
    total_cost: VarianceData
    categories: Dict[str, VarianceData] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'budgetTotals': self.budget_totals.to_dict(),
            'workTotals': self.work_totals.to_dict(),
            'grandTotal': self.grand_total.to_dict(),
            'totalCost': self.total_cost.to_dict(),
            'categories': {key: value.to_dict() for key, value in self.categories.items()},
        }


@dataclass
class OptimalRates:
    """Agency and margin percentages that reach a target total."""

    agency_percent: float
    margin_percent: float


@dataclass
class OvertimeRates:
    """Hourly rates derived from a daily rate."""

    normal: float
    x1_5: float
    x2: float
