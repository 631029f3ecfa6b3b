"""
Domain Entities - Budget tree, settings and computed results.
"""

from .budget_line import BudgetLine, BudgetItemType, PERCENT_UNIT
from .budget_category import (
    BudgetCategory,
    SOCIAL_CHARGES_CATEGORY_ID,
    budget_from_dicts,
    budget_to_dicts,
)
from .quote_settings import QuoteSettings, SocialChargeRate, coerce_settings, get_default_settings
from .aggregation import (
    AggregationResult,
    BudgetComparison,
    OptimalRates,
    OvertimeRates,
    VarianceData,
)
from .budget_version import BudgetVersion

__all__ = [
    'BudgetLine', 'BudgetItemType', 'PERCENT_UNIT',
    'BudgetCategory', 'SOCIAL_CHARGES_CATEGORY_ID', 'budget_from_dicts', 'budget_to_dicts',
    'QuoteSettings', 'SocialChargeRate', 'coerce_settings', 'get_default_settings',
    'AggregationResult', 'BudgetComparison', 'OptimalRates', 'OvertimeRates', 'VarianceData',
    'BudgetVersion',
]
