"""
Domain Layer - Budget tree entities and the services computing on them.

This module contains:
- entities/: Budget tree, settings, aggregation results, versions
- services/: Aggregation, tree mutation, dual budget coordination, history
"""

from .entities.budget_line import BudgetLine, BudgetItemType
from .entities.budget_category import BudgetCategory, SOCIAL_CHARGES_CATEGORY_ID
from .entities.quote_settings import QuoteSettings, SocialChargeRate
from .entities.aggregation import AggregationResult

__all__ = [
    'BudgetLine', 'BudgetItemType',
    'BudgetCategory', 'SOCIAL_CHARGES_CATEGORY_ID',
    'QuoteSettings', 'SocialChargeRate',
    'AggregationResult',
]
