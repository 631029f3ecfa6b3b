"""
Domain Services - Aggregation, tree edits, dual budget coordination and history.
"""

from .aggregation_service import (
    calculate_line_total,
    calculate_optimal_rates,
    calculate_overtime_rates,
    calculate_overtime_total,
    calculate_social_charges,
    calculate_variance,
    compare_budgets,
    compute_category_totals,
    compute_totals,
)
from .tree_mutator import TreeMutator, create_budget_item
from .dual_budget_coordinator import DualBudgetCoordinator
from .history_service import HistoryService

__all__ = [
    'calculate_line_total',
    'calculate_optimal_rates',
    'calculate_overtime_rates',
    'calculate_overtime_total',
    'calculate_social_charges',
    'calculate_variance',
    'compare_budgets',
    'compute_category_totals',
    'compute_totals',
    'TreeMutator',
    'create_budget_item',
    'DualBudgetCoordinator',
    'HistoryService',
]
