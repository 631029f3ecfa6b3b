"""
Tree Mutator - Copy-on-write edits of a budget tree.

Every operation copies the tree it is given, edits the copy and returns it.
The input is never modified, so saved versions and the other budget of a
quote can never be changed through an alias.

Unknown categories and items are absorbed: the operation logs a warning and
returns an unchanged copy. A mutator built with strict=True raises
CategoryNotFoundError / NodeNotFoundError instead.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

from quote_budget.config import get_config
from quote_budget.domain.entities.budget_category import BudgetCategory
from quote_budget.domain.entities.budget_line import (
    ALIAS_FIELDS,
    FIELD_ALIASES,
    BudgetItemType,
    BudgetLine,
)
from quote_budget.domain.entities.quote_settings import QuoteSettings
from quote_budget.domain.exceptions import CategoryNotFoundError, NodeNotFoundError
from quote_budget.domain.numbers import num_or_zero, optional_number
from quote_budget.domain.services.budget_tree import (
    clone_line,
    clone_tree,
    coerce_tree,
    find_category,
    find_node,
    iter_nodes,
)

logger = logging.getLogger(__name__)

_NUMERIC_FIELDS = {'quantity', 'number', 'rate', 'agency_percent', 'margin_percent'}
_OPTIONAL_NUMERIC_FIELDS = {'cost', 'overtime'}
_CATEGORY_FIELDS = {'name': 'name', 'is_expanded': 'is_expanded', 'isExpanded': 'is_expanded',
                    'items': 'items'}


# =============================================================================
# Item creation
# =============================================================================

def _previous_sibling(
    categories: Sequence[BudgetCategory],
    category_id: Optional[str],
    parent_id: Optional[str],
    item_type: BudgetItemType,
) -> Optional[BudgetLine]:
    """Last line of the same type where a new line would be appended."""
    category = find_category(categories, category_id)
    if category is None:
        return None

    if parent_id:
        parent = find_node(category.items, parent_id)
        siblings = parent.sub_items if parent is not None else []
    else:
        siblings = category.items

    same_type = [item for item in siblings if item.type == item_type]
    return same_type[-1] if same_type else None


def create_budget_item(
    item_type: Any,
    parent_id: Optional[str],
    settings: Optional[QuoteSettings],
    categories: Sequence[BudgetCategory] = (),
    category_id: Optional[str] = None,
    is_work_budget: bool = False,
) -> BudgetLine:
    """
    Build a new line with per-type defaults.

    Posts added to the quote budget copy quantity, number, unit, rate and
    social charge from the previous line of the same type under the same
    parent. Posts added to the work budget start blank and are flagged
    is_new_post.

    Args:
        item_type: BudgetItemType or its string value
        parent_id: Parent line id, None for category top level
        settings: Quote settings supplying agency/margin defaults
        categories: Current tree, used to find the previous sibling
        category_id: Category the line will be added to
        is_work_budget: Whether the line goes into the work budget

    Returns:
        New BudgetLine with a fresh uuid4 id
    """
    item_type = BudgetItemType.coerce(item_type)
    config = get_config()
    agency = num_or_zero(settings.default_agency_percent if settings else config.default_agency_percent)
    margin = num_or_zero(settings.default_margin_percent if settings else config.default_margin_percent)

    line = BudgetLine(
        id=str(uuid4()),
        type=item_type,
        name=config.get_default_name(item_type.value),
        parent_id=None if item_type == BudgetItemType.CATEGORY else parent_id,
        agency_percent=agency,
        margin_percent=margin,
    )

    if item_type == BudgetItemType.CATEGORY:
        line.number = 1.0
        line.unit = "Jour"
        return line
    if item_type == BudgetItemType.SUB_CATEGORY:
        return line

    if is_work_budget:
        line.is_new_post = True
        return line

    previous = _previous_sibling(coerce_tree(categories), category_id, parent_id, item_type)
    if previous is not None:
        line.quantity = num_or_zero(previous.quantity)
        line.number = num_or_zero(previous.number)
        line.unit = previous.unit or "-"
        line.rate = num_or_zero(previous.rate)
        line.social_charges = previous.social_charges
    return line


# =============================================================================
# Update coercion
# =============================================================================

def _coerce_line(value: Any) -> Optional[BudgetLine]:
    if isinstance(value, BudgetLine):
        return clone_line(value)
    if isinstance(value, dict):
        return BudgetLine.from_dict(value)
    return None


def _coerce_line_value(field_name: str, value: Any) -> Any:
    if field_name in _NUMERIC_FIELDS:
        return num_or_zero(value)
    if field_name in _OPTIONAL_NUMERIC_FIELDS:
        return optional_number(value)
    if field_name == 'type':
        return BudgetItemType.coerce(value)
    if field_name == 'sub_items':
        children = value if isinstance(value, (list, tuple)) else []
        return [line for line in (_coerce_line(child) for child in children) if line is not None]
    if field_name == 'comment':
        return dict(value) if isinstance(value, dict) else None
    if field_name in ('is_expanded', 'is_new_post'):
        return bool(value)
    if field_name == 'social_charges':
        return str(value) if value else None
    return value


def _normalize_line_updates(updates: Mapping[str, Any]) -> Dict[str, Any]:
    """Map snake_case or camelCase update keys to line attributes."""
    normalized = {}
    for key, value in (updates or {}).items():
        if key in FIELD_ALIASES:
            field_name = key
        elif key in ALIAS_FIELDS:
            field_name = ALIAS_FIELDS[key]
        else:
            logger.warning(f"Ignoring unknown budget line field '{key}'")
            continue
        if field_name == 'id':
            logger.warning("Ignoring attempt to change a budget line id")
            continue
        normalized[field_name] = _coerce_line_value(field_name, value)
    return normalized


# =============================================================================
# Mutator
# =============================================================================

class TreeMutator:
    """
    Immutable-transform operations on a budget tree.

    Args:
        strict: Raise on unknown category/item ids instead of no-op
    """

    def __init__(self, strict: bool = False):
        self.strict = strict

    def _category_missing(self, category_id: str) -> None:
        if self.strict:
            raise CategoryNotFoundError(category_id)
        logger.warning(f"Category '{category_id}' not found, tree left unchanged")

    def _node_missing(self, node_id: str, category_id: Optional[str] = None) -> None:
        if self.strict:
            raise NodeNotFoundError(node_id, category_id)
        logger.warning(f"Item '{node_id}' not found in category '{category_id}', tree left unchanged")

    # -------------------------------------------------------------------------
    # Add
    # -------------------------------------------------------------------------

    def add_item_with_id(
        self,
        tree: Any,
        category_id: Optional[str],
        parent_id: Optional[str],
        item_type: Any,
        settings: Optional[QuoteSettings],
        is_work_budget: bool = False,
        new_item: Optional[BudgetLine] = None,
    ) -> Tuple[List[BudgetCategory], Optional[str]]:
        """
        Add a new category or line.

        Categories are appended, but always before the social charges bucket
        so that it stays last. Lines are appended to the category top level
        when parent_id is None, else to the parent's sub-items; the parent is
        expanded so the new line is visible.

        Args:
            tree: Current budget
            category_id: Target category (ignored for a new category)
            parent_id: Parent line id or None
            item_type: Type of the new node
            settings: Quote settings
            is_work_budget: Create work-budget defaults
            new_item: Pre-built line to insert instead of a default one

        Returns:
            Tuple of (new tree, id of the added node or None on no-op)
        """
        categories = clone_tree(coerce_tree(tree))
        item_type = BudgetItemType.coerce(item_type)
        item = clone_line(new_item) if new_item is not None else create_budget_item(
            item_type, parent_id, settings, categories, category_id, is_work_budget
        )

        if item_type == BudgetItemType.CATEGORY:
            category = BudgetCategory(id=item.id, name=item.name, is_expanded=True, items=[])
            position = len(categories)
            if categories and categories[-1].is_social_charges:
                position -= 1
            categories.insert(position, category)
            return categories, category.id

        category = find_category(categories, category_id)
        if category is None:
            self._category_missing(category_id)
            return categories, None

        if not parent_id:
            category.items.append(item)
            return categories, item.id

        parent = find_node(category.items, parent_id)
        if parent is None:
            self._node_missing(parent_id, category_id)
            return categories, None

        item.parent_id = parent.id
        parent.sub_items.append(item)
        parent.is_expanded = True
        return categories, item.id

    def add_item(
        self,
        tree: Any,
        category_id: Optional[str],
        parent_id: Optional[str],
        item_type: Any,
        settings: Optional[QuoteSettings],
        is_work_budget: bool = False,
        new_item: Optional[BudgetLine] = None,
    ) -> List[BudgetCategory]:
        """Add a new category or line; see add_item_with_id."""
        categories, _ = self.add_item_with_id(
            tree, category_id, parent_id, item_type, settings, is_work_budget, new_item
        )
        return categories

    # -------------------------------------------------------------------------
    # Update / delete
    # -------------------------------------------------------------------------

    def update_item(
        self,
        tree: Any,
        category_id: str,
        item_id: str,
        updates: Mapping[str, Any],
    ) -> List[BudgetCategory]:
        """
        Shallow-merge updates onto a line of a category.

        Args:
            tree: Current budget
            category_id: Category holding the line
            item_id: Line id, searched at any depth
            updates: Field values keyed by snake_case or camelCase name

        Returns:
            New tree
        """
        categories = clone_tree(coerce_tree(tree))
        category = find_category(categories, category_id)
        if category is None:
            self._category_missing(category_id)
            return categories

        node = find_node(category.items, item_id)
        if node is None:
            self._node_missing(item_id, category_id)
            return categories

        for field_name, value in _normalize_line_updates(updates).items():
            setattr(node, field_name, value)
        return categories

    def delete_item(self, tree: Any, category_id: str, item_id: str) -> List[BudgetCategory]:
        """
        Remove a category or a line.

        When category_id equals item_id the whole category goes, except the
        social charges bucket which always survives.
        """
        categories = clone_tree(coerce_tree(tree))
        category = find_category(categories, category_id)
        if category is None:
            self._category_missing(category_id)
            return categories

        if category_id == item_id:
            if category.is_social_charges:
                logger.info("Social charges category cannot be deleted, kept as is")
                return categories
            categories.remove(category)
            return categories

        if not self._remove_line(category.items, item_id):
            self._node_missing(item_id, category_id)
        return categories

    def _remove_line(self, items: List[BudgetLine], item_id: str) -> bool:
        for index, item in enumerate(items):
            if item.id == item_id:
                del items[index]
                return True
        for item in items:
            if self._remove_line(item.sub_items, item_id):
                return True
        return False

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    def update_category(
        self,
        tree: Any,
        category_id: str,
        updates: Mapping[str, Any],
    ) -> List[BudgetCategory]:
        """Shallow-merge name/is_expanded (or a replacement items list) onto a category."""
        categories = clone_tree(coerce_tree(tree))
        category = find_category(categories, category_id)
        if category is None:
            self._category_missing(category_id)
            return categories

        for key, value in (updates or {}).items():
            field_name = _CATEGORY_FIELDS.get(key)
            if field_name is None:
                logger.warning(f"Ignoring unknown category field '{key}'")
                continue
            if field_name == 'items':
                children = value if isinstance(value, (list, tuple)) else []
                value = [line for line in (_coerce_line(child) for child in children) if line is not None]
            elif field_name == 'is_expanded':
                value = bool(value)
            elif field_name == 'name':
                value = "" if value is None else str(value)
            setattr(category, field_name, value)
        return categories

    def reorder_categories(self, tree: Any, from_index: int, to_index: int) -> List[BudgetCategory]:
        """Move a category within the top-level list; out-of-range indices are a no-op."""
        categories = clone_tree(coerce_tree(tree))
        size = len(categories)
        if not (0 <= from_index < size and 0 <= to_index < size):
            logger.warning(f"Cannot move category {from_index} -> {to_index} in a budget of {size}")
            return categories

        moved = categories.pop(from_index)
        categories.insert(to_index, moved)
        return categories

    # -------------------------------------------------------------------------
    # Rates
    # -------------------------------------------------------------------------

    def apply_rate_margins(
        self,
        tree: Any,
        rate_id: str,
        agency_percent: Optional[float] = None,
        margin_percent: Optional[float] = None,
    ) -> List[BudgetCategory]:
        """
        Propagate agency/margin to every line charged with the given rate.

        Args:
            tree: Current budget
            rate_id: Social charge rate id
            agency_percent: New agency percentage, None leaves it untouched
            margin_percent: New margin percentage, None leaves it untouched

        Returns:
            New tree
        """
        categories = clone_tree(coerce_tree(tree))
        if not rate_id:
            return categories

        updated = 0
        for node in iter_nodes(categories):
            if node.social_charges != str(rate_id):
                continue
            if agency_percent is not None:
                node.agency_percent = num_or_zero(agency_percent)
            if margin_percent is not None:
                node.margin_percent = num_or_zero(margin_percent)
            updated += 1

        logger.debug(f"Applied rate {rate_id} margins to {updated} lines")
        return categories


# Module-level shortcuts on a tolerant mutator
_default_mutator = TreeMutator()

add_item = _default_mutator.add_item
add_item_with_id = _default_mutator.add_item_with_id
update_item = _default_mutator.update_item
delete_item = _default_mutator.delete_item
update_category = _default_mutator.update_category
reorder_categories = _default_mutator.reorder_categories
apply_rate_margins = _default_mutator.apply_rate_margins
