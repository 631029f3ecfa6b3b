"""
Budget Tree - Traversal and copy helpers shared by aggregation and mutation.

Every helper recurses without a depth limit. Ids are treated as unique
across the whole tree, not per category: lookups return the first match
in depth-first pre-order.
"""
import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Union

from quote_budget.domain.entities.budget_category import BudgetCategory
from quote_budget.domain.entities.budget_line import BudgetLine
from quote_budget.domain.numbers import num_or_zero

logger = logging.getLogger(__name__)

__all__ = [
    'iter_nodes',
    'iter_leaves',
    'find_node',
    'find_category',
    'coerce_tree',
    'clone_line',
    'clone_tree',
    'strip_comment',
    'extract_comments',
    'apply_comments',
    'num_or_zero',
]


# =============================================================================
# Traversal
# =============================================================================

def _walk(items: Iterable[BudgetLine]) -> Iterator[BudgetLine]:
    for item in items or []:
        yield item
        yield from _walk(item.sub_items)


def iter_nodes(categories: Iterable[BudgetCategory]) -> Iterator[BudgetLine]:
    """
    Visit every line of a budget at any depth, depth-first pre-order.

    Args:
        categories: Budget categories

    Yields:
        Each BudgetLine, parents before their children
    """
    for category in categories or []:
        yield from _walk(category.items)


def iter_leaves(items: Iterable[BudgetLine]) -> Iterator[BudgetLine]:
    """
    Visit leaf lines only (lines without sub-items).

    A parent never contributes its own fields, only its children do.
    """
    for item in items or []:
        if item.sub_items:
            yield from iter_leaves(item.sub_items)
        else:
            yield item


def find_node(
    tree: Union[Sequence[BudgetCategory], Sequence[BudgetLine]],
    node_id: str,
) -> Optional[BudgetLine]:
    """
    Find a line by id.

    Args:
        tree: Either a list of categories or a list of lines
        node_id: Line id to look for

    Returns:
        First matching BudgetLine, or None
    """
    if not node_id:
        return None
    for entry in tree or []:
        if isinstance(entry, BudgetCategory):
            found = find_node(entry.items, node_id)
        else:
            if entry.id == node_id:
                return entry
            found = find_node(entry.sub_items, node_id)
        if found is not None:
            return found
    return None


def find_category(categories: Sequence[BudgetCategory], category_id: str) -> Optional[BudgetCategory]:
    """Find a top-level category by id."""
    for category in categories or []:
        if category.id == category_id:
            return category
    return None


# =============================================================================
# Coercion and copies
# =============================================================================

def coerce_tree(value: Any) -> List[BudgetCategory]:
    """
    Normalize anything handed in as a tree.

    Non-sequences (None, dicts, strings, numbers) become an empty budget.
    Dict entries are parsed as stored categories; other junk is dropped.
    """
    if not isinstance(value, (list, tuple)):
        if value is not None:
            logger.warning(f"Malformed budget tree of type {type(value).__name__}, using empty tree")
        return []

    categories = []
    for entry in value:
        if isinstance(entry, BudgetCategory):
            categories.append(entry)
        elif isinstance(entry, dict):
            categories.append(BudgetCategory.from_dict(entry))
    return categories


def clone_line(line: BudgetLine, strip_comments: bool = False) -> BudgetLine:
    """
    Structural copy of a line and its descendants.

    Args:
        line: Line to copy
        strip_comments: Drop the budget-local `comment` annotation

    Returns:
        New BudgetLine sharing no mutable state with the source
    """
    return BudgetLine(
        id=line.id,
        type=line.type,
        name=line.name,
        parent_id=line.parent_id,
        quantity=line.quantity,
        number=line.number,
        unit=line.unit,
        rate=line.rate,
        cost=line.cost,
        overtime=line.overtime,
        social_charges=line.social_charges,
        agency_percent=line.agency_percent,
        margin_percent=line.margin_percent,
        sub_items=[clone_line(child, strip_comments) for child in line.sub_items],
        is_expanded=line.is_expanded,
        comments=line.comments,
        comment=None if strip_comments or line.comment is None else dict(line.comment),
        is_new_post=line.is_new_post,
    )


def clone_tree(categories: Iterable[BudgetCategory], strip_comments: bool = False) -> List[BudgetCategory]:
    """Structural copy of a whole budget."""
    return [
        BudgetCategory(
            id=category.id,
            name=category.name,
            is_expanded=category.is_expanded,
            items=[clone_line(item, strip_comments) for item in category.items],
        )
        for category in categories or []
    ]


def strip_comment(categories: Iterable[BudgetCategory]) -> List[BudgetCategory]:
    """Copy of the budget without any `comment` annotation."""
    return clone_tree(categories, strip_comments=True)


# =============================================================================
# Work budget comments
# =============================================================================

def extract_comments(categories: Iterable[BudgetCategory]) -> Dict[str, str]:
    """
    Collect free-text comments keyed by line id.

    Only non-empty strings are collected.
    """
    return {
        node.id: node.comments
        for node in iter_nodes(categories)
        if isinstance(node.comments, str) and node.comments
    }


def apply_comments(categories: Iterable[BudgetCategory], comments: Optional[Dict[str, str]]) -> List[BudgetCategory]:
    """
    Copy of the budget with comments re-joined by line id.

    Lines missing from the mapping keep whatever comment they carry.
    """
    tree = clone_tree(categories)
    if not comments:
        return tree
    for node in iter_nodes(tree):
        if node.id in comments:
            node.comments = comments[node.id]
    return tree
