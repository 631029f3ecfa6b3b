"""
Quote Budget API Endpoints - Budget trees, totals and versions of a quote.

Implements:
- GET    /api/v1/quotes/{quote_id}/budget - Tree and totals (?work=true for the work budget)
- PUT    /api/v1/quotes/{quote_id}/budget - Replace a tree
- POST   /api/v1/quotes/{quote_id}/items - Add a category or line
- PATCH  /api/v1/quotes/{quote_id}/categories/{category_id}/items/{item_id} - Update a line
- DELETE /api/v1/quotes/{quote_id}/categories/{category_id}/items/{item_id} - Delete a line or category
- PATCH  /api/v1/quotes/{quote_id}/categories/{category_id} - Update a category
- POST   /api/v1/quotes/{quote_id}/categories/reorder - Move a category
- POST   /api/v1/quotes/{quote_id}/rates/{rate_id}/margins - Propagate rate margins
- POST   /api/v1/quotes/{quote_id}/work-budget - Initialize the work budget
- DELETE /api/v1/quotes/{quote_id}/work-budget - Reset the work budget
- GET    /api/v1/quotes/{quote_id}/comparison - Quote versus work budget
- POST/GET /api/v1/quotes/{quote_id}/versions - Version history
- POST   /api/v1/quotes/{quote_id}/versions/{version_id}/restore - Restore a version
- POST   /api/v1/quotes/optimal-rates - Margin needed to reach a target total
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from quote_budget.api.v1.dependencies import get_gateway, get_settings
from quote_budget.domain.entities.budget_category import budget_to_dicts
from quote_budget.domain.entities.budget_line import BudgetItemType
from quote_budget.domain.entities.quote_settings import QuoteSettings
from quote_budget.domain.exceptions import (
    CategoryNotFoundError,
    DomainError,
    NodeNotFoundError,
    PersistenceError,
    ValidationError,
    VersionNotFoundError,
)
from quote_budget.domain.services import (
    DualBudgetCoordinator,
    HistoryService,
    TreeMutator,
    calculate_optimal_rates,
)
from quote_budget.infrastructure.persistence_gateway import PersistenceGateway
from quote_budget.models import get_db

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Pydantic Models
# =============================================================================

class BudgetReplace(BaseModel):
    """Request model for replacing a whole tree."""
    budget: List[Dict[str, Any]] = Field(..., description="Categories in their stored shape")


class ItemCreate(BaseModel):
    """Request model for adding a category or line."""
    type: BudgetItemType = Field(..., description="category, subCategory, post or subPost")
    category_id: Optional[str] = Field(None, description="Target category (not used for a category)")
    parent_id: Optional[str] = Field(None, description="Parent line, None for category top level")


class ItemUpdate(BaseModel):
    """Request model for updating a line."""
    updates: Dict[str, Any] = Field(..., description="Fields to merge, snake_case or camelCase")


class CategoryUpdate(BaseModel):
    """Request model for updating a category."""
    name: Optional[str] = Field(None, max_length=200)
    is_expanded: Optional[bool] = None


class CategoryReorder(BaseModel):
    """Request model for moving a category."""
    from_index: int = Field(..., ge=0)
    to_index: int = Field(..., ge=0)


class RateMargins(BaseModel):
    """Request model for propagating a rate's agency/margin to its lines."""
    agency_percent: Optional[float] = Field(None, ge=0, le=100)
    margin_percent: Optional[float] = Field(None, ge=0, le=100)


class VersionCreate(BaseModel):
    """Request model for snapshotting the quote budget."""
    project_id: str = Field(..., min_length=1, max_length=100)
    author: Optional[str] = Field(None, max_length=200)
    description: str = Field("", max_length=1000)


class OptimalRatesRequest(BaseModel):
    """Request model for the margin needed to reach a target total."""
    base_cost: float
    target_total: float


class BudgetStateResponse(BaseModel):
    """Response model for a tree with its totals."""
    quote_id: str
    work: bool
    is_work_budget_active: bool
    budget: List[Dict[str, Any]]
    totals: Dict[str, Any]
    sync: Dict[str, Any]
    last_saved: Optional[str] = None


class ItemCreateResponse(BudgetStateResponse):
    """Response for an added node."""
    id: str


# =============================================================================
# Helpers
# =============================================================================

def _load_coordinator(
    quote_id: str,
    gateway: PersistenceGateway,
    settings: QuoteSettings,
) -> DualBudgetCoordinator:
    coordinator = DualBudgetCoordinator(
        quote_id,
        gateway,
        settings_provider=lambda: settings,
        mutator=TreeMutator(strict=True),
    )
    if not coordinator.load():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Budgets of quote '{quote_id}' could not be loaded"
        )
    return coordinator


def _state(coordinator: DualBudgetCoordinator, work: bool, settings: QuoteSettings) -> dict:
    return {
        'quote_id': coordinator.quote_id,
        'work': work,
        'is_work_budget_active': coordinator.is_work_budget_active,
        'budget': budget_to_dicts(coordinator.get_tree(work_budget=work)),
        'totals': coordinator.compute_totals(settings, work_budget=work).to_dict(),
        'sync': coordinator.gateway.sync_status().to_dict(),
        'last_saved': coordinator.last_saved.isoformat() if coordinator.last_saved else None,
    }


def _raise_http(error: DomainError):
    """Map a domain error to an HTTP error."""
    if isinstance(error, (CategoryNotFoundError, NodeNotFoundError, VersionNotFoundError)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error.message)
    if isinstance(error, ValidationError):
        raise HTTPException(status_code=422, detail=error.message)
    if isinstance(error, PersistenceError):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=error.message)
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.message)


# =============================================================================
# Budget Endpoints
# =============================================================================

@router.get(
    "/{quote_id}/budget",
    response_model=BudgetStateResponse,
    summary="Get a budget tree with its totals"
)
def get_budget(
    quote_id: str,
    work: bool = Query(False, description="Select the work budget"),
    gateway: PersistenceGateway = Depends(get_gateway),
    settings: QuoteSettings = Depends(get_settings),
):
    """Get the quote budget, or the work budget priced on actual costs."""
    coordinator = _load_coordinator(quote_id, gateway, settings)
    return _state(coordinator, work, settings)


@router.put(
    "/{quote_id}/budget",
    response_model=BudgetStateResponse,
    summary="Replace a budget tree"
)
def replace_budget(
    quote_id: str,
    payload: BudgetReplace,
    work: bool = Query(False),
    gateway: PersistenceGateway = Depends(get_gateway),
    settings: QuoteSettings = Depends(get_settings),
):
    coordinator = _load_coordinator(quote_id, gateway, settings)
    try:
        coordinator.update_budget(payload.budget, work_budget=work)
    except DomainError as e:
        _raise_http(e)
    return _state(coordinator, work, settings)


@router.post(
    "/{quote_id}/items",
    response_model=ItemCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a category or line"
)
def add_item(
    quote_id: str,
    payload: ItemCreate,
    work: bool = Query(False),
    gateway: PersistenceGateway = Depends(get_gateway),
    settings: QuoteSettings = Depends(get_settings),
):
    """
    Add a node to a tree.

    Posts added to an empty work budget go to the "added posts" category.
    """
    coordinator = _load_coordinator(quote_id, gateway, settings)
    try:
        new_id = coordinator.add_item(
            payload.category_id, payload.parent_id, payload.type, settings, work_budget=work
        )
    except DomainError as e:
        _raise_http(e)
    return {**_state(coordinator, work, settings), 'id': new_id}


@router.patch(
    "/{quote_id}/categories/{category_id}/items/{item_id}",
    response_model=BudgetStateResponse,
    summary="Update a line"
)
def update_item(
    quote_id: str,
    category_id: str,
    item_id: str,
    payload: ItemUpdate,
    work: bool = Query(False),
    gateway: PersistenceGateway = Depends(get_gateway),
    settings: QuoteSettings = Depends(get_settings),
):
    coordinator = _load_coordinator(quote_id, gateway, settings)
    try:
        coordinator.update_item(category_id, item_id, payload.updates, work_budget=work)
    except DomainError as e:
        _raise_http(e)
    return _state(coordinator, work, settings)


@router.delete(
    "/{quote_id}/categories/{category_id}/items/{item_id}",
    response_model=BudgetStateResponse,
    summary="Delete a line, or the category itself when item_id equals category_id"
)
def delete_item(
    quote_id: str,
    category_id: str,
    item_id: str,
    work: bool = Query(False),
    gateway: PersistenceGateway = Depends(get_gateway),
    settings: QuoteSettings = Depends(get_settings),
):
    coordinator = _load_coordinator(quote_id, gateway, settings)
    try:
        coordinator.delete_item(category_id, item_id, work_budget=work)
    except DomainError as e:
        _raise_http(e)
    return _state(coordinator, work, settings)


@router.patch(
    "/{quote_id}/categories/{category_id}",
    response_model=BudgetStateResponse,
    summary="Update a category"
)
def update_category(
    quote_id: str,
    category_id: str,
    payload: CategoryUpdate,
    work: bool = Query(False),
    gateway: PersistenceGateway = Depends(get_gateway),
    settings: QuoteSettings = Depends(get_settings),
):
    coordinator = _load_coordinator(quote_id, gateway, settings)
    updates = payload.model_dump(exclude_none=True)
    try:
        coordinator.update_category(category_id, updates, work_budget=work)
    except DomainError as e:
        _raise_http(e)
    return _state(coordinator, work, settings)


@router.post(
    "/{quote_id}/categories/reorder",
    response_model=BudgetStateResponse,
    summary="Move a category"
)
def reorder_categories(
    quote_id: str,
    payload: CategoryReorder,
    work: bool = Query(False),
    gateway: PersistenceGateway = Depends(get_gateway),
    settings: QuoteSettings = Depends(get_settings),
):
    coordinator = _load_coordinator(quote_id, gateway, settings)
    try:
        coordinator.reorder_categories(payload.from_index, payload.to_index, work_budget=work)
    except DomainError as e:
        _raise_http(e)
    return _state(coordinator, work, settings)


@router.post(
    "/{quote_id}/rates/{rate_id}/margins",
    response_model=BudgetStateResponse,
    summary="Apply a social charge rate's agency/margin to its lines"
)
def apply_rate_margins(
    quote_id: str,
    rate_id: str,
    payload: RateMargins,
    work: bool = Query(False),
    gateway: PersistenceGateway = Depends(get_gateway),
    settings: QuoteSettings = Depends(get_settings),
):
    coordinator = _load_coordinator(quote_id, gateway, settings)
    try:
        coordinator.apply_rate_margins(
            rate_id, payload.agency_percent, payload.margin_percent, work_budget=work
        )
    except DomainError as e:
        _raise_http(e)
    return _state(coordinator, work, settings)


# =============================================================================
# Work Budget Endpoints
# =============================================================================

@router.post(
    "/{quote_id}/work-budget",
    response_model=BudgetStateResponse,
    summary="Initialize the work budget from the quote budget"
)
def initialize_work_budget(
    quote_id: str,
    gateway: PersistenceGateway = Depends(get_gateway),
    settings: QuoteSettings = Depends(get_settings),
):
    """Idempotent: an already populated work budget is left as is."""
    coordinator = _load_coordinator(quote_id, gateway, settings)
    try:
        coordinator.initialize_work_budget()
    except DomainError as e:
        _raise_http(e)
    return _state(coordinator, True, settings)


@router.delete(
    "/{quote_id}/work-budget",
    response_model=BudgetStateResponse,
    summary="Reset the work budget"
)
def reset_work_budget(
    quote_id: str,
    gateway: PersistenceGateway = Depends(get_gateway),
    settings: QuoteSettings = Depends(get_settings),
):
    coordinator = _load_coordinator(quote_id, gateway, settings)
    try:
        coordinator.reset_work_budget()
    except DomainError as e:
        _raise_http(e)
    return _state(coordinator, True, settings)


@router.get("/{quote_id}/comparison", summary="Compare the quote budget with the work budget")
def get_comparison(
    quote_id: str,
    gateway: PersistenceGateway = Depends(get_gateway),
    settings: QuoteSettings = Depends(get_settings),
):
    coordinator = _load_coordinator(quote_id, gateway, settings)
    return coordinator.compare(settings).to_dict()


# =============================================================================
# Version Endpoints
# =============================================================================

@router.post(
    "/{quote_id}/versions",
    status_code=status.HTTP_201_CREATED,
    summary="Snapshot the quote budget"
)
def create_version(
    quote_id: str,
    payload: VersionCreate,
    db: Session = Depends(get_db),
    gateway: PersistenceGateway = Depends(get_gateway),
    settings: QuoteSettings = Depends(get_settings),
):
    coordinator = _load_coordinator(quote_id, gateway, settings)
    try:
        version = HistoryService(db).create_version(
            payload.project_id,
            quote_id,
            coordinator.budget,
            author=payload.author,
            description=payload.description,
            settings=settings,
        )
    except DomainError as e:
        _raise_http(e)
    return version.to_dict()


@router.get("/{quote_id}/versions", summary="List versions of a quote, newest first")
def list_versions(
    quote_id: str,
    project_id: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    versions = HistoryService(db).list_versions(project_id, quote_id)
    return {'versions': [version.to_dict() for version in versions], 'total': len(versions)}


@router.post(
    "/{quote_id}/versions/{version_id}/restore",
    response_model=BudgetStateResponse,
    summary="Replace the quote budget with a saved version"
)
def restore_version(
    quote_id: str,
    version_id: str,
    db: Session = Depends(get_db),
    gateway: PersistenceGateway = Depends(get_gateway),
    settings: QuoteSettings = Depends(get_settings),
):
    history = HistoryService(db)
    try:
        version = history.get_version(version_id)
    except DomainError as e:
        _raise_http(e)

    if version.quote_id != quote_id:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Version '{version_id}' belongs to quote '{version.quote_id}'"
        )

    coordinator = _load_coordinator(quote_id, gateway, settings)
    try:
        coordinator.update_budget(history.restore_version(version_id))
    except DomainError as e:
        _raise_http(e)
    logger.info(f"Restored version {version_id} of quote {quote_id}")
    return _state(coordinator, False, settings)


# =============================================================================
# Rate Tools
# =============================================================================

@router.post("/optimal-rates", summary="Margin needed to reach a target total")
def optimal_rates(payload: OptimalRatesRequest):
    try:
        rates = calculate_optimal_rates(payload.base_cost, payload.target_total)
    except ValidationError as e:
        _raise_http(e)
    return {'agency_percent': rates.agency_percent, 'margin_percent': rates.margin_percent}
