"""
Domain Exceptions for the Quote Budget Engine.

Pure tree computations absorb malformed input and never raise these;
they are reserved for strict mutator builds, validation of explicit
requests, and persistence failures surfaced to the caller.
"""


class DomainError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "DOMAIN_ERROR"):
        self.message = message
        self.code = code
        super().__init__(self.message)


# =============================================================================
# Tree Exceptions
# =============================================================================

class CategoryNotFoundError(DomainError):
    """Raised by a strict mutator when a category id does not resolve."""

    def __init__(self, category_id: str):
        message = f"Category with id '{category_id}' not found"
        super().__init__(message, code="CATEGORY_NOT_FOUND")
        self.category_id = category_id


class NodeNotFoundError(DomainError):
    """Raised by a strict mutator when an item id does not resolve."""

    def __init__(self, node_id: str, category_id: str = None):
        if category_id:
            message = f"Item '{node_id}' not found in category '{category_id}'"
        else:
            message = f"Item '{node_id}' not found"
        super().__init__(message, code="NODE_NOT_FOUND")
        self.node_id = node_id
        self.category_id = category_id


# =============================================================================
# Persistence Exceptions
# =============================================================================

class PersistenceError(DomainError):
    """Raised when saving or loading a budget tree fails."""

    def __init__(self, operation: str, quote_id: str, reason: str = ""):
        message = f"Failed to {operation} for quote '{quote_id}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, code="PERSISTENCE_ERROR")
        self.operation = operation
        self.quote_id = quote_id
        self.reason = reason


# =============================================================================
# History Exceptions
# =============================================================================

class VersionNotFoundError(DomainError):
    """Raised when a budget version cannot be found."""

    def __init__(self, version_id: str):
        message = f"Budget version with id '{version_id}' not found"
        super().__init__(message, code="VERSION_NOT_FOUND")
        self.version_id = version_id


# =============================================================================
# Validation Exceptions
# =============================================================================

class ValidationError(DomainError):
    """Raised when data validation fails."""

    def __init__(self, field: str, message: str):
        super().__init__(f"Validation failed for '{field}': {message}", code="VALIDATION_ERROR")
        self.field = field
