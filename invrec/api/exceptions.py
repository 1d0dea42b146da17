"""Custom exceptions for the InvRec API.

Defines specific exception types for better error handling and reporting.
"""

from typing import Any, Dict, Optional


class InvRecException(Exception):
    """Base exception for InvRec errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize exception.

        Args:
            message: Human-readable error message
            status_code: HTTP status code for API responses
            details: Additional error details for debugging
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details or {}


class CatalogNotFoundError(InvRecException):
    """Raised when the catalog file is missing."""

    def __init__(self, catalog_path: str):
        super().__init__(
            message=f"Catalog not found at '{catalog_path}'. Export the catalog first.",
            status_code=503,
            details={"catalog_path": catalog_path},
        )


class CatalogLoadError(InvRecException):
    """Raised when the catalog or order data fail to load."""

    def __init__(self, path: str, error: Exception):
        super().__init__(
            message=f"Failed to load data from '{path}': {error}",
            status_code=500,
            details={
                "path": path,
                "error": str(error),
                "error_type": type(error).__name__,
            },
        )


class VariantNotFoundError(InvRecException):
    def __init__(self, variant_id: str):
        super().__init__(
            message=f"Variant {variant_id} not found in catalog.",
            status_code=404,
            details={"variant_id": variant_id},
        )


class ProductNotFoundError(InvRecException):
    def __init__(self, product_id: str):
        super().__init__(
            message=f"Product {product_id} not found in catalog.",
            status_code=404,
            details={"product_id": product_id},
        )


class RecommendationsNotGeneratedError(InvRecException):
    """Raised when stored recommendations are requested before any run."""

    def __init__(self, recommendations_path: str):
        super().__init__(
            message=(
                f"No generated recommendations in '{recommendations_path}'. "
                "Run POST /recommend/generate first."
            ),
            status_code=503,
            details={"recommendations_path": recommendations_path},
        )


class InvalidSettingsError(InvRecException):
    """Raised when a recommendation settings payload is rejected."""

    def __init__(self, reason: str):
        super().__init__(
            message=f"Invalid recommendation settings: {reason}",
            status_code=422,
            details={"reason": reason},
        )


class RecommendationError(InvRecException):
    """Raised when recommendation generation fails."""

    def __init__(self, subject: str, error: Exception):
        super().__init__(
            message=f"Failed to generate recommendations for {subject}: {error}",
            status_code=500,
            details={
                "subject": subject,
                "error": str(error),
                "error_type": type(error).__name__,
            },
        )
