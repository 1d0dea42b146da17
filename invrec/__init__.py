"""InvRec: inventory-aware product recommendation service.

This package provides a backend service for ranking related and cross-sell
product variants of a Shoptet-style catalog using descriptor overlap, filter
attributes, set membership, sales velocity and stock.

Modules:
    api: FastAPI application and REST API endpoints
    recommender: catalog loading, sales metrics and scoring logic
"""

__version__ = "0.1.0"
