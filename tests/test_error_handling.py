"""Tests for error handling in the InvRec API.

Tests missing catalogs, unknown variants and products, invalid parameters
and internal errors, including the storefront endpoint's reduced bodies.
"""

import json
import logging

import pytest
from fastapi.testclient import TestClient

import invrec.api.state as state_module
from invrec.api.exceptions import (
    CatalogLoadError,
    CatalogNotFoundError,
    InvRecException,
    RecommendationsNotGeneratedError,
    VariantNotFoundError,
)
from invrec.api.logging_config import JSONFormatter
from invrec.api.main import app
from invrec.api.state import RecommendationState
from invrec.config import Settings
from invrec.recommender.scoring import VariantRecommender

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)

# Create test client
client = TestClient(app)


@pytest.fixture
def empty_data_dir(tmp_path, monkeypatch):
    """API settings pointing at a directory without a catalog."""
    settings = Settings(DATA_DIR=str(tmp_path / "missing"))
    monkeypatch.setattr(state_module, "get_settings", lambda: settings)
    monkeypatch.setattr(state_module, "_state", None)
    monkeypatch.setattr(state_module, "_settings_store", None)
    return settings


def test_missing_catalog_returns_503(empty_data_dir):
    """A missing catalog is reported as service unavailable."""
    response = client.get("/recommend/variants/v-1")

    assert response.status_code == 503
    data = response.json()
    assert data["error"] == "CatalogNotFoundError"
    assert "Catalog not found" in data["message"]
    assert data["details"]["catalog_path"].endswith("catalog.json")


def test_malformed_catalog_raises_load_error(tmp_path):
    (tmp_path / "catalog.json").write_text('{"products": "nope"}', encoding="utf-8")

    with pytest.raises(CatalogLoadError) as exc_info:
        RecommendationState.load(Settings(DATA_DIR=str(tmp_path)))

    assert exc_info.value.status_code == 500
    assert exc_info.value.details["error_type"] == "ValueError"


def test_missing_orders_leave_metrics_empty(data_dir):
    (data_dir / "orders.csv").unlink()

    state = RecommendationState.load(Settings(DATA_DIR=str(data_dir)))

    assert state.metrics.metrics == {}
    assert len(state.catalog) == 7


def test_unknown_variant_returns_404(api_state):
    response = client.get("/recommend/variants/does-not-exist")

    assert response.status_code == 404
    assert response.json() == {
        "error": "VariantNotFoundError",
        "message": "Variant does-not-exist not found in catalog.",
        "details": {"variant_id": "does-not-exist"},
    }


def test_unknown_product_returns_404(api_state):
    response = client.get("/recommend/products/p-404")

    assert response.status_code == 404
    assert response.json()["error"] == "ProductNotFoundError"


def test_product_lists_before_generation_return_503(api_state):
    response = client.get("/recommend/products/p-1")

    assert response.status_code == 503
    assert response.json()["error"] == "RecommendationsNotGeneratedError"


def test_invalid_parameters_return_422(api_state):
    """Validation errors share the error body shape."""
    response = client.get("/recommend/variants/v-1?limit=0")

    assert response.status_code == 422
    data = response.json()
    assert data["error"] == "ValidationError"
    assert data["message"] == "Invalid request parameters"
    assert data["details"]["errors"]

    assert client.get("/recommend/products/p-1?type=other").status_code == 422
    assert client.post("/recommend/generate", json={"limit": "many"}).status_code == 422


def test_invalid_settings_payload_returns_422(api_state):
    response = client.post("/settings/inventory-recommendations", json=[1, 2, 3])

    assert response.status_code == 422
    data = response.json()
    assert data["error"] == "InvalidSettingsError"
    assert "must be an object" in data["details"]["reason"]


def test_live_recommendation_failure_returns_500(api_state, monkeypatch):
    def broken(self, variant, limit=6):
        raise RuntimeError("scoring exploded")

    monkeypatch.setattr(VariantRecommender, "recommend", broken)

    response = client.get("/recommend/variants/v-1")

    assert response.status_code == 500
    data = response.json()
    assert data["error"] == "RecommendationError"
    assert data["details"]["error"] == "scoring exploded"


def test_public_missing_product_id_returns_400(api_state):
    response = client.get("/recommend/public/products")

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid product_id", "recommendations": []}


def test_public_unknown_product_returns_404(api_state):
    response = client.get("/recommend/public/products?product_id=nope")

    assert response.status_code == 404
    assert response.json() == {"error": "Product not found", "recommendations": []}


def test_public_internal_error_hides_details(api_state, monkeypatch):
    """Storefront errors never expose exception messages."""

    def broken(self, variant, limit=6, type="fragrance"):
        raise RuntimeError("secret internals")

    monkeypatch.setattr(VariantRecommender, "recommend_by_inspiration_type", broken)

    response = client.get("/recommend/public/products?product_id=v-1")

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to load recommendations", "recommendations": []}


def test_public_missing_catalog_returns_500(empty_data_dir):
    response = client.get("/recommend/public/products?product_id=v-1")

    assert response.status_code == 500
    assert response.json()["recommendations"] == []


def test_exception_hierarchy():
    """Domain exceptions carry status codes and details."""
    for exc, status in (
        (CatalogNotFoundError("data/catalog.json"), 503),
        (VariantNotFoundError("v-1"), 404),
        (RecommendationsNotGeneratedError("data/recommendations"), 503),
    ):
        assert isinstance(exc, InvRecException)
        assert exc.status_code == status
        assert exc.details


def test_json_formatter_includes_extra_fields():
    """Structured fields passed via ``extra`` end up in the JSON line."""
    record = logging.LogRecord("invrec.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    record.variant_id = "v-1"

    line = json.loads(JSONFormatter().format(record))

    assert line["message"] == "hello world"
    assert line["level"] == "INFO"
    assert line["variant_id"] == "v-1"
    assert "msg" not in line
