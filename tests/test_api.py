"""Tests for the InvRec API endpoints.

The fixtures in conftest.py point the API at a temporary data directory with
a small catalog and order history.
"""

import logging

from fastapi.testclient import TestClient

from invrec.api.main import app, run_scheduled_generation
from invrec.api.routes.recommend import public_limit

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)

# Create test client
client = TestClient(app)


def _variant_ids(data):
    return [rec["variant"]["id"] for rec in data["recommendations"]]


def test_ping():
    """Test ping endpoint returns ok status."""
    response = client.get("/ping")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert "X-Request-ID" in response.headers


def test_status_before_load(api_settings):
    """Status does not trigger a load."""
    response = client.get("/status")

    assert response.status_code == 200
    data = response.json()
    assert data["catalog_loaded"] is False
    assert data["num_products"] == 0


def test_status_after_load(api_state):
    response = client.get("/status")

    data = response.json()
    assert data["catalog_loaded"] is True
    assert data["num_products"] == 7
    assert data["num_variants"] == 8
    assert data["recommendations_loaded"] is False
    assert data["last_run"] is None
    assert data["timestamp_last_loaded"] is not None


def test_live_variant_recommendations(api_state):
    """Without stored lists, recommendations are computed live."""
    response = client.get("/recommend/variants/v-1?limit=3")

    assert response.status_code == 200
    data = response.json()
    assert data["variant_id"] == "v-1"
    assert data["source"] == "live"
    assert _variant_ids(data) == ["v-4", "v-2", "v-6"]
    assert [rec["position"] for rec in data["recommendations"]] == [0, 1, 2]
    assert data["recommendations"][0]["breakdown"] is None


def test_variant_lookup_by_code_with_explain(api_state):
    """Variant codes work as identifiers; explain adds the breakdown."""
    response = client.get("/recommend/variants/KV001?limit=1&explain=true")

    data = response.json()
    assert data["variant_id"] == "v-1"
    first = data["recommendations"][0]
    assert first["breakdown"]["descriptors"] == 500.0
    assert first["matches"]["descriptors"][0]["values"] == ["Chanel Coco"]


def test_generate_then_serve_stored(api_state):
    """A generation run makes stored lists the default source."""
    response = client.post("/recommend/generate", json={"product_limit": 5})

    assert response.status_code == 200
    run = response.json()
    assert run["status"] == "completed"
    assert run["message"] == "Generated recommendations for 8 variants and 6 products."
    assert run["options"]["product_limit"] == 5
    assert "tester" in run["options"]["exclude_keywords"]

    stored = client.get("/recommend/variants/v-1").json()
    assert stored["source"] == "stored"
    assert _variant_ids(stored) == ["v-4", "v-2", "v-3b", "v-5"]
    assert stored["recommendations"][1]["variant"]["metrics"]["last_30_quantity"] == 3.0

    live = client.get("/recommend/variants/v-1?live=true&limit=3").json()
    assert live["source"] == "live"
    assert _variant_ids(live) == ["v-4", "v-2", "v-6"]


def test_generate_without_body(api_state):
    response = client.post("/recommend/generate")

    assert response.status_code == 200
    assert response.json()["variants"] == 8


def test_scheduled_generation_serves_product_lists(api_state):
    """A background run makes stored product lists available without a reload."""
    run = run_scheduled_generation()

    assert run["status"] == "completed"
    assert api_state.recommendations_loaded is True

    response = client.get("/recommend/products/p-1")
    assert response.status_code == 200
    assert [r["recommended_product_id"] for r in response.json()["recommended"]] == ["p-3"]
    assert client.get("/metrics").json()["generation_count"] == 1


def test_latest_run(api_state):
    assert client.get("/recommend/runs/latest").json()["status"] == "never_run"

    client.post("/recommend/generate", json={"skip_variants": True})

    run = client.get("/recommend/runs/latest").json()
    assert run["status"] == "completed"
    assert run["variants"] == 0
    assert run["products"] == 6


def test_product_recommendations(api_state):
    """Stored product lists, optionally filtered by type."""
    client.post("/recommend/generate", json={"skip_variants": True})

    data = client.get("/recommend/products/p-1").json()
    assert data["product_id"] == "p-1"
    assert [r["recommended_product_id"] for r in data["related"]] == ["p-2", "p-7", "p-4"]
    assert [r["recommended_product_id"] for r in data["recommended"]] == ["p-3"]
    assert data["related"][0]["variant"]["id"] == "v-2"

    only_recommended = client.get("/recommend/products/p-1?type=recommended").json()
    assert only_recommended["related"] == []
    assert len(only_recommended["recommended"]) == 1


def test_public_recommendations(api_state):
    """The storefront feed returns minimal variant views."""
    response = client.get("/recommend/public/products?product_id=KV001&mode=fragrance")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "success"
    assert data["count"] == 3
    assert [rec["id"] for rec in data["recommendations"]] == ["v-6", "v-4", "v-2"]

    lumiere = data["recommendations"][2]
    assert lumiere == {
        "id": "v-2",
        "name": "Lumière Parfémovaná voda Coco 50 ml",
        "image": "https://cdn.example.cz/v-2.jpg",
        "price": 449.0,
        "original_price": None,
        "url": "https://example.cz/lumiere-coco/",
    }


def test_public_recommendations_limit_and_mode(api_state):
    """Unknown modes fall back to product; limits are clamped."""
    data = client.get("/recommend/public/products?product_id=v-1&mode=candles&limit=1").json()
    assert data["count"] == 1

    data = client.get("/recommend/public/products?product_id=v-1&limit=500").json()
    assert data["count"] == 3

    response = client.get("/recommend/public/products?product_id=v-1&limit=abc")
    assert response.status_code == 200
    assert response.json()["count"] == 3

    data = client.get("/recommend/public/products?product_id=v-1&limit=-4").json()
    assert data["count"] == 1


def test_public_limit_parsing():
    assert public_limit(None, 20) == 8
    assert public_limit("abc", 20) == 8
    assert public_limit("0", 20) == 1
    assert public_limit("50", 20) == 20


def test_reload(api_state):
    """Reload replaces the cached state."""
    response = client.post("/recommend/reload")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "Data reloaded successfully"
    assert data["num_products"] == 7
    assert data["num_variants"] == 8
    assert data["recommendations_loaded"] is False


def test_reload_picks_up_generated_artifacts(api_state):
    client.post("/recommend/generate", json={"skip_variants": True})

    data = client.post("/recommend/reload").json()

    assert data["recommendations_loaded"] is True
    assert client.get("/status").json()["recommendations_loaded"] is True


def test_settings_roundtrip(api_state):
    """Settings are read merged with defaults and saved normalized."""
    current = client.get("/settings/inventory-recommendations").json()
    assert current["filters"]["znacka"] == 300
    assert current["candidate_limit"] == 120

    response = client.post("/settings/inventory-recommendations", json={"filters": {"Značka": 1000}})
    assert response.status_code == 200
    assert response.json()["filters"]["znacka"] == 1000.0

    assert client.get("/settings/inventory-recommendations").json()["filters"]["znacka"] == 1000.0
    assert (api_state.settings.data_path / "recommendation_settings.json").exists()

    data = client.get("/recommend/variants/v-1?limit=3").json()
    assert _variant_ids(data) == ["v-4", "v-3b", "v-5"]


def test_metrics_endpoint(api_state):
    """Calls are counted per endpoint."""
    client.get("/recommend/variants/v-1")
    client.get("/recommend/public/products?product_id=v-1")
    client.post("/recommend/generate", json={"skip_variants": True})

    data = client.get("/metrics").json()

    assert data["call_count"] == 2
    assert data["calls_by_endpoint"] == {"variant": 1, "public": 1}
    assert data["generation_count"] == 1
    assert data["max_latency_ms"] >= data["min_latency_ms"] >= 0
