"""
API tests through FastAPI's TestClient; the lifespan wires the in-memory
catalog and static pricing.
"""

import pytest
from fastapi.testclient import TestClient

from api import app


@pytest.fixture(scope="module")
def client():
    with TestClient(app) as c:
        yield c


class TestQuoteEndpoint:
    def test_hospitals(self, client):
        resp = client.post("/quote", json={
            "text": "5 hospitals with 40 users each that need to communicate between locations",
        })
        assert resp.status_code == 200
        body = resp.json()
        assert body["architecture"] == "IP Site Connect"
        assert body["requirement"]["total_users"] == 200
        assert body["validation"]["is_valid"] is True
        assert "X-Response-Time-Ms" in resp.headers
        assert body["alternate_radios"][0] == "XPR7550E-UHF"
        assert body["total_display"].startswith("$")
        assert body["learning"] is None

    def test_unreasonable_request(self, client):
        resp = client.post("/quote", json={"text": "Quote radios for 50000 users"})
        assert resp.status_code == 422
        detail = resp.json()["detail"]
        assert detail["code"] == "UNREASONABLE_REQUEST"
        assert detail["limit"] == 5000
        assert "enterprise sales" in detail["message"]

    def test_invalid_requirement(self, client):
        resp = client.post("/quote", json={"text": "radios for 0 users"})
        assert resp.status_code == 422
        assert resp.json()["detail"]["code"] == "INVALID_REQUIREMENT"

    def test_validation_failure_returns_partial_quote(self, client):
        resp = client.post("/quote", json={"text": "4 factories with 500 users each"})
        assert resp.status_code == 409
        detail = resp.json()["detail"]
        assert detail["code"] == "VALIDATION_FAILED"
        assert "max_quote_amount" in {v["rule"] for v in detail["validation"]["errors"]}
        assert detail["quote"]["architecture"] == "Capacity Max"

    def test_empty_text_rejected(self, client):
        assert client.post("/quote", json={"text": ""}).status_code == 422


class TestReferenceEndpoints:
    def test_extract(self, client):
        resp = client.post("/requirements/extract", json={"text": "3 stores with 10 staff each"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["total_users"] == 30
        assert body["requires_inter_site"] is True
        assert body["industry"] == "Retail"

    def test_architectures(self, client):
        body = client.get("/architectures").json()
        assert len(body["architectures"]) == 5

    def test_architecture_select(self, client):
        resp = client.post("/architecture/select", json={"total_users": 3000, "is_multi_site": True})
        assert resp.json()["architecture"] == "Capacity Max"

    def test_compatibility(self, client):
        resp = client.get("/products/R7-UHF/compatibility")
        assert resp.status_code == 200
        ids = {e["compatible_product_id"] for e in resp.json()["edges"]}
        assert "PMNN4468B" in ids
        assert "PMAD4170" not in ids

    def test_compatibility_with_incompatible(self, client):
        resp = client.get("/products/R7-UHF/compatibility", params={"include_incompatible": True})
        ids = {e["compatible_product_id"] for e in resp.json()["edges"]}
        assert "PMAD4170" in ids

    def test_unknown_product(self, client):
        assert client.get("/products/NOPE/compatibility").status_code == 404

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["components"]["pricing"]["circuit"] == "closed"
        assert body["request_count"] >= 1
