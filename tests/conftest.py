import json
import os
from typing import Any, Dict, Generator, List

# Avant l'import de l'app: pas d'init Redis du rate limiting pendant les tests
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

import httpx
import pytest
from fastapi.testclient import TestClient

from storefront import config
from storefront.app import app as fastapi_app
from storefront.payments import xpay_client
from storefront.payments.ledger import reset_ledger

COMMUNITY_ID = "community-1"
API_KEY = "test-api-key-123"

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)
        elif "tests/functional/" in nodeid:
            item.add_marker(pytest.mark.functional)

@pytest.fixture(scope="session")
def app():
    return fastapi_app

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c

# Configuration déterministe pour tous les tests (aucun appel réseau réel)
@pytest.fixture(autouse=True)
def _test_config(monkeypatch):
    monkeypatch.setattr(config, "XPAY_API_KEY", API_KEY)
    monkeypatch.setattr(config, "XPAY_COMMUNITY_ID", COMMUNITY_ID)
    monkeypatch.setattr(config, "XPAY_VARIABLE_AMOUNT_ID", 42)
    monkeypatch.setattr(config, "XPAY_ENV", "staging")
    monkeypatch.setattr(config, "CMS_URL", "https://cms.test")
    monkeypatch.setattr(config, "CART_STORE_BACKEND", "cookie")
    monkeypatch.setattr(config, "LEDGER_BACKEND", "memory")
    monkeypatch.setattr(config, "ENABLE_TEST_CART", False)
    monkeypatch.setattr(config, "RESEND_API_KEY", "")
    monkeypatch.setattr(config, "ADMIN_NOTIFY_EMAIL", "")
    monkeypatch.setattr(config, "DEFAULT_CURRENCY", "EGP")
    reset_ledger()
    yield
    reset_ledger()

PRODUCTS: Dict[str, Dict[str, Any]] = {
    "p1": {"id": "p1", "title": "Produit 1", "price": 100},
    "p2": {"id": "p2", "title": "Produit 2", "price": "25.50"},
    "p3": {"id": "p3", "title": "Produit 3", "price": 10},
}

@pytest.fixture
def catalog(monkeypatch) -> Dict[str, Dict[str, Any]]:
    """Catalogue en mémoire: remplace les lectures CMS (existence + prix)."""
    products = dict(PRODUCTS)

    def _exists(product_id, client=None):
        return product_id in products

    def _map(ids, client=None):
        return {i: products[i] for i in ids if i in products}

    monkeypatch.setattr("storefront.catalog.repository.product_exists", _exists)
    monkeypatch.setattr("storefront.catalog.repository.get_products_map", _map)
    return products


class FakeXPay:
    """
    Passerelle simulée via httpx.MockTransport.
    - prepare-amount: total = montant + fee
    - pay/variable-amount: transaction 123 / uuid-123
    """

    def __init__(self, fee: float = 10.0):
        self.fee = fee
        self.calls: List[Dict[str, Any]] = []
        self.fail_with: Dict[str, httpx.Response] = {}
        self.transaction_status = "PENDING"

    def paths(self) -> List[str]:
        return [c["path"] for c in self.calls]

    def body_for(self, suffix: str) -> Dict[str, Any]:
        return next(c["body"] for c in self.calls if c["path"].endswith(suffix))

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        self.calls.append({"path": request.url.path, "body": body, "headers": dict(request.headers)})
        for suffix, response in self.fail_with.items():
            if request.url.path.endswith(suffix):
                return response
        ok = {"code": 200, "message": "success", "errors": []}
        if request.url.path.endswith("/payments/prepare-amount/"):
            total = round(body["amount"] + self.fee, 2)
            return httpx.Response(200, json={"status": ok, "data": {"total_amount": total, "total_amount_currency": body["currency"]}})
        if request.url.path.endswith("/payments/pay/variable-amount/"):
            return httpx.Response(200, json={
                "status": ok,
                "data": {
                    "iframe_url": "https://staging.xpay.app/iframe/123",
                    "transaction_id": 123,
                    "transaction_status": self.transaction_status,
                    "transaction_uuid": "uuid-123",
                },
            })
        return httpx.Response(404, json={"detail": "not found"})

    def client(self) -> xpay_client.XPayClient:
        return xpay_client.XPayClient(xpay_client.XPayConfig.from_env(), transport=httpx.MockTransport(self.handler))


@pytest.fixture
def fake_xpay(monkeypatch) -> FakeXPay:
    fake = FakeXPay()
    monkeypatch.setattr("storefront.payments.xpay_client.create_xpay_client", lambda transport=None: fake.client())
    return fake


@pytest.fixture
def fake_redis(monkeypatch):
    """Client Redis partagé remplacé par fakeredis (panier serveur + ledger)."""
    import fakeredis
    from storefront.infra import redis_client

    r = fakeredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr(redis_client, "_redis", r)
    return r
