import json
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from cryptoiq.api.deps import (
    get_current_user,
    get_identity_client,
    get_news_aggregator,
    get_optional_user,
    get_paystack_client,
    get_price_client,
)
from cryptoiq.cache import TTLCache
from cryptoiq.config.settings import settings
from cryptoiq.db.models import Profile
from cryptoiq.db.session import get_session
from cryptoiq.errors import AuthError
from cryptoiq.main import create_app
from cryptoiq.news.aggregator import NewsAggregator
from cryptoiq.payments.signature import sign
from cryptoiq.schemas.auth import AuthenticatedUser
from cryptoiq.schemas.news import NewsItem

USER = AuthenticatedUser(id="user-1", email="ada@example.com")
SECRET = "sk_test_webhook"


class FakeScalars:
    def __init__(self, rows: list) -> None:
        self.rows = rows

    def all(self) -> list:
        return self.rows

    def first(self):
        return self.rows[0] if self.rows else None


class FakeResult:
    def __init__(self, rows: list) -> None:
        self.rows = rows

    def scalars(self) -> FakeScalars:
        return FakeScalars(self.rows)

    def scalar_one_or_none(self):
        return self.rows[0] if self.rows else None


class FakeSession:
    def __init__(self, rows: list | None = None, profile: Profile | None = None) -> None:
        self.rows = rows or []
        self.profile = profile
        self.executed: list = []
        self.added: list = []
        self.commits = 0

    async def execute(self, stmt) -> FakeResult:
        self.executed.append(stmt)
        return FakeResult(self.rows)

    async def get(self, model, key):
        return self.profile

    def add(self, obj) -> None:
        self.added.append(obj)

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        pass


class BrokenSession(FakeSession):
    async def execute(self, stmt) -> FakeResult:
        raise OperationalError("SELECT", {}, Exception("connection refused"))


class FakePaystack:
    def __init__(self, transaction: dict | None = None) -> None:
        self.transaction = transaction or {}
        self.initialized: list[dict] = []
        self.verified: list[str] = []

    async def initialize(self, **kwargs) -> dict:
        self.initialized.append(kwargs)
        return {"authorization_url": "https://checkout.example/abc", "reference": "ref-abc"}

    async def verify(self, reference: str) -> dict:
        self.verified.append(reference)
        return self.transaction


class FakeIdentity:
    async def get_user(self, token: str) -> AuthenticatedUser:
        if token == "good-token":
            return USER
        raise AuthError("Invalid or expired token")


class FakePrices:
    async def fetch_usd_prices(self, coin_ids: list[str]) -> dict[str, float]:
        return {"bitcoin": 150.0}


async def fake_news(limit: int) -> list[NewsItem]:
    return [
        NewsItem(title=f"Story {index}", link=f"https://news.example/{index}", source="Example")
        for index in range(12)
    ]


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def app(session):
    application = create_app()

    async def override_session():
        yield session

    application.dependency_overrides[get_session] = override_session
    application.dependency_overrides[get_identity_client] = lambda: FakeIdentity()
    application.dependency_overrides[get_price_client] = lambda: FakePrices()
    application.dependency_overrides[get_paystack_client] = lambda: FakePaystack()
    aggregator = NewsAggregator(fake_news, TTLCache(1800, name="news"))
    application.dependency_overrides[get_news_aggregator] = lambda: aggregator
    return application


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


def authenticate(app) -> None:
    app.dependency_overrides[get_current_user] = lambda: USER


def test_root_reports_running(client) -> None:
    response = client.get("/")

    assert response.status_code == 200
    assert response.text == "CryptoIQ backend is running"


def test_calculate_endpoint(client) -> None:
    response = client.post("/calculate", json={"amount": 1000, "buyPrice": 20000, "sellPrice": 30000})

    assert response.status_code == 200
    assert response.json() == {
        "coinsBought": 0.05,
        "newValue": 1500.0,
        "profit": 500.0,
        "growth": 50.0,
    }


def test_calculate_endpoint_rejects_missing_and_zero(client) -> None:
    missing = client.post("/calculate", json={"amount": 1000})
    zero = client.post("/calculate", json={"amount": 1000, "buyPrice": 0, "sellPrice": 5})

    assert missing.status_code == 400
    assert missing.json() == {"error": "Missing fields: buyPrice, sellPrice"}
    assert zero.status_code == 400
    assert zero.json() == {"error": "buyPrice must be greater than 0"}


def test_calculate_endpoint_rejects_non_numeric(client) -> None:
    response = client.post("/calculate", json={"amount": "lots", "buyPrice": 1, "sellPrice": 2})

    assert response.status_code == 400
    assert "amount" in response.json()["error"]


@pytest.mark.parametrize(
    ("method", "path"),
    [
        ("get", "/portfolio"),
        ("get", "/portfolio/summary"),
        ("delete", "/portfolio/1"),
        ("get", "/profile"),
        ("post", "/paystack/initialize"),
    ],
)
def test_protected_routes_require_bearer(client, session, method, path) -> None:
    response = getattr(client, method)(path)

    assert response.status_code == 401
    assert response.json() == {"error": "Missing bearer token"}
    assert session.executed == []


def test_protected_route_rejects_invalid_token(client, session) -> None:
    response = client.get("/portfolio", headers={"Authorization": "Bearer expired"})

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid or expired token"}
    assert session.executed == []


def test_protected_route_accepts_valid_token(client, session) -> None:
    response = client.get("/portfolio", headers={"Authorization": "Bearer good-token"})

    assert response.status_code == 200
    assert response.json() == []
    assert len(session.executed) == 1


def test_preflight_bypasses_auth(client) -> None:
    response = client.options(
        "/portfolio",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "GET",
            "Access-Control-Request-Headers": "authorization",
        },
    )

    assert response.status_code == 200
    assert "access-control-allow-origin" in response.headers


def test_portfolio_summary(app, client, session) -> None:
    authenticate(app)
    session.rows = [SimpleNamespace(id=1, coin="BTC", amount=2, buy_price=100)]

    response = client.get("/portfolio/summary")

    assert response.status_code == 200
    body = response.json()
    assert body["invested"] == 200.0
    assert body["currentValue"] == 300.0
    assert body["profit"] == 100.0
    assert body["profitPercent"] == 50.0
    assert body["assets"][0]["currentPrice"] == 150.0


def test_portfolio_summary_empty(app, client) -> None:
    authenticate(app)

    response = client.get("/portfolio/summary")

    assert response.json() == {
        "invested": 0.0,
        "currentValue": 0.0,
        "profit": 0.0,
        "profitPercent": 0.0,
        "pricesAvailable": True,
        "assets": [],
    }


@pytest.mark.parametrize(
    "payload",
    [
        {"coin": "BTC", "amount": 0, "buy_price": 100},
        {"coin": "BTC", "amount": 1, "buy_price": -1},
        {"coin": "  ", "amount": 1, "buy_price": 1},
        {"coin": "BTC", "amount": 1},
    ],
)
def test_add_holding_validation(app, client, session, payload) -> None:
    authenticate(app)

    response = client.post("/portfolio", json=payload)

    assert response.status_code == 400
    assert "error" in response.json()
    assert session.added == []


def test_update_foreign_holding_is_not_found(app, client, session) -> None:
    authenticate(app)

    response = client.put("/portfolio/42", json={"coin": "ETH", "amount": 1, "buy_price": 1})

    assert response.status_code == 404
    assert response.json() == {"error": "Holding not found"}
    assert session.commits == 0


def test_news_anonymous_gets_free_tier(client) -> None:
    response = client.get("/news", params={"tier": "premium"})

    assert response.status_code == 200
    assert len(response.json()) == 3


def test_news_premium_user(app, client, session) -> None:
    app.dependency_overrides[get_optional_user] = lambda: USER
    session.profile = Profile(id=USER.id, email=USER.email, role="premium")

    full = client.get("/news")
    narrowed = client.get("/news", params={"tier": "free"})

    assert len(full.json()) == 10
    assert len(narrowed.json()) == 3
    assert set(full.json()[0]) == {"title", "link", "published", "source"}


def test_news_free_user_cannot_claim_premium(app, client, session) -> None:
    app.dependency_overrides[get_optional_user] = lambda: USER
    session.profile = Profile(id=USER.id, email=USER.email, role="free")

    response = client.get("/news", params={"tier": "premium"})

    assert len(response.json()) == 3


def test_webhook_rejects_bad_signature(client, session, monkeypatch) -> None:
    monkeypatch.setattr(settings.paystack, "secret_key", SECRET)
    body = json.dumps({"event": "charge.success", "data": {"reference": "r"}}).encode()

    wrong = client.post(
        "/paystack/webhook", content=body, headers={"x-paystack-signature": "deadbeef"}
    )
    tampered = client.post(
        "/paystack/webhook",
        content=body.replace(b'"r"', b'"s"'),
        headers={"x-paystack-signature": sign(body, SECRET)},
    )
    missing = client.post("/paystack/webhook", content=body)

    for response in (wrong, tampered, missing):
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid signature"}
    assert session.executed == []
    assert session.commits == 0


def test_webhook_acknowledges_signed_event(client, session, monkeypatch) -> None:
    monkeypatch.setattr(settings.paystack, "secret_key", SECRET)
    body = b'{"event":"subscription.create","data":{}}'

    response = client.post(
        "/paystack/webhook", content=body, headers={"x-paystack-signature": sign(body, SECRET)}
    )

    assert response.status_code == 200
    assert response.json() == {"received": True}


def test_webhook_unknown_customer_still_acknowledged(client, session, monkeypatch) -> None:
    monkeypatch.setattr(settings.paystack, "secret_key", SECRET)
    body = json.dumps(
        {
            "event": "charge.success",
            "data": {"reference": "ref-1", "customer": {"email": "ghost@example.com"}},
        }
    ).encode()

    response = client.post(
        "/paystack/webhook", content=body, headers={"x-paystack-signature": sign(body, SECRET)}
    )

    assert response.status_code == 200
    assert session.commits == 0


def test_unknown_route_uses_error_shape(client) -> None:
    response = client.get("/nope")

    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}


def use_paystack(app, paystack: FakePaystack) -> FakePaystack:
    app.dependency_overrides[get_paystack_client] = lambda: paystack
    return paystack


def use_broken_store(app) -> None:
    async def override_session():
        yield BrokenSession()

    app.dependency_overrides[get_session] = override_session


def test_initialize_returns_checkout_for_caller(app, client) -> None:
    authenticate(app)
    paystack = use_paystack(app, FakePaystack())

    response = client.post("/paystack/initialize")

    assert response.status_code == 200
    assert response.json() == {
        "authorization_url": "https://checkout.example/abc",
        "reference": "ref-abc",
    }
    [call] = paystack.initialized
    assert call["email"] == USER.email
    assert call["amount"] == settings.paystack.premium_amount
    assert call["callback_url"] == f"{settings.frontend_url.rstrip('/')}/payment/callback"
    assert call["metadata"] == {"user_id": USER.id}


def test_verify_rejects_payment_of_another_user(app, client, session) -> None:
    authenticate(app)
    use_paystack(
        app, FakePaystack({"status": "success", "metadata": {"user_id": "someone-else"}})
    )

    response = client.post("/paystack/verify", json={"reference": "ref-abc"})

    assert response.status_code == 403
    assert response.json() == {"error": "Payment does not belong to this user"}
    assert session.commits == 0


@pytest.mark.parametrize("payload", [{}, {"reference": "   "}])
def test_verify_requires_reference(app, client, session, payload) -> None:
    authenticate(app)
    paystack = use_paystack(app, FakePaystack())

    response = client.post("/paystack/verify", json=payload)

    assert response.status_code == 400
    assert response.json() == {"error": "Payment reference is required"}
    assert paystack.verified == []


def test_verify_for_premium_caller_is_noop(app, client, session) -> None:
    authenticate(app)
    use_paystack(app, FakePaystack({"status": "success", "metadata": {"user_id": USER.id}}))
    session.profile = Profile(id=USER.id, email=USER.email, role="premium")

    response = client.post("/paystack/verify", json={"reference": "ref-abc"})

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Already premium"}
    assert session.added == []


@pytest.mark.parametrize(
    "data",
    [
        {"reference": "ref-1", "customer": "ada@example.com"},
        ["ref-1", {"customer": {"email": "ada@example.com"}}],
        "ref-1",
    ],
)
def test_webhook_malformed_charge_is_acknowledged(client, session, monkeypatch, data) -> None:
    monkeypatch.setattr(settings.paystack, "secret_key", SECRET)
    body = json.dumps({"event": "charge.success", "data": data}).encode()

    response = client.post(
        "/paystack/webhook", content=body, headers={"x-paystack-signature": sign(body, SECRET)}
    )

    assert response.status_code == 200
    assert response.json() == {"received": True}
    assert session.executed == []
    assert session.commits == 0


@pytest.mark.parametrize("path", ["/portfolio", "/portfolio/summary"])
def test_portfolio_store_failure_is_500(app, client, path) -> None:
    authenticate(app)
    use_broken_store(app)

    response = client.get(path)

    assert response.status_code == 500
    assert response.json() == {"error": "connection refused"}


def test_webhook_store_failure_is_500(app, client, monkeypatch) -> None:
    monkeypatch.setattr(settings.paystack, "secret_key", SECRET)
    use_broken_store(app)
    body = json.dumps(
        {
            "event": "charge.success",
            "data": {"reference": "ref-1", "customer": {"email": "ada@example.com"}},
        }
    ).encode()

    response = client.post(
        "/paystack/webhook", content=body, headers={"x-paystack-signature": sign(body, SECRET)}
    )

    assert response.status_code == 500
    assert response.json() == {"error": "connection refused"}
