"""HTTP surface tests with the database and price sources swapped for fixtures."""
import pytest
from fastapi.testclient import TestClient

from coinfolio.api.dependencies import get_ledger, get_market_gateway, get_rate_resolver, get_valuator
from coinfolio.core.cache import TTLStore
from coinfolio.core.database import get_db
from coinfolio.core.exceptions import PriceUnavailable
from coinfolio.main import app
from coinfolio.services.ledger import WalletLedger
from coinfolio.services.portfolio import PortfolioValuator

from conftest import StubMarketGateway


@pytest.fixture
def client(session_factory, rate_resolver, market_gateway, clock, wall_clock):
    valuator = PortfolioValuator(rate_resolver, market_gateway, TTLStore(ttl=10, timer=clock), 10000, wall_clock)
    ledger = WalletLedger(session_factory, on_commit=valuator.invalidate)

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_valuator] = lambda: valuator
    app.dependency_overrides[get_rate_resolver] = lambda: rate_resolver
    app.dependency_overrides[get_market_gateway] = lambda: market_gateway

    yield TestClient(app)

    app.dependency_overrides.clear()


def register(client, email="alice@example.com", tmn=1000000, usdt=0):
    response = client.post("/auth/register", json={
        "email": email,
        "password": "secret123",
        "initial_balance_tmn": tmn,
        "initial_balance_usdt": usdt,
    })
    assert response.status_code == 201, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def trade(client, headers, side, coin="BTC", amount=0.01, price=50000000, currency="TMN"):
    return client.post(f"/users/me/{side}", headers=headers, json={
        "coin": coin, "amount": amount, "price": price, "currency": currency,
    })


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


class TestAuth:
    def test_register_returns_token_and_wallet(self, client):
        response = client.post("/auth/register", json={
            "email": "Bob@Example.com", "password": "secret123", "initial_balance_usdt": 100,
        })

        assert response.status_code == 201
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["user"]["email"] == "bob@example.com"
        assert body["user"]["wallet"] == {"balance": {"tmn": 0.0, "usdt": 100.0}, "assets": []}

    def test_duplicate_email(self, client):
        register(client)
        response = client.post("/auth/register", json={"email": "alice@example.com", "password": "secret123"})
        assert response.status_code == 409

    def test_register_validation(self, client):
        response = client.post("/auth/register", json={"email": "not-an-email", "password": "secret123"})
        assert response.status_code == 400

    def test_login(self, client):
        register(client)

        ok = client.post("/auth/login", json={"email": "alice@example.com", "password": "secret123"})
        bad = client.post("/auth/login", json={"email": "alice@example.com", "password": "wrong"})

        assert ok.status_code == 200
        assert ok.json()["user"]["last_login"] is not None
        assert bad.status_code == 401

    def test_check_email(self, client):
        register(client)
        assert client.post("/auth/check-email", json={"email": "alice@example.com"}).json() == {"exists": True}
        assert client.post("/auth/check-email", json={"email": "eve@example.com"}).json() == {"exists": False}

    def test_me_requires_token(self, client):
        assert client.get("/auth/me").status_code in (401, 403)
        bad = client.get("/auth/me", headers={"Authorization": "Bearer nonsense"})
        assert bad.status_code == 401

    def test_me(self, client):
        headers = register(client)
        assert client.get("/auth/me", headers=headers).json()["email"] == "alice@example.com"


class TestTrading:
    def test_buy_then_sell(self, client):
        headers = register(client)

        bought = trade(client, headers, "buy")
        assert bought.status_code == 200, bought.text
        body = bought.json()
        assert body["new_balance"] == {"tmn": 500000.0, "usdt": 0.0}
        assert body["updated_assets"] == [{"coin": "BTC", "amount": 0.01}]
        assert body["transaction"]["type"] == "buy"
        assert body["total_transactions"] == 1

        sold = trade(client, headers, "sell", amount=0.005, price=60000000)
        assert sold.status_code == 200
        assert sold.json()["new_balance"]["tmn"] == 800000.0
        assert sold.json()["total_transactions"] == 2

        oversold = trade(client, headers, "sell", amount=0.01, price=60000000)
        assert oversold.status_code == 400
        assert oversold.json()["detail"]["available"] == 0.005
        assert oversold.json()["detail"]["requested"] == 0.01

    def test_insufficient_funds(self, client):
        headers = register(client, tmn=100)

        response = trade(client, headers, "buy", amount=1, price=1000)

        assert response.status_code == 400
        assert response.json()["detail"]["required"] == 1000.0
        assert response.json()["detail"]["current"] == 100.0
        assert response.json()["detail"]["currency"] == "TMN"

    def test_usdt_trade(self, client):
        headers = register(client, tmn=0, usdt=100)

        response = trade(client, headers, "buy", coin="eth", amount=0.02, price=3000, currency="USDT")

        assert response.status_code == 200
        assert response.json()["new_balance"] == {"tmn": 0.0, "usdt": 40.0}
        assert response.json()["updated_assets"][0]["coin"] == "ETH"

    @pytest.mark.parametrize("payload", [
        {"coin": "BTC", "amount": 0, "price": 1, "currency": "TMN"},
        {"coin": "BTC", "amount": 1, "price": -1, "currency": "TMN"},
        {"coin": "BTC", "amount": 1, "price": 1, "currency": "EUR"},
        {"coin": "", "amount": 1, "price": 1, "currency": "TMN"},
    ])
    def test_rejects_malformed_trade(self, client, payload):
        headers = register(client)
        assert client.post("/users/me/buy", headers=headers, json=payload).status_code == 400


class TestViews:
    def test_portfolio_reflects_trade_immediately(self, client, market_gateway):
        market_gateway.set_price("BTC", 60000000)
        headers = register(client)

        before = client.get("/users/me/portfolio", headers=headers).json()
        trade(client, headers, "buy")
        after = client.get("/users/me/portfolio", headers=headers).json()

        assert before["total_value"] == 1000000.0
        assert after["cash_balance"] == 500000.0
        assert after["assets_value"] == 600000.0
        assert after["total_value"] == 1100000.0
        assert after["assets"][0]["market_info"]["symbol"] == "BTCTMN"
        assert after["exchange_rate"]["usdt_to_toman"] == 50000.0

    def test_transactions_page(self, client):
        headers = register(client)
        for coin in ["BTC", "ETH", "BTC"]:
            trade(client, headers, "buy", coin=coin, amount=0.001, price=1000000)

        page = client.get("/users/me/transactions", headers=headers, params={"limit": 2}).json()
        btc = client.get("/users/me/transactions", headers=headers, params={"coin": "btc"}).json()

        assert [t["coin"] for t in page["transactions"]] == ["BTC", "ETH"]
        assert page["pagination"]["total_pages"] == 2
        assert page["pagination"]["has_next"] is True
        assert btc["pagination"]["total_transactions"] == 2
        assert btc["summary"]["total_buy"] == 2

    def test_transactions_limit_bound(self, client):
        headers = register(client)
        response = client.get("/users/me/transactions", headers=headers, params={"limit": 500})
        assert response.status_code == 400

    def test_analytics(self, client):
        headers = register(client)
        trade(client, headers, "buy")
        trade(client, headers, "sell", amount=0.005, price=60000000)

        body = client.get("/users/me/analytics", headers=headers).json()

        assert body["transaction_stats"]["total"] == 2
        assert body["transaction_stats"]["most_traded_coin"] == "BTC"
        assert body["portfolio_stats"]["diversity"] == 1
        assert body["user_stats"]["success_rate"] == "100.00%"

    def test_profile(self, client):
        headers = register(client, tmn=1000, usdt=2)

        profile = client.get("/users/me/profile", headers=headers).json()
        renamed = client.put("/users/me/profile", headers=headers, json={"username": "alice2"}).json()

        assert profile["wallet"]["total_value"] == 101000.0
        assert renamed["username"] == "alice2"

    def test_like_and_bookmark_toggle(self, client):
        headers = register(client)

        liked = client.post("/users/me/coins/like", headers=headers, json={"coin": "btc"}).json()
        unliked = client.post("/users/me/coins/like", headers=headers, json={"coin": "BTC"}).json()
        bookmarked = client.post("/users/me/coins/bookmark", headers=headers, json={"coin": "eth"}).json()

        assert (liked["active"], liked["coins"]) == (True, ["BTC"])
        assert (unliked["active"], unliked["coins"]) == (False, [])
        assert bookmarked["coins"] == ["ETH"]

        profile = client.get("/users/me/profile", headers=headers).json()
        assert profile["liked_coins"] == []
        assert profile["bookmarked_coins"] == ["ETH"]
        assert profile["total_transactions"] == 0


class TestMarkets:
    def test_list(self, client, market_gateway):
        market_gateway.set_price("BTC", 60000000)
        market_gateway.set_price("ETH", 3000000)

        body = client.get("/markets/").json()

        assert body["total_markets"] == 2
        assert {m["base_asset"] for m in body["markets"]} == {"BTC", "ETH"}

    def test_list_unavailable(self, client):
        class DownGateway(StubMarketGateway):
            def get_all_market_prices(self):
                raise PriceUnavailable("down")

        app.dependency_overrides[get_market_gateway] = lambda: DownGateway()
        assert client.get("/markets/").status_code == 503

    def test_single_market_with_holding(self, client, market_gateway):
        market_gateway.set_price("BTC", 60000000)
        headers = register(client)
        trade(client, headers, "buy")

        anonymous = client.get("/markets/btc").json()
        mine = client.get("/markets/btc", headers=headers).json()

        assert anonymous["user_holding"] is None
        assert mine["market"]["symbol"] == "BTCTMN"
        assert mine["user_holding"] == {"amount": 0.01, "value_in_toman": 600000.0, "value_in_dollar": 12.0}

    def test_unknown_market(self, client):
        assert client.get("/markets/nope").status_code == 404
