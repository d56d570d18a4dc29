"""Tests for transaction history pagination and analytics."""
from datetime import datetime
from decimal import Decimal

import pytest

from coinfolio.core.exceptions import InvalidTransactionInput
from coinfolio.models.database import Currency, TransactionType
from coinfolio.services import history
from coinfolio.services.ledger import AssetLot, CashBalance, TransactionRecord, WalletState


def record(type, coin, amount, price, when=datetime(2024, 3, 10), currency=Currency.TMN):
    return TransactionRecord(
        coin=coin,
        amount=Decimal(amount),
        price=Decimal(price),
        type=TransactionType(type),
        currency=currency,
        timestamp=when,
    )


@pytest.fixture
def log():
    """Chronological log of 25 trades: BTC buys on even days, ETH sells on odd days."""
    records = []
    for i in range(25):
        when = datetime(2024, 2, 1 + i)
        if i % 2 == 0:
            records.append(record("buy", "BTC", "1", str(100 + i), when))
        else:
            records.append(record("sell", "ETH", "2", "10", when))
    return records


class TestTransactionPage:
    def test_most_recent_first(self, log):
        page = history.get_transaction_page(log, page=1, limit=10)

        dates = [t.date for t in page.transactions]
        assert dates == sorted(dates, reverse=True)
        assert page.transactions[0].date == datetime(2024, 2, 25)

    def test_pagination_metadata(self, log):
        first = history.get_transaction_page(log, page=1, limit=10)
        last = history.get_transaction_page(log, page=3, limit=10)

        assert first.pagination.total_pages == 3
        assert first.pagination.total_transactions == 25
        assert first.pagination.has_next is True
        assert first.pagination.has_prev is False
        assert len(last.transactions) == 5
        assert last.pagination.has_next is False
        assert last.pagination.has_prev is True
        assert last.transactions[-1].date == datetime(2024, 2, 1)

    def test_page_past_end_is_empty(self, log):
        page = history.get_transaction_page(log, page=9, limit=10)
        assert page.transactions == []
        assert page.pagination.has_next is False

    def test_filters(self, log):
        buys = history.get_transaction_page(log, limit=100, type="buy")
        eth = history.get_transaction_page(log, limit=100, coin="eth")

        assert buys.pagination.total_transactions == 13
        assert all(t.type == TransactionType.BUY.value for t in buys.transactions)
        assert eth.pagination.total_transactions == 12
        assert {t.coin for t in eth.transactions} == {"ETH"}

    def test_summary_covers_filtered_set(self, log):
        page = history.get_transaction_page(log, page=2, limit=5, coin="ETH")

        assert page.summary.total_buy == 0
        assert page.summary.total_sell == 12
        assert page.summary.total_volume == 240.0

    def test_empty_log(self):
        page = history.get_transaction_page([], page=1, limit=10)
        assert page.pagination.total_pages == 0
        assert page.pagination.has_next is False

    @pytest.mark.parametrize("page,limit", [(0, 10), (1, 0), (1, 101)])
    def test_bounds(self, log, page, limit):
        with pytest.raises(InvalidTransactionInput):
            history.get_transaction_page(log, page=page, limit=limit)


class TestSuccessRate:
    def test_no_sells(self):
        assert history.calculate_success_rate([record("buy", "BTC", "1", "10")]) == 0.0

    def test_compares_with_average_of_earlier_buys(self):
        records = [
            record("buy", "BTC", "1", "100"),
            record("sell", "BTC", "1", "120"),
            record("buy", "BTC", "1", "200"),
            record("sell", "BTC", "1", "140"),
        ]
        # second sell: average of earlier buys is 150
        assert history.calculate_success_rate(records) == 50.0

    def test_sell_before_any_buy_is_unprofitable(self):
        records = [record("sell", "BTC", "1", "500"), record("buy", "BTC", "1", "100")]
        assert history.calculate_success_rate(records) == 0.0


class TestAnalytics:
    def test_aggregates(self):
        records = [
            record("buy", "BTC", "1", "100", datetime(2024, 2, 20)),
            record("buy", "ETH", "4", "10", datetime(2024, 3, 2)),
            record("sell", "BTC", "0.5", "300", datetime(2024, 3, 5)),
            record("buy", "BTC", "0.5", "200", datetime(2024, 3, 9)),
        ]
        wallet = WalletState(
            balance=CashBalance(tmn=Decimal("1000")),
            assets=(AssetLot("BTC", Decimal("1")), AssetLot("ETH", Decimal("4"))),
        )

        analytics = history.get_analytics(
            records, wallet, joined_at=datetime(2024, 2, 14), now=datetime(2024, 3, 15)
        )

        stats = analytics.transaction_stats
        assert stats.total == 4
        assert stats.buy_count == 3
        assert stats.sell_count == 1
        assert stats.total_volume == 390.0
        assert stats.most_traded_coin == "BTC"
        assert stats.monthly_volume == 290.0
        assert stats.avg_trade_size == 1.5

        assert analytics.portfolio_stats.diversity == 2
        assert analytics.portfolio_stats.top_holding.coin == "ETH"
        assert analytics.portfolio_stats.risk_score == 20
        assert analytics.portfolio_stats.total_assets_amount == 5.0

        assert analytics.user_stats.total_days == 30
        assert analytics.user_stats.success_rate == "100.00%"
        assert analytics.user_stats.trading_activity == pytest.approx(4 / 30)

    def test_empty_history(self):
        analytics = history.get_analytics([], WalletState(), joined_at=None, now=datetime(2024, 3, 15))

        assert analytics.transaction_stats.most_traded_coin == "N/A"
        assert analytics.transaction_stats.avg_trade_size == 0.0
        assert analytics.portfolio_stats.top_holding is None
        assert analytics.portfolio_stats.risk_score == 0
        assert analytics.user_stats.total_days == 0
        assert analytics.user_stats.trading_activity == 0.0

    def test_risk_score_is_capped(self):
        wallet = WalletState(assets=tuple(AssetLot(f"C{i}", Decimal("1")) for i in range(14)))
        analytics = history.get_analytics([], wallet, joined_at=None, now=datetime(2024, 3, 15))
        assert analytics.portfolio_stats.risk_score == 100
