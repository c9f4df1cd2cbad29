"""
Unit Tests for the Market Snapshot Normalizer

These tests verify that:
- prices are converted and volume windows fed for every resolvable ticker
- missing symbols are sentinel-marked and never come back
- unsupported quotes and invalid snapshots do not block other tickers
- diagnostics are reported through the on_event callback
- concurrent refresh calls on one set are serialized by its lock

Run with:
    pytest tests/unit/test_snapshot_normalizer.py -v
"""

import threading
import time

import pytest

from core.quote_converter import QuoteConverter
from core.schemas import SENTINEL_SYMBOL, QueueSymbol, RawSnapshot, TickerSet
from core.snapshot_normalizer import MarketSnapshotNormalizer
from core.volume_tracker import VolumeWindowTracker


@pytest.fixture
def events():
    return []


@pytest.fixture
def normalizer(events):
    converter = QuoteConverter(fiat_name="KRW")
    tracker = VolumeWindowTracker(volume_24h_base=1, volume_1m_base=1, converter=converter)
    return MarketSnapshotNormalizer(tracker=tracker, on_event=events.append)


@pytest.fixture
def ticker_set():
    tickers = TickerSet.from_symbols("kucoin", [
        QueueSymbol(symbol="BTC-USDT", comp_name="BTC", base_name="BTC", quote_name="USDT"),
        QueueSymbol(symbol="ETH-BTC", comp_name="ETH", base_name="ETH", quote_name="BTC"),
        QueueSymbol(symbol="XRP-KRW", comp_name="XRP", base_name="XRP", quote_name="KRW"),
    ])
    tickers.set_cross_rates(exchg_rate=1000.0, btc_fiat_price=50_000.0)
    return tickers


def snapshot(price, volume, ts, ask=None, bid=None):
    data = {"price": price, "cumulativeQuoteVolume": volume, "sampleTimestampMs": ts}
    if ask is not None:
        data["bestAsk"] = ask
    if bid is not None:
        data["bestBid"] = bid
    return data


class TestPriceConversion:
    """Test that prices are converted into the reporting fiat"""

    def test_prices_use_quote_rules(self, normalizer, ticker_set):
        report = normalizer.refresh(ticker_set, {
            "BTC-USDT": snapshot(2.0, 10.0, 100_000, ask=2.5, bid=1.5),
            "ETH-BTC": snapshot(0.1, 1.0, 100_000),
            "XRP-KRW": snapshot(700.0, 5.0, 100_000),
        })

        assert report.updated == 3
        btc = ticker_set.find("BTC-USDT")
        assert btc.last_price == 2000.0
        assert btc.ask_price == 2500.0
        assert btc.bid_price == 1500.0
        assert ticker_set.find("ETH-BTC").last_price == pytest.approx(5000.0)
        assert ticker_set.find("XRP-KRW").last_price == 700.0

    def test_missing_book_keeps_previous_ask_bid(self, normalizer, ticker_set):
        ticker = ticker_set.find("XRP-KRW")
        ticker.ask_price = 11.0
        normalizer.refresh(ticker_set, {
            "BTC-USDT": snapshot(1.0, 1.0, 1), "ETH-BTC": snapshot(1.0, 1.0, 1),
            "XRP-KRW": snapshot(10.0, 1.0, 1),
        })
        assert ticker.ask_price == 11.0
        assert ticker.last_price == 10.0

    def test_accepts_model_instances(self, normalizer, ticker_set):
        batch = {
            "BTC-USDT": RawSnapshot(price=1.0, cumulative_quote_volume=1.0, sample_timestamp_ms=1),
            "ETH-BTC": RawSnapshot(price=1.0, cumulative_quote_volume=1.0, sample_timestamp_ms=1),
            "XRP-KRW": RawSnapshot(price=1.0, cumulative_quote_volume=1.0, sample_timestamp_ms=1),
        }
        assert normalizer.refresh(ticker_set, batch).updated == 3


class TestVolumeFeed:
    """Test that volume windows are fed after prices"""

    def test_volume_is_normalized_and_rolled(self, normalizer, ticker_set):
        report = normalizer.refresh(ticker_set, {
            "BTC-USDT": snapshot(1.0, 10.0, 100_000),
            "ETH-BTC": snapshot(1.0, 1.0, 100_000),
            "XRP-KRW": snapshot(1.0, 100.0, 100_000),
        })

        assert report.volume_rolled == 3
        assert ticker_set.find("BTC-USDT").volume_24h == 10_000
        assert ticker_set.find("ETH-BTC").volume_24h == 50_000
        assert ticker_set.find("XRP-KRW").volume_24h == 100
        assert ticker_set.timestamp == 100_000

    def test_new_cross_rate_applies_to_price_and_volume(self, normalizer, ticker_set):
        ticker_set.set_cross_rates(exchg_rate=2000.0, btc_fiat_price=50_000.0)
        normalizer.refresh(ticker_set, {
            "BTC-USDT": snapshot(1.0, 10.0, 100_000),
            "ETH-BTC": snapshot(1.0, 1.0, 100_000),
            "XRP-KRW": snapshot(1.0, 1.0, 100_000),
        })
        btc = ticker_set.find("BTC-USDT")
        assert btc.last_price == 2000.0
        assert btc.volume_24h == 20_000


class TestSentinel:
    """Test permanent soft-removal of unresolvable tickers"""

    def test_missing_symbol_is_marked(self, normalizer, ticker_set, events):
        report = normalizer.refresh(ticker_set, {
            "BTC-USDT": snapshot(1.0, 1.0, 1),
            "ETH-BTC": snapshot(1.0, 1.0, 1),
        })

        assert report.unresolved == 1
        assert ticker_set.items[2].symbol == SENTINEL_SYMBOL
        assert events == [{
            "type": "symbol_unresolved",
            "exchange": "kucoin",
            "symbol": "XRP-KRW",
            "message": "missing from snapshot batch",
        }]

    def test_sentinel_is_never_resurrected(self, normalizer, ticker_set):
        normalizer.refresh(ticker_set, {"BTC-USDT": snapshot(1.0, 1.0, 1), "ETH-BTC": snapshot(1.0, 1.0, 1)})
        assert "XRP-KRW" not in ticker_set.active_symbols()

        # The symbol reappears, but the ticker stays marked
        for ts in (2, 3):
            report = normalizer.refresh(ticker_set, {
                "BTC-USDT": snapshot(1.0, 1.0, ts),
                "ETH-BTC": snapshot(1.0, 1.0, ts),
                "XRP-KRW": snapshot(1.0, 1.0, ts),
            })
            assert report.skipped == 1
            assert ticker_set.items[2].symbol == SENTINEL_SYMBOL

        assert ticker_set.active_symbols() == ["BTC-USDT", "ETH-BTC"]


class TestFailures:
    """Test that one bad ticker never blocks the rest of the cycle"""

    def test_unsupported_quote_marks_ticker(self, normalizer, events):
        tickers = TickerSet.from_symbols("bitget", [
            QueueSymbol(symbol="SOLETH", comp_name="SOL", base_name="SOL", quote_name="ETH"),
            QueueSymbol(symbol="SOLUSDT", comp_name="SOL", base_name="SOL", quote_name="USDT"),
        ])
        tickers.set_cross_rates(exchg_rate=1000.0, btc_fiat_price=1.0)

        report = normalizer.refresh(tickers, {
            "SOLETH": snapshot(0.05, 1.0, 1),
            "SOLUSDT": snapshot(150.0, 1.0, 1),
        })

        assert report.unresolved == 1
        assert report.updated == 1
        marked = tickers.items[0]
        assert marked.symbol == SENTINEL_SYMBOL
        assert marked.last_price == 0.0
        assert tickers.find("SOLUSDT").last_price == 150_000.0
        assert events[0]["type"] == "quote_unsupported"
        assert events[0]["symbol"] == "SOLETH"

    def test_invalid_snapshot_is_counted_and_skipped(self, normalizer, ticker_set):
        report = normalizer.refresh(ticker_set, {
            "BTC-USDT": {"price": -1.0, "cumulativeQuoteVolume": 1.0, "sampleTimestampMs": 1},
            "ETH-BTC": {"price": 1.0},
            "XRP-KRW": snapshot(1.0, 1.0, 1),
        })

        assert report.failed == 2
        assert report.updated == 1
        # invalid snapshots do not sentinel-mark the ticker
        assert ticker_set.find("BTC-USDT") is not None
        assert ticker_set.find("BTC-USDT").last_price == 0.0

    def test_empty_batch_marks_everything(self, normalizer, ticker_set):
        report = normalizer.refresh(ticker_set, {})
        assert report.unresolved == 3
        assert ticker_set.active_symbols() == []

    def test_non_finite_volume_does_not_abort_cycle(self, normalizer, ticker_set):
        report = normalizer.refresh(ticker_set, {
            "BTC-USDT": snapshot(1.0, "inf", 70_000),
            "ETH-BTC": snapshot(1.0, float("nan"), 70_000),
            "XRP-KRW": snapshot(5.0, 1.0, 70_000),
        })

        assert report.failed == 2
        assert report.updated == 1
        assert ticker_set.find("XRP-KRW").last_price == 5.0
        assert ticker_set.find("BTC-USDT").last_price == 0.0
        assert ticker_set.timestamp == 70_000

    def test_overflowing_conversion_leaves_ticker_untouched(self, normalizer, ticker_set):
        report = normalizer.refresh(ticker_set, {
            # 1e306 USDT * 1000 overflows the volume, 1e305 BTC * 50_000 the price
            "BTC-USDT": snapshot(2.0, 1e306, 70_000),
            "ETH-BTC": snapshot(1e305, 1.0, 70_000),
            "XRP-KRW": snapshot(5.0, 1.0, 70_000),
        })

        assert report.failed == 2
        assert report.updated == 1
        for symbol in ("BTC-USDT", "ETH-BTC"):
            ticker = ticker_set.find(symbol)
            assert ticker.last_price == 0.0
            assert ticker.volume_24h == 0
            assert ticker.timestamp == 0
        assert ticker_set.find("XRP-KRW").last_price == 5.0


class TestConcurrentRefresh:
    """Test that refresh calls on one TickerSet never interleave"""

    def test_concurrent_refreshes_are_serialized(self, normalizer, ticker_set, monkeypatch):
        observe = normalizer.tracker.observe
        inside = []
        overlaps = []
        order = []

        def slow_observe(ticker, *args):
            inside.append(ticker.symbol)
            if len(inside) > 1:
                overlaps.append(list(inside))
            order.append(threading.current_thread().name)
            time.sleep(0.01)
            try:
                return observe(ticker, *args)
            finally:
                inside.pop()

        monkeypatch.setattr(normalizer.tracker, "observe", slow_observe)

        symbols = ticker_set.active_symbols()
        batches = {
            "early": {s: snapshot(1.0, 10.0, 100_000) for s in symbols},
            "late": {s: snapshot(1.0, 30.0, 200_000) for s in symbols},
        }
        threads = [
            threading.Thread(target=normalizer.refresh, args=(ticker_set, batch), name=name)
            for name, batch in batches.items()
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlaps == []
        assert order in (["early"] * 3 + ["late"] * 3, ["late"] * 3 + ["early"] * 3)

        # Either order ends with the late sample as the committed baseline
        xrp = ticker_set.find("XRP-KRW")
        assert xrp.timestamp == 200_000
        assert xrp.previous_24h == 30.0
        assert ticker_set.timestamp == 200_000
