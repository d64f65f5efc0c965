"""Tests for market_insights.core.models."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from market_insights.core.models import (
    ALL_HORIZON,
    CoinInfo,
    Metric,
    Query,
    SeriesStats,
    TimeSeriesPoint,
    Timeframe,
    normalize_series,
)


class TestTimeframe:
    @pytest.mark.parametrize(
        "timeframe, lookback, interval, gecko_days",
        [
            (Timeframe.DAY, timedelta(days=1), timedelta(hours=1), "1"),
            (Timeframe.WEEK, timedelta(days=7), timedelta(hours=6), "7"),
            (Timeframe.MONTH, timedelta(days=30), timedelta(hours=12), "30"),
            (Timeframe.YEAR, timedelta(days=365), timedelta(days=1), "365"),
            (Timeframe.THREE_YEARS, timedelta(days=1095), timedelta(days=7), "1095"),
            (Timeframe.ALL, None, timedelta(days=7), "max"),
        ],
    )
    def test_windows(self, timeframe, lookback, interval, gecko_days):
        window = timeframe.window
        assert window.lookback == lookback
        assert window.interval == interval
        assert window.gecko_days == gecko_days

    def test_all_uses_horizon_for_bounds(self):
        now = datetime(2024, 6, 1, tzinfo=timezone.utc)
        start, end = Timeframe.ALL.window.bounds(now)
        assert end == now
        assert end - start == ALL_HORIZON

    def test_day_bounds(self):
        now = datetime(2024, 6, 1, 12, tzinfo=timezone.utc)
        start, end = Timeframe.DAY.window.bounds(now)
        assert start == datetime(2024, 5, 31, 12, tzinfo=timezone.utc)


class TestQuery:
    def test_defaults(self):
        q = Query(coin_id="bitcoin")
        assert q.timeframe == Timeframe.DAY
        assert q.metric == Metric.PRICE

    def test_coin_id_normalized(self):
        assert Query(coin_id="  Bitcoin ").coin_id == "bitcoin"

    def test_blank_coin_id_rejected(self):
        with pytest.raises(ValidationError, match="must not be blank"):
            Query(coin_id="   ")

    def test_is_frozen(self):
        q = Query(coin_id="bitcoin")
        with pytest.raises(ValidationError):
            q.coin_id = "ethereum"

    def test_window_follows_timeframe(self):
        q = Query(coin_id="bitcoin", timeframe=Timeframe.YEAR)
        assert q.window.gecko_days == "365"


class TestTimeSeriesPoint:
    def test_naive_timestamp_becomes_utc(self):
        p = TimeSeriesPoint(timestamp=datetime(2024, 1, 1, 12), price=1.0)
        assert p.timestamp.tzinfo == timezone.utc
        assert p.timestamp.hour == 12

    def test_aware_timestamp_converted_to_utc(self):
        tz = timezone(timedelta(hours=2))
        p = TimeSeriesPoint(timestamp=datetime(2024, 1, 1, 12, tzinfo=tz), price=1.0)
        assert p.timestamp == datetime(2024, 1, 1, 10, tzinfo=timezone.utc)

    def test_missing_fields_default_to_zero(self):
        p = TimeSeriesPoint(timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc))
        assert (p.price, p.volume, p.market_cap) == (0.0, 0.0, 0.0)

    def test_negative_volume_rejected(self):
        with pytest.raises(ValidationError, match="must be >= 0"):
            TimeSeriesPoint(timestamp=datetime(2024, 1, 1), volume=-1.0)

    def test_market_cap_alias(self):
        p = TimeSeriesPoint(timestamp=datetime(2024, 1, 1), marketCap=5.0)
        assert p.market_cap == 5.0
        assert "marketCap" in p.model_dump(by_alias=True)

    def test_value_selects_metric(self, make_point):
        p = make_point(hour=1, price=42.0)
        assert p.value(Metric.PRICE) == 42.0
        assert p.value(Metric.VOLUME) == 1_001.0
        assert p.value(Metric.MARKET_CAP) == 10_001.0


class TestNormalizeSeries:
    def test_sorts_ascending(self, make_point):
        points = [make_point(hour=2), make_point(hour=0), make_point(hour=1)]
        result = normalize_series(points)
        assert [p.timestamp for p in result] == sorted(p.timestamp for p in points)

    def test_last_duplicate_wins(self, make_point):
        points = [make_point(hour=0, price=1.0), make_point(hour=0, price=2.0)]
        result = normalize_series(points)
        assert len(result) == 1
        assert result[0].price == 2.0

    def test_idempotent(self, make_point):
        points = [make_point(hour=3), make_point(hour=1), make_point(hour=3, price=7.0)]
        once = normalize_series(points)
        assert normalize_series(once) == once

    def test_empty(self):
        assert normalize_series([]) == []


class TestSeriesStats:
    def test_min_max_average(self, make_point):
        points = [make_point(hour=i, price=p) for i, p in enumerate([10.0, 30.0, 20.0])]
        stats = SeriesStats.from_points(points, Metric.PRICE)
        assert stats.minimum == 10.0
        assert stats.maximum == 30.0
        assert stats.average == pytest.approx(20.0)
        assert stats.count == 3

    def test_empty_series_is_zero(self):
        stats = SeriesStats.from_points([], Metric.VOLUME)
        assert stats.count == 0
        assert stats.average == 0.0
        assert stats.metric == Metric.VOLUME


class TestCoinInfo:
    def test_matches_name_or_symbol(self):
        coin = CoinInfo(id="bitcoin", symbol="btc", name="Bitcoin")
        assert coin.matches("BIT")
        assert coin.matches("btc")
        assert not coin.matches("eth")

    def test_blank_search_matches(self):
        assert CoinInfo(id="x", symbol="x", name="X").matches("  ")
