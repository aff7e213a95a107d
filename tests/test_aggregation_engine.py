# tests/test_aggregation_engine.py
"""Aggregation views against an in-memory database."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from datetime import datetime, timedelta
from cafeteria_analytics.exceptions import LocationNotFound
from cafeteria_analytics.models.telemetry_record import TelemetryRecord
from cafeteria_analytics.services.aggregation_engine import (
    AggregationEngine,
    clock_label,
    congestion_status,
    counter_efficiency_score,
    current_peak_status,
    footfall_insight,
    next_peak,
    peak_type,
)
from cafeteria_analytics.services.time_buckets import Granularity

DAY = datetime(2024, 1, 17)          # Wednesday
START, END = DAY, DAY + timedelta(days=1)


def add(db, location, at, counter=None, occupancy=None, in_count=None,
        avg_dwell=None, est_wait=None, manual_wait=None, queue=None):
    record = TelemetryRecord(
        location_id=location.id,
        counter_id=counter.id if counter else None,
        timestamp=at,
        current_occupancy=occupancy,
        capacity=20,
        in_count=in_count,
        avg_dwell_time=avg_dwell,
        estimated_wait_time=est_wait,
        manual_wait_time=manual_wait,
        queue_length=queue,
    )
    db.add(record)
    db.commit()
    return record


def at(hour, minute=0, day=DAY):
    return day.replace(hour=hour, minute=minute)


class TestOccupancyTrend:
    def test_mean_per_hour(self, db, cafeteria):
        c = cafeteria.counter
        for minute, occ in ((0, 5), (5, 9), (10, 14)):
            add(db, cafeteria.location, at(9, minute), c, occupancy=occ)
        add(db, cafeteria.location, at(10), c, occupancy=4)

        trend = AggregationEngine(db).occupancy_trend(cafeteria.location.id, START, END, "daily")

        assert trend.record_count == 4
        assert [(p.timestamp, p.occupancy, p.hour) for p in trend.points] == [
            ("09:00", 9.33, 9), ("10:00", 4.0, 10),
        ]

    def test_missing_occupancy_counts_as_zero(self, db, cafeteria):
        add(db, cafeteria.location, at(9), cafeteria.counter, occupancy=10)
        add(db, cafeteria.location, at(9, 30), cafeteria.counter, occupancy=None)
        trend = AggregationEngine(db).occupancy_trend(cafeteria.location.id, START, END)
        assert trend.points[0].occupancy == 5.0

    def test_empty_range(self, db, cafeteria):
        trend = AggregationEngine(db).occupancy_trend(cafeteria.location.id, START, END)
        assert trend.record_count == 0
        assert trend.points == []

    def test_unknown_location(self, db, cafeteria):
        with pytest.raises(LocationNotFound):
            AggregationEngine(db).occupancy_trend(999, START, END)

    def test_weekly_buckets_sorted(self, db, cafeteria):
        add(db, cafeteria.location, datetime(2024, 1, 20, 12), occupancy=3)   # Sat
        add(db, cafeteria.location, datetime(2024, 1, 14, 12), occupancy=7)   # Sun
        trend = AggregationEngine(db).occupancy_trend(
            cafeteria.location.id, datetime(2024, 1, 14), datetime(2024, 1, 21), Granularity.WEEKLY)
        assert [p.timestamp for p in trend.points] == ["Sun", "Sat"]
        assert trend.points[0].hour is None


class TestCongestionTrend:
    def test_max_per_counter(self, db, cafeteria):
        loc, c, d = cafeteria.location, cafeteria.counter, cafeteria.other
        add(db, loc, at(9), c, occupancy=5)
        add(db, loc, at(9, 10), c, occupancy=14)
        add(db, loc, at(9, 20), d, occupancy=6)
        add(db, loc, at(9, 30), occupancy=40)    # site-level ignored when counters present

        trend = AggregationEngine(db).congestion_trend(loc.id, START, END)

        assert trend.points[0].counters == {"Counter C": 14, "Counter D": 6}

    def test_site_level_fallback(self, db, cafeteria):
        add(db, cafeteria.location, at(11), occupancy=25)
        add(db, cafeteria.location, at(12), occupancy=0)
        trend = AggregationEngine(db).congestion_trend(cafeteria.location.id, START, END)
        assert trend.points[0].counters == {"site-level": 25}
        assert trend.points[1].timestamp == "12:00"
        assert trend.points[1].counters == {}


class TestEnhancedCongestion:
    def test_per_minute_stats(self, db, cafeteria):
        loc, c = cafeteria.location, cafeteria.counter
        add(db, loc, at(9, 5), c, occupancy=12)
        add(db, loc, at(9, 5), c, occupancy=6)
        add(db, loc, at(9, 6), c, occupancy=0)       # zero ignored
        add(db, loc, at(9, 7), occupancy=30)         # site-level ignored

        trend = AggregationEngine(db).enhanced_congestion(loc.id, START, END)

        assert len(trend.points) == 1
        detail = trend.points[0].counters["Counter C"]
        assert trend.points[0].timestamp == "09:05"
        assert (detail.max_occupancy, detail.min_occupancy, detail.avg_occupancy) == (12, 6, 9.0)
        assert detail.data_points == 2
        assert detail.status == "HEAVY"

    def test_status_thresholds(self):
        assert congestion_status(12) == "HEAVY"
        assert congestion_status(8) == "MODERATE"
        assert congestion_status(7) == "LIGHT"


class TestFootfall:
    def test_ratio_and_insight(self, db, cafeteria):
        loc, c, d = cafeteria.location, cafeteria.counter, cafeteria.other
        add(db, loc, at(12), in_count=100)
        add(db, loc, at(12, 30), c, in_count=30)
        add(db, loc, at(12, 40), d, in_count=20)

        result = AggregationEngine(db).footfall_comparison(loc.id, START, END)

        point = result.points[0]
        assert (point.timestamp, point.cafeteria_footfall, point.counter_footfall) == ("12:00", 100, 50)
        assert point.ratio == 2.0
        assert point.insight == "Counter hopping detected"
        assert point.counter_footfall_estimated is False

    def test_missing_counter_hour_estimated_at_75_percent(self, db, cafeteria):
        add(db, cafeteria.location, at(13), in_count=80)
        point = AggregationEngine(db).footfall_comparison(cafeteria.location.id, START, END).points[0]
        assert point.counter_footfall == 60
        assert point.counter_footfall_estimated is True
        assert point.ratio == 1.33
        assert point.insight == "Normal flow"

    def test_thresholds_use_unrounded_ratio(self, db, cafeteria):
        loc, c = cafeteria.location, cafeteria.counter
        add(db, loc, at(12), in_count=1503)
        add(db, loc, at(12, 30), c, in_count=1000)
        add(db, loc, at(13), in_count=796)
        add(db, loc, at(13, 30), c, in_count=1000)

        points = AggregationEngine(db).footfall_comparison(loc.id, START, END).points

        assert (points[0].ratio, points[0].insight) == (1.5, "Counter hopping detected")
        assert (points[1].ratio, points[1].insight) == (0.8, "Potential congestion at counters")

    def test_only_hours_with_site_data(self, db, cafeteria):
        add(db, cafeteria.location, at(14), cafeteria.counter, in_count=10)
        assert AggregationEngine(db).footfall_comparison(cafeteria.location.id, START, END).points == []

    def test_insights(self):
        assert footfall_insight(1.0, 0) == "No counter data available"
        assert footfall_insight(1.6, 10) == "Counter hopping detected"
        assert footfall_insight(0.7, 10) == "Potential congestion at counters"
        assert footfall_insight(1.5, 10) == "Normal flow"
        assert footfall_insight(0.8, 10) == "Normal flow"


class TestPeakHours:
    def test_top_three_ranked(self, db, cafeteria):
        loc = cafeteria.location
        now = at(16)
        for hour, occ in ((8, 30), (12, 50), (13, 50), (19, 10), (10, 40)):
            add(db, loc, at(hour, day=DAY - timedelta(days=1)), occupancy=occ)
        add(db, loc, at(11, day=DAY - timedelta(days=10)), occupancy=500)   # outside the week

        peaks = AggregationEngine(db).peak_hours(loc.id, now=now)

        # 12 and 13 tie at 50: earlier hour first
        assert [s.hour for s in peaks.slots] == [12, 13, 10]
        assert peaks.slots[0].time == "12:00 - 14:00"
        assert peaks.slots[0].type == "Lunch Rush"
        assert peaks.slots[2].type == "Regular"
        assert peaks.highest_peak == "12:00 - 14:00"
        assert peaks.average_peak_occupancy == 46
        assert peaks.current_status == "Off-Peak"
        assert peaks.next_peak == "7:00 PM"

    def test_missing_occupancy_ignored_in_mean(self, db, cafeteria):
        loc = cafeteria.location
        add(db, loc, at(9, day=DAY - timedelta(days=1)), occupancy=20)
        add(db, loc, at(9, 30, day=DAY - timedelta(days=1)), occupancy=None)
        peaks = AggregationEngine(db).peak_hours(loc.id, now=at(10))
        assert peaks.slots[0].occupancy == 20
        assert peaks.slots[0].type == "Breakfast"

    def test_no_data(self, db, cafeteria):
        peaks = AggregationEngine(db).peak_hours(cafeteria.location.id, now=at(12, 30))
        assert peaks.record_count == 0
        assert peaks.slots == []
        assert peaks.highest_peak == "12:00 PM"
        assert peaks.average_peak_occupancy == 0
        assert peaks.current_status == "Peak Hours"

    def test_labels(self):
        assert peak_type(14) == "Lunch Rush"
        assert peak_type(21) == "Dinner Peak"
        assert peak_type(9) == "Breakfast"
        assert peak_type(15) == "Regular"
        assert current_peak_status(8) == "Peak Hours"
        assert current_peak_status(9) == "Off-Peak"
        assert current_peak_status(14) == "Off-Peak"
        assert next_peak(7) == "8:00 AM"
        assert next_peak(11) == "12:00 PM"
        assert next_peak(20) == "Tomorrow 8:00 AM"


class TestDwellDistribution:
    def test_histogram_of_representative_duration(self, db, cafeteria):
        loc, c = cafeteria.location, cafeteria.counter
        add(db, loc, at(9), c, avg_dwell=2.5, est_wait=9)     # 2.5 → 3
        add(db, loc, at(9, 1), c, est_wait=3.2)               # 3
        add(db, loc, at(9, 2), c, manual_wait=1.4)            # 1
        add(db, loc, at(9, 3), c, occupancy=4)                # no duration

        dist = AggregationEngine(db).dwell_distribution(loc.id, START, END)

        assert dist.record_count == 4
        assert dist.total_samples == 3
        assert [(b.minutes, b.label, b.count) for b in dist.buckets] == [(1, "1 min", 1), (3, "3 min", 2)]
        assert dist.buckets[1].percentage == 66.67


class TestFlowAndServed:
    def test_flow(self, db, cafeteria):
        add(db, cafeteria.location, at(9), cafeteria.counter, in_count=100)
        add(db, cafeteria.location, at(9, 30), cafeteria.other, in_count=50)
        flow = AggregationEngine(db).flow_data(cafeteria.location.id, START, END)
        point = flow.points[0]
        assert (point.inflow, point.outflow, point.net_flow) == (150, 135, 15)

    def test_total_served_per_counter_and_location(self, db, cafeteria):
        loc, c, d = cafeteria.location, cafeteria.counter, cafeteria.other
        for minute, value in ((0, 10), (5, 15), (10, 12), (15, 20)):
            add(db, loc, at(9, minute), c, in_count=value)
        add(db, loc, at(9), d, in_count=100)
        add(db, loc, at(10), d, in_count=104)
        add(db, loc, at(9), in_count=5000)            # site-level excluded

        engine = AggregationEngine(db)
        assert engine.total_served(loc.id, START, END, counter_id=c.id).total_served == 13
        assert engine.total_served(loc.id, START, END).total_served == 17


class TestCounterEfficiency:
    def test_stats(self, db, cafeteria):
        loc, c = cafeteria.location, cafeteria.counter
        add(db, loc, at(9), c, occupancy=6, in_count=10, est_wait=10, queue=5)
        add(db, loc, at(9, 5), c, occupancy=9, in_count=25, est_wait=20, queue=10)

        result = AggregationEngine(db).counter_efficiency(loc.id, START, END)

        stats = {s.counter_name: s for s in result.counters}
        assert set(stats) == {"Counter C", "Counter D"}
        s = stats["Counter C"]
        assert s.total_served == 15
        assert s.avg_queue_length == 7.5
        assert s.avg_wait_time == 15.0
        assert s.max_wait_time == 20.0
        assert s.peak_occupancy == 9
        assert (s.min_duration, s.avg_duration, s.max_duration) == (10.0, 15.0, 20.0)
        assert s.efficiency == 33
        assert stats["Counter D"].efficiency == 100
        assert stats["Counter D"].record_count == 0

    def test_raw_in_count_fallback(self, db, cafeteria):
        add(db, cafeteria.location, at(9), cafeteria.counter, in_count=7)
        result = AggregationEngine(db).counter_efficiency(cafeteria.location.id, START, END)
        assert result.counters[0].total_served == 7

    def test_efficiency_score(self):
        assert counter_efficiency_score(0) == 100
        assert counter_efficiency_score(2) == 100
        assert counter_efficiency_score(50) == 10


class TestDailySummaries:
    def test_todays_visitors(self, db, cafeteria):
        loc, c = cafeteria.location, cafeteria.counter
        now = at(15)
        add(db, loc, at(8), c, in_count=100)
        add(db, loc, at(14, 30), c, in_count=160)
        add(db, loc, at(14, 50), c, in_count=190)
        yesterday = DAY - timedelta(days=1)
        add(db, loc, at(8, day=yesterday), c, in_count=0)
        add(db, loc, at(12, day=yesterday), c, in_count=60)

        visitors = AggregationEngine(db).todays_visitors(loc.id, now=now)

        assert visitors.total == 90
        assert visitors.yesterday == 60
        assert visitors.last_hour == 30
        assert visitors.percentage_change == 50.0
        assert visitors.trend == "up"
        assert visitors.since_time == "7:00 AM"

    def test_average_dwell(self, db, cafeteria):
        loc = cafeteria.location
        add(db, loc, at(9), cafeteria.counter, avg_dwell=2.0)
        add(db, loc, at(9, 5), cafeteria.counter, avg_dwell=4.0)
        add(db, loc, at(9), cafeteria.other, est_wait=4.5)

        dwell = AggregationEngine(db).average_dwell(loc.id, now=at(12))

        # mean(3.0, 4.5) = 3.75 min
        assert (dwell.minutes, dwell.seconds, dwell.total_seconds) == (3, 45, 225)
        assert dwell.formatted == "3m 45s"
        assert dwell.note == "Across 2 counters"

    def test_average_dwell_no_data(self, db, cafeteria):
        dwell = AggregationEngine(db).average_dwell(cafeteria.location.id, now=at(12))
        assert dwell.formatted == "0m 0s"
        assert dwell.note == "No data available"

    def test_clock_label(self):
        assert clock_label(at(7)) == "7:00 AM"
        assert clock_label(at(0, 30)) == "12:30 AM"
        assert clock_label(at(18)) == "6:00 PM"


class TestDashboard:
    def test_compose(self, db, cafeteria):
        loc, c = cafeteria.location, cafeteria.counter
        add(db, loc, at(9), c, occupancy=10, in_count=5, est_wait=4, queue=2)
        add(db, loc, at(9, 30), c, occupancy=12, in_count=9, est_wait=6, queue=3)

        dash = AggregationEngine(db).dashboard("srr-4a", "daily", now=at(10))

        assert dash.cafeteria_code == "srr-4a"
        assert dash.window_start == at(10) - timedelta(hours=24)
        assert dash.record_count == 2
        assert dash.occupancy_trend.points[0].timestamp == "09:00"
        assert dash.todays_visitors.total == 4
        assert dash.counter_status[0].counter_name == "Counter C"
        assert dash.counter_status[0].wait_time == 6
        assert dash.occupancy_status.current_occupancy == 12
        assert dash.occupancy_status.congestion_level == "MEDIUM"

    def test_daily_trend_starts_at_day_start(self, db, cafeteria):
        add(db, cafeteria.location, at(6), cafeteria.counter, occupancy=3)
        dash = AggregationEngine(db).dashboard("srr-4a", "daily", now=at(10))
        assert dash.record_count == 1
        assert dash.occupancy_trend.points == []

    def test_unknown_code(self, db, cafeteria):
        with pytest.raises(LocationNotFound):
            AggregationEngine(db).dashboard("nowhere")

    def test_windows(self):
        now = datetime(2024, 3, 31, 10)
        assert AggregationEngine.window_start(Granularity.DAILY, 6, now) == now - timedelta(hours=6)
        assert AggregationEngine.window_start(Granularity.HOURLY, None, now) == now - timedelta(hours=1)
        assert AggregationEngine.window_start(Granularity.WEEKLY, None, now) == now - timedelta(days=7)
        assert AggregationEngine.window_start(Granularity.MONTHLY, None, now) == datetime(2024, 2, 29, 10)
        assert AggregationEngine.window_start(Granularity.MONTHLY, None, datetime(2024, 1, 15)) == datetime(2023, 12, 15)
