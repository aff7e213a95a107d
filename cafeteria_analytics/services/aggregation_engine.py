# cafeteria_analytics/services/aggregation_engine.py
"""
Analytics views over stored telemetry.

Every operation is read-only and a pure function of the records in the requested
range, so views can be computed concurrently with ingestion and with each other.
Every result carries record_count; an empty range yields a zero-valued view, an
unknown location raises LocationNotFound.

Views:
  occupancy_trend      mean occupancy per bucket
  congestion_trend     max occupancy per counter per bucket (site-level fallback)
  enhanced_congestion  per-minute counter max/min/avg with HEAVY/MODERATE/LIGHT
  footfall_comparison  site inflow vs counter inflow per hour of day
  peak_hours           top 3 hours of the trailing week
  dwell_distribution   histogram of representative duration, whole minutes
  flow_data            inflow / estimated outflow per bucket
  total_served         delta reconstruction of in_count
  counter_efficiency   per-counter served/queue/wait/efficiency
  todays_visitors, average_dwell, occupancy_status, counter_status, dashboard
"""

import calendar
import math
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from cafeteria_analytics.exceptions import LocationNotFound
from cafeteria_analytics.models.cafeteria_location import CafeteriaLocation
from cafeteria_analytics.schemas.analytics import (
    AverageDwell,
    CongestionPoint,
    CongestionTrend,
    CounterCongestionDetail,
    CounterEfficiency,
    CounterStats,
    Dashboard,
    DwellBucket,
    DwellDistribution,
    EnhancedCongestionPoint,
    EnhancedCongestionTrend,
    FlowData,
    FlowPoint,
    FootfallComparison,
    FootfallPoint,
    OccupancyPoint,
    OccupancyTrend,
    PeakHours,
    PeakSlot,
    TodaysVisitors,
    TotalServed,
)
from cafeteria_analytics.schemas.telemetry import CounterStatus, OccupancyStatus
from cafeteria_analytics.services.counter_status import counter_status_list, occupancy_status_of
from cafeteria_analytics.services.metric_normalizer import representative_duration
from cafeteria_analytics.services.telemetry_store import TelemetryStore
from cafeteria_analytics.services.time_buckets import BucketMap, Granularity, bucket_key, minute_key
from cafeteria_analytics.services.visitor_counts import total_served, total_served_across_counters
from cafeteria_analytics.utils.clock import day_start, now_local
from cafeteria_analytics.utils.logger import get_logger

logger = get_logger(__name__)

SITE_LEVEL_KEY = "site-level"

# Counter footfall placeholder when an hour has no counter-level in_count
COUNTER_FOOTFALL_ESTIMATE = 0.75
HOPPING_RATIO = 1.5
CONGESTION_RATIO = 0.8

# Enhanced congestion status (max occupancy at a counter in one minute)
HEAVY_AT = 12
MODERATE_AT = 8

OUTFLOW_FACTOR = 0.90
PEAK_WINDOW_DAYS = 7
PEAK_SLOTS = 3
# (start, end) hours, end exclusive, shown as "Peak Hours"
PEAK_PERIODS = ((8, 9), (12, 14), (19, 21))


def _round2(value: float) -> float:
    return round(value, 2)


def clock_label(value: datetime) -> str:
    """07:00 → "7:00 AM"."""
    hour = value.hour % 12 or 12
    return f"{hour}:{value.minute:02d} {'AM' if value.hour < 12 else 'PM'}"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def peak_type(hour: int) -> str:
    if 12 <= hour <= 14:
        return "Lunch Rush"
    if 19 <= hour <= 21:
        return "Dinner Peak"
    if 8 <= hour <= 9:
        return "Breakfast"
    return "Regular"


def current_peak_status(hour: int) -> str:
    for start, end in PEAK_PERIODS:
        if start <= hour < end:
            return "Peak Hours"
    return "Off-Peak"


def next_peak(hour: int) -> str:
    if hour < 8:
        return "8:00 AM"
    if hour < 12:
        return "12:00 PM"
    if hour < 19:
        return "7:00 PM"
    return "Tomorrow 8:00 AM"


def footfall_insight(ratio: float, counter_footfall: int) -> str:
    if counter_footfall == 0:
        return "No counter data available"
    if ratio > HOPPING_RATIO:
        return "Counter hopping detected"
    if ratio < CONGESTION_RATIO:
        return "Potential congestion at counters"
    return "Normal flow"


def congestion_status(max_occupancy: int) -> str:
    if max_occupancy >= HEAVY_AT:
        return "HEAVY"
    if max_occupancy >= MODERATE_AT:
        return "MODERATE"
    return "LIGHT"


def counter_efficiency_score(avg_wait: float) -> int:
    """100 when there is no wait; shrinks as the mean estimated wait grows."""
    if not avg_wait or avg_wait <= 0:
        return 100
    return min(100, int(100 / avg_wait * 5))


def _mean(values: list) -> float:
    return sum(values) / len(values) if values else 0.0


class AggregationEngine:
    def __init__(self, db: Session):
        self.db = db
        self.store = TelemetryStore(db)

    # ── Lookups ───────────────────────────────────────────────────────────
    def get_location(self, location_id: int) -> CafeteriaLocation:
        location = self.db.query(CafeteriaLocation).filter(CafeteriaLocation.id == location_id).first()
        if location is None:
            raise LocationNotFound(location_id)
        return location

    def get_location_by_code(self, code: str) -> CafeteriaLocation:
        location = self.db.query(CafeteriaLocation).filter(CafeteriaLocation.code == code).first()
        if location is None:
            raise LocationNotFound(code)
        return location

    def _records(self, location_id: int, start: datetime, end: datetime,
                 counter_id=None, counter_level_only: bool = False) -> list:
        self.get_location(location_id)
        return self.store.find_by_owner_and_range(location_id, start, end, counter_id=counter_id,
                                                  counter_level_only=counter_level_only)

    # ── Trends ────────────────────────────────────────────────────────────
    def occupancy_trend(self, location_id: int, start: datetime, end: datetime,
                        granularity=Granularity.DAILY, counter_id: Optional[int] = None) -> OccupancyTrend:
        granularity = Granularity.parse(granularity)
        records = self._records(location_id, start, end, counter_id)
        buckets = BucketMap.group(records, lambda r: bucket_key(r.timestamp, granularity))

        points = [
            OccupancyPoint(
                timestamp=key.label,
                hour=key.hour,
                occupancy=_round2(_mean([r.current_occupancy or 0 for r in rows])),
            )
            for key, rows in buckets.items()
        ]
        return OccupancyTrend(granularity=granularity.value, record_count=len(records), points=points)

    def congestion_trend(self, location_id: int, start: datetime, end: datetime,
                         granularity=Granularity.DAILY, counter_id: Optional[int] = None) -> CongestionTrend:
        """
        Peak (max) occupancy per counter per bucket.
        A bucket with no counter records shows the site-level max under "site-level"
        when it is above zero; a bucket with neither stays empty.
        """
        granularity = Granularity.parse(granularity)
        records = self._records(location_id, start, end, counter_id)
        names = self.store.counter_names(location_id)
        buckets = BucketMap.group(records, lambda r: bucket_key(r.timestamp, granularity))

        points = []
        for key, rows in buckets.items():
            per_counter: dict[str, int] = {}
            for r in rows:
                if r.counter_id is None:
                    continue
                name = names.get(r.counter_id, f"Counter {r.counter_id}")
                per_counter[name] = max(per_counter.get(name, 0), r.current_occupancy or 0)

            if not per_counter:
                site_max = max((r.current_occupancy or 0 for r in rows if r.counter_id is None), default=0)
                if site_max > 0:
                    per_counter[SITE_LEVEL_KEY] = site_max

            points.append(CongestionPoint(timestamp=key.label, counters=dict(sorted(per_counter.items()))))

        return CongestionTrend(granularity=granularity.value, record_count=len(records), points=points)

    def enhanced_congestion(self, location_id: int, start: datetime, end: datetime,
                            granularity=Granularity.DAILY,
                            counter_id: Optional[int] = None) -> EnhancedCongestionTrend:
        """Minute-level counter congestion; only counter records with occupancy > 0 count."""
        granularity = Granularity.parse(granularity)
        records = [
            r for r in self._records(location_id, start, end, counter_id, counter_level_only=True)
            if r.current_occupancy is not None and r.current_occupancy > 0
        ]
        names = self.store.counter_names(location_id)
        buckets = BucketMap(lambda: defaultdict(list))
        for r in records:
            name = names.get(r.counter_id, f"Counter {r.counter_id}")
            buckets[minute_key(r.timestamp, granularity)][name].append(r.current_occupancy)

        points = []
        for key, per_counter in buckets.items():
            details = {}
            for name in sorted(per_counter):
                values = per_counter[name]
                details[name] = CounterCongestionDetail(
                    max_occupancy=max(values),
                    min_occupancy=min(values),
                    avg_occupancy=_round2(_mean(values)),
                    data_points=len(values),
                    status=congestion_status(max(values)),
                )
            points.append(EnhancedCongestionPoint(timestamp=key.label, counters=details))

        return EnhancedCongestionTrend(granularity=granularity.value, record_count=len(records), points=points)

    def flow_data(self, location_id: int, start: datetime, end: datetime,
                  granularity=Granularity.DAILY, counter_id: Optional[int] = None) -> FlowData:
        """Inflow is the bucket's in_count sum; outflow is an estimate (90% of inflow)."""
        granularity = Granularity.parse(granularity)
        records = self._records(location_id, start, end, counter_id)
        buckets = BucketMap.group(records, lambda r: bucket_key(r.timestamp, granularity))

        points = []
        for key, rows in buckets.items():
            inflow = sum(r.in_count for r in rows if r.in_count is not None)
            outflow = int(inflow * OUTFLOW_FACTOR)
            points.append(FlowPoint(timestamp=key.label, inflow=inflow, outflow=outflow,
                                    net_flow=inflow - outflow))
        return FlowData(granularity=granularity.value, record_count=len(records), points=points)

    # ── Footfall ──────────────────────────────────────────────────────────
    def footfall_comparison(self, location_id: int, start: datetime, end: datetime) -> FootfallComparison:
        """
        Site inflow vs counter inflow per hour of day, for hours with site-level in_count.
        ratio > 1.5 → counter hopping, < 0.8 → congestion at counters.
        An hour without counter in_count uses 75% of the site figure as a placeholder.
        """
        records = self._records(location_id, start, end)
        site_by_hour: dict[int, int] = defaultdict(int)
        counter_by_hour: dict[int, int] = defaultdict(int)
        for r in records:
            if r.in_count is None:
                continue
            target = site_by_hour if r.counter_id is None else counter_by_hour
            target[r.timestamp.hour] += r.in_count

        points = []
        for hour in sorted(site_by_hour):
            site = site_by_hour[hour]
            estimated = hour not in counter_by_hour
            counter = int(site * COUNTER_FOOTFALL_ESTIMATE) if estimated else counter_by_hour[hour]
            ratio = site / counter if counter > 0 else 1.0
            points.append(FootfallPoint(
                timestamp=f"{hour:02d}:00",
                cafeteria_footfall=site,
                counter_footfall=counter,
                counter_footfall_estimated=estimated,
                ratio=_round2(ratio),
                insight=footfall_insight(ratio, counter),
            ))
        return FootfallComparison(record_count=len(records), points=points)

    # ── Peak hours ────────────────────────────────────────────────────────
    def peak_hours(self, location_id: int, now: Optional[datetime] = None,
                   counter_id: Optional[int] = None) -> PeakHours:
        """
        Hours of day over the trailing 7 days ranked by mean occupancy (missing values skipped).
        Equal means rank the earlier hour first.
        """
        now = now or now_local()
        records = self._records(location_id, now - timedelta(days=PEAK_WINDOW_DAYS), now, counter_id)

        by_hour: dict[int, list] = defaultdict(list)
        for r in records:
            if r.current_occupancy is not None:
                by_hour[r.timestamp.hour].append(r.current_occupancy)
        ranked = sorted(((hour, _mean(values)) for hour, values in by_hour.items()),
                        key=lambda item: (-item[1], item[0]))

        slots = [
            PeakSlot(time=f"{hour:02d}:00 - {hour + 2:02d}:00", hour=hour,
                     occupancy=int(avg), type=peak_type(hour))
            for hour, avg in ranked[:PEAK_SLOTS]
        ]
        return PeakHours(
            record_count=len(records),
            current_status=current_peak_status(now.hour),
            next_peak=next_peak(now.hour),
            highest_peak=slots[0].time if slots else "12:00 PM",
            average_peak_occupancy=sum(s.occupancy for s in slots) // len(slots) if slots else 0,
            slots=slots,
        )

    # ── Dwell ─────────────────────────────────────────────────────────────
    def dwell_distribution(self, location_id: int, start: datetime, end: datetime,
                           counter_id: Optional[int] = None) -> DwellDistribution:
        records = self._records(location_id, start, end, counter_id)
        counts: dict[int, int] = defaultdict(int)
        for r in records:
            duration = representative_duration(r.avg_dwell_time, r.estimated_wait_time, r.manual_wait_time)
            if duration is not None:
                counts[_round_half_up(duration)] += 1

        total = sum(counts.values())
        buckets = [
            DwellBucket(minutes=minutes, label=f"{minutes} min", count=count,
                        percentage=_round2(count * 100.0 / total))
            for minutes, count in sorted(counts.items())
        ]
        return DwellDistribution(record_count=len(records), total_samples=total, buckets=buckets)

    def average_dwell(self, location_id: int, now: Optional[datetime] = None) -> AverageDwell:
        """Mean over counters of each counter's mean representative duration since day start."""
        now = now or now_local()
        records = self._records(location_id, self._business_day_start(now), now, counter_level_only=True)

        per_counter: dict[int, list] = defaultdict(list)
        for r in records:
            duration = representative_duration(r.avg_dwell_time, r.estimated_wait_time, r.manual_wait_time)
            if duration is not None:
                per_counter[r.counter_id].append(duration)
        averages = [_mean(values) for values in per_counter.values() if values]

        if not averages:
            return AverageDwell(minutes=0, seconds=0, total_seconds=0, formatted="0m 0s",
                                note="No data available")

        avg = _mean(averages)
        minutes = int(avg)
        seconds = int((avg - minutes) * 60)
        return AverageDwell(
            minutes=minutes,
            seconds=seconds,
            total_seconds=int(avg * 60),
            formatted=f"{minutes}m {seconds}s",
            note=f"Across {len(averages)} counters",
        )

    # ── Visitors ──────────────────────────────────────────────────────────
    def total_served(self, location_id: int, start: datetime, end: datetime,
                     counter_id: Optional[int] = None) -> TotalServed:
        """
        One counter: delta reconstruction over its records.
        Whole location: sum of each counter's reconstruction (site-level records excluded).
        """
        if counter_id is not None:
            records = self._records(location_id, start, end, counter_id)
            total = total_served(records)
        else:
            records = self._records(location_id, start, end, counter_level_only=True)
            total = total_served_across_counters(records)
        return TotalServed(record_count=len(records), counter_id=counter_id, total_served=total)

    def todays_visitors(self, location_id: int, now: Optional[datetime] = None) -> TodaysVisitors:
        now = now or now_local()
        start = self._business_day_start(now)

        today = self.total_served(location_id, start, now).total_served
        yesterday = self.total_served(location_id, start - timedelta(days=1),
                                      now - timedelta(days=1)).total_served
        last_hour = self.total_served(location_id, now - timedelta(hours=1), now).total_served

        change, trend = 0.0, "up"
        if yesterday > 0:
            change = (today - yesterday) * 100.0 / yesterday
            trend = "up" if change >= 0 else "down"

        return TodaysVisitors(
            total=today,
            since_time=clock_label(start),
            last_hour=last_hour,
            yesterday=yesterday,
            percentage_change=_round2(change),
            trend=trend,
        )

    # ── Per-counter ───────────────────────────────────────────────────────
    def counter_efficiency(self, location_id: int, start: datetime, end: datetime) -> CounterEfficiency:
        records = self._records(location_id, start, end, counter_level_only=True)
        names = self.store.counter_names(location_id)
        by_counter: dict[int, list] = defaultdict(list)
        for r in records:
            by_counter[r.counter_id].append(r)

        counters = []
        for counter_id, name in sorted(names.items(), key=lambda item: item[1]):
            rows = by_counter.get(counter_id, [])
            served = total_served(rows)
            if served == 0:
                # Devices that only ever report per-interval counts
                served = sum(r.in_count for r in rows if r.in_count is not None)

            queues = [r.queue_length for r in rows if r.queue_length is not None]
            dwells = [r.avg_dwell_time for r in rows if r.avg_dwell_time is not None]
            waits = [r.estimated_wait_time for r in rows if r.estimated_wait_time is not None]
            durations = [d for d in (representative_duration(r.avg_dwell_time, r.estimated_wait_time,
                                                             r.manual_wait_time) for r in rows)
                         if d is not None]
            avg_wait = _mean(waits)

            counters.append(CounterStats(
                counter_id=counter_id,
                counter_name=name,
                record_count=len(rows),
                total_served=served,
                avg_queue_length=_round2(_mean(queues)),
                avg_dwell_time=_round2(_mean(dwells)),
                avg_wait_time=_round2(avg_wait),
                max_wait_time=_round2(max(waits, default=0.0)),
                peak_occupancy=max((r.current_occupancy or 0 for r in rows), default=0),
                min_duration=_round2(min(durations, default=0.0)),
                avg_duration=_round2(_mean(durations)),
                max_duration=_round2(max(durations, default=0.0)),
                efficiency=counter_efficiency_score(avg_wait),
            ))
        return CounterEfficiency(record_count=len(records), counters=counters)

    def occupancy_status(self, location_id: int) -> OccupancyStatus:
        location = self.get_location(location_id)
        return occupancy_status_of(location, self.store.find_latest_per_counter(location_id))

    def counter_status(self, location_id: int) -> list[CounterStatus]:
        self.get_location(location_id)
        latest = self.store.find_latest_per_counter(location_id)
        return counter_status_list(latest, self.store.counter_names(location_id))

    # ── Dashboard ─────────────────────────────────────────────────────────
    def dashboard(self, location_code: str, granularity="daily", time_range: Optional[int] = None,
                  now: Optional[datetime] = None) -> Dashboard:
        granularity = Granularity.parse(granularity)
        location = self.get_location_by_code(location_code)
        now = now or now_local()
        start = self.window_start(granularity, time_range, now)
        trend_start = self._business_day_start(now) if granularity == Granularity.DAILY else start

        logger.info(f"[AGG] Dashboard {location.code} {granularity.value} {start:%Y-%m-%d %H:%M} → {now:%H:%M}")

        record_count = len(self.store.find_by_owner_and_range(location.id, start, now))
        return Dashboard(
            cafeteria_code=location.code,
            cafeteria_name=location.name,
            granularity=granularity.value,
            window_start=start,
            window_end=now,
            record_count=record_count,
            occupancy_status=self.occupancy_status(location.id),
            counter_status=self.counter_status(location.id),
            todays_visitors=self.todays_visitors(location.id, now),
            average_dwell=self.average_dwell(location.id, now),
            occupancy_trend=self.occupancy_trend(location.id, trend_start, now, granularity),
            congestion_trend=self.congestion_trend(location.id, trend_start, now, granularity),
            footfall=self.footfall_comparison(location.id, start, now),
            peak_hours=self.peak_hours(location.id, now),
            dwell_distribution=self.dwell_distribution(location.id, start, now),
            flow=self.flow_data(location.id, trend_start, now, granularity),
            counter_efficiency=self.counter_efficiency(location.id, start, now),
            generated_at=now_local(),
        )

    @staticmethod
    def window_start(granularity: Granularity, time_range: Optional[int], now: datetime) -> datetime:
        if granularity == Granularity.HOURLY:
            return now - timedelta(hours=time_range or 1)
        if granularity == Granularity.DAILY:
            return now - timedelta(hours=time_range or 24)
        if granularity == Granularity.WEEKLY:
            return now - timedelta(days=7)
        # One calendar month back, clamped to the last day of the shorter month
        month = now.month - 1 or 12
        year = now.year if now.month > 1 else now.year - 1
        return now.replace(year=year, month=month, day=min(now.day, calendar.monthrange(year, month)[1]))

    @staticmethod
    def _business_day_start(now: datetime) -> datetime:
        """Today's 07:00, or yesterday's when called before 07:00."""
        start = day_start(now)
        return start if start <= now else start - timedelta(days=1)
