# cafeteria_analytics/schemas/analytics.py
"""
Aggregation result types.
Every view carries record_count so an empty range is distinguishable from an error.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Optional

from cafeteria_analytics.schemas.telemetry import CounterStatus, OccupancyStatus


class OccupancyPoint(BaseModel):
    timestamp: str
    hour: Optional[int] = None
    occupancy: float


class OccupancyTrend(BaseModel):
    granularity: str
    record_count: int
    points: list[OccupancyPoint] = []


class CongestionPoint(BaseModel):
    timestamp: str
    counters: dict[str, int] = {}


class CongestionTrend(BaseModel):
    granularity: str
    record_count: int
    points: list[CongestionPoint] = []


class CounterCongestionDetail(BaseModel):
    max_occupancy: int
    min_occupancy: int
    avg_occupancy: float
    data_points: int
    status: str               # HEAVY | MODERATE | LIGHT


class EnhancedCongestionPoint(BaseModel):
    timestamp: str
    counters: dict[str, CounterCongestionDetail] = {}


class EnhancedCongestionTrend(BaseModel):
    granularity: str
    record_count: int
    points: list[EnhancedCongestionPoint] = []


class FootfallPoint(BaseModel):
    timestamp: str
    cafeteria_footfall: int
    counter_footfall: int
    counter_footfall_estimated: bool = False
    ratio: float
    insight: str


class FootfallComparison(BaseModel):
    record_count: int
    points: list[FootfallPoint] = []


class PeakSlot(BaseModel):
    time: str
    hour: int
    occupancy: int
    type: str


class PeakHours(BaseModel):
    record_count: int
    current_status: str
    next_peak: str
    highest_peak: str
    average_peak_occupancy: int
    slots: list[PeakSlot] = []


class DwellBucket(BaseModel):
    minutes: int
    label: str
    count: int
    percentage: float


class DwellDistribution(BaseModel):
    record_count: int
    total_samples: int
    buckets: list[DwellBucket] = []


class FlowPoint(BaseModel):
    timestamp: str
    inflow: int
    outflow: int
    net_flow: int


class FlowData(BaseModel):
    granularity: str
    record_count: int
    points: list[FlowPoint] = []


class TotalServed(BaseModel):
    record_count: int
    counter_id: Optional[int] = None
    total_served: int


class CounterStats(BaseModel):
    counter_id: int
    counter_name: str
    record_count: int
    total_served: int
    avg_queue_length: float
    avg_dwell_time: float
    avg_wait_time: float
    max_wait_time: float
    peak_occupancy: int
    min_duration: float
    avg_duration: float
    max_duration: float
    efficiency: int


class CounterEfficiency(BaseModel):
    record_count: int
    counters: list[CounterStats] = []


class TodaysVisitors(BaseModel):
    total: int
    since_time: str
    last_hour: int
    yesterday: int
    percentage_change: float
    trend: str                # up | down


class AverageDwell(BaseModel):
    minutes: int
    seconds: int
    total_seconds: int
    formatted: str
    note: str


class Dashboard(BaseModel):
    cafeteria_code: str
    cafeteria_name: str
    granularity: str
    window_start: datetime
    window_end: datetime
    record_count: int
    occupancy_status: Optional[OccupancyStatus] = None
    counter_status: list[CounterStatus] = []
    todays_visitors: TodaysVisitors
    average_dwell: AverageDwell
    occupancy_trend: OccupancyTrend
    congestion_trend: CongestionTrend
    footfall: FootfallComparison
    peak_hours: PeakHours
    dwell_distribution: DwellDistribution
    flow: FlowData
    counter_efficiency: CounterEfficiency
    generated_at: datetime
