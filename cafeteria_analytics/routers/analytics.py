# cafeteria_analytics/routers/analytics.py
"""
Dashboard analytics: read-only views per cafeteria.
Time window: ?start=&end= (ISO, local time); defaults to the last 24 hours.
Unknown cafeteria code → 404. Empty windows return zero-valued views, not errors.
"""

from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from cafeteria_analytics.database import get_db
from cafeteria_analytics.exceptions import LocationNotFound
from cafeteria_analytics.schemas.analytics import (
    CongestionTrend,
    CounterEfficiency,
    Dashboard,
    DwellDistribution,
    EnhancedCongestionTrend,
    FlowData,
    FootfallComparison,
    OccupancyTrend,
    PeakHours,
    TotalServed,
)
from cafeteria_analytics.services.aggregation_engine import AggregationEngine
from cafeteria_analytics.services.time_buckets import Granularity
from cafeteria_analytics.utils.clock import now_local, to_local_naive

router = APIRouter()


def _window(start: Optional[datetime], end: Optional[datetime]) -> tuple[datetime, datetime]:
    end = to_local_naive(end) if end else now_local()
    start = to_local_naive(start) if start else end - timedelta(hours=24)
    if start > end:
        raise HTTPException(status_code=400, detail="start must be before end")
    return start, end


def _granularity(value: str) -> Granularity:
    try:
        return Granularity.parse(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _location_id(engine: AggregationEngine, code: str) -> int:
    try:
        return engine.get_location_by_code(code).id
    except LocationNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/analytics/{code}/occupancy-trend", response_model=OccupancyTrend)
def occupancy_trend(code: str, granularity: str = "daily", start: Optional[datetime] = None,
                    end: Optional[datetime] = None, counter_id: Optional[int] = None,
                    db: Session = Depends(get_db)):
    """Mean occupancy per time bucket."""
    engine = AggregationEngine(db)
    start, end = _window(start, end)
    return engine.occupancy_trend(_location_id(engine, code), start, end, _granularity(granularity), counter_id)


@router.get("/analytics/{code}/congestion-trend", response_model=CongestionTrend)
def congestion_trend(code: str, granularity: str = "daily", start: Optional[datetime] = None,
                     end: Optional[datetime] = None, counter_id: Optional[int] = None,
                     db: Session = Depends(get_db)):
    """Peak occupancy per counter per time bucket."""
    engine = AggregationEngine(db)
    start, end = _window(start, end)
    return engine.congestion_trend(_location_id(engine, code), start, end, _granularity(granularity), counter_id)


@router.get("/analytics/{code}/enhanced-congestion", response_model=EnhancedCongestionTrend)
def enhanced_congestion(code: str, granularity: str = "daily", start: Optional[datetime] = None,
                        end: Optional[datetime] = None, counter_id: Optional[int] = None,
                        db: Session = Depends(get_db)):
    engine = AggregationEngine(db)
    start, end = _window(start, end)
    return engine.enhanced_congestion(_location_id(engine, code), start, end, _granularity(granularity), counter_id)


@router.get("/analytics/{code}/footfall", response_model=FootfallComparison)
def footfall(code: str, start: Optional[datetime] = None, end: Optional[datetime] = None,
             db: Session = Depends(get_db)):
    """Site vs counter inflow per hour of day."""
    engine = AggregationEngine(db)
    start, end = _window(start, end)
    return engine.footfall_comparison(_location_id(engine, code), start, end)


@router.get("/analytics/{code}/peak-hours", response_model=PeakHours)
def peak_hours(code: str, counter_id: Optional[int] = None, db: Session = Depends(get_db)):
    """Top 3 hours over the trailing 7 days."""
    engine = AggregationEngine(db)
    return engine.peak_hours(_location_id(engine, code), counter_id=counter_id)


@router.get("/analytics/{code}/dwell-distribution", response_model=DwellDistribution)
def dwell_distribution(code: str, start: Optional[datetime] = None, end: Optional[datetime] = None,
                       counter_id: Optional[int] = None, db: Session = Depends(get_db)):
    engine = AggregationEngine(db)
    start, end = _window(start, end)
    return engine.dwell_distribution(_location_id(engine, code), start, end, counter_id)


@router.get("/analytics/{code}/flow", response_model=FlowData)
def flow(code: str, granularity: str = "daily", start: Optional[datetime] = None,
         end: Optional[datetime] = None, counter_id: Optional[int] = None,
         db: Session = Depends(get_db)):
    engine = AggregationEngine(db)
    start, end = _window(start, end)
    return engine.flow_data(_location_id(engine, code), start, end, _granularity(granularity), counter_id)


@router.get("/analytics/{code}/total-served", response_model=TotalServed)
def total_served(code: str, start: Optional[datetime] = None, end: Optional[datetime] = None,
                 counter_id: Optional[int] = None, db: Session = Depends(get_db)):
    """Visitors served, rebuilt from the cumulative in_count."""
    engine = AggregationEngine(db)
    start, end = _window(start, end)
    return engine.total_served(_location_id(engine, code), start, end, counter_id)


@router.get("/analytics/{code}/counters", response_model=CounterEfficiency)
def counters(code: str, start: Optional[datetime] = None, end: Optional[datetime] = None,
             db: Session = Depends(get_db)):
    """Per-counter stats and efficiency."""
    engine = AggregationEngine(db)
    start, end = _window(start, end)
    return engine.counter_efficiency(_location_id(engine, code), start, end)


@router.get("/analytics/{code}/dashboard", response_model=Dashboard)
def dashboard(code: str, granularity: str = "daily", time_range: Optional[int] = None,
              db: Session = Depends(get_db)):
    """
    Everything the dashboard page needs in one call.
    time_range (hours) applies to daily/hourly; weekly = 7 days, monthly = 1 month.
    """
    try:
        return AggregationEngine(db).dashboard(code, _granularity(granularity), time_range)
    except LocationNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
