# cafeteria_analytics/routers/reports.py
"""Manual trigger for the scheduled report batches."""

from dataclasses import asdict

from fastapi import APIRouter, HTTPException

from cafeteria_analytics.services.report_driver import CADENCES, run_report_batch

router = APIRouter()


@router.post("/reports/{cadence}", summary="Run the daily or weekly report batch now")
async def trigger_report(cadence: str):
    if cadence not in CADENCES:
        raise HTTPException(status_code=404, detail=f"Unknown cadence '{cadence}' (daily|weekly)")
    summary = await run_report_batch(cadence)
    return asdict(summary)
