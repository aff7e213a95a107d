# tests/test_report_driver.py
"""Scheduled report batches and the webhook sender."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import httpx
import pytest
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch
from sqlalchemy.exc import OperationalError
from cafeteria_analytics.exceptions import ReportDeliveryError
from cafeteria_analytics.models import CafeteriaLocation
from cafeteria_analytics.services.report_driver import next_run_at, run_report_batch, start_report_scheduler
from cafeteria_analytics.services.report_sender import ReportSender

NOW = datetime(2024, 1, 17, 18, 0)     # Wednesday


def add_location(db, cafeteria, code, active=True):
    db.add(CafeteriaLocation(tenant_id=cafeteria.tenant.id, name=code.upper(), code=code,
                             capacity=50, active=active))
    db.commit()


class TestReportBatch:
    @pytest.mark.asyncio
    async def test_one_report_per_active_location(self, db, cafeteria):
        add_location(db, cafeteria, "blr-1")
        add_location(db, cafeteria, "closed", active=False)
        sender = MagicMock()
        sender.send = AsyncMock(return_value=True)

        summary = await run_report_batch("daily", session_factory=lambda: db, sender=sender, now=NOW)

        assert summary.sent == 2
        assert summary.failed == 0
        codes = [call.args[1].cafeteria_code for call in sender.send.await_args_list]
        assert codes == ["srr-4a", "blr-1"]
        cadence, report = sender.send.await_args_list[0].args
        assert cadence == "daily"
        assert report.granularity == "daily"
        assert report.window_end == NOW

    @pytest.mark.asyncio
    async def test_failure_at_one_location_does_not_stop_batch(self, db, cafeteria):
        add_location(db, cafeteria, "blr-1")
        sender = MagicMock()
        sender.send = AsyncMock(side_effect=[ReportDeliveryError("srr-4a: HTTP 502"), True])

        summary = await run_report_batch("weekly", session_factory=lambda: db, sender=sender, now=NOW)

        assert (summary.sent, summary.failed) == (1, 1)
        assert "srr-4a" in summary.errors

    @pytest.mark.asyncio
    async def test_unconfigured_sender_skips(self, db, cafeteria):
        summary = await run_report_batch("daily", session_factory=lambda: db,
                                         sender=ReportSender(webhook_url=""), now=NOW)
        assert (summary.sent, summary.skipped) == (0, 1)

    @pytest.mark.asyncio
    async def test_query_failure_rolls_back_before_next_location(self, db, cafeteria):
        add_location(db, cafeteria, "blr-1")
        sender = MagicMock()
        sender.send = AsyncMock(return_value=True)
        engine = MagicMock()
        engine.dashboard.side_effect = [OperationalError("SELECT", {}, Exception("server closed")),
                                        MagicMock(cafeteria_code="blr-1")]

        with patch("cafeteria_analytics.services.report_driver.AggregationEngine", return_value=engine), \
                patch.object(db, "rollback", wraps=db.rollback) as rollback:
            summary = await run_report_batch("daily", session_factory=lambda: db, sender=sender, now=NOW)

        rollback.assert_called_once()
        assert (summary.sent, summary.failed) == (1, 1)
        assert list(summary.errors) == ["srr-4a"]
        assert engine.dashboard.call_args_list[1].args[0] == "blr-1"

    @pytest.mark.asyncio
    async def test_unknown_cadence(self, db):
        with pytest.raises(ValueError):
            await run_report_batch("hourly", session_factory=lambda: db)


class TestSchedule:
    def test_daily(self):
        assert next_run_at("daily", datetime(2024, 1, 17, 9, 30)) == datetime(2024, 1, 17, 18)
        assert next_run_at("daily", NOW) == datetime(2024, 1, 18, 18)

    def test_weekly_monday_morning(self):
        assert next_run_at("weekly", NOW) == datetime(2024, 1, 22, 9)
        assert next_run_at("weekly", datetime(2024, 1, 22, 8)) == datetime(2024, 1, 22, 9)
        assert next_run_at("weekly", datetime(2024, 1, 22, 9)) == datetime(2024, 1, 29, 9)

    def test_disabled_scheduler_starts_nothing(self):
        assert start_report_scheduler() == []


def mock_client(response=None, error=None):
    client = MagicMock()
    client.post = AsyncMock(return_value=response, side_effect=error)
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=client)
    context.__aexit__ = AsyncMock(return_value=False)
    return context, client


class TestReportSender:
    @pytest.mark.asyncio
    async def test_posts_report(self):
        report = MagicMock(cafeteria_code="srr-4a")
        report.model_dump.return_value = {"cafeteria_code": "srr-4a"}
        context, client = mock_client(response=MagicMock(status_code=202))

        with patch("cafeteria_analytics.services.report_sender.httpx.AsyncClient", return_value=context):
            sent = await ReportSender(webhook_url="http://formatter/reports").send("daily", report)

        assert sent is True
        url = client.post.await_args.args[0]
        assert url == "http://formatter/reports"
        assert client.post.await_args.kwargs["json"] == {"cadence": "daily",
                                                         "report": {"cafeteria_code": "srr-4a"}}

    @pytest.mark.asyncio
    async def test_non_2xx_raises(self):
        context, _ = mock_client(response=MagicMock(status_code=500))
        with patch("cafeteria_analytics.services.report_sender.httpx.AsyncClient", return_value=context):
            with pytest.raises(ReportDeliveryError):
                await ReportSender(webhook_url="http://formatter").send("daily", MagicMock(cafeteria_code="x"))

    @pytest.mark.asyncio
    async def test_connection_error_raises(self):
        context, _ = mock_client(error=httpx.ConnectError("refused"))
        with patch("cafeteria_analytics.services.report_sender.httpx.AsyncClient", return_value=context):
            with pytest.raises(ReportDeliveryError):
                await ReportSender(webhook_url="http://formatter").send("weekly", MagicMock(cafeteria_code="x"))
