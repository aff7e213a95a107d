# cafeteria_analytics/services/report_sender.py
"""
Hands finished dashboard reports to the external formatter/mailer over HTTP.
This service does no HTML or email composition itself.
"""

from typing import Optional

import httpx

from cafeteria_analytics.config import settings
from cafeteria_analytics.exceptions import ReportDeliveryError
from cafeteria_analytics.schemas.analytics import Dashboard
from cafeteria_analytics.utils.logger import get_logger

logger = get_logger(__name__)


class ReportSender:
    def __init__(self, webhook_url: Optional[str] = None, timeout: Optional[float] = None):
        self.webhook_url = webhook_url if webhook_url is not None else settings.REPORT_WEBHOOK_URL
        self.timeout = timeout if timeout is not None else settings.REPORT_TIMEOUT_SECONDS

    @property
    def configured(self) -> bool:
        return bool(self.webhook_url)

    async def send(self, cadence: str, report: Dashboard) -> bool:
        """
        POST the report. Returns False (skipped) when no webhook is configured.
        Raises ReportDeliveryError on connection errors or non-2xx replies.
        """
        if not self.configured:
            logger.info(f"[REPORT] No REPORT_WEBHOOK_URL, {cadence} report for {report.cafeteria_code} not sent")
            return False

        body = {"cadence": cadence, "report": report.model_dump(mode="json")}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.webhook_url, json=body)
        except httpx.HTTPError as e:
            raise ReportDeliveryError(f"{report.cafeteria_code}: {e}") from e

        if response.status_code >= 300:
            raise ReportDeliveryError(
                f"{report.cafeteria_code}: formatter returned HTTP {response.status_code}"
            )
        logger.info(f"[REPORT] 📧 {cadence} report for {report.cafeteria_code} handed to formatter")
        return True
