"""Audit a domain: run the detectors concurrently and score the result.

The container, analytics, search-indexing and behaviour-recording detectors
are independent and read-only, so they are fanned out together and joined.
A detector that fails is recorded in its own section (``installed: False``
plus ``error``) so the others still report.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import requests
from pydantic import BaseModel

from ..core.async_utils import gather_settled
from ..core.auth import GoogleServices
from ..progress.completion import ProgressReport, evaluate
from ..progress.kpi import KpiReport, calculate_kpi
from .detectors import (
    detect_datalayer,
    detect_ga4,
    detect_gtm,
    detect_hotjar,
    detect_search_console,
)

logger = logging.getLogger(__name__)

SECTIONS = ("gtm", "ga4", "search_console", "hotjar")


class AuditResult(BaseModel):
    domain: str
    snapshot: dict[str, Any]
    progress: ProgressReport
    kpi: KpiReport
    duration_seconds: float

    model_config = {"frozen": True}


def _failed_section(section: str, error: BaseException) -> dict[str, Any]:
    logger.warning("Audit of %s failed: %s", section, error)
    if section == "search_console":
        return {
            "verified": False,
            "sitemap_submitted": False,
            "score": 0,
            "error": str(error),
        }
    return {"installed": False, "score": 0, "error": str(error)}


class Auditor:
    """Build audit snapshots for domains.

    Args:
        services: Authorised API clients.
        gtm_account_id: Tag Manager account holding the containers.
        ga4_account_id: Analytics account holding the properties.
        http_session: Session used to fetch the public homepage.
    """

    def __init__(
        self,
        services: GoogleServices,
        gtm_account_id: str | None,
        ga4_account_id: str | None,
        http_session: requests.Session | None = None,
    ) -> None:
        self.services = services
        self.gtm_account_id = gtm_account_id
        self.ga4_account_id = ga4_account_id
        self.http_session = http_session or requests.Session()

    async def snapshot(self, domain: str) -> dict[str, Any]:
        """Return the audit snapshot of *domain*."""
        results = await gather_settled(
            [
                detect_gtm(self.services.tagmanager, self.gtm_account_id, domain),
                detect_ga4(self.services.analytics, self.ga4_account_id, domain),
                detect_search_console(self.services.search_console, domain),
                detect_hotjar(self.http_session, domain),
            ]
        )
        snapshot: dict[str, Any] = {"domain": domain}
        for section, result in zip(SECTIONS, results):
            if isinstance(result, Exception):
                snapshot[section] = _failed_section(section, result)
            elif isinstance(result, BaseException):
                raise result
            else:
                snapshot[section] = result
        snapshot["datalayer"] = detect_datalayer(snapshot["gtm"])
        return snapshot

    async def audit(self, domain: str) -> AuditResult:
        started = time.monotonic()
        snapshot = await self.snapshot(domain)
        result = AuditResult(
            domain=domain,
            snapshot=snapshot,
            progress=evaluate(snapshot),
            kpi=calculate_kpi(snapshot),
            duration_seconds=round(time.monotonic() - started, 2),
        )
        logger.info(
            "Audited %s: %d%% deployed, KPI %d (%s)",
            domain,
            result.progress.global_progress,
            result.kpi.overall_score,
            result.kpi.grade,
        )
        return result
