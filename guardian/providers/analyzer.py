"""
Safety analysis with provider fallback and a daily AI quota.
"""

import asyncio
import logging
from datetime import date
from typing import Callable, List, Optional

from guardian import config
from .base import RISK_QUOTA, AnalysisResult, SafetyProvider, SafetySnapshot
from .rules import RulesProvider

logger = logging.getLogger(__name__)


class DailyQuota:
    """Counts AI calls per calendar day."""

    def __init__(self, limit: int = config.ANALYSIS_DAILY_LIMIT, today: Callable[[], date] = date.today):
        self.limit = limit
        self._today = today
        self._day: Optional[date] = None
        self._count = 0

    @property
    def used(self) -> int:
        if self._day != self._today():
            return 0
        return self._count

    @property
    def exhausted(self) -> bool:
        return self.used >= self.limit

    def consume(self) -> None:
        today = self._today()
        if self._day != today:
            self._day = today
            self._count = 0
        self._count += 1


class SafetyAnalyzer:
    """
    Runs providers in priority order; the rules engine answers when none does.

    Usage:
        >>> analyzer = SafetyAnalyzer(build_providers())
        >>> result = await analyzer.summarize(SafetySnapshot(beacon_connected=True))
    """

    def __init__(self, providers: List[SafetyProvider], quota: Optional[DailyQuota] = None):
        self.providers = list(providers)
        self.quota = quota or DailyQuota()
        self.fallback = RulesProvider()

    async def summarize(self, snapshot: SafetySnapshot) -> AnalysisResult:
        if self.providers and self.quota.exhausted:
            return AnalysisResult(
                message=f"Daily limit of {self.quota.limit} AI scans reached.",
                recommendation="Try again tomorrow or use the offline check.",
                risk_level=RISK_QUOTA,
                provider="quota",
            )

        for provider in self.providers:
            # SDK clients are blocking
            result = await asyncio.to_thread(provider.summarize, snapshot)
            if result is not None:
                self.quota.consume()
                logger.info("Safety analysis by %s: %s", provider.name, result.risk_level)
                return result
            logger.info("Provider %s gave no result, trying next", provider.name)

        return self.fallback.summarize(snapshot)
