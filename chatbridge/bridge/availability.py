"""Escalation eligibility checks (working hours and free agents)."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from chatbridge.channels.api_client import ChatApiClient
from chatbridge.core.config.models import BridgeConfig

logger = logging.getLogger(__name__)

REASON_OUT_OF_HOURS = "out-of-hours"
REASON_NO_AGENTS = "no-agents"


@dataclass
class AvailabilityResult:
    """Outcome of an availability check."""

    agents_available: bool
    reason: str | None = None


class _Unavailable(Exception):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class AvailabilityProbe:
    """Answers whether a conversation can be escalated right now.

    ``check`` never raises: every failure becomes an unavailable result
    carrying a reason.
    """

    def __init__(
        self,
        config: BridgeConfig,
        api: ChatApiClient,
        clock: Callable[[], datetime] | None = None,
    ):
        self.config = config
        self.api = api
        self._clock = clock or (lambda: datetime.now(UTC))

    async def check(self) -> AvailabilityResult:
        """Check working hours, then whether the room has a free agent."""
        try:
            self._check_working_time()
            await self._check_available_agents()
        except _Unavailable as e:
            return AvailabilityResult(agents_available=False, reason=e.reason)
        except Exception as e:
            logger.warning(f"Availability check failed: {e}")
            return AvailabilityResult(agents_available=False, reason=REASON_NO_AGENTS)
        return AvailabilityResult(agents_available=True)

    def _check_working_time(self) -> None:
        hours = self.config.working_hours
        if hours is not None and not hours.is_open(self._clock()):
            raise _Unavailable(REASON_OUT_OF_HOURS)

    async def _check_available_agents(self) -> None:
        room_id = self.config.room()
        lang = self.config.lang()

        params: dict[str, Any] = {"roomIds": room_id}
        if lang:
            params["langs"] = lang

        res = await self.api.request("/agents/available", "GET", params)
        agents = res.get("agents") or {}
        free = agents.get(room_id, agents.get(str(room_id), 0)) if isinstance(agents, dict) else 0
        try:
            free = int(free or 0)
        except (TypeError, ValueError):
            logger.warning(f"Unexpected free agent count for room {room_id}: {free!r}")
            free = 0
        if free < 1:
            raise _Unavailable(REASON_NO_AGENTS)
