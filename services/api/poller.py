"""
Plantwatch — Poll Loop and Application State

Service contract:
  Timer:   every POLL_INTERVAL_S, one cycle per configured group
  Cycle:   fetch all channels concurrently → derive status → upsert registry
  Guard:   a group whose cycle is still in flight is skipped, never overlapped
  Rename:  out-of-band cycle only if the last one is a full interval old
  Failure: a failed channel leaves its registry entry untouched
"""
import asyncio
from datetime import datetime, timezone
from typing import Optional

import httpx

from config import Settings
from fetcher import build_client, fetch_group, resolve_channels
from log import get_logger
from metrics import (
    poll_cycles, channel_fetches, cycle_latency,
    devices_tracked, devices_powered_off,
)
from models import ChannelResult, CycleSummary, FetchOutcome, GroupSummary
from registry import DeviceRegistry
from renderer import group_title
from status import derive_status

logger = get_logger("plantwatch.poller")


class Dashboard:
    """Process-wide state: one device registry per group plus the poll loop."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.groups: dict[str, list[str]] = {k: list(v) for k, v in settings.CHANNEL_GROUPS.items()}
        self._transport = transport
        self._registries = {group: DeviceRegistry(group) for group in self.groups}
        self._in_flight: set[str] = set()
        self._task: Optional[asyncio.Task] = None
        self._pending: set[asyncio.Task] = set()
        self.last_cycle_at: dict[str, datetime] = {}
        self.cycles_completed = 0
        self.cycles_skipped = 0

    # ─── State access ───────────────────────────────────────

    def is_known(self, group: str) -> bool:
        return group in self.groups

    def registry(self, group: str) -> DeviceRegistry:
        """Registry for a group; unknown groups get an empty, unstored one."""
        return self._registries.get(group) or DeviceRegistry(group)

    def in_flight(self, group: str) -> bool:
        return group in self._in_flight

    def summaries(self) -> list[GroupSummary]:
        return [
            GroupSummary(key=group, title=group_title(group), channels=channels)
            for group, channels in self.groups.items()
        ]

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ─── Poll cycle ─────────────────────────────────────────

    async def poll_group(self, group: str) -> CycleSummary:
        channel_ids = resolve_channels(group, self.groups)
        if not channel_ids:
            logger.debug("poll.no_channels", group=group)
            return CycleSummary(group=group)

        if group in self._in_flight:
            self.cycles_skipped += 1
            poll_cycles.labels(group=group, outcome="skipped_in_flight").inc()
            logger.info("poll.cycle_skipped", group=group, reason="in_flight")
            return CycleSummary(group=group, skipped=True, channels=len(channel_ids))

        self._in_flight.add(group)
        try:
            with cycle_latency.labels(group=group).time():
                async with build_client(self.settings, self._transport) as client:
                    results = await fetch_group(client, group, channel_ids, self.settings)
                summary = self._apply(group, results)
        finally:
            self._in_flight.discard(group)

        self.cycles_completed += 1
        poll_cycles.labels(group=group, outcome="completed").inc()
        logger.info(
            "poll.cycle_completed",
            group=group,
            updated=summary.updated,
            failed=summary.failed,
            empty=summary.empty,
        )
        return summary

    def _apply(self, group: str, results: list[ChannelResult]) -> CycleSummary:
        registry = self._registries[group]
        now = datetime.now(timezone.utc)
        summary = CycleSummary(group=group, channels=len(results))

        for result in results:
            channel_fetches.labels(group=group, outcome=result.outcome.value).inc()

            if result.outcome is FetchOutcome.FAILED:
                registry.record_failure(result.index)
                summary.failed.append(result.index)
                continue
            if result.outcome is FetchOutcome.EMPTY:
                summary.empty.append(result.index)
                continue

            previous = registry.status_for(result.index)
            derivation = derive_status(
                result.sample, previous, self.settings.POWER_OFF_REPEAT_THRESHOLD
            )
            registry.apply(derivation, result.sample, now)
            summary.updated.append(result.index)

            if derivation.powered_off and not (previous and previous.powered_off):
                logger.warning(
                    "device.powered_off",
                    group=group,
                    index=result.index,
                    channel_id=result.channel_id,
                    temperature=derivation.temperature,
                    repeats=derivation.status.repeat_count,
                )

        devices_tracked.labels(group=group).set(len(registry))
        devices_powered_off.labels(group=group).set(registry.powered_off_count())
        self.last_cycle_at[group] = now
        summary.finished_at = now
        return summary

    async def refresh_if_stale(self, group: str) -> Optional[CycleSummary]:
        """
        Out-of-band cycle for the rename form.

        Skipped (returns None) when the group completed a cycle less than one
        poll interval ago, so the shared repeat counters only advance at the
        timer's pace.
        """
        last = self.last_cycle_at.get(group)
        if last is not None:
            age = (datetime.now(timezone.utc) - last).total_seconds()
            if age < self.settings.POLL_INTERVAL_S:
                logger.info("poll.refresh_throttled", group=group, age_s=round(age, 2))
                return None
        return await self.poll_group(group)

    # ─── Timer ──────────────────────────────────────────────

    async def run(self) -> None:
        interval = self.settings.POLL_INTERVAL_S
        logger.info("poller.started", groups=list(self.groups), interval_s=interval)
        while True:
            for group in self.groups:
                self._spawn(group)
            await asyncio.sleep(interval)

    def _spawn(self, group: str) -> None:
        task = asyncio.create_task(self.poll_group(group))
        self._pending.add(task)
        task.add_done_callback(self._on_cycle_done)

    def _on_cycle_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("poll.cycle_crashed", error=f"{type(error).__name__}: {error}")

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        tasks = list(self._pending)
        if self._task is not None:
            tasks.append(self._task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._task = None
        logger.info("poller.stopped")
