"""
Plantwatch — ThingSpeak Sample Fetcher

Service contract:
  Input:  channel group key ("permit")
  Output: one ChannelResult per channel id, in positional index order
  Endpoint: GET /channels/{id}/feeds.json?results=1
  Failure modes:
    - transport error, non-2xx, bad JSON, non-numeric temperature:
      FetchError, logged, that channel is skipped for the cycle
    - empty feeds array: channel skipped for the cycle, not an error
    - malformed entry_id / created_at: dropped to None, sample kept
    - unknown group: zero channels, not an error
"""
import asyncio
import math
from datetime import datetime
from typing import Any, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from config import Settings
from log import get_logger
from models import Sample, ChannelResult, FetchOutcome

logger = get_logger("plantwatch.fetcher")

_ENTRY_ID = TypeAdapter(Optional[int])
_CREATED_AT = TypeAdapter(Optional[datetime])


class FetchError(Exception):
    """A single channel could not be read or decoded."""

    def __init__(self, channel_id: str, reason: str):
        super().__init__(f"channel {channel_id}: {reason}")
        self.channel_id = channel_id
        self.reason = reason


def resolve_channels(group: str, groups: dict[str, list[str]]) -> list[str]:
    """Channel ids for a group; unknown keys resolve to an empty list."""
    return list(groups.get(group, []))


def build_client(settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.THINGSPEAK_BASE_URL,
        timeout=settings.FETCH_TIMEOUT_S,
        transport=transport,
    )


# ─── Feed decoding ──────────────────────────────────────────

def _to_float(raw: Any) -> Optional[float]:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def _movement_code(raw: Any) -> Optional[str]:
    # Non-string codes cannot match "0"/"1"/"2"
    return raw if isinstance(raw, str) else None


def _optional(adapter: TypeAdapter, raw: Any) -> Any:
    """Validate optional feed metadata; anything malformed becomes None."""
    try:
        return adapter.validate_python(raw)
    except ValidationError:
        return None


def parse_feed(payload: Any, channel_id: str, index: int) -> Optional[Sample]:
    """
    Decode a feeds.json payload into a Sample.

    field1 → temperature, field2 → movement code, field3/field4 → x/y.
    Returns None when the channel has no entries yet.
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("feeds"), list):
        raise FetchError(channel_id, "missing feeds array")

    feeds = payload["feeds"]
    if not feeds:
        return None

    # ThingSpeak lists entries oldest first
    entry = feeds[-1]
    if not isinstance(entry, dict):
        raise FetchError(channel_id, "malformed feed entry")

    temperature = _to_float(entry.get("field1"))
    if temperature is None:
        raise FetchError(channel_id, f"non-numeric temperature {entry.get('field1')!r}")

    return Sample(
        index=index,
        channel_id=channel_id,
        temperature=temperature,
        movement_code=_movement_code(entry.get("field2")),
        x=_to_float(entry.get("field3")),
        y=_to_float(entry.get("field4")),
        entry_id=_optional(_ENTRY_ID, entry.get("entry_id")),
        created_at=_optional(_CREATED_AT, entry.get("created_at")),
    )


# ─── Requests ───────────────────────────────────────────────

async def fetch_latest(
    client: httpx.AsyncClient,
    channel_id: str,
    index: int,
    results: int = 1,
    api_key: str = "",
) -> Optional[Sample]:
    """Request the most recent feed entry of one channel."""
    params: dict[str, Any] = {"results": results}
    if api_key:
        params["api_key"] = api_key

    try:
        response = await client.get(f"/channels/{channel_id}/feeds.json", params=params)
        response.raise_for_status()
        payload = response.json()
    except httpx.HTTPStatusError as e:
        raise FetchError(channel_id, f"http {e.response.status_code}") from e
    except httpx.HTTPError as e:
        raise FetchError(channel_id, f"transport {type(e).__name__}: {e}") from e
    except ValueError as e:
        raise FetchError(channel_id, "invalid json") from e

    return parse_feed(payload, channel_id, index)


async def _fetch_one(
    client: httpx.AsyncClient,
    group: str,
    channel_id: str,
    index: int,
    settings: Settings,
) -> ChannelResult:
    try:
        sample = await fetch_latest(
            client, channel_id, index,
            results=settings.FEED_RESULTS,
            api_key=settings.THINGSPEAK_READ_API_KEY,
        )
    except FetchError as e:
        logger.warning("channel.fetch_failed", group=group, channel_id=channel_id, index=index, error=e.reason)
        return ChannelResult(index=index, channel_id=channel_id, outcome=FetchOutcome.FAILED, error=e.reason)

    if sample is None:
        logger.info("channel.feed_empty", group=group, channel_id=channel_id, index=index)
        return ChannelResult(index=index, channel_id=channel_id, outcome=FetchOutcome.EMPTY)

    return ChannelResult(index=index, channel_id=channel_id, outcome=FetchOutcome.OK, sample=sample)


async def fetch_group(
    client: httpx.AsyncClient,
    group: str,
    channel_ids: list[str],
    settings: Settings,
) -> list[ChannelResult]:
    """
    Fetch every channel of a group concurrently.

    A failing channel never aborts the others; results come back in index order.
    """
    return list(await asyncio.gather(*[
        _fetch_one(client, group, channel_id, index, settings)
        for index, channel_id in enumerate(channel_ids)
    ]))
