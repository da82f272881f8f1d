"""
Plantwatch — Unit Tests: Fetcher, Status Deriver, Registry, Renderer, Poller

Tests:
1. Feed decoding and channel failures (httpx.MockTransport, no network)
2. Movement classification and powered-off inference
3. Device registry upserts and failure handling
4. View rendering (cards, scatter points, legend, names)
5. Poll cycles: partial failures, unknown groups, overlap guard
"""
import asyncio
import sys
from pathlib import Path

import httpx
import pytest

# Add service paths
sys.path.insert(0, str(Path(__file__).parent.parent / "services" / "api"))


KILNS = ["2573701", "2581068"]


def make_settings(**overrides):
    from config import Settings
    values = {
        "CHANNEL_GROUPS": {"kilns": list(KILNS)},
        "THINGSPEAK_BASE_URL": "https://thingspeak.test",
        "POLL_ENABLED": False,
    }
    values.update(overrides)
    return Settings(**values)


def feed(temperature="15.00", movement="0", x="16.5", y="79.5", entry_id=42):
    return {
        "channel": {"id": 1, "name": "kiln"},
        "feeds": [{
            "created_at": "2024-05-01T10:00:00Z",
            "entry_id": entry_id,
            "field1": temperature,
            "field2": movement,
            "field3": x,
            "field4": y,
        }],
    }


def channel_of(request: httpx.Request) -> str:
    return request.url.path.split("/")[2]


def make_sample(temperature=15.0, movement_code="0", index=0, x=16.5, y=79.5):
    from models import Sample
    return Sample(
        index=index,
        channel_id=KILNS[index % len(KILNS)],
        temperature=temperature,
        movement_code=movement_code,
        x=x,
        y=y,
    )


# ═══════════════════════════════════════════════════════════
# 1. Sample Fetcher Tests
# ═══════════════════════════════════════════════════════════

class TestFetcher:
    """Channel resolution, feed decoding and per-channel failures."""

    def test_resolve_known_group(self):
        from fetcher import resolve_channels
        groups = {"kilns": list(KILNS)}
        assert resolve_channels("kilns", groups) == KILNS

    def test_resolve_unknown_group_is_empty(self):
        from fetcher import resolve_channels
        assert resolve_channels("foo", {"kilns": list(KILNS)}) == []

    def test_parse_feed(self):
        from fetcher import parse_feed
        sample = parse_feed(feed("21.456", "2", "16.25", "80.1"), "2573701", 0)
        assert sample.temperature == pytest.approx(21.456)
        assert sample.movement_code == "2"
        assert sample.x == 16.25
        assert sample.y == 80.1
        assert sample.entry_id == 42
        assert sample.created_at is not None

    def test_parse_feed_uses_newest_entry(self):
        from fetcher import parse_feed
        payload = {"feeds": [feed("10")["feeds"][0], feed("11", entry_id=43)["feeds"][0]]}
        sample = parse_feed(payload, "2573701", 0)
        assert sample.temperature == 11.0
        assert sample.entry_id == 43

    def test_parse_empty_feeds_returns_none(self):
        from fetcher import parse_feed
        assert parse_feed({"channel": {}, "feeds": []}, "2573701", 0) is None

    def test_parse_missing_feeds_raises(self):
        from fetcher import FetchError, parse_feed
        with pytest.raises(FetchError):
            parse_feed({"error": "Not Found"}, "2573701", 0)

    def test_parse_non_numeric_temperature_raises(self):
        from fetcher import FetchError, parse_feed
        with pytest.raises(FetchError) as exc:
            parse_feed(feed(temperature=None), "2573701", 0)
        assert exc.value.channel_id == "2573701"

    def test_parse_malformed_metadata_becomes_none(self):
        from fetcher import parse_feed
        payload = feed(temperature="17.50")
        payload["feeds"][0]["created_at"] = "yesterday-ish"
        payload["feeds"][0]["entry_id"] = "abc"
        sample = parse_feed(payload, "2573701", 0)
        assert sample.temperature == 17.5
        assert sample.entry_id is None
        assert sample.created_at is None

    def test_parse_movement_code_is_kept_verbatim(self):
        from fetcher import parse_feed
        from models import Movement
        from status import derive_status
        padded = parse_feed(feed(movement=" 2 "), "2573701", 0)
        assert padded.movement_code == " 2 "
        assert derive_status(padded, None).movement is Movement.NONE

        numeric = parse_feed(feed(movement=2), "2573701", 0)
        assert numeric.movement_code is None
        assert derive_status(numeric, None).movement is Movement.NONE

    def test_parse_missing_coordinates_become_none(self):
        from fetcher import parse_feed
        sample = parse_feed(feed(x=None, y="abc"), "2573701", 0)
        assert sample.x is None
        assert sample.y is None

    def test_fetch_latest_sends_results_and_key(self):
        from fetcher import fetch_latest
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=feed())

        async def scenario():
            async with httpx.AsyncClient(base_url="https://thingspeak.test",
                                         transport=httpx.MockTransport(handler)) as client:
                return await fetch_latest(client, "2573701", 0, results=1, api_key="READKEY")

        sample = asyncio.run(scenario())
        assert sample.channel_id == "2573701"
        assert seen["path"] == "/channels/2573701/feeds.json"
        assert seen["params"] == {"results": "1", "api_key": "READKEY"}

    @pytest.mark.parametrize("response", [
        httpx.Response(500, text="boom"),
        httpx.Response(200, text="<html>not json</html>"),
    ])
    def test_fetch_latest_http_and_decode_failures(self, response):
        from fetcher import FetchError, fetch_latest

        async def scenario():
            async with httpx.AsyncClient(base_url="https://thingspeak.test",
                                         transport=httpx.MockTransport(lambda r: response)) as client:
                return await fetch_latest(client, "2573701", 0)

        with pytest.raises(FetchError):
            asyncio.run(scenario())

    def test_fetch_latest_transport_failure(self):
        from fetcher import FetchError, fetch_latest

        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        async def scenario():
            async with httpx.AsyncClient(base_url="https://thingspeak.test",
                                         transport=httpx.MockTransport(handler)) as client:
                return await fetch_latest(client, "2573701", 0)

        with pytest.raises(FetchError) as exc:
            asyncio.run(scenario())
        assert "ConnectError" in exc.value.reason

    def test_fetch_group_isolates_failures(self):
        from fetcher import fetch_group
        from models import FetchOutcome

        def handler(request):
            if channel_of(request) == KILNS[0]:
                return httpx.Response(503)
            return httpx.Response(200, json=feed("17.00"))

        async def scenario():
            async with httpx.AsyncClient(base_url="https://thingspeak.test",
                                         transport=httpx.MockTransport(handler)) as client:
                return await fetch_group(client, "kilns", KILNS, make_settings())

        results = asyncio.run(scenario())
        assert [r.index for r in results] == [0, 1]
        assert results[0].outcome is FetchOutcome.FAILED
        assert results[0].error == "http 503"
        assert results[1].outcome is FetchOutcome.OK
        assert results[1].sample.temperature == 17.0


# ═══════════════════════════════════════════════════════════
# 2. Status Deriver Tests
# ═══════════════════════════════════════════════════════════

class TestStatusDeriver:
    """Movement classification and the repeated-temperature heuristic."""

    @pytest.mark.parametrize("code,expected", [
        ("0", "NONE"), ("1", "WARNING"), ("2", "DETECTED"),
        ("9", "NONE"), (None, "NONE"), ("", "NONE"), (" 2 ", "NONE"), (1, "NONE"),
    ])
    def test_classify_movement(self, code, expected):
        from models import Movement
        from status import classify_movement
        assert classify_movement(code) is Movement[expected]

    def test_movement_labels(self):
        from models import Movement
        assert Movement.NONE.label == "No Movement"
        assert Movement.WARNING.label == "Warning"
        assert Movement.DETECTED.label == "Movement Detected"

    def test_normalize_temperature(self):
        from status import normalize_temperature
        assert normalize_temperature(15) == "15.00"
        assert normalize_temperature(15.004) == "15.00"
        assert normalize_temperature(-3.5) == "-3.50"

    def test_first_sighting_is_never_powered_off(self):
        from status import derive_status
        d = derive_status(make_sample(15.0), None)
        assert d.status.last_temperature == "15.00"
        assert d.status.repeat_count == 0
        assert d.powered_off is False

    def test_documented_five_poll_sequence(self):
        from status import derive_status
        expected = [
            ("15.00", 0, False),
            ("15.00", 1, False),
            ("15.00", 2, False),
            ("15.00", 3, True),
            ("16.00", 0, False),
        ]
        previous = None
        for temperature, (last, count, off) in zip([15.0, 15.0, 15.0, 15.0, 16.0], expected):
            d = derive_status(make_sample(temperature), previous)
            assert (d.status.last_temperature, d.status.repeat_count, d.powered_off) == (last, count, off)
            previous = d.status

    def test_stays_powered_off_past_threshold(self):
        from status import derive_status
        previous = None
        for _ in range(7):
            d = derive_status(make_sample(15.0), previous)
            previous = d.status
        assert previous.repeat_count == 6
        assert previous.powered_off is True

    def test_equality_uses_two_decimal_string(self):
        from status import derive_status
        first = derive_status(make_sample(15.001), None)
        second = derive_status(make_sample(14.999), first.status)
        assert second.status.repeat_count == 1

    def test_custom_threshold(self):
        from status import derive_status
        first = derive_status(make_sample(20.0), None, threshold=1)
        second = derive_status(make_sample(20.0), first.status, threshold=1)
        assert second.powered_off is True

    def test_previous_status_is_not_mutated(self):
        from status import DeviceStatus, derive_status
        previous = DeviceStatus(last_temperature="15.00", repeat_count=2)
        derive_status(make_sample(15.0), previous)
        assert previous.repeat_count == 2


# ═══════════════════════════════════════════════════════════
# 3. Device Registry Tests
# ═══════════════════════════════════════════════════════════

class TestRegistry:
    """Upserts keyed by positional index."""

    def test_default_name_from_index(self):
        from registry import default_name
        assert default_name(0) == "Device 1"
        assert default_name(6) == "Device 7"

    def test_apply_creates_then_updates(self):
        from registry import DeviceRegistry
        from status import derive_status
        registry = DeviceRegistry("kilns")
        sample = make_sample(15.0, "1")
        entry = registry.apply(derive_status(sample, None), sample)
        assert len(registry) == 1
        assert entry.default_name == "Device 1"
        assert registry.by_name("Device 1") is entry

        sample = make_sample(15.0, "2", x=17.0)
        registry.apply(derive_status(sample, registry.status_for(0)), sample)
        assert len(registry) == 1
        assert registry.get(0).status.repeat_count == 1
        assert registry.get(0).x == 17.0

    def test_failure_keeps_status(self):
        from registry import DeviceRegistry
        from status import derive_status
        registry = DeviceRegistry("kilns")
        sample = make_sample(15.0)
        registry.apply(derive_status(sample, None), sample)
        before = registry.status_for(0)

        registry.record_failure(0)
        registry.record_failure(0)
        assert registry.status_for(0) == before
        assert registry.get(0).consecutive_failures == 2

    def test_failure_for_unseen_device_creates_nothing(self):
        from registry import DeviceRegistry
        registry = DeviceRegistry("kilns")
        registry.record_failure(3)
        assert len(registry) == 0
        assert registry.status_for(3) is None

    def test_entries_sorted_by_index(self):
        from registry import DeviceRegistry
        from status import derive_status
        registry = DeviceRegistry("kilns")
        for index in (1, 0):
            sample = make_sample(15.0, index=index)
            registry.apply(derive_status(sample, None), sample)
        assert [e.index for e in registry.entries()] == [0, 1]


# ═══════════════════════════════════════════════════════════
# 4. Renderer Tests
# ═══════════════════════════════════════════════════════════

def registry_with(*samples):
    from registry import DeviceRegistry
    from status import derive_status
    registry = DeviceRegistry("kilns")
    for sample in samples:
        registry.apply(derive_status(sample, registry.status_for(sample.index)), sample)
    return registry


class TestRenderer:
    """Cards, points and legend from registry state."""

    def test_group_title(self):
        from renderer import group_title
        assert group_title("kilns") == "Kilns Devices"
        assert group_title("foo") == "Foo Devices"

    def test_collect_names_defaults_blank_entries(self):
        from renderer import collect_names
        assert collect_names(["Furnace", "", "  ", "Mill"]) == ["Furnace", "Device 2", "Device 3", "Mill"]

    def test_card_for_running_device(self):
        from renderer import render_card
        entry = registry_with(make_sample(15.0, "1")).get(0)
        card = render_card(entry, "Furnace")
        assert card.name == "Furnace"
        assert card.light == "orange"
        assert card.temperature_text == "Temperature: 15.00°C"
        assert card.movement_text == "Movement: Warning"
        assert card.powered_off is False

    def test_card_for_powered_off_device(self):
        from renderer import render_card
        entry = registry_with(*[make_sample(15.0, "2")] * 4).get(0)
        card = render_card(entry, "Device 1")
        assert card.powered_off is True
        assert card.temperature_text == "Device Powered Off"
        assert card.movement_text == ""
        assert card.light == "green"

    @pytest.mark.parametrize("code,color", [("0", "red"), ("1", "orange"), ("2", "green"), ("7", "red")])
    def test_light_colors(self, code, color):
        from renderer import render_card
        entry = registry_with(make_sample(15.0, code)).get(0)
        assert render_card(entry, "x").light == color

    def test_plot_points_and_legend(self):
        from renderer import render_plot
        registry = registry_with(make_sample(15.0, "2", index=0), make_sample(16.0, "0", index=1, x=15.5, y=78.5))
        points, legend = render_plot(registry.entries(), ["Furnace"])
        assert [(p.x, p.y, p.isMoving) for p in points] == [(16.5, 79.5, 2), (15.5, 78.5, 0)]
        assert [p.color for p in points] == ["green", "red"]
        assert [p.pointStyle for p in points] == ["circle", "triangle"]
        assert [item.text for item in legend] == ["Furnace", "Device 2"]
        assert [item.datasetIndex for item in legend] == [0, 0]

    def test_point_shape_cycles(self):
        from renderer import point_style, SHAPES
        assert point_style(len(SHAPES)) == SHAPES[0]
        assert point_style(len(SHAPES) + 2) == SHAPES[2]

    def test_device_without_coordinates_has_card_but_no_point(self):
        from renderer import render_view
        registry = registry_with(make_sample(15.0, x=None, y=None))
        view = render_view("kilns", registry, [], make_settings())
        assert len(view.cards) == 1
        assert view.points == []

    def test_render_is_idempotent(self):
        from renderer import render_view
        registry = registry_with(make_sample(15.0), make_sample(16.0, index=1))
        settings = make_settings()
        first = render_view("kilns", registry, ["A"], settings)
        second = render_view("kilns", registry, ["A"], settings)
        assert first == second
        assert first.axes.x_min == 15.0 and first.axes.y_max == 81.0


# ═══════════════════════════════════════════════════════════
# 5. Poller Tests
# ═══════════════════════════════════════════════════════════

class ScriptedThingSpeak:
    """Serves a scripted sequence of temperatures per channel; None means HTTP 500."""

    def __init__(self, script: dict[str, list]):
        self.script = {k: list(v) for k, v in script.items()}
        self.calls: list[str] = []

    def __call__(self, request):
        channel = channel_of(request)
        self.calls.append(channel)
        temperature = self.script[channel].pop(0)
        if temperature is None:
            return httpx.Response(500)
        return httpx.Response(200, json=feed(temperature))


class TestPoller:
    """Poll cycles against a mocked ThingSpeak."""

    def test_cycle_updates_registry(self):
        from poller import Dashboard
        api = ScriptedThingSpeak({KILNS[0]: ["15.00"], KILNS[1]: ["18.25"]})
        dashboard = Dashboard(make_settings(), transport=httpx.MockTransport(api))

        summary = asyncio.run(dashboard.poll_group("kilns"))
        assert summary.updated == [0, 1]
        assert summary.failed == []
        assert sorted(api.calls) == sorted(KILNS)
        assert dashboard.registry("kilns").get(1).temperature == "18.25"
        assert "kilns" in dashboard.last_cycle_at

    def test_powered_off_after_repeated_polls(self):
        from poller import Dashboard
        temps = ["15.00", "15.00", "15.00", "15.00", "16.00"]
        api = ScriptedThingSpeak({KILNS[0]: temps, KILNS[1]: ["20.00"] * 5})
        dashboard = Dashboard(make_settings(), transport=httpx.MockTransport(api))

        observed = []
        for _ in temps:
            asyncio.run(dashboard.poll_group("kilns"))
            status = dashboard.registry("kilns").status_for(0)
            observed.append((status.repeat_count, status.powered_off))
        assert observed == [(0, False), (1, False), (2, False), (3, True), (0, False)]

    def test_failed_fetch_leaves_status_and_other_channels_update(self):
        from poller import Dashboard
        api = ScriptedThingSpeak({
            KILNS[0]: ["15.00", "15.00", None, "15.00"],
            KILNS[1]: ["20.00", "21.00", "22.00", "23.00"],
        })
        dashboard = Dashboard(make_settings(), transport=httpx.MockTransport(api))
        registry = dashboard.registry("kilns")

        asyncio.run(dashboard.poll_group("kilns"))
        asyncio.run(dashboard.poll_group("kilns"))
        before = registry.status_for(0)

        summary = asyncio.run(dashboard.poll_group("kilns"))
        assert summary.failed == [0]
        assert summary.updated == [1]
        assert registry.status_for(0) == before
        assert registry.get(1).temperature == "22.00"

        asyncio.run(dashboard.poll_group("kilns"))
        assert registry.status_for(0).repeat_count == 2
        assert registry.get(0).consecutive_failures == 0

    def test_empty_feed_is_skipped(self):
        from poller import Dashboard

        def handler(request):
            if channel_of(request) == KILNS[0]:
                return httpx.Response(200, json={"channel": {}, "feeds": []})
            return httpx.Response(200, json=feed("19.00"))

        dashboard = Dashboard(make_settings(), transport=httpx.MockTransport(handler))
        summary = asyncio.run(dashboard.poll_group("kilns"))
        assert summary.empty == [0]
        assert summary.updated == [1]
        assert 0 not in dashboard.registry("kilns")

    def test_unknown_group_fetches_nothing(self):
        from poller import Dashboard
        from renderer import render_view

        def handler(request):
            raise AssertionError("no request expected")

        dashboard = Dashboard(make_settings(), transport=httpx.MockTransport(handler))
        summary = asyncio.run(dashboard.poll_group("foo"))
        assert summary.channels == 0
        assert summary.skipped is False

        view = render_view("foo", dashboard.registry("foo"), [], dashboard.settings,
                           known_group=dashboard.is_known("foo"))
        assert view.cards == []
        assert view.known_group is False

    def test_overlapping_cycle_is_skipped(self):
        from poller import Dashboard

        async def scenario():
            release = asyncio.Event()

            async def handler(request):
                await release.wait()
                return httpx.Response(200, json=feed("15.00"))

            dashboard = Dashboard(make_settings(), transport=httpx.MockTransport(handler))
            first = asyncio.create_task(dashboard.poll_group("kilns"))
            await asyncio.sleep(0)
            assert dashboard.in_flight("kilns")

            second = await dashboard.poll_group("kilns")
            release.set()
            completed = await first
            return dashboard, second, completed

        dashboard, second, completed = asyncio.run(scenario())
        assert second.skipped is True
        assert completed.updated == [0, 1]
        assert dashboard.cycles_skipped == 1
        assert dashboard.cycles_completed == 1
        assert not dashboard.in_flight("kilns")

    def test_rename_refresh_throttled_within_interval(self):
        from poller import Dashboard
        api = ScriptedThingSpeak({KILNS[0]: ["15.00"] * 2, KILNS[1]: ["16.00"] * 2})
        dashboard = Dashboard(make_settings(), transport=httpx.MockTransport(api))

        asyncio.run(dashboard.poll_group("kilns"))
        for _ in range(3):
            assert asyncio.run(dashboard.refresh_if_stale("kilns")) is None
        assert len(api.calls) == 2
        assert dashboard.registry("kilns").status_for(0).repeat_count == 0

    def test_rename_refresh_polls_when_stale(self):
        from poller import Dashboard
        api = ScriptedThingSpeak({KILNS[0]: ["15.00"] * 3, KILNS[1]: ["16.00"] * 3})
        dashboard = Dashboard(make_settings(POLL_INTERVAL_S=0), transport=httpx.MockTransport(api))

        first = asyncio.run(dashboard.refresh_if_stale("kilns"))
        second = asyncio.run(dashboard.refresh_if_stale("kilns"))
        assert first.updated == [0, 1]
        assert second.updated == [0, 1]
        assert len(api.calls) == 4

    def test_run_loop_polls_every_group_and_stops(self):
        from poller import Dashboard
        api = ScriptedThingSpeak({KILNS[0]: ["15.00"] * 50, KILNS[1]: ["16.00"] * 50})
        dashboard = Dashboard(make_settings(POLL_INTERVAL_S=0.01), transport=httpx.MockTransport(api))

        async def scenario():
            dashboard.start()
            assert dashboard.running
            await asyncio.sleep(0.05)
            await dashboard.stop()

        asyncio.run(scenario())
        assert not dashboard.running
        assert dashboard.cycles_completed >= 1
        assert len(dashboard.registry("kilns")) == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
