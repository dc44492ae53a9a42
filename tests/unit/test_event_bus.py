"""EventBus subscription semantics."""

from __future__ import annotations

import logging

import pytest

from docstore.event_bus import EventBus


@pytest.mark.unit
@pytest.mark.asyncio
async def test_publish_delivers_to_sync_and_async_listeners() -> None:
    bus = EventBus()
    received = []

    async def async_listener(event):
        received.append(("async", event))

    bus.on("ping", lambda event: received.append(("sync", event)))
    bus.on("ping", async_listener)

    assert await bus.publish("ping", 1) == 2
    assert received == [("sync", 1), ("async", 1)]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_publish_without_listeners_returns_zero() -> None:
    assert await EventBus().publish("nothing", object()) == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_once_listener_fires_a_single_time() -> None:
    bus = EventBus()
    received = []
    bus.once("ping", received.append)

    await bus.publish("ping", 1)
    await bus.publish("ping", 2)

    assert received == [1]
    assert bus.listener_count("ping") == 0


@pytest.mark.unit
def test_off_reports_unknown_handler() -> None:
    bus = EventBus()

    assert bus.off("ping", print) is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failing_listener_is_logged_and_others_still_run(caplog) -> None:
    logger = logging.getLogger("tests.event_bus")
    bus = EventBus(logger=logger)
    received = []

    def broken(event):
        raise RuntimeError("bad listener")

    bus.on("ping", broken)
    bus.on("ping", received.append)

    with caplog.at_level(logging.ERROR, logger="tests.event_bus"):
        delivered = await bus.publish("ping", "payload")

    assert delivered == 1
    assert received == ["payload"]
    assert caplog.records[0].name == "tests.event_bus"
    assert caplog.records[0].exc_info is not None
