"""Tests for the event bus."""

from rentpilot.events import Event, EventBus, EventType


def test_subscribe_and_publish():
    bus = EventBus()
    received = []

    def handler(event: Event):
        received.append(event)

    bus.subscribe(EventType.PRICE_OVERRIDDEN, handler)
    bus.publish(Event(event_type=EventType.PRICE_OVERRIDDEN, data={"item_id": "abc"}))

    assert len(received) == 1
    assert received[0].data["item_id"] == "abc"


def test_no_cross_event_delivery():
    bus = EventBus()
    received = []

    def handler(event: Event):
        received.append(event)

    bus.subscribe(EventType.PRICE_OVERRIDDEN, handler)
    bus.publish(Event(event_type=EventType.PRICE_OVERRIDE_CLEARED, data={}))

    assert len(received) == 0


def test_multiple_subscribers():
    bus = EventBus()
    calls = {"a": 0, "b": 0}

    def handler_a(event: Event):
        calls["a"] += 1

    def handler_b(event: Event):
        calls["b"] += 1

    bus.subscribe(EventType.RESERVATION_REPRICED, handler_a)
    bus.subscribe(EventType.RESERVATION_REPRICED, handler_b)
    bus.publish(Event(event_type=EventType.RESERVATION_REPRICED, data={"difference": -20.0}))

    assert calls["a"] == 1
    assert calls["b"] == 1


def test_subscriber_error_does_not_stop_others():
    bus = EventBus()
    calls = []

    def bad_handler(event: Event):
        raise ValueError("boom")

    def good_handler(event: Event):
        calls.append(True)

    bus.subscribe(EventType.PRICING_SNAPSHOT_COMPUTED, bad_handler)
    bus.subscribe(EventType.PRICING_SNAPSHOT_COMPUTED, good_handler)
    bus.publish(Event(event_type=EventType.PRICING_SNAPSHOT_COMPUTED, data={}))

    assert len(calls) == 1
