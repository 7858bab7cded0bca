from __future__ import annotations

import logging

from services.events import READING_NEW, TICKET_UPDATE, EventHub


def test_publish_reaches_topic_subscribers_only() -> None:
    hub = EventHub()
    received = []
    hub.subscribe(READING_NEW, lambda topic, message: received.append((topic, message)))

    assert hub.publish(READING_NEW, {"sensor_id": "S-1"}) == 1
    assert hub.publish(TICKET_UPDATE, {"ticket_id": "t-1"}) == 0
    assert received == [(READING_NEW, {"sensor_id": "S-1"})]


def test_subscribe_is_idempotent_and_unsubscribe_detaches() -> None:
    hub = EventHub()
    received = []

    def handler(topic, message) -> None:
        received.append(message)

    hub.subscribe(READING_NEW, handler)
    hub.subscribe(READING_NEW, handler)
    hub.publish(READING_NEW, 1)
    hub.unsubscribe(READING_NEW, handler)
    hub.publish(READING_NEW, 2)

    assert received == [1]


def test_failing_handler_does_not_block_others(caplog) -> None:
    hub = EventHub()
    received = []

    def broken(topic, message) -> None:
        raise RuntimeError("socket closed")

    hub.subscribe(TICKET_UPDATE, broken)
    hub.subscribe(TICKET_UPDATE, lambda topic, message: received.append(message))

    with caplog.at_level(logging.ERROR, logger="services.events"):
        delivered = hub.publish(TICKET_UPDATE, "t-1")

    assert delivered == 1
    assert received == ["t-1"]
    assert "Event handler failed" in [record.getMessage() for record in caplog.records]
