from screenpilot.events import EventBus, EventType


def test_events_are_recorded_without_listeners():
    bus = EventBus("agent-1")
    bus.emit(EventType.ITERATION_STARTED, iteration=1)
    events = bus.recent()
    assert len(events) == 1
    assert events[0].agent_id == "agent-1"
    assert events[0].payload == {"iteration": 1}


def test_failing_listener_does_not_stop_delivery():
    bus = EventBus("agent-1")
    received = []

    def broken(event):
        raise RuntimeError("listener bug")

    bus.subscribe(broken)
    bus.subscribe(received.append)
    bus.emit(EventType.ERROR, error="x")
    assert [e.type for e in received] == [EventType.ERROR]


def test_type_filter_and_unsubscribe():
    bus = EventBus("agent-1")
    received = []
    unsubscribe = bus.subscribe(received.append, [EventType.MODE_SWITCHED])

    bus.emit(EventType.ITERATION_STARTED)
    bus.emit(EventType.MODE_SWITCHED, previous="desktop", current="browser")
    assert len(received) == 1

    unsubscribe()
    assert bus.listener_count == 0
    bus.emit(EventType.MODE_SWITCHED)
    assert len(received) == 1


def test_history_is_bounded():
    bus = EventBus("agent-1", history_size=3)
    for i in range(5):
        bus.emit(EventType.ITERATION_STARTED, iteration=i)
    assert [e.payload["iteration"] for e in bus.recent()] == [2, 3, 4]
    assert len(bus.recent(2)) == 2
