from game.event_bus import ANY, EventBus


def test_emit_reaches_subscribers_in_order():
    bus = EventBus()
    seen = []
    bus.subscribe("ammo_changed", lambda a, m: seen.append(("first", a, m)))
    bus.subscribe("ammo_changed", lambda a, m: seen.append(("second", a, m)))
    bus.emit("ammo_changed", 5, 30)
    assert seen == [("first", 5, 30), ("second", 5, 30)]


def test_failing_subscriber_does_not_stop_others():
    bus = EventBus()
    seen = []

    def boom(*_):
        raise RuntimeError("subscriber bug")

    bus.subscribe("player_hit", boom)
    bus.subscribe("player_hit", lambda lost, by: seen.append(lost))
    bus.emit("player_hit", 1, "p2")
    assert seen == [1]


def test_unsubscribe_and_wildcard():
    bus = EventBus()
    seen = []
    unsubscribe = bus.subscribe("reward_gate", seen.append)
    bus.subscribe(ANY, lambda event, *args: seen.append(event))
    bus.emit("reward_gate", "ammo")
    unsubscribe()
    bus.emit("reward_gate", None)
    assert seen == ["ammo", "reward_gate", "reward_gate"]
