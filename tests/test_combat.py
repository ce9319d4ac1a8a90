import random

from game.combat import CombatStateMachine
from game.event_bus import EventBus
from game.messages import KillMessage, MessageType, StatsMessage
from game.models import LocationSample, RewardGate

HERE = LocationSample(48.0, 11.0)


def _machine(scheduler, **kw):
    sent = []
    events = EventBus()
    machine = CombatStateMachine("me", sent.append, scheduler, events, now_fn=lambda: 100.0, **kw)
    return machine, sent, events


def _types(sent):
    return [m.type for m in sent]


def test_shoot_spends_ammo_and_sends(scheduler):
    m, sent, _ = _machine(scheduler)
    shot = m.shoot(HERE, 90.0)
    assert shot is not None
    assert (shot.shooter_id, shot.heading, shot.timestamp) == ("me", 90.0, 100.0)
    assert m.state.ammo == 29
    assert _types(sent) == [MessageType.SHOOT]
    assert sent[0].location == HERE


def test_last_round_gates_on_ammo(scheduler):
    m, sent, events = _machine(scheduler)
    m.state.ammo = 1
    gates = []
    events.subscribe("reward_gate", gates.append)

    assert m.shoot(HERE, 0.0) is None
    assert m.state.ammo == 0
    assert m.state.reward_gate is RewardGate.AMMO
    assert gates == [RewardGate.AMMO]
    assert sent == []

    assert m.shoot(HERE, 0.0) is None
    assert m.state.ammo == 0
    assert m.state.is_alive


def test_cannot_shoot_while_reloading_or_dead(scheduler):
    m, sent, _ = _machine(scheduler)
    m.reload()
    assert not m.can_shoot()
    assert m.shoot(HERE, 0.0) is None

    m2, sent2, _ = _machine(scheduler)
    m2.state.is_alive = False
    assert m2.shoot(HERE, 0.0) is None
    assert sent == [] and sent2 == []


def test_reload_twice_schedules_one_request(scheduler):
    m, sent, _ = _machine(scheduler, reload_time=3.0)
    m.reload()
    m.reload()
    assert m.state.is_reloading
    assert scheduler.pending == 1

    scheduler.advance(2.9)
    assert sent == []
    scheduler.advance(0.1)
    assert _types(sent) == [MessageType.RELOAD]
    # Still reloading until the authority answers.
    assert m.state.is_reloading

    m.apply_stats(StatsMessage(player_id="me", ammo=30))
    assert not m.state.is_reloading
    assert m.state.ammo == 30


def test_stats_before_reload_request_keep_reloading(scheduler):
    m, sent, _ = _machine(scheduler)
    m.reload()
    m.apply_stats(StatsMessage(player_id="me", ammo=5))
    assert m.state.is_reloading
    assert m.state.ammo == 5


def test_ammo_stays_in_bounds_under_random_play(scheduler):
    rng = random.Random(3)
    m, _, _ = _machine(scheduler)
    for _ in range(500):
        roll = rng.random()
        if roll < 0.7:
            m.shoot(HERE, rng.uniform(0, 360))
        elif roll < 0.8:
            m.reload()
        elif roll < 0.85:
            m.close_ad_modal()
        elif roll < 0.9:
            m.apply_stats(StatsMessage(player_id="me", ammo=rng.randint(-5, 50)))
        else:
            scheduler.advance(rng.uniform(0, 4))
        assert 0 <= m.state.ammo <= m.state.max_ammo


def test_lethal_hit_then_decline_respawns_after_delay(scheduler):
    m, sent, events = _machine(scheduler, respawn_time=60.0)
    m.state.lives = 1
    died = []
    events.subscribe("player_died", died.append)

    m.apply_hit(1.0, "p2")
    assert m.state.lives == 0
    assert not m.state.is_alive
    assert m.state.reward_gate is RewardGate.LIVES
    assert died == ["p2"]
    kill = sent[-1]
    assert isinstance(kill, KillMessage)
    assert (kill.player_id, kill.sender_id, kill.hit_player_id) == ("me", "p2", "me")

    m.close_ad_modal()
    assert m.state.reward_gate is None
    scheduler.advance(59.0)
    assert not m.state.is_alive
    scheduler.advance(1.0)
    assert m.state.is_alive
    assert m.state.lives == m.state.max_lives
    assert sent[-1].type is MessageType.RECOVER


def test_hits_on_dead_player_are_ignored(scheduler):
    m, sent, _ = _machine(scheduler)
    m.state.lives = 1
    m.apply_hit(1.0)
    m.apply_hit(5.0, "p3")
    assert m.state.lives == 0
    # Unknown shooter: nobody to credit with the kill.
    assert sent == []


def test_fractional_damage_costs_at_least_one_life(scheduler):
    m, _, _ = _machine(scheduler)
    m.apply_hit(0.2, "p2")
    assert m.state.lives == 9
    m.apply_hit(2.6, "p2")
    assert m.state.lives == 6


def test_reward_on_ammo_gate_requests_reload_at_once(scheduler):
    m, sent, _ = _machine(scheduler)
    m.state.ammo = 1
    m.shoot(HERE, 0.0)
    m.handle_ad_reward()
    assert m.state.reward_gate is None
    assert m.state.is_reloading
    assert _types(sent) == [MessageType.RELOAD]
    assert scheduler.pending == 0


def test_decline_on_ammo_gate_reloads_normally(scheduler):
    m, sent, _ = _machine(scheduler, reload_time=3.0)
    m.state.ammo = 1
    m.shoot(HERE, 0.0)
    m.close_ad_modal()
    assert m.state.reward_gate is None
    assert sent == []
    scheduler.advance(3.0)
    assert _types(sent) == [MessageType.RELOAD]


def test_reward_on_lives_gate_restores_now(scheduler):
    m, sent, events = _machine(scheduler)
    respawned = []
    events.subscribe("player_respawned", lambda: respawned.append(True))
    m.state.lives = 1
    m.apply_hit(3.0, "p2")
    m.handle_ad_reward()
    assert m.state.is_alive
    assert m.state.lives == 10
    assert m.state.reward_gate is None
    assert respawned == [True]
    assert _types(sent) == [MessageType.KILL, MessageType.RECOVER]


def test_reward_without_gate_does_nothing(scheduler):
    m, sent, _ = _machine(scheduler)
    m.handle_ad_reward()
    m.close_ad_modal()
    assert sent == []
    assert scheduler.pending == 0


def test_stats_overwrite_is_idempotent(scheduler):
    m, _, _ = _machine(scheduler)
    stats = StatsMessage(player_id="me", ammo=12, lives=99, hits=4.0, kills=2)
    m.apply_stats(stats)
    first = (m.state.ammo, m.state.lives, m.state.hits, m.state.kills)
    m.apply_stats(stats)
    assert (m.state.ammo, m.state.lives, m.state.hits, m.state.kills) == first == (12, 10, 4.0, 2)


def test_stats_do_not_revive_or_clear_gate(scheduler):
    m, _, _ = _machine(scheduler)
    m.state.lives = 1
    m.apply_hit(1.0, "p2")
    m.apply_stats(StatsMessage(player_id="me", lives=10))
    assert not m.state.is_alive
    assert m.state.reward_gate is RewardGate.LIVES


def test_score_counters(scheduler):
    m, _, events = _machine(scheduler)
    scores = []
    events.subscribe("score_changed", lambda h, k: scores.append((h, k)))
    m.record_hit_confirmed(1.0)
    m.record_kill()
    assert scores == [(1.0, 0), (1.0, 1)]


def test_close_cancels_pending_timers(scheduler):
    m, sent, _ = _machine(scheduler)
    m.reload()
    m.state.lives = 1
    m.apply_hit(1.0)
    m.close_ad_modal()
    assert scheduler.pending == 2
    m.close()
    assert scheduler.pending == 0
    scheduler.advance(120.0)
    assert sent == []


def test_reward_after_manual_reload_is_not_stuck(scheduler):
    m, sent, _ = _machine(scheduler, reload_time=3.0)
    m.state.ammo = 1
    m.shoot(HERE, 0.0)
    m.reload()
    m.handle_ad_reward()
    assert scheduler.pending == 0

    m.apply_stats(StatsMessage(player_id="me", ammo=30))
    assert not m.state.is_reloading
    assert m.can_shoot()
    scheduler.advance(3.0)
    assert _types(sent) == [MessageType.RELOAD]


def test_non_finite_damage_is_ignored(scheduler):
    m, sent, _ = _machine(scheduler)
    m.apply_hit(float("nan"), "p2")
    m.apply_hit(float("inf"), "p2")
    assert m.state.lives == 10
    assert m.state.is_alive
    assert sent == []
