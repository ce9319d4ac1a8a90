# client.py
import sys, asyncio, os, signal, argparse, logging, threading
from dataclasses import replace

from engine import config
from engine.config import ConfigError, Tuning
from game.geometry import wrap_degrees
from game.models import LocationSample
from game.session import GameSession

URL_ENV = "GEOSTRIKE_WS_URL"

HELP = """commands:
  loc LAT LON [ALT]   set device position
  heading DEG         set compass heading
  shoot | reload
  reward | decline    answer the reward prompt
  drone ID | geo ID   shoot a drone / geo object
  token TOKEN         update push token
  reconnect | quit"""


def build_tuning(args) -> Tuning:
    cfg = config.load(args.config)
    tuning = Tuning.from_config(cfg)
    url = args.url or os.environ.get(URL_ENV)
    if url:
        tuning = replace(tuning, url=url)
    return tuning


def attach_printers(session: GameSession):
    ev = session.events
    ev.subscribe("ammo_changed", lambda ammo, mx: print(f"[ammo] {ammo}/{mx}"))
    ev.subscribe("lives_changed", lambda lives, mx: print(f"[lives] {lives}/{mx}"))
    ev.subscribe("score_changed", lambda hits, kills: print(f"[score] hits={hits:g} kills={kills}"))
    ev.subscribe("player_hit", lambda lost, by: print(f"[hit] -{lost} from {by or '?'}"))
    ev.subscribe("player_died", lambda by: print(f"[dead] killed by {by or '?'}"))
    ev.subscribe("player_respawned", lambda: print("[respawn] back in the game"))
    ev.subscribe("reload_started", lambda secs: print(f"[reload] started ({secs:.1f}s)"))
    ev.subscribe("reload_finished", lambda: print("[reload] done"))
    ev.subscribe("respawn_scheduled", lambda secs: print(f"[respawn] in {secs:.0f}s"))
    ev.subscribe("reward_gate",
                 lambda gate: print(f"[reward] out of {gate.value}: 'reward' or 'decline'") if gate else None)
    ev.subscribe("shot_missed", lambda target, dev: print(f"[shot] {target} reports a miss ({dev:.1f} m off)"))
    ev.subscribe("drones_changed", lambda drones: print(f"[drones] {[d.drone_id for d in drones]}"))
    ev.subscribe("geo_objects_changed", lambda objs: print(f"[geo] {[o.id for o in objs]}"))
    ev.subscribe("drone_reward", lambda did, reward: print(f"[drone] {did} down, +{reward}"))
    ev.subscribe("drone_shot_rejected", lambda did: print(f"[drone] shot at {did} rejected"))
    ev.subscribe("geo_object_shot_confirmed", lambda oid, reward: print(f"[geo] {oid} hit, reward={reward}"))
    ev.subscribe("geo_object_shot_rejected", lambda oid: print(f"[geo] shot at {oid} rejected"))
    ev.subscribe("connection_state", lambda state: print(f"[net] {state.value}"))


def run_command(session: GameSession, line: str) -> bool:
    """Apply one stdin command. Returns False on quit."""
    parts = line.split()
    if not parts:
        return True
    cmd, rest = parts[0].lower(), parts[1:]
    try:
        if cmd == "quit":
            return False
        elif cmd == "loc" and len(rest) in (2, 3):
            lat, lon = float(rest[0]), float(rest[1])
            alt = float(rest[2]) if len(rest) == 3 else 0.0
            session.location.update_location(LocationSample(lat, lon, alt))
        elif cmd == "heading" and len(rest) == 1:
            session.location.update_heading(wrap_degrees(float(rest[0])))
        elif cmd == "shoot":
            if session.shoot() is None:
                print("[shot] not fired")
        elif cmd == "reload":
            session.reload()
        elif cmd == "reward":
            session.handle_ad_reward()
        elif cmd == "decline":
            session.close_ad_modal()
        elif cmd == "drone" and len(rest) == 1:
            session.router.shoot_drone(rest[0])
        elif cmd == "geo" and len(rest) == 1:
            session.router.shoot_geo_object(rest[0])
        elif cmd == "token" and len(rest) == 1:
            session.router.update_push_token(rest[0])
        elif cmd == "reconnect":
            session.connection.reconnect()
        else:
            print(HELP)
    except ValueError as exc:
        print(f"[input] {exc}")
    return True


async def main_async(args):
    tuning = build_tuning(args)
    session = GameSession(args.player_id, tuning, push_token=args.push_token)
    attach_printers(session)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass  # e.g., Windows

    def on_line(line):
        if not line or not run_command(session, line):
            stop.set()

    def read_stdin():
        # Daemon thread: a blocked readline must not keep the process alive.
        for line in sys.stdin:
            loop.call_soon_threadsafe(on_line, line)
        loop.call_soon_threadsafe(on_line, "")

    print(f"[client] {args.player_id} -> {tuning.url}")
    session.start()
    threading.Thread(target=read_stdin, name="stdin", daemon=True).start()
    try:
        await stop.wait()
    finally:
        await session.close()


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--player-id", required=True)
    ap.add_argument("--url", default=None, help=f"WebSocket URL; falls back to ${URL_ENV}, then the config")
    ap.add_argument("--config", default=str(config.DEFAULT_CONFIG_PATH))
    ap.add_argument("--push-token", default=None)
    ap.add_argument("--log-level", default=None, help="overrides logging.level from the config")
    args = ap.parse_args()

    try:
        level = args.log_level or config.get("logging.level", "INFO", config.load(args.config))
    except ConfigError as exc:
        print(f"[config] {exc}")
        sys.exit(2)
    logging.basicConfig(level=str(level).upper(), format="[%(name)s] %(message)s")

    try:
        asyncio.run(main_async(args))
    except KeyboardInterrupt:
        pass

if __name__ == "__main__":
    main()
