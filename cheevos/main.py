"""
Cheevos Sync - achievement tracking for an embedded emulator.

Commands:
    login USER          Log in and store the session token
    logout              Forget the stored session
    hash PATH           Print the identity hash of an executable/ROM
    status              Show stored session and achievement options
    run ROM             Play a GBA ROM headless with achievements tracked

Usage:
    python -m cheevos.main [--settings FILE] [--verbose] <command> ...
"""

import argparse
import getpass
import importlib
import logging
import sys
import time
from pathlib import Path

from cheevos.config import (
    KEY_LOGIN_TIMESTAMP, KEY_USERNAME, MAX_HASH_SIZE, SETTINGS_SECTION, AchievementsConfig,
)
from cheevos.exceptions import CheevosError
from cheevos.identity import FileByteReader, compute_game_hash
from cheevos.net.transport import UrllibTransport
from cheevos.notify.notifier import FanoutNotifier, LoggingNotifier
from cheevos.settings import SettingsStore
from cheevos.tracking.engine import Achievements

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = Path("cheevos_settings.json")
DEFAULT_RUNTIME = "cheevos.runtime.mock_runtime:MockRuntime"
FRAME_TIME = 1.0 / 60


def load_runtime_factory(target: str):
    """Resolve a "module:attribute" runtime factory."""
    module_name, _, attr = target.partition(":")
    if not attr:
        raise CheevosError(f"Runtime must look like 'module:Factory', got '{target}'")
    module = importlib.import_module(module_name)
    return getattr(module, attr)


def build_config(args, settings: SettingsStore) -> AchievementsConfig:
    config = AchievementsConfig.from_settings(settings, enabled=True)
    if args.test_mode:
        config.test_mode = True
    if args.hardcore:
        config.challenge_mode = True
    if args.unofficial:
        config.unofficial_test_mode = True
    if args.no_rich_presence:
        config.rich_presence = False
    return config


# =============================================================================
# Commands
# =============================================================================

def cmd_login(args, settings: SettingsStore) -> int:
    password = args.password or getpass.getpass(f"Password for {args.username}: ")
    config = AchievementsConfig.from_settings(settings)
    engine = Achievements(config, load_runtime_factory(DEFAULT_RUNTIME), None, UrllibTransport(config.request_timeout),
                          settings=settings)
    if engine.login(args.username, password):
        print(f"Logged in as {settings.get_string(SETTINGS_SECTION, KEY_USERNAME)}")
        return 0
    print("Login failed")
    return 1


def cmd_logout(args, settings: SettingsStore) -> int:
    config = AchievementsConfig.from_settings(settings)
    engine = Achievements(config, load_runtime_factory(DEFAULT_RUNTIME), None, UrllibTransport(config.request_timeout),
                          settings=settings)
    engine.logout()
    print("Logged out")
    return 0


def cmd_hash(args, settings: SettingsStore) -> int:
    print(compute_game_hash(args.path, FileByteReader(), MAX_HASH_SIZE))
    return 0


def cmd_status(args, settings: SettingsStore) -> int:
    config = AchievementsConfig.from_settings(settings)
    username = settings.get_string(SETTINGS_SECTION, KEY_USERNAME)
    timestamp = settings.get_string(SETTINGS_SECTION, KEY_LOGIN_TIMESTAMP)

    print("=" * 50)
    print("Achievements Status")
    print("=" * 50)
    if username:
        when = time.strftime("%Y-%m-%d %H:%M", time.localtime(int(timestamp))) if timestamp.isdigit() else "?"
        print(f"User:            {username} (since {when})")
    else:
        print("User:            not logged in")
    print(f"Enabled:         {config.enabled}")
    print(f"Hardcore:        {config.challenge_mode}")
    print(f"Test mode:       {config.test_mode}")
    print(f"Unofficial:      {config.unofficial_test_mode}")
    print(f"Rich presence:   {config.rich_presence}")
    print(f"Server:          {config.server_url}")
    print(f"Cache:           {config.cache_dir}")
    return 0


def cmd_run(args, settings: SettingsStore) -> int:
    # Only this command needs the mGBA bindings
    from cheevos.emulator.mgba_host import MgbaMemory, MgbaSession, RomFileReader

    config = build_config(args, settings)
    memory = MgbaMemory()
    reader = RomFileReader(args.rom)

    sinks = [LoggingNotifier()]
    overlay = None
    if args.obs_scene:
        from cheevos.notify.obs_overlay import ObsOverlayNotifier
        overlay = ObsOverlayNotifier(args.obs_scene, host=args.obs_host, port=args.obs_port,
                                     password=args.obs_password)
        sinks.append(overlay)

    engine = Achievements(
        config, load_runtime_factory(args.runtime), memory, UrllibTransport(config.request_timeout),
        reader=reader, settings=settings, notifier=FanoutNotifier(*sinks),
    )
    if not engine.initialize():
        return 1

    session = MgbaSession(args.rom, engine, memory, reader)
    if not session.connect():
        engine.shutdown()
        return 1

    if args.load_slot:
        session.load_state(args.load_slot)

    logger.info("=" * 50)
    logger.info(f"Running {args.rom} ({args.frames or 'unlimited'} frames)")
    logger.info("=" * 50)

    try:
        while not args.frames or session.frame_count < args.frames:
            started = time.monotonic()
            session.run_frames(1)
            if args.realtime:
                time.sleep(max(0.0, FRAME_TIME - (time.monotonic() - started)))
    except KeyboardInterrupt:
        logger.info("Stopping (Ctrl+C)...")
    finally:
        if args.save_slot:
            session.save_state(args.save_slot)
        logger.info(
            f"Unlocked {engine.unlocked_achievement_count}/{engine.achievement_count} achievements, "
            f"{engine.current_points}/{engine.maximum_points} points"
        )
        session.close()
        engine.shutdown()
        if overlay is not None:
            overlay.close()
    return 0


# =============================================================================
# Entry Point
# =============================================================================

def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Cheevos Sync - emulator achievement tracking")
    parser.add_argument("--settings", type=Path, default=DEFAULT_SETTINGS_PATH,
                        help="Settings file (default: %(default)s)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    login = subparsers.add_parser("login", help="Log in and store the session token")
    login.add_argument("username")
    login.add_argument("--password", help="Prompted for when omitted")
    login.set_defaults(func=cmd_login)

    logout = subparsers.add_parser("logout", help="Forget the stored session")
    logout.set_defaults(func=cmd_logout)

    hash_cmd = subparsers.add_parser("hash", help="Print the identity hash of an executable")
    hash_cmd.add_argument("path")
    hash_cmd.set_defaults(func=cmd_hash)

    status = subparsers.add_parser("status", help="Show session and options")
    status.set_defaults(func=cmd_status)

    run = subparsers.add_parser("run", help="Play a GBA ROM with achievements tracked")
    run.add_argument("rom")
    run.add_argument("--frames", type=int, default=0, help="Stop after N frames (0 = until Ctrl+C)")
    run.add_argument("--realtime", action="store_true", help="Throttle to 60 frames per second")
    run.add_argument("--runtime", default=DEFAULT_RUNTIME, help="Evaluation runtime as module:Factory")
    run.add_argument("--load-slot", type=int, default=0)
    run.add_argument("--save-slot", type=int, default=0)
    run.add_argument("--test-mode", action="store_true")
    run.add_argument("--hardcore", action="store_true")
    run.add_argument("--unofficial", action="store_true")
    run.add_argument("--no-rich-presence", action="store_true")
    run.add_argument("--obs-scene", help="Show popups in this OBS scene")
    run.add_argument("--obs-host", default="127.0.0.1")
    run.add_argument("--obs-port", type=int, default=4455)
    run.add_argument("--obs-password", default="")
    run.set_defaults(func=cmd_run)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S'
    )

    settings = SettingsStore(args.settings)
    try:
        return args.func(args, settings)
    except CheevosError as e:
        logger.error(f"{e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
