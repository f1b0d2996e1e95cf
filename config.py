import logging
import logging.handlers
import os
import shlex
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from dotenv import load_dotenv


def _get_env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip() in {"1", "true", "True", "yes", "YES", "y"}


def _get_env_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return int(val)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


def _get_env_float(name: str, default: float) -> float:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return float(val)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a float") from exc


def _get_env_offsets_ms(name: str, default: Tuple[int, ...]) -> Tuple[float, ...]:
    val = os.getenv(name)
    if val is None or val.strip() == "":
        return tuple(ms / 1000.0 for ms in default)
    try:
        offsets = tuple(int(part) / 1000.0 for part in val.split(",") if part.strip())
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a comma-separated list of milliseconds") from exc
    if not offsets or any(o < 0 for o in offsets):
        raise ValueError(f"Environment variable {name} must list at least one non-negative delay")
    return offsets


@dataclass
class Config:
    store_path: Path
    pid_path: Path
    timezone: Optional[str]
    title: str
    message: str
    sound: int
    sounds_dir: Path
    retry_offsets: Tuple[float, ...]
    handoff_max_age: float
    hidden_tick_seconds: float
    alarm_ring_seconds: float
    alarm_repeats: int
    app_command: List[str]
    debug: bool
    log_level: str
    log_dir: Path


DEFAULT_STATE_DIR = Path.home() / ".timer-handoff"


def default_app_command() -> List[str]:
    return [sys.executable, "-m", "timer_app"]


def load_config(env_path: Optional[Path] = None) -> Config:
    if env_path is None:
        env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    state_dir = Path(os.getenv("TIMER_STATE_DIR", str(DEFAULT_STATE_DIR))).expanduser()
    store_path = Path(os.getenv("TIMER_STORE_PATH", str(state_dir / "defaults.json"))).expanduser()
    pid_path = Path(os.getenv("TIMER_PID_PATH", str(state_dir / "timer.pid"))).expanduser()
    timezone = os.getenv("TIMER_TIMEZONE") or None
    title = os.getenv("TIMER_TITLE", "It's time!")
    message = os.getenv("TIMER_MESSAGE", "Timer finished")
    sound = _get_env_int("TIMER_SOUND", 0)
    if sound not in (-1, 0, 1, 2):
        raise ValueError("Environment variable TIMER_SOUND must be one of -1, 0, 1, 2")
    sounds_dir = Path(os.getenv("SOUNDS_DIR", str(state_dir / "sounds"))).expanduser()
    retry_offsets = _get_env_offsets_ms("HANDOFF_RETRY_OFFSETS_MS", (100, 500, 1000))
    handoff_max_age = _get_env_float("HANDOFF_MAX_AGE_SECONDS", 60.0)
    hidden_tick_seconds = _get_env_float("HIDDEN_TICK_SECONDS", 30.0)
    alarm_ring_seconds = _get_env_float("ALARM_RING_SECONDS", 10.0)
    alarm_repeats = _get_env_int("ALARM_REPEATS", 3)
    app_command_env = os.getenv("TIMER_APP_COMMAND")
    app_command = shlex.split(app_command_env) if app_command_env else default_app_command()
    debug = _get_env_bool("DEBUG", False)
    log_level = os.getenv("LOG_LEVEL", "DEBUG" if debug else "INFO").upper()
    log_dir = Path(os.getenv("LOG_DIR", str(state_dir / "logs"))).expanduser()

    return Config(
        store_path=store_path,
        pid_path=pid_path,
        timezone=timezone,
        title=title,
        message=message,
        sound=sound,
        sounds_dir=sounds_dir,
        retry_offsets=retry_offsets,
        handoff_max_age=handoff_max_age,
        hidden_tick_seconds=hidden_tick_seconds,
        alarm_ring_seconds=alarm_ring_seconds,
        alarm_repeats=alarm_repeats,
        app_command=app_command,
        debug=debug,
        log_level=log_level,
        log_dir=log_dir,
    )


def setup_logging(log_level: str = "INFO", log_dir: Path = Path("logs"), log_name: str = "timer.log", console: bool = True) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)

    log_path = log_dir / log_name
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    handlers: List[logging.Handler] = [file_handler]

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        handlers=handlers,
    )
