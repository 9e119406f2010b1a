# cricket_live/config.py
from __future__ import annotations

import os
from dotenv import load_dotenv

# Load .env from project root
load_dotenv()


def _get_env(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _get_env_int(name: str, default: int) -> int:
    raw = _get_env(name, str(default))
    try:
        return int(raw)
    except ValueError:
        return default


def _get_env_float(name: str, default: float) -> float:
    raw = _get_env(name, str(default))
    try:
        return float(raw)
    except ValueError:
        return default


# -------------------------
# Match defaults (used when the match config omits them)
# -------------------------
DEFAULT_OVERS: int = _get_env_int("DEFAULT_OVERS", 20)
DEFAULT_PLAYERS_PER_TEAM: int = _get_env_int("DEFAULT_PLAYERS_PER_TEAM", 11)


# -------------------------
# Broadcast / subscriber delivery
# -------------------------
SUBSCRIBER_QUEUE_SIZE: int = _get_env_int("SUBSCRIBER_QUEUE_SIZE", 256)
SUBSCRIBER_SEND_TIMEOUT_SECONDS: float = _get_env_float("SUBSCRIBER_SEND_TIMEOUT_SECONDS", 5.0)

# Retries after the first failed send; the subscription is torn down after that
SUBSCRIBER_SEND_RETRIES: int = _get_env_int("SUBSCRIBER_SEND_RETRIES", 2)

# Envelopes kept per match for viewers that explicitly ask for replay
BROADCAST_HISTORY_LIMIT: int = _get_env_int("BROADCAST_HISTORY_LIMIT", 1000)


# -------------------------
# Commentary
# -------------------------
COMMENTARY_FEED_LIMIT: int = _get_env_int("COMMENTARY_FEED_LIMIT", 50)
DEFAULT_SHOT_ZONE: str = _get_env("DEFAULT_SHOT_ZONE", "off side")


LOG_LEVEL: str = _get_env("LOG_LEVEL", "INFO")


def validate_config() -> None:
    if DEFAULT_OVERS <= 0:
        raise RuntimeError("DEFAULT_OVERS must be positive")

    # Need at least two batsmen at the crease
    if DEFAULT_PLAYERS_PER_TEAM < 2:
        raise RuntimeError("DEFAULT_PLAYERS_PER_TEAM must be at least 2")

    if SUBSCRIBER_QUEUE_SIZE <= 0:
        raise RuntimeError("SUBSCRIBER_QUEUE_SIZE must be positive")

    if SUBSCRIBER_SEND_TIMEOUT_SECONDS <= 0:
        raise RuntimeError("SUBSCRIBER_SEND_TIMEOUT_SECONDS must be positive")

    if SUBSCRIBER_SEND_RETRIES < 0:
        raise RuntimeError("SUBSCRIBER_SEND_RETRIES must not be negative")

    if BROADCAST_HISTORY_LIMIT < 0:
        raise RuntimeError("BROADCAST_HISTORY_LIMIT must not be negative")

    if COMMENTARY_FEED_LIMIT <= 0:
        raise RuntimeError("COMMENTARY_FEED_LIMIT must be positive")

    if not DEFAULT_SHOT_ZONE:
        raise RuntimeError("DEFAULT_SHOT_ZONE must be non-empty")
