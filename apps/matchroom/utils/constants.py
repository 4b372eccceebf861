"""
Constants used across the matchmaking system.

Economic values are read from the environment (a .env file is honoured)
and must be positive integers.
"""

import os
from dotenv import load_dotenv

load_dotenv()


def _positive_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value}")
    return value


# Coin economy
CREATE_ROOM_FEE = _positive_int_env("CREATE_ROOM_FEE", 5)
JOIN_ROOM_FEE = _positive_int_env("JOIN_ROOM_FEE", 5)
COINS_PER_RATING = _positive_int_env("COINS_PER_RATING", 1)
MONTHLY_COINS = _positive_int_env("MONTHLY_COINS", 10)
INITIAL_COINS = _positive_int_env("INITIAL_COINS", 20)

# Reserved conversation key / sender id for system messages
SYSTEM_SENDER = "system"

# Room constraints
MIN_ROOM_PLAYERS = 2
MIN_SCORE = 1
MAX_SCORE = 5
