import os
from decimal import Decimal
from typing import Dict


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


TOKEN_SECRET = os.environ.get("TOKEN_SECRET", "dev-secret")
TOKEN_EXPIRE_HOURS = int(os.environ.get("TOKEN_EXPIRE_HOURS", "24"))
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite://")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "USD")
DEFAULT_BALANCE = Decimal(os.environ.get("DEFAULT_BALANCE", "21.295"))
DEFAULT_DIFFICULTY = "EASY"

# "lcg" keeps rounds replayable from their seed, "system" draws from the OS.
RNG_MODE = os.environ.get("ROADGAME_RNG", "lcg")
# What happens to a running round when its player disconnects: "forfeit" | "refund".
ABANDON_POLICY = os.environ.get("ROADGAME_ABANDON_POLICY", "forfeit")

LAST_WIN_INTERVAL = float(os.environ.get("LAST_WIN_INTERVAL", "10"))
ENABLE_DEBUG_ENDPOINTS = _env_bool("ENABLE_DEBUG_ENDPOINTS", True)

GAME_MODE = "chicken-road-two"

CURRENCY_CONFIGS: Dict[str, dict] = {
    "PHP": {
        "betPresets": ["0.5", "1", "2", "7"],
        "minBetAmount": "0.01",
        "maxBetAmount": "200.00",
        "maxWinAmount": "10000.00",
        "defaultBetAmount": "0.60",
    },
    "USD": {
        "betPresets": ["0.1", "0.2", "0.5", "1"],
        "minBetAmount": "0.01",
        "maxBetAmount": "50.00",
        "maxWinAmount": "2500.00",
        "defaultBetAmount": "0.10",
    },
    "EUR": {
        "betPresets": ["0.1", "0.2", "0.5", "1"],
        "minBetAmount": "0.01",
        "maxBetAmount": "50.00",
        "maxWinAmount": "2500.00",
        "defaultBetAmount": "0.10",
    },
}


def currency_config(currency: str | None) -> dict:
    """Bet limits for ``currency``, falling back to the default currency."""
    return CURRENCY_CONFIGS.get(currency or "", CURRENCY_CONFIGS[DEFAULT_CURRENCY])
