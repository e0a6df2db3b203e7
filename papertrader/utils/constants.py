"""Shared constants and defaults."""

# Schedule and strategy timeframe intervals, in minutes
INTERVAL_MINUTES: dict[str, int] = {
    "1m": 1,
    "5m": 5,
    "15m": 15,
    "30m": 30,
    "1h": 60,
    "2h": 120,
    "4h": 240,
    "8h": 480,
    "1d": 1440,
    "1w": 10080,
}

VALID_INTERVALS = list(INTERVAL_MINUTES)

INTERVAL_HOURS: dict[str, float] = {k: v / 60 for k, v in INTERVAL_MINUTES.items()}

# Actor recorded on bot-authored trade activity
BOT_ACTOR_TYPE = "bot"
USER_ACTOR_TYPE = "user"
