"""CLI tool for admin operations.

Usage:
    python -m papertrader.cli run-bot <bot_id>
    python -m papertrader.cli run-all
    python -m papertrader.cli reset-account <board_id> <user_id>
"""

import asyncio
import json
import sys

from papertrader.database import create_db_and_tables
from papertrader.utils.logging import setup_logging


def run_bot(bot_id: int):
    """Run one cycle for a single bot and print the result."""
    from papertrader.engine.bot_job import run_bot_cycle
    from papertrader.services.bots import get_bot

    if get_bot(bot_id) is None:
        print(f"Bot {bot_id} not found.")
        sys.exit(1)
    result = asyncio.run(run_bot_cycle(bot_id))
    print(json.dumps(result.to_dict(), indent=2))
    if result.errors:
        sys.exit(2)


def run_all():
    """Run one cycle for every running bot."""
    from papertrader.engine.bot_job import run_all_active_bots

    results = asyncio.run(run_all_active_bots())
    if not results:
        print("No running bots.")
        return
    print(json.dumps(results, indent=2))


def reset_account(board_id: int, user_id: int):
    from papertrader.services.paper_ledger import reset

    account = reset(board_id, user_id)
    print(f"Account {board_id}/{user_id} reset to ${account.current_balance:.2f}")


def _int_arg(index: int, name: str) -> int:
    try:
        return int(sys.argv[index])
    except (IndexError, ValueError):
        print(f"Missing or invalid {name}.")
        sys.exit(1)


def main():
    if len(sys.argv) < 2:
        print("Usage: python -m papertrader.cli <command>")
        print("Commands: run-bot <bot_id>, run-all, reset-account <board_id> <user_id>")
        sys.exit(1)

    setup_logging()
    create_db_and_tables()

    command = sys.argv[1]
    if command == "run-bot":
        run_bot(_int_arg(2, "bot_id"))
    elif command == "run-all":
        run_all()
    elif command == "reset-account":
        reset_account(_int_arg(2, "board_id"), _int_arg(3, "user_id"))
    else:
        print(f"Unknown command: {command}")
        sys.exit(1)


if __name__ == "__main__":
    main()
