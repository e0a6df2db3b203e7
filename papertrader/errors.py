"""Named error conditions raised by the ledgers and the strategy registry."""


class EngineError(Exception):
    """Base class for precondition violations surfaced to the immediate caller."""

    code = "ENGINE_ERROR"

    def __init__(self, message: str | None = None):
        self.message = message or self.code
        super().__init__(self.message)


class EntryPriceRequired(EngineError):
    code = "ENTRY_PRICE_REQUIRED"


class ExitPriceRequired(EngineError):
    code = "EXIT_PRICE_REQUIRED"


class PauseReasonRequired(EngineError):
    code = "PAUSE_REASON_REQUIRED"


class StrategyNotFound(EngineError):
    code = "STRATEGY_NOT_FOUND"


class InsufficientPaperBalance(EngineError):
    code = "INSUFFICIENT_PAPER_BALANCE"

    def __init__(self, balance: float, delta: float):
        self.balance = balance
        self.delta = delta
        super().__init__(f"Balance {balance:.2f} cannot absorb adjustment {delta:.2f}")


class InvalidTradeTransition(EngineError):
    code = "INVALID_TRADE_TRANSITION"


class BotNotFound(EngineError):
    code = "BOT_NOT_FOUND"


class MarketDataError(Exception):
    """Every configured venue failed for one request."""

    def __init__(self, target: str, errors: list[Exception]):
        self.target = target
        self.errors = errors
        detail = "; ".join(f"{type(e).__name__}: {e}" for e in errors) or "no venues configured"
        super().__init__(f"Market data unavailable for {target}: {detail}")
