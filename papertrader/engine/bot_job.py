"""Bot cycle: exits, entries and rebalancing for one bot.

Each bot has its own asyncio lock. A cycle that finds the lock held is
skipped and logged, never queued.
"""

import asyncio
import logging
import math
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from papertrader.config import settings
from papertrader.errors import InsufficientPaperBalance, StrategyNotFound
from papertrader.models.bot import TradingBot
from papertrader.models.trade import Lane, Trade, TradeStatus
from papertrader.services import bots, coin_scanner, paper_ledger, rebalancer, trade_ledger
from papertrader.services.market_data import MarketDataGateway, get_gateway
from papertrader.strategies.base import PositionState, Strategy, StrategyConfig
from papertrader.strategies.registry import get_strategy
from papertrader.utils.constants import BOT_ACTOR_TYPE
from papertrader.utils.pairs import normalize_pair, optional_float, to_float

logger = logging.getLogger(__name__)

# Per-bot locks to prevent overlapping cycles
_bot_locks: dict[int, asyncio.Lock] = {}
_bot_locks_guard = asyncio.Lock()

REBALANCE_BUY_CONFIDENCE = 55


async def _get_bot_lock(bot_id: int) -> asyncio.Lock:
    async with _bot_locks_guard:
        if bot_id not in _bot_locks:
            _bot_locks[bot_id] = asyncio.Lock()
        return _bot_locks[bot_id]


@dataclass
class CycleResult:
    bot_id: int
    actions: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class EntryCandidate:
    pair: str
    confidence: int
    reason: str
    direction: str = "long"
    position_size: float | None = None


@dataclass
class BotContext:
    """Everything one cycle works against. Balance and trades are re-read between steps."""
    bot: TradingBot
    strategy: Strategy
    config: StrategyConfig
    gateway: MarketDataGateway
    result: CycleResult
    balance: float = 0.0
    active_trades: list[Trade] = field(default_factory=list)

    @property
    def tag(self) -> str:
        return f"[bot_{self.bot.id}]"

    def refresh_balance(self) -> float:
        account = paper_ledger.get_or_create(self.bot.board_id, self.bot.user_id)
        self.balance = to_float(account.current_balance)
        return self.balance

    def refresh(self) -> None:
        self.refresh_balance()
        self.active_trades = trade_ledger.get_active_trades_for_bot(self.bot.id)

    def fail(self, action: str, message: str, **details) -> None:
        logger.warning(f"{self.tag} {action}: {message}")
        self.result.errors.append(message)
        bots.log_bot_execution(self.bot.id, action, {"message": message, **details})


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

async def run_bot_cycle(bot_id: int, gateway: MarketDataGateway | None = None) -> CycleResult:
    """Run one cycle for a bot. Never raises; failures land in result.errors."""
    lock = await _get_bot_lock(bot_id)
    if lock.locked():
        logger.warning(f"[bot_{bot_id}] Previous cycle still running, skipping")
        _safe_log(bot_id, "cycle_skipped_overlap", {"message": "Skipped: previous cycle still running"})
        return CycleResult(bot_id, skipped=True)

    async with lock:
        result = CycleResult(bot_id)
        try:
            await asyncio.wait_for(
                _run_bot_cycle_once(bot_id, gateway or get_gateway(), result),
                timeout=settings.cycle_timeout_seconds,
            )
        except asyncio.TimeoutError:
            message = f"Cycle timed out after {settings.cycle_timeout_seconds:.0f}s"
            logger.error(f"[bot_{bot_id}] {message}")
            result.errors.append(message)
            _safe_log(bot_id, "error", {"message": message, "actions": result.actions})
        except Exception as e:
            logger.exception(f"[bot_{bot_id}] Cycle failed: {e}")
            result.errors.append(str(e))
            _safe_log(bot_id, "error", {"message": str(e), "actions": result.actions})

        try:
            if bots.get_bot(bot_id) is not None:
                _refresh_performance(bot_id, result)
        except Exception as e:
            logger.error(f"[bot_{bot_id}] Performance refresh failed: {e}")
        return result


async def run_all_active_bots(gateway: MarketDataGateway | None = None) -> list[dict[str, Any]]:
    """Cycle every running bot, at most max_concurrent_bots at a time.

    One bot's failure never stops the others.
    """
    running = bots.list_bots(status="running")
    if not running:
        return []
    semaphore = asyncio.Semaphore(max(1, settings.max_concurrent_bots))

    async def _one(bot_id: int) -> dict[str, Any]:
        async with semaphore:
            try:
                result = await run_bot_cycle(bot_id, gateway)
            except Exception as e:
                logger.error(f"[bot_{bot_id}] Unhandled cycle error: {e}")
                return {"bot_id": bot_id, "actions": [], "errors": [str(e)]}
            return {"bot_id": bot_id, "actions": result.actions, "errors": result.errors}

    results = await asyncio.gather(*(_one(b.id) for b in running))
    logger.info(f"Ran {len(results)} bot cycle(s)")
    return list(results)


def _safe_log(bot_id: int, action: str, details: dict[str, Any]) -> None:
    try:
        bots.log_bot_execution(bot_id, action, details)
    except Exception as e:
        logger.error(f"[bot_{bot_id}] Could not write execution log: {e}")


# ---------------------------------------------------------------------------
# Cycle
# ---------------------------------------------------------------------------

async def _run_bot_cycle_once(bot_id: int, gateway: MarketDataGateway, result: CycleResult):
    bot = bots.get_bot(bot_id)
    if bot is None:
        result.errors.append(f"Bot {bot_id} not found")
        return

    strategy = get_strategy(bot.strategy_style, bot.strategy_substyle)
    if strategy is None:
        message = f"{StrategyNotFound.code}: Strategy not found: {bot.strategy_style}:{bot.strategy_substyle}"
        result.errors.append(message)
        _safe_log(bot_id, "error", {"code": StrategyNotFound.code, "message": message})
        return

    ctx = BotContext(
        bot=bot,
        strategy=strategy,
        config=strategy.resolve_config(bot.strategy_config),
        gateway=gateway,
        result=result,
    )
    ctx.refresh()
    logger.info(
        f"{ctx.tag} Cycle start: {strategy.key}, balance=${ctx.balance:.2f}, "
        f"open={len(ctx.active_trades)}"
    )

    # 1. Exits
    await check_exits(ctx)
    ctx.refresh()

    # 2. Entries
    candidates = await scan_for_entries(ctx)
    for candidate in candidates:
        if ctx.balance <= 0:
            break
        try:
            trade = await execute_entry(ctx, candidate)
        except Exception as e:
            ctx.fail("entry_error", f"Entry {candidate.pair} failed: {e}", pair=candidate.pair)
            continue
        if trade is not None:
            result.actions.append(f"entry:{trade.coin_pair}")
        ctx.refresh_balance()

    # 3. Rebalance
    if bot.rebalancer_enabled:
        ctx.refresh()
        outcome = await check_rebalance(ctx)
        if outcome.get("action") == "rebalance":
            result.actions.append("rebalance")

    bots.log_bot_execution(bot.id, "cycle", {
        "actions": result.actions,
        "errors": result.errors,
        "balance": ctx.balance,
    })
    logger.info(f"{ctx.tag} Cycle done: {len(result.actions)} action(s), {len(result.errors)} error(s)")


# ---------------------------------------------------------------------------
# Exits
# ---------------------------------------------------------------------------

async def check_exits(ctx: BotContext) -> None:
    """Ask the strategy about every open trade; close the ones it wants out of."""
    for trade in list(ctx.active_trades):
        try:
            quote = await ctx.gateway.get_current_price(trade.coin_pair)
            if not math.isfinite(quote.price) or quote.price <= 0:
                ctx.fail(
                    "exit_skipped", f"Exit check for trade {trade.id} skipped: no usable price",
                    trade_id=trade.id,
                )
                continue
            position = PositionState(
                pair=normalize_pair(trade.coin_pair),
                entry_price=optional_float(trade.entry_price),
                market=coin_scanner.snapshot_from_price(quote),
                direction=trade.direction or "long",
                position_size=optional_float(trade.position_size),
                trade_id=trade.id,
            )
            decision = ctx.strategy.should_exit(position, quote.price, ctx.config)
            if not decision.should_exit:
                continue
            closed = execute_exit(ctx, trade, quote.price, decision.reason)
            if closed is not None:
                ctx.result.actions.append(f"exit:{closed.coin_pair}")
        except Exception as e:
            ctx.fail("exit_error", f"Exit check for trade {trade.id} failed: {e}", trade_id=trade.id)


def execute_exit(ctx: BotContext, trade: Trade, price: float, reason: str) -> Trade | None:
    closed = trade_ledger.exit_trade(
        trade.id, price, lesson_tag=reason,
        actor_type=BOT_ACTOR_TYPE, actor_name=ctx.bot.name,
    )
    if closed is None:
        return None
    bots.log_bot_execution(ctx.bot.id, "trade_exit", {
        "trade_id": closed.id,
        "pair": closed.coin_pair,
        "price": price,
        "reason": reason,
        "pnl_dollar": closed.pnl_dollar,
        "pnl_percent": closed.pnl_percent,
    })
    logger.info(
        f"{ctx.tag} Exit {closed.coin_pair} @ {price} ({reason}), "
        f"pnl={to_float(closed.pnl_percent):.2f}%"
    )
    return closed


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------

def _valid_size(size: float, balance: float) -> bool:
    return math.isfinite(size) and 0 < size <= balance


async def scan_for_entries(ctx: BotContext) -> list[EntryCandidate]:
    """Buy candidates for free slots, best confidence first.

    Pairs the bot already holds are never proposed again, and each pair
    appears at most once.
    """
    max_positions = int(ctx.config.max_positions)
    slots = max_positions - len(ctx.active_trades)
    if slots <= 0:
        return []

    size = ctx.balance * ctx.config.position_size_percent / 100
    if not _valid_size(size, ctx.balance):
        logger.info(f"{ctx.tag} No entries: position size ${size:.2f} vs balance ${ctx.balance:.2f}")
        return []

    watchlist = ctx.config.get("watchlist") or coin_scanner.DEFAULT_WATCHLIST
    coins = await coin_scanner.scan_coins(watchlist, gateway=ctx.gateway)
    if not coins:
        top = await ctx.gateway.get_top_coins(max(1, max_positions * 3))
        coins = [coin_scanner.CoinData.from_price(s) for s in top]

    snapshots = {s.pair: s for s in coin_scanner.build_market_snapshots(coins)}
    held = {normalize_pair(t.coin_pair) for t in ctx.active_trades}

    candidates: list[EntryCandidate] = []
    for signal in ctx.strategy.generate_signals(list(snapshots.values()), ctx.config):
        pair = normalize_pair(signal.pair)
        if signal.action != "buy" or pair in held:
            continue
        snapshot = snapshots.get(pair)
        if snapshot is None or not ctx.strategy.should_enter(snapshot, snapshot.price, ctx.config):
            continue
        held.add(pair)
        candidates.append(EntryCandidate(pair, signal.confidence, signal.reason))

    candidates.sort(key=lambda c: c.confidence, reverse=True)
    return candidates[:slots]


async def execute_entry(ctx: BotContext, candidate: EntryCandidate) -> Trade | None:
    """Create the trade card and open it at the live price.

    The card is removed again when the entry cannot be funded.
    """
    quote = await ctx.gateway.get_current_price(candidate.pair)
    price = quote.price
    size = candidate.position_size
    if size is None:
        size = ctx.balance * ctx.config.position_size_percent / 100
    if price <= 0 or not _valid_size(size, ctx.balance):
        bots.log_bot_execution(ctx.bot.id, "entry_skipped", {
            "pair": candidate.pair, "price": price, "size": size, "balance": ctx.balance,
        })
        return None

    stop_pct = ctx.config.stop_loss_percent / 100
    target_pct = ctx.config.take_profit_percent / 100
    short = candidate.direction == "short"
    trade = trade_ledger.create_trade(ctx.bot.board_id, ctx.bot.user_id, {
        "coin_pair": candidate.pair,
        "direction": candidate.direction,
        "column_name": Lane.WATCHLIST.value,
        "current_price": price,
        "position_size": size,
        "stop_loss": price * (1 + stop_pct) if short else price * (1 - stop_pct),
        "take_profit": price * (1 - target_pct) if short else price * (1 + target_pct),
        "confidence_score": candidate.confidence,
        "tbo_signal": ctx.strategy.key,
        "notes": candidate.reason,
        "bot_id": ctx.bot.id,
    })

    try:
        entered = trade_ledger.enter_trade(
            trade.id, price, actor_type=BOT_ACTOR_TYPE, actor_name=ctx.bot.name,
        )
    except InsufficientPaperBalance as e:
        trade_ledger.delete_trade(trade.id)
        bots.log_bot_execution(ctx.bot.id, "entry_skipped", {
            "pair": candidate.pair, "size": size, "message": e.message,
        })
        logger.info(f"{ctx.tag} Entry {candidate.pair} skipped: {e.message}")
        return None
    except Exception:
        trade_ledger.delete_trade(trade.id)
        raise

    bots.log_bot_execution(ctx.bot.id, "trade_entry", {
        "trade_id": entered.id,
        "pair": entered.coin_pair,
        "price": price,
        "size": size,
        "confidence": candidate.confidence,
        "reason": candidate.reason,
    })
    logger.info(f"{ctx.tag} Entry {entered.coin_pair} @ {price} size=${size:.2f} ({candidate.reason})")
    return entered


# ---------------------------------------------------------------------------
# Rebalancing
# ---------------------------------------------------------------------------

async def _price_map(ctx: BotContext) -> dict[str, float]:
    pairs = sorted({normalize_pair(t.coin_pair) for t in ctx.active_trades})
    if not pairs:
        return {}
    quotes = await ctx.gateway.get_multiple_prices(pairs)
    return {pair: q.price for pair, q in quotes.items()}


async def check_rebalance(ctx: BotContext) -> dict[str, Any]:
    """Compare holdings with the risk-level target and trade back toward it.

    Sells run before buys. Every check stores a portfolio snapshot.
    """
    config = rebalancer.RebalancerConfig.model_validate(ctx.bot.rebalancer_config or {})
    prices = await _price_map(ctx)
    holdings, total = rebalancer.value_holdings(ctx.active_trades, prices, ctx.balance)
    if total <= 0:
        return {"action": "skipped", "reason": "No holdings"}

    current = rebalancer.allocation_percentages(holdings, total)
    target = rebalancer.get_target_allocation(config.risk_level)
    drift = rebalancer.calculate_drift(current, target)

    if not rebalancer.needs_rebalance(drift, config.rebalance_threshold):
        bots.save_portfolio_snapshot(ctx.bot.id, current, total)
        return {"action": "none", "drift": drift}

    available = None
    if config.buy_selection == "highest_volume":
        watchlist = coin_scanner.DEFAULT_WATCHLIST[:config.watchlist_size]
        available = await coin_scanner.scan_coins(watchlist, gateway=ctx.gateway)

    plan = rebalancer.calculate_rebalance_trades(holdings, target, total, config.buy_selection, available)
    by_id = {t.id: t for t in ctx.active_trades}

    sold = []
    for order in plan.sells:
        trade = by_id.get(order.trade_id)
        if trade is None:
            continue
        price = prices.get(order.pair, optional_float(trade.current_price))
        try:
            closed = execute_exit(ctx, trade, price, "Rebalance sell")
        except Exception as e:
            ctx.fail("rebalance_error", f"Rebalance sell {order.pair} failed: {e}", trade_id=trade.id)
            continue
        if closed is not None:
            sold.append(closed.coin_pair)

    ctx.refresh()
    bought = []
    for order in plan.buys:
        if order.is_placeholder:
            continue
        size = min(order.amount, ctx.balance)
        if not _valid_size(size, ctx.balance):
            continue
        candidate = EntryCandidate(
            order.pair, REBALANCE_BUY_CONFIDENCE, "Rebalance buy", position_size=size,
        )
        try:
            trade = await execute_entry(ctx, candidate)
        except Exception as e:
            ctx.fail("rebalance_error", f"Rebalance buy {order.pair} failed: {e}", pair=order.pair)
            continue
        if trade is not None:
            bought.append(trade.coin_pair)
        ctx.refresh_balance()

    ctx.refresh()
    after, after_total = rebalancer.value_holdings(ctx.active_trades, prices, ctx.balance)
    allocation = rebalancer.allocation_percentages(after, after_total)
    bots.save_portfolio_snapshot(ctx.bot.id, allocation, after_total)
    bots.log_bot_execution(ctx.bot.id, "rebalance", {
        "drift": drift,
        "target": target,
        "plan": plan.to_dict(),
        "sold": sold,
        "bought": bought,
    })
    logger.info(f"{ctx.tag} Rebalanced: sold {len(sold)}, bought {len(bought)}")
    return {"action": "rebalance", "drift": drift, "sold": sold, "bought": bought}


# ---------------------------------------------------------------------------
# Performance
# ---------------------------------------------------------------------------

def _refresh_performance(bot_id: int, result: CycleResult) -> None:
    trades = trade_ledger.get_trades_for_bot(bot_id)
    won = [t for t in trades if t.status == TradeStatus.WON.value]
    lost = [t for t in trades if t.status == TradeStatus.LOST.value]
    closed = len(won) + len(lost)
    now = datetime.now(timezone.utc)
    performance = {
        "total_trades": len(trades),
        "open_trades": sum(1 for t in trades if t.status == TradeStatus.ACTIVE.value),
        "wins": len(won),
        "losses": len(lost),
        "win_rate": len(won) / closed * 100 if closed else 0.0,
        "realized_pnl": sum(to_float(t.pnl_dollar) for t in won + lost),
        "last_cycle_at": now.isoformat(),
        "last_actions": result.actions,
        "last_errors": result.errors,
    }
    bots.update_bot(bot_id, {"performance": performance, "last_run_at": now})
