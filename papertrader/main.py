"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from papertrader.config import settings
from papertrader.database import create_db_and_tables
from papertrader.errors import EngineError, MarketDataError
from papertrader.utils.logging import setup_logging
from papertrader.api import alerts, bots, market, paper_account, strategies, system, trades


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logging()
    create_db_and_tables()
    from papertrader.engine.scheduler import start_scheduler, stop_scheduler
    if settings.scheduler_enabled:
        start_scheduler()

    yield

    stop_scheduler()


app = FastAPI(
    title="Paper Trader",
    description="Paper crypto trading engine with strategy bots and a trade board",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    return JSONResponse(status_code=400, content={"error": exc.code, "detail": exc.message})


@app.exception_handler(MarketDataError)
async def market_data_error_handler(request: Request, exc: MarketDataError):
    return JSONResponse(status_code=502, content={"error": "MARKET_DATA_UNAVAILABLE", "detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"error": "INVALID_REQUEST", "detail": str(exc)})


# Mount routers
app.include_router(bots.router)
app.include_router(trades.router)
app.include_router(paper_account.router)
app.include_router(market.router)
app.include_router(strategies.router)
app.include_router(alerts.router)
app.include_router(system.router)
