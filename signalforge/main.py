"""SignalForge — application entry point.

Boots the FastAPI internal server and provides the CLI entry point for
the long-running service and one-shot modes.
"""

import logging

from fastapi import FastAPI

from signalforge.api.routers import router

app = FastAPI(title="SignalForge Internal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("signalforge")


@app.get("/health")
async def health():
    """Liveness probe."""
    return {"status": "ok"}


def build_scheduler(config, feed=None, store=None):
    """Wire feed, accuracy tracking, events, engine and scheduler.

    Args:
        config: Loaded ``Config``.
        feed: Candle feed (default: ``HttpCandleFeed`` on
            ``config.market_data_url``).
        store: Accuracy store (default: ``AccuracyRepo`` on
            ``config.db_path``, initialised on the way).

    Returns:
        ``(scheduler, event_bus)``
    """
    from signalforge.api.routers import configure_routers, record_event
    from signalforge.engine import SignalEngine
    from signalforge.events import EventBus
    from signalforge.feed.http_feed import HttpCandleFeed
    from signalforge.repos.accuracy_repo import AccuracyRepo
    from signalforge.repos.db import init_db
    from signalforge.scheduler import SignalScheduler
    from signalforge.scoring.accuracy import AccuracyTracker

    if feed is None:
        feed = HttpCandleFeed(config.market_data_url)
    if store is None:
        init_db(config.db_path)
        store = AccuracyRepo(config.db_path)

    tracker = AccuracyTracker(store, window=config.accuracy_window)
    bus = EventBus()
    engine = SignalEngine(config=config, feed=feed, tracker=tracker, events=bus)
    scheduler = SignalScheduler(config=config, engine=engine, tracker=tracker)

    configure_routers(scheduler=scheduler)
    bus.subscribe(record_event)
    return scheduler, bus


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments and dispatch to the appropriate mode."""
    import argparse
    import asyncio
    import signal

    from signalforge.config import load_config

    parser = argparse.ArgumentParser(description="SignalForge multi-timeframe signal engine")
    parser.add_argument(
        "--mode",
        choices=["serve", "once"],
        default="serve",
        help="serve: API + polling loop; once: one cycle per symbol, print, exit",
    )
    parser.add_argument("--env", default=None, help="Path to a .env file")
    parser.add_argument(
        "--engine-only",
        action="store_true",
        help="Run the polling loop without the API server",
    )
    args = parser.parse_args()

    config = load_config(args.env)

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    scheduler, _ = build_scheduler(config)

    def handle_shutdown(signum, frame):
        logger.info("Shutdown signal received — stopping gracefully.")
        scheduler.stop()

    signal.signal(signal.SIGINT, handle_shutdown)

    if args.mode == "once":
        asyncio.run(_run_once(scheduler))
    elif args.engine_only:
        asyncio.run(_run_scheduler_only(scheduler))
    else:
        asyncio.run(_run_service(scheduler, config.api_port))


async def _run_service(scheduler, port: int = 8080) -> None:
    """Start the API server and the polling loop concurrently."""
    import asyncio
    import uvicorn

    logger.info("Starting SignalForge for %s.", ", ".join(scheduler.symbols))

    uvi_config = uvicorn.Config(
        app,
        host="0.0.0.0",
        port=port,
        log_level="info",
    )
    server = uvicorn.Server(uvi_config)

    async def _run_server():
        await server.serve()
        scheduler.stop()

    async def _run_scheduler():
        await scheduler.run()

    logger.info("API available at http://localhost:%d", port)
    results = await asyncio.gather(
        _run_server(),
        _run_scheduler(),
        return_exceptions=True,
    )
    logger.info("SignalForge stopped. Results: %s", results)


async def _run_scheduler_only(scheduler) -> None:
    """Run the polling loop without starting the API server."""
    logger.info("Starting SignalForge (no API) for %s.", ", ".join(scheduler.symbols))
    await scheduler.run()
    logger.info("SignalForge stopped.")


async def _run_once(scheduler) -> None:
    """Run one manual cycle per symbol and print the summaries."""
    from signalforge.cli.dashboard import print_summary

    for symbol in scheduler.symbols:
        result = await scheduler.trigger(symbol, manual=True)
        logger.info("%s: %s", symbol, result.get("action", "unknown"))
        aligned = scheduler.get_aligned_signal_set(symbol)
        if aligned is not None:
            print_summary(aligned, scheduler.get_trade_recommendation(symbol))


if __name__ == "__main__":
    _run_cli()
