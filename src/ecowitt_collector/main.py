import argparse
import asyncio
import logging
import logging.handlers
import os
import sys
import typing
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI
from pydantic import ValidationError

from ecowitt_collector.api import router as api_router
from ecowitt_collector.config import Settings
from ecowitt_collector.database import ObservationStore
from ecowitt_collector.normalizer import UnitNormalizer
from ecowitt_collector.payload import PayloadDecoder

logger = structlog.get_logger("Collector")


def setup_logging(settings: Settings) -> None:
    """Route structlog and stdlib logging through one JSON formatter."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    pre_chain: list[typing.Any] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=pre_chain,
    )

    handlers: list[logging.Handler] = []

    # Stdout
    stream = logging.StreamHandler(sys.stdout)
    stream.setFormatter(formatter)
    handlers.append(stream)

    # File
    if settings.log_file:
        os.makedirs(os.path.dirname(settings.log_file) or ".", exist_ok=True)
        fhandler = logging.handlers.TimedRotatingFileHandler(
            settings.log_file,
            when="midnight",
            interval=1,
            backupCount=30,
            encoding="utf-8",
        )
        fhandler.setFormatter(formatter)
        handlers.append(fhandler)

    logging.basicConfig(level=settings.log_level, handlers=handlers, force=True)


def create_app(settings: Settings, store: ObservationStore | None = None) -> FastAPI:
    """Build the collector application.

    The decoder, normalizer and store are created once here and shared by
    all requests through ``app.state``.
    """
    if store is None:
        store = ObservationStore(settings.database)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> typing.AsyncGenerator[None, None]:
        # Startup
        if not await asyncio.to_thread(store.connect):
            raise RuntimeError("Could not connect to the database")

        logger.info(
            "Collector ready",
            table=settings.database.table,
            wind_direction_offset=settings.wind_direction_offset,
            allow_unknown_fields=settings.allow_unknown_fields,
        )
        yield

        # Shutdown
        store.close()

    app = FastAPI(title="Ecowitt Collector", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.decoder = PayloadDecoder(allow_unknown_fields=settings.allow_unknown_fields)
    app.state.normalizer = UnitNormalizer(wind_direction_offset=settings.wind_direction_offset)
    app.include_router(api_router)
    return app


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Receive Ecowitt weather station reports.")
    parser.add_argument(
        "--config",
        "-c",
        default=None,
        help="Path to the configuration file (default: ./config.yml if present)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Entry point."""
    args = parse_args(argv)

    try:
        settings = Settings.load(args.config)
    except (OSError, ValueError, ValidationError) as e:
        print(f"ERROR: failed to load configuration file {args.config}: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(settings)

    app = create_app(settings)
    logger.info("Starting server", host=settings.http.host, port=settings.http.port)
    uvicorn.run(app, host=settings.http.host, port=settings.http.port, log_config=None)


if __name__ == "__main__":
    main()
