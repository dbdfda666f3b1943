"""FinBuild -- FastAPI application entry point."""

import logging
import sys
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from finbuild.api.routers.health import router as health_router
from finbuild.api.routers.performance import router as performance_router
from finbuild.api.routers.projects import router as projects_router
from finbuild.api.routers.templates import router as templates_router
from finbuild.clients import llm_client
from finbuild.config import VERSION, settings
from finbuild.middleware import RequestIDMiddleware
from finbuild.middleware.exception_handler import setup_exception_handlers
from finbuild.repos.db import close_pool, get_pool
from finbuild.services.engine import Engine, build_engine
from finbuild.services.prompt.defaults import seed_default_templates

logger = logging.getLogger(__name__)


class _ColorFormatter(logging.Formatter):
    """ANSI-coloured log formatter for terminal output."""

    _COLORS = {
        logging.DEBUG:    "\033[36m",     # cyan
        logging.INFO:     "\033[32m",     # green
        logging.WARNING:  "\033[33m",     # yellow
        logging.ERROR:    "\033[31m",     # red
        logging.CRITICAL: "\033[1;31m",   # bold red
    }
    _RESET = "\033[0m"
    _DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self._COLORS.get(record.levelno, "")
        ts = self.formatTime(record, "%H:%M:%S")
        name = record.name.split(".")[-1][:20]
        msg = record.getMessage()
        if record.exc_info:
            msg = f"{msg}\n{self.formatException(record.exc_info)}"
        return (
            f"{self._DIM}{ts}{self._RESET} "
            f"{color}{record.levelname:<8s}{self._RESET} "
            f"{self._DIM}[{name:>20s}]{self._RESET} "
            f"{color}{msg}{self._RESET}"
        )


class _PlainFormatter(logging.Formatter):
    """Plain-text formatter for file logs (no ANSI codes)."""

    def format(self, record: logging.LogRecord) -> str:
        ts = self.formatTime(record, "%Y-%m-%d %H:%M:%S")
        name = record.name.split(".")[-1][:20]
        msg = record.getMessage()
        if record.exc_info:
            msg = f"{msg}\n{self.formatException(record.exc_info)}"
        return f"{ts} {record.levelname:<8s} [{name:>20s}] {msg}"


def configure_logging() -> None:
    """Coloured stderr logging, plus a rotating file when LOG_FILE is set."""
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(_ColorFormatter())
    handlers: list[logging.Handler] = [stream]

    if settings.LOG_FILE:
        log_path = Path(settings.LOG_FILE)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(log_path),
            maxBytes=10 * 1024 * 1024,  # 10 MB per file
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setFormatter(_PlainFormatter())
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers)

    # Access logs and per-request client logs flood the terminal
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Application lifespan: startup and shutdown hooks."""
    configure_logging()
    engine: Engine = application.state.engine

    if "pytest" not in sys.modules:
        try:
            await get_pool()
            logger.info("Database pool initialised.")
            if settings.SEED_DEFAULT_TEMPLATES:
                await seed_default_templates(engine.store)
        except Exception as exc:
            # Hosted Postgres may still be waking up; the first request reconnects.
            logger.warning("DB unavailable at startup (%s), will retry on first request.", exc)
    yield
    # Pending telemetry writes need the pool, so drain before closing it.
    await engine.recorder.drain()
    await llm_client.close_client()
    await close_pool()


def create_app(engine: Engine | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="FinBuild",
        version=VERSION,
        description="Chat-driven builder for financial software projects",
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )
    application.state.engine = engine or build_engine()

    setup_exception_handlers(application)

    application.add_middleware(RequestIDMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_URL],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID", "X-Response-Time-Ms"],
    )

    application.include_router(health_router)
    application.include_router(projects_router)
    application.include_router(templates_router)
    application.include_router(performance_router)
    return application


app = create_app()
