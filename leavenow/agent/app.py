import asyncio
import contextlib
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI
from fastapi.routing import APIRouter
from loguru import logger

from leavenow.agent.log import setup_logging
from leavenow.agent.orchestrator import Orchestrator
from leavenow.agent.relay.redis import RedisRelay
from leavenow.agent.settings import get_settings
from leavenow.agent.store.local import LocalTokenStore


def _log_driver_exit(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.opt(exception=exc).error("Orchestrator driver stopped unexpectedly")


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # -- Startup ---------------------------------------------------------------
    settings = get_settings()
    setup_logging(settings.log_level, settings.device_id, secrets=[settings.client_secret.get_secret_value()])

    logger.info(
        "LeaveNow agent starting (device={}, host={}, port={})", settings.device_id, settings.host, settings.port
    )
    logger.info("Data root: {}", settings.data_root)

    # -- Initialise state fields (always present, possibly None) ----------------
    _app.state.redis = None
    _app.state.relay = None
    _app.state.orchestrator = None
    _app.state.driver = None

    # -- Redis -----------------------------------------------------------------
    if settings.redis_url:
        _app.state.redis = aioredis.from_url(
            settings.redis_url,
            decode_responses=False,
            socket_connect_timeout=5,
            retry_on_timeout=True,
        )
        logger.info("Redis: connected")
    else:
        logger.warning("LEAVENOW_REDIS_URL not set -- relay disabled, agent will not run")

    # -- Orchestrator ----------------------------------------------------------
    if _app.state.redis is not None:
        relay = RedisRelay(_app.state.redis, settings.device_id, prefix=settings.relay_prefix)
        store = LocalTokenStore(settings.data_root)
        orchestrator = Orchestrator.from_settings(settings, relay, store)
        _app.state.relay = relay
        _app.state.orchestrator = orchestrator
        _app.state.driver = asyncio.create_task(orchestrator.run(settings.tick_interval), name="leavenow-driver")
        _app.state.driver.add_done_callback(_log_driver_exit)
        logger.info("Orchestrator: running (tick={}s)", settings.tick_interval)

    yield

    # -- Shutdown --------------------------------------------------------------
    logger.info("LeaveNow agent shutting down")

    if _app.state.driver is not None:
        _app.state.driver.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await _app.state.driver

    if _app.state.relay is not None:
        await _app.state.relay.close()

    if _app.state.redis is not None:
        await _app.state.redis.aclose()
        logger.info("Redis: closed")


app = FastAPI(title="LeaveNow Agent", lifespan=lifespan)

# ---------------------------------------------------------------------------
# API router -- all operator endpoints live under /api
# ---------------------------------------------------------------------------
api = APIRouter(prefix="/api")


@api.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


from leavenow.agent.routers.agent import router as agent_router  # noqa: E402

api.include_router(agent_router)

app.include_router(api)
