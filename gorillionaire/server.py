"""
Process entry point.

Runs uvicorn under a bounded restart supervisor: a server that fails to
start, or dies while serving, is started again after RESTART_DELAY_SECONDS
until MAX_RESTART_ATTEMPTS restarts have been used. A clean shutdown
(SIGINT/SIGTERM) ends the loop without a restart.
"""

import asyncio
import sys
from typing import Callable, Optional

import uvicorn
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from gorillionaire.core.config import settings
from gorillionaire.core.logger import Logger
from gorillionaire.core.sentry import capture_exception, flush, init_sentry

logger = Logger("Server")


class ServerCrashed(RuntimeError):
    """The HTTP server did not start, or stopped without being asked to."""


def build_server() -> uvicorn.Server:
    from gorillionaire.main import app

    config = uvicorn.Config(
        app,
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
    return uvicorn.Server(config)


async def serve_once(server_factory: Callable[[], uvicorn.Server]):
    server = server_factory()
    try:
        await server.serve()
    except SystemExit as e:
        # uvicorn exits the process when the port cannot be bound
        raise ServerCrashed(f"Server exited during startup (code {e.code})") from e
    except Exception as e:
        raise ServerCrashed(f"Server crashed: {e}") from e

    # Lifespan startup failures return from serve() without ever starting
    if not server.started:
        raise ServerCrashed("Server failed to start")


async def run_server(
    server_factory: Optional[Callable[[], uvicorn.Server]] = None,
    max_attempts: Optional[int] = None,
    delay: Optional[float] = None,
) -> bool:
    """Serve until a clean shutdown. Returns False once restarts are exhausted."""
    server_factory = server_factory or build_server
    # Restarts allowed after the first start
    attempts = max_attempts if max_attempts is not None else settings.MAX_RESTART_ATTEMPTS
    delay = delay if delay is not None else settings.RESTART_DELAY_SECONDS

    def before_restart(retry_state):
        exc = retry_state.outcome.exception()
        logger.warn(
            f"🔄 Restarting server in {delay}s "
            f"(restart {retry_state.attempt_number}/{attempts}): {exc}"
        )
        capture_exception(exc, component="server", restart=retry_state.attempt_number)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts + 1),
        wait=wait_fixed(delay),
        retry=retry_if_exception_type(ServerCrashed),
        before_sleep=before_restart,
        reraise=True,
    )

    try:
        async for attempt in retrying:
            with attempt:
                await serve_once(server_factory)
    except ServerCrashed as e:
        logger.error(f"❌ Max restart attempts ({attempts}) reached, giving up", e)
        capture_exception(e, component="server", restarts=attempts)
        return False

    logger.info("Server stopped")
    return True


def main():
    init_sentry()
    ok = asyncio.run(run_server())
    flush()
    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
