import asyncio
import logging
import signal

import uvicorn

from mepcalls.core.config import settings
from mepcalls.main import app

logger = logging.getLogger(__name__)


async def serve() -> None:
    config = uvicorn.Config(
        app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower()
    )
    server = uvicorn.Server(config)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_event.set)

    server_task = asyncio.create_task(server.serve())
    await stop_event.wait()
    logger.info("Stopping %s", settings.app_name)
    server.should_exit = True
    await server_task


def main() -> None:
    asyncio.run(serve())


if __name__ == "__main__":
    main()
