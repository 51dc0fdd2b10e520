"""Long-running orchestrator process: connect to the Gateway and process notifications."""

import asyncio
import signal

from src.services.orchestrator import get_orchestrator
from src.utils.logging import get_structured_logger
from src.utils.logging_config import LoggingConfig

logger = get_structured_logger(__name__)


async def run() -> None:
    LoggingConfig.setup_logging()
    orchestrator = get_orchestrator()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops do not support signal handlers
            pass

    await orchestrator.start()
    try:
        await stop_event.wait()
    finally:
        logger.info("Shutdown requested")
        await orchestrator.stop()


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
