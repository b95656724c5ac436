import asyncio
import signal

from app.core.config import settings
from app.core.logging import setup_early_logging
from app.services.review_watcher import ReviewWatcher
from app.utils.logging import get_logger


async def main():
    logger = get_logger()
    if not settings.AMQP_URL:
        raise SystemExit("AMQP_URL must be set to run the review watcher.")

    logger.info("Starting Review Watcher service...")
    watcher = ReviewWatcher(settings.AMQP_URL)
    await watcher.connect()
    await watcher.start()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    logger.info("Review Watcher is running. Press Ctrl+C to exit.")
    await stop.wait()

    logger.info("Shutting down Review Watcher...")
    await watcher.close()


if __name__ == "__main__":
    setup_early_logging()
    asyncio.run(main())
