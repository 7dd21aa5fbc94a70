"""
Script to run a data value transfer between the configured DHIS2 instances
"""

import asyncio
import signal
import sys
import os
import logging

# Add current directory to path to allow imports from core, transfer, etc.
sys.path.append(os.getcwd())

from pydantic import ValidationError
from core.config import settings
from core.exceptions import ConfigError, UpstreamError
from core.logging import setup_logging
from transfer.client import DHIS2Client
from transfer.runner import TransferRunner

logger = logging.getLogger(__name__)


def _client(prefix: str, name: str) -> DHIS2Client:
    return DHIS2Client(
        base_url=getattr(settings, f"{prefix}_DHIS2_URL"),
        username=getattr(settings, f"{prefix}_DHIS2_USERNAME"),
        password=getattr(settings, f"{prefix}_DHIS2_PASSWORD"),
        name=name,
        timeout=settings.REQUEST_TIMEOUT,
        max_retries=settings.MAX_RETRIES,
        retry_delay=settings.RETRY_DELAY,
    )


async def run_transfer() -> int:
    """Run the transfer; returns the process exit code"""
    try:
        config = settings.to_transfer_config()
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    async with _client("SOURCE", "source") as source, _client("DEST", "destination") as destination:
        runner = TransferRunner(source, destination, config)

        loop = asyncio.get_running_loop()
        handled = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, runner.request_stop)
                handled.append(sig)
            except (NotImplementedError, RuntimeError):
                pass

        try:
            summary = await runner.run()
        except ConfigError as e:
            logger.error(str(e))
            return 1
        except UpstreamError as e:
            logger.error(f"Transfer failed: {e}")
            return 1
        finally:
            for sig in handled:
                loop.remove_signal_handler(sig)

    logger.info(f"Transfer summary: {summary.to_log_dict()}")
    return 0


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(run_transfer()))
