"""
Logging setup for the API server and the terminal client.
"""

import logging
import sys

# Client libraries that log every request at INFO.
NOISY_LOGGERS = ("httpx", "openai")


def init_logging(log_level: str = "INFO", service_name: str = "killer-assistant") -> None:
    """Send records of every logger to stdout, tagged with the service name.

    Args:
        log_level: Level name from the server configuration
        service_name: Tag written in front of each record
    """
    logging.basicConfig(
        level=log_level.upper(),
        format=f"%(asctime)s [{service_name}] %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
        force=True,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
