import logging
import socket

import uvicorn

from chessrooms.core.config import get_settings
from chessrooms.core.logging_config import configure_logging

logger = logging.getLogger("chessrooms")


def lan_urls(port: int) -> list[str]:
    """Best-effort list of non-loopback IPv4 addresses other devices can reach."""
    try:
        infos = socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET)
    except socket.gaierror:
        return []
    addresses = sorted({info[4][0] for info in infos if not info[4][0].startswith("127.")})
    return [f"http://{address}:{port}" for address in addresses]


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("server listening on port %s", settings.port)
    urls = lan_urls(settings.port)
    if urls:
        for url in urls:
            logger.info("reachable on the LAN at %s", url)
    else:
        logger.info("could not determine a LAN address, use http://localhost:%s", settings.port)
    uvicorn.run(
        "chessrooms.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
