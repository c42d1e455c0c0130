from __future__ import annotations

import os

import uvicorn

from ..core.logger import get_logger


def main() -> None:
    logger = get_logger()
    host = os.getenv("BRIDGE_HOST", "127.0.0.1")
    port = int(os.getenv("BRIDGE_PORT", "8000"))
    logger.info("Starting wallet relay bridge on %s:%s", host, port)
    uvicorn.run("walletrelay.server.app:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
