"""
Start a fixedsig node.

    python run_node.py

Host and port come from FIXEDSIG_NODE_HOST / FIXEDSIG_NODE_PORT (process
environment, then .env). Everything else is read from config.toml by
``create_app``; ``fixedsig serve`` is the equivalent CLI entry point.
"""
import logging

import uvicorn

from fixedsig.constants import FIXEDSIG_NODE_HOST, FIXEDSIG_NODE_PORT

# uvicorn's own loggers only report errors; the node logs through fixedsig.logger
for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "uvicorn.asgi"):
    uvicorn_logger = logging.getLogger(name)
    uvicorn_logger.setLevel(logging.ERROR)
    uvicorn_logger.handlers = []


if __name__ == "__main__":
    uvicorn.run(
        "fixedsig.node.main:create_app",
        factory=True,
        host=str(FIXEDSIG_NODE_HOST),
        port=int(FIXEDSIG_NODE_PORT),
        access_log=False,
        log_config=None,
    )
