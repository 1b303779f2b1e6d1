"""
Cascade mirror: discovers agent chat panels in local workbench windows and
mirrors them live to WebSocket viewers.

Entry point: config from env, engine loops + gateway, block until interrupted.
"""

from __future__ import annotations

import logging
import threading

from .config import MirrorConfig
from .engine import CascadeEngine
from .gateway import MirrorGateway

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(message)s",
)
logger = logging.getLogger("cascade.mirror")

__all__ = ["main", "run"]


def run(config: MirrorConfig, *, stop: threading.Event | None = None) -> None:
    """Run engine + gateway until `stop` is set (or KeyboardInterrupt)."""
    stop = stop or threading.Event()
    engine = CascadeEngine(config)
    gateway = MirrorGateway(engine)

    gateway.start()
    engine.start()
    logger.info(
        "mirror_ready gateway=%s ports=%s poll=%.1fs discovery=%.1fs",
        gateway.url(),
        engine.get_ports(),
        config.poll_interval,
        config.discovery_interval,
    )
    try:
        while not stop.wait(1.0):
            pass
    except KeyboardInterrupt:
        logger.info("interrupted")
    finally:
        engine.stop()
        gateway.stop()


def main() -> None:
    config = MirrorConfig.from_env()
    logging.getLogger().setLevel(getattr(logging, config.log_level, logging.INFO))
    run(config)


if __name__ == "__main__":
    main()
