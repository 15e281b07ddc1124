"""Entry point for ``python -m lifecycle_bus``."""

from __future__ import annotations

import asyncio

from lifecycle_bus.config import load_config
from lifecycle_bus.core.engines.base.logging_utils import configure_logging
from lifecycle_bus.demo import run_demo


def main() -> None:
    config = load_config()
    configure_logging(level=config.log_level, log_file=config.log_file)
    asyncio.run(run_demo(config))


if __name__ == "__main__":
    main()
