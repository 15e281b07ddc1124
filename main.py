"""Root entry point: runs the person/notepad lifecycle demo."""

from __future__ import annotations

import asyncio
import os

from lifecycle_bus.config import load_config
from lifecycle_bus.core.engines.base.logging_utils import configure_logging
from lifecycle_bus.demo import run_demo


def main() -> None:
    config = load_config()
    configure_logging(level=config.log_level, log_file=config.log_file)
    # read after load_config so a .env file can select the profile
    profile = os.getenv("DEMO_PROFILE", "notepad").lower()
    if profile == "notepad":
        asyncio.run(run_demo(config))
    else:
        raise SystemExit(f"Unsupported DEMO_PROFILE '{profile}' for this build")


if __name__ == "__main__":
    main()
