# provisioning_engine/run_entrypoint.py
"""
Run the authenticated entry point of an applied stack.

Reads the stack's records from the state backend, so it needs the same
STATE_BACKEND / STATE_DB_* settings as the provisioner that applied it.
"""

import logging
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import uvicorn

from provisioning_engine.config import settings
from provisioning_engine.container import build_provisioner
from provisioning_engine.core.errors import DependencyUnready
from provisioning_engine.entrypoint.health_checker import TargetHealthChecker
from provisioning_engine.entrypoint.runtime import build_listener, create_entrypoint_app

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def main(config=None) -> int:
    """Main entry point."""
    config = config or settings
    logger.info(f"Starting entry point for stack {config.stack_name}")

    provisioner = build_provisioner(config)
    records = {r.logical_id: r for r in provisioner.status(config.stack_name)}

    try:
        listener = build_listener(config, records)
    except DependencyUnready as e:
        logger.error(f"Stack {config.stack_name} is not applied: {e}")
        return 2

    if not config.entrypoint_targets:
        logger.warning("No targets configured; authenticated requests will get 503")

    checker = TargetHealthChecker.from_settings(listener.target_group, config)
    checker.start()

    try:
        uvicorn.run(
            create_entrypoint_app(listener),
            host=config.entrypoint_host,
            port=config.entrypoint_port,
            ssl_certfile=config.entrypoint_ssl_certfile,
            ssl_keyfile=config.entrypoint_ssl_keyfile,
            proxy_headers=True,
        )
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        checker.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
