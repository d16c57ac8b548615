# provisioning_engine/run_provisioner.py
"""Run the provisioner from the command line (apply / destroy / status / plan)."""

import argparse
import logging
import signal
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from provisioning_engine.config import settings
from provisioning_engine.container import build_provisioner
from provisioning_engine.core.errors import ProvisioningError, StackValidationError
from provisioning_engine.stacks.workspace import build_workspace_stack

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Workspace stack provisioner")
    parser.add_argument("command", choices=["apply", "destroy", "status", "plan"])
    parser.add_argument("--certificate-arn", help="Certificate for the HTTPS listener (overrides CERTIFICATE_ARN)")
    parser.add_argument("--rollback-on-failure", action="store_true", help="Delete what the run created if it fails")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    overrides = {}
    if args.certificate_arn:
        overrides["certificate_arn"] = args.certificate_arn
    if args.rollback_on_failure:
        overrides["rollback_on_failure"] = True
    config = settings.model_copy(update=overrides) if overrides else settings

    provisioner = build_provisioner(config)
    stack = build_workspace_stack(config)

    def _signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, cancelling (re-run to resume)...")
        provisioner.cancel()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    try:
        if args.command == "apply":
            report = provisioner.apply(stack)
            print(report.summary())
            return 0 if report.succeeded else 1

        if args.command == "destroy":
            report = provisioner.destroy(stack)
            print(report.summary())
            return 0 if report.succeeded else 1

        if args.command == "plan":
            for change in provisioner.plan(stack):
                print(f"[wave {change.wave}] {change.action:8} {change.logical_id} ({change.kind})")
            return 0

        for record in provisioner.status(stack.name):
            print(f"{record.logical_id:20} {record.state.value:10} {record.physical_id or '-'}")
        return 0

    except StackValidationError as e:
        logger.error(f"Invalid stack: {e}")
        return 2
    except ProvisioningError as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
