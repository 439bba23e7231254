#!/usr/bin/env python3
"""
AtlasDex Swap Migration Tool

Deploys the AtlasDex swap implementation behind its proxy, or upgrades an
existing proxy, on one configured network.

Examples:
  atlasdex-migrate polygon_testnet
  atlasdex-migrate mainnet --dry-run
  python3 -m atlasdex_migrations.deploy binance --build-dir build/contracts
"""

import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from dotenv import load_dotenv

from .errors import DeploymentError, MissingConfigurationError
from .networks import NetworkTable
from .provider import DEFAULT_BUILD_DIR, ContractDeployer
from .records import DEFAULT_DEPLOYMENTS_DIR, recorded_proxy, save_deployment
from .sequencer import DeploymentSequencer

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False):
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    log_file = os.getenv("ATLASDEX_LOG_FILE")
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="AtlasDex Swap Migration Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("network", help="Network name (must match an entry in the network table)")
    parser.add_argument("--config", default=None, help="Path to the network table JSON (default: bundled networks.json)")
    parser.add_argument("--build-dir", default=DEFAULT_BUILD_DIR, help="Directory holding compiled contract artifacts")
    parser.add_argument("--deployments-dir", default=DEFAULT_DEPLOYMENTS_DIR, help="Directory for deployment records")
    parser.add_argument("--dry-run", action="store_true", help="Show the steps without sending any transaction")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = create_parser().parse_args(argv)

    load_dotenv()
    configure_logging(args.verbose)

    try:
        table = NetworkTable.from_file(args.config)
        try:
            target = table.resolve(args.network, known_proxy=recorded_proxy(args.network, args.deployments_dir))
        except MissingConfigurationError:
            logger.info(f"Available networks: {', '.join(table.names())}")
            raise

        logger.info(f"Network: {target.name} ({target.mode.value} deployment)")

        if args.dry_run:
            for number, step in enumerate(DeploymentSequencer(None).plan(target), start=1):
                print(f"{number}. {step}")
            return 0

        deployer = ContractDeployer.connect(target, build_dir=args.build_dir)
        result = DeploymentSequencer(deployer).run(target)

    except DeploymentError as e:
        logger.error(f"Deployment failed: {e}")
        return 1

    try:
        save_deployment(result, args.deployments_dir)
    except OSError as e:
        # contracts are already on-chain; keep the addresses in the log
        logger.error(f"Could not write deployment record: {e}")
        logger.error(f"Deployed addresses: {json.dumps(result.as_dict())}")

    print(f"Implementation: {result.implementation}")
    if result.setup:
        print(f"Setup: {result.setup}")
    print(f"Proxy: {result.proxy}")
    print("Deployment complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
