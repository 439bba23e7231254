#!/usr/bin/env python3
"""
AtlasDex Migrations - Deployment Sequencer

Runs the ordered migration for one network:

1. Deploy the AtlasDexSwap implementation
2. Activate it, either
   - Fresh deploy: deploy the setup contract, encode the setup() call and
     deploy the proxy pointing at the setup contract with that payload
   - Upgrade: point the existing proxy at the new implementation

Every step waits for its receipt. A failure stops the run; nothing is
rolled back.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from web3 import Web3

from .networks import DeploymentMode, DeploymentTarget

logger = logging.getLogger(__name__)

IMPLEMENTATION_CONTRACT = "AtlasDexSwap"
SETUP_CONTRACT = "AtlasDexSwapSetup"
PROXY_CONTRACT = "AtlasDexProxy"

SETUP_FUNCTION = "setup"
UPGRADE_FUNCTION = "upgradeTo"


@dataclass
class DeploymentResult:
    """Addresses produced by one migration run"""
    network: str
    mode: DeploymentMode
    implementation: str
    setup: Optional[str] = None
    proxy: Optional[str] = None
    upgrade_tx: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['mode'] = self.mode.value
        return data


class DeploymentSequencer:
    def __init__(self, deployer):
        self.deployer = deployer
        self._activations = {
            DeploymentMode.FRESH: self._fresh_deploy,
            DeploymentMode.UPGRADE: self._upgrade_existing,
        }

    def plan(self, target: DeploymentTarget) -> List[str]:
        """Describe the steps run() would take, without touching the chain"""
        steps = [f"deploy {IMPLEMENTATION_CONTRACT}"]
        if target.mode is DeploymentMode.FRESH:
            steps.append(f"deploy {SETUP_CONTRACT}")
            steps.append(
                f"encode {SETUP_FUNCTION}(<{IMPLEMENTATION_CONTRACT}>, {target.native_wrapped_address}, "
                f"{target.fee_collector}, {', '.join(target.routers[:2])})"
            )
            steps.append(f"deploy {PROXY_CONTRACT}(<{SETUP_CONTRACT}>, <encoded {SETUP_FUNCTION}>)")
        else:
            steps.append(f"call {UPGRADE_FUNCTION}(<{IMPLEMENTATION_CONTRACT}>) on proxy {target.proxy_address}")
        return steps

    def run(self, target: DeploymentTarget) -> DeploymentResult:
        logger.info(f"Starting {target.mode.value} deployment on {target.name}")

        implementation = self.deployer.deploy(IMPLEMENTATION_CONTRACT)
        result = DeploymentResult(network=target.name, mode=target.mode, implementation=implementation)

        self._activations[target.mode](target, result)

        logger.info(f"Deployment sequence finished on {target.name}")
        return result

    def _fresh_deploy(self, target: DeploymentTarget, result: DeploymentResult):
        result.setup = self.deployer.deploy(SETUP_CONTRACT)

        one_inch_router, zero_ex_router = target.routers[:2]
        data = self.deployer.encode_call(SETUP_CONTRACT, SETUP_FUNCTION, [
            result.implementation,
            target.native_wrapped_address,
            target.fee_collector,
            one_inch_router,
            zero_ex_router,
        ])

        result.proxy = self.deployer.deploy(PROXY_CONTRACT, result.setup, data)

    def _upgrade_existing(self, target: DeploymentTarget, result: DeploymentResult):
        # upgradeTo lives on the implementation (UUPS), called through the proxy
        receipt = self.deployer.transact(
            IMPLEMENTATION_CONTRACT, target.proxy_address, UPGRADE_FUNCTION, result.implementation
        )
        result.proxy = target.proxy_address
        tx_hash = receipt.get('transactionHash')
        result.upgrade_tx = Web3.to_hex(tx_hash) if isinstance(tx_hash, (bytes, bytearray)) else tx_hash
