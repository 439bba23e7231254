#!/usr/bin/env python3
"""
AtlasDex Migrations - Contract Deployer

Wraps a web3 connection and a signing account. Loads compiled truffle
artifacts, deploys contracts, encodes calldata and sends transactions,
blocking on each receipt before returning.
"""

import json
import logging
import os
from typing import Any, Dict, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.middleware import ExtraDataToPOAMiddleware

from .errors import ConfigurationError, RemoteOperationError
from .networks import DEFAULT_CONFIRMATION_TIMEOUT, DeploymentTarget

logger = logging.getLogger(__name__)

DEFAULT_BUILD_DIR = os.path.join("build", "contracts")


def load_account(credential: Optional[str]) -> Optional[LocalAccount]:
    """
    Build a signing account from a private key or a BIP-39 mnemonic.

    A mnemonic derives the first account on m/44'/60'/0'/0/0, the same
    account truffle's HDWalletProvider signs with. Returns None when no
    credential is given so that the node's unlocked account is used.
    """
    if not credential:
        return None
    credential = credential.strip()
    if len(credential.split()) > 1:
        Account.enable_unaudited_hdwallet_features()
        try:
            return Account.from_mnemonic(credential)
        except Exception as e:
            raise ConfigurationError(f"Invalid mnemonic: {e}")
    try:
        return Account.from_key(credential)
    except Exception as e:
        raise ConfigurationError(f"Invalid private key: {e}")


class ContractDeployer:
    def __init__(self, w3: Web3, account: Optional[LocalAccount] = None,
                 build_dir: str = DEFAULT_BUILD_DIR, gas_price: Optional[int] = None,
                 confirmation_timeout: int = DEFAULT_CONFIRMATION_TIMEOUT):
        self.w3 = w3
        self.account = account
        self.build_dir = build_dir
        self.gas_price = gas_price
        self.confirmation_timeout = confirmation_timeout
        self._artifacts: Dict[str, Dict[str, Any]] = {}
        self._sender: Optional[str] = account.address if account is not None else None

    @classmethod
    def connect(cls, target: DeploymentTarget, build_dir: str = DEFAULT_BUILD_DIR) -> "ContractDeployer":
        """Open a connection for a resolved target and check it is the expected chain"""
        account = load_account(target.credential)
        try:
            w3 = Web3(Web3.HTTPProvider(target.rpc_url))
            w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
            if not w3.is_connected():
                raise RemoteOperationError(f"Could not connect to RPC URL for {target.name}")
            chain_id = w3.eth.chain_id
        except RemoteOperationError:
            logger.error(f"Failed to connect to {target.name}")
            raise
        except Exception as e:
            logger.error(f"Failed to connect to {target.name}: {e}")
            raise RemoteOperationError(f"Could not connect to {target.name}: {e}") from e

        if not target.matches_any_network and chain_id != target.network_id:
            raise ConfigurationError(
                f"{target.name} expects chain id {target.network_id} but the RPC endpoint reports {chain_id}"
            )
        logger.info(f"Connected to {target.name} (chain id {chain_id})")

        return cls(w3, account=account, build_dir=build_dir, gas_price=target.gas_price,
                   confirmation_timeout=target.confirmation_timeout)

    @property
    def sender(self) -> str:
        """Address transactions are sent from"""
        if self._sender is None:
            try:
                accounts = self.w3.eth.accounts
            except Exception as e:
                raise RemoteOperationError(f"Could not list node accounts: {e}") from e
            if not accounts:
                raise ConfigurationError("No credential configured and the node has no unlocked accounts")
            self._sender = accounts[0]
        return self._sender

    def load_artifact(self, name: str) -> Dict[str, Any]:
        """Loads a compiled contract's ABI and bytecode from its JSON artifact."""
        if name not in self._artifacts:
            path = os.path.join(self.build_dir, f"{name}.json")
            try:
                with open(path, 'r') as f:
                    data = json.load(f)
            except FileNotFoundError:
                raise ConfigurationError(f"Contract artifact not found: {path}. Compile the contracts first.")
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Contract artifact {path} is not valid JSON: {e}")

            if not data.get('abi') or not data.get('bytecode'):
                raise ConfigurationError(f"Contract artifact {path} has no abi or bytecode")
            self._artifacts[name] = {'abi': data['abi'], 'bytecode': data['bytecode']}
        return self._artifacts[name]

    def deploy(self, name: str, *args) -> str:
        """Deploy a contract and return its checksummed address"""
        artifact = self.load_artifact(name)
        factory = self.w3.eth.contract(abi=artifact['abi'], bytecode=artifact['bytecode'])
        logger.info(f"Deploying {name}")
        receipt = self._send(f"deploy {name}", factory.constructor(*args))

        address = receipt.get('contractAddress')
        if not address:
            raise RemoteOperationError(f"Deployment of {name} returned no contract address")
        address = Web3.to_checksum_address(address)
        logger.info(f"{name} deployed at {address}")
        return address

    def encode_call(self, name: str, function: str, args) -> str:
        """ABI-encode a call to `function` using the artifact's ABI"""
        artifact = self.load_artifact(name)
        contract = self.w3.eth.contract(abi=artifact['abi'])
        try:
            return contract.encode_abi(function, args=list(args))
        except Exception as e:
            raise ConfigurationError(f"Could not encode {name}.{function}: {e}")

    def transact(self, name: str, address: str, function: str, *args) -> Dict[str, Any]:
        """Call a state-changing function on a deployed contract and wait for it"""
        artifact = self.load_artifact(name)
        contract = self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=artifact['abi'])
        logger.info(f"Calling {name}.{function} at {address}")
        return self._send(f"{name}.{function}", getattr(contract.functions, function)(*args))

    def _send(self, label: str, call) -> Dict[str, Any]:
        try:
            tx = call.build_transaction({
                'from': self.sender,
                'nonce': self.w3.eth.get_transaction_count(self.sender, 'pending'),
                'gasPrice': self.gas_price if self.gas_price is not None else self.w3.eth.gas_price,
            })

            if self.account is not None:
                signed_tx = self.account.sign_transaction(tx)
                tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
            else:
                tx_hash = self.w3.eth.send_transaction(tx)

            logger.info(f"Transaction sent for {label}: {Web3.to_hex(tx_hash)}")
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.confirmation_timeout)
        except (ConfigurationError, RemoteOperationError):
            raise
        except Exception as e:
            logger.error(f"Failed to {label}: {e}")
            raise RemoteOperationError(f"Failed to {label}: {e}") from e

        if receipt['status'] != 1:
            logger.error(f"Transaction for {label} reverted in block {receipt['blockNumber']}")
            raise RemoteOperationError(f"Transaction for {label} reverted: {Web3.to_hex(tx_hash)}")

        logger.info(f"Transaction confirmed in block {receipt['blockNumber']}")
        return receipt
