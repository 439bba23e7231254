#!/usr/bin/env python3
"""
AtlasDex Migrations - Network Configuration

Loads the per-network deployment table and resolves a single
DeploymentTarget for a run. The table is read once at process start and
passed around explicitly; nothing here touches the chain.
"""

import json
import logging
import os
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from web3 import Web3

from .errors import ConfigurationError, MissingConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_NETWORKS_FILE = os.path.join(os.path.dirname(__file__), 'networks.json')

ANY_NETWORK_ID = "*"

DEFAULT_CONFIRMATION_TIMEOUT = 300

_ENV_REFERENCE = re.compile(r"\$\{(\w+)\}")


class DeploymentMode(Enum):
    """How the proxy is activated after the implementation is deployed"""
    FRESH = "fresh"
    UPGRADE = "upgrade"


@dataclass(frozen=True)
class DeploymentTarget:
    """Fully resolved configuration for one network"""
    name: str
    network_id: Union[int, str]
    rpc_url: str
    native_wrapped_address: str
    fee_collector: str
    routers: Tuple[str, ...]
    mode: DeploymentMode = DeploymentMode.FRESH
    credential: Optional[str] = None
    proxy_address: Optional[str] = None
    gas_price: Optional[int] = None
    confirmation_timeout: int = DEFAULT_CONFIRMATION_TIMEOUT

    @property
    def matches_any_network(self) -> bool:
        return self.network_id == ANY_NETWORK_ID


def expand_env(value: Any, environ: Mapping[str, str]) -> Any:
    """
    Substitute ${VAR} references in a string value.

    Returns None when any referenced variable is unset or empty so that
    callers treat the attribute as missing.
    """
    if not isinstance(value, str):
        return value

    missing = []

    def _lookup(match):
        resolved = environ.get(match.group(1))
        if not resolved:
            missing.append(match.group(1))
            return ""
        return resolved

    expanded = _ENV_REFERENCE.sub(_lookup, value)
    if missing:
        logger.debug(f"Unset environment variables referenced: {', '.join(missing)}")
        return None
    return expanded


def parse_mode(entry: Mapping[str, Any]) -> DeploymentMode:
    """Pick the deployment mode from an explicit mode or the legacy flag"""
    if "mode" in entry:
        try:
            return DeploymentMode(str(entry["mode"]).lower())
        except ValueError:
            choices = ", ".join(m.value for m in DeploymentMode)
            raise ConfigurationError(f"Unknown deployment mode '{entry['mode']}' (expected one of: {choices})")
    if entry.get("deployImplementationOnly"):
        return DeploymentMode.UPGRADE
    return DeploymentMode.FRESH


def checksum(value: str, field: str, network: str) -> str:
    if not Web3.is_address(value):
        raise ConfigurationError(f"{network}: {field} is not a valid address: {value}")
    return Web3.to_checksum_address(value)


def as_int(value: Any, field: str, network: str) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{network}: {field} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{network}: {field} must be an integer, got {value!r}")


class NetworkTable:
    """Static table of deployment targets keyed by network name"""

    def __init__(self, entries: Mapping[str, Mapping[str, Any]], environ: Optional[Mapping[str, str]] = None):
        self._entries: Dict[str, Mapping[str, Any]] = dict(entries)
        self._environ = os.environ if environ is None else environ

    @classmethod
    def from_file(cls, path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> "NetworkTable":
        path = path or DEFAULT_NETWORKS_FILE
        try:
            with open(path, 'r') as f:
                data = json.load(f)
        except FileNotFoundError:
            raise MissingConfigurationError(f"Network table not found: {path}")
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Network table {path} is not valid JSON: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError(f"Network table {path} must be a JSON object")
        networks = data.get("networks", data)
        if not isinstance(networks, dict):
            raise ConfigurationError(f"Network table {path} must map network names to objects")
        logger.debug(f"Loaded {len(networks)} networks from {path}")
        return cls(networks, environ)

    def names(self) -> List[str]:
        return sorted(self._entries)

    def __contains__(self, network: str) -> bool:
        return network in self._entries

    def resolve(self, network: str, known_proxy: Optional[str] = None) -> DeploymentTarget:
        """
        Resolve a network name into a DeploymentTarget.

        Args:
            network: Network name as given on the command line
            known_proxy: Proxy address recorded by an earlier run, used when
                the table itself does not pin one

        Raises:
            MissingConfigurationError: the network or a required attribute is absent
            ConfigurationError: an attribute is present but malformed
        """
        if network not in self._entries:
            raise MissingConfigurationError(f"No configuration for network '{network}'")

        entry = self._entries[network]
        if not isinstance(entry, Mapping):
            raise ConfigurationError(f"{network}: network entry must be an object, got {type(entry).__name__}")

        def value(key):
            return expand_env(entry.get(key), self._environ)

        rpc_url = self._rpc_url(network, entry)

        wrapped = value("nativeWrappedAddress")
        if not wrapped:
            raise MissingConfigurationError(f"{network}: nativeWrappedAddress is not configured")

        fee_collector = value("feeCollector")
        if not fee_collector:
            raise MissingConfigurationError(f"{network}: feeCollector is not configured")

        routers = [expand_env(r, self._environ) for r in entry.get("routers") or []]
        if len(routers) < 2 or not all(routers):
            raise MissingConfigurationError(f"{network}: two router addresses are required")

        credential = None
        credential_env = entry.get("credentialEnv")
        if credential_env:
            credential = self._environ.get(credential_env)
            if not credential:
                raise MissingConfigurationError(f"{network}: environment variable {credential_env} is not set")

        mode = parse_mode(entry)
        proxy_address = value("proxyAddress") or known_proxy
        if mode is DeploymentMode.UPGRADE and not proxy_address:
            raise MissingConfigurationError(f"{network}: upgrade requested but no proxy address is configured or recorded")

        gas_price = entry.get("gasPrice")
        network_id = entry.get("networkId", ANY_NETWORK_ID)
        if network_id != ANY_NETWORK_ID:
            network_id = as_int(network_id, "networkId", network)

        return DeploymentTarget(
            name=network,
            network_id=network_id,
            rpc_url=rpc_url,
            native_wrapped_address=checksum(wrapped, "nativeWrappedAddress", network),
            fee_collector=checksum(fee_collector, "feeCollector", network),
            routers=tuple(checksum(r, "routers", network) for r in routers),
            mode=mode,
            credential=credential,
            proxy_address=checksum(proxy_address, "proxyAddress", network) if proxy_address else None,
            gas_price=as_int(gas_price, "gasPrice", network) if gas_price is not None else None,
            confirmation_timeout=as_int(entry.get("confirmationTimeout", DEFAULT_CONFIRMATION_TIMEOUT),
                                        "confirmationTimeout", network),
        )

    def _rpc_url(self, network: str, entry: Mapping[str, Any]) -> str:
        if "rpcUrl" in entry:
            rpc_url = expand_env(entry["rpcUrl"], self._environ)
        elif "port" in entry:
            rpc_url = f"http://{entry.get('host', '127.0.0.1')}:{entry['port']}"
        else:
            rpc_url = None
        if not rpc_url:
            raise MissingConfigurationError(f"{network}: RPC endpoint is not configured")
        return rpc_url
