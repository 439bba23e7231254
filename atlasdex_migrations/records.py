"""Deployed address bookkeeping in deployments/<network>.json."""

import json
import logging
import os
import tempfile
from datetime import datetime
from typing import Any, Dict, Optional

from .errors import ConfigurationError
from .networks import DeploymentMode

logger = logging.getLogger(__name__)

DEFAULT_DEPLOYMENTS_DIR = "deployments"


def deployment_path(network: str, directory: str = DEFAULT_DEPLOYMENTS_DIR) -> str:
    return os.path.join(directory, f"{network}.json")


def load_deployment(network: str, directory: str = DEFAULT_DEPLOYMENTS_DIR) -> Optional[Dict[str, Any]]:
    path = deployment_path(network, directory)
    if not os.path.exists(path):
        return None
    try:
        with open(path, 'r') as f:
            record = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Deployment record {path} is not valid JSON: {e}")
    except OSError as e:
        raise ConfigurationError(f"Could not read deployment record {path}: {e}")

    if not isinstance(record, dict):
        raise ConfigurationError(f"Deployment record {path} must be a JSON object")
    return record


def recorded_proxy(network: str, directory: str = DEFAULT_DEPLOYMENTS_DIR) -> Optional[str]:
    """Proxy address stored by the last successful run, if any"""
    record = load_deployment(network, directory)
    if not record:
        return None
    return record.get('proxy')


def save_deployment(result, directory: str = DEFAULT_DEPLOYMENTS_DIR) -> str:
    """
    Write the run's addresses to <directory>/<network>.json.

    An upgrade keeps the fields of the previous record it does not replace
    (the setup address in particular). The file is written to a temporary
    name and moved into place so a crash never leaves a truncated record.

    Raises:
        OSError: the record could not be written
    """
    os.makedirs(directory, exist_ok=True)
    path = deployment_path(result.network, directory)

    record = result.as_dict()
    if result.mode is DeploymentMode.UPGRADE:
        try:
            previous = load_deployment(result.network, directory) or {}
        except ConfigurationError as e:
            logger.warning(f"Ignoring unreadable previous record: {e}")
            previous = {}
        record = {**previous, **{k: v for k, v in record.items() if v is not None}}
    record['deployed_at'] = datetime.now().isoformat()

    fd, tmp_path = tempfile.mkstemp(prefix=f".{result.network}.", suffix=".json", dir=directory)
    try:
        with os.fdopen(fd, 'w') as f:
            json.dump(record, f, indent=2)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise

    logger.info(f"Deployment record written to {path}")
    return path
