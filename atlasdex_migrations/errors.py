"""Exceptions raised while resolving configuration or deploying contracts."""


class DeploymentError(Exception):
    """Base class for every failure that aborts a migration run"""


class ConfigurationError(DeploymentError):
    """Configuration is present but unusable (bad address, broken artifact)"""


class MissingConfigurationError(ConfigurationError):
    """A network or one of its required attributes is not configured"""


class RemoteOperationError(DeploymentError):
    """An RPC call or transaction failed on the remote chain"""
