"""Deploy TMDL semantic models to a Microsoft Fabric workspace."""

from .credential_resolver import CredentialResolver, ExplicitOptions
from .credential_store import FileCredentialStore, InMemoryCredentialStore
from .deploy import Deployer, deploy, login, logout
from .errors import (
    AuthenticationError,
    ConfigurationError,
    DeployError,
    OperationFailedError,
    OperationTimeoutError,
    ReconciliationError,
    RemoteCallError,
)
from .models import AuthConfig, AuthMode, CachedAuthState, DeployAction, DeployResult, RemoteItem

__all__ = [
    "AuthConfig",
    "AuthMode",
    "AuthenticationError",
    "CachedAuthState",
    "ConfigurationError",
    "CredentialResolver",
    "DeployAction",
    "DeployError",
    "DeployResult",
    "Deployer",
    "ExplicitOptions",
    "FileCredentialStore",
    "InMemoryCredentialStore",
    "OperationFailedError",
    "OperationTimeoutError",
    "ReconciliationError",
    "RemoteCallError",
    "RemoteItem",
    "deploy",
    "login",
    "logout",
]
