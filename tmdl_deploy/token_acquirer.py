"""
token_acquirer.py  –  Bearer tokens for the Fabric API

Flows
-----
  ServicePrincipalFlow  →  client-credential exchange (ClientSecretCredential)
  InteractiveFlow       →  silent reuse of a cached account session, then
                           browser sign in (unless suppressed), then device code

Browser and device-code sign in are refused when a CI environment is detected;
unattended runs must use a service principal.  The client secret is only ever
handed to azure-identity and never kept on the acquired token.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Mapping, Optional, Union

from azure.core.exceptions import AzureError
from azure.identity import (
    AuthenticationRecord,
    AzureCliCredential,
    ClientSecretCredential,
    DeviceCodeCredential,
    InteractiveBrowserCredential,
    TokenCachePersistenceOptions,
)

from .config import (
    CLI_TOKEN_LIFETIME_SECONDS,
    ENV_CLIENT_ID,
    ENV_CLIENT_SECRET,
    ENV_TENANT_ID,
    FABRIC_SCOPE,
    MSAL_CACHE_NAME,
    PUBLIC_CLIENT_ID,
)
from .errors import AuthenticationError, ConfigurationError, redact
from .models import is_blank
from .runtime import is_ci_environment

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Flows
# ---------------------------------------------------------------------------

@dataclass
class ServicePrincipalFlow:
    client_id: str
    tenant_id: str
    client_secret: str = field(repr=False)


@dataclass
class InteractiveFlow:
    allow_browser: bool = True
    tenant_id: Optional[str] = None
    authentication_record: Optional[str] = field(default=None, repr=False)


AuthFlow = Union[ServicePrincipalFlow, InteractiveFlow]


@dataclass
class AcquiredToken:
    access_token: str = field(repr=False)
    expires_on: Optional[datetime]
    account_username: Optional[str] = None
    authentication_record: Optional[str] = field(default=None, repr=False)


def _expiry(access_token) -> Optional[datetime]:
    expires_on = getattr(access_token, "expires_on", None)
    if not expires_on:
        return None
    return datetime.fromtimestamp(expires_on, tz=timezone.utc)


# ---------------------------------------------------------------------------
# Credential construction
# ---------------------------------------------------------------------------

DeviceCodeCallback = Callable[[str, str, datetime], None]


class CredentialFactory:
    """Builds azure-identity credentials.  Swapped out in tests."""

    def __init__(self, client_id: str = PUBLIC_CLIENT_ID, cache_name: str = MSAL_CACHE_NAME):
        self.client_id = client_id
        self.cache_name = cache_name

    def _cache_options(self) -> TokenCachePersistenceOptions:
        return TokenCachePersistenceOptions(name=self.cache_name, allow_unencrypted_storage=True)

    def client_secret(self, tenant_id: str, client_id: str, client_secret: str):
        return ClientSecretCredential(tenant_id=tenant_id, client_id=client_id,
                                      client_secret=client_secret)

    def interactive_browser(self, tenant_id: Optional[str],
                            record: Optional[AuthenticationRecord] = None,
                            silent_only: bool = False):
        kwargs = {
            "client_id": self.client_id,
            "cache_persistence_options": self._cache_options(),
            "disable_automatic_authentication": silent_only,
        }
        if tenant_id:
            kwargs["tenant_id"] = tenant_id
        if record is not None:
            kwargs["authentication_record"] = record
        return InteractiveBrowserCredential(**kwargs)

    def device_code(self, tenant_id: Optional[str], prompt_callback: DeviceCodeCallback):
        kwargs = {
            "client_id": self.client_id,
            "cache_persistence_options": self._cache_options(),
            "prompt_callback": prompt_callback,
        }
        if tenant_id:
            kwargs["tenant_id"] = tenant_id
        return DeviceCodeCredential(**kwargs)

    def azure_cli(self):
        return AzureCliCredential(process_timeout=10)


def print_device_code(verification_uri: str, user_code: str, expires_on: datetime) -> None:
    print("\nTo sign in to Fabric:", file=sys.stderr)
    print(f"  1. Open: {verification_uri}", file=sys.stderr)
    print(f"  2. Enter code: {user_code}", file=sys.stderr)
    print("  3. Complete sign in\n", file=sys.stderr)


# ---------------------------------------------------------------------------
# Acquirer
# ---------------------------------------------------------------------------

class TokenAcquirer:

    def __init__(self, factory: Optional[CredentialFactory] = None,
                 environ: Optional[Mapping[str, str]] = None,
                 scope: str = FABRIC_SCOPE,
                 device_code_callback: DeviceCodeCallback = print_device_code):
        self.factory = factory or CredentialFactory()
        self.environ = os.environ if environ is None else environ
        self.scope = scope
        self.device_code_callback = device_code_callback

    def acquire(self, flow: AuthFlow) -> AcquiredToken:
        if isinstance(flow, ServicePrincipalFlow):
            return self._acquire_service_principal(flow)
        if isinstance(flow, InteractiveFlow):
            return self._acquire_interactive(flow)
        raise TypeError(f"Unsupported authentication flow: {type(flow).__name__}")

    # ── Service principal ───────────────────────────────────────────────────

    def _acquire_service_principal(self, flow: ServicePrincipalFlow) -> AcquiredToken:
        if is_blank(flow.client_id):
            raise ConfigurationError(f"Client ID is required for service principal authentication ({ENV_CLIENT_ID}).")
        if is_blank(flow.tenant_id):
            raise ConfigurationError(f"Tenant ID is required for service principal authentication ({ENV_TENANT_ID}).")
        if is_blank(flow.client_secret):
            raise ConfigurationError(f"Client secret is required for service principal authentication ({ENV_CLIENT_SECRET}).")

        logger.info("Requesting service principal token for client %s", flow.client_id)
        try:
            credential = self.factory.client_secret(flow.tenant_id, flow.client_id, flow.client_secret)
            token = credential.get_token(self.scope)
        except AzureError as exc:
            raise AuthenticationError(
                "Failed to acquire token for service principal: "
                + redact(str(exc), flow.client_secret)
            ) from None
        if not token or not token.token:
            raise AuthenticationError("No access token in service principal authentication response.")
        return AcquiredToken(token.token, _expiry(token), account_username=flow.client_id)

    # ── Interactive ─────────────────────────────────────────────────────────

    def _acquire_interactive(self, flow: InteractiveFlow) -> AcquiredToken:
        if is_ci_environment(self.environ):
            raise AuthenticationError(
                "Interactive sign in is not available in CI environments. "
                f"Provide service principal credentials ({ENV_CLIENT_ID}, "
                f"{ENV_TENANT_ID}, {ENV_CLIENT_SECRET}) instead."
            )

        record = self._load_record(flow.authentication_record)
        if record is not None:
            silent = self._try_silent(flow, record)
            if silent is not None:
                return silent

        errors: list[str] = []
        if flow.allow_browser:
            try:
                credential = self.factory.interactive_browser(flow.tenant_id)
                return self._authenticate(credential)
            except AzureError as exc:
                logger.info("Browser sign in failed, falling back to device code: %s", exc)
                errors.append(f"browser: {exc}")

        try:
            credential = self.factory.device_code(flow.tenant_id, self.device_code_callback)
            return self._authenticate(credential)
        except AzureError as exc:
            errors.append(f"device code: {exc}")
            raise AuthenticationError("Interactive sign in failed (" + "; ".join(errors) + ")") from None

    def _try_silent(self, flow: InteractiveFlow, record: AuthenticationRecord) -> Optional[AcquiredToken]:
        try:
            credential = self.factory.interactive_browser(flow.tenant_id, record=record, silent_only=True)
            token = credential.get_token(self.scope)
        except AzureError as exc:
            logger.info("Silent sign in for %s not possible: %s", record.username, exc)
            return None
        logger.info("Reused cached session for %s", record.username)
        return AcquiredToken(token.token, _expiry(token), record.username, record.serialize())

    def _authenticate(self, credential) -> AcquiredToken:
        record = credential.authenticate(scopes=[self.scope])
        token = credential.get_token(self.scope)
        if not token or not token.token:
            raise AuthenticationError("Authentication failed - no token received.")
        return AcquiredToken(token.token, _expiry(token), record.username, record.serialize())

    @staticmethod
    def _load_record(serialized: Optional[str]) -> Optional[AuthenticationRecord]:
        if is_blank(serialized):
            return None
        try:
            return AuthenticationRecord.deserialize(serialized)
        except (ValueError, KeyError, TypeError) as exc:
            logger.info("Ignoring unreadable authentication record: %s", exc)
            return None

    # ── Local CLI fallback ──────────────────────────────────────────────────

    def try_cli_token(self) -> Optional[AcquiredToken]:
        """Token from a signed-in ``az`` CLI, or None.  Never raises for auth failures."""
        try:
            token = self.factory.azure_cli().get_token(self.scope)
        except AzureError as exc:
            logger.info("Azure CLI token not available: %s", exc)
            return None
        if not token or not token.token:
            return None
        expires_on = _expiry(token) or (
            datetime.now(timezone.utc) + timedelta(seconds=CLI_TOKEN_LIFETIME_SECONDS)
        )
        return AcquiredToken(token.token, expires_on)
