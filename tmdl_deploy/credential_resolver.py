"""
credential_resolver.py  –  One effective AuthConfig per invocation

Sources, highest priority first:

  1. explicit options (CLI flags)
  2. legacy combined JSON variable  TMDL_AUTH_CONFIG
  3. individual variables           TMDL_WORKSPACE_URL / _CLIENT_ID / _CLIENT_SECRET / _TENANT_ID
  4. cached state                   ~/.tmdl-deploy/auth.json

Sources are applied in that order with merge-missing semantics: a field is
only filled while it is still empty, so a value set by a higher-priority
source is never overwritten.  What is still missing afterwards is inferred,
taken from a signed-in ``az`` CLI (interactive token only), prompted for on a
terminal, or reported as a ConfigurationError when unattended.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional, TextIO

from .config import (
    ENV_CLIENT_ID,
    ENV_CLIENT_SECRET,
    ENV_LEGACY_CONFIG,
    ENV_TENANT_ID,
    ENV_WORKSPACE_URL,
)
from .credential_store import CredentialStore, Hit, LoadResult, Miss, unwrap
from .errors import ConfigurationError
from .models import AuthConfig, AuthMode, CachedAuthState, is_blank
from .prompts import Prompter
from .runtime import is_non_interactive
from .token_acquirer import AcquiredToken

logger = logging.getLogger(__name__)

_MERGED_FIELDS = (
    "mode",
    "workspace_url",
    "access_token",
    "access_token_expires_on",
    "account_username",
    "client_id",
    "client_secret",
    "tenant_id",
    "authentication_record",
)


@dataclass
class ExplicitOptions:
    """Values the caller passed on the command line."""

    workspace: Optional[str] = None
    name: Optional[str] = None
    interactive: bool = False
    service_principal: bool = False
    client_id: Optional[str] = None
    client_secret: Optional[str] = field(default=None, repr=False)
    tenant_id: Optional[str] = None
    no_browser: bool = False

    def to_config(self) -> AuthConfig:
        if self.interactive and self.service_principal:
            raise ConfigurationError("Use either --interactive or --service-principal, not both.")
        mode = None
        if self.interactive:
            mode = AuthMode.INTERACTIVE
        elif self.service_principal:
            mode = AuthMode.SERVICE_PRINCIPAL
        return AuthConfig(
            mode=mode,
            workspace_url=_clean(self.workspace),
            model_name=_clean(self.name),
            client_id=_clean(self.client_id),
            client_secret=self.client_secret if not is_blank(self.client_secret) else None,
            tenant_id=_clean(self.tenant_id),
        )


def _clean(value: Optional[str]) -> Optional[str]:
    return None if is_blank(value) else value.strip()


def _is_empty(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def merge_missing(target: AuthConfig, source: Optional[AuthConfig]) -> AuthConfig:
    """Fill every still-empty field of *target* from *source*.

    A source's model name is never taken as the model name; it only seeds
    ``previous_model_name`` so a later rename can be detected.
    """
    if source is None:
        return target
    for name in _MERGED_FIELDS:
        if _is_empty(getattr(target, name)) and not _is_empty(getattr(source, name)):
            setattr(target, name, getattr(source, name))
    if _is_empty(target.previous_model_name):
        target.previous_model_name = _clean(source.model_name) or _clean(source.previous_model_name)
    return target


def config_from_individual_env(environ: Mapping[str, str]) -> Optional[AuthConfig]:
    workspace = _clean(environ.get(ENV_WORKSPACE_URL))
    client_id = _clean(environ.get(ENV_CLIENT_ID))
    client_secret = environ.get(ENV_CLIENT_SECRET) or None
    tenant_id = _clean(environ.get(ENV_TENANT_ID))

    if not any((workspace, client_id, client_secret, tenant_id)):
        return None

    return AuthConfig(
        mode=AuthMode.SERVICE_PRINCIPAL if client_id and tenant_id else AuthMode.INTERACTIVE,
        workspace_url=workspace,
        client_id=client_id,
        client_secret=client_secret,
        tenant_id=tenant_id,
    )


def config_from_legacy_env(environ: Mapping[str, str]) -> "LoadResult[AuthConfig]":
    raw = environ.get(ENV_LEGACY_CONFIG)
    if is_blank(raw):
        return Miss(f"{ENV_LEGACY_CONFIG} not set")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        return Miss(f"{ENV_LEGACY_CONFIG} is not valid JSON: {exc.msg}")
    if not isinstance(data, dict):
        return Miss(f"{ENV_LEGACY_CONFIG} is not a JSON object")
    return Hit(AuthConfig.from_dict(data))


def validate_config(config: AuthConfig) -> None:
    if is_blank(config.workspace_url):
        raise ConfigurationError(f"Workspace URL is required. Use --workspace or {ENV_WORKSPACE_URL}.")
    if config.mode is None:
        raise ConfigurationError("Invalid authentication mode. Use interactive or service-principal.")
    if config.is_service_principal:
        if is_blank(config.client_id):
            raise ConfigurationError(
                f"Client ID is required for service principal authentication. Use --client-id or {ENV_CLIENT_ID}."
            )
        if is_blank(config.tenant_id):
            raise ConfigurationError(
                f"Tenant ID is required for service principal authentication. Use --tenant-id or {ENV_TENANT_ID}."
            )


class CredentialResolver:

    def __init__(self, store: CredentialStore,
                 environ: Optional[Mapping[str, str]] = None,
                 prompter: Optional[Prompter] = None,
                 cli_token_source: Optional[Callable[[], Optional[AcquiredToken]]] = None,
                 stdin: Optional[TextIO] = None):
        self.store = store
        self.environ = os.environ if environ is None else environ
        self.prompter = prompter
        self.cli_token_source = cli_token_source
        self.non_interactive = is_non_interactive(self.environ, stdin)

    @property
    def can_prompt(self) -> bool:
        return self.prompter is not None and not self.non_interactive

    def resolve(self, options: ExplicitOptions) -> AuthConfig:
        config = options.to_config()

        legacy = config_from_legacy_env(self.environ)
        if isinstance(legacy, Miss):
            logger.info("Legacy config not used: %s", legacy.reason)
        merge_missing(config, unwrap(legacy))
        merge_missing(config, config_from_individual_env(self.environ))

        cached = self.store.load()
        merge_missing(config, cached.to_config() if cached else None)

        self._infer_mode(config)
        self._drop_foreign_token(config, cached)

        if config.is_interactive and not config.has_usable_access_token():
            self._try_cli_token(config)

        if self.can_prompt:
            self._prompt_missing(config)
        return config

    # ── Steps ───────────────────────────────────────────────────────────────

    def _infer_mode(self, config: AuthConfig) -> None:
        if config.mode is not None:
            return
        if not is_blank(config.client_id) and not is_blank(config.tenant_id):
            config.mode = AuthMode.SERVICE_PRINCIPAL
        elif not self.can_prompt:
            config.mode = AuthMode.INTERACTIVE
        else:
            choice = self.prompter.prompt_choice(
                "Select authentication mode:",
                [AuthMode.INTERACTIVE.value, AuthMode.SERVICE_PRINCIPAL.value],
            )
            config.mode = AuthMode.parse(choice)

    @staticmethod
    def _drop_foreign_token(config: AuthConfig, cached: Optional[CachedAuthState]) -> None:
        """A token cached under the other mode belongs to a different identity."""
        if cached is None or cached.mode is None or cached.mode is config.mode:
            return
        if config.access_token and config.access_token == cached.access_token:
            logger.info("Discarding cached %s token for %s run", cached.mode.value, config.mode.value)
            config.clear_token()

    def _try_cli_token(self, config: AuthConfig) -> None:
        if self.cli_token_source is None:
            return
        token = self.cli_token_source()
        if token is None:
            return
        logger.info("Using access token from Azure CLI")
        config.access_token = token.access_token
        config.access_token_expires_on = token.expires_on

    def _prompt_missing(self, config: AuthConfig) -> None:
        if is_blank(config.workspace_url):
            config.workspace_url = self.prompter.prompt_required("Workspace URL")
        if config.is_service_principal:
            if is_blank(config.client_id):
                config.client_id = self.prompter.prompt_required("Client ID")
            if is_blank(config.tenant_id):
                config.tenant_id = self.prompter.prompt_required("Tenant ID")
