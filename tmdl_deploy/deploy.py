"""
deploy.py  –  Deploy, login and logout entry points

Order within one deploy is fixed: credentials are resolved and validated,
then a token is acquired (only when no usable one is cached), then the
remote workspace is reconciled.  Every failure is turned into a
DeployResult; nothing here lets an exception escape to the caller.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Callable, Mapping, Optional, TextIO

import requests

from .credential_resolver import CredentialResolver, ExplicitOptions, validate_config
from .credential_store import CredentialStore, FileCredentialStore
from .config import ENV_CLIENT_ID, ENV_CLIENT_SECRET, ENV_TENANT_ID
from .errors import ConfigurationError, DeployError, redact
from .fabric_api import FabricClient, new_session
from .identity import IdentityMapper
from .model import LocalModel, extract_workspace_id
from .models import AuthConfig, AuthMode, DeployResult, is_blank
from .operations import OperationPoller
from .prompts import ConsolePrompter, Prompter
from .reconciler import ItemReconciler
from .runtime import is_non_interactive
from .token_acquirer import (
    AcquiredToken,
    InteractiveFlow,
    ServicePrincipalFlow,
    TokenAcquirer,
)

logger = logging.getLogger(__name__)


class Deployer:
    """Wires the resolver, acquirer, store and reconciler for one invocation."""

    def __init__(self, store: Optional[CredentialStore] = None,
                 environ: Optional[Mapping[str, str]] = None,
                 prompter: Optional[Prompter] = None,
                 acquirer: Optional[TokenAcquirer] = None,
                 session_factory: Callable[[str], requests.Session] = new_session,
                 sleep: Callable[[float], None] = time.sleep,
                 stdin: Optional[TextIO] = None):
        self.store = store if store is not None else FileCredentialStore()
        self.environ = os.environ if environ is None else environ
        self.prompter = prompter if prompter is not None else ConsolePrompter()
        self.acquirer = acquirer or TokenAcquirer(environ=self.environ)
        self.session_factory = session_factory
        self.sleep = sleep
        self.non_interactive = is_non_interactive(self.environ, stdin)
        self._stdin = stdin

    @property
    def interactive_prompter(self) -> Optional[Prompter]:
        return None if self.non_interactive else self.prompter

    # ── Deploy ──────────────────────────────────────────────────────────────

    def deploy(self, path, options: ExplicitOptions) -> DeployResult:
        secret = options.client_secret
        try:
            resolver = CredentialResolver(
                self.store,
                environ=self.environ,
                prompter=self.prompter,
                cli_token_source=self.acquirer.try_cli_token,
                stdin=self._stdin,
            )
            config = resolver.resolve(options)
            secret = secret or config.client_secret
            validate_config(config)
            workspace_id = extract_workspace_id(config.workspace_url)
            model = LocalModel.load(path)

            self.authenticate(config, allow_browser=not options.no_browser)
            self.store.save(config)

            client = self._client(config.access_token)
            reconciler = ItemReconciler(client, IdentityMapper(self.store), self.interactive_prompter)
            result = reconciler.reconcile(workspace_id, model, config)
            self.store.save(config)
            return result
        except DeployError as exc:
            return DeployResult.error(redact(exc.message, secret))
        except requests.RequestException as exc:
            return DeployResult.error(redact(f"Fabric API request failed: {exc}", secret))
        except Exception as exc:
            logger.debug("Deployment failed", exc_info=True)
            return DeployResult.error(redact(f"Deployment command failed: {exc}", secret))

    def authenticate(self, config: AuthConfig, allow_browser: bool = True) -> None:
        """Put a usable token on *config*.  The client secret is cleared afterwards."""
        try:
            if config.is_interactive:
                if config.has_usable_access_token():
                    logger.info("Using cached access token")
                    return
                token = self.acquirer.acquire(InteractiveFlow(
                    allow_browser=allow_browser,
                    tenant_id=config.tenant_id,
                    authentication_record=config.authentication_record,
                ))
                self._apply(config, token)
                return

            if config.has_usable_access_token() and _same_id(config.account_username, config.client_id):
                logger.info("Using cached service principal token for %s", config.client_id)
                return

            if is_blank(config.client_secret):
                if self.non_interactive:
                    raise ConfigurationError(
                        f"Missing {ENV_CLIENT_SECRET} for service principal authentication in CI environment."
                    )
                config.client_secret = self.prompter.prompt_secret("Client Secret")

            token = self.acquirer.acquire(ServicePrincipalFlow(
                client_id=config.client_id,
                tenant_id=config.tenant_id,
                client_secret=config.client_secret,
            ))
            self._apply(config, token)
        finally:
            config.clear_secret()

    @staticmethod
    def _apply(config: AuthConfig, token: AcquiredToken) -> None:
        config.access_token = token.access_token
        config.access_token_expires_on = token.expires_on
        config.account_username = token.account_username
        if token.authentication_record:
            config.authentication_record = token.authentication_record

    def _client(self, token: str) -> FabricClient:
        session = self.session_factory(token)
        return FabricClient(session, OperationPoller(session, sleep=self.sleep))

    # ── Login / logout ──────────────────────────────────────────────────────

    def login(self, options: ExplicitOptions) -> DeployResult:
        secret = options.client_secret
        try:
            config = options.to_config()
            cached = self.store.load()
            if cached is not None:
                config.workspace_url = config.workspace_url or cached.workspace_url
                config.previous_model_name = cached.model_name or cached.previous_model_name

            if config.mode is None:
                if self.non_interactive:
                    raise ConfigurationError(
                        "Non-interactive environment detected. Use --interactive or --service-principal explicitly."
                    )
                config.mode = AuthMode.parse(self.prompter.prompt_choice(
                    "Select authentication mode:",
                    [AuthMode.INTERACTIVE.value, AuthMode.SERVICE_PRINCIPAL.value],
                ))

            if config.is_service_principal:
                self._complete_service_principal(config)

            self.authenticate(config, allow_browser=not options.no_browser)
            self.store.save(config)

            where = getattr(self.store, "auth_path", None)
            message = "Login successful."
            if where is not None:
                message = f"Login successful. Auth cached at {where}"
            return DeployResult.ok(message)
        except DeployError as exc:
            return DeployResult.error(redact(f"Login failed: {exc.message}", secret))
        except Exception as exc:
            logger.debug("Login failed", exc_info=True)
            return DeployResult.error(redact(f"Login failed: {exc}", secret))

    def _complete_service_principal(self, config: AuthConfig) -> None:
        missing = is_blank(config.client_id) or is_blank(config.tenant_id) or is_blank(config.client_secret)
        if missing and self.non_interactive:
            raise ConfigurationError(
                "Non-interactive environment detected. For service-principal login, provide "
                f"--client-id, --tenant-id and --client-secret ({ENV_CLIENT_ID}, {ENV_TENANT_ID}, {ENV_CLIENT_SECRET})."
            )
        if is_blank(config.client_id):
            config.client_id = self.prompter.prompt_required("Client ID")
        if is_blank(config.tenant_id):
            config.tenant_id = self.prompter.prompt_required("Tenant ID")

    def logout(self) -> DeployResult:
        self.store.clear()
        return DeployResult.ok("Cached authentication cleared.")


def _same_id(a: Optional[str], b: Optional[str]) -> bool:
    return not is_blank(a) and not is_blank(b) and a.strip().lower() == b.strip().lower()


def deploy(path, options: Optional[ExplicitOptions] = None, **kwargs) -> DeployResult:
    return Deployer(**kwargs).deploy(path, options or ExplicitOptions())


def login(options: Optional[ExplicitOptions] = None, **kwargs) -> DeployResult:
    return Deployer(**kwargs).login(options or ExplicitOptions())


def logout(**kwargs) -> DeployResult:
    return Deployer(**kwargs).logout()
