"""Tests for the three token flows and the CI guard."""

import time
from unittest.mock import MagicMock

import pytest
from azure.core.credentials import AccessToken
from azure.core.exceptions import ClientAuthenticationError, ServiceRequestError
from azure.identity import AuthenticationRecord, CredentialUnavailableError

from tmdl_deploy.errors import AuthenticationError, ConfigurationError
from tmdl_deploy.token_acquirer import (
    InteractiveFlow,
    ServicePrincipalFlow,
    TokenAcquirer,
)


def _record(username="ada@contoso.com"):
    return AuthenticationRecord(
        "tenant", "04b07795-8ddb-461a-bbee-02f9e1bf7b46",
        "login.microsoftonline.com", "home.account", username,
    )


def _credential(token="tok", record=None, error=None):
    cred = MagicMock()
    if error is not None:
        cred.get_token.side_effect = error
        cred.authenticate.side_effect = error
    else:
        cred.get_token.return_value = AccessToken(token, int(time.time()) + 3600)
        cred.authenticate.return_value = record or _record()
    return cred


@pytest.fixture
def factory():
    return MagicMock()


def _acquirer(factory, environ=None):
    return TokenAcquirer(factory=factory, environ=environ or {}, device_code_callback=MagicMock())


class TestServicePrincipal:

    def test_success(self, factory):
        factory.client_secret.return_value = _credential("sp-token")
        token = _acquirer(factory).acquire(ServicePrincipalFlow("cid", "tid", "s3cret"))

        assert token.access_token == "sp-token"
        assert token.account_username == "cid"
        assert token.expires_on is not None
        factory.client_secret.assert_called_once_with("tid", "cid", "s3cret")

    def test_secret_not_in_flow_repr(self):
        assert "s3cret" not in repr(ServicePrincipalFlow("cid", "tid", "s3cret"))

    def test_invalid_credentials_are_authentication_error(self, factory):
        factory.client_secret.return_value = _credential(
            error=ClientAuthenticationError("AADSTS7000215: Invalid client secret s3cret provided."))
        with pytest.raises(AuthenticationError) as excinfo:
            _acquirer(factory).acquire(ServicePrincipalFlow("cid", "tid", "s3cret"))
        assert "s3cret" not in excinfo.value.message
        assert "AADSTS7000215" in excinfo.value.message

    def test_network_error_is_authentication_error(self, factory):
        factory.client_secret.return_value = _credential(error=ServiceRequestError("connection refused"))
        with pytest.raises(AuthenticationError):
            _acquirer(factory).acquire(ServicePrincipalFlow("cid", "tid", "s3cret"))
        assert factory.client_secret.return_value.get_token.call_count == 1

    def test_missing_secret_is_configuration_error(self, factory):
        with pytest.raises(ConfigurationError):
            _acquirer(factory).acquire(ServicePrincipalFlow("cid", "tid", ""))
        factory.client_secret.assert_not_called()


class TestInteractive:

    def test_refused_in_ci(self, factory):
        with pytest.raises(AuthenticationError) as excinfo:
            _acquirer(factory, {"GITHUB_ACTIONS": "true"}).acquire(InteractiveFlow())
        assert "CI" in excinfo.value.message
        assert factory.method_calls == []

    def test_silent_reuse_of_cached_session(self, factory):
        factory.interactive_browser.return_value = _credential("silent-token")
        flow = InteractiveFlow(authentication_record=_record().serialize())

        token = _acquirer(factory).acquire(flow)

        assert token.access_token == "silent-token"
        assert token.account_username == "ada@contoso.com"
        _, kwargs = factory.interactive_browser.call_args
        assert kwargs["silent_only"] is True
        factory.device_code.assert_not_called()

    def test_silent_failure_falls_back_to_browser(self, factory):
        silent = _credential(error=CredentialUnavailableError("interaction required"))
        browser = _credential("browser-token")
        factory.interactive_browser.side_effect = [silent, browser]

        token = _acquirer(factory).acquire(InteractiveFlow(authentication_record=_record().serialize()))

        assert token.access_token == "browser-token"
        assert token.authentication_record is not None
        assert factory.interactive_browser.call_count == 2

    def test_browser_failure_falls_back_to_device_code(self, factory):
        factory.interactive_browser.return_value = _credential(error=ClientAuthenticationError("no browser"))
        factory.device_code.return_value = _credential("device-token")

        token = _acquirer(factory).acquire(InteractiveFlow())

        assert token.access_token == "device-token"
        factory.device_code.assert_called_once()

    def test_browser_suppressed_goes_straight_to_device_code(self, factory):
        factory.device_code.return_value = _credential("device-token")

        token = _acquirer(factory).acquire(InteractiveFlow(allow_browser=False))

        assert token.access_token == "device-token"
        factory.interactive_browser.assert_not_called()

    def test_all_flows_failing_is_authentication_error(self, factory):
        factory.interactive_browser.return_value = _credential(error=ClientAuthenticationError("no browser"))
        factory.device_code.return_value = _credential(error=ClientAuthenticationError("code expired"))

        with pytest.raises(AuthenticationError) as excinfo:
            _acquirer(factory).acquire(InteractiveFlow())
        assert "code expired" in excinfo.value.message

    def test_transport_errors_fall_back_then_become_authentication_error(self, factory):
        factory.interactive_browser.return_value = _credential(error=ServiceRequestError("connection reset"))
        factory.device_code.return_value = _credential(error=ServiceRequestError("connection reset"))

        with pytest.raises(AuthenticationError) as excinfo:
            _acquirer(factory).acquire(InteractiveFlow())

        factory.device_code.assert_called_once()
        assert "connection reset" in excinfo.value.message

    def test_transport_error_in_silent_reuse_falls_back_to_browser(self, factory):
        silent = _credential(error=ServiceRequestError("dns failure"))
        factory.interactive_browser.side_effect = [silent, _credential("browser-token")]

        token = _acquirer(factory).acquire(InteractiveFlow(authentication_record=_record().serialize()))

        assert token.access_token == "browser-token"

    def test_unreadable_record_is_ignored(self, factory):
        factory.interactive_browser.return_value = _credential("browser-token")
        token = _acquirer(factory).acquire(InteractiveFlow(authentication_record="{not json"))
        assert token.access_token == "browser-token"
        _, kwargs = factory.interactive_browser.call_args
        assert kwargs.get("silent_only", False) is False


class TestCliFallback:

    def test_returns_token(self, factory):
        factory.azure_cli.return_value = _credential("cli-token")
        token = _acquirer(factory).try_cli_token()
        assert token.access_token == "cli-token"

    def test_unavailable_cli_returns_none(self, factory):
        factory.azure_cli.return_value = _credential(error=CredentialUnavailableError("az not found"))
        assert _acquirer(factory).try_cli_token() is None


def test_unknown_flow_type(factory):
    with pytest.raises(TypeError):
        _acquirer(factory).acquire(object())
