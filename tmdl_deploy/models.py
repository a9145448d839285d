"""
models.py  –  Data shared between resolver, acquirer, store and reconciler

AuthConfig is the in-memory configuration for one invocation and may carry a
client secret.  CachedAuthState is its on-disk projection, which never does.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from .config import TOKEN_REFRESH_BUFFER_SECONDS


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


class AuthMode(str, enum.Enum):
    INTERACTIVE = "interactive"
    SERVICE_PRINCIPAL = "service-principal"

    @classmethod
    def parse(cls, value: Any) -> Optional["AuthMode"]:
        """Parse a mode string.  ``env`` is the legacy alias for service principal."""
        if isinstance(value, AuthMode):
            return value
        if is_blank(value):
            return None
        text = str(value).strip().lower()
        if text == "env":
            return cls.SERVICE_PRINCIPAL
        return cls(text)


def parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        stamp = value
    elif is_blank(value):
        return None
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        stamp = datetime.fromisoformat(text)
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def token_is_usable(expires_on: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """A token is usable when it has no known expiry or outlives the refresh buffer."""
    if expires_on is None:
        return True
    now = now or utcnow()
    return expires_on - now > timedelta(seconds=TOKEN_REFRESH_BUFFER_SECONDS)


# camelCase names used on disk and in the legacy TMDL_AUTH_CONFIG variable
_WIRE_NAMES = {
    "mode":                    "mode",
    "workspace_url":           "workspaceUrl",
    "access_token":            "accessToken",
    "access_token_expires_on": "accessTokenExpiresOn",
    "account_username":        "accountUsername",
    "model_name":              "modelName",
    "previous_model_name":     "previousModelName",
    "client_id":               "clientId",
    "client_secret":           "clientSecret",
    "tenant_id":               "tenantId",
    "authentication_record":   "authenticationRecord",
}


@dataclass
class AuthConfig:
    mode: Optional[AuthMode] = None
    workspace_url: Optional[str] = None
    access_token: Optional[str] = None
    access_token_expires_on: Optional[datetime] = None
    account_username: Optional[str] = None
    model_name: Optional[str] = None
    previous_model_name: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = field(default=None, repr=False)
    tenant_id: Optional[str] = None
    # Serialized azure.identity AuthenticationRecord; an account pointer, not a credential.
    authentication_record: Optional[str] = field(default=None, repr=False)

    @property
    def is_interactive(self) -> bool:
        return self.mode is AuthMode.INTERACTIVE

    @property
    def is_service_principal(self) -> bool:
        return self.mode is AuthMode.SERVICE_PRINCIPAL

    def has_usable_access_token(self, now: Optional[datetime] = None) -> bool:
        if is_blank(self.access_token):
            return False
        return token_is_usable(self.access_token_expires_on, now)

    def clear_token(self) -> None:
        self.access_token = None
        self.access_token_expires_on = None
        self.account_username = None

    def clear_secret(self) -> None:
        self.client_secret = None

    @classmethod
    def from_dict(cls, data: dict) -> "AuthConfig":
        """Build a config from camelCase JSON.  Unknown keys are ignored."""
        kwargs: dict[str, Any] = {}
        for attr, wire in _WIRE_NAMES.items():
            value = data.get(wire)
            if value is None or value == "":
                continue
            if attr == "mode":
                try:
                    value = AuthMode.parse(value)
                except ValueError:
                    continue
            elif attr == "access_token_expires_on":
                try:
                    value = parse_timestamp(value)
                except (TypeError, ValueError):
                    continue
            elif not isinstance(value, str):
                continue
            kwargs[attr] = value
        return cls(**kwargs)


@dataclass
class CachedAuthState:
    """Redacted projection of AuthConfig.  Has no secret field at all."""

    mode: Optional[AuthMode] = None
    workspace_url: Optional[str] = None
    access_token: Optional[str] = None
    access_token_expires_on: Optional[datetime] = None
    account_username: Optional[str] = None
    model_name: Optional[str] = None
    previous_model_name: Optional[str] = None
    client_id: Optional[str] = None
    tenant_id: Optional[str] = None
    authentication_record: Optional[str] = None

    @classmethod
    def from_config(cls, config: AuthConfig) -> "CachedAuthState":
        return cls(**{f.name: getattr(config, f.name) for f in fields(cls)})

    def to_config(self) -> AuthConfig:
        return AuthConfig(**{f.name: getattr(self, f.name) for f in fields(self)})

    def to_dict(self) -> dict:
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, AuthMode):
                value = value.value
            elif isinstance(value, datetime):
                value = format_timestamp(value)
            out[_WIRE_NAMES[f.name]] = value
        return out

    @classmethod
    def from_dict(cls, data: dict) -> "CachedAuthState":
        # Going through AuthConfig keeps the parsing rules in one place;
        # a clientSecret present in a hand-edited file is dropped here.
        return cls.from_config(AuthConfig.from_dict(data))


@dataclass(frozen=True)
class RemoteItem:
    id: str
    display_name: str
    type: str = ""

    @classmethod
    def from_api(cls, item: dict) -> "RemoteItem":
        return cls(
            id=item.get("id", ""),
            display_name=item.get("displayName", "") or "",
            type=item.get("type", "") or "",
        )


class OperationStatus(str, enum.Enum):
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"

    @classmethod
    def from_api(cls, value: Optional[str]) -> "OperationStatus":
        text = (value or "").strip().lower()
        if text == "succeeded":
            return cls.SUCCEEDED
        if text in ("failed", "cancelled", "canceled"):
            return cls.FAILED
        # NotStarted, Running, Undefined and anything new keep us polling
        return cls.RUNNING


@dataclass
class Operation:
    operation_id: str
    status: OperationStatus = OperationStatus.RUNNING
    error_message: Optional[str] = None
    attempts: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status is not OperationStatus.RUNNING


class DeployAction(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    RENAME_AND_UPDATE = "rename-and-update"


@dataclass
class DeployResult:
    success: bool
    message: str
    action: Optional[DeployAction] = None
    item_id: Optional[str] = None

    @classmethod
    def ok(cls, message: str, action: Optional[DeployAction] = None,
           item_id: Optional[str] = None) -> "DeployResult":
        return cls(True, message, action, item_id)

    @classmethod
    def error(cls, message: str) -> "DeployResult":
        return cls(False, message)

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"isSuccess": self.success, "message": self.message}
        if self.action is not None:
            out["action"] = self.action.value
        if self.item_id:
            out["itemId"] = self.item_id
        return out
