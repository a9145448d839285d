"""
credential_store.py  –  Local, non-secret auth state and identity map

Two independent JSON files under the per-user cache directory:

  auth.json              redacted AuthConfig (never a client secret)
  logical-id-map.json    "<workspaceId>:<logicalId>" (lower-cased) → item id

Both are advisory.  A missing, unreadable or malformed file is a cache miss,
logged at INFO, never an error.
"""

from __future__ import annotations

import abc
import json
import logging
import os
import pathlib
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar, Union

from .config import AUTH_CACHE_FILE, LOGICAL_MAP_FILE, cache_root
from .models import AuthConfig, CachedAuthState, is_blank

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Hit(Generic[T]):
    value: T


@dataclass(frozen=True)
class Miss:
    reason: str


LoadResult = Union[Hit[T], Miss]


def unwrap(result: "LoadResult[T]") -> Optional[T]:
    return result.value if isinstance(result, Hit) else None


def mapping_key(workspace_id: str, logical_id: str) -> str:
    return f"{workspace_id.strip().lower()}:{logical_id.strip().lower()}"


class CredentialStore(abc.ABC):
    """Persistence for redacted auth state and the logical-id map."""

    @abc.abstractmethod
    def load_state(self) -> "LoadResult[CachedAuthState]":
        ...

    @abc.abstractmethod
    def save(self, config: AuthConfig) -> None:
        ...

    @abc.abstractmethod
    def clear(self) -> None:
        ...

    @abc.abstractmethod
    def get_mapped_item_id(self, workspace_id: str, logical_id: str) -> Optional[str]:
        ...

    @abc.abstractmethod
    def set_mapped_item_id(self, workspace_id: str, logical_id: str, item_id: str) -> None:
        ...

    def load(self) -> Optional[CachedAuthState]:
        return unwrap(self.load_state())


# ---------------------------------------------------------------------------
# File-backed store
# ---------------------------------------------------------------------------

def _read_json(path: pathlib.Path) -> "LoadResult[object]":
    if not path.is_file():
        return Miss(f"{path} does not exist")
    try:
        return Hit(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        return Miss(f"{path} could not be read: {exc}")


def _write_private_json(path: pathlib.Path, data: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    # owner-only from the moment of creation
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(json.dumps(data, indent=2, ensure_ascii=False))
    try:
        if os.name != "nt":
            # an existing file keeps its old mode through os.open
            os.chmod(path, 0o600)
    except OSError:
        logger.debug("Could not restrict permissions on %s", path)


class FileCredentialStore(CredentialStore):

    def __init__(self, root: Optional[pathlib.Path] = None):
        self.root = pathlib.Path(root) if root is not None else cache_root()

    @property
    def auth_path(self) -> pathlib.Path:
        return self.root / AUTH_CACHE_FILE

    @property
    def map_path(self) -> pathlib.Path:
        return self.root / LOGICAL_MAP_FILE

    def load_state(self) -> "LoadResult[CachedAuthState]":
        result = _read_json(self.auth_path)
        if isinstance(result, Miss):
            logger.info("Auth cache miss: %s", result.reason)
            return result
        if not isinstance(result.value, dict):
            logger.info("Auth cache miss: %s is not a JSON object", self.auth_path)
            return Miss("auth cache is not a JSON object")
        return Hit(CachedAuthState.from_dict(result.value))

    def save(self, config: AuthConfig) -> None:
        if config is None:
            return
        state = CachedAuthState.from_config(config)
        _write_private_json(self.auth_path, state.to_dict())
        logger.debug("Auth state cached at %s", self.auth_path)

    def clear(self) -> None:
        try:
            self.auth_path.unlink()
        except FileNotFoundError:
            pass

    def _load_map(self) -> dict[str, str]:
        result = _read_json(self.map_path)
        if isinstance(result, Miss):
            logger.info("Identity map miss: %s", result.reason)
            return {}
        if not isinstance(result.value, dict):
            logger.info("Identity map miss: %s is not a JSON object", self.map_path)
            return {}
        return {
            str(k).lower(): v for k, v in result.value.items() if isinstance(v, str) and v
        }

    def get_mapped_item_id(self, workspace_id: str, logical_id: str) -> Optional[str]:
        if is_blank(workspace_id) or is_blank(logical_id):
            return None
        return self._load_map().get(mapping_key(workspace_id, logical_id))

    def set_mapped_item_id(self, workspace_id: str, logical_id: str, item_id: str) -> None:
        if is_blank(workspace_id) or is_blank(logical_id) or is_blank(item_id):
            return
        mapping = self._load_map()
        mapping[mapping_key(workspace_id, logical_id)] = item_id
        _write_private_json(self.map_path, mapping)


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------

class InMemoryCredentialStore(CredentialStore):
    """Keeps the same redaction rules as the file store without touching disk."""

    def __init__(self, state: Optional[CachedAuthState] = None,
                 mapping: Optional[dict[str, str]] = None):
        self._state = state
        self._mapping = {k.lower(): v for k, v in (mapping or {}).items()}
        self.saves = 0

    def load_state(self) -> "LoadResult[CachedAuthState]":
        if self._state is None:
            return Miss("nothing saved")
        # hand out a copy so callers cannot mutate the stored snapshot
        return Hit(CachedAuthState.from_dict(self._state.to_dict()))

    def save(self, config: AuthConfig) -> None:
        if config is None:
            return
        self._state = CachedAuthState.from_config(config)
        self.saves += 1

    def clear(self) -> None:
        self._state = None

    def get_mapped_item_id(self, workspace_id: str, logical_id: str) -> Optional[str]:
        if is_blank(workspace_id) or is_blank(logical_id):
            return None
        return self._mapping.get(mapping_key(workspace_id, logical_id))

    def set_mapped_item_id(self, workspace_id: str, logical_id: str, item_id: str) -> None:
        if is_blank(workspace_id) or is_blank(logical_id) or is_blank(item_id):
            return
        self._mapping[mapping_key(workspace_id, logical_id)] = item_id
