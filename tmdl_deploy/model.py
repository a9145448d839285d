"""
model.py  –  Local TMDL model folder

The tabular model itself is opaque here.  Deployment only needs:
  • the identity hints from the ``.platform`` Git-integration file
    (metadata.displayName, config.logicalId)
  • the declared model name from ``database.tmdl``
  • the list of source files, encoded as definition parts
"""

from __future__ import annotations

import base64
import json
import logging
import pathlib
import re
import uuid
from dataclasses import dataclass
from typing import Optional

from .config import BINARY_SNIFF_BYTES, DEFINITION_EXTENSIONS, EXCLUDED_FILES
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

PLATFORM_FILE = ".platform"
DATABASE_FILE = "database.tmdl"
DEFINITION_DIR = "definition"

_DATABASE_DECL = re.compile(r"^\s*database\s+(?P<name>.+?)\s*$")


def _first_existing(*candidates: pathlib.Path) -> Optional[pathlib.Path]:
    for path in candidates:
        if path.is_file():
            return path
    return None


def _read_platform(root: pathlib.Path) -> dict:
    candidates = [root / PLATFORM_FILE]
    if root.name == DEFINITION_DIR:
        # .platform sits beside the definition/ folder in a PBIP project
        candidates.append(root.parent / PLATFORM_FILE)
    path = _first_existing(*candidates)
    if path is None:
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8-sig"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.info("Ignoring unreadable %s: %s", path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def read_platform_display_name(root: pathlib.Path) -> Optional[str]:
    metadata = _read_platform(root).get("metadata")
    if not isinstance(metadata, dict):
        return None
    name = metadata.get("displayName")
    if not isinstance(name, str) or not name.strip():
        return None
    return name.strip()


def read_platform_logical_id(root: pathlib.Path) -> Optional[str]:
    config = _read_platform(root).get("config")
    if not isinstance(config, dict):
        return None
    logical_id = config.get("logicalId")
    if not isinstance(logical_id, str) or not logical_id.strip():
        return None
    try:
        uuid.UUID(logical_id.strip())
    except ValueError:
        return None
    return logical_id.strip()


def read_declared_name(root: pathlib.Path) -> Optional[str]:
    """Name from the ``database <name>`` declaration, quotes stripped."""
    path = _first_existing(root / DATABASE_FILE, root / DEFINITION_DIR / DATABASE_FILE)
    if path is None:
        return None
    try:
        content = path.read_text(encoding="utf-8-sig", errors="replace")
    except OSError:
        return None
    for line in content.splitlines():
        match = _DATABASE_DECL.match(line)
        if match:
            name = match.group("name").strip().strip("'\"").strip()
            return name or None
    return None


def is_text_file(path: pathlib.Path) -> bool:
    """False when the first 8 KB hold a NUL byte, or the file cannot be read."""
    try:
        with path.open("rb") as fh:
            chunk = fh.read(BINARY_SNIFF_BYTES)
    except OSError:
        return False
    return b"\x00" not in chunk


def build_definition_parts(root: pathlib.Path) -> list[dict]:
    """
    Walk *root* and return base64-encoded part dicts ready for the Fabric API.

    Only text files with a definition extension are included; ``.platform``
    is excluded and binary files are skipped with a warning.
    """
    parts = []
    for file_path in sorted(root.rglob("*")):
        if not file_path.is_file():
            continue
        if file_path.name in EXCLUDED_FILES:
            continue
        if file_path.suffix.lower() not in DEFINITION_EXTENSIONS:
            continue
        if not is_text_file(file_path):
            logger.warning("Skipping binary file: %s", file_path)
            continue
        rel = file_path.relative_to(root).as_posix()
        encoded = base64.b64encode(file_path.read_bytes()).decode("ascii")
        parts.append({
            "path":        rel,
            "payload":     encoded,
            "payloadType": "InlineBase64",
        })
    return parts


@dataclass
class LocalModel:
    root: pathlib.Path
    declared_name: Optional[str] = None
    platform_name: Optional[str] = None
    logical_id: Optional[str] = None

    @classmethod
    def load(cls, path) -> "LocalModel":
        root = pathlib.Path(path).expanduser()
        if not root.is_dir():
            raise ConfigurationError(f"Model folder '{root}' not found.")
        return cls(
            root=root,
            declared_name=read_declared_name(root),
            platform_name=read_platform_display_name(root),
            logical_id=read_platform_logical_id(root),
        )

    def definition_parts(self) -> list[dict]:
        return build_definition_parts(self.root)


def extract_workspace_id(workspace_url: Optional[str]) -> str:
    """
    First GUID segment of a workspace URL.

    Accepts e.g. https://app.fabric.microsoft.com/groups/<id>/list,
    https://api.fabric.microsoft.com/v1/workspaces/<id> or a bare GUID.
    """
    for segment in re.split(r"[/?#&=]", workspace_url or ""):
        segment = segment.strip()
        if not segment:
            continue
        try:
            uuid.UUID(segment)
        except ValueError:
            continue
        if len(segment) in (32, 36, 38):
            return segment
    raise ConfigurationError(
        "Could not extract workspace ID from URL. Expected a URL containing the "
        "workspace GUID, e.g. https://app.fabric.microsoft.com/groups/{workspaceId}"
    )
