"""
identity.py  –  Logical id → remote item id

The ``.platform`` logicalId is stable across renames and redeploys.  The
remote item id is found, in order, from:

  1. the cached mapping, when the live listing still holds that id
  2. the byte-reversed logical id, when the live listing holds it

The byte reversal matches what the service has been observed to do but is not
a documented contract, so it is only ever used as a candidate confirmed
against the live listing.  Any hit is written back to the mapping cache.
"""

from __future__ import annotations

import logging
import uuid
from typing import Iterable, Optional

from .credential_store import CredentialStore
from .models import RemoteItem, is_blank

logger = logging.getLogger(__name__)


def logical_id_to_item_id(logical_id: str) -> Optional[str]:
    """Reverse the GUID's binary (mixed-endian) form and read it back as a GUID."""
    try:
        logical = uuid.UUID(logical_id)
    except (TypeError, ValueError, AttributeError):
        return None
    return str(uuid.UUID(bytes_le=logical.bytes_le[::-1]))


def _find_by_id(items: Iterable[RemoteItem], item_id: str) -> Optional[RemoteItem]:
    target = item_id.lower()
    for item in items:
        if item.id.lower() == target:
            return item
    return None


class IdentityMapper:

    def __init__(self, store: CredentialStore):
        self.store = store

    def lookup(self, workspace_id: str, logical_id: Optional[str],
               remote_items: list[RemoteItem]) -> Optional[RemoteItem]:
        if is_blank(logical_id):
            return None

        cached_id = self.store.get_mapped_item_id(workspace_id, logical_id)
        if cached_id:
            item = _find_by_id(remote_items, cached_id)
            if item is not None:
                logger.info("Logical id %s matched cached item %s", logical_id, item.id)
                self.remember(workspace_id, logical_id, item.id)
                return item
            logger.info("Cached item %s for logical id %s is gone; ignoring", cached_id, logical_id)

        candidate = logical_id_to_item_id(logical_id)
        if candidate:
            item = _find_by_id(remote_items, candidate)
            if item is not None:
                logger.info("Logical id %s matched derived item %s", logical_id, item.id)
                self.remember(workspace_id, logical_id, item.id)
                return item

        return None

    def remember(self, workspace_id: str, logical_id: Optional[str], item_id: Optional[str]) -> None:
        if is_blank(logical_id) or is_blank(item_id):
            return
        self.store.set_mapped_item_id(workspace_id, logical_id, item_id)
