"""
fabric_api.py  –  Thin client for the Fabric item endpoints

  GET    /workspaces/{ws}/items?type=…                  list (paginated)
  POST   /workspaces/{ws}/items                          create with definition
  PATCH  /workspaces/{ws}/items/{id}                     rename
  POST   /workspaces/{ws}/items/{id}/updateDefinition    update (200 or 202)

202 responses are handed to the OperationPoller.  Any other non-2xx status
raises RemoteCallError with the status code and body.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote

import requests

from .config import FABRIC_BASE, LIST_TIMEOUT, UPDATE_TIMEOUT
from .errors import RemoteCallError
from .models import RemoteItem
from .operations import OperationPoller

logger = logging.getLogger(__name__)


def new_session(token: str) -> requests.Session:
    session = requests.Session()
    session.headers.update({
        "Authorization": f"Bearer {token}",
        "Content-Type":  "application/json",
    })
    return session


def _error_body(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:500]
    if isinstance(body, dict):
        code = body.get("errorCode", "")
        msg = body.get("message", "")
        if code or msg:
            return f"{code}: {msg}" if code else msg
    return resp.text[:500]


class FabricClient:

    def __init__(self, session: requests.Session,
                 poller: Optional[OperationPoller] = None,
                 base_url: str = FABRIC_BASE):
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.poller = poller or OperationPoller(session, base_url=self.base_url)

    def _items_url(self, workspace_id: str) -> str:
        return f"{self.base_url}/workspaces/{workspace_id}/items"

    # ── Inventory ───────────────────────────────────────────────────────────

    def list_items(self, workspace_id: str, item_type: str) -> list[RemoteItem]:
        """All items of *item_type*, following continuationUri / continuationToken."""
        first_url = f"{self._items_url(workspace_id)}?type={quote(item_type)}"
        items: list[RemoteItem] = []
        url: Optional[str] = first_url
        while url:
            resp = self.session.get(url, timeout=LIST_TIMEOUT)
            if not resp.ok:
                raise RemoteCallError(resp.status_code, _error_body(resp), "Listing workspace items")
            body = resp.json()
            for raw in body.get("value", []):
                if raw.get("id"):
                    items.append(RemoteItem.from_api(raw))

            url = body.get("continuationUri")
            if not url and body.get("continuationToken"):
                url = f"{first_url}&continuationToken={quote(body['continuationToken'], safe='')}"
        logger.info("Found %d %s item(s) in workspace %s", len(items), item_type, workspace_id)
        return items

    def find_item_id_by_name(self, workspace_id: str, name: str, item_type: str) -> Optional[str]:
        target = name.lower()
        for item in self.list_items(workspace_id, item_type):
            if item.display_name.lower() == target:
                return item.id
        return None

    # ── Mutations ───────────────────────────────────────────────────────────

    def create_item(self, workspace_id: str, display_name: str, item_type: str,
                    parts: list[dict]) -> Optional[str]:
        """Create an item with its full definition and return the new id."""
        body = {
            "displayName": display_name,
            "type":        item_type,
            "definition":  {"parts": parts},
        }
        resp = self.session.post(self._items_url(workspace_id), json=body, timeout=UPDATE_TIMEOUT)

        result: dict = {}
        if resp.status_code in (200, 201):
            result = resp.json() if resp.content else {}
        elif resp.status_code == 202:
            operation = self.poller.wait(resp)
            result = self.poller.result(operation.operation_id)
        else:
            raise RemoteCallError(resp.status_code, _error_body(resp), "Creating item")

        item_id = result.get("id") if isinstance(result, dict) else None
        if not item_id:
            # some API variants answer without a body; look the item up instead
            item_id = self.find_item_id_by_name(workspace_id, display_name, item_type)
        return item_id

    def rename_item(self, workspace_id: str, item_id: str, display_name: str) -> None:
        url = f"{self._items_url(workspace_id)}/{item_id}"
        resp = self.session.patch(url, json={"displayName": display_name}, timeout=LIST_TIMEOUT)
        if not resp.ok:
            raise RemoteCallError(resp.status_code, _error_body(resp), "Renaming item")

    def update_definition(self, workspace_id: str, item_id: str, parts: list[dict]) -> None:
        url = f"{self._items_url(workspace_id)}/{item_id}/updateDefinition"
        resp = self.session.post(url, json={"definition": {"parts": parts}}, timeout=UPDATE_TIMEOUT)
        if resp.status_code == 202:
            self.poller.wait(resp)
            return
        if not resp.ok:
            raise RemoteCallError(resp.status_code, _error_body(resp), "Updating definition")
