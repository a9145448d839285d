"""Shared fixtures: fake HTTP responses and sessions, in-memory stores."""

import json
from unittest.mock import MagicMock

import pytest
from requests.structures import CaseInsensitiveDict

from tmdl_deploy.credential_store import InMemoryCredentialStore

WORKSPACE_ID = "6f1c9a52-3d1e-4b8a-9f0e-2a7d5c4b3e21"
WORKSPACE_URL = f"https://app.fabric.microsoft.com/groups/{WORKSPACE_ID}/list"
LOGICAL_ID = "00112233-4455-6677-8899-aabbccddeeff"
DERIVED_ITEM_ID = "ccddeeff-aabb-8899-6677-445500112233"


class FakeStdin:
    """Stands in for sys.stdin so terminal detection does not depend on how pytest runs."""

    def __init__(self, tty=False):
        self.tty = tty

    def isatty(self):
        return self.tty


def make_response(status_code=200, body=None, headers=None, text=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 400
    resp.headers = CaseInsensitiveDict(headers or {})
    if body is not None:
        resp.content = json.dumps(body).encode("utf-8")
        resp.json.return_value = body
        resp.text = json.dumps(body)
    else:
        resp.content = b""
        resp.json.side_effect = ValueError("no body")
        resp.text = text or ""
    return resp


def status_response(status, message=None, headers=None):
    body = {"status": status}
    if message is not None:
        body["error"] = {"message": message}
    return make_response(200, body, headers)


@pytest.fixture
def store():
    return InMemoryCredentialStore()


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def model_dir(tmp_path):
    root = tmp_path / "Sales.SemanticModel"
    (root / "definition" / "tables").mkdir(parents=True)
    (root / "definition" / "database.tmdl").write_text("database Sales\n", encoding="utf-8")
    (root / "definition" / "model.tmdl").write_text("model Model\n", encoding="utf-8")
    (root / "definition" / "tables" / "Orders.tmdl").write_text(
        "table Orders\n\tmeasure Total = SUM(Orders[Amount])\n", encoding="utf-8")
    (root / "definition.pbism").write_text('{"version": "4.0"}', encoding="utf-8")
    (root / ".platform").write_text(json.dumps({
        "metadata": {"type": "SemanticModel", "displayName": "Sales"},
        "config": {"version": "2.0", "logicalId": LOGICAL_ID},
    }), encoding="utf-8")
    return root
