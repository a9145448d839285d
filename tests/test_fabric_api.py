"""Tests for the Fabric item client against a mocked requests session."""

from unittest.mock import MagicMock

import pytest

from tmdl_deploy.errors import OperationFailedError, RemoteCallError
from tmdl_deploy.fabric_api import FabricClient, new_session
from tmdl_deploy.operations import OperationPoller

from .conftest import WORKSPACE_ID, make_response, status_response

BASE = "https://fabric.test/v1"
ITEMS_URL = f"{BASE}/workspaces/{WORKSPACE_ID}/items"
OP_ID = "0a0a0a0a-1111-4222-8333-444444444444"
PARTS = [{"path": "model.tmdl", "payload": "bW9kZWw=", "payloadType": "InlineBase64"}]


def _client(session):
    return FabricClient(session, OperationPoller(session, base_url=BASE, sleep=MagicMock()), base_url=BASE)


def _item(item_id, name):
    return {"id": item_id, "displayName": name, "type": "SemanticModel"}


def test_new_session_sets_bearer_header():
    session = new_session("abc")
    assert session.headers["Authorization"] == "Bearer abc"
    assert session.headers["Content-Type"] == "application/json"


class TestListItems:

    def test_single_page(self, session):
        session.get.return_value = make_response(200, {"value": [_item("a", "Sales")]})

        items = _client(session).list_items(WORKSPACE_ID, "SemanticModel")

        assert [(i.id, i.display_name) for i in items] == [("a", "Sales")]
        session.get.assert_called_once_with(f"{ITEMS_URL}?type=SemanticModel", timeout=60)

    def test_follows_continuation_uri(self, session):
        next_url = f"{ITEMS_URL}?type=SemanticModel&continuationToken=p2"
        session.get.side_effect = [
            make_response(200, {"value": [_item("a", "One")], "continuationUri": next_url}),
            make_response(200, {"value": [_item("b", "Two")]}),
        ]

        items = _client(session).list_items(WORKSPACE_ID, "SemanticModel")

        assert [i.id for i in items] == ["a", "b"]
        assert session.get.call_args_list[1].args[0] == next_url

    def test_follows_continuation_token(self, session):
        session.get.side_effect = [
            make_response(200, {"value": [_item("a", "One")], "continuationToken": "tok/2"}),
            make_response(200, {"value": [_item("b", "Two")], "continuationToken": None}),
        ]

        items = _client(session).list_items(WORKSPACE_ID, "SemanticModel")

        assert [i.id for i in items] == ["a", "b"]
        assert session.get.call_args_list[1].args[0] == f"{ITEMS_URL}?type=SemanticModel&continuationToken=tok%2F2"

    def test_skips_entries_without_id(self, session):
        session.get.return_value = make_response(200, {"value": [{"displayName": "ghost"}, _item("a", "A")]})
        assert len(_client(session).list_items(WORKSPACE_ID, "SemanticModel")) == 1

    def test_error_status(self, session):
        session.get.return_value = make_response(
            403, {"errorCode": "InsufficientPrivileges", "message": "No access"})

        with pytest.raises(RemoteCallError) as excinfo:
            _client(session).list_items(WORKSPACE_ID, "SemanticModel")

        assert excinfo.value.status_code == 403
        assert "InsufficientPrivileges: No access" in excinfo.value.message


class TestCreateItem:

    def test_created_with_body(self, session):
        session.post.return_value = make_response(201, _item("new-id", "Sales"))

        assert _client(session).create_item(WORKSPACE_ID, "Sales", "SemanticModel", PARTS) == "new-id"

        url = session.post.call_args.args[0]
        body = session.post.call_args.kwargs["json"]
        assert url == ITEMS_URL
        assert body == {"displayName": "Sales", "type": "SemanticModel", "definition": {"parts": PARTS}}

    def test_accepted_polls_then_reads_result(self, session):
        session.post.return_value = make_response(202, headers={"x-ms-operation-id": OP_ID})
        session.get.side_effect = [
            status_response("Running"),
            status_response("Succeeded"),
            make_response(200, _item("new-id", "Sales")),
        ]

        assert _client(session).create_item(WORKSPACE_ID, "Sales", "SemanticModel", PARTS) == "new-id"
        assert session.get.call_args_list[-1].args[0] == f"{BASE}/operations/{OP_ID}/result"

    def test_missing_id_is_looked_up_by_name(self, session):
        session.post.return_value = make_response(201)
        session.get.return_value = make_response(200, {"value": [_item("other", "X"), _item("found", "SALES")]})

        assert _client(session).create_item(WORKSPACE_ID, "Sales", "SemanticModel", PARTS) == "found"

    def test_accepted_then_failed(self, session):
        session.post.return_value = make_response(202, headers={"x-ms-operation-id": OP_ID})
        session.get.return_value = status_response("Failed", "Invalid TMDL")

        with pytest.raises(OperationFailedError, match="Invalid TMDL"):
            _client(session).create_item(WORKSPACE_ID, "Sales", "SemanticModel", PARTS)

    def test_rejected(self, session):
        session.post.return_value = make_response(400, text="bad definition")

        with pytest.raises(RemoteCallError) as excinfo:
            _client(session).create_item(WORKSPACE_ID, "Sales", "SemanticModel", PARTS)

        assert excinfo.value.status_code == 400
        assert "bad definition" in excinfo.value.message


class TestRenameAndUpdate:

    def test_rename_patches_display_name(self, session):
        session.patch.return_value = make_response(200, _item("x", "New"))

        _client(session).rename_item(WORKSPACE_ID, "x", "New")

        session.patch.assert_called_once_with(f"{ITEMS_URL}/x", json={"displayName": "New"}, timeout=60)

    def test_rename_conflict(self, session):
        session.patch.return_value = make_response(409, {"errorCode": "ItemDisplayNameAlreadyInUse", "message": "taken"})
        with pytest.raises(RemoteCallError):
            _client(session).rename_item(WORKSPACE_ID, "x", "New")

    def test_update_synchronous(self, session):
        session.post.return_value = make_response(200)

        _client(session).update_definition(WORKSPACE_ID, "x", PARTS)

        assert session.post.call_args.args[0] == f"{ITEMS_URL}/x/updateDefinition"
        assert session.post.call_args.kwargs["json"] == {"definition": {"parts": PARTS}}
        session.get.assert_not_called()

    def test_update_accepted_polls(self, session):
        session.post.return_value = make_response(202, headers={
            "Location": f"{BASE}/operations/{OP_ID}", "Retry-After": "3"})
        session.get.side_effect = [status_response("NotStarted"), status_response("Succeeded")]

        _client(session).update_definition(WORKSPACE_ID, "x", PARTS)

        assert session.get.call_count == 2

    def test_update_rejected(self, session):
        session.post.return_value = make_response(400, {"errorCode": "InvalidDefinition", "message": "bad"})
        with pytest.raises(RemoteCallError) as excinfo:
            _client(session).update_definition(WORKSPACE_ID, "x", PARTS)
        assert excinfo.value.status_code == 400
