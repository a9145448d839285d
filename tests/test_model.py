"""Tests for reading a local TMDL model folder."""

import base64
import json

import pytest

from tmdl_deploy.errors import ConfigurationError
from tmdl_deploy.model import (
    LocalModel,
    build_definition_parts,
    extract_workspace_id,
    read_declared_name,
    read_platform_display_name,
    read_platform_logical_id,
)

from .conftest import LOGICAL_ID, WORKSPACE_ID


class TestDefinitionParts:

    def test_collects_text_parts_with_relative_paths(self, model_dir):
        parts = build_definition_parts(model_dir)

        paths = [p["path"] for p in parts]
        assert sorted(paths) == [
            "definition.pbism",
            "definition/database.tmdl",
            "definition/model.tmdl",
            "definition/tables/Orders.tmdl",
        ]
        assert all(p["payloadType"] == "InlineBase64" for p in parts)
        database = next(p for p in parts if p["path"] == "definition/database.tmdl")
        assert base64.b64decode(database["payload"]) == b"database Sales\n"

    def test_excludes_platform_file(self, model_dir):
        assert ".platform" not in [p["path"] for p in build_definition_parts(model_dir)]

    def test_skips_binary_and_foreign_files(self, model_dir):
        (model_dir / "definition" / "cultures").mkdir()
        (model_dir / "definition" / "cultures" / "en-US.tmdl").write_bytes(b"culture\x00\x01")
        (model_dir / "thumbnail.png").write_text("readme", encoding="utf-8")
        (model_dir / "cache.abf").write_bytes(b"\x00\x00")

        paths = [p["path"] for p in build_definition_parts(model_dir)]

        assert "definition/cultures/en-US.tmdl" not in paths
        assert "thumbnail.png" not in paths
        assert "cache.abf" not in paths

    def test_empty_folder(self, tmp_path):
        assert build_definition_parts(tmp_path) == []


class TestPlatformFile:

    def test_display_name_and_logical_id(self, model_dir):
        assert read_platform_display_name(model_dir) == "Sales"
        assert read_platform_logical_id(model_dir) == LOGICAL_ID

    def test_read_from_parent_of_definition_folder(self, model_dir):
        assert read_platform_display_name(model_dir / "definition") == "Sales"

    def test_invalid_logical_id(self, tmp_path):
        (tmp_path / ".platform").write_text(json.dumps({"config": {"logicalId": "not-a-guid"}}))
        assert read_platform_logical_id(tmp_path) is None

    def test_corrupt_file(self, tmp_path):
        (tmp_path / ".platform").write_text("{oops")
        assert read_platform_display_name(tmp_path) is None
        assert read_platform_logical_id(tmp_path) is None

    def test_missing_file(self, tmp_path):
        assert read_platform_display_name(tmp_path) is None


class TestDeclaredName:

    def test_from_definition_folder(self, model_dir):
        assert read_declared_name(model_dir) == "Sales"

    @pytest.mark.parametrize("line, expected", [
        ("database 'Sales Model'", "Sales Model"),
        ('database "Finance"', "Finance"),
        ("  database   Ops  ", "Ops"),
    ])
    def test_quotes_and_whitespace(self, tmp_path, line, expected):
        (tmp_path / "database.tmdl").write_text(f"{line}\n\tcompatibilityLevel: 1567\n")
        assert read_declared_name(tmp_path) == expected

    def test_no_declaration(self, tmp_path):
        (tmp_path / "database.tmdl").write_text("compatibilityLevel: 1567\n")
        assert read_declared_name(tmp_path) is None


class TestLocalModel:

    def test_load(self, model_dir):
        model = LocalModel.load(model_dir)
        assert model.declared_name == "Sales"
        assert model.platform_name == "Sales"
        assert model.logical_id == LOGICAL_ID
        assert len(model.definition_parts()) == 4

    def test_missing_folder(self, tmp_path):
        with pytest.raises(ConfigurationError):
            LocalModel.load(tmp_path / "nope")


class TestExtractWorkspaceId:

    @pytest.mark.parametrize("url", [
        f"https://app.fabric.microsoft.com/groups/{WORKSPACE_ID}/list?experience=fabric-developer",
        f"https://app.powerbi.com/groups/{WORKSPACE_ID}",
        f"https://api.fabric.microsoft.com/v1/workspaces/{WORKSPACE_ID}",
        WORKSPACE_ID,
    ])
    def test_finds_guid(self, url):
        assert extract_workspace_id(url) == WORKSPACE_ID

    @pytest.mark.parametrize("url", ["", None, "https://app.fabric.microsoft.com/groups/me/list"])
    def test_rejects_urls_without_guid(self, url):
        with pytest.raises(ConfigurationError):
            extract_workspace_id(url)
