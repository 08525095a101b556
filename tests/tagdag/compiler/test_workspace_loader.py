"""Tests for workspace snapshot loading."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
import yaml

from tagdag.compiler import WorkspaceSnapshot, load_workspace, parse_workspace
from tagdag.kernel.domain.entities import EntityKind
from tagdag.kernel.exceptions import ConfigurationError, ResourceNotFoundError

if TYPE_CHECKING:
    from pathlib import Path


class TestParseWorkspace:
    """Tests for parse_workspace."""

    def test_container_export(self, workspace_payloads) -> None:
        pool = parse_workspace(workspace_payloads)

        assert [tag.entity_id for tag in pool.tags] == ["10", "11"]
        assert [trigger.name for trigger in pool.triggers] == ["CE - purchase"]
        assert pool.variables[0].entity_type == "v"
        assert pool.templates[0].container_id == "123"

    def test_flat_snapshot(self) -> None:
        pool = parse_workspace(
            {
                "tags": [{"tagId": "1", "name": "A"}],
                "variables": [{"variableId": "2", "name": "B"}],
                "templates": [{"templateId": "3"}],
            }
        )
        assert len(pool) == 3
        assert pool.triggers == []

    def test_both_shapes_concatenated(self) -> None:
        snapshot = WorkspaceSnapshot.model_validate(
            {"containerVersion": {"tag": [{"tagId": "1"}]}, "tags": [{"tagId": "2"}]}
        )
        assert [p["tagId"] for p in snapshot.payloads(EntityKind.TAG)] == ["1", "2"]
        assert snapshot.payloads(EntityKind.FOLDER) == []

    def test_payload_without_id_skipped(self, log_messages) -> None:
        pool = parse_workspace({"tags": [{"name": "No id"}, {"tagId": "1"}]})

        assert [tag.entity_id for tag in pool.tags] == ["1"]
        assert any(
            level == "WARNING" and message.startswith("Skipping tag payload")
            for level, message in log_messages
        )

    def test_non_mapping_document(self) -> None:
        with pytest.raises(ConfigurationError, match="expected a mapping"):
            parse_workspace([1, 2, 3])

    def test_wrong_envelope_types(self) -> None:
        with pytest.raises(ConfigurationError):
            parse_workspace({"tags": "not a list"})


class TestLoadWorkspace:
    """Tests for load_workspace."""

    def test_json_file(self, tmp_path: Path, workspace_payloads) -> None:
        path = tmp_path / "export.json"
        path.write_text(json.dumps(workspace_payloads))

        pool = load_workspace(path)
        assert len(pool.tags) == 2

    def test_yaml_file(self, tmp_path: Path, workspace_payloads) -> None:
        path = tmp_path / "export.yaml"
        path.write_text(yaml.safe_dump(workspace_payloads))

        pool = load_workspace(str(path))
        assert [v.name for v in pool.variables] == ["DL - Revenue"]

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ResourceNotFoundError, match="Workspace"):
            load_workspace(tmp_path / "missing.json")

    def test_undecodable_file(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        with pytest.raises(ConfigurationError, match="cannot decode snapshot"):
            load_workspace(path)
