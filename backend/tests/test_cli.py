"""Tests for the management CLI commands that run without a database."""

import json

import pytest

from careaccess.cli import main


@pytest.mark.unit
class TestValidateCatalog:
    def test_default_catalog(self, capsys):
        assert main(["validate-catalog"]) == 0
        assert "143 permissions" in capsys.readouterr().out

    def test_unknown_references(self, tmp_path, capsys):
        path = tmp_path / "catalog.json"
        path.write_text(json.dumps({
            "version": "broken",
            "permissions": [{"id": "view_rota", "category": "scheduling"}],
            "roles": [{"id": "carer", "hierarchy_level": 5}],
            "role_permissions": {"carer": ["view_rota", "edit_rota"]},
        }))

        assert main(["validate-catalog", str(path)]) == 1
        assert "edit_rota" in capsys.readouterr().out

    def test_cyclic_catalog(self, tmp_path, capsys):
        path = tmp_path / "catalog.json"
        path.write_text(json.dumps({
            "version": "cyclic",
            "permissions": [
                {"id": "view_rota", "category": "scheduling"},
                {"id": "edit_rota", "category": "scheduling"},
            ],
            "roles": [],
            "implications": [["view_rota", "edit_rota"], ["edit_rota", "view_rota"]],
        }))

        assert main(["validate-catalog", str(path)]) == 1
        assert "circular" in capsys.readouterr().err

    def test_missing_file(self, tmp_path):
        assert main(["validate-catalog", str(tmp_path / "missing.json")]) == 1
