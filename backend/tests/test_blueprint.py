"""Tests for blueprint parsing and loading."""
import json

import pytest

from app.models.blueprint import Blueprint, BlueprintError, load_blueprint


@pytest.fixture
def fresh_loader():
    load_blueprint.cache_clear()
    yield load_blueprint
    load_blueprint.cache_clear()


class TestPackagedBlueprint:

    def test_loads_cathedral(self, fresh_loader, monkeypatch):
        monkeypatch.delenv("BLUEPRINT_PATH", raising=False)

        blueprint = fresh_loader()

        assert blueprint.id == "cathedral_cologne_v1"
        assert len(blueprint.segments) == 14
        assert blueprint.segments[0].key == "foundation"
        orders = [s.order for s in blueprint.segments]
        assert orders == sorted(orders)
        assert blueprint.total_cost == sum(s.cost for s in blueprint.segments)
        assert all(s.cost > 0 for s in blueprint.segments)

    def test_cached(self, fresh_loader, monkeypatch):
        monkeypatch.delenv("BLUEPRINT_PATH", raising=False)

        assert fresh_loader() is fresh_loader()

    def test_path_override(self, fresh_loader, monkeypatch, tmp_path):
        path = tmp_path / "tiny.json"
        path.write_text(json.dumps({
            "id": "tiny_v1",
            "name": "Tiny",
            "segments": [{"key": "only", "label": "Only", "cost": 5, "phase": "p", "order": 1}],
        }))
        monkeypatch.setenv("BLUEPRINT_PATH", str(path))

        blueprint = fresh_loader()

        assert blueprint.id == "tiny_v1"
        assert blueprint.total_cost == 5


class TestFromDict:

    def test_sorts_segments_by_order(self):
        blueprint = Blueprint.from_dict({
            "id": "b",
            "segments": [
                {"key": "second", "cost": 2, "order": 2},
                {"key": "first", "cost": 1, "order": 1},
            ],
        })

        assert [s.key for s in blueprint.segments] == ["first", "second"]
        assert blueprint.segment("second").cost == 2
        assert blueprint.segment("missing") is None
        assert blueprint.name == "b"

    def test_rejects_non_positive_cost(self):
        with pytest.raises(BlueprintError):
            Blueprint.from_dict({"id": "b", "segments": [{"key": "a", "cost": 0, "order": 1}]})

    def test_rejects_duplicate_keys(self):
        with pytest.raises(BlueprintError):
            Blueprint.from_dict({
                "id": "b",
                "segments": [
                    {"key": "a", "cost": 1, "order": 1},
                    {"key": "a", "cost": 1, "order": 2},
                ],
            })

    def test_rejects_missing_fields(self):
        with pytest.raises(BlueprintError):
            Blueprint.from_dict({"id": "b", "segments": [{"key": "a", "order": 1}]})
        with pytest.raises(BlueprintError):
            Blueprint.from_dict({"segments": []})

    def test_to_dict(self):
        data = Blueprint.from_dict({
            "id": "b",
            "name": "B",
            "units": "stones",
            "segments": [{"key": "a", "label": "A", "cost": 3, "phase": "p", "order": 1}],
        }).to_dict()

        assert data["total_cost"] == 3
        assert data["units"] == "stones"
        assert data["segments"] == [{"key": "a", "label": "A", "cost": 3, "phase": "p", "order": 1}]
