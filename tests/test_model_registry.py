"""
Tests for the model registry and the ``models`` command.
"""

import json
import pickle
from pathlib import Path

import numpy as np
import pytest

import main
from invoice_fields.domain.field_type import FieldType
from invoice_fields.features.schema import FEATURE_COUNT
from invoice_fields.model_inference import FieldClassifier, ModelRegistry, ModelState, PredictionEngine
from invoice_fields.utils.exceptions import ModelRegistryError, ModelSchemaError


def _save(model_dir: Path, version: str, trained_at: str, name: str = None, schema_version: str = None) -> Path:
    rng = np.random.default_rng(0)
    X = np.vstack([rng.normal(0, 1, (10, FEATURE_COUNT)), rng.normal(5, 1, (10, FEATURE_COUNT))])
    model = FieldClassifier.fit(X, [FieldType.NONE] * 10 + [FieldType.NET_TOTAL] * 10, model_version=version)
    model.trained_at = trained_at
    if schema_version:
        model.schema_version = schema_version
    return Path(model.save(model_dir / f"{name or 'field_classifier_' + version}.pkl"))


def _engine() -> PredictionEngine:
    return PredictionEngine(model_path="models/does-not-exist.pkl", max_workers=1, wait_timeout=0)


@pytest.fixture
def model_dir(tmp_path):
    model_dir = tmp_path / "models"
    _save(model_dir, "v1.0", "2025-01-10T09:00:00")
    _save(model_dir, "v1.1", "2025-02-01T09:00:00")
    return model_dir


# =============================================================================
# REGISTRY
# =============================================================================

class TestModelRegistry:
    def test_list_newest_first(self, model_dir):
        entries = ModelRegistry(model_dir).list_models()

        assert [e.model_version for e in entries] == ["v1.1", "v1.0"]
        assert entries[0].name == "field_classifier_v1.1"
        assert entries[0].trained_at == "2025-02-01T09:00:00"
        assert entries[0].feature_count == FEATURE_COUNT
        assert entries[0].size_bytes > 0
        assert all(e.is_compatible and not e.is_active for e in entries)

    def test_list_skips_foreign_files(self, model_dir):
        with open(model_dir / "notes.pkl", 'wb') as f:
            pickle.dump({"weights": [1, 2]}, f)
        (model_dir / "readme.txt").write_text("not a model", encoding='utf-8')

        assert len(ModelRegistry(model_dir).list_models()) == 2

    def test_missing_directory(self, tmp_path):
        registry = ModelRegistry(tmp_path / "nothing")

        assert registry.list_models() == []
        assert registry.active() is None

    def test_get_by_version_or_name(self, model_dir):
        registry = ModelRegistry(model_dir)

        assert registry.get("v1.0").name == "field_classifier_v1.0"
        assert registry.get("field_classifier_v1.1").model_version == "v1.1"
        with pytest.raises(ModelRegistryError):
            registry.get("v9.9")

    def test_ambiguous_version(self, model_dir):
        _save(model_dir, "v1.0", "2025-03-01T09:00:00", name="retrained")
        registry = ModelRegistry(model_dir)

        with pytest.raises(ModelRegistryError) as exc_info:
            registry.get("v1.0")
        assert exc_info.value.details == {"version": "v1.0"}
        assert registry.get("retrained").trained_at == "2025-03-01T09:00:00"

    def test_activate_reloads_engine(self, model_dir):
        engine = _engine()
        registry = ModelRegistry(model_dir, engine=engine)

        entry = registry.activate("v1.0")

        assert entry.is_active
        assert engine.state == ModelState.READY
        assert engine.model_version == "v1.0"
        assert engine.model_path == str(model_dir / "field_classifier_v1.0.pkl")

        registry.activate("v1.1")
        assert engine.model_version == "v1.1"

    def test_active_version_persists(self, model_dir):
        ModelRegistry(model_dir).activate("v1.0")

        active = ModelRegistry(model_dir).active()
        marker = json.loads((model_dir / "active.json").read_text(encoding='utf-8'))

        assert active.model_version == "v1.0"
        assert marker['file'] == "field_classifier_v1.0.pkl"
        assert [e.is_active for e in ModelRegistry(model_dir).list_models()] == [False, True]

    def test_incompatible_version_is_not_activated(self, model_dir):
        _save(model_dir, "v0.1", "2024-06-01T09:00:00", schema_version="0.1")
        engine = _engine()
        registry = ModelRegistry(model_dir, engine=engine)
        registry.activate("v1.0")

        assert not registry.get("v0.1").is_compatible
        with pytest.raises(ModelSchemaError):
            registry.activate("v0.1")

        assert engine.model_version == "v1.0"
        assert registry.active().model_version == "v1.0"

    def test_delete(self, model_dir):
        registry = ModelRegistry(model_dir)
        registry.activate("v1.1")

        deleted = registry.delete("v1.0")

        assert not deleted.path.exists()
        assert [e.model_version for e in registry.list_models()] == ["v1.1"]

    def test_delete_active_is_refused(self, model_dir):
        registry = ModelRegistry(model_dir)
        registry.activate("v1.1")

        with pytest.raises(ModelRegistryError):
            registry.delete("v1.1")
        assert (model_dir / "field_classifier_v1.1.pkl").exists()

    def test_delete_model_loaded_in_engine_is_refused(self, model_dir):
        engine = _engine()
        engine.load(model_dir / "field_classifier_v1.0.pkl")
        engine.model_path = str(model_dir / "field_classifier_v1.0.pkl")

        with pytest.raises(ModelRegistryError):
            ModelRegistry(model_dir, engine=engine).delete("v1.0")

    def test_unreadable_marker_is_ignored(self, model_dir):
        (model_dir / "active.json").write_text("{not json", encoding='utf-8')
        assert ModelRegistry(model_dir).active() is None

    def test_read_metadata(self, model_dir):
        metadata = FieldClassifier.read_metadata(model_dir / "field_classifier_v1.0.pkl")

        assert metadata['model_version'] == "v1.0"
        assert metadata['feature_count'] == FEATURE_COUNT
        assert metadata['trained_at'] == "2025-01-10T09:00:00"


# =============================================================================
# COMMAND LINE
# =============================================================================

class TestModelsCommand:
    def test_arguments(self):
        args = main.parse_arguments(["models", "--model-dir", "m", "activate", "v1.1"])

        assert args.command == "models"
        assert args.models_command == "activate"
        assert args.version == "v1.1"
        assert args.model_dir == "m"

    def test_list(self, model_dir, capsys):
        summary = main.run_models("list", model_dir=str(model_dir))

        assert [m['model_version'] for m in summary['models']] == ["v1.1", "v1.0"]
        assert "field_classifier_v1.0" in capsys.readouterr().out

    def test_activate_then_delete(self, model_dir):
        summary = main.run_models("activate", "v1.1", str(model_dir))
        assert summary['model']['is_active']

        with pytest.raises(ModelRegistryError):
            main.run_models("delete", "v1.1", str(model_dir))

        main.run_models("delete", "v1.0", str(model_dir))
        assert not (model_dir / "field_classifier_v1.0.pkl").exists()

    def test_unknown_command(self, model_dir):
        with pytest.raises(ValueError):
            main.run_models("prune", model_dir=str(model_dir))
