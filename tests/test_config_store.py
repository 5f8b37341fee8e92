"""Tests for the persistent configuration store."""

import json

from dayplanner import config_store, paths


class TestConfigStore:
    """Test load/get/set against an isolated PLANNER_HOME."""

    def test_first_load_writes_defaults(self, isolated_home):
        config = config_store.load_config()
        assert config["gate"]["thresholds"]["create_pillar"] == {"execute": 0.85, "stage": 0.60}
        assert (isolated_home / "config" / "config.json").exists()

    def test_get_by_path(self):
        assert config_store.get("scheduling.preferred_start") == "08:00"
        assert config_store.get("gate.composite.execute_bar") == 0.65
        assert config_store.get("scheduling.missing", "fallback") == "fallback"

    def test_set_persists_and_records_history(self):
        config_store.set("scheduling.suggestion_spacing_minutes", 45, reason="Longer breaks")
        assert config_store.get("scheduling.suggestion_spacing_minutes") == 45

        history = json.loads((paths.config_dir() / "config_history.json").read_text())
        assert history[-1]["reason"] == "Longer breaks"

    def test_set_creates_missing_sections(self):
        config_store.set("gate.thresholds.create_goal.execute", 0.9)
        assert config_store.get("gate.thresholds.create_goal") == {"execute": 0.9, "stage": 0.60}

    def test_unreadable_file_falls_back_to_defaults(self):
        (paths.config_dir() / "config.json").write_text("{not json")
        assert config_store.load_config()["pillar_limits"]["max_values"] == 5

    def test_validate_defaults(self):
        ok, errors = config_store.validate_config(config_store.load_config())
        assert ok
        assert errors == []

    def test_validate_catches_bad_values(self):
        config = config_store.load_config()
        config["gate"]["thresholds"]["create_goal"] = {"execute": 0.5, "stage": 0.7}
        config["scheduling"]["preferred_start"] = "8am"
        del config["pillar_limits"]

        ok, errors = config_store.validate_config(config)
        assert not ok
        assert "Missing required key: pillar_limits" in errors
        assert "Threshold create_goal.stage 0.7 exceeds execute 0.5" in errors
        assert any("preferred_start" in e for e in errors)

    def test_interpreter_reads_overrides(self, scripted_backend):
        from dayplanner.intelligence.interpreter import build_interpreter

        config_store.set("scheduling.suggestion_spacing_minutes", 10)
        config_store.set("pillar_limits.max_values", 2)
        interpreter = build_interpreter(backend=scripted_backend())
        assert interpreter.suggestion_spacing.total_seconds() == 600
        assert interpreter.limits.max_values == 2
