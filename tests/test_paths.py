from __future__ import annotations

import pytest

from planrun.exceptions import NotInitializedError
from planrun.paths import Mode, PlanrunPaths, detect_project_root, global_claude_dir


@pytest.fixture
def home(tmp_path, monkeypatch):
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setattr("planrun.paths.Path.home", lambda: home)
    return home


def _init_project(root):
    (root / ".planrun").mkdir(parents=True)
    (root / ".planrun" / "config.toml").write_text("")
    return root


class TestPlanrunPaths:
    def test_project_layout(self, tmp_path, home):
        paths = PlanrunPaths.for_project(tmp_path)

        assert paths.mode == Mode.PROJECT
        assert paths.plans == tmp_path / ".planrun" / "plans"
        assert paths.config == tmp_path / ".planrun" / "config.toml"
        assert paths.analytics == tmp_path / ".planrun" / "analytics.jsonl"
        assert paths.claude_dir == home / ".claude"
        assert paths.workdir == tmp_path
        assert paths.display_name == tmp_path.name

    def test_global_layout(self, home):
        paths = PlanrunPaths.global_()

        assert paths.mode == Mode.GLOBAL
        assert paths.root == home / ".planrun"
        assert paths.claude_dir == home / ".claude"
        assert paths.display_name == "global"

    def test_agent_settings_are_global(self, home):
        assert global_claude_dir() == home / ".claude"


class TestDetection:
    def test_detects_from_subdirectory(self, tmp_path):
        root = _init_project(tmp_path / "proj")
        nested = root / "src" / "pkg"
        nested.mkdir(parents=True)

        assert detect_project_root(nested) == root.resolve()

    def test_directory_without_config_is_not_a_project(self, tmp_path, home):
        (tmp_path / "proj" / ".planrun").mkdir(parents=True)

        paths = PlanrunPaths.resolve(tmp_path / "proj")

        assert paths.mode == Mode.GLOBAL

    def test_resolve_project(self, tmp_path):
        root = _init_project(tmp_path / "proj")
        assert PlanrunPaths.resolve(root).mode == Mode.PROJECT

    def test_ensure_initialized(self, tmp_path, home):
        with pytest.raises(NotInitializedError):
            PlanrunPaths.ensure_initialized(tmp_path)

        (home / ".planrun").mkdir()
        assert PlanrunPaths.ensure_initialized(tmp_path).root == home / ".planrun"
