from pathlib import Path

import pytest
from pydantic import ValidationError as PydanticValidationError

from spec_plotting import config
from spec_plotting.config import EngineConfig, resolve_output_dir


def test_explicit_output_dir_wins(tmp_path):
    assert resolve_output_dir(tmp_path / "x", cwd=tmp_path, home=tmp_path) == tmp_path / "x"


def test_development_tree_uses_tests_output(tmp_path):
    proj = tmp_path / "spec_plotting"
    proj.mkdir()
    assert resolve_output_dir(None, cwd=proj, home=tmp_path) == proj / "tests" / "output"

    checkout = tmp_path / "checkout"
    (checkout / "spec_plotting").mkdir(parents=True)
    (checkout / "spec_plotting" / "__init__.py").write_text("")
    assert resolve_output_dir(None, cwd=checkout, home=tmp_path) == checkout / "tests" / "output"


def test_default_is_desktop(tmp_path):
    cwd = tmp_path / "elsewhere"
    cwd.mkdir()
    home = tmp_path / "home"
    assert resolve_output_dir(None, cwd=cwd, home=home) == home / "Desktop" / "spec_plotting"


def test_engine_config_from_env(monkeypatch):
    monkeypatch.setattr(config, "WORKERS", 0)
    monkeypatch.setattr(config, "BACKEND", "threads")
    monkeypatch.setattr(config, "OUTPUT_DIR", "/tmp/charts")
    monkeypatch.setattr(config, "STRICT_DERIVE", True)
    cfg = EngineConfig.from_env()
    assert cfg.workers == 1
    assert cfg.backend == "threads"
    assert cfg.output_dir == Path("/tmp/charts")
    assert cfg.strict_derive is True


def test_env_helpers(monkeypatch):
    monkeypatch.setenv("SP_TEST_INT", "seven")
    assert config._as_int("SP_TEST_INT", 4) == 4
    monkeypatch.setenv("SP_TEST_BOOL", "Yes")
    assert config._as_bool("SP_TEST_BOOL", False) is True
    assert config._as_bool("SP_TEST_UNSET_BOOL", True) is True


def test_engine_config_rejects_bad_values():
    with pytest.raises(PydanticValidationError):
        EngineConfig(workers=0)
    with pytest.raises(PydanticValidationError):
        EngineConfig(backend="processes")
