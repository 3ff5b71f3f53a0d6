import pytest

from shouw.shouw_config import InterpreterConfig, load_config


def test_defaults():
    config = load_config(environ={})
    assert config == InterpreterConfig()
    assert config.max_depth == 64
    assert config.timezone == "UTC"


def test_yaml_file(tmp_path):
    path = tmp_path / "shouw.yaml"
    path.write_text("max_steps: 50\ntimezone: Europe/Berlin\ndebug: true\n", encoding="utf-8")
    config = load_config(path, environ={})
    assert config.max_steps == 50
    assert config.timezone == "Europe/Berlin"
    assert config.debug is True


def test_empty_yaml_file_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(path, environ={}) == InterpreterConfig()


def test_unknown_keys_are_rejected(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("max_deph: 3\n", encoding="utf-8")
    with pytest.raises(ValueError, match="max_deph"):
        load_config(path, environ={})


def test_non_mapping_is_rejected(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path, environ={})


def test_environment_overrides():
    config = load_config(environ={"SHOUW_DEBUG": "1", "SHOUW_MAX_DEPTH": "5", "SHOUW_MAX_STEPS": "7"})
    assert config.debug is True
    assert config.max_depth == 5
    assert config.max_steps == 7
    assert load_config(environ={"SHOUW_DEBUG": "false"}).debug is False
