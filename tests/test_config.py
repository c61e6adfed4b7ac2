from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from gqlharbor.config import DEFAULT_SHUTDOWN_TIMEOUT, ServerSettings, load_settings


def test_defaults() -> None:
    settings = load_settings()

    assert settings == ServerSettings()
    assert settings.shutdown_timeout == DEFAULT_SHUTDOWN_TIMEOUT == 60
    assert settings.port == 4000
    assert settings.schema_paths == []


def test_file_values_and_overrides(tmp_path: Path) -> None:
    config = tmp_path / "server.yaml"
    config.write_text("host: 127.0.0.1\nport: 8000\ndebug: true\nschema: [a.graphql, schemas/]\n")

    settings = load_settings(config, port=None, debug=False)

    assert settings.host == "127.0.0.1"
    assert settings.port == 8000
    assert settings.debug is False
    assert settings.schema_paths == [Path("a.graphql"), Path("schemas/")]


def test_empty_file_gives_defaults(tmp_path: Path) -> None:
    config = tmp_path / "server.yaml"
    config.write_text("")

    assert load_settings(config) == ServerSettings()


@pytest.mark.parametrize(
    "values",
    [
        {"shutdown_timeout": 0},
        {"shutdown_timeout": -1},
        {"port": 0},
        {"retry_after": -1},
        {"workers": 4},
    ],
)
def test_invalid_values(values: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        load_settings(**values)


def test_non_mapping_root(tmp_path: Path) -> None:
    config = tmp_path / "server.yaml"
    config.write_text("- 1\n- 2\n")

    with pytest.raises(TypeError, match="must be a mapping"):
        load_settings(config)


def test_malformed_yaml(tmp_path: Path) -> None:
    config = tmp_path / "server.yaml"
    config.write_text("port: [unclosed\n")

    with pytest.raises(yaml.YAMLError):
        load_settings(config)
