from pathlib import Path
from typing import Any, cast

import yaml
from pydantic import BaseModel, ConfigDict, Field

from gqlharbor import log

DEFAULT_SHUTDOWN_TIMEOUT = 60.0


class ServerSettings(BaseModel):
    """Runtime settings for `gqlharbor serve`.

    Attributes:
        host: Interface the HTTP/WebSocket transport binds to.
        port: TCP port of the transport.
        shutdown_timeout: Seconds allowed between the termination signal and the
            end of draining. When it elapses the process exits with a failure status.
        retry_after: Seconds advertised in the Retry-After header of
            "service restarting" responses.
        debug: Include exception details in GraphQL error payloads.
        schema: SDL files or directories making up the schema.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    host: str = "0.0.0.0"
    port: int = Field(default=4000, ge=1, le=65535)
    shutdown_timeout: float = Field(default=DEFAULT_SHUTDOWN_TIMEOUT, gt=0)
    retry_after: int = Field(default=5, ge=0)
    debug: bool = False
    schema_paths: list[Path] = Field(default_factory=list, alias="schema")


def load_settings(config_path: Path | None = None, **overrides: Any) -> ServerSettings:
    """
    Load server settings from an optional YAML file and explicit overrides.

    Overrides with a value of None are ignored, so CLI options that were not given
    leave the file (or default) value in place.

    Args:
        config_path: Path to the YAML configuration file, or None for defaults.
        **overrides: Field values taking precedence over the file.

    Returns:
        The validated ServerSettings.

    Raises:
        OSError: If the file cannot be read.
        yaml.YAMLError: If the file is not valid YAML.
        TypeError: If the YAML root is not a mapping.
        ValidationError: If validation against ServerSettings fails.
    """
    raw: Any = None
    if config_path is not None:
        with config_path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
        log.debug("Loaded server config from %s", config_path)

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise TypeError(f"Server config root must be a mapping (YAML object), got {type(raw).__name__}")

    values = cast(dict[str, Any], raw)
    values.update({key: value for key, value in overrides.items() if value is not None})
    return ServerSettings.model_validate(values)
