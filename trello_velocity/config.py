"""Configuration loading from velocity.yml and the environment."""

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "velocity.yml"


class _Settings(BaseModel):
    # IDs and tokens can be all digits; YAML would read those as numbers
    model_config = ConfigDict(coerce_numbers_to_str=True)

    @field_validator("*", mode="before")
    @classmethod
    def blank_if_null(cls, v: object) -> object:
        return "" if v is None else v


class ApiSettings(_Settings):
    key: str = ""
    token: str = ""


class BoardSettings(_Settings):
    id: str = ""


class ListSettings(_Settings):
    backlog_id: str = ""
    doing_id: str = ""
    done_id: str = ""


class TrelloSettings(BaseModel):
    api: ApiSettings = Field(default_factory=ApiSettings)
    board: BoardSettings = Field(default_factory=BoardSettings)
    lists: ListSettings = Field(default_factory=ListSettings)


class Configuration(BaseModel):
    trello: TrelloSettings = Field(default_factory=TrelloSettings)

    def _setting(self, name: str) -> str:
        """Look up a dotted setting name like 'trello.lists.done_id'."""
        value: object = self
        for part in name.split("."):
            value = getattr(value, part)
        return str(value)

    def missing(self, *names: str) -> list[str]:
        """Names of the given settings that are blank."""
        return [name for name in names if not self._setting(name).strip()]


CREDENTIAL_SETTINGS = ("trello.api.key", "trello.api.token")


def get_config_path() -> str:
    """Get config path from environment or default."""
    return os.getenv("VELOCITY_CONFIG", DEFAULT_CONFIG_PATH)


def _load_yaml(path: Path) -> dict | None:
    if not path.exists():
        logger.debug("No configuration file at %s", path)
        return None

    try:
        with path.open(encoding="utf-8") as f:
            result = yaml.safe_load(f)
    except (yaml.YAMLError, OSError) as e:
        logger.warning("Could not load configuration %s: %s", path, e)
        return None
    return result if isinstance(result, dict) else None


def load_configuration(config_path: str | None = None) -> Configuration:
    """Load the configuration, falling back to empty settings.

    Precedence: TRELLO_API_KEY/TRELLO_API_TOKEN environment variables,
    then the YAML file, then empty strings. A missing or invalid file
    yields an all-empty configuration; callers check missing().
    """
    path = Path(config_path if config_path is not None else get_config_path())
    data = _load_yaml(path)

    config = Configuration()
    if data is not None:
        try:
            config = Configuration.model_validate(data)
        except ValidationError as e:
            logger.warning("Ignoring invalid configuration %s: %s", path, e)

    key = os.getenv("TRELLO_API_KEY", "").strip()
    token = os.getenv("TRELLO_API_TOKEN", "").strip()
    if key:
        config.trello.api.key = key
    if token:
        config.trello.api.token = token
    return config
