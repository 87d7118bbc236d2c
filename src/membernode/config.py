"""Member Node configuration.

Configuration is read from a YAML file and validated with pydantic. The
camelCase keys used by existing deployment files (``dataRepoConfiguration``,
``storageCapacity``, ``node.identifier.value`` ...) are accepted as-is;
keys the adapter does not use (database pools, TLS stores, Jersey client
settings) are ignored.

Environment Variables:
    MEMBERNODE_CONFIG_PATH: Path of the YAML configuration file
    MEMBERNODE_SCOPE_NAME: Overrides dataRepoConfiguration.dataRepoName
    MEMBERNODE_NODE_ID: Overrides node.identifier
    MEMBERNODE_STORAGE_CAPACITY: Overrides storageCapacity (in storageCapacityUnit)
    MEMBERNODE_DATA_REPO_PATH: Overrides dataRepoConfiguration.dataRepoPath

Design:
    - Fail closed: a missing file, unparsable YAML or invalid values raise
      ConfigError; there is no implicit default scope name or node identity.
    - ``storageCapacity`` is counted in ``storageCapacityUnit``, bytes unless
      set. Older deployment files give the capacity in megabytes and need
      ``storageCapacityUnit: MB``. Units are binary (1 KB = 1024 bytes).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Annotated, Any, Literal

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

MEMBERNODE_CONFIG_PATH_ENV = "MEMBERNODE_CONFIG_PATH"
MEMBERNODE_SCOPE_NAME_ENV = "MEMBERNODE_SCOPE_NAME"
MEMBERNODE_NODE_ID_ENV = "MEMBERNODE_NODE_ID"
MEMBERNODE_STORAGE_CAPACITY_ENV = "MEMBERNODE_STORAGE_CAPACITY"
MEMBERNODE_DATA_REPO_PATH_ENV = "MEMBERNODE_DATA_REPO_PATH"

DEFAULT_DOI_PREFIX = "10.5072"

CAPACITY_UNITS = {"B": 1, "KB": 1024, "MB": 1024**2, "GB": 1024**3}


class ConfigError(Exception):
    """Raised when configuration is missing or invalid.

    This is a startup error: the service must not start without a valid
    scope name, node identity and storage capacity.
    """

    pass


def _unwrap_value(value: Any) -> Any:
    """Accept ``{value: x}`` wrappers used by protocol-typed YAML documents."""
    if isinstance(value, dict) and set(value) == {"value"}:
        return value["value"]
    return value


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class NodeConfig(_ConfigModel):
    """Description of this Member Node."""

    identifier: Annotated[str, Field(min_length=1)]
    name: str = "Member Node"
    description: str | None = None
    base_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("baseURL", "baseUrl", "base_url"),
    )
    subject: list[str] = Field(default_factory=list)
    contact_subject: list[str] = Field(default_factory=list)

    @field_validator("identifier", mode="before")
    @classmethod
    def _unwrap_identifier(cls, value: Any) -> Any:
        return _unwrap_value(value)

    @field_validator("subject", "contact_subject", mode="before")
    @classmethod
    def _unwrap_subjects(cls, value: Any) -> Any:
        if value is None:
            return []
        if not isinstance(value, list):
            value = [value]
        return [_unwrap_value(v) for v in value]


class DataRepoConfig(_ConfigModel):
    """Data repository settings.

    Attributes:
        data_repo_name: Scope name this node publishes in and receives shares for.
        data_repo_path: Base directory of the filesystem repository backend.
        backend: Repository backend to run against.
        doi_common_prefix: Prefix of locally minted DOIs.
        doi_api_url: Base URL of a remote DOI registry; local minting when unset.
    """

    data_repo_name: Annotated[str, Field(min_length=1)]
    data_repo_path: str | None = None
    backend: Literal["memory", "filesystem"] = "filesystem"
    doi_common_prefix: str = DEFAULT_DOI_PREFIX
    doi_api_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("doiApiUrl", "gbifApiUrl", "doi_api_url"),
    )


class MemberNodeConfig(_ConfigModel):
    """Complete Member Node configuration."""

    node: NodeConfig
    data_repo_configuration: DataRepoConfig
    storage_capacity: Annotated[int, Field(ge=0)]
    storage_capacity_unit: Literal["B", "KB", "MB", "GB"] = "B"

    @field_validator("storage_capacity_unit", mode="before")
    @classmethod
    def _normalize_unit(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @property
    def node_id(self) -> str:
        """This node's identifier (e.g. ``urn:node:mnTestGBIF``)."""
        return self.node.identifier

    @property
    def scope_name(self) -> str:
        """Scope name gating visibility of data packages."""
        return self.data_repo_configuration.data_repo_name

    @property
    def storage_capacity_bytes(self) -> int:
        """Storage capacity converted to bytes."""
        return self.storage_capacity * CAPACITY_UNITS[self.storage_capacity_unit]


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Overlay environment variables onto the raw YAML document."""
    data = dict(raw)
    node = dict(data.get("node") or {})
    repo = dict(data.get("dataRepoConfiguration") or data.get("data_repo_configuration") or {})

    scope_name = os.environ.get(MEMBERNODE_SCOPE_NAME_ENV, "").strip()
    if scope_name:
        repo["dataRepoName"] = scope_name

    repo_path = os.environ.get(MEMBERNODE_DATA_REPO_PATH_ENV, "").strip()
    if repo_path:
        repo["dataRepoPath"] = repo_path

    node_id = os.environ.get(MEMBERNODE_NODE_ID_ENV, "").strip()
    if node_id:
        node["identifier"] = node_id

    capacity = os.environ.get(MEMBERNODE_STORAGE_CAPACITY_ENV, "").strip()
    if capacity:
        data["storageCapacity"] = capacity

    data.pop("data_repo_configuration", None)
    data["node"] = node
    data["dataRepoConfiguration"] = repo
    return data


def parse_config(raw: dict[str, Any]) -> MemberNodeConfig:
    """Validate a raw configuration mapping (environment overrides applied).

    Raises:
        ConfigError: If required settings are missing or invalid.
    """
    try:
        return MemberNodeConfig.model_validate(_apply_env_overrides(raw))
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigError(f"Invalid configuration: {problems}") from e


def load_config(path: str | Path | None = None) -> MemberNodeConfig:
    """Load configuration from YAML.

    Args:
        path: YAML file path. If None, reads MEMBERNODE_CONFIG_PATH; when that
            is unset too, configuration comes from environment variables alone.

    Raises:
        ConfigError: If the file cannot be read or parsed, or settings are invalid.
    """
    if path is None:
        path = os.environ.get(MEMBERNODE_CONFIG_PATH_ENV) or None

    raw: Any = {}
    if path is not None:
        config_path = Path(path)
        try:
            raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        except FileNotFoundError as e:
            raise ConfigError(f"Configuration file not found: {config_path}") from e
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read configuration file {config_path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError("Configuration document must be a mapping")

    config = parse_config(raw)
    logger.info(
        "Loaded configuration: node=%s scope=%s capacity=%d bytes",
        config.node_id,
        config.scope_name,
        config.storage_capacity_bytes,
    )
    return config
