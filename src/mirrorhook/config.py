"""Configuration loading for the webhook gateway.

The configuration is a single YAML file. The ``server`` section configures
the HTTP listener and job queue; every other key is a repository option
(see :class:`mirrorhook.options.RepositoryOptions`) or an ``owners`` /
``domains`` override subtree.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import ConfigurationError
from .options import RepositoryOptions, merge_options

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config.yaml")


class ServerConfig(BaseModel):
    """HTTP listener and job queue settings.

    Attributes:
        listen_host: Host to bind to
        listen_port: Port to listen on
        workers: Concurrent work units (distinct mirrors only; one mirror is
            serialized by its lock)
        queue_size: Maximum number of waiting work units
        github_secret: Verify ``X-Hub-Signature-256`` when set
        gitlab_token: Verify ``X-Gitlab-Token`` when set
    """

    listen_host: str = Field(default="127.0.0.1", description="Host to bind to")
    listen_port: int = Field(default=8000, ge=1, le=65535, description="Port to listen on")
    workers: int = Field(default=4, ge=1, le=64, description="Concurrent work units")
    queue_size: int = Field(default=1000, ge=1, le=100000, description="Maximum queued jobs")
    github_secret: Optional[str] = Field(default=None, description="GitHub webhook secret")
    gitlab_token: Optional[str] = Field(default=None, description="GitLab webhook token")

    @field_validator("github_secret", "gitlab_token")
    @classmethod
    def _reject_empty(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value:
            raise ValueError("must not be empty; omit the key to disable verification")
        return value


class GatewayConfig(BaseModel):
    """Complete gateway configuration.

    Attributes:
        server: Listener settings
        options: Repository option tree (defaults plus override subtrees)
    """

    server: ServerConfig = Field(default_factory=ServerConfig)
    options: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], base_dir: Optional[Path] = None) -> "GatewayConfig":
        data = dict(data)
        server = data.pop("server", None) or {}
        if base_dir is not None:
            data.setdefault("base_dir", str(base_dir))
        return cls(server=server, options=data)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _iter_override_layers(options: Mapping[str, Any]) -> Iterator[Tuple[str, Any]]:
    """Yield ``(location, layer)`` for every override subtree."""
    for owner_name, owner in (options.get("owners") or {}).items():
        yield f"owners.{owner_name}", owner
        if isinstance(owner, Mapping):
            for name, layer in (owner.get("repositories") or {}).items():
                yield f"owners.{owner_name}.repositories.{name}", layer
    for domain, domain_tree in (options.get("domains") or {}).items():
        yield f"domains.{domain}", domain_tree
        if not isinstance(domain_tree, Mapping):
            continue
        for owner_name, owner in (domain_tree.get("owners") or {}).items():
            yield f"domains.{domain}.owners.{owner_name}", owner
            if isinstance(owner, Mapping):
                for name, layer in (owner.get("repositories") or {}).items():
                    yield f"domains.{domain}.owners.{owner_name}.repositories.{name}", layer


def validate_options(options: Mapping[str, Any]) -> List[str]:
    """Check the defaults and every override layer for invalid values.

    Each layer is validated merged over the defaults, the way it is used at
    resolution time. ``to`` may be missing here; it is enforced per
    repository.
    """
    errors: List[str] = []
    layers: List[Tuple[str, Any]] = [("", {})]
    try:
        layers.extend(_iter_override_layers(options))
    except AttributeError:
        return ["owners/domains: must be mappings"]

    for location, layer in layers:
        prefix = f"{location}." if location else ""
        if not isinstance(layer, Mapping):
            errors.append(f"{location}: must be a mapping")
            continue
        try:
            RepositoryOptions.model_validate(merge_options(options, [layer]))
        except ValidationError as exc:
            for error in exc.errors():
                loc = ".".join(str(part) for part in error["loc"])
                errors.append(f"{prefix}{loc}: {error['msg']}")
    return errors


# ---------------------------------------------------------------------------
# Configuration manager
# ---------------------------------------------------------------------------


class ConfigurationManager:
    """Loads and validates the gateway configuration file.

    Attributes:
        config_path: Path to the YAML file
    """

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = Path(config_path or DEFAULT_CONFIG_PATH)

    def _read(self) -> Dict[str, Any]:
        try:
            with open(self.config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {self.config_path}: {exc}") from exc
        except OSError as exc:
            raise ConfigurationError(f"Failed to read {self.config_path}: {exc}") from exc

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration root must be a mapping: {self.config_path}"
            )
        return data

    def load(self) -> GatewayConfig:
        """Load and validate configuration.

        A missing file yields defaults.

        Raises:
            ConfigurationError: If the file cannot be parsed or is invalid
        """
        if not self.config_path.exists():
            logger.warning(f"Configuration file not found, using defaults: {self.config_path}")
            return GatewayConfig.from_mapping({}, base_dir=self.config_path.parent.resolve())

        data = self._read()
        try:
            config = GatewayConfig.from_mapping(
                data, base_dir=self.config_path.parent.resolve()
            )
        except ValidationError as exc:
            error_details = [
                f"server.{'.'.join(str(loc) for loc in err['loc'][1:])}: {err['msg']}"
                for err in exc.errors()
            ]
            raise ConfigurationError(
                f"Invalid configuration: {'; '.join(error_details)}"
            ) from exc

        errors = validate_options(config.options)
        if errors:
            raise ConfigurationError(f"Invalid configuration: {'; '.join(errors)}")

        logger.info(f"Loaded configuration from {self.config_path}")
        return config

    def validate(self) -> List[str]:
        """Validate the configuration file without raising.

        Returns:
            List of validation errors (empty if valid)
        """
        if not self.config_path.exists():
            return [f"Configuration file not found: {self.config_path}"]
        try:
            self.load()
        except ConfigurationError as exc:
            message = str(exc)
            prefix = "Invalid configuration: "
            if message.startswith(prefix):
                return message[len(prefix):].split("; ")
            return [message]
        return []


__all__ = [
    "ConfigurationManager",
    "DEFAULT_CONFIG_PATH",
    "GatewayConfig",
    "ServerConfig",
    "validate_options",
]
