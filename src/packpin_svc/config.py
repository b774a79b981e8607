"""Configuration for the packpin service."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ServerConfig:
    """HTTP server configuration."""
    host: str = "0.0.0.0"
    port: int = 8060
    workers: int = 1
    reload: bool = False


@dataclass
class RegistryConfig:
    """Registry configuration."""
    # Registry definition file (YAML) loaded at startup; with a database it
    # only seeds an empty store
    definition_file: str | None = None

    # Fail startup instead of starting empty when the file cannot be loaded
    strict: bool = False


@dataclass
class StorageConfig:
    """Persistence configuration."""
    # SQLite database holding registry rows, audit events and revisions
    # (None = in-memory only, nothing survives a restart)
    database: str | None = None


@dataclass
class AuditConfig:
    """Audit feed and revision configuration."""
    enabled: bool = True
    # Author recorded on the revision for the startup load (None = no revision)
    bootstrap_author: str | None = None
    bootstrap_comment: str = "initial registry load"


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class Config:
    """Main configuration container."""
    server: ServerConfig = field(default_factory=ServerConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict) -> Config:
        """Create config from dictionary."""
        return cls(
            server=ServerConfig(**data.get("server", {})),
            registry=RegistryConfig(**data.get("registry", {})),
            storage=StorageConfig(**data.get("storage", {})),
            audit=AuditConfig(**data.get("audit", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )

    @classmethod
    def from_yaml(cls, path: str) -> Config:
        """Load config from YAML file."""
        import yaml
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_json(cls, path: str) -> Config:
        """Load config from JSON file."""
        import json
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)
