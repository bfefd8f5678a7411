"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, mategate.toml only contains
overrides. A fresh gateway needs no config file at all.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

# --- mategate.toml sections ---


class GatewayConfig(BaseModel):
    """[gateway] section."""

    model_config = {"frozen": True}

    name: str = "mategate"
    default_identity: str = "local"


class DomainsConfig(BaseModel):
    """[domains] section: per-domain enable flags."""

    model_config = {"frozen": True}

    memories: bool = True
    knowledge: bool = True
    files: bool = True
    code: bool = True
    conversations: bool = True
    hydration: bool = True
    search: bool = True
    projects: bool = True

    def is_enabled(self, domain: str) -> bool:
        return bool(getattr(self, domain, False))


class RateLimitConfig(BaseModel):
    """[rate_limit] section.

    ``limits`` maps an operation class to requests per window; a limit of
    zero or less disables throttling for that class.
    """

    model_config = {"frozen": True}

    window_seconds: int = 60
    limits: dict[str, int] = Field(
        default_factory=lambda: {"default": 60, "execution": 20, "files": 60, "search": 100}
    )
    domain_classes: dict[str, str] = Field(
        default_factory=lambda: {"code": "execution", "files": "files", "search": "search"}
    )

    def class_for(self, domain: str) -> str:
        return self.domain_classes.get(domain, "default")

    def limit_for(self, operation_class: str) -> int:
        return self.limits.get(operation_class, self.limits.get("default", 0))


class FilesConfig(BaseModel):
    """[files] section.

    A project ID resolves through ``projects`` first, then to
    ``{projects_root}/{project_id}`` (relative roots are anchored at the
    data root).
    """

    model_config = {"frozen": True}

    projects_root: str = "projects"
    projects: dict[str, str] = Field(default_factory=dict)
    manifest_ttl_seconds: int = 900
    max_file_bytes: int = 5_000_000


class ProviderConfig(BaseModel):
    """One entry of ``[[execution.providers]]``."""

    model_config = {"frozen": True}

    name: str
    enabled: bool = True
    priority: int = 100
    # None means every language the provider implementation supports.
    languages: list[str] | None = None
    default_timeout_seconds: float | None = None


def _default_providers() -> list[ProviderConfig]:
    return [
        ProviderConfig(name="e2b", priority=10),
        ProviderConfig(name="docker", priority=20),
        ProviderConfig(name="subprocess", enabled=False, priority=90),
    ]


class DockerConfig(BaseModel):
    """[execution.docker] section."""

    model_config = {"frozen": True}

    binary: str = "docker"
    images: dict[str, str] = Field(default_factory=dict)
    # Seconds allowed on top of the execution timeout for container start/stop.
    startup_grace_seconds: float = 10.0


class E2BConfig(BaseModel):
    """[execution.e2b] section."""

    model_config = {"frozen": True}

    base_url: str = "https://api.e2b.dev/"
    api_key: str | None = None
    request_timeout_seconds: float = 30.0
    sandbox_timeout_seconds: int = 60
    templates: dict[str, str] = Field(
        default_factory=lambda: {
            "python": "Python3",
            "javascript": "Node",
            "typescript": "Node",
            "r": "R",
            "java": "Java",
            "bash": "Bash",
        }
    )


class ExecutionConfig(BaseModel):
    """[execution] section."""

    model_config = {"frozen": True}

    providers: list[ProviderConfig] = Field(default_factory=_default_providers)
    default_timeout_seconds: float = 30.0
    max_timeout_seconds: float = 120.0
    memory_mb: int = 256
    cpu_percent: int = 50
    pids_limit: int = 100
    allow_network: bool = False
    max_output_bytes: int = 1_000_000
    docker: DockerConfig = Field(default_factory=DockerConfig)
    e2b: E2BConfig = Field(default_factory=E2BConfig)


class StorageConfig(BaseModel):
    """[storage] section."""

    model_config = {"frozen": True}

    # Relative paths are anchored at the data root.
    db_path: str = ".mategate/mategate.db"


class PluginsConfig(BaseModel):
    """[plugins] section."""

    model_config = {"frozen": True}

    enabled: bool = True
    disabled: list[str] = Field(default_factory=list)


class McpConfig(BaseModel):
    """[mcp] section."""

    model_config = {"frozen": True}

    enabled: bool = True
    transport: str = "stdio"
    # Domains exposed as MCP tools; empty means every enabled domain.
    domains: list[str] = Field(default_factory=list)
