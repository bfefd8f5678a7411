"""Gateway settings: CLI flags, env vars, and ``mategate.toml`` in one object.

Priority chain (highest to lowest):
  1. Init kwargs  (CLI flags, or MCP server arguments)
  2. Env vars     (``MATEGATE_*`` prefix, ``__`` for nested keys)
  3. TOML file    (``mategate.toml`` discovered via walk-up)
  4. Code defaults baked into the section models

The TOML file is parsed once in :meth:`GateSettings.from_cli` and handed
to pydantic-settings through a context variable, so construction stays
safe when several threads build settings at once.
"""

from __future__ import annotations

import tomllib
from contextvars import ContextVar
from pathlib import Path
from typing import Any

import click
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from mategate.config.discovery import find_config
from mategate.config.models import (
    DomainsConfig,
    ExecutionConfig,
    FilesConfig,
    GatewayConfig,
    McpConfig,
    PluginsConfig,
    RateLimitConfig,
    StorageConfig,
)

_toml_data: ContextVar[dict[str, Any] | None] = ContextVar("_toml_data", default=None)


def load_toml(path: Path) -> dict[str, Any]:
    """Parse *path*, turning syntax errors into a usage error."""
    try:
        with path.open("rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise click.ClickException(f"Invalid TOML in {path}: {exc}") from exc


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Serves the parsed ``mategate.toml`` sections to pydantic-settings."""

    def __init__(self, settings_cls: type[BaseSettings], data: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._data = data

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        return self._data.get(field_name), field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        return self._data


def _describe_errors(exc: ValidationError) -> str:
    lines = []
    for err in exc.errors():
        where = ".".join(str(part) for part in err["loc"]) or "(root)"
        lines.append(f"  {where}: {err['msg']}")
    return "\n".join(lines)


class GateSettings(BaseSettings):
    """Settings for one gateway process.

    Attributes:
        data_root: Directory holding ``.mategate/`` state: the parent of
            ``mategate.toml``, or CWD when there is none.
        config_path: The TOML file that was loaded, if any.
        identity: Caller identity for CLI invocations; falls back to
            ``gateway.default_identity``.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "MATEGATE_",
        "env_nested_delimiter": "__",
    }

    data_root: Path = Field(default_factory=Path.cwd)
    config_path: Path | None = None

    # CLI flags
    json_output: bool = False
    verbose: bool = False
    log_json: bool = False
    identity: str | None = None

    # mategate.toml sections
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    domains: DomainsConfig = Field(default_factory=DomainsConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    files: FilesConfig = Field(default_factory=FilesConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    plugins: PluginsConfig = Field(default_factory=PluginsConfig)
    mcp: McpConfig = Field(default_factory=McpConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """CLI kwargs, then env vars, then TOML; no dotenv or secrets dir."""
        toml = TomlSettingsSource(settings_cls, _toml_data.get() or {})
        return init_settings, env_settings, toml

    @classmethod
    def from_cli(
        cls,
        *,
        config_path: str | None = None,
        data_root: Path | None = None,
        **cli_flags: Any,
    ) -> GateSettings:
        """Build settings for a CLI or MCP server invocation.

        An explicit *config_path* must exist. Without one, ``mategate.toml``
        is found by walking up from *data_root* (or CWD), and *data_root*
        defaults to the directory it was found in.

        Raises:
            click.ClickException: Missing config file, bad TOML, or values
                that fail validation.
        """
        toml_path: Path | None
        if config_path:
            toml_path = Path(config_path)
            if not toml_path.is_file():
                raise click.ClickException(f"Config file not found: {toml_path}")
        else:
            toml_path = find_config(data_root)

        data = load_toml(toml_path) if toml_path is not None else {}
        if data_root is None:
            data_root = toml_path.parent if toml_path is not None else Path.cwd()

        token = _toml_data.set(data)
        try:
            return cls(data_root=data_root, config_path=toml_path, **cli_flags)
        except ValidationError as exc:
            source = toml_path or "environment"
            raise click.ClickException(
                f"Invalid configuration ({source}):\n{_describe_errors(exc)}"
            ) from exc
        finally:
            _toml_data.reset(token)

    # --- Derived paths ---

    def resolve_path(self, value: str | Path) -> Path:
        """Anchor a possibly-relative config path at the data root."""
        p = Path(value).expanduser()
        return p if p.is_absolute() else self.data_root / p

    @property
    def db_path(self) -> Path:
        return self.resolve_path(self.storage.db_path)

    @property
    def effective_identity(self) -> str:
        return self.identity or self.gateway.default_identity
