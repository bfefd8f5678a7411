"""Gateway plugins.

Plugins come from two places: packages advertising the ``mategate.plugins``
entry point, and loose ``*.py`` files under ``.mategate/plugins/``. They can
observe commits and code runs, and contribute extra sandbox providers.
"""

from __future__ import annotations

import importlib.util
import inspect
import logging
import sys
from pathlib import Path
from types import ModuleType
from typing import TYPE_CHECKING, Any

import pluggy

from mategate.plugins.hookspecs import MategateHookSpec

if TYPE_CHECKING:
    from mategate.infrastructure.sandbox.base import SandboxProvider

PROJECT_NAME = "mategate"
ENTRY_POINT_GROUP = "mategate.plugins"
LOCAL_MODULE_PREFIX = "mategate_local_plugin_"

logger = logging.getLogger(__name__)


class PluginManager:
    """Owns the pluggy manager for one gateway."""

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(MategateHookSpec)
        self._loaded: bool = False

    def discover_and_load(
        self,
        *,
        local_dir: Path | None = None,
        disabled: list[str] | None = None,
    ) -> list[str]:
        """Load installed plugins, then loose files from *local_dir*.

        Names in *disabled* are blocked first, so they never register even
        when a later caller (the built-in audit plugin) tries to. Returns
        the names now registered.
        """
        for name in disabled or []:
            self._pm.set_blocked(name)
        self._pm.load_setuptools_entrypoints(ENTRY_POINT_GROUP)
        self._normalize_plugin_instances()
        if local_dir is not None:
            self._discover_local(local_dir)
        self._loaded = True
        return self.list_plugin_names()

    def register_plugin(self, plugin: object, name: str | None = None) -> None:
        resolved_name = name or type(plugin).__name__
        if self._pm.is_blocked(resolved_name):
            logger.debug("Skipping blocked plugin: %s", resolved_name)
            return
        self._pm.register(plugin, name=resolved_name)
        logger.debug("Plugin %s registered", resolved_name)

    def unregister(self, plugin: object) -> None:
        self._pm.unregister(plugin)

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def hook(self) -> pluggy.HookRelay:
        return self._pm.hook

    def list_plugin_names(self) -> list[str]:
        names = []
        for plugin in self._pm.get_plugins():
            names.append(self._pm.get_name(plugin) or type(plugin).__name__)
        return names

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def notify(self, hook_name: str, **kwargs: Any) -> list[str]:
        """Call *hook_name* on every plugin, one at a time.

        INVARIANT: Plugin failures are warnings, never errors. Returns one
        warning string per failing plugin.
        """
        warnings: list[str] = []
        caller = getattr(self._pm.hook, hook_name)
        for impl in caller.get_hookimpls():
            # Implementations may accept any subset of the hookspec's arguments.
            args = [kwargs[name] for name in impl.argnames]
            try:
                impl.function(*args)
            except Exception:
                logger.warning(
                    "Plugin %s failed in %s", impl.plugin_name, hook_name, exc_info=True
                )
                warnings.append(f"Plugin {impl.plugin_name} failed in {hook_name}")
        return warnings

    def collect_sandbox_providers(self) -> list[SandboxProvider]:
        """Gather providers contributed through ``register_sandbox_providers``."""
        providers: list[SandboxProvider] = []
        for impl in self._pm.hook.register_sandbox_providers.get_hookimpls():
            plugin_name = impl.plugin_name
            try:
                contributed = impl.function()
            except Exception:
                logger.warning(
                    "Failed to collect sandbox providers from plugin %s",
                    plugin_name,
                    exc_info=True,
                )
                continue
            if contributed is None:
                continue
            if not isinstance(contributed, list):
                logger.warning("Plugin %s returned non-list sandbox providers", plugin_name)
                continue
            for provider in contributed:
                if not isinstance(getattr(provider, "name", None), str):
                    logger.warning("Skipping unnamed sandbox provider from %s", plugin_name)
                    continue
                providers.append(provider)
        return providers

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _discover_local(self, local_dir: Path) -> None:
        """Register hook classes from ``*.py`` files in *local_dir*.

        Files starting with ``_`` are skipped. A file that fails to import,
        or a class that fails to construct, is logged and skipped so a broken
        local plugin never keeps the gateway from starting.
        """
        if not local_dir.is_dir():
            return
        for path in sorted(local_dir.glob("*.py")):
            if path.name.startswith("_"):
                continue
            module = _import_file(f"{LOCAL_MODULE_PREFIX}{path.stem}", path)
            if module is None:
                continue
            classes = _hook_classes(module)
            for cls in classes:
                name = f"local:{path.stem}"
                if len(classes) > 1:
                    name = f"{name}.{cls.__name__}"
                instance = _instantiate(cls, name)
                if instance is not None:
                    self.register_plugin(instance, name=name)

    def _normalize_plugin_instances(self) -> None:
        """Swap hook classes registered by entry points for instances.

        An entry point may name a class; dispatching against the class
        itself would leave ``self`` unbound.
        """
        for plugin in list(self._pm.get_plugins()):
            if not (inspect.isclass(plugin) and _has_hook_impls(plugin)):
                continue
            name = self._pm.get_name(plugin) or plugin.__name__
            self._pm.unregister(plugin)
            instance = _instantiate(plugin, name)
            if instance is not None:
                self._pm.register(instance, name=name)


def _import_file(module_name: str, path: Path) -> ModuleType | None:
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        logger.warning("Not a loadable plugin file: %s", path)
        return None
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception:
        sys.modules.pop(module_name, None)
        logger.warning("Failed to load local plugin %s", path, exc_info=True)
        return None
    return module


def _hook_classes(module: ModuleType) -> list[type]:
    """Classes defined in *module* (not imported into it) that implement hooks."""
    return [
        obj
        for _, obj in inspect.getmembers(module, inspect.isclass)
        if obj.__module__ == module.__name__ and _has_hook_impls(obj)
    ]


def _instantiate(cls: type, name: str) -> object | None:
    try:
        return cls()
    except Exception:
        logger.warning("Failed to instantiate plugin %s (%s)", name, cls.__name__, exc_info=True)
        return None


def _has_hook_impls(cls: type) -> bool:
    """True if any public method carries the ``@hookimpl`` marker."""
    marker = f"{PROJECT_NAME}_impl"
    return any(
        getattr(getattr(cls, attr, None), marker, None) is not None
        for attr in dir(cls)
        if not attr.startswith("_")
    )
