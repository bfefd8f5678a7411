"""Extension layer: plugin system via pluggy.

Discovery: entry_points (pip-installed) via pluggy setuptools entrypoints,
plus single-file plugins in ``.mategate/plugins/``.
INVARIANT: Plugin failures are warnings, never errors.
"""

import pluggy

from mategate.plugins.manager import PluginManager

hookimpl = pluggy.HookimplMarker("mategate")

__all__ = ["PluginManager", "hookimpl"]
