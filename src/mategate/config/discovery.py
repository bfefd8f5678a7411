"""Locate ``mategate.toml``.

``MATEGATE_CONFIG`` wins when set; it may name the file itself or a
directory holding one. Otherwise the search walks up from the start
directory like git does for ``.git/``, giving up after the user's home
directory so a stray file in ``/`` or ``/home`` is never picked up for a
project under ``~``.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

CONFIG_FILENAME = "mategate.toml"
CONFIG_ENV_VAR = "MATEGATE_CONFIG"


def _search_dirs(start: Path) -> Iterator[Path]:
    home = Path.home().resolve()
    for directory in (start, *start.parents):
        yield directory
        if directory == home:
            return


def _from_env(value: str) -> Path | None:
    p = Path(value).expanduser()
    if p.is_dir():
        p = p / CONFIG_FILENAME
    return p if p.is_file() else None


def find_config(start: Path | None = None) -> Path | None:
    """Return the config file that applies to *start* (default: CWD), if any.

    A set but unusable ``MATEGATE_CONFIG`` yields None rather than falling
    back to the walk-up.
    """
    env_value = os.environ.get(CONFIG_ENV_VAR)
    if env_value:
        return _from_env(env_value)

    for directory in _search_dirs((start or Path.cwd()).resolve()):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None
