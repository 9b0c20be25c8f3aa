"""Search paths for a cached SEV certificate chain.

The chain is looked for, in order, at the path named by the ``SEV_CHAIN``
environment variable, under the user's cache directory, and under
``/var/cache``.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

import platformdirs

__all__ = ["env_var", "home", "system", "path", "rm_cached_chain", "SYSTEM_CACHE_DIR"]

SYSTEM_CACHE_DIR = Path("/var/cache")


def _append_rest(base: Path) -> Path:
    return Path(base) / "amd-sev" / "chain"


def env_var() -> Optional[Path]:
    """The path stored in the ``SEV_CHAIN`` environment variable, if set."""
    value = os.environ.get("SEV_CHAIN")
    return Path(value) if value is not None else None


def home() -> Optional[Path]:
    """The user-level location, ``<user cache dir>/amd-sev/chain``."""
    return _append_rest(platformdirs.user_cache_path())


def system() -> Optional[Path]:
    """The system-level location, present only if the system cache exists."""
    if SYSTEM_CACHE_DIR.exists():
        return _append_rest(SYSTEM_CACHE_DIR)
    return None


def path() -> List[Path]:
    """All search paths, in the order they are searched."""
    return [candidate for candidate in (env_var(), home(), system()) if candidate is not None]


def rm_cached_chain() -> None:
    """Remove the chain file at the first search path, if it exists."""
    paths = path()
    if paths and paths[0].exists():
        paths[0].unlink()