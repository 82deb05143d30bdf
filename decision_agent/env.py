"""Environment handling: ``${NAME}`` expansion, credential gating, key files.

Every function takes the environment as an explicit mapping so callers (and
tests) decide what "the environment" is. Only the outermost entry points
default to ``os.environ``.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable, Mapping, MutableMapping
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

KEYS_FILE_ENV = "DECISION_AGENT_KEYS_FILE"
DEFAULT_KEYS_FILE = ".env"

_PLACEHOLDER_RE = re.compile(r"\$\{([^}]+)\}")


def expand_env_vars(text: str, env: Mapping[str, str]) -> str:
    """Replace each ``${NAME}`` in ``text`` with ``env[NAME]``, or "" when unset."""
    return _PLACEHOLDER_RE.sub(lambda m: env.get(m.group(1), ""), text)


def expand_all_env_vars(value: Any, env: Mapping[str, str]) -> Any:
    """Expand placeholders in every string nested inside mappings and lists.

    Returns a new structure; non-string leaves are returned unchanged.
    """
    if isinstance(value, str):
        return expand_env_vars(value, env)
    if isinstance(value, list):
        return [expand_all_env_vars(item, env) for item in value]
    if isinstance(value, Mapping):
        return {key: expand_all_env_vars(item, env) for key, item in value.items()}
    return value


def missing_env_vars(names: Iterable[str] | None, env: Mapping[str, str]) -> list[str]:
    """Return the names that are unset or empty in ``env``, in declaration order."""
    return [name for name in names or () if not env.get(name)]


def load_env_file(
    path: str | Path | None = None,
    env: MutableMapping[str, str] | None = None,
) -> list[str]:
    """Load ``KEY=value`` lines from a key file into ``env``.

    Reads ``path``, else $DECISION_AGENT_KEYS_FILE, else ``.env`` in the
    working directory. Skips comments, blank lines, and keys already present
    in ``env``. Returns the names that were loaded.
    """
    target = os.environ if env is None else env
    keys_file = Path(path or target.get(KEYS_FILE_ENV) or DEFAULT_KEYS_FILE)
    if not keys_file.is_file():
        return []

    loaded: list[str] = []
    for line in keys_file.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[7:]
        if "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip().strip("\"'")
        if key and key not in target:
            target[key] = value
            loaded.append(key)
    if loaded:
        logger.debug("Loaded %d key(s) from %s", len(loaded), keys_file)
    return loaded


__all__ = [
    "DEFAULT_KEYS_FILE",
    "KEYS_FILE_ENV",
    "expand_all_env_vars",
    "expand_env_vars",
    "load_env_file",
    "missing_env_vars",
]
