# src/sfclient/env_loader.py
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Optional, Set

from dotenv import load_dotenv

_logger = logging.getLogger(__name__)

ENV_FILE_VAR = "SF_ENV_FILE"

_loaded: Set[Path] = set()


def default_candidates() -> list[Path]:
    """``$SF_ENV_FILE`` when set, otherwise .env / .dotenv in the current directory."""
    explicit = os.getenv(ENV_FILE_VAR)
    if explicit:
        return [Path(explicit).expanduser()]
    cwd = Path.cwd()
    return [cwd / ".env", cwd / ".dotenv"]


def load_env_files(
    candidates: Optional[Iterable[Path]] = None,
    *,
    quiet: bool = False,
) -> Optional[Path]:
    """Load the first existing .env-style file; shared by CLI and library.

    - First existing file wins; variables already set in the process are kept.
    - A file already loaded by this process is not read again, so the CLI
      and ``ClientConfig.from_env`` can both call this.
    - Returns the file in effect, or None.
    """
    if candidates is None:
        candidates = default_candidates()

    for path in candidates:
        if not path.exists():
            continue
        resolved = path.resolve()
        if resolved in _loaded:
            return path
        load_dotenv(path)
        _loaded.add(resolved)
        if not quiet:
            _logger.debug("Loaded environment variables from %s", path)
        return path

    if not quiet:
        _logger.debug("No .env/.dotenv file found in %s", Path.cwd())
    return None
