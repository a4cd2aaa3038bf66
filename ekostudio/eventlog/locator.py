from __future__ import annotations

import os
from typing import List, Optional

from ekostudio.eventlog.errors import LogNotFound
from ekostudio.eventlog.format import is_log_filename


def list_log_files(log_dir: str) -> List[str]:
    """Recording filenames in `log_dir`, newest first. Missing directory -> []."""
    if not os.path.isdir(log_dir):
        return []
    names = [n for n in os.listdir(log_dir) if is_log_filename(n) and os.path.isfile(os.path.join(log_dir, n))]
    return sorted(names, reverse=True)


def latest_log_file(log_dir: str) -> Optional[str]:
    names = list_log_files(log_dir)
    return names[0] if names else None


def resolve_log_file(log_dir: str, name: str | None = None) -> str:
    """
    Path of an explicitly named recording, or of the newest one when `name` is empty.
    Names are plain filenames; anything that would escape `log_dir` is rejected.
    """
    if name:
        if os.path.basename(name) != name or name in (".", ".."):
            raise LogNotFound(f"Invalid log file name: {name}")
        path = os.path.join(log_dir, name)
        if not os.path.isfile(path):
            raise LogNotFound(f"Log file does not exist: {name}")
        return path
    latest = latest_log_file(log_dir)
    if latest is None:
        raise LogNotFound(f"No available log file found in {log_dir}")
    return os.path.join(log_dir, latest)
