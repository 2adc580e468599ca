"""
Output sinks for remote command transcripts.

The provisioner delivers one callback per completed output line.  The helpers
here persist that feed next to the run logs and fan it out to several sinks.
"""

from __future__ import annotations

import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Tuple

from habprov.logging_setup import logs_dir

Writer = Callable[[str], None]


def _timestamp() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def _safe_host_token(host: str) -> str:
    token = re.sub(r"[^A-Za-z0-9_.-]+", "_", host.strip())
    return token or "remote"


def transcript_path(host: str, root: Optional[Path] = None) -> Path:
    base = root if root is not None else logs_dir() / "remote"
    return (base / f"{_safe_host_token(host)}.log").resolve()


def open_transcript(host: str, root: Optional[Path] = None) -> Tuple[Writer, Path]:
    """
    Return a writer function and the associated file path for *host*.

    The writer appends timestamped lines to the transcript, creating parent
    directories as needed.
    """

    path = transcript_path(host, root)
    path.parent.mkdir(parents=True, exist_ok=True)
    lock = threading.Lock()

    def _write(message: str) -> None:
        line = f"[{_timestamp()}] {message}"
        with lock, path.open("a", encoding="utf-8") as fp:
            fp.write(line + "\n")

    return _write, path


def tee(*sinks: Writer) -> Writer:
    def _fanout(line: str) -> None:
        for sink in sinks:
            sink(line)

    return _fanout


__all__ = ["open_transcript", "tee", "transcript_path"]
