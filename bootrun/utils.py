"""Utility functions for bootrun."""

from __future__ import annotations

import os
import platform
import subprocess
from pathlib import Path
from typing import List, Optional

from bootrun.constants import _LOG_VERBOSE, ARCH_ALIASES


def log(level: str, message: str) -> None:
    """Lightweight structured logging with coloured level prefixes."""
    if level == "DEBUG" and not _LOG_VERBOSE:
        return
    colours = {
        "INFO": "\033[0;34m",
        "WARN": "\033[1;33m",
        "ERROR": "\033[0;31m",
        "SUCCESS": "\033[0;32m",
        "DEBUG": "\033[0;90m",
    }
    colour = colours.get(level, "")
    reset = "\033[0m" if colour else ""
    print(f"{colour}[{level}]{reset} {message}", flush=True)


def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, default)


def normalize_arch(arch: str) -> str:
    lowered = arch.strip().lower()
    return ARCH_ALIASES.get(lowered, lowered)


def detect_host_arch() -> str:
    return normalize_arch(platform.machine() or "x86_64")


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def run(cmd: List[str], check: bool = True, **kwargs) -> subprocess.CompletedProcess:
    """Run command with logging."""
    log("DEBUG", f"Running: {' '.join(cmd)}")
    result = subprocess.run(cmd, check=check, text=True, **kwargs)
    return result
