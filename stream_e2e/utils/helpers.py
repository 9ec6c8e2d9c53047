"""
Helper functions for the stream harness.

This module contains small utilities used throughout the application.
"""

import os
import random
import shutil
from pathlib import Path
from typing import Optional

from .logger import get_logger

logger = get_logger(__name__)


def format_duration(seconds: float) -> str:
    """
    Format duration as HH:MM:SS.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted duration string (e.g., "01:30:45")
    """
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def parse_time_to_seconds(time_str: str) -> float:
    """
    Parse time string to seconds.

    Supports formats:
    - HH:MM:SS.mmm
    - MM:SS.mmm
    - SS.mmm

    Args:
        time_str: Time string to parse

    Returns:
        Time in seconds
    """
    parts = time_str.split(":")
    if len(parts) == 3:
        hours, minutes, seconds = parts
        return float(hours) * 3600 + float(minutes) * 60 + float(seconds)
    elif len(parts) == 2:
        minutes, seconds = parts
        return float(minutes) * 60 + float(seconds)
    else:
        return float(parts[0])


def new_stream_id(prefix: str = "stream", *parts: str) -> str:
    """
    Build a stream name unique to this process run.

    Args:
        prefix: Leading name component
        *parts: Extra components placed before the pid (e.g. a secret)

    Returns:
        Name like "stream-4242-8123412341234"
    """
    components = [prefix, *parts, str(os.getpid()), str(random.getrandbits(63))]
    return "-".join(components)


def copy_to_dest(source: Path, *dest_dirs: Path) -> list[Path]:
    """
    Copy a file into every destination directory that exists.

    Directories that do not exist are skipped; a destination that already
    holds a file with the same name and size is left untouched.

    Args:
        source: File to copy
        *dest_dirs: Candidate destination directories

    Returns:
        Paths of the copies now present

    Raises:
        FileNotFoundError: If the source file does not exist
    """
    if not source.is_file():
        raise FileNotFoundError(f"Source file not found: {source}")

    copied = []
    for dest_dir in dest_dirs:
        if not dest_dir.is_dir():
            logger.debug(f"Skip missing directory {dest_dir}")
            continue

        target = dest_dir / source.name
        if target.is_file() and target.stat().st_size == source.stat().st_size:
            copied.append(target)
            continue

        shutil.copyfile(source, target)
        logger.info(f"Copied {source} to {target}")
        copied.append(target)

    return copied


def get_exists_file(source: Path, *dest_dirs: Path) -> Optional[Path]:
    """
    Find the first copy of a file among the destination directories.

    Args:
        source: File whose name is looked up
        *dest_dirs: Directories to search, in priority order

    Returns:
        Path of the first existing copy, or None
    """
    for dest_dir in dest_dirs:
        candidate = dest_dir / source.name
        if candidate.is_file():
            return candidate
    return None
