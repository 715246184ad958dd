"""
Source path joining for DWARF file tables.

Producers may run on Windows, so directory and file names are normalized to
forward slashes before joining. A name that is already absolute (or a URL)
replaces the directory instead of being appended to it.
"""

from typing import Optional


def normalize_path(path: str) -> str:
    """Convert Windows separators to forward slashes."""
    return path.replace('\\\\', '/').replace('\\', '/')


def is_absolute(path: str) -> bool:
    return path.startswith('/') or '://' in path


def join_path(directory: Optional[str], name: str) -> str:
    """Join a file table directory and file name.

    Args:
        directory: Directory entry, or None when the file has none
        name: File name entry

    Returns:
        Joined path using forward slashes
    """
    name = normalize_path(name)
    if is_absolute(name):
        return name

    base = normalize_path(directory) if directory else '.'
    if not base.endswith('/'):
        base += '/'
    return base + name
