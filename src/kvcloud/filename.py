"""
Filename Helpers - Map local file paths onto flat remote object names

===============================================================================
PROVENANCE TRACKING
===============================================================================
File: src/kvcloud/filename.py
Created: 2026-10-19
Author: KVCloud Contributors
Type: Utility

Change History:
-------------------------------------------------------------------------------
Date        Author      Type    Description
-------------------------------------------------------------------------------
2026-10-19  kvcloud     CREATE  Path flattening and object key helpers.
-------------------------------------------------------------------------------

License: MIT
===============================================================================
"""

import posixpath
import re

_DRIVE_RE = re.compile(r"^([A-Za-z0-9]+):\\")
_SEPARATORS = re.compile(r"[\\/]")


def path_to_name(path: str) -> str:
    """
    Flatten a hierarchical local path into a single name component.

    Each directory component is followed by a dash and empty components
    are dropped, so ``C:\\db\\000012.sst`` becomes ``C-db-000012.sst``
    and the directory ``C:\\db\\`` becomes ``C-db-``.

    Args:
        path: Local (Windows or POSIX) file path

    Returns:
        Flat name usable as a remote object name
    """
    name = ""
    match = _DRIVE_RE.match(path)
    if match:
        name += match.group(1) + "-"
        path = path[match.end():]

    *directories, last = _SEPARATORS.split(path)
    for directory in directories:
        if directory:
            name += directory + "-"
    return name + last


def basename(fname: str) -> str:
    """Last component of a local or remote path"""
    return _SEPARATORS.split(fname)[-1]


def object_key(object_path: str, fname: str) -> str:
    """
    Build the object key for a file under a bucket's object path.

    Args:
        object_path: Key prefix within the bucket (may be empty)
        fname: Local file name or path; only its basename is kept

    Returns:
        Object key, e.g. ``"db/000012.sst"``
    """
    name = basename(fname)
    object_path = object_path.strip("/")
    if not object_path:
        return name
    return posixpath.join(object_path, name)


def listing_prefix(object_path: str) -> str:
    """Key prefix matching everything under object_path ("" for the whole bucket)"""
    object_path = object_path.strip("/")
    return f"{object_path}/" if object_path else ""


def strip_prefix(key: str, prefix: str) -> str:
    """Object key relative to a listing prefix, without a leading slash"""
    if prefix and key.startswith(prefix):
        key = key[len(prefix):]
    return key.lstrip("/")
