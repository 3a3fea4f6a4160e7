"""libmdb.names

Name conventions shared by both directions: group/file names, material
display names, natural ordering.
"""

from __future__ import annotations

import ntpath
import posixpath
import re
from typing import List, Tuple, Union

_DIGITS_RE = re.compile(r"(\d+)", re.ASCII)
_MAT_SEPARATORS_RE = re.compile(r"[ ;,+\r\t\n]")


def natural_key(s: str) -> Tuple[Tuple[int, Union[int, str]], ...]:
    """Sort key comparing digit runs numerically: Hull_2 < Hull_10."""
    key: List[Tuple[int, Union[int, str]]] = []
    for i, part in enumerate(_DIGITS_RE.split(s)):
        if i % 2:
            key.append((0, int(part)))
        elif part:
            key.append((1, part))
    return tuple(key)


def real_group_name(group_name: str) -> str:
    """Strip a trailing _<integer> LOD/part suffix: Hull_2 -> Hull."""
    idx = group_name.rfind("_")
    if idx == -1:
        return group_name
    try:
        int(group_name[idx + 1:])
    except ValueError:
        return group_name
    return group_name[:idx]


def file_name(path: str) -> str:
    # mdb texture names come from Windows tools, accept either separator
    return posixpath.basename(ntpath.basename(path))


def base_name(path: str) -> str:
    """File name without directory or extension."""
    return posixpath.splitext(file_name(path))[0]


def change_extension(path: str, ext: str) -> str:
    root, _ = posixpath.splitext(path)
    return f"{root}.{ext.lstrip('.')}"


def material_name(texture: str) -> str:
    """Display name for a texture: separators become '_', no dir, no extension."""
    joined = _MAT_SEPARATORS_RE.sub("_", texture)
    return posixpath.splitext(file_name(joined))[0]


def format_elapsed(seconds: float) -> str:
    """Compact duration like '1m 02s345ms', leading zero units trimmed."""
    total_ms = int(round(seconds * 1000.0))
    days, rem = divmod(total_ms, 86_400_000)
    hours, rem = divmod(rem, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, ms = divmod(rem, 1000)
    s = f"{days}d {hours:02d}h {minutes:02d}m {secs:02d}s{ms:03d}ms".lstrip(" dhms0")
    return s or "0ms"
