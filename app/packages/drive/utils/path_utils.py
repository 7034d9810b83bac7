"""Path utilities: derive folder prefixes/paths and rewrite them safely.

Rules shared by folder_service, migration and cascade:
- A key prefix always ends with '/', e.g. "u1/Root/Notes/";
- A display path never ends with '/', e.g. "u1/Root/Notes";
- Every mutation is either a leading-prefix substitution or a replacement of
  the last matching path segment, never a general substring replace.
"""

from __future__ import annotations

from typing import Tuple

SEP = "/"


def validate_name(name: str | None) -> str:
    s = (name or "").strip()
    if not s:
        raise ValueError("名称不能为空")
    if SEP in s:
        raise ValueError("名称不能包含 '/'")
    if s in {".", ".."}:
        raise ValueError("名称不合法")
    return s


def validate_segment(segment: str | None) -> str:
    """Like ``validate_name`` but for a segment taken from a key: it must already be clean.

    Stripping here would let the stored key keep the spaces while the name loses them.
    """
    s = validate_name(segment)
    if s != segment:
        raise ValueError("名称首尾不能包含空白字符")
    return s


def derive_root(user_id: str, name: str = "Root") -> Tuple[str, str]:
    """(key_prefix, path) of a user's root folder."""
    return f"{user_id}{SEP}{name}{SEP}", f"{user_id}{SEP}{name}"


def derive_child(parent_prefix: str, parent_path: str, name: str) -> Tuple[str, str]:
    """(key_prefix, path) of a child folder under the given parent."""
    return f"{parent_prefix}{name}{SEP}", f"{parent_path}{SEP}{name}"


def replace_prefix(value: str, old_prefix: str, new_prefix: str) -> str:
    """Swap the leading ``old_prefix`` of ``value`` for ``new_prefix``.

    Later occurrences of ``old_prefix`` inside ``value`` are left alone; a value
    that does not start with ``old_prefix`` is rejected.
    """
    if not value.startswith(old_prefix):
        raise ValueError(f"'{value}' does not start with '{old_prefix}'")
    return new_prefix + value[len(old_prefix):]


def replace_last_segment(path: str, old_name: str, new_name: str) -> str:
    """Replace the right-most segment equal to ``old_name``; other matches stay."""
    parts = path.split(SEP)
    for i in range(len(parts) - 1, -1, -1):
        if parts[i] == old_name:
            parts[i] = new_name
            break
    return SEP.join(parts)


def last_segment(value: str) -> str:
    """Last non-empty segment: "a/b/" -> "b", "a/b.txt" -> "b.txt"."""
    return value.rstrip(SEP).rsplit(SEP, 1)[-1]


def parent_prefix(value: str) -> str:
    """Prefix holding ``value``: "a/b/c/" -> "a/b/", "a/b/x.txt" -> "a/b/"."""
    stripped = value.rstrip(SEP)
    if SEP not in stripped:
        return ""
    return stripped.rsplit(SEP, 1)[0] + SEP


def is_within(prefix: str, candidate: str) -> bool:
    """True when ``candidate`` equals ``prefix`` or lies underneath it."""
    return candidate.startswith(prefix)
