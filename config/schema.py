"""drf-spectacular post-processing: one tag per API area.

Without this hook every operation is tagged with the first URL segment
after the prefix ("auth", "messages", ...), which splits JWT endpoints from
each other in the docs.
"""

from __future__ import annotations

from typing import Any

OPERATION_KEYS = frozenset({"get", "post", "put", "patch", "delete", "options", "head"})

TAG_PREFIXES = (
    ("/api/v1/auth/jwt", "JWT Authentication"),
    ("/api/v1/messages", "Messages"),
    ("/api/v1/users", "Users"),
)


def assign_group_tag(path: str) -> str | None:
    return next((tag for prefix, tag in TAG_PREFIXES if path.startswith(prefix)), None)


def group_tags(result: dict[str, Any], **kwargs: Any) -> dict[str, Any]:
    for path, operations in result.get("paths", {}).items():
        tag = assign_group_tag(path)
        if tag is None:
            continue
        for key, operation in operations.items():
            if key in OPERATION_KEYS and isinstance(operation, dict):
                operation["tags"] = [tag]

    declared = result.setdefault("tags", [])
    known = {entry.get("name") for entry in declared}
    declared.extend({"name": tag} for _, tag in TAG_PREFIXES if tag not in known)
    return result
