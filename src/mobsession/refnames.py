"""Branch and remote name validation (git-check-ref-format subset)."""

from __future__ import annotations

import re

MAX_BRANCH_LENGTH = 255  # Git branch name length limit

# Each tuple is (compiled_pattern, human_readable_message)
_BRANCH_VALIDATION_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\.\.+"), "contains consecutive dots (..)"),
    (re.compile(r"^-"), "starts with hyphen (potential flag injection)"),
    (re.compile(r"^\.|\.$"), "starts or ends with dot"),
    (re.compile(r"\.lock$"), "ends with .lock (reserved suffix)"),
    (re.compile(r"@\{"), "contains reflog syntax (@{)"),
    (re.compile(r"[\x00-\x1f\x7f]"), "contains control characters"),
    (re.compile(r"[~^:?*\[\]\\]"), "contains invalid git characters (~^:?*[]\\)"),
    (re.compile(r"\s"), "contains whitespace"),
]


def validate_branch_name(branch: str) -> None:
    """Validate a branch name before it is handed to git.

    Raises:
        ValueError: If the name is empty, too long, or breaks a ref-format rule.
    """
    if not branch:
        raise ValueError("Branch name cannot be empty")

    if len(branch) > MAX_BRANCH_LENGTH:
        raise ValueError(f"Branch name too long: {len(branch)} chars (max {MAX_BRANCH_LENGTH})")

    for pattern, message in _BRANCH_VALIDATION_RULES:
        if pattern.search(branch):
            raise ValueError(f"Branch name '{branch}' {message}")

    if "//" in branch:
        raise ValueError(f"Branch name '{branch}' contains consecutive slashes")

    if branch.startswith("/") or branch.endswith("/"):
        raise ValueError(f"Branch name '{branch}' cannot start or end with slash")

    if branch == "@" or branch == "HEAD":
        raise ValueError(f"Branch name '{branch}' is reserved")


def validate_remote_name(remote: str) -> None:
    """Validate a remote name. Remote names are single path components."""
    if not remote:
        raise ValueError("Remote name cannot be empty")
    if "/" in remote:
        raise ValueError(f"Remote name '{remote}' cannot contain slashes")
    try:
        validate_branch_name(remote)
    except ValueError as e:
        raise ValueError(str(e).replace("Branch name", "Remote name", 1)) from None
