"""String manipulation utilities for gceweb.

This module provides helpers for turning arbitrary text (branch names, commit
SHAs, user input) into names that Compute Engine accepts for images,
instances and firewall rules.
"""

import re

# GCE resource names: lowercase letter first, then letters, digits or hyphens,
# ending in a letter or digit, 1-63 characters.
RESOURCE_NAME_PATTERN = re.compile(r"^[a-z]([-a-z0-9]{0,61}[a-z0-9])?$")


def is_valid_resource_name(name: str) -> bool:
    """Check whether a string is a legal Compute Engine resource name.

    Args:
        name: Candidate name

    Returns:
        True if the name matches the RFC1035-style pattern GCE enforces
    """
    if not name:
        return False
    return RESOURCE_NAME_PATTERN.match(name) is not None


def sanitize_resource_name(text: str, max_length: int = 63) -> str:
    """Convert text into a legal Compute Engine resource name.

    Args:
        text: Source text
        max_length: Maximum name length (GCE limit is 63)

    Returns:
        Lowercased name with illegal characters replaced by hyphens, runs of
        hyphens collapsed, a leading letter and no trailing hyphen
    """
    name = re.sub(r"[^a-z0-9-]", "-", (text or "").lower())
    name = re.sub(r"-{2,}", "-", name).strip("-")
    if not name or not name[0].isalpha():
        name = "x-" + name if name else "x"
    name = name[:max_length].rstrip("-")
    return name


def join_name(*parts: str, max_length: int = 63) -> str:
    """Join name fragments with hyphens and sanitize the result.

    Args:
        *parts: Name fragments; empty fragments are skipped
        max_length: Maximum name length

    Returns:
        Sanitized resource name
    """
    return sanitize_resource_name(
        "-".join(str(p) for p in parts if p), max_length=max_length
    )
