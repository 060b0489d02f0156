"""Git library module for gceweb.

Derives image names from the revision of the repository being deployed so
that every push produces a distinctly named image.
"""

from datetime import datetime, timezone
from typing import Optional

import git

import modules.config.defaults as defaults
from modules.utils.string_utils import join_name

SHORT_SHA_LENGTH = 7


def current_revision(path: str = ".", short: bool = True) -> Optional[str]:
    """Return the HEAD commit of the repository containing ``path``.

    Args:
        path: Any path inside the working tree
        short: Return the abbreviated SHA

    Returns:
        Commit SHA, or None if ``path`` is not inside a git repository or the
        repository has no commits yet
    """
    try:
        repo = git.Repo(path, search_parent_directories=True)
    except (git.InvalidGitRepositoryError, git.NoSuchPathError):
        return None
    try:
        sha = repo.head.commit.hexsha
    except ValueError:
        # Unborn branch: no commits yet
        return None
    return sha[:SHORT_SHA_LENGTH] if short else sha


def default_image_name(
    prefix: str = defaults.IMAGE_NAME_PREFIX,
    path: str = ".",
    now: Optional[datetime] = None,
) -> str:
    """Build a unique, GCE-legal image name.

    Returns:
        ``<prefix>-<sha7>`` inside a repository, else ``<prefix>-<YYYYmmddHHMMSS>``
    """
    revision = current_revision(path)
    if revision:
        return join_name(prefix, revision)
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d%H%M%S")
    return join_name(prefix, stamp)
