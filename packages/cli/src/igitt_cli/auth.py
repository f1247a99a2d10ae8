"""Access token resolution for the two supported hosts.

Resolution order (stops at first success):
  1. The --github / --gitlab command line option
  2. GITHUB_TOKEN / GITLAB_TOKEN environment variable
  3. GitHub only: `gh auth token` (GitHub CLI session, works after `gh auth login`)
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)


def resolve_github_token(explicit: str | None = None) -> str | None:
    """Return a GitHub token or None if no valid source is available.

    Never raises; callers should check for None and emit a UsageError.
    """
    if explicit:
        return explicit

    token = os.environ.get("GITHUB_TOKEN")
    if token:
        return token

    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=5,
        )
        if result.returncode == 0:
            gh_token = result.stdout.strip()
            if gh_token:
                logger.debug("Resolved GitHub token via gh CLI session.")
                return gh_token
    except (FileNotFoundError, subprocess.TimeoutExpired):
        # gh is not installed or timed out, fall through.
        pass

    return None


def resolve_gitlab_token(explicit: str | None = None) -> str | None:
    """Return a GitLab token or None. Never raises."""
    if explicit:
        return explicit
    return os.environ.get("GITLAB_TOKEN") or None
