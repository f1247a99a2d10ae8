"""Code-hosting providers, resolved from a commit's origin URL.

Every host exposes the same three things:
    message_url()   JSON metadata endpoint whose ``message`` field holds the commit message
    diff_url()      raw diff endpoint
    auth_header()   (header name, header value) built from the access token

Hosts are registered by domain name in HOSTS so new providers plug in without
touching the fetcher.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from urllib.parse import quote

_ORIGIN_RE = re.compile(r"^https://(.+?)/(.+?)(\.git)?$")


class OriginParseError(Exception):
    """The origin is not an https repository URL."""

    def __init__(self, origin: str):
        super().__init__(f"could not parse origin {origin!r}")
        self.origin = origin


class UnsupportedHostError(Exception):
    """The origin points at a host that has no registered provider."""

    def __init__(self, host: str):
        super().__init__(f"invalid domain {host}")
        self.host = host


@dataclass(frozen=True)
class Origin:
    host: str
    path: str


def parse_origin(origin: str) -> Origin:
    """Split ``https://host/owner/repo(.git)`` into host and repository path."""
    match = _ORIGIN_RE.match(origin.strip())
    if match is None:
        raise OriginParseError(origin)
    return Origin(host=match.group(1), path=match.group(2))


@dataclass(frozen=True)
class CommitRequest:
    """Everything needed to fetch one commit's message and diff."""

    message_url: str
    diff_url: str
    headers: dict


class BaseHost(ABC):
    DOMAIN: str = ""

    @abstractmethod
    def message_url(self, path: str, sha: str) -> str:
        """Return the metadata endpoint for a commit."""

    @abstractmethod
    def diff_url(self, path: str, sha: str) -> str:
        """Return the raw diff endpoint for a commit."""

    @abstractmethod
    def auth_header(self, token: str) -> tuple[str, str]:
        """Return the header name and value that authenticate a request."""

    def build_request(self, path: str, sha: str, token: str) -> CommitRequest:
        name, value = self.auth_header(token)
        return CommitRequest(
            message_url=self.message_url(path, sha),
            diff_url=self.diff_url(path, sha),
            headers={name: value},
        )


class GitHubHost(BaseHost):
    DOMAIN = "github.com"

    def message_url(self, path: str, sha: str) -> str:
        return f"https://api.github.com/repos/{path}/git/commits/{sha}"

    def diff_url(self, path: str, sha: str) -> str:
        return f"https://github.com/{path}/commit/{sha}.diff"

    def auth_header(self, token: str) -> tuple[str, str]:
        return "Authorization", f"token {token}"


class GitLabHost(BaseHost):
    DOMAIN = "gitlab.com"

    def message_url(self, path: str, sha: str) -> str:
        # The projects API takes the namespaced path as a single segment.
        return f"https://gitlab.com/api/v4/projects/{quote(path, safe='')}/repository/commits/{sha}"

    def diff_url(self, path: str, sha: str) -> str:
        return f"https://gitlab.com/{path}/-/commit/{sha}.diff"

    def auth_header(self, token: str) -> tuple[str, str]:
        return "PRIVATE-TOKEN", token


HOSTS: dict[str, BaseHost] = {host.DOMAIN: host for host in (GitHubHost(), GitLabHost())}


def resolve_request(origin: str, sha: str, tokens: dict[str, str], hosts: dict[str, BaseHost] | None = None) -> CommitRequest:
    """Build the message/diff request pair for a commit.

    ``tokens`` maps host domain to access token. Raises OriginParseError or
    UnsupportedHostError; both abort the session.
    """
    hosts = HOSTS if hosts is None else hosts
    parsed = parse_origin(origin)
    host = hosts.get(parsed.host)
    if host is None:
        raise UnsupportedHostError(parsed.host)
    return host.build_request(parsed.path, sha, tokens.get(parsed.host, ""))
