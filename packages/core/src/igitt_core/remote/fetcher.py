"""Concurrent retrieval of a commit's message and diff.

For each displayed commit two independent requests are issued on a thread
pool. Either may fail without affecting the other: a failure is rendered as
text in place of the content so the reviewer can still rate the commit (for
example mark it as moved). Only origin/host resolution errors are fatal, and
those are raised synchronously from fetch().
"""

from __future__ import annotations

import concurrent.futures
import logging
from dataclasses import dataclass

import httpx

from igitt_core.remote.hosts import BaseHost, CommitRequest, resolve_request
from igitt_store.models import CommitRecord

logger = logging.getLogger(__name__)

MESSAGE_UNAVAILABLE = "!! Commit message not available !!"


class FetchError(Exception):
    """A message or diff request failed. Never fatal."""


@dataclass(frozen=True)
class CommitDetails:
    """The displayable result of a fetch: content or rendered error text."""

    message: str
    diff: str
    message_failed: bool = False
    diff_failed: bool = False


class FetchHandle:
    """Single-value completion slot for one commit's message + diff.

    poll() never blocks: it returns None while either request is in flight.
    Handles are not cancellable; an abandoned handle simply completes.
    """

    def __init__(self, message_future: concurrent.futures.Future, diff_future: concurrent.futures.Future):
        self._futures = (message_future, diff_future)
        self._result: CommitDetails | None = None

    def done(self) -> bool:
        return all(f.done() for f in self._futures)

    def poll(self) -> CommitDetails | None:
        if self._result is None and self.done():
            self._result = self._combine()
        return self._result

    def wait(self, timeout: float | None = None) -> CommitDetails | None:
        concurrent.futures.wait(self._futures, timeout=timeout)
        return self.poll()

    def _combine(self) -> CommitDetails:
        message_future, diff_future = self._futures
        message, message_failed = _unwrap(message_future)
        diff, diff_failed = _unwrap(diff_future)
        return CommitDetails(message=message, diff=diff, message_failed=message_failed, diff_failed=diff_failed)


def _unwrap(future: concurrent.futures.Future) -> tuple[str, bool]:
    try:
        return future.result(), False
    except FetchError as e:
        return str(e), True


class RemoteFetcher:
    """Fetches commit data from the hosting provider named by each origin.

    ``tokens`` maps host domain (``github.com``, ``gitlab.com``) to access token.
    """

    def __init__(
        self,
        tokens: dict[str, str],
        timeout: float = 30.0,
        hosts: dict[str, BaseHost] | None = None,
        client: httpx.Client | None = None,
        max_workers: int = 4,
    ):
        self._tokens = dict(tokens)
        self._hosts = hosts
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)
        self._executor = concurrent.futures.ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="igitt-fetch")

    def fetch(self, record: CommitRecord) -> FetchHandle:
        """Start fetching ``record``'s message and diff and return immediately.

        Raises OriginParseError / UnsupportedHostError before any request is made.
        """
        request = resolve_request(record.origin, record.commit, self._tokens, self._hosts)
        logger.debug("Fetching %s @ %s", record.origin, record.commit)
        return FetchHandle(
            self._executor.submit(self._get_message, request),
            self._executor.submit(self._get_diff, request),
        )

    def close(self) -> None:
        # In-flight requests are left to finish; nobody waits for them.
        self._executor.shutdown(wait=False)
        self._client.close()

    def _get(self, url: str, headers: dict) -> httpx.Response:
        try:
            response = self._client.get(url, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning("Request to %s failed with status %s", url, e.response.status_code)
            raise FetchError(f"{e.response.status_code} {e.response.reason_phrase}: {url}") from e
        except (httpx.HTTPError, httpx.InvalidURL, UnicodeEncodeError) as e:
            # Bad URLs and non-ASCII header values fail while the request is built.
            logger.warning("Request to %s failed: %s", url, e)
            raise FetchError(f"{type(e).__name__}: {e}") from e
        return response

    def _get_message(self, request: CommitRequest) -> str:
        response = self._get(request.message_url, request.headers)
        try:
            payload = response.json()
        except ValueError as e:
            raise FetchError(f"Invalid JSON from {request.message_url}: {e}") from e
        message = payload.get("message") if isinstance(payload, dict) else None
        if not isinstance(message, str):
            return MESSAGE_UNAVAILABLE
        return message

    def _get_diff(self, request: CommitRequest) -> str:
        return self._get(request.diff_url, request.headers).text
