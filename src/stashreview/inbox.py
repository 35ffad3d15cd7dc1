"""Reviewer inbox: pull requests awaiting the current user."""

from __future__ import annotations

import logging

from pydantic import Field

from stashreview.config import ReviewConfig
from stashreview.diff import StashModel
from stashreview.pull_request import PullRequest
from stashreview.stash_api import StashClient

logger = logging.getLogger(__name__)

_INBOX_PATH = "inbox/latest/pull-requests"
_INBOX_LIMIT = 1000


class _InboxPage(StashModel):
    values: list[PullRequest] = Field(default_factory=list)


def get_inbox(client: StashClient, role: str = "reviewer", settings: ReviewConfig | None = None) -> list[PullRequest]:
    """List pull requests in the inbox for *role*.

    Each pull request is bound to the repository its ``toRef`` points at (or
    ``fromRef`` when the target is missing), so it is ready for further calls.
    """
    logger.debug("requesting pull requests from Stash for role '%s'...", role)
    page: _InboxPage = client.get(
        _INBOX_PATH,
        params={"limit": _INBOX_LIMIT, "role": role},
        target=_InboxPage,
    )

    for pr in page.values:
        repository = pr.to_ref.repository or pr.from_ref.repository
        if repository is None:
            logger.warning("pull request <%d> has no repository, leaving it unbound", pr.id)
            continue
        pr.bind(client, repository.project.key, repository.slug, settings)

    logger.debug("got %d pull request(s) from inbox", len(page.values))
    return page.values
