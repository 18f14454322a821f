"""Commit status reporting against a GitHub-compatible review API.

The gate is informational: a computed comparison is always posted as
``success`` with the ``"<baseline>% -> <current>%"`` description, whatever
the direction of the change. ``error`` is only used when the comparison could
not be computed.
"""

import logging

from covgate.client import HttpClient
from covgate.config import DEFAULT_CONTEXT, DEFAULT_TARGET_URL
from covgate.models import RegressionVerdict, StatusPayload, StatusState

logger = logging.getLogger(__name__)


class StatusReporter:
    """Posts commit statuses to ``{api_url}/repos/{owner}/{repo}/statuses/{sha}``."""

    def __init__(
        self,
        client: HttpClient,
        api_url: str,
        owner: str,
        repo: str,
        context: str = DEFAULT_CONTEXT,
        target_url_template: str = DEFAULT_TARGET_URL,
    ) -> None:
        self._client = client
        self.api_url = api_url.rstrip("/")
        self.owner = owner
        self.repo = repo
        self.context = context
        self.target_url_template = target_url_template

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def report(
        self,
        commit_sha: str,
        verdict: RegressionVerdict,
        *,
        pull_number: str = "",
        run_id: str = "",
    ) -> dict:
        """Post the measured coverage change for *commit_sha* and return the API ack."""
        payload = StatusPayload(
            state=StatusState.SUCCESS,
            target_url=self.target_url(pull_number, run_id),
            description=verdict.describe(),
            context=self.context,
        )
        return self.send(commit_sha, payload)

    def report_error(
        self,
        commit_sha: str,
        message: str,
        *,
        pull_number: str = "",
        run_id: str = "",
    ) -> dict:
        """Post ``state=error`` so a failed run is visible in the review UI."""
        payload = StatusPayload(
            state=StatusState.ERROR,
            target_url=self.target_url(pull_number, run_id),
            description=message,
            context=self.context,
        )
        return self.send(commit_sha, payload)

    def send(self, commit_sha: str, payload: StatusPayload) -> dict:
        url = f"{self.api_url}/repos/{self.owner}/{self.repo}/statuses/{commit_sha}"
        logger.info(
            "Posting %s status to %s/%s@%s: %s",
            payload.state.value, self.owner, self.repo, commit_sha[:12], payload.description,
        )
        return self._client.post_json(url, payload.to_json())

    def target_url(self, pull_number: str = "", run_id: str = "") -> str:
        return self.target_url_template.format(
            owner=self.owner,
            repo=self.repo,
            pull_number=pull_number,
            run_id=run_id,
        )
