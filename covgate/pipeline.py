"""Gate pipeline: measure, then compare (feature refs) or publish (baseline ref).

    START -> MEASURING -> COMPARING  -> DONE | FAILED     (ref != baseline branch)
                       -> PUBLISHING -> DONE | FAILED     (ref == baseline branch)

Exit codes are stable and part of the CLI contract:

    0    DONE
    1    FAILED at runtime (network, API, parse or publish error)
    2    configuration error, raised before any side effect
    130  cancelled (SIGINT / SIGTERM)
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from covgate.client import ClientError, HttpClient
from covgate.config import Config, ConfigError, Mode
from covgate.models import CoverageReport, RegressionVerdict, SyncSummary
from covgate.publisher import PartialPublishError, PublishError, ReportPublisher
from covgate.reports.badge import ParseError, load_local_report
from covgate.reports.fetcher import fetch_report
from covgate.reports.regression import evaluate
from covgate.retry import RetryPolicy, RunCancelled, call_with_retry
from covgate.status import StatusReporter
from covgate.storage import ObjectStore, S3ObjectStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_CANCELLED = 130


def build_retry_policy(config: Config) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=config.policy.max_attempts,
        base_delay=config.policy.backoff_base,
        max_delay=config.policy.backoff_max,
    )


def build_store(config: Config) -> S3ObjectStore:
    """S3 store for the configured bucket; credentials come from *config* only."""
    artifacts = config.artifacts
    return S3ObjectStore(
        bucket=artifacts.bucket,
        region=artifacts.region,
        access_key_id=artifacts.access_key_id,
        secret_access_key=artifacts.secret_access_key,
        endpoint_url=artifacts.endpoint_url,
        acl=artifacts.acl,
        timeout=config.policy.timeout,
    )


class State(str, Enum):
    START = "start"
    MEASURING = "measuring"
    COMPARING = "comparing"
    PUBLISHING = "publishing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PipelineResult:
    states: list[State] = field(default_factory=list)
    exit_code: int = EXIT_OK
    current: Optional[CoverageReport] = None
    baseline: Optional[CoverageReport] = None
    verdict: Optional[RegressionVerdict] = None
    summary: Optional[SyncSummary] = None
    failed_keys: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def state(self) -> State:
        return self.states[-1] if self.states else State.START

    @property
    def ok(self) -> bool:
        return self.state is State.DONE

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "states": [s.value for s in self.states],
            "exit_code": self.exit_code,
            "current": self.current.to_dict() if self.current else None,
            "baseline": self.baseline.to_dict() if self.baseline else None,
            "verdict": self.verdict.to_dict() if self.verdict else None,
            "publish": self.summary.to_dict() if self.summary else None,
            "failed_keys": list(self.failed_keys),
            "error": self.error,
        }


class GatePipeline:
    """One gate run. Stateless between runs; collaborators can be injected."""

    def __init__(
        self,
        config: Config,
        *,
        http_client: Optional[HttpClient] = None,
        store: Optional[ObjectStore] = None,
        cancel: Optional[threading.Event] = None,
        wait: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.config = config
        self.cancel = cancel or threading.Event()
        self.policy = build_retry_policy(config)
        self._http_client = http_client
        self._store = store
        self._wait = wait
        self.result = PipelineResult()

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def run(self) -> PipelineResult:
        self._enter(State.START)
        mode = self.config.mode
        try:
            self.config.validate_for(mode)
        except ConfigError as exc:
            return self._fail(exc, EXIT_CONFIG)

        logger.info(
            "Ref '%s' (baseline branch '%s'): %s mode",
            self.config.run.ref_name, self.config.run.baseline_branch, mode.value,
        )
        try:
            if mode is Mode.COMPARE:
                self._compare()
            else:
                self._publish()
        except RunCancelled as exc:
            return self._fail(exc, EXIT_CANCELLED)
        except PartialPublishError as exc:
            self.result.summary = exc.summary
            self.result.failed_keys = exc.failed_keys
            return self._fail(exc, EXIT_FAILED)
        except (ClientError, ParseError, PublishError) as exc:
            return self._fail(exc, EXIT_FAILED)

        self._enter(State.DONE)
        return self.result

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _measure(self) -> CoverageReport:
        self._enter(State.MEASURING)
        current = load_local_report(self.config.local_badge)
        self.result.current = current
        logger.info("Current coverage: %s%%", current.percentage)
        return current

    def _compare(self) -> None:
        run = self.config.run
        try:
            current = self._measure()
            self._enter(State.COMPARING)
            url = self.config.baseline_badge_url
            baseline = call_with_retry(
                lambda: fetch_report(self.http_client, url),
                self.policy,
                cancel=self.cancel,
                description=f"fetch baseline badge {url}",
                wait=self._wait,
            )
        except (ClientError, ParseError) as exc:
            self._post_error(f"Coverage comparison failed: {exc}")
            raise
        self.result.baseline = baseline
        logger.info("Baseline coverage (%s): %s%%", run.baseline_branch, baseline.percentage)

        verdict = evaluate(
            baseline.percentage, current.percentage, self.config.policy.tolerance
        )
        self.result.verdict = verdict
        logger.info("Coverage %s: %s", verdict.classification.value, verdict.describe())

        call_with_retry(
            lambda: self.reporter.report(
                run.commit_sha, verdict, pull_number=run.pull_number, run_id=run.run_id
            ),
            self.policy,
            cancel=self.cancel,
            description="post commit status",
            wait=self._wait,
        )

    def _publish(self) -> None:
        self._measure()
        self._enter(State.PUBLISHING)
        publisher = ReportPublisher(
            self.store, self.policy, cancel=self.cancel, wait=self._wait
        )
        self.result.summary = publisher.publish(
            self.config.run.report_dir, self.config.artifacts.prefix
        )

    # ------------------------------------------------------------------
    # Collaborators (built lazily: each mode only needs its own)
    # ------------------------------------------------------------------

    @property
    def http_client(self) -> HttpClient:
        if self._http_client is None:
            self._http_client = HttpClient(
                token=self.config.review.token, timeout=self.config.policy.timeout
            )
        return self._http_client

    @property
    def reporter(self) -> StatusReporter:
        review = self.config.review
        return StatusReporter(
            self.http_client,
            api_url=review.api_url,
            owner=review.owner,
            repo=review.repo,
            context=review.context,
            target_url_template=review.target_url,
        )

    @property
    def store(self) -> ObjectStore:
        if self._store is None:
            self._store = build_store(self.config)
        return self._store

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _enter(self, state: State) -> None:
        logger.debug("-> %s", state.value)
        self.result.states.append(state)

    def _fail(self, exc: Exception, exit_code: int) -> PipelineResult:
        logger.error("Gate failed: %s", exc)
        self.result.error = str(exc)
        self.result.exit_code = exit_code
        self._enter(State.FAILED)
        return self.result

    def _post_error(self, message: str) -> None:
        """Best effort: one attempt, a failure here is logged and dropped."""
        run = self.config.run
        try:
            self.reporter.report_error(
                run.commit_sha, message, pull_number=run.pull_number, run_id=run.run_id
            )
        except ClientError as exc:
            logger.warning("Could not post error status: %s", exc)
