"""Mirror a local coverage report directory to an object store.

Functions:
    list_local_files(local_dir)                             -> {relpath: path}
    compute_sync_plan(local_files, remote_keys, prefix)     -> SyncPlan
    ReportPublisher(store).publish(local_dir, prefix)       -> SyncSummary

Equivalent to ``aws s3 sync --delete --follow-symlinks``: every local file is
uploaded (no conditional put), then every remote object under the prefix with
no local counterpart is deleted. Uploading first means a reader never sees an
unchanged file disappear. Publishing is not transactional: operations that
succeeded stay in place when others fail, and the next run converges.
"""

import logging
import os
import threading
from pathlib import Path
from typing import Callable, Iterable, Mapping, Optional

from covgate.client import ClientError
from covgate.models import SyncAction, SyncItem, SyncPlan, SyncSummary
from covgate.retry import RetryPolicy, call_with_retry
from covgate.storage import ObjectStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class PublishError(Exception):
    """Raised when publishing cannot start (e.g. missing report directory)."""


class PartialPublishError(PublishError):
    """Raised when some object operations still failed after retries."""

    def __init__(self, failed_keys: list[str], summary: SyncSummary) -> None:
        self.failed_keys = list(failed_keys)
        self.summary = summary
        super().__init__(
            f"{len(self.failed_keys)} object operation(s) failed: "
            + ", ".join(self.failed_keys[:10])
            + (" ..." if len(self.failed_keys) > 10 else "")
        )


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------

def normalize_prefix(remote_prefix: str) -> str:
    """``"bo"`` and ``"/bo/"`` both become ``"bo/"``; an empty prefix stays empty."""
    stripped = remote_prefix.strip("/")
    return f"{stripped}/" if stripped else ""


def list_local_files(local_dir: str | Path) -> dict[str, str]:
    """Return ``{posix relative path: filesystem path}`` for every file, following symlinks."""
    root = Path(local_dir)
    if not root.is_dir():
        raise PublishError(f"Report directory not found: '{local_dir}'")

    files: dict[str, str] = {}
    for dirpath, _dirnames, filenames in os.walk(root, followlinks=True):
        for name in filenames:
            path = Path(dirpath) / name
            files[path.relative_to(root).as_posix()] = str(path)
    return files


def compute_sync_plan(
    local_files: Mapping[str, str],
    remote_keys: Iterable[str],
    remote_prefix: str,
) -> SyncPlan:
    """Diff local files against remote keys.

    Every local file yields exactly one UPLOAD; every remote key without a
    local counterpart yields exactly one DELETE. Uploads come first.
    """
    prefix = normalize_prefix(remote_prefix)
    wanted = {f"{prefix}{rel}": path for rel, path in local_files.items()}

    uploads = [
        SyncItem(action=SyncAction.UPLOAD, remote_key=key, local_path=wanted[key])
        for key in sorted(wanted)
    ]
    deletes = [
        SyncItem(action=SyncAction.DELETE, remote_key=key)
        for key in sorted(set(remote_keys) - set(wanted))
    ]
    return SyncPlan(items=tuple(uploads + deletes))


# ---------------------------------------------------------------------------
# Publisher
# ---------------------------------------------------------------------------

class ReportPublisher:
    """Executes a SyncPlan against an ObjectStore with per-object retries."""

    def __init__(
        self,
        store: ObjectStore,
        policy: RetryPolicy | None = None,
        cancel: Optional[threading.Event] = None,
        wait: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.store = store
        self.policy = policy or RetryPolicy()
        self.cancel = cancel
        self._wait = wait

    def plan(self, local_dir: str | Path, remote_prefix: str) -> SyncPlan:
        local_files = list_local_files(local_dir)
        prefix = normalize_prefix(remote_prefix)
        remote_keys = self._retry(
            lambda: self.store.list_keys(prefix), f"list '{prefix}'"
        )
        return compute_sync_plan(local_files, remote_keys, prefix)

    def publish(self, local_dir: str | Path, remote_prefix: str) -> SyncSummary:
        """Mirror *local_dir* under *remote_prefix*.

        Raises:
            PublishError:        *local_dir* does not exist
            PartialPublishError: some keys failed after retries
            ClientError:         the remote listing failed (nothing was changed)
            RunCancelled:        the run was cancelled
        """
        plan = self.plan(local_dir, remote_prefix)
        logger.info(
            "Publishing %s: %d upload(s), %d delete(s)",
            local_dir, len(plan.uploads), len(plan.deletes),
        )

        summary = SyncSummary()
        for item in plan.items:
            try:
                self._execute(item)
            except (ClientError, OSError) as exc:
                logger.error("Failed to %s %s: %s", item.action.value, item.remote_key, exc)
                summary.failed.append(item.remote_key)
                continue
            if item.action is SyncAction.UPLOAD:
                summary.uploaded.append(item.remote_key)
            else:
                summary.deleted.append(item.remote_key)

        if summary.failed:
            raise PartialPublishError(summary.failed, summary)

        logger.info(
            "Published %d object(s), deleted %d stale object(s)",
            len(summary.uploaded), len(summary.deleted),
        )
        return summary

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _execute(self, item: SyncItem) -> None:
        if item.action is SyncAction.UPLOAD:
            self._retry(
                lambda: self.store.put_object(item.remote_key, item.local_path),
                f"upload {item.remote_key}",
            )
        else:
            self._retry(
                lambda: self.store.delete_object(item.remote_key),
                f"delete {item.remote_key}",
            )

    def _retry(self, func, description: str):
        return call_with_retry(
            func,
            self.policy,
            cancel=self.cancel,
            description=description,
            wait=self._wait,
        )
