"""Data models for the coverage gate.

Contains the dataclasses passed between components, with JSON serialization
helpers for CLI output:
    - CoverageReport     one parsed badge, remote or local
    - RegressionVerdict  baseline vs current comparison
    - StatusPayload      body of a commit status
    - SyncItem / SyncPlan / SyncSummary   report publishing
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from covgate.reports.badge import parse_coverage

#: GitHub rejects commit status descriptions longer than this.
MAX_DESCRIPTION_LENGTH = 140


class Source(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"


class Classification(str, Enum):
    IMPROVED = "improved"
    UNCHANGED = "unchanged"
    REGRESSED = "regressed"


class StatusState(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"
    PENDING = "pending"


class SyncAction(str, Enum):
    UPLOAD = "upload"
    DELETE = "delete"


def format_percentage(value: Decimal) -> str:
    """Render a percentage without trailing zeros: 80.0 -> "80", 82.30 -> "82.3"."""
    text = format(value.normalize(), "f")
    return "0" if text in ("-0", "") else text


# ---------------------------------------------------------------------------
# Coverage
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CoverageReport:
    """A coverage measurement; ``percentage`` is always parsed from ``raw_artifact``."""

    raw_artifact: bytes
    source: Source
    percentage: Decimal = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "percentage", parse_coverage(self.raw_artifact))

    def to_dict(self) -> dict:
        return {
            "source": self.source.value,
            "percentage": float(self.percentage),
        }


@dataclass(frozen=True)
class RegressionVerdict:
    baseline: Decimal
    current: Decimal
    delta: Decimal
    classification: Classification
    tolerance: Decimal = Decimal(0)

    def describe(self) -> str:
        """Human-readable summary used as the commit status description."""
        return f"{format_percentage(self.baseline)}% -> {format_percentage(self.current)}%"

    def to_dict(self) -> dict:
        return {
            "baseline": float(self.baseline),
            "current": float(self.current),
            "delta": float(self.delta),
            "classification": self.classification.value,
            "tolerance": float(self.tolerance),
            "description": self.describe(),
        }


# ---------------------------------------------------------------------------
# Commit status
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StatusPayload:
    state: StatusState
    target_url: str
    description: str
    context: str

    def __post_init__(self) -> None:
        if len(self.description) > MAX_DESCRIPTION_LENGTH:
            truncated = self.description[: MAX_DESCRIPTION_LENGTH - 3] + "..."
            object.__setattr__(self, "description", truncated)

    def to_json(self) -> dict:
        return {
            "state": self.state.value,
            "target_url": self.target_url,
            "description": self.description,
            "context": self.context,
        }


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SyncItem:
    action: SyncAction
    remote_key: str
    local_path: str | None = None


@dataclass(frozen=True)
class SyncPlan:
    """Uploads first, then deletes, each group sorted by remote key."""

    items: tuple[SyncItem, ...] = ()

    @property
    def uploads(self) -> list[SyncItem]:
        return [i for i in self.items if i.action is SyncAction.UPLOAD]

    @property
    def deletes(self) -> list[SyncItem]:
        return [i for i in self.items if i.action is SyncAction.DELETE]

    def to_dict(self) -> dict:
        return {
            "summary": {"uploads": len(self.uploads), "deletes": len(self.deletes)},
            "items": [
                {
                    "action": i.action.value,
                    "remote_key": i.remote_key,
                    "local_path": i.local_path,
                }
                for i in self.items
            ],
        }


@dataclass
class SyncSummary:
    uploaded: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "uploaded": list(self.uploaded),
            "deleted": list(self.deleted),
            "failed": list(self.failed),
        }
