"""Configuration loading and validation.

Usage:
    config = load("covgate.yaml")            # raises ConfigError on bad config
    config = load()                          # environment variables only
    config.validate_for(Mode.COMPARE)        # pre-flight check before any side effect
    generate_template("covgate.yaml")        # writes example file to disk

Every value can come from the YAML file or from an environment variable; the
environment wins. Variable names match what GitHub Actions exposes so the tool
runs in a workflow step with no config file at all.
"""

import os
import string
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ConfigError(Exception):
    """Raised when the configuration is missing or invalid."""


class Mode(str, Enum):
    COMPARE = "compare"
    PUBLISH = "publish"


DEFAULT_API_URL = "https://api.github.com"
DEFAULT_CONTEXT = "Measured coverage"
DEFAULT_TARGET_URL = (
    "https://github.com/{owner}/{repo}/pull/{pull_number}/checks?check_run_id={run_id}"
)
DEFAULT_BADGE_PATH = "badges/flat.svg"

_TARGET_URL_FIELDS = {"owner", "repo", "pull_number", "run_id"}


# ---------------------------------------------------------------------------
# Config dataclasses
# ---------------------------------------------------------------------------

@dataclass
class ReviewConfig:
    api_url: str = DEFAULT_API_URL
    token: str = ""
    repository: str = ""            # "owner/repo"
    context: str = DEFAULT_CONTEXT
    target_url: str = DEFAULT_TARGET_URL

    @property
    def owner(self) -> str:
        return self.repository.partition("/")[0]

    @property
    def repo(self) -> str:
        return self.repository.partition("/")[2]


@dataclass
class ArtifactsConfig:
    badge_url: str = ""
    public_url: str = ""
    bucket: str = ""
    prefix: str = ""
    region: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    endpoint_url: str | None = None
    acl: str = "public-read"


@dataclass
class RunConfig:
    commit_sha: str = ""
    run_id: str = ""
    pull_number: str = ""
    report_dir: str = ""
    badge_path: str = DEFAULT_BADGE_PATH
    ref_name: str = ""
    baseline_branch: str = "main"


@dataclass
class PolicyConfig:
    tolerance: Decimal = Decimal(0)
    timeout: float = 30.0
    max_attempts: int = 3
    backoff_base: float = 1.0
    backoff_max: float = 30.0


@dataclass
class Config:
    review: ReviewConfig = field(default_factory=ReviewConfig)
    artifacts: ArtifactsConfig = field(default_factory=ArtifactsConfig)
    run: RunConfig = field(default_factory=RunConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)

    @property
    def mode(self) -> Mode:
        """PUBLISH on the baseline branch, COMPARE everywhere else."""
        if self.run.ref_name == self.run.baseline_branch:
            return Mode.PUBLISH
        return Mode.COMPARE

    @property
    def baseline_badge_url(self) -> str:
        """Explicit ``badge_url``, else ``{public_url}/{prefix}/{badge_path}``."""
        if self.artifacts.badge_url:
            return self.artifacts.badge_url
        if not self.artifacts.public_url:
            return ""
        parts = [self.artifacts.public_url.rstrip("/")]
        if self.artifacts.prefix.strip("/"):
            parts.append(self.artifacts.prefix.strip("/"))
        parts.append(self.run.badge_path.lstrip("/"))
        return "/".join(parts)

    @property
    def local_badge(self) -> Path:
        return Path(self.run.report_dir) / self.run.badge_path

    def validate_for(self, mode: Mode) -> None:
        """Raise ConfigError if a field required by *mode* is missing."""
        errors: list[str] = []

        if not self.run.report_dir:
            errors.append("  - 'run.report_dir' is missing (or set COV_REPORT_DIR)")
        if not self.run.ref_name:
            errors.append("  - 'run.ref_name' is missing (or set GITHUB_REF_NAME)")

        if mode is Mode.COMPARE:
            if not self.review.api_url:
                errors.append("  - 'review.api_url' is missing (or set COVGATE_API_URL)")
            if not self.review.token:
                errors.append("  - 'review.token' is missing (or set GITHUB_TOKEN)")
            if not self.review.owner or not self.review.repo:
                errors.append(
                    "  - 'review.repository' must be 'owner/repo' (or set GITHUB_REPOSITORY)"
                )
            if not self.run.commit_sha:
                errors.append("  - 'run.commit_sha' is missing (or set COMMIT_SHA)")
            if not self.baseline_badge_url:
                errors.append(
                    "  - 'artifacts.badge_url' or 'artifacts.public_url' is missing "
                    "(or set COVGATE_BADGE_URL)"
                )
            errors.extend(self._target_url_errors())
        else:
            if not self.artifacts.bucket:
                errors.append("  - 'artifacts.bucket' is missing (or set AWS_S3_BUCKET)")
            if not self.artifacts.region:
                errors.append("  - 'artifacts.region' is missing (or set AWS_REGION)")
            if not self.artifacts.access_key_id:
                errors.append(
                    "  - 'artifacts.access_key_id' is missing (or set AWS_ACCESS_KEY_ID)"
                )
            if not self.artifacts.secret_access_key:
                errors.append(
                    "  - 'artifacts.secret_access_key' is missing (or set AWS_SECRET_ACCESS_KEY)"
                )

        if errors:
            raise ConfigError(
                f"Invalid configuration for {mode.value}:\n" + "\n".join(errors)
            )

    def _target_url_errors(self) -> list[str]:
        try:
            fields = {
                name for _, name, _, _ in string.Formatter().parse(self.review.target_url)
                if name is not None
            }
        except ValueError:
            fields = {""}
        if fields - _TARGET_URL_FIELDS:
            return [
                "  - 'review.target_url' may only use {owner}, {repo}, "
                "{pull_number} and {run_id}"
            ]

        errors = []
        if "pull_number" in fields and not self.run.pull_number:
            errors.append(
                "  - 'run.pull_number' is missing (or set PULL_NUMBER); "
                "'review.target_url' uses it"
            )
        if "run_id" in fields and not self.run.run_id:
            errors.append(
                "  - 'run.run_id' is missing (or set RUN_ID); 'review.target_url' uses it"
            )
        return errors


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

#: (section, key, environment variable)
_ENV_OVERRIDES: list[tuple[str, str, str]] = [
    ("review", "api_url", "COVGATE_API_URL"),
    ("review", "token", "GITHUB_TOKEN"),
    ("review", "repository", "GITHUB_REPOSITORY"),
    ("review", "context", "COVGATE_CONTEXT"),
    ("review", "target_url", "COVGATE_TARGET_URL"),
    ("artifacts", "badge_url", "COVGATE_BADGE_URL"),
    ("artifacts", "public_url", "COVGATE_PUBLIC_URL"),
    ("artifacts", "bucket", "AWS_S3_BUCKET"),
    ("artifacts", "prefix", "COVGATE_PREFIX"),
    ("artifacts", "region", "AWS_REGION"),
    ("artifacts", "access_key_id", "AWS_ACCESS_KEY_ID"),
    ("artifacts", "secret_access_key", "AWS_SECRET_ACCESS_KEY"),
    ("artifacts", "endpoint_url", "COVGATE_S3_ENDPOINT"),
    ("artifacts", "acl", "COVGATE_ACL"),
    ("run", "commit_sha", "COMMIT_SHA"),
    ("run", "run_id", "RUN_ID"),
    ("run", "pull_number", "PULL_NUMBER"),
    ("run", "report_dir", "COV_REPORT_DIR"),
    ("run", "badge_path", "COVGATE_BADGE_PATH"),
    ("run", "ref_name", "GITHUB_REF_NAME"),
    ("run", "baseline_branch", "COVGATE_BASELINE_BRANCH"),
    ("policy", "tolerance", "COVGATE_TOLERANCE"),
    ("policy", "timeout", "COVGATE_TIMEOUT"),
    ("policy", "max_attempts", "COVGATE_MAX_ATTEMPTS"),
]

_SECTIONS = ("review", "artifacts", "run", "policy")


def load(config_path: str | None = None) -> Config:
    """Load configuration from an optional YAML file plus the environment.

    Raises:
        ConfigError: if an explicit file is missing or malformed, or a policy
                     value is not a valid number.
    """
    raw: dict = {}
    if config_path is not None:
        raw = _read_yaml(config_path)

    sections: dict[str, dict] = {}
    for name in _SECTIONS:
        section = raw.get(name) or {}
        if not isinstance(section, dict):
            raise ConfigError(f"'{name}' must be a mapping in '{config_path}'.")
        sections[name] = dict(section)

    for section, key, env_var in _ENV_OVERRIDES:
        value = os.environ.get(env_var)
        if value:
            sections[section][key] = value

    config = Config(
        review=ReviewConfig(**_strings(sections["review"], ReviewConfig)),
        artifacts=ArtifactsConfig(**_strings(sections["artifacts"], ArtifactsConfig)),
        run=RunConfig(**_strings(sections["run"], RunConfig)),
        policy=_policy(sections["policy"]),
    )
    if not config.artifacts.endpoint_url:
        config.artifacts.endpoint_url = None
    return config


def _read_yaml(config_path: str) -> dict:
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(
            f"Config file not found: '{config_path}'\n"
            "Run `covgate init` to generate a template."
        )
    try:
        with path.open(encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse '{config_path}': {exc}") from exc

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"'{config_path}' must be a YAML mapping at the top level.")
    return raw


def _strings(section: dict, cls) -> dict[str, str]:
    """Keep the keys *cls* knows about, as stripped strings."""
    known = cls.__dataclass_fields__
    unknown = sorted(set(section) - set(known))
    if unknown:
        raise ConfigError(f"Unknown {cls.__name__} key(s): {', '.join(unknown)}")
    return {k: str(v).strip() for k, v in section.items() if v is not None}


def _policy(section: dict) -> PolicyConfig:
    errors: list[str] = []
    defaults = PolicyConfig()

    def convert(key, kind):
        if key not in section or section[key] is None:
            return getattr(defaults, key)
        try:
            return kind(str(section[key]).strip())
        except (ValueError, InvalidOperation):
            errors.append(f"  - 'policy.{key}' is not a valid number: {section[key]!r}")
            return getattr(defaults, key)

    unknown = sorted(set(section) - set(PolicyConfig.__dataclass_fields__))
    if unknown:
        raise ConfigError(f"Unknown PolicyConfig key(s): {', '.join(unknown)}")

    policy = PolicyConfig(
        tolerance=convert("tolerance", Decimal),
        timeout=convert("timeout", float),
        max_attempts=convert("max_attempts", int),
        backoff_base=convert("backoff_base", float),
        backoff_max=convert("backoff_max", float),
    )

    if not errors:
        if not policy.tolerance.is_finite() or policy.tolerance < 0:
            errors.append("  - 'policy.tolerance' must be >= 0")
        if policy.timeout <= 0:
            errors.append("  - 'policy.timeout' must be > 0")
        if policy.max_attempts < 1:
            errors.append("  - 'policy.max_attempts' must be >= 1")
        if policy.backoff_base < 0 or policy.backoff_max < 0:
            errors.append("  - backoff delays must be >= 0")

    if errors:
        raise ConfigError("Invalid configuration:\n" + "\n".join(errors))
    return policy


# ---------------------------------------------------------------------------
# Template generator (used by `init` command)
# ---------------------------------------------------------------------------

TEMPLATE = """\
# Every value below can also be supplied through the environment variable
# named in the trailing comment; the environment wins.

review:
  api_url: "https://api.github.com"          # COVGATE_API_URL
  token: "ghp_xxxxxxxxxxxx"                  # GITHUB_TOKEN
  repository: "owner/repo"                   # GITHUB_REPOSITORY
  context: "Measured coverage"               # COVGATE_CONTEXT

artifacts:
  public_url: "http://my-bucket.s3-website.eu-west-3.amazonaws.com"   # COVGATE_PUBLIC_URL
  bucket: "my-bucket"                        # AWS_S3_BUCKET
  prefix: "repo"                             # COVGATE_PREFIX
  region: "eu-west-3"                        # AWS_REGION
  # access_key_id / secret_access_key: prefer AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY

run:
  baseline_branch: "main"                    # COVGATE_BASELINE_BRANCH
  badge_path: "badges/flat.svg"              # COVGATE_BADGE_PATH
  # commit_sha, run_id, pull_number, report_dir and ref_name normally come from
  # COMMIT_SHA, RUN_ID, PULL_NUMBER, COV_REPORT_DIR and GITHUB_REF_NAME.

policy:
  tolerance: 0
  timeout: 30
  max_attempts: 3
"""


def generate_template(output_path: str = "covgate.yaml") -> None:
    """Write a template covgate.yaml to *output_path*.

    Raises:
        ConfigError: if the file already exists (to avoid overwriting secrets).
    """
    path = Path(output_path)
    if path.exists():
        raise ConfigError(
            f"'{output_path}' already exists. Remove it first or choose a different path."
        )
    path.write_text(TEMPLATE, encoding="utf-8")
