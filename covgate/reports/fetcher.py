"""Baseline badge retrieval from the public artifact host."""

import logging

from covgate.client import HttpClient
from covgate.models import CoverageReport, Source

logger = logging.getLogger(__name__)


def fetch_report(client: HttpClient, url: str) -> CoverageReport:
    """Download the badge at *url* and return a REMOTE ``CoverageReport``.

    No retries here; the pipeline owns the retry policy.

    Raises:
        NetworkError:       timeout or connection failure
        NotFoundError:      4xx response
        TransientError:     5xx response
        EmptyResponseError: empty body
        ParseError:         body has no valid coverage percentage
    """
    body = client.get_bytes(url)
    report = CoverageReport(raw_artifact=body, source=Source.REMOTE)
    logger.debug("Baseline coverage at %s is %s%%", url, report.percentage)
    return report
