from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional

import httpx

from summary_assembler import Summary
from wizard_config import Config
from wizard_log import get_logger, log_event

logger = get_logger(__name__)

ENDPOINTS: Dict[str, str] = {
    "performance": "/api/customization-projects",
    "rental": "/api/rentals",
    "onboarding": "/api/drivers",
}


@dataclass(frozen=True)
class SubmitResult:
    status_code: int
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def submit_summary(
    summary: Summary,
    *,
    base_url: str,
    path: str,
    timeout_s: float = 3.0,
    transport: Optional[httpx.BaseTransport] = None,
) -> SubmitResult:
    """
    POST one assembled Summary as JSON.

    Non-2xx responses come back as-is in the result. Transport failures (DNS, refused,
    timeout) are reported as status 0 with the error text. Nothing is retried.
    """
    url = f"{base_url.rstrip('/')}/{path.lstrip('/')}"
    payload = summary.to_dict()
    try:
        with httpx.Client(timeout=timeout_s, transport=transport) as client:
            resp = client.post(url, headers={"Content-Type": "application/json"}, json=payload)
    except httpx.HTTPError as e:
        logger.warning("Submit of %s to %s failed: %s", summary.reference, url, e)
        result = SubmitResult(status_code=0, body=f"{type(e).__name__}: {e}")
    else:
        result = SubmitResult(status_code=resp.status_code, body=resp.text[:4000])
        if not result.ok:
            logger.warning("Submit of %s to %s returned HTTP %d", summary.reference, url, resp.status_code)

    log_event(
        location="submit_client.py:submit_summary",
        message="submit",
        data={"url": url, "reference": summary.reference, "status": result.status_code},
    )
    return result


def make_submitter(
    config: Config,
    path: str,
    *,
    transport: Optional[httpx.BaseTransport] = None,
) -> Optional[Callable[[Summary], SubmitResult]]:
    """Returns None when no submit URL is configured."""
    if not config.submit_url:
        return None
    base_url = config.submit_url

    def _submit(summary: Summary) -> SubmitResult:
        return submit_summary(
            summary,
            base_url=base_url,
            path=path,
            timeout_s=config.submit_timeout_s,
            transport=transport,
        )

    return _submit
