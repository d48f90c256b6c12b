"""
Audit orchestration: request a remote performance audit and poll it to a result.

Lifecycle of one job:

    idle -> requested -> processing (polling) -> completed | failed | timedOut

- One POST /audits per job, then GET /audits/{id} every poll interval for
  at most max_attempts polls. A poll that errors still uses up an attempt.
- Callers always get an AuditResult back; scores are None unless the job
  completed.
- A completed result is kept per page URL while it is on display, so
  running again for the same page reuses it. release(url) drops it.
- Only one polling loop exists per job. Concurrent runs for the same URL
  (or follows of the same job id) wait on the loop already in flight.
- close() stops scheduling polls; an interrupted job stays in its last
  non-terminal state and is not resumed.
"""

import logging
import threading
from concurrent.futures import Future
from typing import Callable, Dict, Optional

from .config import AUDIT_MAX_ATTEMPTS, AUDIT_POLL_INTERVAL, PORTAL_URL
from .errors import ApiError
from .models import (
    AUDIT_COMPLETED,
    AUDIT_FAILED,
    AUDIT_PROCESSING,
    AUDIT_REQUESTED,
    AUDIT_TIMED_OUT,
    AuditJob,
    AuditResult,
    AuditScores,
)

logger = logging.getLogger(__name__)

AUDIT_IDLE = "idle"

# Remote status strings
REMOTE_COMPLETED = frozenset({"completed", "complete"})
REMOTE_FAILED = frozenset({"failed", "error"})

AUDIT_DEVICE_TYPE = "mobile"
AUDIT_SOURCE = "api"


def extract_scores(data: Dict) -> AuditScores:
    """Map a completed remote audit onto AuditScores. Missing scores stay None."""
    mobile = data.get("performanceScore")
    desktop = data.get("desktopPerformanceScore")
    return AuditScores(
        mobile=mobile,
        desktop=desktop if desktop is not None else mobile,
        seo=data.get("seoScore"),
        accessibility=data.get("accessibilityScore"),
        best_practices=data.get("bestPracticesScore"),
    )


class AuditOrchestrator:
    """
    Args:
        client: ApiClient for the remote audit endpoints
        poll_interval: Seconds between polls
        max_attempts: Poll budget per job
        sleep: Injectable pause; defaults to waiting on the close event so
               close() interrupts a pending poll immediately
        portal_url: Base for human-facing audit links
    """

    def __init__(
        self,
        client,
        poll_interval: float = AUDIT_POLL_INTERVAL,
        max_attempts: int = AUDIT_MAX_ATTEMPTS,
        sleep: Optional[Callable[[float], None]] = None,
        portal_url: str = PORTAL_URL,
    ):
        self.client = client
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.portal_url = portal_url.rstrip("/")
        self._closed = threading.Event()
        self._sleep = sleep or self._closed.wait
        self._lock = threading.Lock()
        self._in_flight: Dict[str, Future] = {}
        self._jobs_by_url: Dict[str, AuditJob] = {}
        self._displayed: Dict[str, AuditResult] = {}

    # -------------------------------------------------------------------------
    # state
    # -------------------------------------------------------------------------

    def state(self, url: str) -> str:
        with self._lock:
            job = self._jobs_by_url.get(url)
        return job.status if job else AUDIT_IDLE

    def job_for(self, url: str) -> Optional[AuditJob]:
        with self._lock:
            return self._jobs_by_url.get(url)

    def cached(self, url: str) -> Optional[AuditResult]:
        with self._lock:
            return self._displayed.get(url)

    def release(self, url: str) -> None:
        """The page is no longer on display; its result will not be reused."""
        with self._lock:
            self._displayed.pop(url, None)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        self._closed.set()

    # -------------------------------------------------------------------------
    # steps
    # -------------------------------------------------------------------------

    def trigger(self, url: str) -> AuditJob:
        """
        Request a new audit for url.

        Raises:
            ApiError: the request was rejected or no audit id came back
        """
        data = self.client.post("/audits", {
            "url": url,
            "deviceType": AUDIT_DEVICE_TYPE,
            "source": AUDIT_SOURCE,
        })
        audit_id = data.get("auditId") if isinstance(data, dict) else None
        if not audit_id:
            raise ApiError("Audit request returned no audit id", endpoint="/audits")

        job = AuditJob(id=str(audit_id), url=url, status=AUDIT_REQUESTED)
        with self._lock:
            self._jobs_by_url[url] = job
        logger.info(f"Requested audit {job.id} for {url}")
        return job

    def poll(self, job: AuditJob) -> AuditJob:
        """Poll job until it is terminal, the budget runs out, or close() is called."""
        job.status = AUDIT_PROCESSING
        while job.attempts < self.max_attempts:
            if self.closed:
                logger.info(f"Stopped polling audit {job.id} after {job.attempts} attempts")
                return job

            job.attempts += 1
            try:
                data = self.client.get(f"/audits/{job.id}")
            except ApiError as e:
                logger.debug(f"Poll attempt {job.attempts} for audit {job.id} failed: {e}")
                data = None

            if isinstance(data, dict):
                status = str(data.get("status") or "").lower()
                if status in REMOTE_COMPLETED:
                    job.scores = extract_scores(data)
                    job.status = AUDIT_COMPLETED
                    logger.info(f"Audit {job.id} completed after {job.attempts} polls")
                    return job
                if status in REMOTE_FAILED:
                    job.status = AUDIT_FAILED
                    logger.info(f"Audit {job.id} failed: {data.get('error')}")
                    return job

            if job.attempts < self.max_attempts:
                self._sleep(self.poll_interval)

        job.status = AUDIT_TIMED_OUT
        logger.info(f"Audit {job.id} timed out after {job.attempts} polls")
        return job

    # -------------------------------------------------------------------------
    # entry points
    # -------------------------------------------------------------------------

    def run(self, url: str) -> AuditResult:
        """Audit url end to end, reusing a displayed result when one exists."""
        with self._lock:
            reused = self._displayed.get(url)
            if reused is not None:
                logger.debug(f"Reusing audit {reused.audit_id} for {url}")
                return reused
            future = self._in_flight.get(url)
            owner = future is None
            if owner:
                future = Future()
                self._in_flight[url] = future

        if not owner:
            return future.result()
        return self._own(future, lambda: self._run(url, future))

    def follow(self, audit_id: str, url: str = "") -> AuditResult:
        """Poll an audit that was requested elsewhere (or join the loop already polling it)."""
        key = f"job:{audit_id}"
        with self._lock:
            future = self._in_flight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._in_flight[key] = future

        if not owner:
            return future.result()

        def follow_job() -> AuditResult:
            job = AuditJob(id=audit_id, url=url, status=AUDIT_REQUESTED)
            if url:
                with self._lock:
                    self._jobs_by_url[url] = job
            return self._finish(self.poll(job))

        return self._own(future, follow_job)

    def _own(self, future: Future, work: Callable[[], AuditResult]) -> AuditResult:
        try:
            result = work()
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            # run() also registers the job id once it is known
            with self._lock:
                for key in [k for k, f in self._in_flight.items() if f is future]:
                    del self._in_flight[key]

    def _run(self, url: str, future: Future) -> AuditResult:
        if self.closed:
            logger.debug(f"Not requesting audit for {url}, orchestrator closed")
            return AuditResult(audit_id=None, status=AUDIT_FAILED)
        try:
            job = self.trigger(url)
        except ApiError as e:
            logger.warning(f"Could not request audit for {url}: {e}")
            return AuditResult(audit_id=None, status=AUDIT_FAILED)

        with self._lock:
            self._in_flight.setdefault(f"job:{job.id}", future)
        return self._finish(self.poll(job))

    def _finish(self, job: AuditJob) -> AuditResult:
        scores = job.scores if job.status == AUDIT_COMPLETED else None
        result = AuditResult(audit_id=job.id, status=job.status, scores=scores)
        if job.status == AUDIT_COMPLETED and job.url:
            with self._lock:
                self._displayed[job.url] = result
        return result

    # -------------------------------------------------------------------------
    # sharing
    # -------------------------------------------------------------------------

    def audit_url(self, audit_id: str) -> str:
        return f"{self.portal_url}/audits/{audit_id}"

    def magic_link(self, audit_id: str, recipient_email: Optional[str] = None) -> str:
        """
        Create a shareable link to the audit report.

        Falls back to the portal URL when the response carries no link.

        Raises:
            ApiError: the link request failed
        """
        body = {"recipientEmail": recipient_email} if recipient_email else {}
        data = self.client.post(f"/audits/{audit_id}/magic-link", body)
        data = data if isinstance(data, dict) else {}
        return data.get("magicLink") or data.get("url") or self.audit_url(audit_id)
