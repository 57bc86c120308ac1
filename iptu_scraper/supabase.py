from __future__ import annotations

import datetime as _dt
import logging
import uuid
from dataclasses import asdict
from typing import Any, Dict, List, Optional

import requests

from .backoff import BackoffStrategy
from .errors import JobSourceError
from .job_source import STATUS_CLAIMED, BatchStore, JobSource, status_for
from .models import DEFAULT_QUEUE, PRIORITY_QUEUE, BatchSnapshot, Job, ScrapeResult
from .storage import ResultSink

logger = logging.getLogger(__name__)

QUEUE_TABLES = {
    PRIORITY_QUEUE: "iptus_list_priority",
    DEFAULT_QUEUE: "iptus_list",
}
RESULTS_TABLE = "iptus"
BATCHES_TABLE = "batches"


def _utcnow_iso() -> str:
    return _dt.datetime.now(tz=_dt.timezone.utc).isoformat()


class SupabaseClient(JobSource, ResultSink, BatchStore):
    """PostgREST client for the IPTU work queue, results and batch tables.

    Pending rows have ``status IS NULL``. A claim patches them to ``p`` with a
    ``status=is.null`` guard, so a row taken by another consumer in the
    meantime is not returned twice."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        service_role_key: Optional[str] = None,
        machine_id: str = "cli",
        timeout: int = 20,
        session: Optional[requests.Session] = None,
        backoff: Optional[BackoffStrategy] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth_key = service_role_key or api_key
        self._machine_id = machine_id
        self._timeout = timeout
        self._session = session or requests.Session()
        self._backoff = backoff or BackoffStrategy()
        self.batch_id: Optional[str] = None
        self._session.headers.update(
            {
                "apikey": self._auth_key,
                "Authorization": f"Bearer {self._auth_key}",
                "Content-Type": "application/json",
            }
        )

    # -- plumbing --------------------------------------------------------

    def _url(self, table: str) -> str:
        return f"{self._base_url}/rest/v1/{table}"

    def _request(
        self,
        method: str,
        table: str,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        def send() -> requests.Response:
            return self._session.request(
                method,
                self._url(table),
                params=params,
                json=json,
                headers=headers,
                timeout=self._timeout,
            )

        try:
            response = self._backoff.call(
                send, retry_on=(requests.ConnectionError, requests.Timeout)
            )
        except requests.RequestException as exc:
            raise JobSourceError(f"{method} {table} failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise JobSourceError(
                f"{method} {table} returned HTTP {response.status_code}: {response.text[:500]}"
            )
        return response

    # -- JobSource -------------------------------------------------------

    def fetch_pending(self, limit: int, queue: str) -> List[Job]:
        response = self._request(
            "GET",
            QUEUE_TABLES[queue],
            params={
                "select": "contributor_number,status",
                "status": "is.null",
                "order": "contributor_number.asc",
                "limit": str(limit),
            },
        )
        try:
            rows = response.json()
        except ValueError as exc:
            raise JobSourceError(f"Failed to parse pending jobs: {response.text[:500]}") from exc
        return [Job(key=row["contributor_number"], status=row.get("status"), queue=queue) for row in rows]

    def list_pending(self, limit: int) -> List[Job]:
        """Peek at pending jobs without claiming them, priority table first."""
        try:
            jobs = self.fetch_pending(limit, PRIORITY_QUEUE)
        except JobSourceError as exc:
            logger.warning("Could not fetch from %s: %s", QUEUE_TABLES[PRIORITY_QUEUE], exc)
            jobs = []
        if jobs:
            logger.info("Found %d priority jobs in %s", len(jobs), QUEUE_TABLES[PRIORITY_QUEUE])
            return jobs
        logger.info("No pending priority jobs, checking %s...", QUEUE_TABLES[DEFAULT_QUEUE])
        return self.fetch_pending(limit, DEFAULT_QUEUE)

    def claim_pending(self, limit: int) -> List[Job]:
        """Claim up to ``limit`` pending rows.

        A failure after some rows were already patched returns those rows
        instead of raising, so none of them is left claimed with no owner.
        """
        candidates = self.list_pending(limit)
        claimed: List[Job] = []
        for job in candidates:
            try:
                response = self._request(
                    "PATCH",
                    QUEUE_TABLES[job.queue],
                    params={"contributor_number": f"eq.{job.key}", "status": "is.null"},
                    json={"status": STATUS_CLAIMED},
                    headers={"Prefer": "return=representation"},
                )
            except JobSourceError as exc:
                if not claimed:
                    raise
                logger.error(
                    "Claim stopped at %s after %d jobs, continuing with those: %s",
                    job.key,
                    len(claimed),
                    exc,
                )
                break
            if response.json():
                claimed.append(Job(key=job.key, status=STATUS_CLAIMED, queue=job.queue))
            else:
                logger.info("Job %s was claimed by another consumer, skipping", job.key)
        logger.info("Claimed %d/%d jobs (machine %s)", len(claimed), len(candidates), self._machine_id)
        return claimed

    def release(self, job: Job, outcome: str, error: Optional[str] = None) -> None:
        # the queue tables only carry a status column; the error text is logged
        self._request(
            "PATCH",
            QUEUE_TABLES[job.queue],
            params={"contributor_number": f"eq.{job.key}"},
            json={"status": status_for(outcome)},
        )
        if error:
            logger.info("Job %s released as %s: %s", job.key, outcome, error)

    def unclaim(self, job: Job) -> None:
        self._request(
            "PATCH",
            QUEUE_TABLES[job.queue],
            params={"contributor_number": f"eq.{job.key}", "status": f"eq.{STATUS_CLAIMED}"},
            json={"status": None},
        )

    # -- ResultSink ------------------------------------------------------

    def result_exists(self, contributor_number: str) -> bool:
        response = self._request(
            "GET",
            RESULTS_TABLE,
            params={"select": "id", "contributor_number": f"eq.{contributor_number}", "limit": "1"},
        )
        return bool(response.json())

    def upload(self, result: ScrapeResult) -> None:
        """Upsert a successful result; failed results and known numbers are skipped."""
        if not result.success:
            return
        if self.result_exists(result.job_key):
            logger.info("Skipped upload, %s already exists in %s", result.job_key, RESULTS_TABLE)
            return
        row = {
            "id": str(uuid.uuid4()),
            "contributor_number": result.job_key,
            "sucesso": result.success,
            "erro": result.error,
            "batch_id": self.batch_id,
            "timestamp": _dt.datetime.fromtimestamp(result.timestamp, tz=_dt.timezone.utc).isoformat(),
            "processed_by": self._machine_id,
        }
        if result.data is not None:
            row.update(asdict(result.data))
        self._request(
            "POST",
            RESULTS_TABLE,
            json=[row],
            headers={"Prefer": "resolution=merge-duplicates"},
        )

    def get_results(self, limit: int, offset: int = 0) -> List[Dict[str, Any]]:
        response = self._request(
            "GET",
            RESULTS_TABLE,
            params={
                "select": "*",
                "order": "timestamp.desc",
                "limit": str(limit),
                "offset": str(offset),
            },
        )
        return response.json()

    # -- BatchStore ------------------------------------------------------

    def create_batch(self, total: int) -> str:
        batch_id = str(uuid.uuid4())
        self._request(
            "POST",
            BATCHES_TABLE,
            json={
                "id": batch_id,
                "total": total,
                "processados": 0,
                "sucesso": 0,
                "erros": 0,
                "status": "processing",
            },
        )
        self.batch_id = batch_id
        return batch_id

    def update_batch(self, batch_id: str, snapshot: BatchSnapshot) -> None:
        self._request(
            "PATCH",
            BATCHES_TABLE,
            params={"id": f"eq.{batch_id}"},
            json={
                "total": snapshot.total,
                "processados": snapshot.processed,
                "sucesso": snapshot.success,
                "erros": snapshot.error,
            },
        )

    def complete_batch(self, batch_id: str) -> None:
        self._request(
            "PATCH",
            BATCHES_TABLE,
            params={"id": f"eq.{batch_id}"},
            json={"status": "completed", "completed_at": _utcnow_iso()},
        )
