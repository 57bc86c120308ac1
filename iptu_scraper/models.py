from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

PRIORITY_QUEUE = "priority"
DEFAULT_QUEUE = "default"

OUTCOME_SUCCEEDED = "succeeded"
OUTCOME_FAILED = "failed"

BATCH_PROCESSING = "processing"
BATCH_COMPLETED = "completed"


@dataclass(frozen=True)
class Job:
    key: str
    status: Optional[str] = None
    queue: str = DEFAULT_QUEUE
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def from_priority_queue(self) -> bool:
        return self.queue == PRIORITY_QUEUE


@dataclass(frozen=True)
class IptuRecord:
    numero_cadastro: Optional[str] = None
    nome_proprietario: Optional[str] = None
    nome_compromissario: Optional[str] = None
    endereco: Optional[str] = None
    numero: Optional[str] = None
    complemento: Optional[str] = None
    bairro: Optional[str] = None
    cep: Optional[str] = None


@dataclass(frozen=True)
class ScrapeResult:
    job_key: str
    success: bool
    data: Optional[IptuRecord]
    error: Optional[str]
    timestamp: float
    worker_id: str
    latency_ms: int = 0
    error_type: Optional[str] = None


@dataclass(frozen=True)
class CooldownState:
    """Either inactive (``until is None``) or active until a wall-clock time."""

    until: Optional[float] = None

    @property
    def active(self) -> bool:
        return self.until is not None

    def remaining(self, now: float) -> Optional[float]:
        if self.until is None or now >= self.until:
            return None
        return self.until - now


INACTIVE = CooldownState()


@dataclass(frozen=True)
class BatchSnapshot:
    total: int
    processed: int = 0
    success: int = 0
    error: int = 0
    status: str = BATCH_PROCESSING
    created_at: float = 0.0
    completed_at: Optional[float] = None

    @property
    def completed(self) -> bool:
        return self.status == BATCH_COMPLETED


@dataclass(frozen=True)
class RunStats:
    total: int
    succeeded: int
    failed: int
    elapsed_secs: float

    @property
    def jobs_per_minute(self) -> float:
        if self.elapsed_secs <= 0:
            return 0.0
        return self.total / self.elapsed_secs * 60.0

    @property
    def success_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.succeeded / self.total * 100.0
