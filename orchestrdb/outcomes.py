"""
Reconcile pass outcomes and status reporting

Every pass ends in exactly one Outcome. The mapping from outcome to persisted
status and to retry delay lives here and nowhere else.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from .config import RETRY_DELAY_SECONDS
from .models import ObjectMeta, Status

logger = logging.getLogger("orchestrdb.outcomes")

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class OutcomeKind(Enum):
    SUCCEEDED = "succeeded"
    CREDENTIAL_ERROR = "credential_error"
    CONVERGENCE_ERROR = "convergence_error"
    CONFLICT_ERROR = "conflict_error"


# Conflicts wait for the next external trigger instead of a timed retry
RETRY_AFTER = {
    OutcomeKind.SUCCEEDED: None,
    OutcomeKind.CREDENTIAL_ERROR: RETRY_DELAY_SECONDS,
    OutcomeKind.CONVERGENCE_ERROR: RETRY_DELAY_SECONDS,
    OutcomeKind.CONFLICT_ERROR: None,
}


@dataclass(frozen=True)
class Outcome:
    kind: OutcomeKind
    message: str = ""

    @classmethod
    def succeeded(cls) -> "Outcome":
        return cls(OutcomeKind.SUCCEEDED)

    @classmethod
    def credential_error(cls, error) -> "Outcome":
        return cls(OutcomeKind.CREDENTIAL_ERROR, str(error))

    @classmethod
    def convergence_error(cls, error) -> "Outcome":
        return cls(OutcomeKind.CONVERGENCE_ERROR, str(error))

    @classmethod
    def conflict(cls, error) -> "Outcome":
        return cls(OutcomeKind.CONFLICT_ERROR, str(error))

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCEEDED


def requeue_after(outcome: Outcome) -> Optional[float]:
    return RETRY_AFTER[outcome.kind]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def next_timestamp(previous: str, now: datetime) -> str:
    """RFC3339 timestamp for now, pushed past previous if the clock lags"""
    last = _parse_timestamp(previous)
    if last is not None and now <= last:
        now = last + timedelta(microseconds=1)
    return now.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


class StatusReporter:
    """Turns an Outcome into the resource's status and writes it once"""

    def __init__(self, store, clock: Callable[[], datetime] = _utcnow):
        self.store = store
        self.clock = clock

    def build_status(self, outcome: Outcome, meta: ObjectMeta, previous: Status) -> Status:
        return Status(
            created=outcome.ok,
            last_error="" if outcome.ok else outcome.message,
            updated_at=next_timestamp(previous.updated_at, self.clock()),
            observed_generation=meta.generation,
        )

    def report(self, kind: str, meta: ObjectMeta, previous: Status, outcome: Outcome) -> Status:
        """
        Persist the outcome of a pass

        Raises:
            StatusWriteError: the status subresource could not be updated
        """
        status = self.build_status(outcome, meta, previous)
        self.store.update_status(kind, meta.name, meta.namespace, status.to_dict())
        logger.debug(f"Status of {kind} {meta.namespace}/{meta.name}: {status.to_dict()}")
        return status
