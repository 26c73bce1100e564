"""
Leader election on a coordination.k8s.io Lease

Only the replica holding the Lease runs reconcile passes. The holder renews
the Lease every retry period; other replicas take it over once it has not
been renewed for a full lease duration.
"""

import logging
import socket
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable

from kubernetes import client
from kubernetes.client.rest import ApiException

from .config import Config

logger = logging.getLogger("orchestrdb.leader")


def default_identity() -> str:
    return f"{socket.gethostname()}_{uuid.uuid4()}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeaseLock:
    """
    Acquires and renews a single Lease object

    Args:
        name: Lease name
        namespace: Namespace holding the Lease
        identity: Holder identity written into the Lease
        lease_duration: Seconds a holder keeps the Lease without renewing
        retry_period: Seconds between acquire/renew attempts
        api: CoordinationV1Api, created when not given
    """

    def __init__(self, name: str = None, namespace: str = None, identity: str = None,
                 lease_duration: int = None, retry_period: float = None, api=None,
                 clock: Callable[[], datetime] = _utcnow):
        self.name = name or Config.LEADER_ELECTION_ID
        self.namespace = namespace or Config.LEADER_ELECTION_NAMESPACE
        self.identity = identity or default_identity()
        self.lease_duration = lease_duration or Config.LEASE_DURATION
        self.retry_period = retry_period or Config.LEASE_RETRY_PERIOD
        self.api = api or client.CoordinationV1Api()
        self.clock = clock

    def _expired(self, spec, now: datetime) -> bool:
        if spec.renew_time is None:
            return True
        duration = spec.lease_duration_seconds or self.lease_duration
        renewed = spec.renew_time
        if renewed.tzinfo is None:
            renewed = renewed.replace(tzinfo=timezone.utc)
        return now >= renewed + timedelta(seconds=duration)

    def _create(self, now: datetime) -> bool:
        body = client.V1Lease(
            metadata=client.V1ObjectMeta(name=self.name, namespace=self.namespace),
            spec=client.V1LeaseSpec(
                holder_identity=self.identity,
                lease_duration_seconds=self.lease_duration,
                acquire_time=now,
                renew_time=now,
                lease_transitions=0,
            ),
        )
        try:
            self.api.create_namespaced_lease(self.namespace, body)
        except ApiException as e:
            if e.status != 409:
                logger.warning(f"Failed to create lease {self.namespace}/{self.name}: {e.reason}")
            return False
        return True

    def try_acquire_or_renew(self) -> bool:
        """
        Take or keep the Lease

        Returns:
            True if this identity holds the Lease after the call
        """
        now = self.clock()
        try:
            lease = self.api.read_namespaced_lease(self.name, self.namespace)
        except ApiException as e:
            if e.status == 404:
                return self._create(now)
            logger.warning(f"Failed to read lease {self.namespace}/{self.name}: {e.reason}")
            return False

        spec = lease.spec
        holder = spec.holder_identity
        if holder and holder != self.identity and not self._expired(spec, now):
            return False

        if holder != self.identity:
            spec.acquire_time = now
            spec.lease_transitions = (spec.lease_transitions or 0) + 1
        spec.holder_identity = self.identity
        spec.renew_time = now
        spec.lease_duration_seconds = self.lease_duration

        # resourceVersion from the read makes a concurrent takeover fail with 409
        try:
            self.api.replace_namespaced_lease(self.name, self.namespace, lease)
        except ApiException as e:
            if e.status != 409:
                logger.warning(f"Failed to update lease {self.namespace}/{self.name}: {e.reason}")
            return False
        return True
