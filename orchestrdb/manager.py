"""
Control loop hosting the controllers

Polls the API for Database/User resources, turns new or changed ones into
work items, and runs passes on a small worker pool. Redelivery after a
failed pass comes from the delay returned by the controller; status write
failures and unexpected errors get an exponential backoff instead.
"""

import heapq
import logging
import threading
import time
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Tuple

from .config import BLUE, Config, RESET, YELLOW
from .errors import OrchestrDBError, StatusWriteError
from .metrics import Metrics
from .models import ObjectMeta, Status
from .postgres import Cancellation

logger = logging.getLogger("orchestrdb.manager")

# (kind, namespace, name)
Key = Tuple[str, str, str]


class WorkQueue:
    """Delayed queue holding each key at most once, at its earliest due time"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._heap = []
        self._due: Dict[Key, float] = {}
        self._lock = threading.Lock()

    def add(self, key: Key, delay: float = 0.0):
        due = self._clock() + delay
        with self._lock:
            current = self._due.get(key)
            if current is not None and current <= due:
                return
            self._due[key] = due
            heapq.heappush(self._heap, (due, key))

    def pop_ready(self) -> List[Key]:
        now = self._clock()
        ready = []
        with self._lock:
            while self._heap and self._heap[0][0] <= now:
                due, key = heapq.heappop(self._heap)
                # Superseded by an earlier add for the same key
                if self._due.get(key) != due:
                    continue
                del self._due[key]
                ready.append(key)
        return ready

    def next_due(self) -> Optional[float]:
        with self._lock:
            return min(self._due.values()) if self._due else None

    def __contains__(self, key: Key) -> bool:
        with self._lock:
            return key in self._due

    def __len__(self) -> int:
        with self._lock:
            return len(self._due)


class Manager:
    """
    Main control loop that runs the controllers

    Args:
        store: KubernetesStore used for polling
        controllers: Controller per kind name
        metrics: Metrics sink
        namespace: Namespace to watch, empty for all namespaces
        sync_interval: Seconds between polls
        workers: Maximum passes running at the same time
        elector: LeaseLock gating passes, None to always run
    """

    def __init__(self, store, controllers: Dict[str, object], metrics: Metrics = None,
                 namespace: str = "", sync_interval: float = None, workers: int = None,
                 clock: Callable[[], float] = time.monotonic, elector=None):
        self.store = store
        self.controllers = controllers
        self.metrics = metrics or Metrics()
        self.namespace = namespace
        self.sync_interval = sync_interval or Config.SYNC_INTERVAL
        self.workers = workers or Config.WORKERS
        self.clock = clock
        self.queue = WorkQueue(clock)
        self.elector = elector
        self._leading = False
        self.lost_lease = False
        self._renew_at = 0.0

        self._lock = threading.Lock()
        self._seen: Dict[Key, int] = {}
        self._inflight: Dict[Key, Cancellation] = {}
        self._dirty = set()
        self._failures = defaultdict(int)
        self._stop = threading.Event()
        self._pool: Optional[ThreadPoolExecutor] = None

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def should_trigger(self, key: Key, obj: dict) -> bool:
        """
        Decide whether a polled object needs a pass

        On first sight an object is reconciled unless its status already
        records a success for the current generation. After that only a
        generation change (a spec edit) triggers it.
        """
        meta = ObjectMeta.from_object(obj)
        with self._lock:
            last = self._seen.get(key)
            self._seen[key] = meta.generation
        if last is None:
            status = Status.from_dict(obj.get("status"))
            return status.observed_generation != meta.generation or not status.created
        return last != meta.generation

    def poll(self):
        for kind in self.controllers:
            try:
                objects = self.store.list(kind, self.namespace or None)
            except OrchestrDBError as e:
                logger.error(f"Failed to list {kind} resources: {e}")
                continue

            present = set()
            for obj in objects:
                meta = ObjectMeta.from_object(obj)
                key = (kind, meta.namespace, meta.name)
                present.add(key)
                if self.should_trigger(key, obj):
                    logger.info(f"{YELLOW}Change detected: {kind} {meta.namespace}/{meta.name}{RESET}")
                    self.queue.add(key)

            with self._lock:
                for key in [k for k in self._seen if k[0] == kind and k not in present]:
                    del self._seen[key]
                    self._failures.pop(key, None)
            self.metrics.set_managed(kind, len(objects))

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    def backoff(self, key: Key) -> float:
        with self._lock:
            attempt = self._failures[key]
            self._failures[key] += 1
        return min(Config.RETRY_BACKOFF_BASE ** attempt, Config.MAX_BACKOFF)

    def process(self, key: Key, cancel: Cancellation):
        """Run one pass for key and schedule whatever comes next"""
        kind, namespace, name = key
        controller = self.controllers[kind]
        try:
            result = controller.reconcile(name, namespace, cancel)
        except StatusWriteError as e:
            delay = self.backoff(key)
            self.metrics.record_status_write_error()
            logger.error(f"{e}; retrying in {delay}s")
            self.queue.add(key, delay)
            return
        except Exception as e:
            delay = self.backoff(key)
            self.metrics.record_unexpected_error()
            logger.error(f"Unexpected error reconciling {kind} {namespace}/{name}, "
                         f"retrying in {delay}s: {e}", exc_info=True)
            self.queue.add(key, delay)
            return

        with self._lock:
            self._failures.pop(key, None)
        if result.outcome is not None:
            self.metrics.record_pass(kind, result.outcome.kind.value)
        if result.requeue_after is not None:
            logger.info(f"{BLUE}Requeueing {kind} {namespace}/{name} "
                        f"in {result.requeue_after}s{RESET}")
            self.queue.add(key, result.requeue_after)

    def _run(self, key: Key, cancel: Cancellation):
        try:
            self.process(key, cancel)
        finally:
            with self._lock:
                self._inflight.pop(key, None)
                rerun = key in self._dirty
                self._dirty.discard(key)
            if rerun and not self._stop.is_set():
                self.queue.add(key)

    def dispatch(self):
        for key in self.queue.pop_ready():
            with self._lock:
                if key in self._inflight:
                    # One pass per resource at a time; run again once it finishes
                    self._dirty.add(key)
                    continue
                cancel = Cancellation()
                self._inflight[key] = cancel
            self._pool.submit(self._run, key, cancel)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def lead(self) -> bool:
        """
        Whether this replica may run passes right now

        Renews the Lease at most once per retry period. Losing a Lease that
        was held stops the manager, so passes never overlap with a new leader.
        """
        if self.elector is None:
            return True
        if self.clock() < self._renew_at:
            return self._leading

        acquired = self.elector.try_acquire_or_renew()
        self._renew_at = self.clock() + self.elector.retry_period
        if acquired and not self._leading:
            logger.info(f"{BLUE}Acquired leader lease as {self.elector.identity}{RESET}")
        elif self._leading and not acquired:
            logger.error("Lost leader lease, stopping")
            self.lost_lease = True
            self.stop()
        self._leading = acquired
        return acquired

    def run_forever(self):
        logger.info(f"Controller started for kinds {list(self.controllers)} "
                    f"(namespace={self.namespace or '*'}, workers={self.workers})")
        logger.info(f"Sync interval: {self.sync_interval}s")

        self._pool = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="reconcile")
        next_poll = self.clock()
        try:
            while not self._stop.is_set():
                try:
                    if not self.lead():
                        self._stop.wait(max(0.0, min(self._renew_at - self.clock(), 1.0)))
                        continue
                    if self.clock() >= next_poll:
                        self.poll()
                        next_poll = self.clock() + self.sync_interval
                    self.dispatch()
                except Exception as e:
                    logger.error(f"Unexpected error in reconciliation loop: {e}", exc_info=True)

                wake = next_poll
                due = self.queue.next_due()
                if due is not None:
                    wake = min(wake, due)
                self._stop.wait(max(0.0, min(wake - self.clock(), 1.0)))
        finally:
            self.stop()
            self._pool.shutdown(wait=True)
            logger.info("Control loop stopped")

    def stop(self):
        """Stop the loop and cancel every in-flight pass"""
        self._stop.set()
        with self._lock:
            tokens = list(self._inflight.values())
        for token in tokens:
            token.cancel()
