"""
Reconciliation controllers for the Database and User kinds

A controller runs one pass for one resource: fetch, converge, report status
once, and tell the caller when (if ever) to come back.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .config import GREEN, RED, RESET
from .credentials import CredentialResolver
from .databases import DatabaseEngine
from .errors import OrchestrDBError, ResourceConflict, ResourceNotFound, ValidationError
from .models import DatabaseSpec, ObjectMeta, Status, UserSpec
from .outcomes import Outcome, StatusReporter, requeue_after
from .postgres import Cancellation
from .users import UserEngine

logger = logging.getLogger("orchestrdb.controllers")


@dataclass
class Result:
    """What the scheduler should do after a pass"""
    requeue_after: Optional[float] = None
    outcome: Optional[Outcome] = None


class Controller:
    """Shared pass skeleton; subclasses implement converge()"""

    kind = ""

    def __init__(self, store, resolver: CredentialResolver, reporter: StatusReporter):
        self.store = store
        self.resolver = resolver
        self.reporter = reporter

    def reconcile(self, name: str, namespace: str,
                  cancel: Optional[Cancellation] = None) -> Result:
        """
        Run one reconcile pass

        Raises:
            StatusWriteError: the outcome could not be persisted
            StoreError: the resource itself could not be read
        """
        try:
            obj = self.store.get(self.kind, name, namespace)
        except ResourceNotFound:
            logger.info(f"{self.kind} {namespace}/{name} no longer exists, nothing to do")
            return Result()

        meta = ObjectMeta.from_object(obj)
        if meta.deleting:
            # Deletion handling is not implemented; provisioned objects are left alone
            logger.info(f"{self.kind} {namespace}/{name} is being deleted, skipping")
            return Result()

        previous = Status.from_dict(obj.get("status"))
        outcome = self.converge(meta, obj.get("spec") or {}, cancel or Cancellation())

        if outcome.ok:
            logger.info(f"{GREEN}{self.kind} {namespace}/{name} reconciled{RESET}")
        else:
            logger.error(f"{RED}{self.kind} {namespace}/{name} failed "
                         f"({outcome.kind.value}): {outcome.message}{RESET}")

        self.reporter.report(self.kind, meta, previous, outcome)
        return Result(requeue_after=requeue_after(outcome), outcome=outcome)

    def converge(self, meta: ObjectMeta, raw_spec: Dict[str, Any],
                 cancel: Cancellation) -> Outcome:
        raise NotImplementedError

    def _resolve(self, spec, meta: ObjectMeta):
        try:
            return self.resolver.resolve(spec, meta.namespace), None
        except OrchestrDBError as e:
            logger.error(f"Failed to resolve admin credentials for "
                         f"{self.kind} {meta.namespace}/{meta.name}: {e}")
            return None, Outcome.credential_error(e)


class DatabaseController(Controller):
    kind = "Database"

    def __init__(self, store, resolver: CredentialResolver, reporter: StatusReporter,
                 engine: DatabaseEngine):
        super().__init__(store, resolver, reporter)
        self.engine = engine

    def converge(self, meta, raw_spec, cancel):
        try:
            spec = DatabaseSpec.from_dict(raw_spec)
        except ValidationError as e:
            return Outcome.convergence_error(e)

        creds, failure = self._resolve(spec, meta)
        if failure:
            return failure

        try:
            self.engine.ensure_database(spec.host, spec.port, creds, spec.name,
                                        spec.ssl_mode, cancel)
        except OrchestrDBError as e:
            return Outcome.convergence_error(e)
        return Outcome.succeeded()


class UserController(Controller):
    kind = "User"

    def __init__(self, store, resolver: CredentialResolver, reporter: StatusReporter,
                 engine: UserEngine):
        super().__init__(store, resolver, reporter)
        self.engine = engine

    def converge(self, meta, raw_spec, cancel):
        try:
            spec = UserSpec.from_dict(raw_spec)
        except ValidationError as e:
            return Outcome.convergence_error(e)

        try:
            self.engine.check_secret_absent(meta, spec)
        except ResourceConflict as e:
            return Outcome.conflict(e)
        except OrchestrDBError as e:
            logger.error(f"Failed to check generatedSecret for {meta.namespace}/{meta.name}: {e}")
            return Outcome.convergence_error(e)

        creds, failure = self._resolve(spec, meta)
        if failure:
            return failure

        try:
            self.engine.ensure_user(meta, spec, creds, cancel)
        except ResourceConflict as e:
            return Outcome.conflict(e)
        except OrchestrDBError as e:
            return Outcome.convergence_error(e)
        return Outcome.succeeded()
