"""
Process entry point: logging, wiring and signal handling
"""

import argparse
import logging
import signal
import sys

from .config import Config, GREEN, RESET
from .controllers import DatabaseController, UserController
from .crds import render_crds
from .credentials import CredentialResolver
from .databases import DatabaseEngine
from .leader import LeaseLock
from .manager import Manager
from .metrics import Metrics, serve_metrics
from .outcomes import StatusReporter
from .postgres import PostgresExecutor
from .registry import build_registry
from .store import KubernetesStore
from .users import UserEngine

logger = logging.getLogger("orchestrdb")


def setup_logging(level: str = None):
    """Configure structured logging"""
    logging.basicConfig(
        level=getattr(logging, level or Config.LOG_LEVEL, logging.INFO),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


def build_manager(registry, store=None, executor=None, metrics=None, elector=None) -> Manager:
    """Wire the store, engines and controllers into a Manager"""
    store = store or KubernetesStore(registry)
    executor = executor or PostgresExecutor()
    resolver = CredentialResolver(store)
    reporter = StatusReporter(store)

    controllers = {
        "Database": DatabaseController(store, resolver, reporter, DatabaseEngine(executor)),
        "User": UserController(store, resolver, reporter, UserEngine(store, executor)),
    }
    return Manager(store, controllers, metrics=metrics, namespace=Config.WATCH_NAMESPACE,
                   elector=elector)


def main(argv=None):
    """Main entry point"""
    parser = argparse.ArgumentParser(prog="orchestrdb",
                                     description="PostgreSQL database and user controller")
    parser.add_argument("command", nargs="?", default="run", choices=["run", "crds"],
                        help="run the controller (default) or print the CRD manifests")
    parser.add_argument("--leader-elect", action="store_true", default=Config.LEADER_ELECT,
                        help="only run passes while holding the leader Lease")
    args = parser.parse_args(argv)

    registry = build_registry(Config.API_GROUP, Config.API_VERSION)
    if args.command == "crds":
        sys.stdout.write(render_crds(registry))
        return 0

    setup_logging()
    try:
        metrics = Metrics()
        serve_metrics(metrics, Config.METRICS_PORT)
        store = KubernetesStore(registry)
        elector = LeaseLock() if args.leader_elect else None
        manager = build_manager(registry, store=store, metrics=metrics, elector=elector)
        signal.signal(signal.SIGTERM, lambda signum, frame: manager.stop())
        logger.info(f"{GREEN}orchestrdb controller initialized{RESET}")
        manager.run_forever()
        if manager.lost_lease:
            return 1
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down gracefully...")
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
