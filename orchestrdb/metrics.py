"""
In-memory metrics with Prometheus text exposition
"""

import logging
import threading
import time
from collections import defaultdict
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional

logger = logging.getLogger("orchestrdb.metrics")


class Metrics:
    """Simple in-memory metrics for Prometheus exposition"""

    def __init__(self):
        self._lock = threading.Lock()
        self.passes = defaultdict(int)
        self.resources_managed = defaultdict(int)
        self.status_write_errors = 0
        self.unexpected_errors = 0
        self.last_reconciliation_timestamp = 0.0
        self.last_error_timestamp = 0.0

    def record_pass(self, kind: str, result: str):
        with self._lock:
            self.passes[(kind, result)] += 1
            self.last_reconciliation_timestamp = time.time()
            if result != "succeeded":
                self.last_error_timestamp = self.last_reconciliation_timestamp

    def record_status_write_error(self):
        with self._lock:
            self.status_write_errors += 1
            self.last_error_timestamp = time.time()

    def record_unexpected_error(self):
        with self._lock:
            self.unexpected_errors += 1
            self.last_error_timestamp = time.time()

    def set_managed(self, kind: str, count: int):
        with self._lock:
            self.resources_managed[kind] = count

    def export_prometheus(self) -> str:
        """Export metrics in Prometheus text format"""
        with self._lock:
            lines = [
                "# HELP orchestrdb_reconcile_passes_total Reconcile passes by kind and outcome",
                "# TYPE orchestrdb_reconcile_passes_total counter",
            ]
            for (kind, result), count in sorted(self.passes.items()):
                lines.append(f'orchestrdb_reconcile_passes_total{{kind="{kind}",result="{result}"}} {count}')

            lines += [
                "",
                "# HELP orchestrdb_resources_managed Resources seen in the last poll",
                "# TYPE orchestrdb_resources_managed gauge",
            ]
            for kind, count in sorted(self.resources_managed.items()):
                lines.append(f'orchestrdb_resources_managed{{kind="{kind}"}} {count}')

            lines += [
                "",
                "# HELP orchestrdb_status_write_errors_total Failed status writes",
                "# TYPE orchestrdb_status_write_errors_total counter",
                f"orchestrdb_status_write_errors_total {self.status_write_errors}",
                "",
                "# HELP orchestrdb_unexpected_errors_total Passes aborted by unexpected errors",
                "# TYPE orchestrdb_unexpected_errors_total counter",
                f"orchestrdb_unexpected_errors_total {self.unexpected_errors}",
                "",
                "# HELP orchestrdb_last_reconciliation_timestamp Timestamp of last finished pass",
                "# TYPE orchestrdb_last_reconciliation_timestamp gauge",
                f"orchestrdb_last_reconciliation_timestamp {self.last_reconciliation_timestamp}",
                "",
                "# HELP orchestrdb_last_error_timestamp Timestamp of last error",
                "# TYPE orchestrdb_last_error_timestamp gauge",
                f"orchestrdb_last_error_timestamp {self.last_error_timestamp}",
            ]
        return "\n".join(lines) + "\n"


def serve_metrics(metrics: Metrics, port: int) -> Optional[ThreadingHTTPServer]:
    """Serve /metrics on port from a daemon thread; port 0 disables it"""
    if not port:
        return None

    class Handler(BaseHTTPRequestHandler):
        def do_GET(self):
            if self.path != "/metrics":
                self.send_error(404)
                return
            body = metrics.export_prometheus().encode()
            self.send_response(200)
            self.send_header("Content-Type", "text/plain; version=0.0.4")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format, *args):
            logger.debug(format % args)

    server = ThreadingHTTPServer(("", port), Handler)
    threading.Thread(target=server.serve_forever, name="metrics", daemon=True).start()
    logger.info(f"Serving metrics on :{port}/metrics")
    return server
