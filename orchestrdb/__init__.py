"""
orchestrdb - declarative PostgreSQL databases and users for Kubernetes

Database and User custom resources are converged against a PostgreSQL
server; the outcome of every pass is written to the resource status.
"""

__version__ = "0.1.0"
