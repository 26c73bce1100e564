"""
Kubernetes-backed resource store

Reads and status writes for the Database/User custom resources, plus the
Secret operations used for admin credentials and generated user credentials.
"""

import base64
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from .config import Config
from .errors import ResourceConflict, ResourceNotFound, StatusWriteError, StoreError
from .registry import ResourceRegistry

logger = logging.getLogger("orchestrdb.store")

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"


class KubernetesStore:
    """Handles all Kubernetes API interactions"""

    def __init__(self, registry: ResourceRegistry, core_api=None, custom_api=None):
        if core_api is None or custom_api is None:
            try:
                config.load_incluster_config()
            except config.ConfigException:
                logger.warning("Failed to load in-cluster config, trying local kubeconfig")
                config.load_kube_config()

        self.registry = registry
        self.v1 = core_api or client.CoreV1Api()
        self.custom = custom_api or client.CustomObjectsApi()

    def _read(self, kind: str, name: str, namespace: str, call: Callable[[], Any],
              retry_count: int = 0) -> Any:
        """
        Run a read call with exponential backoff retry logic

        Args:
            kind: Object kind, for error messages
            name: Object name, for error messages
            namespace: Kubernetes namespace
            call: Zero-argument callable performing the request
            retry_count: Current retry attempt

        Returns:
            Whatever the call returned
        """
        try:
            return call()
        except ApiException as e:
            if e.status == 404:
                raise ResourceNotFound(kind, name, namespace) from e
            elif retry_count < Config.MAX_RETRIES:
                sleep_time = Config.RETRY_BACKOFF_BASE ** retry_count
                logger.warning(f"Error reading {kind} {namespace}/{name} "
                               f"(attempt {retry_count + 1}/{Config.MAX_RETRIES}), "
                               f"retrying in {sleep_time}s: {e.reason}")
                time.sleep(sleep_time)
                return self._read(kind, name, namespace, call, retry_count + 1)
            else:
                logger.error(f"Failed to read {kind} {namespace}/{name} "
                             f"after {Config.MAX_RETRIES} retries: {e.reason}")
                raise StoreError(f"failed to read {kind} {namespace}/{name}: "
                                 f"{e.status} {e.reason}") from e

    def get(self, kind: str, name: str, namespace: str) -> Dict[str, Any]:
        rk = self.registry.get(kind)
        return self._read(kind, name, namespace, lambda: self.custom.get_namespaced_custom_object(
            rk.group, rk.version, namespace, rk.plural, name
        ))

    def list(self, kind: str, namespace: Optional[str] = None) -> List[Dict[str, Any]]:
        rk = self.registry.get(kind)
        if namespace:
            result = self._read(kind, "*", namespace, lambda: self.custom.list_namespaced_custom_object(
                rk.group, rk.version, namespace, rk.plural
            ))
        else:
            result = self._read(kind, "*", "*", lambda: self.custom.list_cluster_custom_object(
                rk.group, rk.version, rk.plural
            ))
        return result.get("items", [])

    def get_secret(self, name: str, namespace: str) -> Dict[str, bytes]:
        """
        Read a Secret and base64-decode its data

        Returns:
            Mapping of key to raw bytes; callers decode the keys they use
        """
        secret = self._read("Secret", name, namespace,
                            lambda: self.v1.read_namespaced_secret(name, namespace))
        return {
            key: base64.b64decode(value)
            for key, value in (secret.data or {}).items()
        }

    def secret_exists(self, name: str, namespace: str) -> bool:
        try:
            self._read("Secret", name, namespace,
                       lambda: self.v1.read_namespaced_secret(name, namespace))
        except ResourceNotFound:
            return False
        return True

    def create_secret(self, name: str, namespace: str, string_data: Dict[str, str]):
        """
        Create an Opaque Secret. Never replaces an existing one.

        Raises:
            ResourceConflict: a Secret with that name already exists
            StoreError: any other API failure
        """
        body = client.V1Secret(
            metadata=client.V1ObjectMeta(
                name=name,
                namespace=namespace,
                labels={MANAGED_BY_LABEL: "orchestrdb"},
            ),
            type="Opaque",
            string_data=string_data,
        )
        try:
            self.v1.create_namespaced_secret(namespace=namespace, body=body)
        except ApiException as e:
            if e.status == 409:
                raise ResourceConflict(f'Secret "{name}" already exists in namespace "{namespace}"') from e
            raise StoreError(f'failed to create Secret "{name}": {e.status} {e.reason}') from e
        logger.info(f"Created secret {name} in namespace {namespace}")

    def update_status(self, kind: str, name: str, namespace: str, status: Dict[str, Any]):
        rk = self.registry.get(kind)
        try:
            self.custom.patch_namespaced_custom_object_status(
                rk.group, rk.version, namespace, rk.plural, name, {"status": status}
            )
        except ApiException as e:
            raise StatusWriteError(
                f"failed to update status of {kind} {namespace}/{name}: {e.status} {e.reason}"
            ) from e
