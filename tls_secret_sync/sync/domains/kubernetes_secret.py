"""Kubernetes TLS secret source and destination."""
import base64
import logging
from typing import Dict, Optional

import urllib3
from kubernetes import client as k8s_client
from kubernetes.client.exceptions import ApiException

from .constants import ANNOTATION_KEY, TLS_CERT_KEY, TLS_PRIVATE_KEY_KEY, TLS_SECRET_TYPE
from .models import Credential, SyncError

logger = logging.getLogger(__name__)

# Transport failures reach callers as urllib3 errors, not ApiException
API_ERRORS = (ApiException, urllib3.exceptions.HTTPError)


def _is_not_found(error: Exception) -> bool:
    return isinstance(error, ApiException) and error.status == 404


def _encode(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def _decode(data: Optional[Dict[str, str]], field: str) -> Optional[bytes]:
    # The API client carries secret data base64-encoded
    if not data or data.get(field) is None:
        return None
    return base64.b64decode(data[field])


def is_opted_in(annotations: Optional[Dict[str, str]], secret_name: str) -> bool:
    """
    Check whether a namespace asks for the secret.

    Args:
        annotations: Namespace annotations (may be None)
        secret_name: Name of the synchronised secret

    Returns:
        True if secret_name is one of the comma-separated values of the
        namespace's ANNOTATION_KEY annotation
    """
    value = (annotations or {}).get(ANNOTATION_KEY, "")
    return secret_name in value.split(",")


def is_managed(secret: k8s_client.V1Secret, secret_name: str) -> bool:
    """True if the secret carries our annotation with the expected value."""
    annotations = secret.metadata.annotations or {}
    return annotations.get(ANNOTATION_KEY) == secret_name


class KubernetesSyncer:
    """Mirrors the credential into every opted-in namespace."""

    def __init__(self, api: k8s_client.CoreV1Api, secret_name: str):
        self.api = api
        self.secret_name = secret_name

    def _build_secret(self, cert: bytes, key: bytes) -> k8s_client.V1Secret:
        return k8s_client.V1Secret(
            metadata=k8s_client.V1ObjectMeta(
                name=self.secret_name,
                annotations={ANNOTATION_KEY: self.secret_name},
            ),
            type=TLS_SECRET_TYPE,
            data={
                TLS_CERT_KEY: _encode(cert),
                TLS_PRIVATE_KEY_KEY: _encode(key),
            },
        )

    def _reconcile_namespace(self, namespace: k8s_client.V1Namespace, cert: bytes, key: bytes) -> None:
        ns_name = namespace.metadata.name
        wanted = is_opted_in(namespace.metadata.annotations, self.secret_name)

        try:
            secret = self.api.read_namespaced_secret(self.secret_name, ns_name)
        except API_ERRORS as e:
            if not _is_not_found(e):
                raise SyncError(f"read secret {ns_name}/{self.secret_name}", e) from e
            secret = None

        if secret is None:
            if not wanted:
                return
            logger.info(f"create secret for namespace={ns_name},name={self.secret_name}")
            try:
                self.api.create_namespaced_secret(ns_name, self._build_secret(cert, key))
            except API_ERRORS as e:
                raise SyncError(f"create secret {ns_name}/{self.secret_name}", e) from e
            return

        if not is_managed(secret, self.secret_name):
            logger.debug(f"skip unmanaged secret namespace={ns_name},name={self.secret_name}")
            return

        if not wanted:
            logger.info(f"remove secret for namespace={ns_name},name={self.secret_name}")
            try:
                self.api.delete_namespaced_secret(self.secret_name, ns_name)
            except API_ERRORS as e:
                raise SyncError(f"delete secret {ns_name}/{self.secret_name}", e) from e
            return

        if (_decode(secret.data, TLS_PRIVATE_KEY_KEY) == key
                and _decode(secret.data, TLS_CERT_KEY) == cert):
            return

        logger.info(f"update secret for namespace={ns_name},name={self.secret_name}")
        data = dict(secret.data or {})
        data[TLS_CERT_KEY] = _encode(cert)
        data[TLS_PRIVATE_KEY_KEY] = _encode(key)
        secret.data = data
        try:
            self.api.replace_namespaced_secret(self.secret_name, ns_name, secret)
        except API_ERRORS as e:
            raise SyncError(f"update secret {ns_name}/{self.secret_name}", e) from e

    def sync(self, cert: bytes, key: bytes) -> None:
        try:
            namespaces = self.api.list_namespace()
        except API_ERRORS as e:
            raise SyncError("list namespaces", e) from e

        for namespace in namespaces.items:
            self._reconcile_namespace(namespace, cert, key)


class KubernetesFetcher:
    """Reads the credential from one secret in a fixed namespace."""

    def __init__(self, api: k8s_client.CoreV1Api, namespace: str, secret_name: str):
        self.api = api
        self.namespace = namespace
        self.secret_name = secret_name

    def fetch(self) -> Credential:
        """
        Read tls.crt and tls.key from the source secret.

        Raises:
            SyncError: If the secret cannot be read or lacks either field
        """
        try:
            secret = self.api.read_namespaced_secret(self.secret_name, self.namespace)
        except API_ERRORS as e:
            raise SyncError(f"read secret {self.namespace}/{self.secret_name}", e) from e

        cert = _decode(secret.data, TLS_CERT_KEY)
        key = _decode(secret.data, TLS_PRIVATE_KEY_KEY)
        if cert is None or key is None:
            missing = TLS_CERT_KEY if cert is None else TLS_PRIVATE_KEY_KEY
            raise SyncError(
                f"read secret {self.namespace}/{self.secret_name}",
                KeyError(f"field {missing} is missing"),
            )
        return Credential(cert=cert, key=key)
