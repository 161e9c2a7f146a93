"""Shared pytest fixtures: in-memory stand-ins for the backend APIs.

Each fake keeps its state in plain dicts and records every mutating call in
``mutations`` so tests can assert that an idempotent sync made no changes.
"""
import base64
from types import SimpleNamespace
from unittest import mock

import pytest
from google.api_core import exceptions as gcp_exceptions
from google.cloud import certificate_manager_v1
from kubernetes import client as k8s_client
from kubernetes.client.exceptions import ApiException
from prometheus_client import CollectorRegistry

from tls_secret_sync.sync.domains.constants import ANNOTATION_KEY
from tls_secret_sync.sync.domains.metrics import SyncMetrics


def b64(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


class FakeCoreV1Api:
    """Namespaces and secrets held in memory."""

    def __init__(self):
        self.namespaces = {}
        self.secrets = {}
        self.mutations = []
        self.errors = {}
        self._next_uid = 1

    def add_namespace(self, name, opt_in=None):
        annotations = {ANNOTATION_KEY: opt_in} if opt_in is not None else None
        self.namespaces[name] = annotations

    def add_secret(self, namespace, name, cert, key, annotations=None, secret_type="kubernetes.io/tls"):
        secret = k8s_client.V1Secret(
            metadata=k8s_client.V1ObjectMeta(name=name, annotations=annotations),
            type=secret_type,
            data={"tls.crt": b64(cert), "tls.key": b64(key)},
        )
        self._store(namespace, secret)

    def get_data(self, namespace, name):
        secret = self.secrets[(namespace, name)]
        return {k: base64.b64decode(v) for k, v in secret.data.items()}

    def _store(self, namespace, secret):
        uid = secret.metadata.uid or f"uid-{self._next_uid}"
        self._next_uid += 1
        self.secrets[(namespace, secret.metadata.name)] = k8s_client.V1Secret(
            metadata=k8s_client.V1ObjectMeta(
                name=secret.metadata.name,
                namespace=namespace,
                uid=uid,
                annotations=dict(secret.metadata.annotations) if secret.metadata.annotations else None,
            ),
            type=secret.type,
            data=dict(secret.data or {}),
        )

    def _maybe_fail(self, operation):
        if operation in self.errors:
            raise self.errors[operation]

    def list_namespace(self):
        self._maybe_fail("list_namespace")
        return k8s_client.V1NamespaceList(items=[
            k8s_client.V1Namespace(metadata=k8s_client.V1ObjectMeta(name=name, annotations=annotations))
            for name, annotations in self.namespaces.items()
        ])

    def read_namespaced_secret(self, name, namespace):
        self._maybe_fail("read_namespaced_secret")
        if (namespace, name) not in self.secrets:
            raise ApiException(status=404, reason="Not Found")
        stored = self.secrets[(namespace, name)]
        copy = k8s_client.V1Secret(
            metadata=k8s_client.V1ObjectMeta(
                name=stored.metadata.name,
                namespace=namespace,
                uid=stored.metadata.uid,
                annotations=dict(stored.metadata.annotations) if stored.metadata.annotations else None,
            ),
            type=stored.type,
            data=dict(stored.data),
        )
        return copy

    def create_namespaced_secret(self, namespace, body):
        self._maybe_fail("create_namespaced_secret")
        if (namespace, body.metadata.name) in self.secrets:
            raise ApiException(status=409, reason="Conflict")
        self.mutations.append(("create", namespace, body.metadata.name))
        body.metadata.uid = None
        self._store(namespace, body)
        return body

    def replace_namespaced_secret(self, name, namespace, body):
        self._maybe_fail("replace_namespaced_secret")
        if (namespace, name) not in self.secrets:
            raise ApiException(status=404, reason="Not Found")
        self.mutations.append(("replace", namespace, name))
        self._store(namespace, body)
        return body

    def delete_namespaced_secret(self, name, namespace):
        self._maybe_fail("delete_namespaced_secret")
        if (namespace, name) not in self.secrets:
            raise ApiException(status=404, reason="Not Found")
        self.mutations.append(("delete", namespace, name))
        del self.secrets[(namespace, name)]


class FakeSecretManagerClient:
    """Secret versions kept as append-only lists keyed by secret path."""

    def __init__(self):
        self.versions = {}
        self.mutations = []
        self.errors = {}

    def add(self, project_id, secret_name, data):
        self.versions.setdefault(f"projects/{project_id}/secrets/{secret_name}", []).append(data)

    def latest(self, project_id, secret_name):
        return self.versions[f"projects/{project_id}/secrets/{secret_name}"][-1]

    def access_secret_version(self, request):
        name = request["name"]
        if name in self.errors:
            raise self.errors[name]
        parent = name.rsplit("/versions/", 1)[0]
        if not self.versions.get(parent):
            raise gcp_exceptions.NotFound(f"Secret [{parent}] not found")
        return SimpleNamespace(name=name, payload=SimpleNamespace(data=self.versions[parent][-1]))

    def add_secret_version(self, request):
        parent = request["parent"]
        if parent in self.errors:
            raise self.errors[parent]
        self.mutations.append(("add_version", parent))
        self.versions.setdefault(parent, []).append(request["payload"]["data"])
        return SimpleNamespace(name=f"{parent}/versions/{len(self.versions[parent])}")


class FakeOperation:
    def __init__(self, client, label, apply, error=None):
        self.client = client
        self.label = label
        self.apply = apply
        self.error = error

    def result(self):
        self.client.waits.append(self.label)
        if self.error is not None:
            raise self.error
        return self.apply()


class FakeCertificateManagerClient:
    """Certificates and certificate map entries keyed by full resource path."""

    def __init__(self):
        self.certificates = {}
        self.map_entries = {}
        self.mutations = []
        self.waits = []
        self.errors = {}

    def _maybe_fail(self, operation):
        if operation in self.errors:
            raise self.errors.pop(operation)

    def _operation(self, operation, label, apply):
        return FakeOperation(self, label, apply, self.errors.pop(f"wait:{operation}", None))

    def add_certificate(self, path, labels=None):
        self.certificates[path] = certificate_manager_v1.Certificate(name=path, labels=labels or {})

    def add_map_entry(self, path, certificates, hostname="old.example.com", labels=None):
        self.map_entries[path] = certificate_manager_v1.CertificateMapEntry(
            name=path, certificates=certificates, hostname=hostname, labels=labels or {},
        )

    def get_certificate(self, name):
        self._maybe_fail("get_certificate")
        if name not in self.certificates:
            raise gcp_exceptions.NotFound(f"Certificate {name} not found")
        return certificate_manager_v1.Certificate(self.certificates[name])

    def create_certificate(self, parent, certificate, certificate_id):
        self._maybe_fail("create_certificate")
        path = f"{parent}/certificates/{certificate_id}"
        self.mutations.append(("create_certificate", path))

        def apply():
            stored = certificate_manager_v1.Certificate(certificate)
            stored.name = path
            self.certificates[path] = stored
            return stored
        return self._operation("create_certificate", f"create {path}", apply)

    def delete_certificate(self, name):
        self._maybe_fail("delete_certificate")
        self.mutations.append(("delete_certificate", name))

        def apply():
            del self.certificates[name]
        return self._operation("delete_certificate", f"delete {name}", apply)

    def get_certificate_map_entry(self, name):
        self._maybe_fail("get_certificate_map_entry")
        if name not in self.map_entries:
            raise gcp_exceptions.NotFound(f"CertificateMapEntry {name} not found")
        return certificate_manager_v1.CertificateMapEntry(self.map_entries[name])

    def create_certificate_map_entry(self, parent, certificate_map_entry, certificate_map_entry_id):
        self._maybe_fail("create_certificate_map_entry")
        path = f"{parent}/certificateMapEntries/{certificate_map_entry_id}"
        self.mutations.append(("create_certificate_map_entry", path))

        def apply():
            stored = certificate_manager_v1.CertificateMapEntry(certificate_map_entry)
            stored.name = path
            self.map_entries[path] = stored
            return stored
        return self._operation("create_certificate_map_entry", f"create {path}", apply)

    def update_certificate_map_entry(self, certificate_map_entry, update_mask):
        self._maybe_fail("update_certificate_map_entry")
        path = certificate_map_entry.name
        self.mutations.append(("update_certificate_map_entry", path, tuple(update_mask.paths)))

        def apply():
            stored = self.map_entries[path]
            if "certificates" in update_mask.paths:
                stored.certificates = list(certificate_map_entry.certificates)
            return stored
        return self._operation("update_certificate_map_entry", f"update {path}", apply)


@pytest.fixture
def core_api():
    return FakeCoreV1Api()


@pytest.fixture
def secret_manager_client():
    return FakeSecretManagerClient()


@pytest.fixture
def certificate_manager_client():
    return FakeCertificateManagerClient()


@pytest.fixture
def metrics():
    return SyncMetrics(registry=CollectorRegistry())


@pytest.fixture
def backend_clients(core_api, secret_manager_client, certificate_manager_client):
    """A BackendClients stand-in handing out the fakes."""
    return mock.Mock(
        kubernetes=core_api,
        secret_manager=secret_manager_client,
        certificate_manager=certificate_manager_client,
    )
