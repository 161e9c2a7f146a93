"""GCP Certificate Manager destination.

A sync touches three resources in a fixed order:

1. a self-managed certificate whose name is derived from the certificate
   bytes, so identical input always maps to the same resource;
2. the certificate map entry, pointed at that certificate only;
3. certificates the entry referenced before, deleted once unbound.

Every long-running operation is waited on before the next call is made.
A sync that fails half way leaves a state the next sync picks up from:
the certificate already exists, so it resumes at the map entry.
"""
import concurrent.futures
import hashlib
import logging
from typing import List

from google.api_core import exceptions as gcp_exceptions
from google.cloud import certificate_manager_v1
from google.protobuf import field_mask_pb2

from .constants import MANAGED_BY_LABEL, MANAGED_BY_VALUE
from .models import SyncError

logger = logging.getLogger(__name__)

# Errors a call or an operation wait can surface
BACKEND_ERRORS = (
    gcp_exceptions.GoogleAPICallError,
    gcp_exceptions.RetryError,
    concurrent.futures.TimeoutError,
)


def certificate_name(prefix: str, cert: bytes) -> str:
    """Content-addressed certificate id: prefix + first 4 bytes of SHA-256, hex."""
    return f"{prefix}{hashlib.sha256(cert).digest()[:4].hex()}"


class CertificateManagerSyncer:
    """Binds a certificate map entry to a certificate built from the credential."""

    def __init__(self, client: certificate_manager_v1.CertificateManagerClient, host_name: str,
                 project_id: str, location: str, certificate_name_prefix: str,
                 certificate_map_name: str, certificate_map_entry_name: str):
        self.client = client
        self.host_name = host_name
        self.project_id = project_id
        self.location = location
        self.certificate_name_prefix = certificate_name_prefix
        self.certificate_map_name = certificate_map_name
        self.certificate_map_entry_name = certificate_map_entry_name

    @property
    def _parent(self) -> str:
        return f"projects/{self.project_id}/locations/{self.location}"

    @property
    def _map_path(self) -> str:
        return f"{self._parent}/certificateMaps/{self.certificate_map_name}"

    @property
    def _map_entry_path(self) -> str:
        return f"{self._map_path}/certificateMapEntries/{self.certificate_map_entry_name}"

    def _certificate_path(self, name: str) -> str:
        return f"{self._parent}/certificates/{name}"

    def _ensure_certificate(self, name: str, cert: bytes, key: bytes) -> None:
        try:
            self.client.get_certificate(name=self._certificate_path(name))
            return
        except gcp_exceptions.NotFound:
            pass
        except BACKEND_ERRORS as e:
            raise SyncError("get certificate", e) from e

        try:
            pem_certificate = cert.decode("utf-8")
            pem_private_key = key.decode("utf-8")
        except UnicodeDecodeError as e:
            raise SyncError("encode certificate", e) from e

        logger.info(f"Start creating certificate \"{name}\"")
        certificate = certificate_manager_v1.Certificate(
            labels={MANAGED_BY_LABEL: MANAGED_BY_VALUE},
            self_managed=certificate_manager_v1.Certificate.SelfManagedCertificate(
                pem_certificate=pem_certificate,
                pem_private_key=pem_private_key,
            ),
        )
        try:
            operation = self.client.create_certificate(
                parent=self._parent, certificate=certificate, certificate_id=name,
            )
        except BACKEND_ERRORS as e:
            raise SyncError("create certificate", e) from e
        try:
            operation.result()
        except BACKEND_ERRORS as e:
            raise SyncError("wait for certificate creation", e) from e
        logger.info(f"Complete creating certificate \"{name}\"")

    def _create_map_entry(self, certificate_path: str) -> None:
        logger.info(f"Start creating certificate map entry \"{self.certificate_map_entry_name}\"")
        entry = certificate_manager_v1.CertificateMapEntry(
            labels={MANAGED_BY_LABEL: MANAGED_BY_VALUE},
            certificates=[certificate_path],
            hostname=self.host_name,
        )
        try:
            operation = self.client.create_certificate_map_entry(
                parent=self._map_path,
                certificate_map_entry=entry,
                certificate_map_entry_id=self.certificate_map_entry_name,
            )
        except BACKEND_ERRORS as e:
            raise SyncError("create certificate map entry", e) from e
        try:
            operation.result()
        except BACKEND_ERRORS as e:
            raise SyncError("wait for certificate map entry creation", e) from e
        logger.info(f"Complete creating certificate map entry \"{self.certificate_map_entry_name}\"")

    def _bind_map_entry(self, certificate_path: str) -> List[str]:
        """Point the map entry at certificate_path; return the references it dropped."""
        try:
            entry = self.client.get_certificate_map_entry(name=self._map_entry_path)
        except gcp_exceptions.NotFound:
            self._create_map_entry(certificate_path)
            return []
        except BACKEND_ERRORS as e:
            raise SyncError("get certificate map entry", e) from e

        previous = list(entry.certificates)
        if previous == [certificate_path]:
            return []

        logger.info(f"Start updating certificate map entry \"{self.certificate_map_entry_name}\"")
        entry.certificates = [certificate_path]
        try:
            operation = self.client.update_certificate_map_entry(
                certificate_map_entry=entry,
                update_mask=field_mask_pb2.FieldMask(paths=["certificates"]),
            )
        except BACKEND_ERRORS as e:
            raise SyncError("update certificate map entry", e) from e
        try:
            operation.result()
        except BACKEND_ERRORS as e:
            raise SyncError("wait for certificate map entry update", e) from e
        logger.info(f"Complete updating certificate map entry \"{self.certificate_map_entry_name}\"")

        return [path for path in previous if path != certificate_path]

    def _delete_certificate(self, path: str) -> None:
        try:
            certificate = self.client.get_certificate(name=path)
        except gcp_exceptions.NotFound:
            logger.debug(f"Certificate \"{path}\" already gone")
            return
        except BACKEND_ERRORS as e:
            raise SyncError("get certificate", e) from e

        if certificate.labels.get(MANAGED_BY_LABEL) != MANAGED_BY_VALUE:
            logger.warning(f"Keep unmanaged certificate \"{path}\"")
            return

        logger.info(f"Start deleting certificate \"{path}\"")
        try:
            operation = self.client.delete_certificate(name=path)
        except BACKEND_ERRORS as e:
            raise SyncError("delete certificate", e) from e
        try:
            operation.result()
        except BACKEND_ERRORS as e:
            raise SyncError("wait for certificate deletion", e) from e
        logger.info(f"Complete deleting certificate \"{path}\"")

    def sync(self, cert: bytes, key: bytes) -> None:
        name = certificate_name(self.certificate_name_prefix, cert)
        self._ensure_certificate(name, cert, key)

        # Unbind before delete: orphans are removed only after the entry update settled
        for orphan in self._bind_map_entry(self._certificate_path(name)):
            self._delete_certificate(orphan)
