"""GCP Secret Manager source and destination."""
import logging

from google.api_core import exceptions as gcp_exceptions
from google.cloud import secretmanager

from .models import Credential, SyncError

logger = logging.getLogger(__name__)

BACKEND_ERRORS = (gcp_exceptions.GoogleAPICallError, gcp_exceptions.RetryError)


def _latest_version_name(project_id: str, secret_name: str) -> str:
    return f"projects/{project_id}/secrets/{secret_name}/versions/latest"


class SecretManagerFetcher:
    """Reads the certificate and key from two Secret Manager secrets."""

    def __init__(self, client: secretmanager.SecretManagerServiceClient, project_id: str,
                 cert_name: str, key_name: str):
        self.client = client
        self.project_id = project_id
        self.cert_name = cert_name
        self.key_name = key_name

    def _access(self, secret_name: str) -> bytes:
        try:
            name = _latest_version_name(self.project_id, secret_name)
            response = self.client.access_secret_version(request={"name": name})
        except BACKEND_ERRORS as e:
            raise SyncError(f"access secret {secret_name}", e) from e
        return response.payload.data

    def fetch(self) -> Credential:
        """
        Fetch the latest version of both secrets.

        Returns:
            Credential built from the cert and key payloads

        Raises:
            SyncError: If either secret cannot be read
        """
        cert = self._access(self.cert_name)
        key = self._access(self.key_name)
        return Credential(cert=cert, key=key)


class SecretManagerSyncer:
    """Appends a new secret version whenever the latest payload differs."""

    def __init__(self, client: secretmanager.SecretManagerServiceClient, project_id: str,
                 cert_name: str, key_name: str):
        self.client = client
        self.project_id = project_id
        self.cert_name = cert_name
        self.key_name = key_name

    def _reconcile_secret(self, secret_name: str, data: bytes) -> None:
        create_new_version = False
        try:
            response = self.client.access_secret_version(
                request={"name": _latest_version_name(self.project_id, secret_name)}
            )
        except gcp_exceptions.NotFound:
            create_new_version = True
        except BACKEND_ERRORS as e:
            raise SyncError(f"access secret {secret_name}", e) from e

        if not create_new_version and response.payload.data == data:
            logger.debug(f"Secret {secret_name} is up to date")
            return

        logger.info(f"add secret version to {secret_name}")
        try:
            self.client.add_secret_version(
                request={
                    "parent": f"projects/{self.project_id}/secrets/{secret_name}",
                    "payload": {"data": data},
                }
            )
        except BACKEND_ERRORS as e:
            raise SyncError(f"add secret version to {secret_name}", e) from e

    def sync(self, cert: bytes, key: bytes) -> None:
        self._reconcile_secret(self.cert_name, cert)
        self._reconcile_secret(self.key_name, key)
