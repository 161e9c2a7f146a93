"""Backend client construction."""
import os
import logging
from typing import Optional

from google.cloud import certificate_manager_v1
from google.cloud import secretmanager
from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.config.config_exception import ConfigException

logger = logging.getLogger(__name__)


class BackendClients:
    """Holds one lazily-built client per backend kind.

    Built once at startup and handed to every adapter that needs a client,
    so repeated sync targets of the same kind share a connection.
    """

    def __init__(self, service_account_path: Optional[str] = None):
        self.service_account_path = service_account_path
        self._kubernetes = None
        self._secret_manager = None
        self._certificate_manager = None

    def _apply_credentials(self) -> None:
        """Point the Google auth library at the configured service account."""
        if self.service_account_path:
            os.environ['GOOGLE_APPLICATION_CREDENTIALS'] = self.service_account_path
            logger.info(f"Set GOOGLE_APPLICATION_CREDENTIALS from config: {self.service_account_path}")

    @property
    def kubernetes(self) -> k8s_client.CoreV1Api:
        """
        Lazy-initialize the Kubernetes CoreV1 API.

        In-cluster service account config is tried first, then the default
        kubeconfig loading rules.
        """
        if self._kubernetes is None:
            try:
                k8s_config.load_incluster_config()
                logger.debug("Using in-cluster Kubernetes config")
            except ConfigException:
                k8s_config.load_kube_config()
                logger.debug("Using kubeconfig")
            self._kubernetes = k8s_client.CoreV1Api()
        return self._kubernetes

    @property
    def secret_manager(self) -> secretmanager.SecretManagerServiceClient:
        """Lazy-initialize Secret Manager client."""
        if self._secret_manager is None:
            self._apply_credentials()
            self._secret_manager = secretmanager.SecretManagerServiceClient()
        return self._secret_manager

    @property
    def certificate_manager(self) -> certificate_manager_v1.CertificateManagerClient:
        """Lazy-initialize Certificate Manager client."""
        if self._certificate_manager is None:
            self._apply_credentials()
            self._certificate_manager = certificate_manager_v1.CertificateManagerClient()
        return self._certificate_manager
