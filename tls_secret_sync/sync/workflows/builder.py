"""Wire validated settings to concrete backend adapters."""
import logging
from typing import List

from ..domains.certificate_manager import CertificateManagerSyncer
from ..domains.clients import BackendClients
from ..domains.config_loader import ConfigError, Settings
from ..domains.kubernetes_secret import KubernetesFetcher, KubernetesSyncer
from ..domains.models import Fetcher, Syncer
from ..domains.secret_manager import SecretManagerFetcher, SecretManagerSyncer

logger = logging.getLogger(__name__)


def build_source(settings: Settings, clients: BackendClients) -> Fetcher:
    if settings.source_type == "kubernetes":
        logger.info(f"Source: kubernetes secret {settings.source_namespace}/{settings.secret_name}")
        return KubernetesFetcher(clients.kubernetes, settings.source_namespace, settings.secret_name)
    if settings.source_type == "secret-manager":
        logger.info(f"Source: secret-manager project {settings.secret_manager_project}")
        return SecretManagerFetcher(
            clients.secret_manager,
            settings.secret_manager_project,
            settings.cert_secret,
            settings.key_secret,
        )
    raise ConfigError(f"invalid value for source-type: {settings.source_type}")


def build_targets(settings: Settings, clients: BackendClients) -> List[Syncer]:
    """Build one syncer per configured sync type, keeping their order."""
    targets: List[Syncer] = []
    for sync_type in settings.sync_types:
        if sync_type == "kubernetes":
            targets.append(KubernetesSyncer(clients.kubernetes, settings.secret_name))
        elif sync_type == "secret-manager":
            targets.append(SecretManagerSyncer(
                clients.secret_manager,
                settings.secret_manager_project,
                settings.cert_secret,
                settings.key_secret,
            ))
        elif sync_type == "certificate-manager":
            targets.append(CertificateManagerSyncer(
                clients.certificate_manager,
                settings.certificate_manager_host_name,
                settings.certificate_manager_project,
                settings.certificate_manager_location,
                settings.certificate_manager_name_prefix,
                settings.certificate_manager_certificate_map,
                settings.certificate_manager_certificate_map_entry,
            ))
        else:
            raise ConfigError(f"invalid value for sync-type: {sync_type}")
        logger.info(f"Sync target: {sync_type}")
    return targets
