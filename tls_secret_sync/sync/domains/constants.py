"""Constants shared by every backend adapter."""

# Kubernetes annotation key: on a namespace it lists opted-in secret names,
# on a secret its value must equal the secret name.
ANNOTATION_KEY = "tls-secrets-sync.argentumcode.co.jp"

# GCP resource label marking objects created by this tool
MANAGED_BY_LABEL = "managed-by"
MANAGED_BY_VALUE = "tls-secrets-sync"

TLS_CERT_KEY = "tls.crt"
TLS_PRIVATE_KEY_KEY = "tls.key"
TLS_SECRET_TYPE = "kubernetes.io/tls"

POLL_INTERVAL_SECONDS = 60 * 60

DEFAULT_METRICS_LISTEN = ":9090"
DEFAULT_CERTIFICATE_MANAGER_LOCATION = "global"

SOURCE_TYPES = ("kubernetes", "secret-manager")
SYNC_TYPES = ("kubernetes", "secret-manager", "certificate-manager")
