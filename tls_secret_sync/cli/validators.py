"""Input validation for CLI arguments."""
import re
import sys

# DNS-1123 subdomain, as required for Kubernetes object names
KUBERNETES_NAME_PATTERN = r'^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$'
SECRET_MANAGER_NAME_PATTERN = r'^[a-zA-Z0-9_-]+$'


def validate_secret_manager_name(name: str, flag: str) -> None:
    """
    Validate secret name matches GCP Secret Manager requirements.

    GCP Secret Manager allows only: [a-zA-Z0-9_-]

    Args:
        name: Secret name to validate
        flag: Flag the value came from, for the error message

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not re.match(SECRET_MANAGER_NAME_PATTERN, name):
        print(f"Error: Invalid secret name '{name}' for --{flag}", file=sys.stderr)
        print("\nAllowed characters: letters, numbers, underscores (_), hyphens (-)", file=sys.stderr)
        sys.exit(2)


def validate_kubernetes_name(name: str, flag: str) -> None:
    """
    Validate a Kubernetes secret or namespace name (DNS-1123 subdomain).

    Raises:
        SystemExit with code 2 if validation fails
    """
    if len(name) > 253 or not re.match(KUBERNETES_NAME_PATTERN, name):
        print(f"Error: Invalid Kubernetes name '{name}' for --{flag}", file=sys.stderr)
        print("\nNames must be lowercase alphanumerics, '-' or '.', starting and ending "
              "with an alphanumeric, at most 253 characters.", file=sys.stderr)
        sys.exit(2)


def validate_names(settings) -> None:
    """Validate every resource name present in the settings."""
    for flag, value in (("source-namespace", settings.source_namespace),
                        ("secret-name", settings.secret_name)):
        if value:
            validate_kubernetes_name(value, flag)
    for flag, value in (("cert-secret", settings.cert_secret),
                        ("key-secret", settings.key_secret)):
        if value:
            validate_secret_manager_name(value, flag)
