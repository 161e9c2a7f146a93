"""CLI entrypoint for tls-secret-sync."""
import sys
import signal
import argparse
import logging
import threading
from pathlib import Path

from prometheus_client import CollectorRegistry

from tls_secret_sync.sync.domains import config_loader, preferences
from tls_secret_sync.sync.domains.clients import BackendClients
from tls_secret_sync.sync.domains.config_loader import (
    ConfigError,
    load_config,
    merge_settings,
    settings_from_config,
    validate_settings,
)
from tls_secret_sync.sync.domains.constants import SYNC_TYPES, SOURCE_TYPES
from tls_secret_sync.sync.domains.metrics import SyncMetrics
from tls_secret_sync.sync.workflows.builder import build_source, build_targets
from tls_secret_sync.sync.workflows.reconcile import ReconciliationLoop

from .validators import validate_names

VERSION = "0.1.0"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger(__name__)

# argparse dest -> Settings field
_FLAG_SETTINGS = {
    "source_type": "source_type",
    "source_namespace": "source_namespace",
    "secret_name": "secret_name",
    "secret_manager_gcp_project": "secret_manager_project",
    "cert_secret": "cert_secret",
    "key_secret": "key_secret",
    "sync_types": "sync_types",
    "certificate_manager_host_name": "certificate_manager_host_name",
    "certificate_manager_gcp_project": "certificate_manager_project",
    "certificate_manager_location": "certificate_manager_location",
    "certificate_manager_name_prefix": "certificate_manager_name_prefix",
    "certificate_manager_certificate_map": "certificate_manager_certificate_map",
    "certificate_manager_certificate_map_entry": "certificate_manager_certificate_map_entry",
    "metrics_listen": "metrics_listen",
}


def _load_settings(args):
    """
    Build validated settings from the config file and command line flags.

    Exits with code 2 on any configuration error.
    """
    try:
        config = load_config(args.config)
        settings = settings_from_config(config)
        overrides = {field: getattr(args, dest, None) for dest, field in _FLAG_SETTINGS.items()}
        settings = merge_settings(settings, overrides)
        validate_settings(settings)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    validate_names(settings)
    return settings


def _build_loop(settings, metrics):
    clients = BackendClients(settings.service_account_path)
    source = build_source(settings, clients)
    targets = build_targets(settings, clients)
    return ReconciliationLoop(source, targets, metrics)


def _install_signal_handlers(stop_event: threading.Event) -> None:
    def _handle_signal(signum, frame):
        logger.info(f"Received signal {signal.Signals(signum).name}, stopping")
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, _handle_signal)


def cmd_run(args):
    """Serve metrics and reconcile every poll interval until signalled."""
    settings = _load_settings(args)
    metrics = SyncMetrics()
    loop = _build_loop(settings, metrics)

    stop_event = threading.Event()
    _install_signal_handlers(stop_event)
    metrics.serve(settings.metrics_listen)

    loop.run(stop_event)


def cmd_once(args):
    """Run a single reconciliation pass and exit with its result."""
    settings = _load_settings(args)
    loop = _build_loop(settings, SyncMetrics(registry=CollectorRegistry()))
    sys.exit(0 if loop.run_once() else 1)


def cmd_version(args):
    """Show version information."""
    print(f"tls-secret-sync {VERSION}")


def cmd_config_set_path(args):
    """Set config file path preference."""
    config_path = Path(args.path).resolve()

    if not config_path.exists():
        print(f"Error: Config file does not exist: {config_path}", file=sys.stderr)
        sys.exit(1)

    if not config_path.is_file():
        print(f"Error: Path is not a file: {config_path}", file=sys.stderr)
        sys.exit(1)

    preferences.set_config_path(str(config_path))
    print(f"Config path set to: {config_path}")


def cmd_config_show(args):
    """Show current config file path."""
    config_path_pref = preferences.get_config_path()

    if config_path_pref:
        suffix = "" if Path(config_path_pref).exists() else " (file not found)"
        print(f"Config path: {config_path_pref}{suffix}")
        print("Source: preference")
    else:
        suffix = "" if config_loader.DEFAULT_CONFIG_PATH.exists() else " (file not found)"
        print(f"Config path: {config_loader.DEFAULT_CONFIG_PATH}{suffix}")
        print("Source: default")


def cmd_config_clear(args):
    """Clear config path preference."""
    preferences.clear_config_path()
    print(f"Config path preference cleared. Will use default: {config_loader.DEFAULT_CONFIG_PATH}")


def _add_sync_arguments(parser):
    parser.add_argument("--config", help="Path to YAML config file (overrides the stored preference)")
    parser.add_argument("--source-type", choices=SOURCE_TYPES, help="Where to read the certificate from")
    parser.add_argument("--source-namespace", help="Namespace to get tls secret")
    parser.add_argument("--secret-name", help="Kubernetes secret name to sync")
    parser.add_argument("--secret-manager-gcp-project", help="GCP project for secret-manager")
    parser.add_argument("--cert-secret", help="Cert secret name for secret-manager")
    parser.add_argument("--key-secret", help="Key secret name for secret-manager")
    parser.add_argument(
        "--sync-types",
        action="append",
        choices=SYNC_TYPES,
        help="Destination to keep in sync; repeat for several (order is kept)",
    )
    parser.add_argument("--certificate-manager-host-name",
                        help="Host name for certificate-manager, e.g. *.example.com")
    parser.add_argument("--certificate-manager-gcp-project", help="GCP project for certificate-manager")
    parser.add_argument("--certificate-manager-location",
                        help="Location for certificate-manager (default: global)")
    parser.add_argument("--certificate-manager-name-prefix",
                        help="Certificate name prefix for certificate-manager")
    parser.add_argument("--certificate-manager-certificate-map",
                        help="Certificate map name for certificate-manager")
    parser.add_argument("--certificate-manager-certificate-map-entry",
                        help="Certificate map entry name for certificate-manager")
    parser.add_argument("--metrics-listen", help="Listen address:port for metrics server (default: :9090)")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="tls-secret-sync",
        description="Keep a TLS certificate in sync across Kubernetes, Secret Manager and Certificate Manager",
        epilog="""
Exit codes:
  0 - Success
  1 - Runtime error (backend failure, failed sync pass)
  2 - Usage error (missing or invalid flags, invalid config file)

Configuration:
  Default location: ~/.config/tls-secret-sync/config.yml
  Custom path: --config <path> or 'tls-secret-sync config set-path <path>'
  Command line flags override config file values.
        """
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser(
        "run",
        help="Reconcile every 60 minutes until stopped",
        description="Serve metrics and reconcile the certificate every 60 minutes until SIGTERM/SIGINT",
    )
    _add_sync_arguments(run_parser)

    once_parser = subparsers.add_parser(
        "once",
        help="Run a single reconciliation pass",
        description="Fetch the certificate once, sync every target and exit 0 on success, 1 on failure",
    )
    _add_sync_arguments(once_parser)

    subparsers.add_parser("version", help="Show version information")

    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="Manage the stored config file path",
    )
    config_subparsers = config_parser.add_subparsers(dest="config_command")
    config_set_path_parser = config_subparsers.add_parser("set-path", help="Set config file path")
    config_set_path_parser.add_argument("path", help="Path to config file")
    config_subparsers.add_parser("show", help="Show current config path")
    config_subparsers.add_parser("clear", help="Clear config path preference")

    return parser, config_parser


def main(argv=None):
    """Main CLI entrypoint.

    Exit codes:
        0 - Success
        1 - Runtime errors
        2 - Usage errors
    """
    parser, config_parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level, format=LOG_FORMAT, stream=sys.stderr)

    if not args.command:
        parser.print_help()
        sys.exit(2)

    try:
        if args.command == "run":
            cmd_run(args)
        elif args.command == "once":
            cmd_once(args)
        elif args.command == "version":
            cmd_version(args)
        elif args.command == "config":
            if args.config_command == "set-path":
                cmd_config_set_path(args)
            elif args.config_command == "show":
                cmd_config_show(args)
            elif args.config_command == "clear":
                cmd_config_clear(args)
            else:
                config_parser.print_help()
                sys.exit(2)
        else:
            parser.print_help()
            sys.exit(2)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
