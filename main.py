#!/usr/bin/env python3
"""
Main entry point for the Toolchain Provisioner.

Exit codes:
    0  success
    1  unexpected error, or no install recorded (status)
    2  usage or configuration error
    3  version resolution failed
    4  download failed
    5  replacing the install directory failed
    6  extraction failed
    7  ownership transfer failed
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, List

from dotenv import load_dotenv
from pydantic import ValidationError

# Load environment variables from .env file
load_dotenv()

from provisioner.core.errors import ConfigurationError, ProvisioningError
from provisioner.core.provisioner import ToolchainProvisioner
from provisioner.core.report_store import ReportStore
from provisioner.core.version_resolver import VersionResolver
from provisioner.integrations.http_client import HttpClient
from provisioner.models.tool import Platform
from provisioner.utils.logging import setup_root_logger
from config.settings import Settings


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Resolve, download and install a language toolchain"
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Path to configuration file (JSON format)"
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-file",
        type=Path,
        help="Also write logs to this file (rotated)"
    )

    parser.add_argument(
        "--reports-dir",
        type=Path,
        help="Directory for JSON install receipts"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    provision = subparsers.add_parser("provision", help="Install a toolchain")
    provision.add_argument("tool", help="Tool name from the catalogue (e.g. go)")
    provision.add_argument("--version", dest="pin", help="Install this version instead of the latest")
    provision.add_argument("--install-path", type=Path, help="Override the install path")
    provision.add_argument("--os", dest="target_os", help="Target OS (default: this host)")
    provision.add_argument("--arch", dest="target_arch", help="Target architecture (default: this host)")
    provision.add_argument("--user", help="Owner of the installed files (name or uid)")
    provision.add_argument("--group", help="Group of the installed files (name or gid)")
    provision.add_argument("--resolve-timeout", type=float, help="Version query timeout in seconds")
    provision.add_argument("--download-timeout", type=float, help="Download timeout in seconds")

    resolve = subparsers.add_parser("resolve", help="Print the version that would be installed")
    resolve.add_argument("tool", help="Tool name from the catalogue")
    resolve.add_argument("--version", dest="pin", help="Validate a pinned version instead")
    resolve.add_argument("--resolve-timeout", type=float, help="Version query timeout in seconds")

    subparsers.add_parser("list", help="List configured tools")

    status = subparsers.add_parser("status", help="Show the last recorded install of a tool")
    status.add_argument("tool", help="Tool name from the catalogue")

    return parser.parse_args(argv)


def load_config(args) -> Settings:
    """Load configuration from file, environment and command line."""
    config_data = {}
    if args.config:
        if not args.config.exists():
            raise ConfigurationError(f"Config file not found: {args.config}")
        with open(args.config) as f:
            try:
                config_data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Invalid JSON in {args.config}: {e}") from e

    # Override with command line args
    if args.log_level:
        config_data.setdefault("logging", {})["level"] = args.log_level
    if args.log_file:
        config_data.setdefault("logging", {})["file_path"] = str(args.log_file)
    if args.reports_dir:
        config_data.setdefault("reports", {})["base_path"] = str(args.reports_dir)
    if getattr(args, "user", None):
        config_data.setdefault("ownership", {})["user"] = args.user
    if getattr(args, "group", None):
        config_data.setdefault("ownership", {})["group"] = args.group
    if getattr(args, "resolve_timeout", None):
        config_data.setdefault("timeouts", {})["resolve_seconds"] = args.resolve_timeout
    if getattr(args, "download_timeout", None):
        config_data.setdefault("timeouts", {})["download_seconds"] = args.download_timeout

    return Settings(**config_data)


def build_platform(args) -> Platform:
    """Target platform from flags, defaulting to the running host."""
    detected = Platform.detect()
    return Platform(
        os=args.target_os or detected.os,
        arch=args.target_arch or detected.arch
    )


def run_provision(args, settings: Settings) -> int:
    install_path = args.install_path.absolute() if args.install_path else None
    spec = settings.get_tool(args.tool, version=args.pin, install_path=install_path)

    report_store = None
    if settings.reports.base_path:
        report_store = ReportStore(
            base_path=settings.reports.base_path,
            keep_failed_attempts=settings.reports.keep_failed_attempts
        )

    provisioner = ToolchainProvisioner(
        http_client=HttpClient(),
        owner=settings.ownership.to_owner_spec(),
        resolve_timeout=settings.timeouts.resolve_seconds,
        download_timeout=settings.timeouts.download_seconds,
        download_dir=settings.download_dir,
        report_store=report_store
    )

    result = provisioner.provision(spec, build_platform(args))
    print(json.dumps(result.summary(), indent=2, default=str))
    return 0


def run_resolve(args, settings: Settings) -> int:
    spec = settings.get_tool(args.tool, version=args.pin)
    resolver = VersionResolver(HttpClient(), timeout=settings.timeouts.resolve_seconds)
    print(resolver.resolve(spec).normalized)
    return 0


def run_list(args, settings: Settings) -> int:
    for name in sorted(settings.tools):
        spec = settings.tools[name]
        print(f"{name}\t{spec.version_query.describe()}\t{spec.install_path}")
    return 0


def run_status(args, settings: Settings) -> int:
    if not settings.reports.base_path:
        raise ConfigurationError("status needs a reports directory (--reports-dir)")
    settings.get_tool(args.tool)

    receipt = ReportStore(base_path=settings.reports.base_path).latest_result(args.tool)
    if receipt is None:
        logging.getLogger(__name__).warning(f"No install recorded for {args.tool}")
        return 1
    print(json.dumps(receipt, indent=2))
    return 0


COMMANDS = {
    "provision": run_provision,
    "resolve": run_resolve,
    "list": run_list,
    "status": run_status,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)

    try:
        settings = load_config(args)
    except (ConfigurationError, ValidationError) as e:
        setup_root_logger(level=args.log_level or "INFO")
        logging.getLogger(__name__).error(f"Configuration error: {e}")
        return ConfigurationError.exit_code

    setup_root_logger(
        log_file=settings.logging.file_path,
        level=settings.logging.level,
        format_string=settings.logging.format,
        max_file_size_mb=settings.logging.max_file_size_mb,
        backup_count=settings.logging.backup_count
    )
    logger = logging.getLogger(__name__)
    logger.debug(f"Arguments: {vars(args)}")

    try:
        return COMMANDS[args.command](args, settings)
    except ProvisioningError as e:
        logger.error(f"Provisioning failed: {e}")
        return e.exit_code
    except (ConfigurationError, ValidationError) as e:
        logger.error(f"Configuration error: {e}")
        return ConfigurationError.exit_code
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
