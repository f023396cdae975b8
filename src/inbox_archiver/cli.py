"""Command-line entry point for Inbox Archiver."""

from __future__ import annotations

import argparse
import sys
from contextlib import ExitStack
from pathlib import Path

from inbox_archiver.archive import LocalFileSystem, MessageArchiver
from inbox_archiver.core import (
    AppSettings,
    RunJournal,
    TaskResult,
    configure_logging,
    load_app_settings,
)
from inbox_archiver.core.interfaces import ConfigurationError, DirectoryError
from inbox_archiver.core.models import DirectoryPrincipal
from inbox_archiver.directory import DirectoryPrincipalCache, GroupProvisioner
from inbox_archiver.directory.ldap_client import LdapDirectory
from inbox_archiver.permissions import PermissionReconciler, account_name
from inbox_archiver.routing import RouteTable, load_route_table
from inbox_archiver.storage import SqliteArchiveRepository

EXIT_FAILED_RUN = 1
EXIT_BAD_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Archive mail items and grant their recipients file access"
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration overrides.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="info",
        choices=["info", "validate-routes", "run"],
        help="Operation to execute.",
    )
    return parser


def execute(args: argparse.Namespace, settings: AppSettings) -> int:
    """Execute the requested CLI command and return the exit status."""
    command = args.command
    if command == "info":
        print(f"Target root: {settings.archive.target_root}")
        print(f"Routes file: {settings.archive.routes_file}")
        print(f"Directory server: {settings.directory.server}")
        print(f"Access group container: {settings.directory.email_access_container}")
        print(f"Database path: {settings.storage.db_path}")
        return 0
    if command == "validate-routes":
        routes = load_route_table(settings.archive.routes_file)
        _print_routes(routes)
        return 0
    result = _run_archive(settings)
    return 0 if result.success else EXIT_FAILED_RUN


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    try:
        settings = load_app_settings(env_file=args.env_file)
        configure_logging(settings.logging)
        status = execute(args, settings)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(EXIT_BAD_CONFIG)
    sys.exit(status)


def _run_archive(settings: AppSettings) -> TaskResult:
    """Wire the adapters, execute a run, and print its summary."""
    # Windows-only adapters.
    from inbox_archiver.permissions.ntfs import NtfsAclStore
    from inbox_archiver.transport.outlook import OutlookMailStore

    routes = load_route_table(settings.archive.routes_file)
    directory_settings = settings.directory

    with ExitStack() as stack:
        repository = None
        if settings.storage.enabled:
            repository = stack.enter_context(SqliteArchiveRepository(settings.storage))
        journal = RunJournal(repository)

        try:
            directory = stack.enter_context(LdapDirectory(directory_settings))
            cache = DirectoryPrincipalCache()
            cache.refresh(directory, directory_settings.search_base)
        except DirectoryError as exc:
            raise ConfigurationError(f"Directory unavailable: {exc}") from exc

        acl_store = NtfsAclStore()

        def visible_to_acl(group: DirectoryPrincipal) -> bool:
            return acl_store.can_resolve(
                account_name(group.sam_account_name, directory_settings.netbios_domain)
            )

        provisioner = GroupProvisioner(
            directory,
            cache,
            container=directory_settings.email_access_container,
            group_prefix=directory_settings.group_prefix,
            convergence_attempts=directory_settings.convergence_attempts,
            convergence_interval=directory_settings.convergence_interval_seconds,
            visibility_check=visible_to_acl,
            journal=journal,
        )
        reconciler = PermissionReconciler(
            acl_store,
            provisioner,
            cache,
            netbios_domain=directory_settings.netbios_domain,
            journal=journal,
        )
        archiver = MessageArchiver(
            OutlookMailStore(settings.store),
            routes,
            LocalFileSystem(),
            target_root=settings.archive.target_root,
            reconciler=reconciler,
            repository=repository,
            journal=journal,
            max_messages=settings.archive.max_messages,
            delete_enabled=settings.archive.delete_enabled,
        )
        result = archiver.run()

    print_summary(result)
    return result


def print_summary(result: TaskResult) -> None:
    """Print the run counters followed by every recorded error."""
    print(
        f"Total: {result.max_items}  Saved: {result.total_items}  "
        f"Skipped: {result.skipped_items}"
    )
    if result.errors:
        print(f"{len(result.errors)} error(s):")
        for error in result.errors:
            print(f"  {error}")


def _print_routes(routes: RouteTable) -> None:
    header = f"{'Message class':<32}  {'Action':<6}  {'Perms':<5}  {'Sink':<5}  Template"
    print(header)
    print("-" * len(header))
    for message_class, route in routes.items():
        print(
            f"{message_class:<32}  {route.action.value:<6}  "
            f"{str(route.apply_permissions):<5}  {str(route.write_to_sink):<5}  "
            f"{route.template}"
        )


if __name__ == "__main__":
    main()
