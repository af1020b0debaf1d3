"""Operator command line: database, accounts, tokens, storage migration and backups."""

from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import logging
import signal
import sys
from contextlib import asynccontextmanager, contextmanager
from datetime import timedelta
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Iterator

from registry_api.auth.crypto import CredentialCipher
from registry_api.auth.passwords import MIN_PASSWORD_LENGTH, hash_password
from registry_api.auth.tokens import TokenService
from registry_api.config.settings import RegistrySettings, load_settings
from registry_api.db.types import utcnow
from registry_api.domain.models import User
from registry_api.errors import NotFoundError, RegistryError, ValidationError
from registry_api.metadata import MetadataStore, create_metadata_store
from registry_api.server import configure_logging, run_server
from registry_api.service.backup import BackupManager
from registry_api.service.migration import MigrationProgress, StorageMigration
from registry_api.service.storage_config import StorageConfigService

LOGGER = logging.getLogger(__name__)

Handler = Callable[[argparse.Namespace, RegistrySettings], Awaitable[int]]


@asynccontextmanager
async def open_metadata(settings: RegistrySettings) -> AsyncIterator[MetadataStore]:
    store = create_metadata_store(settings)
    try:
        await store.connect()
        await store.run_migrations()
        yield store
    finally:
        await store.close()


def confirm(prompt: str, *, assume_yes: bool) -> bool:
    if assume_yes:
        return True
    try:
        answer = input(f"{prompt} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def _read_password(supplied: str | None) -> str:
    password = supplied or getpass.getpass("Password: ")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    return password


def _print_json(payload: object) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


async def _find_user(metadata: MetadataStore, email: str) -> User:
    found = await metadata.get_user_credentials(email)
    if found is None:
        raise NotFoundError(f"User '{email}' not found.")
    return found[0]


# db


async def db_migrate(args: argparse.Namespace, settings: RegistrySettings) -> int:
    store = create_metadata_store(settings)
    try:
        await store.connect()
        applied = await store.run_migrations()
    finally:
        await store.close()
    print(f"Applied {applied} migration(s)." if applied else "Database schema is up to date.")
    return 0


# accounts


async def user_create(args: argparse.Namespace, settings: RegistrySettings) -> int:
    password = _read_password(args.password)
    async with open_metadata(settings) as metadata:
        user = await metadata.create_user(
            email=args.email.strip().lower(),
            name=args.name,
            password_hash=hash_password(password),
        )
    print(f"Created user '{user.email}' with id {user.id}")
    return 0


async def admin_create(args: argparse.Namespace, settings: RegistrySettings) -> int:
    password = _read_password(args.password)
    async with open_metadata(settings) as metadata:
        admin = await metadata.create_admin_user(
            username=args.username,
            name=args.name,
            password_hash=hash_password(password),
        )
    print(f"Created admin '{admin.username}' with id {admin.id}")
    return 0


async def _admin_set_active(args: argparse.Namespace, settings: RegistrySettings, active: bool) -> int:
    async with open_metadata(settings) as metadata:
        await metadata.set_admin_active(args.username, active=active)
    state = "activated" if active else "deactivated"
    print(f"Admin '{args.username}' {state}.")
    return 0


async def admin_activate(args: argparse.Namespace, settings: RegistrySettings) -> int:
    return await _admin_set_active(args, settings, True)


async def admin_deactivate(args: argparse.Namespace, settings: RegistrySettings) -> int:
    return await _admin_set_active(args, settings, False)


# tokens


async def token_create(args: argparse.Namespace, settings: RegistrySettings) -> int:
    async with open_metadata(settings) as metadata:
        user = await _find_user(metadata, args.user)
        expires_at = utcnow() + timedelta(days=args.expires_in_days) if args.expires_in_days else None
        secret, token = await TokenService(metadata).issue(
            user_id=user.id,
            label=args.label,
            scopes=args.scope,
            expires_at=expires_at,
        )
    print(f"Token '{token.label}' for {user.email} with scopes {', '.join(token.scopes)}:")
    print(secret)
    print("Save this token now; it cannot be shown again.", file=sys.stderr)
    return 0


async def token_list(args: argparse.Namespace, settings: RegistrySettings) -> int:
    async with open_metadata(settings) as metadata:
        user_id = (await _find_user(metadata, args.user)).id if args.user else None
        tokens = await metadata.list_tokens(user_id=user_id)
    for token in tokens:
        expiry = token.expires_at.isoformat() if token.expires_at else "never"
        print(f"{token.label}\t{token.user_id}\t{','.join(token.scopes)}\texpires={expiry}")
    if not tokens:
        print("No tokens.")
    return 0


async def token_delete(args: argparse.Namespace, settings: RegistrySettings) -> int:
    if not confirm(f"Delete token '{args.label}'?", assume_yes=args.yes):
        print("Aborted.", file=sys.stderr)
        return 1
    async with open_metadata(settings) as metadata:
        user_id = (await _find_user(metadata, args.user)).id if args.user else None
        deleted = await metadata.delete_token(args.label, user_id=user_id)
    if not deleted:
        print(f"Token '{args.label}' not found.", file=sys.stderr)
        return 1
    print(f"Deleted token '{args.label}'.")
    return 0


# storage


def _storage_service(metadata: MetadataStore, settings: RegistrySettings) -> StorageConfigService:
    return StorageConfigService(
        metadata=metadata,
        settings=settings,
        cipher=CredentialCipher(settings.encryption_key),
    )


async def storage_show(args: argparse.Namespace, settings: RegistrySettings) -> int:
    async with open_metadata(settings) as metadata:
        service = _storage_service(metadata, settings)
        active = await service.active()
        pending = await service.pending()
    _print_json({"active": active.to_dict(), "pending": pending.to_dict() if pending else None})
    return 0


async def storage_stage(args: argparse.Namespace, settings: RegistrySettings) -> int:
    async with open_metadata(settings) as metadata:
        staged = await _storage_service(metadata, settings).stage(
            backend=args.backend,
            local_path=args.path,
            s3_endpoint=args.s3_endpoint,
            s3_region=args.s3_region,
            s3_bucket=args.s3_bucket,
            s3_access_key=args.s3_access_key,
            s3_secret_key=args.s3_secret_key,
            s3_force_path_style=not args.virtual_hosted_style,
        )
    print("Staged pending storage configuration:")
    _print_json(staged.to_dict())
    return 0


async def storage_activate(args: argparse.Namespace, settings: RegistrySettings) -> int:
    if not confirm(
        "Activate the pending storage configuration? Restart the server afterwards.",
        assume_yes=args.yes,
    ):
        print("Aborted.", file=sys.stderr)
        return 1
    async with open_metadata(settings) as metadata:
        activated = await _storage_service(metadata, settings).activate()
    print(f"Activated {activated.backend} storage. Restart the registry to use it.")
    return 0


def _print_progress(progress: MigrationProgress) -> None:
    print(f"[{progress.done}/{progress.total}] {progress.outcome}: {progress.key}", flush=True)


async def _run_migration_command(args: argparse.Namespace, settings: RegistrySettings, command: str) -> int:
    async with open_metadata(settings) as metadata:
        service = _storage_service(metadata, settings)
        source = service.build(await service.active())
        target = service.build(await service.require_pending())
        await source.ensure_ready()
        await target.ensure_ready()
        print(f"Source: {source.describe()}")
        print(f"Target: {target.describe()}")

        migration = StorageMigration(
            metadata=metadata,
            source=source,
            target=target,
            concurrency=args.concurrency or settings.migration_concurrency,
            progress=_print_progress if command == "migrate" else None,
        )
        if command == "migrate" and not args.dry_run and not confirm(
            f"Copy archives from {source.describe()} to {target.describe()}?",
            assume_yes=args.yes,
        ):
            print("Aborted.", file=sys.stderr)
            return 1
        with _stop_on_interrupt(migration):
            if command == "preview":
                preview = await migration.preview(include_cached=args.include_cache)
                _print_json(preview.to_dict())
                return 1 if preview.stopped else 0
            if command == "verify":
                report = await migration.verify(include_cached=args.include_cache)
            else:
                report = await migration.migrate(
                    include_cached=args.include_cache,
                    overwrite=args.overwrite,
                    dry_run=args.dry_run,
                )
        _print_json(report.to_dict())
        return 0 if report.ok else 1


@contextmanager
def _stop_on_interrupt(migration: StorageMigration) -> Iterator[None]:
    """Route Ctrl-C to ``request_stop`` while a run is in progress."""

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, _interrupt, migration)
    except (NotImplementedError, RuntimeError):
        yield
        return
    try:
        yield
    finally:
        loop.remove_signal_handler(signal.SIGINT)


def _interrupt(migration: StorageMigration) -> None:
    LOGGER.warning("Interrupt received; finishing in-flight blob operations before stopping")
    migration.request_stop()


async def storage_preview(args: argparse.Namespace, settings: RegistrySettings) -> int:
    return await _run_migration_command(args, settings, "preview")


async def storage_migrate(args: argparse.Namespace, settings: RegistrySettings) -> int:
    return await _run_migration_command(args, settings, "migrate")


async def storage_verify(args: argparse.Namespace, settings: RegistrySettings) -> int:
    return await _run_migration_command(args, settings, "verify")


# backup


async def backup_export(args: argparse.Namespace, settings: RegistrySettings) -> int:
    async with open_metadata(settings) as metadata:
        backup = await BackupManager(metadata).export_to_file(Path(args.file))
    print(f"Wrote catalog backup to {args.file}")
    _print_json(backup.summary())
    return 0


async def backup_import(args: argparse.Namespace, settings: RegistrySettings) -> int:
    async with open_metadata(settings) as metadata:
        manager = BackupManager(metadata)
        path = Path(args.file)
        if args.dry_run:
            print("Dry run; the catalog is not changed. Rows in backup:")
            _print_json(await manager.import_from_file(path, dry_run=True))
            return 0
        if not confirm(
            f"Restore the catalog from {args.file}? Archive blobs are not part of the backup.",
            assume_yes=args.yes,
        ):
            print("Aborted.", file=sys.stderr)
            return 1
        restored = await manager.import_from_file(path)
    print("Restored rows:")
    _print_json(restored)
    return 0


def serve(args: argparse.Namespace, settings: RegistrySettings) -> int:
    run_server(
        settings,
        host=args.host,
        port=args.port,
        reload=True if args.reload else None,
        log_level=args.log_level,
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="registry-cli", description="Manage a pub package registry")
    parser.add_argument(
        "--log-level",
        choices=["critical", "error", "warning", "info", "debug", "trace"],
        default=None,
        help="Log level (overrides settings/env).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    db = sub.add_parser("db", help="Database schema").add_subparsers(dest="db_command", required=True)
    db.add_parser("migrate", help="Apply pending schema migrations").set_defaults(func=db_migrate)

    serve_cmd = sub.add_parser("serve", help="Run the registry HTTP API")
    serve_cmd.add_argument("--host", default=None, help="Bind address (overrides settings/env).")
    serve_cmd.add_argument("--port", type=int, default=None, help="Port (overrides settings/env).")
    serve_cmd.add_argument("--reload", action="store_true", help="Enable uvicorn auto-reload.")
    serve_cmd.set_defaults(func=serve, sync=True)

    user = sub.add_parser("user", help="End-user accounts").add_subparsers(dest="user_command", required=True)
    user_new = user.add_parser("create", help="Create an end-user account")
    user_new.add_argument("email")
    user_new.add_argument("--name")
    user_new.add_argument("--password")
    user_new.set_defaults(func=user_create)

    admin = sub.add_parser("admin", help="Administrator accounts").add_subparsers(
        dest="admin_command", required=True
    )
    admin_new = admin.add_parser("create", help="Create an administrator")
    admin_new.add_argument("username")
    admin_new.add_argument("--name")
    admin_new.add_argument("--password")
    admin_new.set_defaults(func=admin_create)
    for name, func in (("activate", admin_activate), ("deactivate", admin_deactivate)):
        cmd = admin.add_parser(name, help=f"{name.capitalize()} an administrator")
        cmd.add_argument("username")
        cmd.set_defaults(func=func)

    token = sub.add_parser("token", help="Bearer tokens").add_subparsers(dest="token_command", required=True)
    token_new = token.add_parser("create", help="Issue a token (the secret is printed once)")
    token_new.add_argument("--user", required=True, help="Owner email")
    token_new.add_argument("--label", required=True)
    token_new.add_argument(
        "--scope",
        action="append",
        required=True,
        help="admin, publish:all, publish:pkg:<name> or read:all (repeatable)",
    )
    token_new.add_argument("--expires-in-days", type=int, default=None)
    token_new.set_defaults(func=token_create)
    token_ls = token.add_parser("list", help="List tokens")
    token_ls.add_argument("--user", default=None, help="Only tokens owned by this email")
    token_ls.set_defaults(func=token_list)
    token_rm = token.add_parser("delete", help="Delete a token by label")
    token_rm.add_argument("label")
    token_rm.add_argument("--user", default=None, help="Owner email")
    token_rm.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    token_rm.set_defaults(func=token_delete)

    storage = sub.add_parser("storage", help="Storage backends and migration").add_subparsers(
        dest="storage_command", required=True
    )
    storage.add_parser("show", help="Show active and pending storage configs").set_defaults(func=storage_show)
    stage = storage.add_parser("stage", help="Stage a pending storage configuration")
    stage.add_argument("--backend", choices=["local", "s3"], required=True)
    stage.add_argument("--path", default=None, help="Root directory for the local backend")
    stage.add_argument("--s3-endpoint", default=None)
    stage.add_argument("--s3-region", default=None)
    stage.add_argument("--s3-bucket", default=None)
    stage.add_argument("--s3-access-key", default=None)
    stage.add_argument("--s3-secret-key", default=None)
    stage.add_argument("--virtual-hosted-style", action="store_true", help="Disable path-style S3 addressing")
    stage.set_defaults(func=storage_stage)
    activate = storage.add_parser("activate", help="Promote the pending config to active (server stopped)")
    activate.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    activate.set_defaults(func=storage_activate)
    for name, func, help_text in (
        ("preview", storage_preview, "Count keys to copy from active to pending storage"),
        ("migrate", storage_migrate, "Copy archives from active to pending storage"),
        ("verify", storage_verify, "Compare archive digests between active and pending storage"),
    ):
        cmd = storage.add_parser(name, help=help_text)
        cmd.add_argument("--include-cache", action="store_true", help="Include cached upstream archives")
        cmd.add_argument("--concurrency", type=int, default=None, help="Parallel blob operations")
        if name == "migrate":
            cmd.add_argument("--overwrite", action="store_true", help="Re-copy keys already in the target")
            cmd.add_argument("--dry-run", action="store_true", help="Report what would be copied")
            cmd.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
        cmd.set_defaults(func=func)

    backup = storage.add_parser("backup", help="Catalog backups (metadata only)").add_subparsers(
        dest="backup_command", required=True
    )
    backup_out = backup.add_parser("export", help="Write the catalog to a JSON file")
    backup_out.add_argument("file", help="Destination path")
    backup_out.set_defaults(func=backup_export)
    backup_in = backup.add_parser("import", help="Restore the catalog into an empty database")
    backup_in.add_argument("file", help="Backup file to restore")
    backup_in.add_argument("--dry-run", action="store_true", help="Only report what the file contains")
    backup_in.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    backup_in.set_defaults(func=backup_import)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = load_settings()
    if getattr(args, "sync", False):
        return args.func(args, settings)

    configure_logging((args.log_level or settings.log_level).lower())
    handler: Handler = args.func
    try:
        return asyncio.run(handler(args, settings))
    except RegistryError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
