"""Copy and verify archive blobs between two storage substrates.

The catalog is the only inventory: every key comes from
``MetadataStore.archive_inventory`` and backend listings are never consulted.
Runs assume nobody is publishing into the source meanwhile.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import tempfile
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Literal

from registry_api.domain.models import ArchiveRef
from registry_api.errors import MigrationError, RegistryError
from registry_api.metadata import MetadataStore
from registry_api.storage.base import BlobStore
from registry_api.storage.factory import BlobStores

LOGGER = logging.getLogger(__name__)

_SPOOL_MEMORY_BYTES = 8 * 1024 * 1024

Outcome = Literal["copied", "skipped", "failed", "would_copy"]


@dataclass(frozen=True)
class MigrationProgress:
    done: int
    total: int
    key: str
    outcome: Outcome


@dataclass(frozen=True)
class PreviewReport:
    """Where each catalogued key currently lives.

    ``only_in_source`` keys are what a migration would copy. ``only_in_target``
    keys would be skipped but have no source copy to verify against, and
    ``missing_everywhere`` keys are catalog entries with no blob at all.
    """

    total_keys: int
    only_in_source: int
    only_in_target: int
    in_both: int
    missing_everywhere: int
    stopped: bool = False

    @property
    def to_migrate(self) -> int:
        return self.only_in_source

    @property
    def already_migrated(self) -> int:
        return self.in_both

    @property
    def missing_in_source(self) -> int:
        return self.only_in_target + self.missing_everywhere

    def to_dict(self) -> dict[str, object]:
        return {
            "totalKeys": self.total_keys,
            "onlyInSource": self.only_in_source,
            "onlyInTarget": self.only_in_target,
            "inBoth": self.in_both,
            "missingEverywhere": self.missing_everywhere,
            "toMigrate": self.to_migrate,
            "alreadyMigrated": self.already_migrated,
            "missingInSource": self.missing_in_source,
            "stopped": self.stopped,
        }


@dataclass
class MigrationReport:
    total_keys: int = 0
    successful: int = 0
    skipped: int = 0
    failed: int = 0
    errors: dict[str, str] = field(default_factory=dict)
    duration_seconds: float = 0.0
    dry_run: bool = False
    stopped: bool = False

    @property
    def ok(self) -> bool:
        return self.failed == 0 and not self.stopped

    def to_dict(self) -> dict[str, object]:
        return {
            "totalKeys": self.total_keys,
            "successful": self.successful,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": dict(self.errors),
            "durationSeconds": round(self.duration_seconds, 3),
            "dryRun": self.dry_run,
            "stopped": self.stopped,
        }


@dataclass
class VerifyReport:
    total_keys: int = 0
    matched: int = 0
    mismatched: int = 0
    missing_in_source: int = 0
    missing_in_target: int = 0
    mismatches: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    stopped: bool = False

    @property
    def ok(self) -> bool:
        return not (
            self.mismatched or self.missing_in_target or self.missing_in_source or self.errors or self.stopped
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "totalKeys": self.total_keys,
            "matched": self.matched,
            "mismatched": self.mismatched,
            "missingInSource": self.missing_in_source,
            "missingInTarget": self.missing_in_target,
            "mismatches": list(self.mismatches),
            "errors": dict(self.errors),
            "stopped": self.stopped,
        }


ProgressCallback = Callable[[MigrationProgress], None]


async def copy_blob(source: BlobStore, target: BlobStore, ref: ArchiveRef) -> None:
    """Copy one blob, refusing to write bytes whose digest differs from the catalog."""

    digest = hashlib.sha256()
    with tempfile.SpooledTemporaryFile(max_size=_SPOOL_MEMORY_BYTES) as handle:
        async for chunk in source.iter_chunks(ref.key):
            digest.update(chunk)
            handle.write(chunk)
        actual = digest.hexdigest()
        if actual != ref.sha256:
            raise MigrationError(
                f"Source digest {actual} does not match catalog digest {ref.sha256}.",
                code="source_digest_mismatch",
            )
        handle.seek(0)
        await target.put(ref.key, handle)


class StorageMigration:
    """Operator-driven migration between a source and a target substrate."""

    def __init__(
        self,
        *,
        metadata: MetadataStore,
        source: BlobStores,
        target: BlobStores,
        concurrency: int = 8,
        progress: ProgressCallback | None = None,
        stop: asyncio.Event | None = None,
    ) -> None:
        self._metadata = metadata
        self._source = source
        self._target = target
        self._concurrency = max(1, concurrency)
        self._progress = progress
        self._stop = stop or asyncio.Event()

    def request_stop(self) -> None:
        """Finish in-flight copies, then start no more."""

        self._stop.set()

    async def _inventory(self, include_cached: bool) -> list[ArchiveRef]:
        return await self._metadata.archive_inventory(include_cached=include_cached)

    async def _fan_out(self, refs: list[ArchiveRef], worker: Callable[[ArchiveRef], Awaitable[None]]) -> None:
        queue: asyncio.Queue[ArchiveRef] = asyncio.Queue()
        for ref in refs:
            queue.put_nowait(ref)

        async def _drain() -> None:
            while not self._stop.is_set():
                try:
                    ref = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                await worker(ref)

        tasks = [asyncio.create_task(_drain()) for _ in range(min(self._concurrency, len(refs)) or 1)]
        await asyncio.gather(*tasks)

    async def preview(self, *, include_cached: bool = False) -> PreviewReport:
        refs = await self._inventory(include_cached)
        counts = {"both": 0, "source": 0, "target": 0, "neither": 0}
        seen = 0

        async def _locate(ref: ArchiveRef) -> None:
            nonlocal seen
            in_source = await self._source.for_ref(ref).exists(ref.key)
            in_target = await self._target.for_ref(ref).exists(ref.key)
            seen += 1
            if in_source and in_target:
                counts["both"] += 1
            elif in_source:
                counts["source"] += 1
            elif in_target:
                counts["target"] += 1
            else:
                counts["neither"] += 1

        await self._fan_out(refs, _locate)
        return PreviewReport(
            total_keys=len(refs),
            only_in_source=counts["source"],
            only_in_target=counts["target"],
            in_both=counts["both"],
            missing_everywhere=counts["neither"],
            stopped=self._stop.is_set() and seen < len(refs),
        )

    async def migrate(
        self,
        *,
        include_cached: bool = False,
        overwrite: bool = False,
        dry_run: bool = False,
    ) -> MigrationReport:
        """Copy every catalogued key missing from the target.

        Per-key failures are recorded and the run continues. Keys already in
        the target are skipped unless ``overwrite`` is set, which makes an
        interrupted run safe to repeat.
        """

        started = time.monotonic()
        refs = await self._inventory(include_cached)
        report = MigrationReport(total_keys=len(refs), dry_run=dry_run)
        done = 0

        def _record(ref: ArchiveRef, outcome: Outcome) -> None:
            nonlocal done
            done += 1
            if self._progress is not None:
                self._progress(MigrationProgress(done=done, total=len(refs), key=ref.key, outcome=outcome))

        async def _one(ref: ArchiveRef) -> None:
            source = self._source.for_ref(ref)
            target = self._target.for_ref(ref)
            try:
                if not overwrite and await target.exists(ref.key):
                    report.skipped += 1
                    _record(ref, "skipped")
                    return
                if not await source.exists(ref.key):
                    raise MigrationError("Blob is missing in source.", code="missing_in_source")
                if dry_run:
                    report.successful += 1
                    _record(ref, "would_copy")
                    return
                await copy_blob(source, target, ref)
            except (RegistryError, OSError) as exc:
                LOGGER.warning("Failed to migrate %s: %s", ref.key, exc)
                report.failed += 1
                report.errors[ref.key] = str(exc)
                _record(ref, "failed")
                return
            report.successful += 1
            _record(ref, "copied")

        await self._fan_out(refs, _one)
        report.stopped = self._stop.is_set() and done < len(refs)
        report.duration_seconds = time.monotonic() - started
        LOGGER.info(
            "Storage migration finished: %d copied, %d skipped, %d failed%s",
            report.successful,
            report.skipped,
            report.failed,
            " (dry run)" if dry_run else "",
        )
        return report

    async def verify(self, *, include_cached: bool = False) -> VerifyReport:
        """Compare digests on both sides against each other and the catalog; read-only."""

        refs = await self._inventory(include_cached)
        report = VerifyReport(total_keys=len(refs))
        checked = 0

        async def _one(ref: ArchiveRef) -> None:
            nonlocal checked
            checked += 1
            source = self._source.for_ref(ref)
            target = self._target.for_ref(ref)
            try:
                in_source = await source.exists(ref.key)
                in_target = await target.exists(ref.key)
                if not in_source:
                    report.missing_in_source += 1
                if not in_target:
                    report.missing_in_target += 1
                if not (in_source and in_target):
                    return
                source_digest = await source.digest(ref.key)
                target_digest = await target.digest(ref.key)
            except (RegistryError, OSError) as exc:
                LOGGER.warning("Failed to verify %s: %s", ref.key, exc)
                report.errors[ref.key] = str(exc)
                return
            if source_digest == target_digest == ref.sha256:
                report.matched += 1
            else:
                report.mismatched += 1
                report.mismatches.append(ref.key)

        await self._fan_out(refs, _one)
        report.stopped = self._stop.is_set() and checked < len(refs)
        report.mismatches.sort()
        return report


__all__ = [
    "MigrationProgress",
    "MigrationReport",
    "PreviewReport",
    "StorageMigration",
    "VerifyReport",
    "copy_blob",
]
