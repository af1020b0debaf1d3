"""Archive spooling, inspection and manifest validation.

Archives are gzip-compressed tarballs. Nothing is ever extracted to disk:
members are only inspected, and the manifest is read straight out of the
tar stream.
"""

from __future__ import annotations

import hashlib
import json
import posixpath
import tarfile
import tempfile
import zlib
from dataclasses import dataclass
from typing import Any, AsyncIterator, BinaryIO

import yaml
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import ValidationError as PydanticValidationError

from registry_api.domain.versions import is_valid_package_name, is_valid_version
from registry_api.errors import InvalidArchiveError, PayloadTooLargeError

MANIFEST_NAME = "pubspec.yaml"
MAX_MANIFEST_BYTES = 1024 * 1024
SPOOL_MEMORY_BYTES = 4 * 1024 * 1024


class Manifest(BaseModel):
    """Known pubspec fields; everything else is kept in ``model_extra``."""

    model_config = ConfigDict(extra="allow", frozen=True)

    name: str
    version: str
    description: str | None = None

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not is_valid_package_name(value):
            raise ValueError(
                "must start with a lowercase letter and contain only lowercase letters, digits and underscores"
            )
        return value

    @field_validator("version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        if not is_valid_version(value):
            raise ValueError("must be a semantic version such as 1.2.3")
        return value

    @property
    def extras(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

    def to_pubspec(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


@dataclass
class SpooledArchive:
    """Uploaded bytes held in a spooled temp file plus their digest."""

    file: BinaryIO
    sha256: str
    size: int

    def close(self) -> None:
        self.file.close()


async def spool_chunks(chunks: AsyncIterator[bytes], *, max_bytes: int) -> SpooledArchive:
    """Copy a byte stream into a spooled file, hashing as it goes."""

    handle = tempfile.SpooledTemporaryFile(max_size=SPOOL_MEMORY_BYTES)
    digest = hashlib.sha256()
    size = 0
    try:
        async for chunk in chunks:
            if not chunk:
                continue
            size += len(chunk)
            if size > max_bytes:
                raise PayloadTooLargeError(f"Archive exceeds the {max_bytes} byte upload limit.")
            digest.update(chunk)
            handle.write(chunk)
    except BaseException:
        handle.close()
        raise
    handle.seek(0)
    return SpooledArchive(file=handle, sha256=digest.hexdigest(), size=size)


def _is_unsafe_member(member: tarfile.TarInfo) -> bool:
    name = member.name
    if name.startswith("/") or "\\" in name or "\x00" in name:
        return True
    if ".." in name.split("/"):
        return True
    if member.ischr() or member.isblk() or member.isfifo() or member.isdev():
        return True
    if member.issym() or member.islnk():
        target = member.linkname
        if target.startswith("/"):
            return True
        base = posixpath.dirname(name) if member.issym() else ""
        resolved = posixpath.normpath(posixpath.join(base, target))
        if resolved == ".." or resolved.startswith("../"):
            return True
    return False


def _manifest_depth(member: tarfile.TarInfo) -> int | None:
    parts = [part for part in member.name.split("/") if part not in ("", ".")]
    if member.isfile() and parts and parts[-1] == MANIFEST_NAME:
        return len(parts)
    return None


def read_manifest(handle: BinaryIO) -> dict[str, Any]:
    """Validate archive structure and return the raw manifest mapping.

    Raises :class:`InvalidArchiveError` for corrupt containers, unsafe member
    paths, a missing or oversized manifest, or YAML that is not a mapping.
    """

    handle.seek(0)
    try:
        with tarfile.open(fileobj=handle, mode="r:gz") as archive:
            best: tarfile.TarInfo | None = None
            best_depth = 0
            for member in archive:
                if _is_unsafe_member(member):
                    raise InvalidArchiveError(f"Archive contains an unsafe entry: {member.name!r}")
                depth = _manifest_depth(member)
                if depth is not None and (best is None or depth < best_depth):
                    best, best_depth = member, depth
            if best is None:
                raise InvalidArchiveError(f"Archive does not contain {MANIFEST_NAME}.")
            if best.size > MAX_MANIFEST_BYTES:
                raise InvalidArchiveError(f"{MANIFEST_NAME} is too large.")
            extracted = archive.extractfile(best)
            if extracted is None:
                raise InvalidArchiveError(f"{MANIFEST_NAME} could not be read.")
            raw = extracted.read(MAX_MANIFEST_BYTES + 1)
    except (tarfile.TarError, EOFError, zlib.error, OSError) as exc:
        raise InvalidArchiveError("Archive is not a valid gzip-compressed tarball.") from exc
    finally:
        handle.seek(0)
    return parse_manifest(raw)


def parse_manifest(raw: bytes) -> dict[str, Any]:
    try:
        document = yaml.safe_load(raw.decode("utf-8"))
    except (UnicodeDecodeError, yaml.YAMLError) as exc:
        raise InvalidArchiveError(f"{MANIFEST_NAME} is not valid YAML.") from exc
    if not isinstance(document, dict):
        raise InvalidArchiveError(f"{MANIFEST_NAME} must be a mapping.")
    # YAML may yield dates and other non-JSON scalars; the catalog stores JSON.
    return json.loads(json.dumps(document, default=str))


def validate_manifest(document: dict[str, Any]) -> Manifest:
    try:
        return Manifest.model_validate(document)
    except PydanticValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(loc) for loc in error['loc']) or 'manifest'}: {error['msg']}"
            for error in exc.errors()
        )
        raise InvalidArchiveError(f"Invalid {MANIFEST_NAME}: {problems}") from exc


__all__ = [
    "MANIFEST_NAME",
    "Manifest",
    "SpooledArchive",
    "parse_manifest",
    "read_manifest",
    "spool_chunks",
    "validate_manifest",
]
