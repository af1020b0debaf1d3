import hashlib
import io
import tarfile

import pytest

from conftest import build_archive
from registry_api.errors import InvalidArchiveError, PayloadTooLargeError
from registry_api.service.archive import read_manifest, spool_chunks, validate_manifest


def _tarball(members: list[tarfile.TarInfo], payloads: dict[str, bytes] | None = None) -> io.BytesIO:
    buffer = io.BytesIO()
    payloads = payloads or {}
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for member in members:
            data = payloads.get(member.name)
            if data is not None:
                member.size = len(data)
                archive.addfile(member, io.BytesIO(data))
            else:
                archive.addfile(member)
    buffer.seek(0)
    return buffer


def test_read_manifest_returns_pubspec_mapping():
    document = read_manifest(io.BytesIO(build_archive("foo", "1.2.3")))
    assert document["name"] == "foo"
    assert document["version"] == "1.2.3"
    assert document["environment"] == {"sdk": ">=3.0.0 <4.0.0"}


def test_shallowest_manifest_wins():
    nested = b"name: nested\nversion: 9.9.9\n"
    data = build_archive("foo", "1.0.0", extra={"example/pubspec.yaml": nested})
    assert read_manifest(io.BytesIO(data))["name"] == "foo"


def test_missing_manifest_is_rejected():
    handle = _tarball([tarfile.TarInfo("lib/foo.dart")], {"lib/foo.dart": b"x"})
    with pytest.raises(InvalidArchiveError, match="pubspec.yaml"):
        read_manifest(handle)


@pytest.mark.parametrize("name", ["../evil.txt", "/etc/passwd", "lib/../../escape"])
def test_unsafe_member_paths_are_rejected(name):
    manifest = tarfile.TarInfo("pubspec.yaml")
    evil = tarfile.TarInfo(name)
    handle = _tarball([manifest, evil], {"pubspec.yaml": b"name: foo\nversion: 1.0.0\n", name: b"x"})
    with pytest.raises(InvalidArchiveError, match="unsafe"):
        read_manifest(handle)


def test_symlink_escaping_archive_is_rejected():
    link = tarfile.TarInfo("lib/link")
    link.type = tarfile.SYMTYPE
    link.linkname = "../../outside"
    manifest = tarfile.TarInfo("pubspec.yaml")
    handle = _tarball([manifest, link], {"pubspec.yaml": b"name: foo\nversion: 1.0.0\n"})
    with pytest.raises(InvalidArchiveError):
        read_manifest(handle)


def test_non_gzip_payload_is_rejected():
    with pytest.raises(InvalidArchiveError, match="gzip"):
        read_manifest(io.BytesIO(b"definitely not a tarball"))


def test_manifest_must_be_a_mapping():
    manifest = tarfile.TarInfo("pubspec.yaml")
    handle = _tarball([manifest], {"pubspec.yaml": b"- just\n- a list\n"})
    with pytest.raises(InvalidArchiveError, match="mapping"):
        read_manifest(handle)


def test_validate_manifest_checks_name_and_version():
    manifest = validate_manifest({"name": "foo", "version": "1.0.0", "homepage": "https://example.com"})
    assert manifest.extras == {"homepage": "https://example.com"}
    assert manifest.to_pubspec()["homepage"] == "https://example.com"
    with pytest.raises(InvalidArchiveError, match="name"):
        validate_manifest({"name": "Foo", "version": "1.0.0"})
    with pytest.raises(InvalidArchiveError, match="version"):
        validate_manifest({"name": "foo", "version": "one"})


@pytest.mark.asyncio
async def test_spool_hashes_and_enforces_limit():
    async def chunks(parts):
        for part in parts:
            yield part

    spooled = await spool_chunks(chunks([b"abc", b"", b"def"]), max_bytes=10)
    try:
        assert spooled.size == 6
        assert spooled.sha256 == hashlib.sha256(b"abcdef").hexdigest()
        assert spooled.file.read() == b"abcdef"
    finally:
        spooled.close()

    with pytest.raises(PayloadTooLargeError):
        await spool_chunks(chunks([b"x" * 8, b"x" * 8]), max_bytes=10)
