import io
import logging

import pytest

import pharfile
from pharfile import read_archive, read_unverified, open_path
from pharfile.common import (
    PharException,
    BadCRCError,
    BadSignatureError,
    MarkerNotFoundError,
    TruncatedHeaderError,
    SourceIOError,
)
from pharfile.source import BytesSource

from generate_test_data import (
    File, Directory, phar, simple_phar, flip,
    GZIP, BZIP2, SHA1, SHA256, default_stub,
)

def test_simple_archive(simple_archive_bytes):
    archive = read_archive(simple_archive_bytes)
    assert len(archive) == 2
    assert [entry.file_name for entry in archive] == ["1.txt", "index.php"]
    assert archive.manifest.metadata == b'a:1:{s:1:"a";i:123;}'
    assert archive.signature == None
    with archive.entries[0].open() as reader:
        assert reader.read(4) == b"ASDF"
    with archive.entries[1].open() as reader:
        assert reader.read(4) == b"ZXCV"

@pytest.mark.parametrize("entries", [
    [],
    [File("a", b"")],
    [File("a", b"A" * 1000, compression=GZIP), File("b", b"B" * 1000, compression=BZIP2), File("c", b"C")],
    [Directory("dir"), File("dir/a.php", b"<?php\n"), File("dir/b.php", b"<?php echo 1;\n", compression=GZIP)],
    [File("n{}".format(i), bytes([i]) * i) for i in range(50)],
])
@pytest.mark.parametrize("signature", [None, SHA1])
def test_entry_count_matches_manifest(entries, signature):
    archive = read_archive(phar(entries, signature=signature))
    assert len(archive.entries) == archive.manifest.entry_count == len(entries)
    for entry, built in zip(archive, entries, strict=True):
        with entry.open() as reader:
            assert reader.read() == built["contents"]

def test_corrupted_payload_names_the_entry():
    entries = [
        File("a.txt", b"first"),
        File("b.txt", b"second"),
        File("c.txt", b"third"),
    ]
    data = phar(entries)
    # Last byte of b.txt's payload.
    offset = len(data) - len(b"third") - 1
    with pytest.raises(BadCRCError) as info:
        read_archive(flip(data, offset))
    assert info.value.entry == "b.txt"
    assert info.value.expected == entries[1]["crc"]
    assert "b.txt" in str(info.value)

def test_each_payload_byte_is_covered_by_its_crc():
    entries = [File("x", b"xyz"), File("y", b"12345")]
    data = phar(entries)
    payload_start = len(data) - 8
    for offset in range(payload_start, len(data)):
        with pytest.raises(BadCRCError) as info:
            read_archive(flip(data, offset))
        assert info.value.entry == ("x" if offset < payload_start + 3 else "y")

def test_wrong_declared_crc():
    with pytest.raises(BadCRCError):
        read_archive(phar([File("a", b"contents", crc=0)]))

def test_corrupted_trailing_digest():
    data = simple_phar(signature=SHA256)
    assert read_archive(data).signature != None
    with pytest.raises(BadSignatureError):
        read_archive(flip(data, len(data) - 8 - 32))

def test_read_unverified_skips_checks():
    data = flip(phar([File("a", b"contents")], signature=SHA1), -30)
    with pytest.raises(PharException):
        read_archive(data)
    archive = read_unverified(data)
    assert [entry.file_name for entry in archive] == ["a"]
    assert archive.signature.algorithm == pharfile.SignatureAlgorithm.SHA1

def test_parsing_twice_gives_identical_results(simple_archive_bytes):
    source = BytesSource(simple_archive_bytes)
    first = read_archive(source)
    second = read_archive(source)
    assert first.to_dict() == second.to_dict()
    for a, b in zip(first, second, strict=True):
        assert a.payload_offset == b.payload_offset
        assert a.on_disk_length == b.on_disk_length
        with a.open() as ra, b.open() as rb:
            assert ra.read() == rb.read()

def test_manifest_to_dict(simple_archive_bytes):
    info = read_archive(simple_archive_bytes).to_dict()
    assert info["manifest"]["version"] == "1.1.0"
    assert info["manifest"]["php_version"] == "1.1.1"
    assert info["manifest"]["entry_count"] == 2
    assert info["manifest"]["metadata"] == 'a:1:{s:1:"a";i:123;}'
    assert info["signature"] == None
    assert [entry["file_name"] for entry in info["entries"]] == ["1.txt", "index.php"]
    assert info["entries"][0]["compression"] == "none"

def test_get_by_cleaned_name():
    archive = read_archive(phar([File("./src//lib/../main.php", b"<?php\n")]))
    assert archive.get("src/main.php").size == 6
    assert archive.get("./src//lib/../main.php") == None

def test_file_object_source(simple_archive_bytes):
    archive = read_archive(io.BytesIO(simple_archive_bytes))
    assert len(archive) == 2

def test_open_path(phar_file, simple_archive_bytes):
    path = phar_file(simple_archive_bytes)
    with open_path(path) as archive:
        file = archive._file
        with archive.get("index.php").open() as reader:
            assert reader.read().startswith(b"ZXCV")
    assert file.closed

def test_open_path_closes_the_file_on_failure(phar_file, monkeypatch):
    path = phar_file(b"<?php echo 'not a phar';")
    opened = []
    real_open = open
    def tracking_open(file, *args, **kwargs):
        result = real_open(file, *args, **kwargs)
        if file == path: opened.append(result)
        return result
    monkeypatch.setattr("builtins.open", tracking_open)
    with pytest.raises(MarkerNotFoundError):
        open_path(path)
    assert len(opened) == 1 and opened[0].closed

def test_open_path_unverified(phar_file):
    path = phar_file(phar([File("a", b"contents", crc=1)]))
    with pytest.raises(BadCRCError):
        open_path(path)
    with open_path(path, verify=False) as archive:
        assert archive.get("a").crc32 == 1

def test_declared_size_limits_the_parse(simple_archive_bytes):
    with pytest.raises(PharException):
        read_archive(simple_archive_bytes, size=len(simple_archive_bytes) - 1)
    archive = read_archive(simple_archive_bytes + b"\x00" * 100, size=len(simple_archive_bytes))
    assert len(archive) == 2

def test_manifest_length_mismatch_is_logged(caplog):
    data = bytearray(simple_phar())
    stub_size = len(default_stub)
    data[stub_size] ^= 0x01
    with caplog.at_level(logging.WARNING, logger="pharfile.read"):
        archive = read_archive(bytes(data))
    assert len(archive) == 2
    assert "manifest length" in caplog.text

def test_huge_entry_count_is_rejected_before_decoding():
    data = phar([File("a", b"x")], entry_count=0x7FFFFFFF)
    with pytest.raises(TruncatedHeaderError):
        read_archive(data)

def test_every_truncation_fails_cleanly():
    data = phar([
        File("a.txt", b"plain"),
        File("b.txt", b"deflated " * 20, compression=GZIP),
        File("c.txt", b"bzipped " * 20, compression=BZIP2),
    ], metadata=b"i:1;", alias=b"t.phar")
    for size in range(len(data)):
        with pytest.raises(PharException):
            read_archive(data[:size])

@pytest.mark.parametrize("signature", [None, SHA1])
def test_every_byte_flip_fails_cleanly_or_parses(signature):
    data = phar([
        File("a.txt", b"plain"),
        File("b.txt", b"deflated " * 20, compression=GZIP),
        File("c.txt", b"bzipped " * 20, compression=BZIP2),
        Directory("d"),
    ], metadata=b"i:1;", alias=b"t.phar", signature=signature)
    for offset in range(len(data)):
        try:
            read_archive(flip(data, offset))
        except PharException:
            pass

class FailingSource:
    size = 1000
    def read_at(self, offset, n):
        raise SourceIOError("disk on fire")

def test_source_errors_propagate():
    with pytest.raises(SourceIOError):
        read_archive(FailingSource())

def test_unsupported_source_type():
    with pytest.raises(TypeError):
        read_archive(12345)

class FailingRead(io.BytesIO):
    def read(self, *args):
        raise OSError("read failed")

class FailingSeek(io.BytesIO):
    def seek(self, *args):
        raise OSError("seek failed")

def test_os_error_while_reading_is_wrapped(simple_archive_bytes):
    with pytest.raises(SourceIOError) as info:
        read_archive(FailingRead(simple_archive_bytes))
    assert isinstance(info.value.__cause__, OSError)
    assert "read failed" in str(info.value)

def test_os_error_while_sizing_is_wrapped(simple_archive_bytes):
    with pytest.raises(SourceIOError) as info:
        read_archive(FailingSeek(simple_archive_bytes))
    assert isinstance(info.value.__cause__, OSError)
    assert "seek failed" in str(info.value)
