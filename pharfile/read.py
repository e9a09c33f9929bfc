import sys, os
import json
import logging
import shutil
import zlib

from .common import (
    PharException,
    BadCRCError,
    CorruptEntryPayloadError,
    validate_extract_path,
)
from .manifest import decode_manifest, decode_entry
from .payload import default_chunk_size
from .signature import verify_signature, read_signature
from .source import source_for
from .stub import locate_stub, default_window_size

logger = logging.getLogger(__name__)

log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

def main():
    import argparse
    parser = argparse.ArgumentParser(prog="pharfile", description=
        "List, dump or extract the contents of a PHP PHAR archive.")
    parser.add_argument("archive")
    parser.add_argument("-x", "--extract", metavar="DIR", help=
        "Extract the archive to the given directory.")
    parser.add_argument("--json", action="store_true", help=
        "Print the manifest, signature and entries as JSON instead of listing names.")
    parser.add_argument("--no-verify", action="store_true", help=
        "Skip the signature and CRC-32 checks. "
        "Only use this on archives you already trust.")
    parser.add_argument("--log-level", default=os.getenv("PHARFILE_LOGGING_LEVEL", "WARNING"), help=
        "Logging level, default WARNING or $PHARFILE_LOGGING_LEVEL.")
    parser.add_argument("items", nargs="*", help=
        "If specified, only lists or extracts the given entries.")
    args = parser.parse_args()

    log_level = args.log_level.upper()
    if log_level not in log_levels:
        parser.error("--log-level must be one of {}, got {!r}".format(", ".join(log_levels), args.log_level))
    logging.basicConfig(level=log_level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    specific_items = set(args.items)
    found_items = set()
    try:
        with open_path(args.archive, verify=not args.no_verify) as archive:
            entries = []
            for entry in archive:
                if len(specific_items) == 0 or entry.file_name in specific_items:
                    found_items.add(entry.file_name)
                    entries.append(entry)

            if args.json:
                info = archive.to_dict()
                info["entries"] = [entry.to_dict() for entry in entries]
                print(json.dumps(info, indent=2))
            elif args.extract:
                for entry in entries:
                    print(extract_entry(args.extract, entry))
            else:
                for entry in entries:
                    print(entry.file_name)
    except (PharException, OSError) as e:
        sys.exit("ERROR: {}: {}".format(args.archive, e))

    missing_items = specific_items - found_items
    if len(missing_items) > 0:
        sys.exit("\n".join([
            "ERROR: item not found in archive: " + name
            for name in sorted(missing_items)
        ]))

def extract_entry(dir, entry):
    """Writes one entry below dir and returns the path written."""
    segments = validate_extract_path(entry.file_name)
    dest_path = os.path.join(dir, *segments)
    if entry.is_dir:
        os.makedirs(dest_path, exist_ok=True)
        return dest_path

    os.makedirs(os.path.dirname(dest_path), exist_ok=True)
    with entry.open() as reader, open(dest_path, "wb") as output:
        shutil.copyfileobj(reader, output, default_chunk_size)
    if entry.permissions:
        # Respect whatever umask limited the permissions on create.
        mode = os.stat(dest_path).st_mode & 0o777
        os.chmod(dest_path, mode & entry.permissions | 0o600)
    return dest_path

def open_path(archive_path, *, verify=True, digests=None, window_size=default_window_size):
    """
    Opens and parses the archive at archive_path.
    The returned Archive owns the file; close it, or use it as a context manager.
    verify=False goes through read_unverified().
    """
    file = open(archive_path, "rb")
    try:
        if verify:
            archive = read_archive(file, digests=digests, window_size=window_size)
        else:
            archive = read_unverified(file, window_size=window_size)
    except BaseException:
        file.close()
        raise
    archive._file = file
    return archive

def read_archive(source, size=None, *, digests=None, window_size=default_window_size):
    """
    Parses and fully verifies an archive.

    source is a bytes-like object, a seekable binary file,
    or anything with read_at(offset, n) and size.
    size limits the parse to the first size bytes of source.
    digests is a signature.DigestProvider.
    """
    return _read(source_for(source, size), verify=True, digests=digests, window_size=window_size)

def read_unverified(source, size=None, *, window_size=default_window_size):
    """
    Decodes the archive structure without checking the signature or any CRC-32.
    The signature block is still parsed when the archive claims to be signed.
    """
    return _read(source_for(source, size), verify=False, digests=None, window_size=window_size)

def _read(source, verify, digests, window_size):
    manifest_offset = locate_stub(source, window_size)
    manifest, offset = decode_manifest(source, manifest_offset)
    logger.debug("manifest %r at offset %d", manifest, manifest_offset)

    signature = None
    if manifest.is_signed:
        if verify:
            signature = verify_signature(source, source.size, digests)
        else:
            signature, _ = read_signature(source, source.size)

    entries = []
    for _ in range(manifest.entry_count):
        entry, offset = decode_entry(source, offset)
        entries.append(entry)

    # The length field counts everything after itself up to the first payload.
    manifest_end = manifest_offset + 4 + manifest.length
    if manifest_end != offset:
        logger.warning("manifest length says entries end at %d, but they end at %d", manifest_end, offset)

    # Payloads follow the manifest in entry order.
    for entry in entries:
        entry.payload_offset = offset
        offset += entry.on_disk_length
        if offset > source.size:
            raise CorruptEntryPayloadError("{!r}: payload of {} bytes at offset {} extends past the end of the archive".format(entry.file_name, entry.on_disk_length, entry.payload_offset))

    if verify:
        for entry in entries:
            check_crc32(entry)

    return Archive(manifest, signature, entries)

def check_crc32(entry):
    crc32 = 0
    with entry.open() as reader:
        while True:
            buf = reader.read(default_chunk_size)
            if len(buf) == 0: break
            crc32 = zlib.crc32(buf, crc32)
    if crc32 != entry.crc32:
        raise BadCRCError(entry.file_name, entry.crc32, crc32)

class Archive:
    def __init__(self, manifest, signature, entries):
        self.manifest = manifest
        self.signature = signature
        self.entries = tuple(entries)
        self._file = None

    def __enter__(self): return self
    def __exit__(self, *args): self.close()
    def __iter__(self): return iter(self.entries)
    def __len__(self): return len(self.entries)

    def close(self):
        if self._file != None:
            self._file.close()
            self._file = None

    def get(self, file_name):
        for entry in self.entries:
            if entry.file_name == file_name: return entry
        return None

    def to_dict(self):
        return {
            "manifest": self.manifest.to_dict(),
            "signature": self.signature.to_dict() if self.signature != None else None,
            "entries": [entry.to_dict() for entry in self.entries],
        }

if __name__ == "__main__":
    main()
