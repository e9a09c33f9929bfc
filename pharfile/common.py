halt_compiler_marker = b"__HALT_COMPILER(); ?>"
trailer_magic         = b"GBMB"             # 0x424D4247 read little-endian

MANIFEST_FLAG_SIGNED = 0x00010000

ENTRY_PERMISSION_MASK  = 0x000001FF
ENTRY_COMPRESSION_MASK = 0x0000F000
ENTRY_COMPRESSED_NONE  = 0x00000000
ENTRY_COMPRESSED_GZIP  = 0x00001000
ENTRY_COMPRESSED_BZIP2 = 0x00002000

class PharException(Exception): pass
class SourceIOError(PharException): pass
class InvalidArchivePathError(PharException): pass

class MalformedInputError(PharException): pass
class MarkerNotFoundError(MalformedInputError): pass
class UnexpectedEndError(MalformedInputError): pass
class TruncatedHeaderError(MalformedInputError): pass
class CorruptEntryPayloadError(MalformedInputError): pass

class SignatureError(PharException): pass
class InvalidSignatureAlgorithmError(SignatureError): pass
class BadTrailerMagicError(SignatureError): pass
class BadSignatureError(SignatureError): pass
class UnsupportedSignatureAlgorithmError(SignatureError):
    def __init__(self, message, signature=None):
        super().__init__(message)
        # The structurally parsed signature block, never verified.
        self.signature = signature

class BadCRCError(PharException):
    def __init__(self, entry_name, expected, actual):
        super().__init__("{} has bad CRC, expected: {:#010x}, calculated: {:#010x}".format(entry_name, expected, actual))
        self.entry = entry_name
        self.expected = expected
        self.actual = actual

# Paths
def clean_archive_path(name):
    """
    Lexical path normalization of an entry name.
    Collapses redundant separators, '.' segments and resolvable '..' segments.
    Never consults the filesystem. Pass in a str, returns a str.
    """
    rooted = name.startswith("/")
    segments = []
    for segment in name.split("/"):
        if segment in ("", "."): continue
        if segment == "..":
            if len(segments) > 0 and segments[-1] != "..":
                segments.pop()
            elif not rooted:
                # Leading '..' can't be resolved lexically.
                segments.append(segment)
            # '..' at the root stays at the root.
            continue
        segments.append(segment)
    cleaned = "/".join(segments)
    if rooted: return "/" + cleaned
    return cleaned or "."

def validate_extract_path(archive_path):
    """
    Checks that a cleaned entry name stays inside the extraction directory.
    Returns the list of path segments.
    """
    if len(archive_path) == 0 or archive_path == ".": raise InvalidArchivePathError("Path must not be empty", archive_path)
    if "\x00" in archive_path: raise InvalidArchivePathError("Path must not contain NUL bytes", archive_path)
    if archive_path.startswith("/") or "\\" in archive_path or ":" in archive_path:
        raise InvalidArchivePathError("Path must be relative and use '/' separators", archive_path)
    segments = archive_path.split("/")
    if ".." in segments: raise InvalidArchivePathError("Path must not contain '..' segments", archive_path)
    return segments
