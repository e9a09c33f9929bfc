from .common import (
    PharException,
    SourceIOError,
    InvalidArchivePathError,
    MalformedInputError,
    MarkerNotFoundError,
    UnexpectedEndError,
    TruncatedHeaderError,
    CorruptEntryPayloadError,
    SignatureError,
    InvalidSignatureAlgorithmError,
    BadTrailerMagicError,
    BadSignatureError,
    UnsupportedSignatureAlgorithmError,
    BadCRCError,
)
from .manifest import Manifest, Entry
from .payload import Compression
from .read import Archive, open_path, read_archive, read_unverified
from .signature import DigestProvider, Signature, SignatureAlgorithm
