"""
Whole-archive signature block.

A signed archive ends with:

    digest or signature | [4B signature length, OpenSSL only] | 4B algorithm | "GBMB"

Digest algorithms are verified by hashing everything before the digest.
OpenSSL signatures are parsed but never verified unless a DigestProvider
knows how to, in which case the provider's verdict is final.
"""

import enum
import hashlib
import hmac
import logging
import struct

from .common import (
    trailer_magic,
    MalformedInputError,
    InvalidSignatureAlgorithmError,
    BadTrailerMagicError,
    BadSignatureError,
    UnsupportedSignatureAlgorithmError,
)
from .file_slice import FileSlice
from .source import read_exact

logger = logging.getLogger(__name__)

trailer_size = 8
signature_length_size = 4
max_signature_length = 8 * 1024
hash_chunk_size = 0x10000

class SignatureAlgorithm(enum.IntEnum):
    MD5            = 0x0001, "md5", 16
    SHA1           = 0x0002, "sha1", 20
    SHA256         = 0x0003, "sha256", 32
    SHA512         = 0x0004, "sha512", 64
    OPENSSL        = 0x0010, "OpenSSL", None
    OPENSSL_SHA256 = 0x0011, "OpenSSL_sha256", None
    OPENSSL_SHA512 = 0x0012, "OpenSSL_sha512", None

    def __new__(cls, value, label, digest_size):
        member = int.__new__(cls, value)
        member._value_ = value
        member.label = label
        member.digest_size = digest_size
        return member

    @property
    def is_digest(self):
        return self.digest_size != None

    @property
    def offset_from_end(self):
        """Distance of the stored digest from the end of the file, trailer included."""
        if not self.is_digest: return None
        return trailer_size + self.digest_size

class Signature:
    def __init__(self, algorithm, hash):
        self.algorithm = algorithm
        self.hash = hash

    def to_dict(self):
        return {
            "algorithm": self.algorithm.label,
            "hash": self.hash.hex(),
        }

    def __repr__(self):
        return "Signature({}, {})".format(self.algorithm.label, self.hash.hex())

class DigestProvider:
    """
    Supplies hash objects for the digest algorithms.
    Override new() for an accelerated backend, and verify_asymmetric() to check OpenSSL signatures.
    """
    def new(self, algorithm):
        """Returns a hashlib-style object, or None if the algorithm is unavailable."""
        try:
            return hashlib.new(algorithm.label)
        except ValueError:
            # e.g. md5 on a FIPS-restricted OpenSSL build.
            return None

    def verify_asymmetric(self, algorithm, signature, signed_data):
        """
        signed_data is a sequential reader over the signed region.
        Return True or False, or None when this provider can't tell.
        """
        return None

def read_trailer(source, size):
    """Returns the algorithm from the trailing 8 bytes."""
    if size < trailer_size: raise MalformedInputError("archive of {} bytes is too small for a signature trailer".format(size))
    trailer = read_exact(source, size - trailer_size, trailer_size, "signature trailer")
    (algorithm_id,) = struct.unpack("<L", trailer[0:4])
    if trailer[4:8] != trailer_magic:
        raise BadTrailerMagicError("can't find GBMB constant at the end, found {!r}".format(trailer[4:8]))
    try:
        return SignatureAlgorithm(algorithm_id)
    except ValueError:
        raise InvalidSignatureAlgorithmError("invalid signature algorithm {:#06x}".format(algorithm_id)) from None

def read_signature(source, size):
    """
    Parses the signature block without verifying it.
    Returns (signature, end of the signed region).
    """
    algorithm = read_trailer(source, size)
    if algorithm.is_digest:
        signed_end = size - algorithm.offset_from_end
        if signed_end < 0: raise MalformedInputError("archive of {} bytes is too small for a {} signature".format(size, algorithm.label))
        digest = read_exact(source, signed_end, algorithm.digest_size, algorithm.label + " signature")
        return Signature(algorithm, digest), signed_end

    length_offset = size - trailer_size - signature_length_size
    if length_offset < 0: raise MalformedInputError("archive of {} bytes is too small for an {} signature".format(size, algorithm.label))
    (signature_length,) = struct.unpack("<L", read_exact(source, length_offset, signature_length_size, "signature length"))
    if not (0 < signature_length <= max_signature_length):
        raise MalformedInputError("invalid signature length {} (must be > 0 and <= {})".format(signature_length, max_signature_length))
    signed_end = length_offset - signature_length
    if signed_end < 0:
        raise MalformedInputError("signature of {} bytes doesn't fit in archive of {} bytes".format(signature_length, size))
    blob = read_exact(source, signed_end, signature_length, algorithm.label + " signature")
    return Signature(algorithm, blob), signed_end

def verify_signature(source, size, digests=None):
    """
    Parses and verifies the signature block of a signed archive. Returns the Signature.
    """
    if digests == None: digests = DigestProvider()
    signature, signed_end = read_signature(source, size)
    algorithm = signature.algorithm
    logger.debug("verifying %s signature over %d bytes", algorithm.label, signed_end)

    if not algorithm.is_digest:
        verdict = digests.verify_asymmetric(algorithm, signature, FileSlice(source, 0, signed_end))
        if verdict == None:
            raise UnsupportedSignatureAlgorithmError("{} signatures are not supported".format(algorithm.label), signature)
        if not verdict:
            raise BadSignatureError("{} signature does not match".format(algorithm.label))
        return signature

    hasher = digests.new(algorithm)
    if hasher == None:
        raise UnsupportedSignatureAlgorithmError("no {} implementation available".format(algorithm.label), signature)
    signed_data = FileSlice(source, 0, signed_end)
    while True:
        buf = signed_data.read(hash_chunk_size)
        if len(buf) == 0: break
        hasher.update(buf)
    if signed_data.start != signed_end:
        raise MalformedInputError("archive ended at {} while hashing {} bytes".format(signed_data.start, signed_end))

    calculated = hasher.digest()
    if not hmac.compare_digest(calculated, signature.hash):
        raise BadSignatureError("{} signature mismatch, expected: {}, calculated: {}".format(algorithm.label, signature.hash.hex(), calculated.hex()))
    return signature
