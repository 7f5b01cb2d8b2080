"""Content hashing and signature normalization."""

from repro_check.hashing.hasher import (
    FileEntry,
    digest_or_none,
    hash_many,
    sha256_bytes,
    sha256_file,
)
from repro_check.hashing.signature import SignatureNormalizer, StripResult, render_command
from repro_check.hashing.sums import load_sha256sums, lookup_digest, parse_sha256sums

__all__ = [
    "FileEntry",
    "digest_or_none",
    "hash_many",
    "sha256_bytes",
    "sha256_file",
    "SignatureNormalizer",
    "StripResult",
    "render_command",
    "load_sha256sums",
    "lookup_digest",
    "parse_sha256sums",
]
