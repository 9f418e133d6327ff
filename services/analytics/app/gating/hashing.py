"""Deterministic bucketing for feature-flag rollouts and A/B tests.

hash = fmix32(FNV-1a-32(utf8(f"{subject_id}-{key}")))

FNV-1a alone leaves the low bits weakly mixed (bit 0 is the parity of the
input bytes' low bits), which would skew ``% 2`` splits for sequential ids.
The MurmurHash3 fmix32 finaliser spreads every input bit across the word.

The function is pure: identical inputs give identical buckets across
processes, platforms and releases.
"""

_FNV_OFFSET_BASIS = 0x811C9DC5
_FNV_PRIME = 0x01000193
_MASK32 = 0xFFFFFFFF


def fnv1a_32(data: bytes) -> int:
    h = _FNV_OFFSET_BASIS
    for byte in data:
        h ^= byte
        h = (h * _FNV_PRIME) & _MASK32
    return h


def fmix32(h: int) -> int:
    h ^= h >> 16
    h = (h * 0x85EBCA6B) & _MASK32
    h ^= h >> 13
    h = (h * 0xC2B2AE35) & _MASK32
    h ^= h >> 16
    return h


def assignment_hash(subject_id: str, key: str) -> int:
    """Unsigned 32-bit hash of ``"{subject_id}-{key}"``."""
    return fmix32(fnv1a_32(f"{subject_id}-{key}".encode("utf-8")))


def bucket(subject_id: str, key: str, buckets: int) -> int:
    """Bucket in ``[0, buckets)`` for the (subject, flag/test) pair."""
    if buckets <= 0:
        raise ValueError("buckets must be positive")
    return assignment_hash(subject_id, key) % buckets


def in_rollout(subject_id: str, key: str, percentage: int) -> bool:
    """True for roughly ``percentage``% of subjects; 0 → nobody, 100 → everybody."""
    return bucket(subject_id, key, 100) < percentage


def two_arm_variant(subject_id: str, key: str) -> str:
    """Even hash → "control", odd → "variant"."""
    return "control" if bucket(subject_id, key, 2) == 0 else "variant"
