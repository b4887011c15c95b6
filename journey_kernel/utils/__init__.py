"""Utility modules for the journey kernel."""

from journey_kernel.utils.hashing import canonicalize_json, hash_payload

__all__ = [
    "hash_payload",
    "canonicalize_json",
]
