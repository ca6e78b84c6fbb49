"""Nostr Implementation Possibilities -- protocol-specific parse and lookup logic.

The NIPs layer sits in the middle of the diamond DAG, depending on
[feedbrotr.models][feedbrotr.models] and [feedbrotr.utils][feedbrotr.utils].

Attributes:
    nip01: Envelope validation (structure, id, signature), sanitization,
        profile parsing, and spam/invoice content filtering.
    nip05: Directory lookup verifying that a profile's name maps to its
        public key. Lookup failures resolve to "not verified" and never raise.
"""

from feedbrotr.nips.nip01 import (
    FilterSettings,
    describe_settings,
    filter_event,
    parse_profile,
    reapply_filter,
    sanitize,
    sanitize_profile,
    validate,
    validate_profile,
)
from feedbrotr.nips.nip05 import DirectoryConfig, build_url, lookup, verify


__all__ = [
    "DirectoryConfig",
    "FilterSettings",
    "build_url",
    "describe_settings",
    "filter_event",
    "lookup",
    "parse_profile",
    "reapply_filter",
    "sanitize",
    "sanitize_profile",
    "validate",
    "validate_profile",
    "verify",
]
