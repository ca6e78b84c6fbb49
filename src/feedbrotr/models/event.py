"""
Relay envelopes and validated timeline events.

An *envelope* is the raw event object carried by an ``["EVENT", ...]``
relay message, exactly as decoded from JSON. It is received, never owned,
and may be malformed: it only becomes a
[TimelineEvent][feedbrotr.models.event.TimelineEvent] after passing
[validate()][feedbrotr.nips.nip01.validate] and
[sanitize()][feedbrotr.nips.nip01.sanitize].

See Also:
    [feedbrotr.nips.nip01][]: Envelope validation, sanitization, and
        content filtering.
    [TimelineBuffer][feedbrotr.services.timeline.buffer.TimelineBuffer]:
        The only owner of ``TimelineEvent`` instances.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any, TypeAlias

from ._validation import validate_hex, validate_instance, validate_str_no_null, validate_timestamp
from .constants import HEX_ID_LENGTH, HEX_SIG_LENGTH


Envelope: TypeAlias = Mapping[str, Any]
"""Raw NIP-01 event object as received from a relay (unvalidated)."""


@dataclass(frozen=True, slots=True)
class TimelineEvent:
    """Immutable, validated and sanitized Nostr event.

    Produced from an envelope by [sanitize()][feedbrotr.nips.nip01.sanitize]
    once [validate()][feedbrotr.nips.nip01.validate] has accepted it.
    ``content`` is the normalized (escaped) text, never the raw relay
    payload. ``allowed`` is the result of the most recent content filter
    pass and is recomputed whenever the filter settings change.

    Attributes:
        id: 64-char hex event id.
        pubkey: 64-char hex author public key.
        created_at: Unix timestamp claimed by the author.
        kind: Integer event kind.
        tags: Event tags as immutable tuples of strings.
        content: Sanitized content.
        sig: 128-char hex Schnorr signature.
        allowed: Whether the content filter currently admits the event.

    Raises:
        TypeError: If a field has the wrong type.
        ValueError: If a hex field has the wrong length or alphabet, or a
            string contains null bytes.
    """

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: tuple[tuple[str, ...], ...]
    content: str
    sig: str
    allowed: bool = True

    def __post_init__(self) -> None:
        validate_hex(self.id, HEX_ID_LENGTH, "id")
        validate_hex(self.pubkey, HEX_ID_LENGTH, "pubkey")
        validate_hex(self.sig, HEX_SIG_LENGTH, "sig")
        validate_timestamp(self.created_at, "created_at")
        validate_timestamp(self.kind, "kind")
        validate_instance(self.tags, tuple, "tags")
        validate_str_no_null(self.content, "content")
        validate_instance(self.allowed, bool, "allowed")

    def with_allowed(self, allowed: bool) -> TimelineEvent:
        """Return a copy carrying a fresh filter decision."""
        if allowed is self.allowed:
            return self
        return replace(self, allowed=allowed)

    def tag_values(self, name: str) -> list[str]:
        """Return the first value of every tag named *name* (e.g. ``"p"``)."""
        return [tag[1] for tag in self.tags if len(tag) > 1 and tag[0] == name]
