"""
Cached author profile parsed from kind 0 metadata events.

A [Profile][feedbrotr.models.profile.Profile] is the single authoritative
record for one public key in the profile
[KeyedStore][feedbrotr.core.store.KeyedStore]. It is created on the first
successful parse of a kind 0 event for that key, replaced on later ones,
and its ``verified`` flag is overwritten asynchronously by NIP-05
directory verification.

The ``status`` and ``circle`` fields are owned by the local user: a newer
kind 0 event replaces the metadata but keeps them
(see [ProfileTable.put_metadata()][feedbrotr.services.profiles.store.ProfileTable.put_metadata]).

The ``event_id`` field is the version tag used to reject stale
verification results: a lookup started for one kind 0 event must not
overwrite the flag of a record parsed from a newer one.

See Also:
    [ProfileEnricher][feedbrotr.services.profiles.enricher.ProfileEnricher]:
        Creates and verifies profiles.
    [ProfileTable][feedbrotr.services.profiles.store.ProfileTable]:
        Persisted table of profiles.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from typing import Any, ClassVar

from ._validation import validate_hex, validate_str_no_null
from .constants import HEX_ID_LENGTH, ProfileStatus


@dataclass(frozen=True, slots=True)
class Profile:
    """Immutable author profile.

    Attributes:
        pubkey: 64-char hex public key (the store key).
        name: Display handle used for directory verification.
        display_name: Optional long-form display name.
        about: Free-form biography.
        picture: Avatar URL.
        banner: Banner image URL.
        website: Personal website URL.
        nip05: NIP-05 identity claim (``name@domain``).
        lud16: Lightning address.
        verified: Tri-state trust decision: ``None`` until verification
            completes, then ``True`` or ``False``.
        event_id: Id of the kind 0 event this record was parsed from. Empty
            for an identity followed or blocked before its metadata arrived.
        status: Follow, block or public.
        circle: Circle id of a followed identity; ``None`` means the default
            circle.
        created: Epoch seconds stamped by the store on write.

    Examples:
        ```python
        profile = Profile(pubkey="ab" * 32, name="alice", event_id="cd" * 32)
        profile.verified                      # None
        profile.with_verified(True).verified  # True
        ```
    """

    TEXT_FIELDS: ClassVar[tuple[str, ...]] = (
        "name",
        "display_name",
        "about",
        "picture",
        "banner",
        "website",
        "nip05",
        "lud16",
    )

    pubkey: str
    name: str = ""
    display_name: str = ""
    about: str = ""
    picture: str = ""
    banner: str = ""
    website: str = ""
    nip05: str = ""
    lud16: str = ""
    verified: bool | None = None
    event_id: str = ""
    status: ProfileStatus = ProfileStatus.PUBLIC
    circle: str | None = None
    created: int | None = None

    def __post_init__(self) -> None:
        validate_hex(self.pubkey, HEX_ID_LENGTH, "pubkey")
        for name in self.TEXT_FIELDS:
            validate_str_no_null(getattr(self, name), name)
        if self.verified is not None and not isinstance(self.verified, bool):
            raise TypeError(f"verified must be a bool or None, got {type(self.verified).__name__}")
        if self.event_id:
            validate_hex(self.event_id, HEX_ID_LENGTH, "event_id")
        if not isinstance(self.status, ProfileStatus):
            raise TypeError(f"status must be a ProfileStatus, got {type(self.status).__name__}")
        if self.circle is not None:
            validate_str_no_null(self.circle, "circle")

    def with_verified(self, verified: bool | None) -> Profile:
        """Return a copy with the verification flag replaced."""
        return replace(self, verified=verified)

    def with_status(self, status: ProfileStatus, circle: str | None = None) -> Profile:
        """Return a copy with a new relationship. Only a follow keeps a circle."""
        return replace(self, status=status, circle=circle if status == ProfileStatus.FOLLOW else None)

    def matches(self, text: str) -> bool:
        """Case-sensitive substring match over name, pubkey, about and nip05."""
        return any(text in value for value in (self.name, self.pubkey, self.about, self.nip05))

    def to_document(self) -> dict[str, Any]:
        """Serialize to a JSON document (without the ``pubkey`` key)."""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != "pubkey"}

    @classmethod
    def from_document(cls, key: str, document: Mapping[str, Any]) -> Profile:
        """Rebuild a profile from its store key and JSON document.

        Unknown document fields are ignored so that records written by newer
        versions still load.
        """
        known = {f.name for f in fields(cls)} - {"pubkey"}
        values = {k: v for k, v in document.items() if k in known}
        if "status" in values:
            values["status"] = ProfileStatus(values["status"])
        return cls(pubkey=key, **values)
