"""Shared constants for the models layer.

Defines enumerations used across multiple model modules and by the
[utils][feedbrotr.utils] and [services][feedbrotr.services] layers.
Placing them here avoids circular dependencies between layers.

See Also:
    [feedbrotr.utils.relay][]: Uses
        [ConnectionState][feedbrotr.models.constants.ConnectionState] for the
        relay connection state machine.
    [feedbrotr.services.profiles][]: Subscribes to
        ``EventKind.SET_METADATA`` events for profile enrichment.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum


class EventKind(IntEnum):
    """Well-known Nostr event kinds consumed by FeedBrotr.

    Attributes:
        SET_METADATA: Kind 0 -- user profile metadata (NIP-01).
        TEXT_NOTE: Kind 1 -- short text note shown in the timeline (NIP-01).
        CONTACTS: Kind 3 -- contact list (NIP-02).
    """

    SET_METADATA = 0
    TEXT_NOTE = 1
    CONTACTS = 3


class ConnectionState(StrEnum):
    """Lifecycle state of a single relay connection.

    Transitions are ``DISCONNECTED -> CONNECTING -> CONNECTED`` on
    [connect()][feedbrotr.utils.relay.RelayConnection.connect], and
    ``CONNECTED -> DISCONNECTED`` when the relay closes the socket or the
    connection is closed locally. A failed connection attempt returns to
    ``DISCONNECTED``.

    Attributes:
        DISCONNECTED: No socket; ``subscribe()`` is rejected.
        CONNECTING: Handshake in progress; ``subscribe()`` is rejected.
        CONNECTED: Socket open; subscriptions may be created.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ServiceName(StrEnum):
    """Canonical service identifiers used in logging, metrics, and the CLI.

    Attributes:
        TIMELINE: Relay timeline ingestion with profile enrichment
            ([Timeline][feedbrotr.services.timeline.Timeline]).
    """

    TIMELINE = "timeline"


class ProfileStatus(IntEnum):
    """Relationship of the local user to a cached identity.

    Attributes:
        PUBLIC: Seen in the timeline only.
        FOLLOW: Followed; belongs to a circle.
        BLOCK: Blocked.
    """

    PUBLIC = 0
    FOLLOW = 1
    BLOCK = 2


class TableName(StrEnum):
    """Logical table names of the persisted keyed stores.

    Attributes:
        CIRCLES: User-defined contact groupings.
        PROFILES: Cached author profiles keyed by public key.
    """

    CIRCLES = "circles"
    PROFILES = "profiles"


HEX_ID_LENGTH = 64
HEX_SIG_LENGTH = 128
