"""Pure frozen dataclasses with zero network I/O for events, profiles, and circles.

The models layer is the foundation of the diamond DAG. It has **no
dependencies** on any other FeedBrotr package -- only the Python standard
library. Every model uses ``@dataclass(frozen=True, slots=True)`` and
validates in ``__post_init__`` so invalid instances never escape the
constructor.

Attributes:
    Envelope: Raw NIP-01 event object as received from a relay.
    TimelineEvent: Validated, sanitized event with its current filter
        decision.
    Profile: Cached author profile with tri-state verification flag and
        version tag.
    Circle: User-defined contact grouping; ``FOLLOWING`` is the built-in
        default.
    EventKind: Well-known Nostr event kinds.
    ConnectionState: Relay connection lifecycle states.
    ProfileStatus: Follow, block or public relationship to an identity.

See Also:
    [feedbrotr.nips][]: Envelope validation and NIP-05 verification.
    [feedbrotr.core.store][]: Persisted keyed store for profiles and circles.
"""

from .circle import DEFAULT_CIRCLE_COLOR, DEFAULT_CIRCLE_ID, FOLLOWING, Circle
from .constants import ConnectionState, EventKind, ProfileStatus, ServiceName, TableName
from .event import Envelope, TimelineEvent
from .profile import Profile


__all__ = [
    "DEFAULT_CIRCLE_COLOR",
    "DEFAULT_CIRCLE_ID",
    "FOLLOWING",
    "Circle",
    "ConnectionState",
    "Envelope",
    "EventKind",
    "Profile",
    "ProfileStatus",
    "ServiceName",
    "TableName",
    "TimelineEvent",
]
