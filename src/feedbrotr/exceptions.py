"""FeedBrotr exception hierarchy.

Provides typed exceptions for all error categories so callers can
distinguish caller errors, transient I/O failures, and protocol problems
while letting ``CancelledError`` propagate untouched.

Exception hierarchy:

```text
FeedBrotrError (base -- never raised directly)
├── ConfigurationError        -- config validation, missing keys, bad YAML
├── StoreError                -- persisted table unreachable or query failed
├── ConnectivityError         -- relay/network failures
│   ├── RelayConnectionError  -- connect attempt failed
│   └── RelayNotConnectedError -- subscribe() called outside CONNECTED state
└── ProtocolError             -- NIP parsing failures
    ├── ProfileParseError     -- kind 0 content is not a profile document
    └── DirectoryLookupError  -- NIP-05 directory unreachable or malformed
```

Note:
    Envelope validation never raises: invalid envelopes are dropped with a
    diagnostic (see [validate()][feedbrotr.nips.nip01.validate]).
    ``ProfileParseError`` and ``DirectoryLookupError`` are raised by the
    low-level parsers and always caught inside
    [ProfileEnricher][feedbrotr.services.profiles.enricher.ProfileEnricher],
    so no failure in the ingestion pipeline aborts the process.

See Also:
    [KeyedStore][feedbrotr.core.store.KeyedStore]: Raises
        [StoreError][feedbrotr.exceptions.StoreError] to its callers.
    [RelayConnection][feedbrotr.utils.relay.RelayConnection]: Raises the
        connectivity errors.
"""

from __future__ import annotations


class FeedBrotrError(Exception):
    """Base exception for all FeedBrotr errors.

    Never raised directly -- always use a specific subclass.
    """


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(FeedBrotrError):
    """Invalid or missing configuration (YAML, env vars, CLI flags)."""


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class StoreError(FeedBrotrError):
    """A keyed store operation failed.

    Surfaced to the caller as a failed operation with no automatic retry.
    A failure during [wipe_all()][feedbrotr.core.store.KeyedStore.wipe_all]
    leaves a partial deletion behind.
    """


# ---------------------------------------------------------------------------
# Connectivity
# ---------------------------------------------------------------------------


class ConnectivityError(FeedBrotrError):
    """Base for all relay/network connectivity errors."""


class RelayConnectionError(ConnectivityError):
    """The WebSocket handshake with the relay failed or timed out."""


class RelayNotConnectedError(ConnectivityError):
    """An operation that needs an open socket was called while not connected.

    This is a caller error: subscriptions are never queued for later.
    """


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ProtocolError(FeedBrotrError):
    """NIP parsing or compliance failure."""


class ProfileParseError(ProtocolError):
    """Kind 0 content is not valid JSON or not a profile object."""


class DirectoryLookupError(ProtocolError):
    """A NIP-05 directory did not answer with a usable ``names`` mapping."""
