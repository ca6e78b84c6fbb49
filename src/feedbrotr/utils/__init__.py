"""Relay WebSocket transport and bounded HTTP reads.

The utils layer sits in the middle of the diamond DAG, depending only on
[feedbrotr.models][feedbrotr.models] (and the shared
[feedbrotr.exceptions][feedbrotr.exceptions] module). It provides the
low-level network primitives used by [feedbrotr.nips][feedbrotr.nips] and
[feedbrotr.services][feedbrotr.services].

Attributes:
    http: Size-bounded JSON reading of aiohttp responses.
    relay: Single-relay NIP-01 connection with subscriptions, EOSE
        signalling and lifecycle listeners. No reconnect policy.

Note:
    The utils layer has **zero** imports from ``feedbrotr.core`` or
    ``feedbrotr.services``.

Examples:
    ```python
    from feedbrotr.utils.relay import RelayConfig, RelayConnection, RelayFilter
    ```
"""
