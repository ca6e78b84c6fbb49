"""
NIP-05 style directory verification.

A profile claims a display name; the directory maps names to public keys.
[verify()][feedbrotr.nips.nip05.verify] asks the directory for the
profile's name and trusts the profile only if the directory returns the
same key:

```text
GET https://<host>/.well-known/nostr.json?name=<url-encoded name>
200 -> {"names": {"<name>": "<hex pubkey>"}}
```

Any other outcome (non-200 status, transport failure, timeout, oversized
or malformed body, missing name) makes the profile unverifiable, which is
reported as ``False``. Nothing is retried.

Note:
    [verify()][feedbrotr.nips.nip05.verify] **never raises** for lookup
    failures. [lookup()][feedbrotr.nips.nip05.lookup] is the raising
    primitive underneath it.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any
from urllib.parse import quote

import aiohttp
from pydantic import BaseModel, Field

from feedbrotr.exceptions import DirectoryLookupError
from feedbrotr.utils.http import read_bounded_json


logger = logging.getLogger("feedbrotr.nips.nip05")

WELL_KNOWN_PATH = "/.well-known/nostr.json"


class DirectoryConfig(BaseModel):
    """Where and how to query the name directory.

    Attributes:
        host: Directory hostname (HTTPS is always used).
        timeout: Total request timeout in seconds.
        max_size: Maximum accepted response body in bytes.
        enabled: When False, profiles are never looked up and stay unverified.
    """

    host: str = Field(default="www.nostr.directory", min_length=1)
    timeout: float = Field(default=10.0, gt=0.0, description="Request timeout (seconds)")
    max_size: int = Field(default=65_536, ge=1024, description="Max response body (bytes)")
    enabled: bool = Field(default=True, description="Run directory verification")


def build_url(host: str, name: str) -> str:
    """Return the directory URL for *name*, URL-encoding the name."""
    return f"https://{host}{WELL_KNOWN_PATH}?name={quote(name, safe='')}"


async def lookup(
    session: aiohttp.ClientSession,
    name: str,
    config: DirectoryConfig,
) -> str | None:
    """Fetch the public key the directory maps to *name*.

    Returns:
        The hex public key, or None if the directory answered 200 without
        an entry for *name*.

    Raises:
        DirectoryLookupError: On any non-200 status, transport failure,
            timeout, oversized or malformed body.
    """
    url = build_url(config.host, name)
    try:
        async with session.get(
            url, timeout=aiohttp.ClientTimeout(total=config.timeout)
        ) as response:
            if response.status != HTTPStatus.OK:
                raise DirectoryLookupError(f"{url}: HTTP {response.status}")
            body: Any = await read_bounded_json(response, config.max_size)
    except (aiohttp.ClientError, TimeoutError, OSError, ValueError) as e:
        raise DirectoryLookupError(f"{url}: {str(e) or type(e).__name__}") from e

    names = body.get("names") if isinstance(body, dict) else None
    if not isinstance(names, dict):
        raise DirectoryLookupError(f"{url}: response has no names mapping")
    pubkey = names.get(name)
    return pubkey if isinstance(pubkey, str) else None


async def verify(
    session: aiohttp.ClientSession,
    name: str,
    pubkey: str,
    config: DirectoryConfig,
) -> bool:
    """Whether the directory maps *name* to exactly *pubkey*.

    Returns False for a different key (name reuse) and for every lookup
    failure.
    """
    if not name:
        logger.debug("nip05_skipped pubkey=%s reason=no_name", pubkey)
        return False

    try:
        directory_pubkey = await lookup(session, name, config)
    except DirectoryLookupError as e:
        logger.debug("nip05_failed name=%s error=%s", name, e)
        return False

    if directory_pubkey is None:
        logger.debug("nip05_unknown_name name=%s pubkey=%s", name, pubkey)
        return False

    if directory_pubkey != pubkey:
        logger.warning(
            "nip05_name_reuse name=%s pubkey=%s directory_pubkey=%s",
            name,
            pubkey,
            directory_pubkey,
        )
        return False

    logger.debug("nip05_verified name=%s pubkey=%s", name, pubkey)
    return True
