"""
NIP-01 event validation, sanitization, and content filtering.

Pure functions applied to every envelope a relay pushes, in this order:

1. [validate()][feedbrotr.nips.nip01.validate] (or
   [validate_profile()][feedbrotr.nips.nip01.validate_profile] for kind 0):
   structural checks, then event id and Schnorr signature verification
   through ``nostr_sdk``. Returns a bool and never raises; rejected
   envelopes are logged at debug level and must not be processed further.
2. [sanitize()][feedbrotr.nips.nip01.sanitize] /
   [sanitize_profile()][feedbrotr.nips.nip01.sanitize_profile]: build a
   [TimelineEvent][feedbrotr.models.event.TimelineEvent] with normalized
   content. Sanitization does not depend on filter settings.
3. [filter_event()][feedbrotr.nips.nip01.filter_event]: allow/deny decision
   over [FilterSettings][feedbrotr.nips.nip01.FilterSettings].
   [reapply_filter()][feedbrotr.nips.nip01.reapply_filter] recomputes the
   decision for an accumulated collection when the settings change.

The ``paused`` flag is not evaluated here: a paused consumer discards
envelopes before validation runs.

Examples:
    ```python
    if validate(envelope):
        event = sanitize(envelope)
        event = event.with_allowed(filter_event(event, settings))
    ```
"""

from __future__ import annotations

import html
import json
import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any

from nostr_sdk import Event as NostrEvent
from nostr_sdk import NostrSdkError
from pydantic import BaseModel, ConfigDict, Field

from feedbrotr.exceptions import ProfileParseError
from feedbrotr.models._validation import (
    validate_hex,
    validate_str_no_null,
    validate_tags,
    validate_timestamp,
)
from feedbrotr.models.constants import HEX_ID_LENGTH, HEX_SIG_LENGTH, EventKind
from feedbrotr.models.event import Envelope, TimelineEvent
from feedbrotr.models.profile import Profile


logger = logging.getLogger("feedbrotr.nips.nip01")

ENVELOPE_FIELDS = ("id", "pubkey", "created_at", "kind", "tags", "content", "sig")

# C0/C1 control characters except tab, newline and carriage return
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")

# BOLT-11 payment requests: "lnbc" + optional amount + bech32 separator + data
_INVOICE_PATTERN = re.compile(r"\blnbc[0-9]*[munp]?1[02-9ac-hj-np-z]{20,}", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class FilterSettings(BaseModel):
    """Content filter flags, read-only to the ingestion pipeline.

    Attributes:
        hide_spam: Reject events matching the spam heuristic.
        hide_invoice: Reject events carrying a Lightning invoice.
        paused: Consumers discard incoming envelopes entirely.
        spam_keywords: Case-insensitive substrings that mark content as spam.
        max_tags: Events with more tags than this are treated as spam
            (mass-mention floods).
    """

    model_config = ConfigDict(frozen=True)

    hide_spam: bool = Field(default=True, description="Filter out spam")
    hide_invoice: bool = Field(default=True, description="Hide Lightning invoices")
    paused: bool = Field(default=False, description="Discard incoming events")
    spam_keywords: tuple[str, ...] = Field(
        default=("airdrop", "free sats", "giveaway", "t.me/"),
        description="Case-insensitive spam markers",
    )
    max_tags: int = Field(default=30, ge=1, description="Tag count above which an event is spam")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _check_structure(envelope: Any) -> None:
    if not isinstance(envelope, Mapping):
        raise TypeError(f"envelope must be a mapping, got {type(envelope).__name__}")
    missing = [name for name in ENVELOPE_FIELDS if name not in envelope]
    if missing:
        raise ValueError(f"missing fields: {', '.join(missing)}")
    validate_hex(envelope["id"], HEX_ID_LENGTH, "id")
    validate_hex(envelope["pubkey"], HEX_ID_LENGTH, "pubkey")
    validate_hex(envelope["sig"], HEX_SIG_LENGTH, "sig")
    validate_timestamp(envelope["created_at"], "created_at")
    validate_timestamp(envelope["kind"], "kind")
    validate_tags(envelope["tags"], "tags")
    validate_str_no_null(envelope["content"], "content")


def _verify_signature(envelope: Envelope) -> bool:
    payload = json.dumps({name: envelope[name] for name in ENVELOPE_FIELDS})
    try:
        return bool(NostrEvent.from_json(payload).verify())
    except NostrSdkError as e:
        logger.debug("envelope_unparseable id=%s error=%s", envelope["id"], e)
        return False


def validate(envelope: Any) -> bool:
    """Check envelope structure, event id and signature.

    Returns:
        True if the envelope is well-formed and correctly signed.
    """
    try:
        _check_structure(envelope)
    except (TypeError, ValueError) as e:
        logger.debug("envelope_rejected reason=structure error=%s", e)
        return False

    if not _verify_signature(envelope):
        logger.debug("envelope_rejected reason=signature id=%s", envelope["id"])
        return False
    return True


def validate_profile(envelope: Any) -> bool:
    """[validate()][feedbrotr.nips.nip01.validate] restricted to kind 0 events."""
    if not validate(envelope):
        return False
    if envelope["kind"] != EventKind.SET_METADATA:
        logger.debug("envelope_rejected reason=kind id=%s kind=%s", envelope["id"], envelope["kind"])
        return False
    return True


# ---------------------------------------------------------------------------
# Sanitization
# ---------------------------------------------------------------------------


def strip_control_chars(text: str) -> str:
    """Remove control characters, keeping tab, newline and carriage return."""
    return _CONTROL_CHARS.sub("", text)


def sanitize_text(text: str) -> str:
    """Strip control characters and HTML-escape *text* for display."""
    return html.escape(strip_control_chars(text))


def unescape_text(text: str) -> str:
    """Undo the HTML escaping of [sanitize_text()][feedbrotr.nips.nip01.sanitize_text].

    Profile fields are stored escaped for display; lookups that compare
    against external data, such as the directory name, need the claimed text.
    """
    return html.unescape(text)


def _to_event(envelope: Envelope, content: str) -> TimelineEvent:
    return TimelineEvent(
        id=envelope["id"],
        pubkey=envelope["pubkey"],
        created_at=envelope["created_at"],
        kind=envelope["kind"],
        tags=tuple(tuple(tag) for tag in envelope["tags"]),
        content=content,
        sig=envelope["sig"],
    )


def sanitize(envelope: Envelope) -> TimelineEvent:
    """Build a [TimelineEvent][feedbrotr.models.event.TimelineEvent] with escaped content.

    Must only be called on envelopes accepted by
    [validate()][feedbrotr.nips.nip01.validate].
    """
    return _to_event(envelope, sanitize_text(envelope["content"]))


def sanitize_profile(envelope: Envelope) -> TimelineEvent:
    """Normalize a kind 0 envelope, keeping its content JSON-parsable.

    Only control characters are removed here; HTML escaping is applied to
    the individual profile fields by
    [parse_profile()][feedbrotr.nips.nip01.parse_profile].
    """
    return _to_event(envelope, strip_control_chars(envelope["content"]))


def parse_profile(event: TimelineEvent) -> Profile:
    """Parse a sanitized kind 0 event into a [Profile][feedbrotr.models.profile.Profile].

    Known text fields are escaped; fields of the wrong type and unknown
    fields are ignored. The result has ``verified=None`` and carries the
    event id as its version tag.

    Raises:
        ProfileParseError: If the content is not a JSON object.
    """
    try:
        document = json.loads(event.content)
    except json.JSONDecodeError as e:
        raise ProfileParseError(f"profile content is not JSON: {e}") from e
    if not isinstance(document, dict):
        raise ProfileParseError(
            f"profile content must be an object, got {type(document).__name__}"
        )

    text_fields = {
        name: sanitize_text(value)
        for name in Profile.TEXT_FIELDS
        if isinstance(value := document.get(name), str)
    }
    # deprecated NIP-24 spelling
    if "display_name" not in text_fields and isinstance(document.get("displayName"), str):
        text_fields["display_name"] = sanitize_text(document["displayName"])

    try:
        return Profile(pubkey=event.pubkey, event_id=event.id, **text_fields)
    except (TypeError, ValueError) as e:
        raise ProfileParseError(f"invalid profile: {e}") from e


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


def is_spam(event: TimelineEvent, settings: FilterSettings) -> bool:
    """Keyword or tag-flood heuristic."""
    if len(event.tags) > settings.max_tags:
        return True
    content = event.content.lower()
    return any(keyword.lower() in content for keyword in settings.spam_keywords)


def has_invoice(event: TimelineEvent) -> bool:
    """Whether the content carries a BOLT-11 Lightning invoice."""
    return _INVOICE_PATTERN.search(event.content) is not None


def filter_event(event: TimelineEvent, settings: FilterSettings) -> bool:
    """Return True if *settings* allow *event* to be shown."""
    if settings.hide_spam and is_spam(event, settings):
        return False
    return not (settings.hide_invoice and has_invoice(event))


def reapply_filter(
    events: Iterable[TimelineEvent], settings: FilterSettings
) -> list[TimelineEvent]:
    """Recompute the ``allowed`` flag of already-accepted events.

    No revalidation is performed and nothing is cached against the
    settings, so applying the same settings twice yields the same result.
    """
    return [event.with_allowed(filter_event(event, settings)) for event in events]


def describe_settings(settings: FilterSettings) -> str:
    """Human-readable summary of the active filters, e.g. ``"Spam: Filtered Invoices: Hidden"``."""
    spam = "Filtered" if settings.hide_spam else "Allowed"
    invoices = "Hidden" if settings.hide_invoice else "Displayed"
    return f"Spam: {spam} Invoices: {invoices}"
