"""
User-defined contact groupings ("circles").

Every followed identity belongs to exactly one circle. The built-in
"Following" circle is where identities go when no circle was picked, when
the assigned circle could not be found, or when it was deleted. It is the
[FOLLOWING][feedbrotr.models.circle.FOLLOWING] constant: synthesized at
read time by [CircleTable][feedbrotr.services.circles.CircleTable], never
written to the store, and impossible to delete.

See Also:
    [CircleTable][feedbrotr.services.circles.CircleTable]: Persisted table
        of circles with the default-circle rules.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from ._validation import validate_str_no_null


DEFAULT_CIRCLE_ID = ""
DEFAULT_CIRCLE_NAME = "Following"
DEFAULT_CIRCLE_COLOR = "#e91e63"


@dataclass(frozen=True, slots=True)
class Circle:
    """Immutable named grouping of followed identities.

    Attributes:
        id: Opaque store key. The empty string is reserved for the default
            circle and is rejected by
            [CircleTable.put_circle()][feedbrotr.services.circles.CircleTable.put_circle].
        name: Human-readable circle name.
        color: CSS color used by views.
        created: Epoch seconds stamped by the store on write (``None`` for
            the synthesized default).
    """

    id: str
    name: str
    color: str = DEFAULT_CIRCLE_COLOR
    created: int | None = None

    def __post_init__(self) -> None:
        validate_str_no_null(self.id, "id")
        validate_str_no_null(self.name, "name")
        validate_str_no_null(self.color, "color")

    @property
    def is_default(self) -> bool:
        """Whether this is the synthesized "Following" circle."""
        return self.id == DEFAULT_CIRCLE_ID

    def to_document(self) -> dict[str, Any]:
        """Serialize to a JSON document. The id is the key, not a field."""
        return {"name": self.name, "color": self.color, "created": self.created}

    @classmethod
    def from_document(cls, key: str, document: Mapping[str, Any]) -> Circle:
        """Rebuild a circle from its store key and JSON document."""
        return cls(
            id=key,
            name=document.get("name", ""),
            color=document.get("color", DEFAULT_CIRCLE_COLOR),
            created=document.get("created"),
        )


FOLLOWING = Circle(id=DEFAULT_CIRCLE_ID, name=DEFAULT_CIRCLE_NAME, color=DEFAULT_CIRCLE_COLOR)
