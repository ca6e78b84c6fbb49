"""Profile cache and enrichment.

Re-exports all public symbols::

    from feedbrotr.services.profiles import ProfileEnricher, ProfileTable
"""

from .enricher import EnricherCounters, ProfileEnricher
from .store import ProfileTable


__all__ = [
    "EnricherCounters",
    "ProfileEnricher",
    "ProfileTable",
]
