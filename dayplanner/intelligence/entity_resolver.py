"""
Entity resolution against the goals and pillars the user already has.

Two entry points:
- find_in_text(): which known entity an utterance talks about
  (longest name first, case-insensitive substring match)
- resolve(): which entity a reference title points at
  (exact, then fuzzy containment)
"""

import logging
from dataclasses import dataclass

from dayplanner.errors import AmbiguousReference

logger = logging.getLogger(__name__)

GOAL = "goal"
PILLAR = "pillar"


@dataclass
class ResolvedEntity:
    entity_type: str
    entity_id: str
    entity_name: str
    match_confidence: float
    match_method: str  # 'id', 'exact', 'fuzzy' or 'mention'

    def to_dict(self) -> dict:
        return {
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
            "match_confidence": self.match_confidence,
            "match_method": self.match_method,
        }


@dataclass
class RegistryEntry:
    entity_type: str
    entity_id: str
    entity_name: str


class EntityResolver:
    """
    Resolves entity mentions and references to known goals and pillars.

    When several names match, the longest wins. A longer name is a
    stronger signal of intent ("Deep Work Sprint" over "Deep Work").
    """

    def __init__(self, registry: list[RegistryEntry] | None = None) -> None:
        self.registry = [entry for entry in (registry or []) if entry.entity_name.strip()]

    @classmethod
    def from_entities(cls, goals=(), pillars=()) -> "EntityResolver":
        """Build from store entities (goals carry .title, pillars carry .name)."""
        registry = [RegistryEntry(GOAL, g.id, g.title) for g in goals]
        registry += [RegistryEntry(PILLAR, p.id, p.name) for p in pillars]
        return cls(registry)

    def _entries(self, entity_type: str | None) -> list[RegistryEntry]:
        if entity_type is None:
            return self.registry
        return [entry for entry in self.registry if entry.entity_type == entity_type]

    def find_in_text(self, text: str, entity_type: str | None = None) -> ResolvedEntity | None:
        """Known entity whose name appears in text, longest name first."""
        if not text:
            return None
        lowered = text.lower()
        matches = [
            entry
            for entry in self._entries(entity_type)
            if entry.entity_name.lower().strip() in lowered
        ]
        if not matches:
            return None

        matches.sort(key=lambda entry: len(entry.entity_name.strip()), reverse=True)
        best = matches[0]
        if len(matches) > 1:
            ambiguity = AmbiguousReference(text, [m.entity_name for m in matches])
            logger.info(f"{ambiguity}; using longest match '{best.entity_name}'")

        return ResolvedEntity(
            entity_type=best.entity_type,
            entity_id=best.entity_id,
            entity_name=best.entity_name,
            match_confidence=0.9,
            match_method="mention",
        )

    def resolve(
        self,
        query_name: str | None,
        entity_type: str | None = None,
        entity_id: str | None = None,
    ) -> ResolvedEntity | None:
        """
        Resolve a reference. An id is authoritative; the name is only
        consulted when no id is given.
        """
        if entity_id:
            for entry in self._entries(entity_type):
                if entry.entity_id == entity_id:
                    return ResolvedEntity(entry.entity_type, entry.entity_id, entry.entity_name, 1.0, "id")
            return None

        if not query_name or not query_name.strip():
            return None
        query_lower = query_name.lower().strip()
        candidates = self._entries(entity_type)

        for entry in candidates:
            if entry.entity_name.lower().strip() == query_lower:
                return ResolvedEntity(entry.entity_type, entry.entity_id, entry.entity_name, 1.0, "exact")

        # Partial match (name contains query or query contains name)
        fuzzy = []
        for entry in candidates:
            entry_lower = entry.entity_name.lower().strip()
            if query_lower in entry_lower or entry_lower in query_lower:
                overlap = min(len(query_lower), len(entry_lower)) / max(len(query_lower), len(entry_lower), 1)
                fuzzy.append((min(0.9, overlap + 0.3), len(entry_lower), entry))

        if not fuzzy:
            return None

        fuzzy.sort(key=lambda item: (item[0], item[1]), reverse=True)
        score, _, best = fuzzy[0]
        if len(fuzzy) > 1:
            ambiguity = AmbiguousReference(query_name, [item[2].entity_name for item in fuzzy])
            logger.info(f"{ambiguity}; using '{best.entity_name}'")
        if score < 0.5:
            return None

        return ResolvedEntity(best.entity_type, best.entity_id, best.entity_name, score, "fuzzy")
