from __future__ import annotations

import re
from typing import Iterable, Mapping


STRENGTH = "str"
INTELLIGENCE = "int"
CONSTITUTION = "con"
PERCEPTION = "per"

ATTRIBUTE_SYNONYMS: dict[str, frozenset[str]] = {
    STRENGTH: frozenset({"str", "strength", "physical", "phy"}),
    INTELLIGENCE: frozenset({"int", "intelligence", "mental", "men"}),
    CONSTITUTION: frozenset({"con", "constitution", "social", "soc"}),
    PERCEPTION: frozenset({"per", "perception", "other", "oth"}),
}


def normalize_label_name(value: str) -> str:
    return re.sub(r"\s+", " ", str(value or "").strip()).casefold()


def category_for_name(name: str) -> str | None:
    normalized = normalize_label_name(name)
    for category, synonyms in ATTRIBUTE_SYNONYMS.items():
        if normalized in synonyms:
            return category
    return None


def build_attribute_table(labels: Mapping[str, str]) -> dict[str, str]:
    """Map each label reference whose display name is an attribute synonym to its category."""
    table: dict[str, str] = {}
    for label_ref, name in labels.items():
        category = category_for_name(name)
        if category is not None:
            table[str(label_ref)] = category
    return table


def classify_labels(labels: Iterable[str], table: Mapping[str, str]) -> str | None:
    # First mapped label in task order wins, whatever its category.
    for label in labels:
        category = table.get(str(label))
        if category is not None:
            return category
    return None
