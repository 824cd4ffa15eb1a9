"""
auth/seed.py -- Reference data (cities, universities, majors, industries).

Signup and profile updates only accept values present in these collections.
DEFAULT_REFERENCE_DATA is what `python main.py seed` loads when no file is
given; a JSON file with the same shape ({"cities": [...], ...}) replaces it.
Entries may be plain strings or objects with a "name" key.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from auth.store import REFERENCE_KINDS, UserStore

logger = logging.getLogger("talentspal.seed")

DEFAULT_REFERENCE_DATA: dict[str, list[str]] = {
    "cities": [
        "Ramallah",
        "Jerusalem",
        "Bethlehem",
        "Nablus",
        "Hebron",
        "Jenin",
        "Tulkarm",
        "Qalqilya",
        "Gaza",
        "Other",
    ],
    "universities": [
        "Birzeit University",
        "An-Najah National University",
        "Bethlehem University",
        "Hebron University",
        "Palestine Polytechnic University",
        "Palestine Technical University",
        "Al-Quds University",
        "Islamic University of Gaza",
        "Al-Azhar University",
        "University College of Applied Sciences",
        "Arab American University",
        "Other",
    ],
    "majors": [
        "Computer Science",
        "Software Engineering",
        "Computer Engineering",
        "Information Technology",
        "Information Systems",
        "Cybersecurity",
        "Data Science",
        "Artificial Intelligence",
        "Business Administration",
        "Accounting",
        "Marketing",
        "Other",
    ],
    "industries": [
        "Technology & IT",
        "Finance & Banking",
        "Healthcare",
        "Education",
        "Manufacturing",
        "Retail",
        "Construction",
        "Telecommunications",
        "Tourism & Hospitality",
        "Agriculture",
        "Media & Marketing",
        "NGO & Development",
        "Other",
    ],
}


def _names(entries: list[Any]) -> list[str]:
    names: list[str] = []
    for entry in entries:
        if isinstance(entry, str):
            names.append(entry)
        elif isinstance(entry, dict) and isinstance(entry.get("name"), str):
            names.append(entry["name"])
        else:
            raise ValueError(f"Reference entry must be a string or an object with a name: {entry!r}")
    return names


def load_reference_file(path: str | Path) -> dict[str, list[str]]:
    """Read a reference-data JSON file. Unknown collections are rejected."""
    file_path = Path(path).resolve()
    if not file_path.is_file():
        raise ValueError(f"'{path}' is not a readable file")
    raw = json.loads(file_path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("Reference file must contain a JSON object")
    unknown = set(raw) - set(REFERENCE_KINDS)
    if unknown:
        raise ValueError(f"Unknown reference collections: {sorted(unknown)}")
    return {kind: _names(entries) for kind, entries in raw.items()}


def seed_reference_data(store: UserStore, data: dict[str, list[str]] | None = None) -> dict[str, int]:
    """Insert missing reference entries. Returns the count inserted per collection."""
    data = DEFAULT_REFERENCE_DATA if data is None else data
    inserted: dict[str, int] = {}
    for kind, names in data.items():
        inserted[kind] = store.add_references(kind, names)
        logger.info("Seeded %s: %d new of %d", kind, inserted[kind], len(names))
    return inserted
