"""
Genre reference table.

The table is read-only and passed explicitly to whoever needs names
(CLI output, argument parsing) instead of living as ambient global state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

# TMDB movie genre ids
DEFAULT_GENRES: Mapping[int, str] = MappingProxyType({
    28: "Action",
    12: "Adventure",
    16: "Animation",
    35: "Comedy",
    80: "Crime",
    99: "Documentary",
    18: "Drama",
    10751: "Family",
    14: "Fantasy",
    36: "History",
    27: "Horror",
    10402: "Music",
    9648: "Mystery",
    10749: "Romance",
    878: "Science Fiction",
    10770: "TV Movie",
    53: "Thriller",
    10752: "War",
    37: "Western",
})


@dataclass(frozen=True)
class GenreTable:
    """Immutable id <-> name lookup for catalog genres."""

    names: Mapping[int, str] = field(default_factory=lambda: DEFAULT_GENRES)

    def __post_init__(self) -> None:
        object.__setattr__(self, "names", MappingProxyType(dict(self.names)))

    def name(self, genre_id: int) -> str:
        return self.names.get(genre_id, "Unknown")

    def resolve(self, token: str | int) -> int:
        """
        Resolve a genre given as an id or a (case-insensitive) name.

        Raises ValueError for unknown names.
        """
        if isinstance(token, int):
            return token
        text = str(token).strip()
        if text.isdigit():
            return int(text)
        lowered = text.lower()
        for genre_id, name in self.names.items():
            if name.lower() == lowered:
                return genre_id
        raise ValueError(f"Unknown genre '{token}'")

    def describe(self, genre_ids) -> list[str]:
        return [self.name(g) for g in genre_ids]

    def __iter__(self):
        return iter(self.names.items())

    def __len__(self) -> int:
        return len(self.names)
