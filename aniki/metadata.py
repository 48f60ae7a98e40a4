"""Offline metadata dataset and the trigram indices used to search it."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Literal, Mapping, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .fuzzy import fuzzy_score

logger = logging.getLogger(__name__)

KEY_SENTINEL = "\0"
ANILIST_DOMAIN = "anilist.co"
# Minimum title score for a record to match a folder name.
MIN_TITLE_SCORE = 150

IndexKind = Literal["names", "tokens"]
TrigramIndex = Mapping[str, tuple[int, ...]]


class MetadataRecord(BaseModel):
    """A single title from the offline metadata dataset."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    sources: tuple[str, ...] = ()
    title: str
    synonyms: tuple[str, ...] = ()
    cover_image_url: str | None = Field(default=None, alias="picture")
    tags: tuple[str, ...] = ()

    def names(self) -> tuple[str, ...]:
        """Return the title followed by every synonym."""

        return (self.title, *self.synonyms)


class MetadataDataset(BaseModel):
    """Top-level shape of the offline dataset file."""

    model_config = ConfigDict(populate_by_name=True)

    last_update: str | None = Field(default=None, alias="lastUpdate")
    data: list[MetadataRecord] = Field(default_factory=list)


def trigram_key(name: str) -> str | None:
    """Return the bucket key for ``name``.

    The key is the first three characters upper-cased, padded with a NUL
    sentinel for short names. Names whose first three characters are not all
    ASCII have no key and are left out of the indices.
    """

    if not name:
        return None
    head = name[:3].ljust(3, KEY_SENTINEL)
    if not head.isascii():
        return None
    return head.upper()


def _build_index(records: Sequence[MetadataRecord], names_of) -> TrigramIndex:
    buckets: dict[str, list[int]] = {}
    for position, record in enumerate(records):
        for name in names_of(record):
            key = trigram_key(name)
            if key is None:
                continue
            bucket = buckets.setdefault(key, [])
            if not bucket or bucket[-1] != position:
                bucket.append(position)
    return MappingProxyType({key: tuple(bucket) for key, bucket in buckets.items()})


def build_name_index(records: Sequence[MetadataRecord]) -> TrigramIndex:
    """Index records by the key of their title and of each synonym."""

    return _build_index(records, lambda record: record.names())


def build_token_index(records: Sequence[MetadataRecord]) -> TrigramIndex:
    """Index records by the key of every whitespace token of every name."""

    return _build_index(
        records,
        lambda record: (token for name in record.names() for token in name.split()),
    )


class MetadataIndex:
    """Owns the dataset and answers fuzzy lookups against it.

    Both indices are built on first use and never change afterwards.
    """

    def __init__(self, records: Iterable[MetadataRecord] = ()) -> None:
        self._records: tuple[MetadataRecord, ...] = tuple(records)
        self._name_index: TrigramIndex | None = None
        self._token_index: TrigramIndex | None = None

    @classmethod
    def from_dataset(cls, dataset: MetadataDataset) -> "MetadataIndex":
        return cls(dataset.data)

    @property
    def records(self) -> tuple[MetadataRecord, ...]:
        return self._records

    def __len__(self) -> int:
        return len(self._records)

    @property
    def name_index(self) -> TrigramIndex:
        if self._name_index is None:
            self._name_index = build_name_index(self._records)
        return self._name_index

    @property
    def token_index(self) -> TrigramIndex:
        if self._token_index is None:
            self._token_index = build_token_index(self._records)
        return self._token_index

    def _index(self, kind: IndexKind) -> TrigramIndex:
        return self.name_index if kind == "names" else self.token_index

    def candidates(self, query: str, *, index: IndexKind = "names") -> tuple[int, ...]:
        """Return dataset positions sharing ``query``'s bucket."""

        key = trigram_key(query)
        if key is None:
            return ()
        return self._index(index).get(key, ())

    def _match_score(self, query: str, record: MetadataRecord) -> int | None:
        """Score how well the record's names are found inside ``query``.

        Catalog names are the pattern and the noisy query is the text, so
        trailing release words in a folder name do not prevent a match. A
        title that matches below :data:`MIN_TITLE_SCORE` rules out the whole
        record, synonyms included.
        """

        best = fuzzy_score(record.title, query)
        if best is not None and best < MIN_TITLE_SCORE:
            return None
        for synonym in record.synonyms:
            score = fuzzy_score(synonym, query)
            if score is not None and (best is None or score > best):
                best = score
        return best

    def _search_score(self, query: str, record: MetadataRecord) -> int | None:
        best: int | None = None
        for name in record.names():
            score = fuzzy_score(query, name)
            if score is not None and (best is None or score > best):
                best = score
        return best

    def find_best(
        self, query: str, *, index: IndexKind = "names"
    ) -> MetadataRecord | None:
        """Return the record whose title or a synonym is best found in ``query``.

        Ties go to the record that appears first in the dataset.
        """

        best_record: MetadataRecord | None = None
        best_score: int | None = None
        for position in self.candidates(query, index=index):
            record = self._records[position]
            score = self._match_score(query, record)
            if score is None:
                continue
            if best_score is None or score > best_score:
                best_score = score
                best_record = record
        return best_record

    def find_all(
        self, queries: Iterable[str], *, index: IndexKind = "names"
    ) -> list[MetadataRecord | None]:
        """Run :meth:`find_best` independently for each query, in order."""

        return [self.find_best(query, index=index) for query in queries]

    def lookup(self, name: str) -> MetadataRecord | None:
        """Match a sanitised folder name, falling back to the token index."""

        name = name.strip()
        if not name:
            return None
        match = self.find_best(name, index="names")
        if match is None:
            match = self.find_best(name, index="tokens")
        return match

    def search(self, query: str, *, limit: int = 10) -> list[MetadataRecord]:
        """Return up to ``limit`` records whose names contain ``query``, best first."""

        query = query.strip()
        if not query or limit <= 0:
            return []
        scored: list[tuple[int, int]] = []
        for position in self.candidates(query, index="tokens"):
            score = self._search_score(query, self._records[position])
            if score is not None:
                scored.append((-score, position))
        scored.sort()
        return [self._records[position] for _, position in scored[:limit]]

    def find_exact(self, name: str) -> MetadataRecord | None:
        """Return the record whose title or a synonym equals ``name``."""

        for position in self.candidates(name, index="names"):
            record = self._records[position]
            if name in record.names():
                return record
        return None


def load_dataset(path: str | Path) -> MetadataDataset:
    """Read the offline dataset, returning an empty one when unavailable."""

    dataset_path = Path(path)
    try:
        raw = dataset_path.read_bytes()
    except OSError as exc:
        logger.warning("Metadata dataset %s unavailable: %s", dataset_path, exc)
        return MetadataDataset()
    try:
        dataset = MetadataDataset.model_validate_json(raw)
    except ValidationError as exc:
        logger.warning("Metadata dataset %s is malformed: %s", dataset_path, exc)
        return MetadataDataset()
    logger.info(
        "Loaded %s metadata records (last update %s)",
        len(dataset.data),
        dataset.last_update,
    )
    return dataset


@lru_cache
def load_index(path: str) -> MetadataIndex:
    """Return the process-wide index for the dataset at ``path``."""

    return MetadataIndex.from_dataset(load_dataset(path))


async def download_dataset(
    http_client: httpx.AsyncClient, url: str, path: str | Path
) -> bool:
    """Fetch the upstream dataset into ``path``; returns ``True`` on success."""

    destination = Path(path)
    try:
        response = await http_client.get(url, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Failed to download metadata dataset from %s: %s", url, exc)
        return False

    try:
        MetadataDataset.model_validate_json(response.content)
    except ValidationError as exc:
        logger.warning("Downloaded metadata dataset is malformed: %s", exc)
        return False

    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(response.content)
    except OSError as exc:
        logger.warning("Failed to write metadata dataset to %s: %s", destination, exc)
        return False
    logger.info("Downloaded metadata dataset to %s", destination)
    return True
