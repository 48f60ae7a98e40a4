"""Episode parsing and ordering tests."""

from __future__ import annotations

import pytest
from pydantic import TypeAdapter

from aniki.episode import (
    Episode,
    NumberedEpisode,
    SpecialEpisode,
    episode_from_path,
    numbered,
    parse_episode,
)


@pytest.mark.parametrize(
    ("filename", "expected"),
    [
        ("[sam] Vinland Saga - 24 [BD 1080p FLAC] [6696F95B].mkv", numbered(1, 24)),
        (
            "Girls.und.Panzer.S01E04.1080p-Hi10p.BluRay.FLAC2.1.x264-CTR.[1123C40D].mkv",
            numbered(1, 4),
        ),
        ("S00 E03", numbered(0, 3)),
        ("Show A - 01.mkv", numbered(1, 1)),
        ("Show S02E11.mkv", numbered(2, 11)),
    ],
)
def test_parse_numbered_episodes(filename: str, expected: NumberedEpisode) -> None:
    assert parse_episode(filename) == expected


def test_parse_special_markers_short_circuit() -> None:
    filename = "[Arid] Sound! Euphonium - Creditless OP [D04F5D1D].mkv"

    assert parse_episode(filename) == SpecialEpisode(filename=filename)


def test_parse_falls_back_to_special_without_episode_number() -> None:
    """Unparseable names never raise; they become specials keyed by filename."""

    assert parse_episode("Extras.mkv") == SpecialEpisode(filename="Extras.mkv")
    assert parse_episode("S01") == SpecialEpisode(filename="S01")


def test_season_zero_is_distinct_from_season_one() -> None:
    assert parse_episode("S00 E03") != parse_episode("S01 E03")


def test_episode_from_path_uses_final_component() -> None:
    assert episode_from_path("/media/Show A/Season 1/Show A - 07.mkv") == numbered(1, 7)


def test_numbered_episodes_order_by_season_then_episode() -> None:
    assert numbered(1, 2) < numbered(1, 10)
    assert numbered(1, 12) < numbered(2, 1)
    assert numbered(0, 5) < numbered(1, 1)
    assert not numbered(1, 1) < numbered(1, 1)
    assert numbered(3, 3) >= numbered(3, 3)


def test_numbered_episodes_sort_before_specials() -> None:
    special_a = SpecialEpisode(filename="a.mkv")
    special_b = SpecialEpisode(filename="b.mkv")

    ordered = sorted([special_b, numbered(2, 1), special_a, numbered(1, 1)])

    assert ordered == [numbered(1, 1), numbered(2, 1), special_a, special_b]
    assert numbered(99, 99) < special_a
    assert special_b > special_a


def test_episode_str_forms() -> None:
    assert str(numbered(1, 2)) == "S01 E02"
    assert str(SpecialEpisode(filename="NCOP.mkv")) == "NCOP.mkv"


def test_episode_union_validates_by_kind() -> None:
    adapter = TypeAdapter(Episode)

    assert adapter.validate_python({"kind": "numbered", "season": 1, "episode": 3}) == numbered(1, 3)
    assert adapter.validate_python({"kind": "special", "filename": "x.mkv"}) == SpecialEpisode(
        filename="x.mkv"
    )
