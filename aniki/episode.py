"""Episode identifiers and the filename parser that produces them."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

SPECIAL_RE = re.compile(
    r".*OVA.*\.|NCED.*? |NCOP.*? |(-|_| )(ED|OP|SP|no-credit_opening|no-credit_ending).*?(-|_| )"
)
NOISE_RE = re.compile(r"(x264|x265|\d{4}|\d{3})|10.bits?")
EPISODE_RE = re.compile(
    r"(?:(?:^|S|s)(?P<s>\d{2}))?(?: )?(?:_|x|E|e|EP|ep| )(?P<e>\d{1,2})(?:.bits|_| |-|\.|v|$)"
)


class _EpisodeBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    def sort_key(self) -> tuple[int, int, int, str]:
        raise NotImplementedError

    def __lt__(self, other: Any) -> bool:
        if not isinstance(other, _EpisodeBase):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def __le__(self, other: Any) -> bool:
        if not isinstance(other, _EpisodeBase):
            return NotImplemented
        return self.sort_key() <= other.sort_key()

    def __gt__(self, other: Any) -> bool:
        if not isinstance(other, _EpisodeBase):
            return NotImplemented
        return self.sort_key() > other.sort_key()

    def __ge__(self, other: Any) -> bool:
        if not isinstance(other, _EpisodeBase):
            return NotImplemented
        return self.sort_key() >= other.sort_key()


class NumberedEpisode(_EpisodeBase):
    """An episode identified by season and episode number."""

    kind: Literal["numbered"] = "numbered"
    season: int = Field(ge=0)
    episode: int = Field(ge=0)

    def sort_key(self) -> tuple[int, int, int, str]:
        return (0, self.season, self.episode, "")

    def __str__(self) -> str:
        return f"S{self.season:02} E{self.episode:02}"


class SpecialEpisode(_EpisodeBase):
    """Content that could not be numbered, keyed by its filename."""

    kind: Literal["special"] = "special"
    filename: str

    def sort_key(self) -> tuple[int, int, int, str]:
        return (1, 0, 0, self.filename)

    def __str__(self) -> str:
        return self.filename


Episode = Annotated[Union[NumberedEpisode, SpecialEpisode], Field(discriminator="kind")]


def numbered(season: int, episode: int) -> NumberedEpisode:
    """Shorthand constructor used throughout the library code."""

    return NumberedEpisode(season=season, episode=episode)


def parse_episode(filename: str) -> NumberedEpisode | SpecialEpisode:
    """Parse ``filename`` into an episode identifier.

    Openings, endings, OVAs and other extras short-circuit to a special
    episode. Anything that does not carry a recognisable episode number also
    falls back to a special episode, so this never raises.
    """

    if SPECIAL_RE.search(filename):
        return SpecialEpisode(filename=filename)

    match = EPISODE_RE.search(NOISE_RE.sub("#", filename))
    if match is None:
        return SpecialEpisode(filename=filename)

    season = match.group("s")
    return NumberedEpisode(
        season=int(season) if season is not None else 1,
        episode=int(match.group("e")),
    )


def episode_from_path(path: str | Path) -> NumberedEpisode | SpecialEpisode:
    """Parse the final component of ``path``."""

    return parse_episode(Path(path).name)
