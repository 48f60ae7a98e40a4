"""Filename sanitisation used to build metadata search keys."""

from __future__ import annotations

RESOLUTION_TOKENS = ("720p", "720", "1080p", "1080", "Hi10p")
CODEC_TOKENS = ("x264", "x265", "H 264")
AUDIO_TOKENS = ("FLAC", "AAC", "AAC2.0", "2.1", "2.0", "5.1", "NF")
RIP_TOKENS = ("BrRip", "BluRay", "WEB-DL", "WEB")

# Longest first so "AAC2.0" wins over "AAC" and "1080p" over "1080".
NOISE_TOKENS: tuple[str, ...] = tuple(
    sorted(
        {token.upper() for token in RESOLUTION_TOKENS + CODEC_TOKENS + AUDIO_TOKENS + RIP_TOKENS},
        key=len,
        reverse=True,
    )
)

_CLOSING_BRACKETS = {"[": "]", "(": ")"}


def _match_noise(raw: str, position: int) -> int:
    """Return the length of the longest noise token starting at ``position``."""

    for token in NOISE_TOKENS:
        candidate = raw[position : position + len(token)]
        if (
            len(candidate) == len(token)
            and candidate.isascii()
            and candidate.upper() == token
        ):
            return len(token)
    return 0


def sanitize_name(raw: str) -> str:
    """Strip release noise from ``raw`` and return the remaining text.

    Bracketed segments are dropped, dots become spaces, runs of spaces
    collapse to one, and resolution/codec/audio/rip markers are removed.
    The result is not trimmed; callers strip it before using it as a key.
    """

    out: list[str] = []
    position = 0
    length = len(raw)

    while position < length:
        char = raw[position]

        if char in _CLOSING_BRACKETS:
            closing = raw.find(_CLOSING_BRACKETS[char], position + 1)
            if closing == -1:
                break
            position = closing + 1
            continue

        if char == " ":
            while position < length and raw[position] == " ":
                position += 1
            if position < length:
                out.append(" ")
            continue

        if char == ".":
            out.append(" ")
            position += 1
            continue

        consumed = _match_noise(raw, position)
        if consumed:
            position += consumed
            continue

        out.append(char)
        position += 1

    return "".join(out)


def search_key(raw: str) -> str:
    """Return the trimmed, sanitised form of ``raw``."""

    return sanitize_name(raw).strip()
