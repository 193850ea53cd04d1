"""Display ordering for converted voices. Never feeds back into conversion."""

import re

from .models import VoiceResult
from .voices import HARMONY, MELODY

SORT_ORDERS = ("default", "name", "instrument", "chars")

_NAME_RE = re.compile(r"^(?P<role>\S+?)(?P<num>\d*)(?: \((?P<instrument>.*)\))?$")


def voice_role(name: str) -> tuple[int, int]:
    """(0, 0) for the melody, (1, n) for 화음n, (2, 0) for anything else."""
    m = _NAME_RE.match(name)
    if not m:
        return (2, 0)
    role = m.group("role")
    if role == MELODY:
        return (0, 0)
    if role == HARMONY and m.group("num"):
        return (1, int(m.group("num")))
    return (2, 0)


def voice_instrument(name: str) -> str:
    m = _NAME_RE.match(name)
    if not m or m.group("instrument") is None:
        return ""
    return m.group("instrument")


def sort_voices(voices: list[VoiceResult], order: str = "default") -> list[VoiceResult]:
    if order == "name":
        return sorted(voices, key=lambda v: (voice_role(v.name), v.name))
    if order == "instrument":
        return sorted(voices, key=lambda v: (voice_instrument(v.name), voice_role(v.name)))
    if order == "chars":
        return sorted(voices, key=lambda v: -v.char_count)
    return list(voices)
