"""Split overlapping notes into monophonic voices."""

import logging
from dataclasses import dataclass
from itertools import groupby

import pretty_midi

from .timeline import Note

logger = logging.getLogger(__name__)

MELODY = "멜로디"
HARMONY = "화음"

MODE_NORMAL = "normal"
MODE_INSTRUMENT = "instrument"
MODES = (MODE_NORMAL, MODE_INSTRUMENT)

POLICY_FIRST = "first"
POLICY_CONTOUR = "contour"
MELODY_POLICIES = (POLICY_FIRST, POLICY_CONTOUR)
CONTOUR_RANGE = 12  # semitones


@dataclass(frozen=True)
class Voice:
    name: str
    notes: tuple[Note, ...]
    instrument: int | None = None

    @property
    def end(self) -> float:
        return self.notes[-1].end if self.notes else 0.0


def instrument_name(program: int) -> str:
    return pretty_midi.program_to_instrument_name(program)


def slot_name(index: int) -> str:
    return MELODY if index == 0 else f"{HARMONY}{index}"


def _dedupe_unisons(notes: list[Note]) -> list[Note]:
    # Same pitch struck at the same instant (doubled parts): keep the loudest.
    best: dict[tuple[float, int], Note] = {}
    for note in notes:
        key = (note.start, note.pitch)
        kept = best.get(key)
        if kept is None or note.velocity > kept.velocity:
            best[key] = note
    return list(best.values())


def _order_onset_group(group: list[Note], policy: str, last_melody: int | None) -> list[Note]:
    """Decide which simultaneous note claims the melody slot first.

    ``group`` is sorted by descending pitch. With the default policy the
    highest note goes first; ``contour`` keeps the melody close to its
    previous pitch, then places the bass, then the rest by velocity.
    """
    if policy != POLICY_CONTOUR or len(group) == 1:
        return group
    melody = group[0]
    if last_melody is not None:
        close = [n for n in group if abs(n.pitch - last_melody) <= CONTOUR_RANGE]
        if close:
            melody = close[0]
    ordered = [melody]
    bass = group[-1]
    if bass is not melody:
        ordered.append(bass)
    rest = [n for n in group if n is not melody and n is not bass]
    rest.sort(key=lambda n: (-n.velocity, -n.pitch))
    return ordered + rest


def _free_slot(note: Note, slot_ends: list[float]) -> int | None:
    for i, end in enumerate(slot_ends):
        if end <= note.start:
            return i
    return None


def _assign_slots(notes: list[Note], policy: str, max_voices: int | None) -> tuple[list[list[Note]], int]:
    slots: list[list[Note]] = []
    slot_ends: list[float] = []
    last_melody = None
    dropped = 0

    ordered = sorted(notes, key=lambda n: (n.start, -n.pitch, n.track, n.channel))
    for _, onset in groupby(ordered, key=lambda n: n.start):
        for note in _order_onset_group(list(onset), policy, last_melody):
            idx = _free_slot(note, slot_ends)
            if idx is None:
                if max_voices is not None and len(slots) >= max_voices:
                    dropped += 1
                    continue
                slots.append([])
                slot_ends.append(0.0)
                idx = len(slots) - 1
            slots[idx].append(note)
            slot_ends[idx] = note.end
            if idx == 0:
                last_melody = note.pitch
    return slots, dropped


def partition_voices(
    notes: list[Note],
    mode: str = MODE_NORMAL,
    melody_policy: str = POLICY_FIRST,
    max_voices: int | None = None,
) -> tuple[list[Voice], dict]:
    if mode not in MODES:
        raise ValueError(f"unknown mode: {mode}")
    unique = _dedupe_unisons(notes)
    stats = {"unisons": len(notes) - len(unique), "dropped": 0, "max_polyphony": 0}

    if mode == MODE_NORMAL:
        slots, dropped = _assign_slots(unique, melody_policy, max_voices)
        stats["dropped"] = dropped
        stats["max_polyphony"] = len(slots)
        voices = [Voice(slot_name(i), tuple(slot)) for i, slot in enumerate(slots) if slot]
        return voices, stats

    groups: dict[int, list[Note]] = {}
    for note in sorted(unique, key=lambda n: (n.start, -n.pitch, n.track, n.channel)):
        groups.setdefault(note.instrument, []).append(note)

    voices = []
    for program, group in groups.items():
        slots, dropped = _assign_slots(group, melody_policy, max_voices)
        stats["dropped"] += dropped
        stats["max_polyphony"] = max(stats["max_polyphony"], len(slots))
        label = instrument_name(program)
        for i, slot in enumerate(slots):
            if slot:
                voices.append(Voice(f"{slot_name(i)} ({label})", tuple(slot), instrument=program))
    logger.debug("instrument mode: %d instruments -> %d voices", len(groups), len(voices))
    return voices, stats
