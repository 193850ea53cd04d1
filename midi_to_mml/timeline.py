"""Tick-to-time resolution and note pairing."""

import logging
from bisect import bisect_right
from collections import defaultdict
from dataclasses import dataclass, field

from .midi_decode import NOTE_OFF, NOTE_ON, PROGRAM_CHANGE, TEMPO, DecodedMidi, DecodedTrack

logger = logging.getLogger(__name__)

DEFAULT_TEMPO_US = 500000  # 120 BPM
DEFAULT_PROGRAM = 0  # Acoustic Grand Piano
DRUM_CHANNEL = 9  # GM percussion (channel 10)


@dataclass(frozen=True)
class Note:
    pitch: int
    velocity: int
    channel: int
    instrument: int
    start: float  # ms
    end: float  # ms
    track: int = 0

    @property
    def duration(self) -> float:
        return self.end - self.start

    def overlaps(self, other: "Note") -> bool:
        return self.start < other.end and other.start < self.end


class TempoMap:
    """Piecewise-constant tempo curve over absolute ticks."""

    def __init__(self, breakpoints: list[tuple[int, int]], ticks_per_beat: int) -> None:
        self.ticks_per_beat = ticks_per_beat
        merged: dict[int, int] = {}
        for tick, tempo in breakpoints:
            merged[tick] = tempo  # later events at the same tick win
        if 0 not in merged:
            merged[0] = DEFAULT_TEMPO_US
        self.breakpoints = sorted(merged.items())
        self._ticks = [tick for tick, _ in self.breakpoints]
        self.segments = []
        ms_at_start = 0.0
        for i, (tick, tempo) in enumerate(self.breakpoints):
            next_tick = self.breakpoints[i + 1][0] if i + 1 < len(self.breakpoints) else None
            self.segments.append(
                {
                    "tick_start": tick,
                    "tick_end": next_tick,
                    "tempo_us": tempo,
                    "ms_at_start": ms_at_start,
                }
            )
            if next_tick is not None:
                ms_at_start += self._span_ms(next_tick - tick, tempo)

    @classmethod
    def from_tracks(cls, tracks: list[DecodedTrack], ticks_per_beat: int) -> "TempoMap":
        events = [ev for track in tracks for ev in track.events if ev.kind == TEMPO]
        events.sort(key=lambda ev: (ev.tick, ev.track, ev.order))
        return cls([(ev.tick, ev.tempo) for ev in events], ticks_per_beat)

    def _span_ms(self, ticks: int, tempo_us: int) -> float:
        return ticks * tempo_us / self.ticks_per_beat / 1000.0

    @property
    def initial_tempo(self) -> int:
        return self.breakpoints[0][1]

    @property
    def bpm(self) -> int:
        return int(round(60_000_000 / self.initial_tempo))

    def tick_to_ms(self, tick: int) -> float:
        seg = self.segments[max(0, bisect_right(self._ticks, tick) - 1)]
        return seg["ms_at_start"] + self._span_ms(tick - seg["tick_start"], seg["tempo_us"])


@dataclass
class Timeline:
    notes: list[Note] = field(default_factory=list)
    tempo_map: TempoMap | None = None
    bpm: int = 120
    unterminated: int = 0


def _program_timelines(tracks: list[DecodedTrack]) -> dict[int, tuple[list[int], list[int]]]:
    events = [ev for track in tracks for ev in track.events if ev.kind == PROGRAM_CHANGE]
    events.sort(key=lambda ev: (ev.tick, ev.track, ev.order))
    timelines: dict[int, tuple[list[int], list[int]]] = {}
    for ev in events:
        ticks, programs = timelines.setdefault(ev.channel, ([], []))
        ticks.append(ev.tick)
        programs.append(ev.program)
    return timelines


def _program_at_tick(timeline: tuple[list[int], list[int]] | None, tick: int) -> int:
    if not timeline:
        return DEFAULT_PROGRAM
    ticks, programs = timeline
    idx = bisect_right(ticks, tick) - 1
    if idx < 0:
        return DEFAULT_PROGRAM
    return programs[idx]


def _pair_notes(track: DecodedTrack) -> tuple[list[tuple[int, int, int, int, int]], int]:
    """Match note-ons with note-offs on one track.

    Returns (channel, pitch, velocity, start_tick, end_tick) tuples and the
    number of notes that had to be closed at the end of the track.
    """
    pending: dict[tuple[int, int], list[tuple[int, int]]] = defaultdict(list)
    spans = []
    for ev in track.events:
        if ev.kind not in (NOTE_ON, NOTE_OFF):
            continue
        key = (ev.channel, ev.note)
        if ev.kind == NOTE_ON and ev.velocity > 0:
            pending[key].append((ev.tick, ev.velocity))
            continue
        stack = pending.get(key)
        if not stack:
            continue
        start_tick, velocity = stack.pop()
        spans.append((ev.channel, ev.note, velocity, start_tick, ev.tick))

    unterminated = 0
    for (channel, note), stack in pending.items():
        for start_tick, velocity in stack:
            logger.warning(
                "unterminated note: track=%d ch=%d note=%d start_tick=%d closed at tick %d",
                track.index,
                channel,
                note,
                start_tick,
                track.end_tick,
            )
            unterminated += 1
            spans.append((channel, note, velocity, start_tick, track.end_tick))
    return spans, unterminated


def resolve_timeline(decoded: DecodedMidi, skip_drums: bool = True) -> Timeline:
    tempo_map = TempoMap.from_tracks(decoded.tracks, decoded.ticks_per_beat)
    programs = _program_timelines(decoded.tracks)
    notes: list[Note] = []
    unterminated = 0

    for track in decoded.tracks:
        spans, hanging = _pair_notes(track)
        unterminated += hanging
        for channel, pitch, velocity, start_tick, end_tick in spans:
            if skip_drums and channel == DRUM_CHANNEL:
                continue
            if end_tick <= start_tick:
                logger.debug("dropping zero-length note %d at tick %d (track %d)", pitch, start_tick, track.index)
                continue
            notes.append(
                Note(
                    pitch=pitch,
                    velocity=velocity,
                    channel=channel,
                    instrument=_program_at_tick(programs.get(channel), start_tick),
                    start=tempo_map.tick_to_ms(start_tick),
                    end=tempo_map.tick_to_ms(end_tick),
                    track=track.index,
                )
            )

    notes.sort(key=lambda n: (n.start, -n.pitch, n.track, n.channel))
    return Timeline(notes=notes, tempo_map=tempo_map, bpm=tempo_map.bpm, unterminated=unterminated)
