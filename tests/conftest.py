import io
import struct

import mido
import pytest

TPB = 480  # at the default 120 BPM one beat is 500 ms


def _rank(msg) -> int:
    if msg.type == "note_on" and msg.velocity > 0:
        return 2
    if msg.type in ("note_on", "note_off"):
        return 1
    return 0


def _track(*event_lists) -> mido.MidiTrack:
    """Merge (tick, message) lists into a delta-timed track.

    At equal ticks meta/program messages come first, then note-offs, then
    note-ons.
    """
    events = sorted((ev for lst in event_lists for ev in lst), key=lambda ev: (ev[0], _rank(ev[1])))
    track = mido.MidiTrack()
    last = 0
    for tick, msg in events:
        track.append(msg.copy(time=tick - last))
        last = tick
    return track


def _notes(notes, channel: int = 0) -> list:
    """(pitch, start_tick, end_tick[, velocity]) -> (tick, message) pairs."""
    out = []
    for pitch, start, end, *rest in notes:
        velocity = rest[0] if rest else 80
        out.append((start, mido.Message("note_on", note=pitch, velocity=velocity, channel=channel)))
        out.append((end, mido.Message("note_off", note=pitch, velocity=0, channel=channel)))
    return out


def _midi_bytes(tracks, ticks_per_beat: int = TPB, midi_type: int = 1) -> bytes:
    mid = mido.MidiFile(type=midi_type, ticks_per_beat=ticks_per_beat)
    for track in tracks:
        if not isinstance(track, mido.MidiTrack):
            track = _track(track)
        mid.tracks.append(track)
    buf = io.BytesIO()
    mid.save(file=buf)
    return buf.getvalue()


def _raw_midi(track_data: list[bytes], fmt: int = 0, division: int = TPB, ntracks: int | None = None) -> bytes:
    count = len(track_data) if ntracks is None else ntracks
    out = b"MThd" + struct.pack(">LHHH", 6, fmt, count, division)
    for data in track_data:
        out += b"MTrk" + struct.pack(">L", len(data)) + data
    return out


@pytest.fixture
def track():
    return _track


@pytest.fixture
def notes():
    return _notes


@pytest.fixture
def midi_bytes():
    return _midi_bytes


@pytest.fixture
def raw_midi():
    return _raw_midi


@pytest.fixture
def tempo():
    def _tempo(tick: int, tempo_us: int):
        return [(tick, mido.MetaMessage("set_tempo", tempo=tempo_us))]

    return _tempo


@pytest.fixture
def program():
    def _program(tick: int, number: int, channel: int = 0):
        return [(tick, mido.Message("program_change", program=number, channel=channel))]

    return _program


@pytest.fixture
def overlap_midi(midi_bytes, notes):
    """Pitch 60 at 0-500 ms and pitch 64 at 200-700 ms."""
    return midi_bytes([notes([(60, 0, 480), (64, 192, 672)])])
