"""MIDI byte decoding.

Chunk framing and header fields are checked here so malformed input maps to a
precise error; event decoding (delta times, running status, meta/SysEx) is
left to mido.
"""

import io
import logging
import struct
from dataclasses import dataclass, field

import mido

from .errors import CorruptTrack, MalformedHeader, TruncatedTrack, UnsupportedFormat

logger = logging.getLogger(__name__)

CHUNK_HEADER_SIZE = 8
MIN_HEADER_LENGTH = 6
SMPTE_DIVISION_BIT = 0x8000

NOTE_ON = "note_on"
NOTE_OFF = "note_off"
PROGRAM_CHANGE = "program_change"
TEMPO = "tempo"


@dataclass(frozen=True)
class RawEvent:
    kind: str
    track: int
    tick: int  # absolute, from the start of the track
    order: int  # position within the track, for stable tie-breaks
    channel: int = 0
    note: int = 0
    velocity: int = 0
    program: int = 0
    tempo: int = 0  # microseconds per quarter note


@dataclass
class DecodedTrack:
    index: int
    events: list[RawEvent] = field(default_factory=list)
    end_tick: int = 0
    name: str = ""


@dataclass
class DecodedMidi:
    format: int
    ticks_per_beat: int
    tracks: list[DecodedTrack] = field(default_factory=list)


def _check_chunks(data: bytes) -> tuple[int, int, int]:
    if len(data) < CHUNK_HEADER_SIZE + MIN_HEADER_LENGTH:
        raise MalformedHeader("file is too short to hold a MIDI header")
    tag, length = struct.unpack(">4sL", data[:CHUNK_HEADER_SIZE])
    if tag != b"MThd":
        raise MalformedHeader("MThd chunk not found; not a standard MIDI file")
    if length < MIN_HEADER_LENGTH:
        raise MalformedHeader(f"header chunk declares {length} bytes, expected at least 6")
    if CHUNK_HEADER_SIZE + length > len(data):
        raise MalformedHeader("header chunk runs past the end of the file")
    fmt, ntracks, division = struct.unpack(
        ">HHH", data[CHUNK_HEADER_SIZE:CHUNK_HEADER_SIZE + MIN_HEADER_LENGTH]
    )

    offset = CHUNK_HEADER_SIZE + length
    chunk_index = 0
    # Trailing padding shorter than a chunk header is tolerated.
    while len(data) - offset >= CHUNK_HEADER_SIZE:
        tag, length = struct.unpack(">4sL", data[offset:offset + CHUNK_HEADER_SIZE])
        end = offset + CHUNK_HEADER_SIZE + length
        if end > len(data):
            name = tag.decode("ascii", errors="replace")
            raise TruncatedTrack(
                f"chunk {chunk_index} ({name}) declares {length} bytes but only "
                f"{len(data) - offset - CHUNK_HEADER_SIZE} remain"
            )
        offset = end
        chunk_index += 1
    return fmt, ntracks, division


def _load_midi(data: bytes) -> mido.MidiFile:
    fmt, ntracks, division = _check_chunks(data)
    if fmt == 2:
        raise UnsupportedFormat("MIDI format 2 (independent sequences) is not supported; use type 0 or 1")
    if fmt not in (0, 1):
        raise MalformedHeader(f"unknown MIDI format {fmt}")
    if division & SMPTE_DIVISION_BIT:
        raise UnsupportedFormat("SMPTE time division is not supported")
    if division == 0:
        raise MalformedHeader("time division is zero")

    try:
        mid = mido.MidiFile(file=io.BytesIO(data))
    except EOFError as exc:
        raise TruncatedTrack(f"expected {ntracks} tracks but the data ends early") from exc
    except (OSError, ValueError, KeyError, IndexError) as exc:
        raise CorruptTrack(f"unreadable track data ({exc})") from exc
    return mid


def _decode_track(index: int, track: mido.MidiTrack) -> DecodedTrack:
    out = DecodedTrack(index=index)
    tick = 0
    for order, msg in enumerate(track):
        tick += msg.time
        if msg.type == "note_on":
            out.events.append(
                RawEvent(NOTE_ON, index, tick, order, channel=msg.channel, note=msg.note, velocity=msg.velocity)
            )
        elif msg.type == "note_off":
            out.events.append(
                RawEvent(NOTE_OFF, index, tick, order, channel=msg.channel, note=msg.note, velocity=msg.velocity)
            )
        elif msg.type == "program_change":
            out.events.append(RawEvent(PROGRAM_CHANGE, index, tick, order, channel=msg.channel, program=msg.program))
        elif msg.type == "set_tempo":
            out.events.append(RawEvent(TEMPO, index, tick, order, tempo=int(msg.tempo)))
        elif msg.type == "track_name" and not out.name:
            out.name = msg.name
    out.end_tick = tick
    return out


def decode_midi(data: bytes) -> DecodedMidi:
    mid = _load_midi(bytes(data))
    tracks = [_decode_track(i, track) for i, track in enumerate(mid.tracks)]
    logger.debug(
        "decoded MIDI type=%d tpb=%d tracks=%d events=%d",
        mid.type,
        mid.ticks_per_beat,
        len(tracks),
        sum(len(t.events) for t in tracks),
    )
    return DecodedMidi(format=mid.type, ticks_per_beat=mid.ticks_per_beat, tracks=tracks)
