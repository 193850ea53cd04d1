"""Monophonic MML generation and tokenizing.

MML time base: 384 ticks per quarter note, quantized to a 24-tick grid
(a 64th note). Output dialect:

    T<bpm>        tempo
    L<n>          default length for tokens without a suffix
    O<n>          octave (the client starts at O4)
    C D+ ... B    notes, ``+`` for sharps, optional length suffix and ``.``
    R             rest
    &             tie to the next note token
"""

import re
from collections import Counter
from dataclasses import dataclass

from .models import VoiceResult
from .voices import Voice

TICKS_PER_QUARTER = 384
GRID = 24
DEFAULT_BPM = 120
DEFAULT_OCTAVE = 4
DEFAULT_LENGTH = "4"
MIN_OCTAVE = 1
MAX_OCTAVE = 8
MAX_HIGH_TIES = 2  # octave 5: short ties only, long chains blur in the client

NOTE_NAMES = ["C", "C+", "D", "D+", "E", "F", "F+", "G", "G+", "A", "A+", "B"]

ACCURATE_LENGTHS = {
    2304: "1.",
    1536: "1",
    1152: "2.",
    768: "2",
    576: "4.",
    384: "4",
    288: "8.",
    192: "8",
    144: "16.",
    96: "16",
    72: "32.",
    48: "32",
    36: "64.",
    24: "64",
}
COMPRESSED_LENGTHS = {ticks: text for ticks, text in ACCURATE_LENGTHS.items() if not text.endswith(".")}

TEMPO = "tempo"
OCTAVE = "octave"
LENGTH = "length"
NOTE = "note"
REST = "rest"
TIE = "tie"

_TOKEN_RE = re.compile(r"([A-G][+#-]?|R)(\d*)(\.?)|([TOLV])(\d+)|(&)")


@dataclass(frozen=True)
class Token:
    text: str
    kind: str
    ticks: int = 0
    onset: bool = False  # note token that starts a new note (not a tie continuation)


def ms_to_ticks(ms: float, bpm: int) -> int:
    ticks = ms * bpm * TICKS_PER_QUARTER / 60000.0
    return int(round(ticks / GRID)) * GRID


def ticks_to_seconds(ticks: int, bpm: int) -> float:
    return ticks * 60.0 / (bpm * TICKS_PER_QUARTER)


def length_ticks(text: str, dotted: bool = False) -> int:
    ticks = TICKS_PER_QUARTER * 4 // int(text)
    return ticks * 3 // 2 if dotted else ticks


def mml_octave(pitch: int) -> int:
    return max(MIN_OCTAVE, min(MAX_OCTAVE, pitch // 12 - 1))


def note_letter(pitch: int) -> str:
    return NOTE_NAMES[pitch % 12]


@dataclass(frozen=True)
class EncodedVoice:
    name: str
    tokens: tuple[Token, ...]
    bpm: int = DEFAULT_BPM

    @property
    def content(self) -> str:
        return "".join(t.text for t in self.tokens)

    @property
    def char_count(self) -> int:
        return len(self.content)

    @property
    def note_count(self) -> int:
        return sum(1 for t in self.tokens if t.onset)

    @property
    def total_ticks(self) -> int:
        return sum(t.ticks for t in self.tokens)

    @property
    def duration(self) -> float:
        return ticks_to_seconds(self.total_ticks, self.bpm)

    def with_tokens(self, tokens) -> "EncodedVoice":
        return EncodedVoice(self.name, tuple(tokens), self.bpm)

    def to_result(self) -> VoiceResult:
        return VoiceResult(
            name=self.name,
            content=self.content,
            char_count=self.char_count,
            note_count=self.note_count,
            duration=self.duration,
        )

    @classmethod
    def from_content(cls, name: str, content: str) -> "EncodedVoice":
        tokens = parse_mml(content)
        bpm = DEFAULT_BPM
        for tok in tokens:
            if tok.kind == TEMPO:
                bpm = int(tok.text[1:])
                break
        return cls(name, tuple(tokens), bpm)


def parse_mml(content: str) -> list[Token]:
    tokens = []
    default_ticks = length_ticks(DEFAULT_LENGTH)
    tied = False
    pos = 0
    while pos < len(content):
        m = _TOKEN_RE.match(content, pos)
        if not m:
            raise ValueError(f"unexpected MML text at offset {pos}: {content[pos:pos + 8]!r}")
        pos = m.end()
        name, digits, dot, directive, value, tie = m.groups()
        if tie:
            tokens.append(Token("&", TIE))
            tied = True
            continue
        if directive:
            if directive == "L":
                default_ticks = length_ticks(value)
                tokens.append(Token(m.group(0), LENGTH))
            elif directive == "O":
                tokens.append(Token(m.group(0), OCTAVE))
            else:
                tokens.append(Token(m.group(0), TEMPO))
            continue
        ticks = length_ticks(digits, bool(dot)) if digits else default_ticks
        if name == "R":
            tokens.append(Token(m.group(0), REST, ticks))
        else:
            tokens.append(Token(m.group(0), NOTE, ticks, onset=not tied))
        tied = False
    return tokens


def _nearest_length(ticks: int, lengths: dict[int, str], limit: int | None = None) -> int:
    candidates = [t for t in lengths if limit is None or t <= limit] or [min(lengths)]
    # Ties go to the shorter length so a note never spills into the next one.
    return min(candidates, key=lambda t: (abs(t - ticks), t))


def _tie_pieces(ticks: int, lengths: dict[int, str]) -> list[int]:
    pieces = []
    remaining = ticks
    for length in sorted(lengths, reverse=True):
        while remaining >= length:
            pieces.append(length)
            remaining -= length
    return pieces or [min(lengths)]


def _rest_pieces(ticks: int, lengths: dict[int, str], compress: bool) -> list[int]:
    if not compress:
        return _tie_pieces(ticks, lengths)
    longest = max(lengths)
    pieces = []
    remaining = ticks
    while remaining >= longest:
        pieces.append(longest)
        remaining -= longest
    if remaining >= min(lengths):
        pieces.append(_nearest_length(remaining, lengths, limit=remaining))
    return pieces


def _note_pieces(ticks: int, octave: int, lengths: dict[int, str], compress: bool, limit: int | None) -> list[int]:
    if limit is not None and limit >= GRID:
        ticks = min(ticks, limit)
    if ticks in lengths:
        return [ticks]
    if compress or octave >= 6:
        return [_nearest_length(ticks, lengths, limit)]
    pieces = _tie_pieces(ticks, lengths)
    if octave == 5 and len(pieces) > MAX_HIGH_TIES:
        return [_nearest_length(ticks, lengths, limit)]
    return pieces


def _quantized_spans(notes, bpm: int) -> list[tuple[int, int, int]]:
    spans = []
    for note in notes:
        start = ms_to_ticks(note.start, bpm)
        end = ms_to_ticks(note.end, bpm)
        if end <= start:
            end = start + GRID
        spans.append((note.pitch, start, end))
    return spans


def _pick_default_length(events: list[dict], lengths: dict[int, str]) -> str:
    counts = Counter(lengths[p] for ev in events for p in ev["pieces"])
    best = DEFAULT_LENGTH
    best_saving = counts.get(DEFAULT_LENGTH, 0) * len(DEFAULT_LENGTH)
    for text, count in counts.items():
        if text.endswith(".") or text == DEFAULT_LENGTH:
            continue
        # An L directive costs its own characters.
        saving = count * len(text) - (1 + len(text))
        if saving > best_saving:
            best, best_saving = text, saving
    return best


def _length_suffix(ticks: int, lengths: dict[int, str], default: str) -> str:
    text = lengths[ticks]
    return "" if text == default else text


def encode_voice(voice: Voice, bpm: int, compress: bool = False) -> EncodedVoice:
    if not voice.notes:
        return EncodedVoice(voice.name, (), bpm)
    lengths = COMPRESSED_LENGTHS if compress else ACCURATE_LENGTHS
    spans = _quantized_spans(voice.notes, bpm)

    events = []
    cursor = 0
    for i, (pitch, start, end) in enumerate(spans):
        if start > cursor:
            pieces = _rest_pieces(start - cursor, lengths, compress)
            if pieces:
                events.append({"kind": REST, "pieces": pieces})
                cursor += sum(pieces)
        next_start = spans[i + 1][1] if i + 1 < len(spans) else None
        limit = None if next_start is None else next_start - cursor
        target = max(GRID, end - max(cursor, start))
        pieces = _note_pieces(target, mml_octave(pitch), lengths, compress, limit)
        events.append({"kind": NOTE, "pitch": pitch, "pieces": pieces})
        cursor += sum(pieces)

    default = _pick_default_length(events, lengths)
    tokens = [Token(f"T{bpm}", TEMPO)]
    if default != DEFAULT_LENGTH:
        tokens.append(Token(f"L{default}", LENGTH))
    octave = DEFAULT_OCTAVE
    for ev in events:
        if ev["kind"] == REST:
            for p in ev["pieces"]:
                tokens.append(Token("R" + _length_suffix(p, lengths, default), REST, p))
            continue
        note_octave = mml_octave(ev["pitch"])
        if note_octave != octave:
            tokens.append(Token(f"O{note_octave}", OCTAVE))
            octave = note_octave
        letter = note_letter(ev["pitch"])
        for n, p in enumerate(ev["pieces"]):
            if n:
                tokens.append(Token("&", TIE))
            tokens.append(Token(letter + _length_suffix(p, lengths, default), NOTE, p, onset=n == 0))
    return EncodedVoice(voice.name, tuple(tokens), bpm)
