import pytest

from midi_to_mml.mml import (
    NOTE,
    REST,
    TIE,
    EncodedVoice,
    encode_voice,
    length_ticks,
    mml_octave,
    ms_to_ticks,
    note_letter,
    parse_mml,
    ticks_to_seconds,
)
from midi_to_mml.timeline import Note
from midi_to_mml.voices import Voice


def _voice(*spans, name="멜로디"):
    """(pitch, start_ms, end_ms) triples -> Voice."""
    notes = tuple(
        Note(pitch=p, velocity=80, channel=0, instrument=0, start=float(s), end=float(e)) for p, s, e in spans
    )
    return Voice(name, notes)


def _encode(*spans, bpm=120, compress=False):
    return encode_voice(_voice(*spans), bpm, compress)


def test_time_conversions():
    assert ms_to_ticks(500, 120) == 384
    assert ms_to_ticks(10, 120) == 0
    assert ms_to_ticks(200, 120) == 144  # 153.6 ticks snaps to the 24-tick grid
    assert ticks_to_seconds(384, 120) == pytest.approx(0.5)
    assert length_ticks("8") == 192
    assert length_ticks("4", dotted=True) == 576


@pytest.mark.parametrize("pitch,octave", [(60, 4), (59, 3), (72, 5), (0, 1), (127, 8)])
def test_octave_is_clamped(pitch, octave):
    assert mml_octave(pitch) == octave


def test_note_letters_use_plus_for_sharps():
    assert [note_letter(p) for p in (60, 61, 66, 70, 71)] == ["C", "C+", "F+", "A+", "B"]


def test_quarter_notes_use_implicit_length():
    assert _encode((60, 0, 500), (62, 500, 1000), (64, 1000, 1500)).content == "T120CDE"


def test_default_length_picked_when_it_saves_characters():
    voice = _encode((60, 0, 250), (62, 250, 500), (64, 500, 750), (65, 750, 1000))
    assert voice.content == "T120L8CDEF"
    assert voice.note_count == 4


def test_octave_changes_emitted():
    assert _encode((72, 0, 500), (60, 500, 1000)).content == "T120O5CO4C"


def test_leading_rest():
    assert _encode((60, 500, 1000)).content == "T120RC"


def test_harmony_offset_rest_is_dotted():
    voice = _encode((64, 200, 700))
    assert voice.content == "T120R16.E"
    assert voice.duration == pytest.approx(0.6875)


def test_dotted_note():
    assert _encode((60, 0, 750)).content == "T120C4."


def test_long_note_tied_in_accurate_mode():
    voice = _encode((60, 0, 2500))
    assert voice.content == "T120C1&C"
    assert voice.note_count == 1
    assert [t.kind for t in voice.tokens[1:]] == [NOTE, TIE, NOTE]


def test_long_note_rounded_in_compress_mode():
    voice = _encode((60, 0, 2500), compress=True)
    assert voice.content == "T120C1"
    assert voice.duration == pytest.approx(2.0)


def test_high_octave_never_ties():
    assert _encode((84, 0, 2500)).content == "T120O6C1"


def test_octave_five_allows_short_ties_only():
    assert _encode((72, 0, 2500)).content == "T120O5C1&C"
    voice = _encode((72, 0, 2625))
    assert voice.content == "T120O5C1."
    assert voice.duration == pytest.approx(3.0)


def test_long_rest_accurate_and_compressed():
    assert _encode((60, 3000, 3500)).content == "T120R1.C"
    assert _encode((60, 3000, 3500), compress=True).content == "T120R1R2C"


def test_compress_mode_has_no_dotted_lengths():
    voice = _encode((60, 0, 750), (62, 750, 1250), (64, 1400, 1900), compress=True)
    assert "." not in voice.content


def test_compressed_note_stays_before_next_note():
    voice = _encode((60, 0, 1750), (62, 1750, 2250), compress=True)

    assert voice.content == "T120C2RD"
    assert voice.tokens[1].ticks == 768
    assert voice.duration == pytest.approx(2.0)


def test_very_short_note_gets_one_grid_step():
    assert _encode((60, 0, 10)).content == "T120C64"


def test_tempo_header_follows_bpm():
    assert _encode((60, 0, 400), bpm=150).content == "T150C"


def test_empty_voice():
    voice = encode_voice(Voice("화음1", ()), 120)
    assert voice.content == ""
    assert voice.note_count == 0


def test_parse_tracks_default_length_and_ties():
    tokens = parse_mml("T120L8CD&D4R")

    assert [(t.text, t.kind, t.ticks, t.onset) for t in tokens[2:]] == [
        ("C", NOTE, 192, True),
        ("D", NOTE, 192, True),
        ("&", TIE, 0, False),
        ("D4", NOTE, 384, False),
        ("R", REST, 192, False),
    ]


def test_parse_rejects_unknown_text():
    with pytest.raises(ValueError):
        parse_mml("T120C$")


def test_from_content_reads_tempo():
    voice = EncodedVoice.from_content("멜로디", "T90CDE")

    assert voice.bpm == 90
    assert voice.note_count == 3
    assert voice.total_ticks == 3 * 384
    assert voice.duration == pytest.approx(2.0)


def test_to_result():
    result = _encode((60, 0, 500), (62, 500, 1000)).to_result()

    assert (result.name, result.content, result.char_count, result.note_count) == ("멜로디", "T120CD", 6, 2)
    assert result.duration == pytest.approx(1.0)
