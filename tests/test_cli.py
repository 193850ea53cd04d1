import json

import pytest

from midi_to_mml.midi_to_mml import _sanitize_filename, main


@pytest.fixture
def cli(tmp_path):
    settings = tmp_path / "settings.json"

    def _run(*args):
        return main(["midi-to-mml", *map(str, args), "--settings", str(settings)])

    _run.settings = settings
    return _run


@pytest.fixture
def song(tmp_path, overlap_midi):
    path = tmp_path / "song.mid"
    path.write_bytes(overlap_midi)
    return path


def test_prints_summary_and_voices(cli, song, capsys):
    assert cli(song) == 0
    out = capsys.readouterr().out

    assert "; MML summary: bpm=120, total_notes=2, voices=2" in out
    assert "[멜로디]\nT120C\n" in out
    assert "[화음1]\nT120R16.E\n" in out


def test_json_output(cli, song, capsys):
    assert cli(song, "--json") == 0
    data = json.loads(capsys.readouterr().out)

    assert data["success"] is True
    assert [v["content"] for v in data["voices"]] == ["T120C", "T120R16.E"]


def test_sort_by_chars(cli, song, capsys):
    assert cli(song, "--json", "--sort", "chars") == 0
    data = json.loads(capsys.readouterr().out)
    assert [v["name"] for v in data["voices"]] == ["화음1", "멜로디"]


def test_output_dir_writes_one_file_per_voice(cli, song, tmp_path, capsys):
    out_dir = tmp_path / "mml"
    assert cli(song, "--output-dir", out_dir) == 0

    assert (out_dir / "song_01_멜로디.mml").read_text(encoding="utf-8") == "T120C\n"
    assert (out_dir / "song_02_화음1.mml").read_text(encoding="utf-8") == "T120R16.E\n"
    assert "wrote 2 file(s)" in capsys.readouterr().out


def test_missing_input(cli, tmp_path, capsys):
    assert cli(tmp_path / "missing.mid") == 2
    assert capsys.readouterr().out.startswith("Error: cannot read")


def test_invalid_midi(cli, tmp_path, capsys):
    path = tmp_path / "bad.mid"
    path.write_bytes(b"RIFF....WAVE")

    assert cli(path) == 2
    assert capsys.readouterr().out.startswith("Error: MalformedHeader:")


def test_invalid_char_limit(cli, song, capsys):
    assert cli(song, "--char-limit", "0") == 2
    assert "InvalidOptions" in capsys.readouterr().out


def test_settings_supply_defaults_and_flags_override(cli, tmp_path, midi_bytes, notes, capsys):
    path = tmp_path / "long.mid"
    path.write_bytes(midi_bytes([notes([(60, 0, 2400)])]))
    cli.settings.write_text(json.dumps({"compress_mode": True}), encoding="utf-8")

    assert cli(path, "--json") == 0
    assert json.loads(capsys.readouterr().out)["voices"][0]["content"] == "T120C1"

    assert cli(path, "--json", "--no-compress") == 0
    assert json.loads(capsys.readouterr().out)["voices"][0]["content"] == "T120C1&C"


def test_trace_output(cli, song, tmp_path):
    trace = tmp_path / "trace.txt"
    assert cli(song, "--trace-output", trace) == 0
    text = trace.read_text(encoding="utf-8")

    assert "mode=normal" in text
    assert "[멜로디] chars=5 ticks=384" in text
    assert "tick=144 kind=note len=384 text=E" in text


def test_warnings_printed(cli, tmp_path, midi_bytes, notes, capsys):
    path = tmp_path / "chord.mid"
    path.write_bytes(midi_bytes([notes([(72, 0, 480), (67, 0, 480), (60, 0, 480)])]))

    assert cli(path, "--max-voices", "1") == 0
    assert "Warning: 2 notes dropped" in capsys.readouterr().out


def test_sanitize_filename():
    assert _sanitize_filename("멜로디 (Acoustic Grand Piano)") == "멜로디_(Acoustic_Grand_Piano)"
    assert _sanitize_filename("a/b:c") == "a_b_c"
