import json
import logging

from midi_to_mml.settings import DEFAULT_SETTINGS, load_settings, options_from_settings, save_settings


def test_missing_file_gives_defaults(tmp_path):
    assert load_settings(tmp_path / "nope.json") == DEFAULT_SETTINGS


def test_round_trip(tmp_path):
    path = tmp_path / "cfg" / "settings.json"
    save_settings({"mode": "instrument", "char_limit": 800, "sort": "chars", "window": "wide"}, path)

    saved = json.loads(path.read_text(encoding="utf-8"))
    assert "window" not in saved
    loaded = load_settings(path)
    assert loaded["mode"] == "instrument"
    assert loaded["char_limit"] == 800
    assert loaded["sort"] == "chars"
    assert loaded["compress_mode"] is False


def test_corrupt_file_falls_back_to_defaults(tmp_path, caplog):
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")

    with caplog.at_level(logging.WARNING, logger="midi_to_mml.settings"):
        assert load_settings(path) == DEFAULT_SETTINGS
    assert "ignoring unreadable settings file" in caplog.text


def test_non_object_json_ignored(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")
    assert load_settings(path) == DEFAULT_SETTINGS


def test_unknown_sort_reset(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"sort": "random", "melody_policy": "contour"}), encoding="utf-8")

    settings = load_settings(path)
    assert settings["sort"] == "default"
    assert settings["melody_policy"] == "contour"


def test_options_from_settings():
    opts = options_from_settings({**DEFAULT_SETTINGS, "compress_mode": True, "char_limit": 500})

    assert opts.compress_mode is True
    assert opts.char_limit == 500
    assert opts.mode == "normal"
    opts.validate()
