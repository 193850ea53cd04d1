#!/usr/bin/env python
"""MIDI -> MML converter.

Stage 1: MIDI decoding + tempo-aware note timeline.
Stage 2: Split polyphony into monophonic voices (by onset or by instrument).
Stage 3: Emit MML per voice, then fit every voice into the character limit
         and keep the cut-off aligned across voices.
"""

import argparse
import json
import logging
import re
import sys
from pathlib import Path

from .errors import ConversionError
from .limiter import limit_voices
from .midi_decode import decode_midi
from .mml import EncodedVoice, encode_voice, ticks_to_seconds
from .models import ConversionOptions, ConversionResult
from .settings import load_settings, options_from_settings
from .timeline import resolve_timeline
from .voice_view import SORT_ORDERS, sort_voices
from .voices import MELODY_POLICIES, MODES, partition_voices

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _convert(data: bytes, opts: ConversionOptions) -> tuple[ConversionResult, list[EncodedVoice]]:
    decoded = decode_midi(data)
    timeline = resolve_timeline(decoded, skip_drums=opts.skip_drums)
    warnings: list[str] = []

    voices, pstats = partition_voices(timeline.notes, opts.mode, opts.melody_policy, opts.max_voices)
    if not voices:
        logger.info("no notes found (tracks=%d)", len(decoded.tracks))
        return ConversionResult(success=True, bpm=timeline.bpm, warnings=["no notes found"]), []
    if pstats["dropped"]:
        warnings.append(f"{pstats['dropped']} notes dropped (more than {opts.max_voices} simultaneous voices)")

    encoded = [encode_voice(v, timeline.bpm, opts.compress_mode) for v in voices]
    total_notes = sum(v.note_count for v in encoded)
    limited, lstats = limit_voices(encoded, opts.char_limit)
    if lstats["truncated"]:
        cutoff = ticks_to_seconds(lstats["target_ticks"], timeline.bpm)
        warnings.append(
            f"{lstats['truncated']} voice(s) exceeded {opts.char_limit} characters; "
            f"all voices cut at {cutoff:.2f}s"
        )
    if lstats["emptied"]:
        warnings.append(f"{lstats['emptied']} voice(s) left empty after truncation were removed")

    logger.info(
        "converted: bpm=%d notes=%d voices=%d mode=%s",
        timeline.bpm,
        total_notes,
        len(limited),
        opts.mode,
    )
    result = ConversionResult(
        success=True,
        voices=[v.to_result() for v in limited],
        bpm=timeline.bpm,
        total_notes=total_notes,
        warnings=warnings,
    )
    return result, limited


def convert(midi_bytes: bytes, options: ConversionOptions | dict | None = None) -> ConversionResult:
    result, _ = _convert_with_tokens(midi_bytes, options)
    return result


def _convert_with_tokens(
    midi_bytes: bytes, options: ConversionOptions | dict | None
) -> tuple[ConversionResult, list[EncodedVoice]]:
    try:
        opts = options if isinstance(options, ConversionOptions) else ConversionOptions.from_dict(options)
        opts.validate()
        return _convert(bytes(midi_bytes), opts)
    except ConversionError as exc:
        logger.info("conversion failed: %s", exc)
        return ConversionResult.failure(f"{type(exc).__name__}: {exc}"), []
    except Exception as exc:
        logger.exception("unexpected failure while converting")
        return ConversionResult.failure(f"InternalError: {exc}"), []


def _format_summary(result: ConversionResult, comment: str = ";") -> str:
    lines = [
        f"{comment} MML summary: bpm={result.bpm}, total_notes={result.total_notes}, "
        f"voices={len(result.voices)}",
    ]
    for v in result.voices:
        lines.append(
            f"{comment} {v.name}: chars={v.char_count} notes={v.note_count} duration={v.duration:.2f}s"
        )
    return "\n".join(lines) + "\n"


def _sanitize_filename(name: str) -> str:
    name = re.sub(r"[^\w\s\-\.\(\)]+", "_", name.strip())
    return re.sub(r"\s+", "_", name)


def _write_voices(out_dir: Path, stem: str, result: ConversionResult) -> list[Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for i, v in enumerate(result.voices, start=1):
        path = out_dir / f"{stem}_{i:02d}_{_sanitize_filename(v.name)}.mml"
        path.write_text(v.content + "\n", encoding="utf-8")
        written.append(path)
    return written


def _write_trace(path: str, header_lines: list[str], voices: list[EncodedVoice]) -> None:
    if not path:
        return
    lines = list(header_lines)
    lines.append("")
    for voice in voices:
        lines.append(f"[{voice.name}] chars={voice.char_count} ticks={voice.total_ticks}")
        tick = 0
        for tok in voice.tokens:
            lines.append(f"tick={tick} kind={tok.kind} len={tok.ticks} text={tok.text}")
            tick += tok.ticks
        lines.append("")
    with open(path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines) + "\n")


def _setup_logging(level: str, log_file: str | None) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(level=getattr(logging, level.upper(), logging.WARNING), format=LOG_FORMAT, handlers=handlers)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="MIDI -> MML (monophonic voices for game clients)")
    parser.add_argument("input_mid")
    parser.add_argument("--settings", type=str, default=None, help="Settings JSON used for defaults")
    parser.add_argument("--mode", choices=MODES, default=None, help="normal: split by overlap, instrument: per program")
    parser.add_argument("--char-limit", type=int, default=None, help="Max characters per voice")
    parser.add_argument(
        "--compress",
        dest="compress_mode",
        action="store_true",
        default=None,
        help="Favor fewer characters (no dotted lengths, no ties)",
    )
    parser.add_argument("--no-compress", dest="compress_mode", action="store_false", help="Favor timing accuracy")
    parser.add_argument("--melody-policy", choices=MELODY_POLICIES, default=None, help="Which simultaneous note leads the melody")
    parser.add_argument("--max-voices", type=int, default=None, help="Drop notes beyond this many simultaneous voices")
    parser.add_argument("--keep-drums", action="store_true", default=False, help="Keep MIDI channel 10 percussion notes")
    parser.add_argument("--sort", choices=SORT_ORDERS, default=None, help="Display order of voices")
    parser.add_argument("--output-dir", type=str, default="", help="Write one .mml file per voice into this directory")
    parser.add_argument("--json", action="store_true", default=False, help="Print the result as JSON")
    parser.add_argument("--trace-output", type=str, default="", help="Write a per-voice token trace to this file")
    parser.add_argument("--log-level", type=str, default="warning", help="Logging level (debug, info, warning)")
    parser.add_argument("--log-file", type=str, default=None, help="Also write logs to this file")
    return parser.parse_args(argv[1:])


def main(argv: list[str]) -> int:
    args = _parse_args(argv)
    _setup_logging(args.log_level, args.log_file)

    settings = load_settings(args.settings)
    opts = options_from_settings(settings)
    if args.mode is not None:
        opts.mode = args.mode
    if args.char_limit is not None:
        opts.char_limit = args.char_limit
    if args.compress_mode is not None:
        opts.compress_mode = args.compress_mode
    if args.melody_policy is not None:
        opts.melody_policy = args.melody_policy
    if args.max_voices is not None:
        opts.max_voices = args.max_voices
    opts.skip_drums = not args.keep_drums
    sort_order = args.sort or settings.get("sort", "default")

    input_path = Path(args.input_mid)
    try:
        data = input_path.read_bytes()
    except OSError as exc:
        print(f"Error: cannot read {input_path} ({exc}).")
        return 2

    result, encoded = _convert_with_tokens(data, opts)
    if not result.success:
        print(f"Error: {result.error}")
        return 2
    result.voices = sort_voices(result.voices, sort_order)

    if args.json:
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    else:
        for w in result.warnings:
            print(f"Warning: {w}")
        print(_format_summary(result), end="")
        if not args.output_dir:
            for v in result.voices:
                print(f"[{v.name}]")
                print(v.content)

    if args.output_dir:
        written = _write_voices(Path(args.output_dir), input_path.stem, result)
        if not args.json:
            print(f"; wrote {len(written)} file(s) to {args.output_dir}")

    if args.trace_output:
        header_lines = [
            f"input={input_path}",
            f"mode={opts.mode}",
            f"char_limit={opts.char_limit}",
            f"compress_mode={opts.compress_mode}",
            f"melody_policy={opts.melody_policy}",
            f"bpm={result.bpm}",
        ]
        _write_trace(args.trace_output, header_lines, encoded)

    return 0


def run() -> None:
    raise SystemExit(main(sys.argv))


if __name__ == "__main__":
    run()
