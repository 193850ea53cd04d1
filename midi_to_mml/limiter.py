"""Character-limit truncation and cross-voice duration sync."""

import logging

from .mml import NOTE, EncodedVoice, Token

logger = logging.getLogger(__name__)


def _trim_tail(tokens: list[Token]) -> list[Token]:
    # A cut voice must end on a note: no dangling T/O/L, tie or trailing rest.
    while tokens and tokens[-1].kind != NOTE:
        tokens.pop()
    return tokens


def truncate_voice(voice: EncodedVoice, char_limit: int) -> EncodedVoice:
    if voice.char_count <= char_limit:
        return voice
    kept = []
    size = 0
    for tok in voice.tokens:
        if size + len(tok.text) > char_limit:
            break
        kept.append(tok)
        size += len(tok.text)
    return voice.with_tokens(_trim_tail(kept))


def truncate_to_ticks(voice: EncodedVoice, max_ticks: int) -> EncodedVoice:
    if voice.total_ticks <= max_ticks:
        return voice
    kept = []
    elapsed = 0
    for tok in voice.tokens:
        if elapsed + tok.ticks > max_ticks:
            break
        kept.append(tok)
        elapsed += tok.ticks
    return voice.with_tokens(_trim_tail(kept))


def limit_voices(voices: list[EncodedVoice], char_limit: int) -> tuple[list[EncodedVoice], dict]:
    """Fit every voice into ``char_limit`` and keep the cut-off aligned.

    When any voice had to be cut, all voices are trimmed to the shortest
    truncated voice so they stop together. Voices left without notes are
    dropped.
    """
    limited = [truncate_voice(v, char_limit) for v in voices]
    truncated = [cut for full, cut in zip(voices, limited) if cut is not full]
    stats = {"truncated": len(truncated), "synced": 0, "emptied": 0, "target_ticks": None}

    if truncated:
        target = min(v.total_ticks for v in truncated)
        stats["target_ticks"] = target
        synced = []
        for v in limited:
            cut = truncate_to_ticks(v, target)
            if cut is not v:
                stats["synced"] += 1
            synced.append(cut)
        limited = synced
        logger.info(
            "char limit %d: %d voice(s) truncated, %d trimmed to %d ticks",
            char_limit,
            len(truncated),
            stats["synced"],
            target,
        )

    kept = [v for v in limited if v.note_count > 0]
    stats["emptied"] = len(limited) - len(kept)
    return kept, stats
