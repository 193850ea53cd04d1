"""MIDI -> monophonic MML conversion."""

from .midi_to_mml import convert
from .models import ConversionOptions, ConversionResult, VoiceResult

__all__ = ["convert", "ConversionOptions", "ConversionResult", "VoiceResult"]
