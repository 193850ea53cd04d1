"""Error taxonomy for midi_to_mml.

Fatal errors abort a conversion and are reported back as the result's
``error`` string. Recoverable conditions (unterminated notes, files without
notes) are logged or returned as an empty result instead.
"""


class ConversionError(Exception):
    """Base class for failures reported through ConversionResult.error."""


class InvalidOptions(ConversionError):
    pass


class MidiDecodeError(ConversionError):
    pass


class MalformedHeader(MidiDecodeError):
    pass


class TruncatedTrack(MidiDecodeError):
    pass


class UnsupportedFormat(MidiDecodeError):
    pass


class CorruptTrack(MidiDecodeError):
    pass
