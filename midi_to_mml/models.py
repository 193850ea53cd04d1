from dataclasses import asdict, dataclass, field, fields

from .errors import InvalidOptions
from .voices import MELODY_POLICIES, MODE_NORMAL, MODES, POLICY_FIRST

DEFAULT_CHAR_LIMIT = 1200


@dataclass
class ConversionOptions:
    mode: str = MODE_NORMAL
    char_limit: int = DEFAULT_CHAR_LIMIT
    compress_mode: bool = False
    melody_policy: str = POLICY_FIRST
    max_voices: int | None = None
    skip_drums: bool = True

    @classmethod
    def from_dict(cls, data: dict | None) -> "ConversionOptions":
        """Build options from a settings/JSON mapping, ignoring unknown keys."""
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def validate(self) -> None:
        if self.mode not in MODES:
            raise InvalidOptions(f"unknown mode {self.mode!r} (expected one of {', '.join(MODES)})")
        if self.melody_policy not in MELODY_POLICIES:
            raise InvalidOptions(f"unknown melody policy {self.melody_policy!r}")
        if isinstance(self.char_limit, bool) or not isinstance(self.char_limit, int) or self.char_limit < 1:
            raise InvalidOptions(f"char_limit must be a positive integer, got {self.char_limit!r}")
        if self.max_voices is not None and (not isinstance(self.max_voices, int) or self.max_voices < 1):
            raise InvalidOptions(f"max_voices must be a positive integer, got {self.max_voices!r}")


@dataclass
class VoiceResult:
    name: str
    content: str
    char_count: int
    note_count: int
    duration: float  # seconds


@dataclass
class ConversionResult:
    success: bool
    voices: list[VoiceResult] = field(default_factory=list)
    error: str | None = None
    bpm: int = 0
    total_notes: int = 0
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def failure(cls, message: str) -> "ConversionResult":
        return cls(success=False, error=message)

    def to_dict(self) -> dict:
        return asdict(self)
