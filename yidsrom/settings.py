import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

ENV_PREFIX = 'YIDSROM_'
DEFAULT_GAME_CODES: Tuple[str, ...] = ('AYWE', 'AYWP', 'AYWJ', 'AYWK')


@dataclass
class EditorSettings:
    """Tunables shared by the codec, the archive and the collaborators."""
    lz_chain_depth: int = 64
    lz_vram_safe: bool = False
    nds_file_alignment: int = 0x200
    nds_fill_byte: int = 0xFF
    narc_alignment: int = 4
    supported_game_codes: Tuple[str, ...] = field(default_factory=lambda: DEFAULT_GAME_CODES)
    verify_header_crc: bool = True
    log_level: str = 'INFO'

    def __post_init__(self):
        if self.lz_chain_depth < 1:
            raise ValueError(f'lz_chain_depth must be positive, got {self.lz_chain_depth}')
        for name in ('nds_file_alignment', 'narc_alignment'):
            value = getattr(self, name)
            if value < 1 or value & value - 1:
                raise ValueError(f'{name} must be a power of two, got {value}')
        if not 0 <= self.nds_fill_byte <= 0xFF:
            raise ValueError(f'nds_fill_byte must fit in a byte, got {self.nds_fill_byte}')
        self.supported_game_codes = tuple(self.supported_game_codes)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['supported_game_codes'] = list(self.supported_game_codes)
        return data

    def save(self, path: Path) -> None:
        Path(path).write_text(json.dumps(self.to_dict(), indent=2), encoding='utf-8')


def _coerce(raw: str, current: Any) -> Any:
    if isinstance(current, bool):
        return raw.strip().lower() in ('1', 'true', 'yes', 'on')
    if isinstance(current, int):
        return int(raw, 0)
    if isinstance(current, tuple):
        return tuple(part.strip().upper() for part in raw.split(',') if part.strip())
    return raw


def load_settings(path: Optional[Path] = None, environ: Optional[Dict[str, str]] = None) -> EditorSettings:
    """
    Build settings from defaults, an optional JSON file, then YIDSROM_* variables.

    YIDSROM_DEBUG=1 forces the log level to DEBUG.
    """
    environ = os.environ if environ is None else environ
    values: Dict[str, Any] = asdict(EditorSettings())
    if path is not None:
        path = Path(path)
        if path.exists():
            loaded = json.loads(path.read_text(encoding='utf-8'))
            unknown = set(loaded) - set(values)
            if unknown:
                logger.warning('[Settings] Ignoring unknown keys in %s: %s', path.name, ', '.join(sorted(unknown)))
            values.update({k: v for k, v in loaded.items() if k in values})
        else:
            logger.debug('[Settings] %s not found, using defaults', path)
    for f in fields(EditorSettings):
        raw = environ.get(ENV_PREFIX + f.name.upper())
        if raw is not None:
            values[f.name] = _coerce(raw, values[f.name] if not isinstance(values[f.name], list) else tuple(values[f.name]))
    if environ.get(ENV_PREFIX + 'DEBUG', '').lower() in ('1', 'true', 'yes'):
        values['log_level'] = 'DEBUG'
    return EditorSettings(**values)
