# loader.py
# Reads level definitions and speech-mark files into the engine's models.

import json
import logging
from pathlib import Path
from typing import Dict, List, Union

from pydantic import ValidationError

from schema import Level, Viseme

logger = logging.getLogger(__name__)

METADATA_SUFFIX = "-metadata.json"


class LevelLoadError(Exception):
    """A level or speech-mark file could not be read or does not validate."""


def load_level(path: Union[str, Path]) -> Level:
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        # levels are named after their file unless they say otherwise
        raw.setdefault("id", path.stem)
        return Level.model_validate(raw)
    except (OSError, ValidationError, json.JSONDecodeError, AttributeError) as e:
        raise LevelLoadError(f"{path}: {e}") from e


def _parse_marks(text: str) -> List[Viseme]:
    """Speech marks arrive either as a JSON array or one JSON object per line."""
    text = text.strip()
    if not text:
        return []
    if text.startswith("["):
        raw = json.loads(text)
    else:
        raw = [json.loads(line) for line in text.splitlines() if line.strip()]
    return [Viseme.model_validate(m) for m in raw]


def load_metadata(path: Union[str, Path]) -> Dict[str, List[Viseme]]:
    """Load speech marks from a ``{key: [marks]}`` file or a directory of ``<key>-metadata.json`` files."""
    path = Path(path)
    try:
        if path.is_dir():
            out = {}
            for f in sorted(path.glob(f"*{METADATA_SUFFIX}")):
                out[f.name[: -len(METADATA_SUFFIX)]] = _parse_marks(f.read_text(encoding="utf-8"))
            logger.info("loaded speech marks for %d utterances from %s", len(out), path)
            return out
        raw = json.loads(path.read_text(encoding="utf-8"))
        return {key: [Viseme.model_validate(m) for m in marks] for key, marks in raw.items()}
    except (OSError, ValidationError, json.JSONDecodeError) as e:
        raise LevelLoadError(f"{path}: {e}") from e
