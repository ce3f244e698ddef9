"""audiencesync — Phone Number Source.

Reads raw phones from a plain text file, one per line. Blank lines and
lines starting with ``#`` are ignored. Raw values are never logged.
"""

from pathlib import Path
from typing import List, Optional

from audiencesync.core.errors import ValidationError
from audiencesync.core.logging import get_logger

logger = get_logger("audiences.phone_source")


def load_phones(path: Optional[str]) -> List[str]:
    if not path:
        raise ValidationError("No phone source configured (PHONE_SOURCE_PATH)")
    source = Path(path)
    if not source.is_file():
        raise ValidationError(f"Phone source file not found: {source}")

    phones = []
    with source.open(encoding="utf-8") as fh:
        for line in fh:
            line = line.strip()
            if line and not line.startswith("#"):
                phones.append(line)
    logger.info(f"Loaded {len(phones)} phone numbers from {source.name}")
    return phones
