"""audiencesync — Phone Normalization & Hashing.

Meta requires personal identifiers to be SHA-256 hashed before upload.
Phones are reduced to digits first so that every human formatting of the
same number yields the same hash.
"""

import hashlib
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw: str) -> str:
    """Strip every non-digit character. May return an empty string."""
    return _NON_DIGITS.sub("", raw)


def hash_phone(raw: str) -> str:
    """Lowercase hex SHA-256 of the normalized phone (64 chars)."""
    return hashlib.sha256(normalize_phone(raw).encode("utf-8")).hexdigest()


def hash_all(raws: Iterable[str], max_workers: int = 0) -> List[str]:
    """Hash every phone, preserving input order.

    With ``max_workers > 0`` the work is spread over a thread pool. A failure
    on any element propagates instead of dropping it.
    """
    raws = list(raws)
    if max_workers and len(raws) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            return list(pool.map(hash_phone, raws))
    return [hash_phone(raw) for raw in raws]
