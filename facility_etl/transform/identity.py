"""
Facility identity: the stable primary key and the dedup fingerprint.

The stable ID is deterministic in (state, city, name) so repeated runs upsert
the same row. The fingerprint covers name|street|city|state and is only used
for in-run deduplication; zip and phone are deliberately not part of it.
"""

import hashlib
import re

from facility_etl.core.constants import MAX_ID_LENGTH

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
HASH_LENGTH = 8
MAX_PREFIX_LENGTH = 10


def _slug(value: str) -> str:
    return _NON_ALNUM.sub("-", value.lower()).strip("-")


def _compact(value: str) -> str:
    return _NON_ALNUM.sub("", value.lower())


def compute_stable_id(state: str, city: str, name: str) -> str:
    """
    Build the facility primary key.

    Format: "<state>-<name slug>-<8 hex chars>", where the hash is the MD5 of
    "state-city-name" (lower-cased, non-alphanumerics removed). The slug is
    truncated so the whole ID never exceeds MAX_ID_LENGTH; the hash is always kept.
    """
    key = f"{_compact(state)}-{_compact(city)}-{_compact(name)}"
    digest = hashlib.md5(key.encode("utf-8")).hexdigest()[:HASH_LENGTH]

    prefix = _slug(state)[:MAX_PREFIX_LENGTH].strip("-") or "xx"
    room = MAX_ID_LENGTH - len(prefix) - len(digest) - 2
    slug = _slug(name)[:room].strip("-")
    if not slug:
        return f"{prefix}-{digest}"
    return f"{prefix}-{slug}-{digest}"


def compute_fingerprint(name: str, street: str, city: str, state: str) -> str:
    """SHA-256 hex digest of lowercase "name|street|city|state"."""
    key = "|".join(part.strip() for part in (name, street, city, state)).lower()
    return hashlib.sha256(key.encode("utf-8")).hexdigest()
