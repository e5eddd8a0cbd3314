from __future__ import annotations

import hashlib
import json
from typing import Any, Dict

# prev_hash of the first entry in every contract's chain
GENESIS_HASH = "0" * 64


def canonical_json(payload: Dict[str, Any]) -> str:
    # sorted keys, no whitespace; the stored payload must re-hash identically
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def entry_hash(prev_hash: str, payload: Dict[str, Any]) -> str:
    """
    Hash of one history entry, linked to the entry before it.
    """
    return hashlib.sha256((prev_hash + canonical_json(payload)).encode("utf-8")).hexdigest()
