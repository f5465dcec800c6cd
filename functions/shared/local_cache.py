"""
Best-effort, file-backed mirror of user billing records.

The cache is one JSON object keyed by identity key. It is an operational
fallback and debugging aid, never the source of truth for premium status.
Reads tolerate a missing, empty or corrupt file; writes log failures and
carry on. There is no locking: concurrent writers race, last writer wins.
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from .constants import RECORD_DEFAULTS
from .identity import Identity, identity_from_stored

logger = logging.getLogger(__name__)


class LocalCacheStore:
    def __init__(self, path: str):
        self.path = Path(path)

    def read(self) -> dict:
        """Return the full snapshot. Never raises."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            logger.warning(f"Could not read local cache {self.path}: {e}")
            return {}

        if not raw.strip():
            return {}

        try:
            snapshot = json.loads(raw)
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Local cache {self.path} is corrupt, treating as empty: {e}")
            return {}

        if not isinstance(snapshot, dict):
            logger.warning(f"Local cache {self.path} is not a JSON object, treating as empty")
            return {}
        return snapshot

    def write(self, snapshot: dict) -> bool:
        """Replace the full snapshot. Returns False (and logs) on I/O failure."""
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(snapshot, indent=2, sort_keys=True, default=str), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to write local cache {self.path}: {e}")
            return False
        return True

    def get(self, key: str) -> Optional[dict]:
        return self.read().get(key)

    def upsert(self, identity: Identity, patch: dict, set_if_absent: Iterable[str] = ()) -> bool:
        """Merge a patch into the record for an identity, creating it with defaults."""
        set_if_absent = set(set_if_absent)
        snapshot = self.read()

        record = snapshot.get(identity.key)
        if not isinstance(record, dict):
            record = {"identity": identity.key, **RECORD_DEFAULTS}
        record["identity_type"] = identity.kind

        for field_name, value in patch.items():
            if field_name in set_if_absent and record.get(field_name) is not None:
                continue
            record[field_name] = value
        record["updated_at"] = datetime.now(timezone.utc).isoformat()

        snapshot[identity.key] = record
        return self.write(snapshot)

    def find_by_customer_id(self, customer_id: str) -> Optional[Identity]:
        """Scan the snapshot for the record holding a Stripe customer id."""
        if not customer_id:
            return None
        for key, record in self.read().items():
            if isinstance(record, dict) and record.get("stripe_customer_id") == customer_id:
                return identity_from_stored(record.get("identity_type"), key)
        return None
