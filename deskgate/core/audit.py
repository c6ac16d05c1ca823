from __future__ import annotations

import hashlib
import hmac
import json
import logging
import uuid
from collections.abc import Callable, Sequence
from typing import Any

from deskgate.core.models import (
    ActionPlan,
    ActionResult,
    AuditEntry,
    IntegrityReport,
    utc_timestamp,
)
from deskgate.core.store import HistoryStore

logger = logging.getLogger(__name__)


def canonical_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


def generate_signature(entry_json: str, prev_hash: str) -> str:
    hasher = hashlib.sha256()
    hasher.update(entry_json.encode("utf-8"))
    hasher.update(prev_hash.encode("utf-8"))
    return hasher.hexdigest()


class AuditBuilder:
    """Builds hash-chained audit entries; persistence belongs to the store.

    ``last_hash`` is the external lookup for the newest signature in the
    chain. Building and appending must happen under the store's lock
    (``record`` does this) or two writers can chain onto the same hash.
    """

    def __init__(self, last_hash: Callable[[], str] | None = None):
        self._last_hash = last_hash or (lambda: "")

    def prepare_entry(
        self,
        action_plan: ActionPlan,
        action_result: ActionResult | None = None,
    ) -> AuditEntry:
        return self.build_entry(action_plan, action_result, self._last_hash())

    @staticmethod
    def build_entry(
        action_plan: ActionPlan,
        action_result: ActionResult | None,
        prev_hash: str,
    ) -> AuditEntry:
        payload: dict[str, Any] = {"action_plan": action_plan.model_dump(mode="json")}
        if action_result is not None:
            payload["result"] = action_result.model_dump(mode="json")
        entry_json = canonical_json(payload)
        return AuditEntry(
            id=str(uuid.uuid4()),
            entry_json=entry_json,
            timestamp=utc_timestamp(),
            prev_hash=prev_hash,
            signature=generate_signature(entry_json, prev_hash),
            action_id=action_plan.id,
        )

    @classmethod
    def record(
        cls,
        store: HistoryStore,
        action_plan: ActionPlan,
        action_result: ActionResult | None = None,
    ) -> AuditEntry:
        entry = store.append_chained(
            lambda prev_hash: cls.build_entry(action_plan, action_result, prev_hash)
        )
        logger.debug("audit entry %s appended for plan %s", entry.id, action_plan.id)
        return entry

    @staticmethod
    def verify_link(entry: AuditEntry, prev_hash: str) -> bool:
        if entry.prev_hash != prev_hash:
            return False
        expected = generate_signature(entry.entry_json, prev_hash)
        return hmac.compare_digest(expected, entry.signature)

    @classmethod
    def verify_chain(cls, entries: Sequence[AuditEntry]) -> IntegrityReport:
        """Walk ``entries`` oldest first.

        The first entry is checked against its own recorded ``prev_hash`` so a
        window of a longer chain can be verified.
        """
        if not entries:
            return IntegrityReport(valid=True, checked=0)
        prev_hash = entries[0].prev_hash
        for checked, entry in enumerate(entries):
            if not cls.verify_link(entry, prev_hash):
                logger.warning("audit chain broken at entry %s", entry.id)
                return IntegrityReport(valid=False, checked=checked, broken_at=entry.id)
            prev_hash = entry.signature
        return IntegrityReport(valid=True, checked=len(entries))
