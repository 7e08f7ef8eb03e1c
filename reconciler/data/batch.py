"""
reconciler/data/batch.py
Write batches produced by the planner.

A WriteBatch is an ordered list of (key, value) writes against one account,
intended for a single setDataBatch transaction. Each write carries a
human-readable description for audit logs. Preconditions record what the
plan assumed about the ledger (e.g. the controller array length it read) so
a caller can re-verify before or after submitting.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from reconciler.codec.values import to_address
from reconciler.errors import MalformedFieldError


@dataclass(frozen=True)
class DataWrite:
    key: bytes
    value: bytes
    description: str = ""

    def __post_init__(self):
        if len(self.key) != 32:
            raise MalformedFieldError(f"Data keys are 32 bytes, got {len(self.key)}")

    def to_dict(self) -> Dict[str, str]:
        return {"key": "0x" + self.key.hex(), "value": "0x" + self.value.hex(), "description": self.description}


@dataclass(frozen=True)
class Precondition:
    """The value a key had when the plan was computed."""
    key: bytes
    expected: bytes
    description: str = ""


@dataclass
class WriteBatch:
    account: str
    writes: List[DataWrite] = field(default_factory=list)
    preconditions: List[Precondition] = field(default_factory=list)
    block: Optional[Any] = None

    def __post_init__(self):
        self.account = to_address(self.account)

    def add(self, key: bytes, value: bytes, description: str = "") -> None:
        """Append a write; a later write to the same key replaces the earlier one in place."""
        write = DataWrite(bytes(key), bytes(value), description)
        for i, existing in enumerate(self.writes):
            if existing.key == write.key:
                self.writes[i] = write
                return
        self.writes.append(write)

    def expect(self, key: bytes, expected: bytes, description: str = "") -> None:
        self.preconditions.append(Precondition(bytes(key), bytes(expected), description))

    def merge(self, other: "WriteBatch") -> "WriteBatch":
        if other.account != self.account:
            raise MalformedFieldError(
                "Cannot merge batches for different accounts",
                details={"account": self.account, "other": other.account},
            )
        merged = WriteBatch(self.account, list(self.writes), list(self.preconditions), self.block)
        for write in other.writes:
            merged.add(write.key, write.value, write.description)
        merged.preconditions.extend(other.preconditions)
        return merged

    @property
    def keys(self) -> List[bytes]:
        return [w.key for w in self.writes]

    @property
    def values(self) -> List[bytes]:
        return [w.value for w in self.writes]

    @property
    def is_empty(self) -> bool:
        return not self.writes

    def __len__(self) -> int:
        return len(self.writes)

    def summary(self) -> List[str]:
        return [f"{w.description or 'set'} [0x{w.key.hex()}]" for w in self.writes]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account": self.account,
            "block": self.block,
            "writes": [w.to_dict() for w in self.writes],
            "preconditions": [
                {"key": "0x" + p.key.hex(), "expected": "0x" + p.expected.hex(), "description": p.description}
                for p in self.preconditions
            ],
        }
