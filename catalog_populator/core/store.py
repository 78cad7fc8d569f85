# ===== TYPES & INTERFACES =====
from typing import Any, Dict, Optional, Protocol, Tuple

from catalog_populator.core.errors import StoreError

ENTITY_TYPES = ("game", "developer", "publisher", "category", "platform")

SLUG_POLICY_ALLOW = "allow"
SLUG_POLICY_MERGE = "merge"
SLUG_POLICY_ERROR = "error"
SLUG_POLICIES = (SLUG_POLICY_ALLOW, SLUG_POLICY_MERGE, SLUG_POLICY_ERROR)


class RecordStore(Protocol):
    """Create and look up records by name, per entity type."""

    async def find_by_name(self, entity_type: str, name: str) -> Optional[Dict[str, Any]]:
        ...

    async def create(self, entity_type: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        ...

    async def get_or_create(self, entity_type: str, fields: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
        """Returns (record, created). Must not create a second record for the same name."""
        ...


class UploadSink(Protocol):
    """Stores a binary blob against a record's field. Many blobs per field are allowed."""

    async def upload(self, ref_id: Any, ref: str, field: str, filename: str, data: bytes) -> None:
        ...


def check_entity_type(entity_type: str) -> str:
    if entity_type not in ENTITY_TYPES:
        raise StoreError(f"Unknown entity type: '{entity_type}'")
    return entity_type


def check_slug_policy(policy: str) -> str:
    if policy not in SLUG_POLICIES:
        raise ValueError(f"Unknown slug collision policy '{policy}', expected one of {', '.join(SLUG_POLICIES)}")
    return policy
