"""
Entity repositories composing the remote transport with the fallback mirror.

Architecture:
- Every call goes to the backend first
- Successful results are written through to the mirror
- On failure, reads are served from the mirror and writes land in it

Failure policy:
- list/filter never raise; an empty mirror yields []
- get raises the original error only when the record is not mirrored
- create/update/delete never raise; they degrade to mirror writes
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from contextlib import AbstractAsyncContextManager, nullcontext
from typing import Any
from urllib.parse import quote

from .logging_utils import EntityLoggerAdapter
from .query import Predicate, filter_records, sort_records
from .storage.mirror import FallbackMirror, Record
from .transport import RemoteTransport

logger = logging.getLogger(__name__)


class EntityRepository:
    """Uniform CRUD interface for one entity type.

    Repositories for the same entity name share the mirror list, whichever
    instance wrote it.

    Example:
        >>> materials = EntityRepository("Material", transport, mirror)
        >>> record = await materials.create({"name": "Copper"})
        >>> await materials.filter({"name": "Copper"}, order_by="-created_date")
    """

    def __init__(
        self,
        name: str,
        transport: RemoteTransport,
        mirror: FallbackMirror,
        serialize_writes: bool = True,
    ) -> None:
        """Initialize the repository.

        Args:
            name: Entity name as used in backend URLs
            transport: Remote transport
            mirror: Fallback mirror
            serialize_writes: Run create/update/delete for this entity one at
                a time, so concurrent writes reach the mirror in call order
        """
        self.name = name
        self.transport = transport
        self.mirror = mirror
        self.serialize_writes = serialize_writes
        self._log = EntityLoggerAdapter(logger, {"entity": name})

    def __repr__(self) -> str:
        return f"EntityRepository(name={self.name!r})"

    def _collection_path(self) -> str:
        return f"/entities/{quote(self.name, safe='')}"

    def _item_path(self, record_id: Any) -> str:
        return f"{self._collection_path()}/{quote(str(record_id), safe='')}"

    def _write_guard(self) -> AbstractAsyncContextManager[Any]:
        if self.serialize_writes:
            return self.mirror.lock(self.name)
        return nullcontext()

    @staticmethod
    def _truncate(records: list[Record], limit: int | None) -> list[Record]:
        if not limit:
            return records
        return records[:limit]

    async def list(self, order_by: str | None = None, limit: int | None = None) -> list[Record]:
        """Fetch the full collection, sorted and truncated.

        A successful fetch replaces the mirrored list wholesale, so records
        deleted on the server disappear locally too.
        """
        try:
            payload = await self.transport.request(self._collection_path())
            if not isinstance(payload, list):
                raise TypeError(f"expected a list payload, got {type(payload).__name__}")
        except Exception as e:
            self._log.warning(f"List of {self.name} failed, serving fallback mirror: {e}")
            records = sort_records(self.mirror.read_list(self.name), order_by)
            return self._truncate(records, limit)

        records = sort_records([r for r in payload if isinstance(r, dict)], order_by)
        self.mirror.write_list(self.name, records)
        self._log.debug(f"Mirrored {len(records)} {self.name} records")
        return self._truncate(records, limit)

    async def filter(
        self,
        predicate: Predicate | Mapping[str, Any] | None,
        order_by: str | None = None,
    ) -> list[Record]:
        """List the collection and keep records matching every condition.

        A list value in a mapping predicate matches any of its elements.
        """
        records = await self.list(order_by)
        return filter_records(records, predicate)

    async def get(self, record_id: Any) -> Record:
        """Fetch one record, falling back to the mirror.

        Raises:
            The original transport error when the record is not mirrored
        """
        try:
            payload = await self.transport.request(self._item_path(record_id))
        except Exception as e:
            cached = self.mirror.get(self.name, record_id)
            if cached is None:
                raise
            self._log.warning(f"Get {self.name}/{record_id} failed, serving mirrored copy: {e}")
            return cached

        if not isinstance(payload, dict):
            return payload
        record = dict(payload)
        if record.get("id") is None:
            record["id"] = record_id
        return self.mirror.upsert(self.name, record)

    async def create(self, data: Record) -> Record:
        """Create a record; offline, it is stored locally with a tmp_ id."""
        async with self._write_guard():
            try:
                payload = await self.transport.request(
                    self._collection_path(), method="POST", json=data
                )
            except Exception as e:
                self._log.warning(f"Create {self.name} failed, storing in fallback mirror: {e}")
                return self.mirror.upsert(self.name, data)

            if isinstance(payload, dict):
                return self.mirror.upsert(self.name, payload)
            return self.mirror.upsert(self.name, data)

    async def update(self, record_id: Any, data: Record) -> Record:
        """Update a record; offline, the change is merged into the mirror."""
        local = {**data, "id": record_id}
        async with self._write_guard():
            try:
                payload = await self.transport.request(
                    self._item_path(record_id), method="PUT", json=data
                )
            except Exception as e:
                self._log.warning(
                    f"Update {self.name}/{record_id} failed, storing in fallback mirror: {e}"
                )
                return self.mirror.upsert(self.name, local)

            if isinstance(payload, dict):
                record = dict(payload)
                if record.get("id") is None:
                    record["id"] = record_id
                return self.mirror.upsert(self.name, record)
            return self.mirror.upsert(self.name, local)

    async def delete(self, record_id: Any) -> Any:
        """Delete a record. The mirrored copy is removed whatever the outcome.

        Returns:
            The backend's response, or the bare id when the call failed
        """
        async with self._write_guard():
            try:
                result = await self.transport.request(self._item_path(record_id), method="DELETE")
            except Exception as e:
                self._log.warning(f"Delete {self.name}/{record_id} failed remotely: {e}")
                result = record_id
            self.mirror.remove(self.name, record_id)
            return result


# Entity catalogue of the warehouse application: attribute name -> backend name.
DEFAULT_ENTITIES: dict[str, str] = {
    # Core
    "User": "User",
    "Tenant": "tenants",
    # Inventory
    "Material": "Material",
    "Inventory": "Inventory",
    "Bin": "Bin",
    "ProductSKU": "ProductSKU",
    "Zone": "Zone",
    "MaterialCategory": "MaterialCategory",
    "Supplier": "Supplier",
    # Shipments
    "InboundShipment": "InboundShipment",
    "OutboundShipment": "OutboundShipment",
    # Purchasing
    "PurchaseOrder": "PurchaseOrder",
    "PurchaseOrderLine": "PurchaseOrderLine",
    "PurchaseOrderItem": "PurchaseOrderItem",
    # Sales
    "SalesOrder": "SalesOrder",
    "SalesOrderLine": "SalesOrderLine",
    "SalesOrderItem": "SalesOrderItem",
    "Invoice": "Invoice",
    "InvoiceLine": "InvoiceLine",
    "SignatureRequest": "SignatureRequest",
    # Quality control
    "QCInspection": "QCInspection",
    "QCCriteria": "QCCriteria",
    "AuditTrail": "AuditTrail",
    "ComplianceCertificate": "ComplianceCertificate",
    # Customers and vendors
    "Customer": "Customer",
    "Vendor": "Vendor",
    "Address": "Address",
    "EmailTemplate": "EmailTemplate",
    # Settings
    "AppSettings": "AppSettings",
    "AlertSettings": "AlertSettings",
    "InventoryAlert": "InventoryAlert",
    "TenantCategory": "tenant_categories",
    "TenantContact": "tenant_contacts",
    "ReportHistory": "ReportHistory",
    "QBOConnection": "QBOConnection",
    # Logistics
    "Carrier": "Carrier",
    "Waybill": "Waybill",
    "WaybillItem": "WaybillItem",
    "Container": "Container",
    # Misc
    "ShiftLog": "ShiftLog",
}


class EntityRegistry:
    """Repositories by attribute or by name, created on first access.

    `registry.Tenant` resolves through the catalogue to the backend name
    'tenants'; names outside the catalogue are used as-is.
    """

    def __init__(
        self,
        transport: RemoteTransport,
        mirror: FallbackMirror,
        serialize_writes: bool = True,
        catalogue: Mapping[str, str] | None = None,
    ) -> None:
        self._transport = transport
        self._mirror = mirror
        self._serialize_writes = serialize_writes
        self._catalogue = dict(DEFAULT_ENTITIES if catalogue is None else catalogue)
        self._repositories: dict[str, EntityRepository] = {}

    def resolve(self, name: str) -> str:
        return self._catalogue.get(name, name)

    def repository(self, name: str) -> EntityRepository:
        backend_name = self.resolve(name)
        repo = self._repositories.get(backend_name)
        if repo is None:
            repo = EntityRepository(
                backend_name,
                self._transport,
                self._mirror,
                serialize_writes=self._serialize_writes,
            )
            self._repositories[backend_name] = repo
        return repo

    def __getitem__(self, name: str) -> EntityRepository:
        return self.repository(name)

    def __getattr__(self, name: str) -> EntityRepository:
        if name.startswith("_"):
            raise AttributeError(name)
        return self.repository(name)

    def names(self) -> list[str]:
        return list(self._catalogue)
