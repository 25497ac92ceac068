"""DynamoDB persistence for trailer calendars.

All calendar rows of a trailer share one partition of the calendar table:

    resource_id=<id>, sk=RESOURCE         trailer config + calendar_version
    resource_id=<id>, sk=BLOCK#<block>    blocked periods and holds
    resource_id=<id>, sk=RENTAL#<rental>  rentals

Owner-wide blocks live in partition OWNER#<owner_id> and are written through
reserve_owner(), which re-checks and versions every calendar of the owner.
The owner_id-index finds an owner's trailers.

Writes that add occupancy (holds, rentals, manual blocks) go through
reserve(): read the partition with a consistent query, let the caller
re-check availability, and commit the inserts in one transaction that also
bumps calendar_version conditioned on the version that was read. Writes that
only free or relabel calendar space do not need the version bump.
"""

import datetime as dt
import logging
import random
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from boto3.dynamodb.conditions import Attr, Key

from booking.models import (
    BlockedPeriod,
    CalendarSnapshot,
    ConfirmedHold,
    ConflictError,
    ErrorCode,
    HoldKind,
    ManualHold,
    NotFoundError,
    Rental,
    RentalStatus,
    Resource,
    TemporaryHold,
)

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = logging.getLogger(__name__)

RESOURCE_SK = "RESOURCE"
BLOCK_PREFIX = "BLOCK#"
RENTAL_PREFIX = "RENTAL#"
OWNER_PREFIX = "OWNER#"


def _parse_datetime(value: str) -> dt.datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return dt.datetime.fromisoformat(value)


def _optional_datetime(item: dict[str, Any], name: str) -> dt.datetime | None:
    value = item.get(name)
    return _parse_datetime(value) if value else None


def _optional_time(item: dict[str, Any], name: str) -> dt.time | None:
    value = item.get(name)
    return dt.time.fromisoformat(value) if value else None


def block_to_item(block: BlockedPeriod) -> dict[str, Any]:
    """Convert a BlockedPeriod to a calendar table item."""
    partition = block.resource_id or f"{OWNER_PREFIX}{block.user_id}"
    item: dict[str, Any] = {
        "resource_id": partition,
        "sk": f"{BLOCK_PREFIX}{block.block_id}",
        "block_id": block.block_id,
        "start": block.start.isoformat(),
        "end": block.end.isoformat(),
        "hold_kind": block.kind.value,
        "created_at": block.created_at.isoformat(),
    }
    if block.user_id:
        item["user_id"] = block.user_id
    if block.reason:
        item["reason"] = block.reason
    if block.payment_intent_id:
        item["payment_intent_id"] = block.payment_intent_id
    if block.rental_id:
        # Not "rental_id": that attribute keys the rental_id-index of rental rows
        item["confirmed_rental_id"] = block.rental_id
    return item


def item_to_block(item: dict[str, Any]) -> BlockedPeriod:
    """Convert a calendar table item to a BlockedPeriod."""
    kind = HoldKind(item["hold_kind"])
    hold: TemporaryHold | ConfirmedHold | ManualHold
    if kind == HoldKind.TEMPORARY:
        hold = TemporaryHold(payment_intent_id=item["payment_intent_id"])
    elif kind == HoldKind.CONFIRMED:
        hold = ConfirmedHold(rental_id=item["confirmed_rental_id"])
    else:
        hold = ManualHold()

    partition = item["resource_id"]
    return BlockedPeriod(
        block_id=item["block_id"],
        resource_id=None if partition.startswith(OWNER_PREFIX) else partition,
        user_id=item.get("user_id"),
        start=_parse_datetime(item["start"]),
        end=_parse_datetime(item["end"]),
        hold=hold,
        reason=item.get("reason"),
        created_at=_parse_datetime(item["created_at"]),
    )


def rental_to_item(rental: Rental) -> dict[str, Any]:
    """Convert a Rental to a calendar table item."""
    item: dict[str, Any] = {
        "resource_id": rental.resource_id,
        "sk": f"{RENTAL_PREFIX}{rental.rental_id}",
        "rental_id": rental.rental_id,
        "renter_id": rental.renter_id,
        "owner_id": rental.owner_id,
        "start_date": rental.start_date.isoformat(),
        "end_date": rental.end_date.isoformat(),
        "status": rental.status.value,
        "total_price": rental.total_price,
        "service_fee": rental.service_fee,
        "created_at": rental.created_at.isoformat(),
        "updated_at": rental.updated_at.isoformat(),
    }
    optional = {
        "pickup_time": rental.pickup_time,
        "return_time": rental.return_time,
        "confirmed_at": rental.confirmed_at,
        "cancelled_at": rental.cancelled_at,
    }
    for name, value in optional.items():
        if value is not None:
            item[name] = value.isoformat(timespec="minutes") if isinstance(value, dt.time) else value.isoformat()
    for name in (
        "payment_intent_id",
        "payment_id",
        "cancellation_reason",
        "cancelled_by",
        "note",
    ):
        value = getattr(rental, name)
        if value:
            item[name] = value
    return item


def item_to_rental(item: dict[str, Any]) -> Rental:
    """Convert a calendar table item to a Rental."""
    return Rental(
        rental_id=item["rental_id"],
        resource_id=item["resource_id"],
        renter_id=item["renter_id"],
        owner_id=item["owner_id"],
        start_date=dt.date.fromisoformat(item["start_date"]),
        end_date=dt.date.fromisoformat(item["end_date"]),
        pickup_time=_optional_time(item, "pickup_time"),
        return_time=_optional_time(item, "return_time"),
        status=RentalStatus(item["status"]),
        payment_intent_id=item.get("payment_intent_id"),
        payment_id=item.get("payment_id"),
        total_price=int(item["total_price"]),
        service_fee=int(item.get("service_fee", 0)),
        created_at=_parse_datetime(item["created_at"]),
        updated_at=_parse_datetime(item["updated_at"]),
        confirmed_at=_optional_datetime(item, "confirmed_at"),
        cancelled_at=_optional_datetime(item, "cancelled_at"),
        cancellation_reason=item.get("cancellation_reason"),
        cancelled_by=item.get("cancelled_by"),
        note=item.get("note"),
    )


class CalendarStore:
    """Repository for trailer calendars in the calendar table."""

    TABLE = "calendar"
    MAX_COMMIT_ATTEMPTS = 3

    def __init__(self, db: "DynamoDBService") -> None:
        """Initialize calendar store.

        Args:
            db: DynamoDB service instance
        """
        self.db = db

    # Resources

    def get_resource(self, resource_id: str) -> Resource | None:
        """Get a trailer's configuration."""
        item = self.db.get_item(
            self.TABLE, {"resource_id": resource_id, "sk": RESOURCE_SK}, consistent_read=True
        )
        if not item:
            return None
        return Resource.model_validate(item)

    def save_resource(self, resource: Resource) -> None:
        """Create or update a trailer's configuration, keeping its version."""
        attributes = resource.model_dump(mode="json", exclude={"resource_id"}, exclude_none=True)
        names = {f"#{name}": name for name in attributes}
        values: dict[str, Any] = {f":{name}": value for name, value in attributes.items()}
        values[":zero"] = 0
        assignments = ", ".join(f"#{name} = :{name}" for name in attributes)

        self.db.update_item(
            self.TABLE,
            {"resource_id": resource.resource_id, "sk": RESOURCE_SK},
            f"SET {assignments}, calendar_version = if_not_exists(calendar_version, :zero)",
            values,
            names,
        )

    def list_owner_resources(self, owner_id: str) -> list[Resource]:
        """Get the configurations of every trailer an owner has."""
        items = self.db.query_by_gsi(
            self.TABLE,
            "owner_id-index",
            "owner_id",
            owner_id,
            sort_key_condition=Key("sk").eq(RESOURCE_SK),
        )
        return [Resource.model_validate(item) for item in items]

    # Snapshots and atomic writes

    def load_snapshot(self, resource_id: str) -> CalendarSnapshot:
        """Read a trailer's whole calendar with consistent reads.

        Raises:
            NotFoundError: If the trailer does not exist
        """
        items = self.db.query(
            self.TABLE, Key("resource_id").eq(resource_id), consistent_read=True
        )
        resource_item = next((item for item in items if item["sk"] == RESOURCE_SK), None)
        if resource_item is None:
            raise NotFoundError(
                ErrorCode.RESOURCE_NOT_FOUND, details={"resource_id": resource_id}
            )
        resource = Resource.model_validate(resource_item)

        blocks = [item_to_block(item) for item in items if item["sk"].startswith(BLOCK_PREFIX)]
        rentals = [item_to_rental(item) for item in items if item["sk"].startswith(RENTAL_PREFIX)]

        owner_items = self.db.query(
            self.TABLE,
            Key("resource_id").eq(f"{OWNER_PREFIX}{resource.owner_id}")
            & Key("sk").begins_with(BLOCK_PREFIX),
            consistent_read=True,
        )
        blocks.extend(item_to_block(item) for item in owner_items)

        return CalendarSnapshot(
            resource=resource,
            version=int(resource_item.get("calendar_version", 0)),
            blocks=blocks,
            rentals=rentals,
        )

    def reserve(
        self,
        resource_id: str,
        build: Callable[[CalendarSnapshot], list[dict[str, Any]]],
    ) -> CalendarSnapshot:
        """Atomically re-check a calendar and write to it.

        build receives a fresh snapshot, raises ConflictError if the write is
        no longer allowed, and otherwise returns the transaction items to
        commit. It may be called more than once.

        Args:
            resource_id: Trailer whose calendar is written
            build: Re-checks availability and returns transaction items

        Returns:
            The snapshot the committed write was based on

        Raises:
            ConflictError: If the re-check fails or every attempt lost a race
            NotFoundError: If the trailer does not exist
        """
        [snapshot] = self._commit(
            resource_id,
            lambda: [self.load_snapshot(resource_id)],
            lambda snapshots: build(snapshots[0]),
        )
        return snapshot

    def reserve_owner(
        self,
        owner_id: str,
        build: Callable[[list[CalendarSnapshot]], list[dict[str, Any]]],
    ) -> list[CalendarSnapshot]:
        """Atomically re-check every calendar of an owner and write to them.

        Like reserve(), but build receives a snapshot of each of the owner's
        trailers, and the commit bumps every one of their calendar versions.
        An owner without trailers gets an empty list.

        Raises:
            ConflictError: If the re-check fails or every attempt lost a race
        """
        return self._commit(
            f"{OWNER_PREFIX}{owner_id}",
            lambda: [
                self.load_snapshot(resource.resource_id)
                for resource in self.list_owner_resources(owner_id)
            ],
            build,
        )

    def _commit(
        self,
        label: str,
        load: Callable[[], list[CalendarSnapshot]],
        build: Callable[[list[CalendarSnapshot]], list[dict[str, Any]]],
    ) -> list[CalendarSnapshot]:
        for attempt in range(1, self.MAX_COMMIT_ATTEMPTS + 1):
            snapshots = load()
            items = build(snapshots)
            versions = [self._version_op(snapshot) for snapshot in snapshots]
            if self.db.transact_write([*versions, *items]):
                return snapshots

            logger.info(
                "Calendar write on %s cancelled at version(s) %s (attempt %d/%d)",
                label,
                ", ".join(str(snapshot.version) for snapshot in snapshots),
                attempt,
                self.MAX_COMMIT_ATTEMPTS,
            )
            if attempt < self.MAX_COMMIT_ATTEMPTS:
                time.sleep(random.uniform(0, 0.05 * attempt))

        logger.warning("Calendar write on %s gave up after concurrent writes", label)
        raise ConflictError(ErrorCode.BOOKING_RACE_LOST, details={"resource_id": label})

    def _version_op(self, snapshot: CalendarSnapshot) -> dict[str, Any]:
        return self.db.update_op(
            self.TABLE,
            {"resource_id": snapshot.resource.resource_id, "sk": RESOURCE_SK},
            "SET calendar_version = :next",
            {":next": snapshot.version + 1, ":expected": snapshot.version},
            condition_expression=(
                "calendar_version = :expected"
                if snapshot.version
                else "attribute_not_exists(calendar_version) OR calendar_version = :expected"
            ),
        )

    # Blocks

    @staticmethod
    def block_key(block: BlockedPeriod) -> dict[str, str]:
        """Primary key of a block row."""
        item = block_to_item(block)
        return {"resource_id": item["resource_id"], "sk": item["sk"]}

    def put_block_op(self, block: BlockedPeriod) -> dict[str, Any]:
        """Transaction item inserting a new block."""
        return self.db.put_op(
            self.TABLE, block_to_item(block), condition_expression="attribute_not_exists(sk)"
        )

    def delete_temporary_block_op(self, block: BlockedPeriod) -> dict[str, Any]:
        """Transaction item deleting a hold only if it is still temporary."""
        return self.db.delete_op(
            self.TABLE,
            self.block_key(block),
            condition_expression="hold_kind = :temporary AND payment_intent_id = :pi",
            expression_attribute_values={
                ":temporary": HoldKind.TEMPORARY.value,
                ":pi": block.payment_intent_id,
            },
        )

    def delete_temporary_block(self, block: BlockedPeriod) -> bool:
        """Compare-and-delete a temporary hold.

        Returns:
            True if this call deleted it, False if it was already gone or
            has been finalized
        """
        deleted = self.db.delete_item(
            self.TABLE,
            self.block_key(block),
            condition_expression="hold_kind = :temporary AND payment_intent_id = :pi",
            expression_attribute_values={
                ":temporary": HoldKind.TEMPORARY.value,
                ":pi": block.payment_intent_id,
            },
        )
        return deleted is not None

    def finalize_block(
        self, block: BlockedPeriod, rental_id: str, now: dt.datetime
    ) -> BlockedPeriod | None:
        """Compare-and-rewrite a temporary hold into a confirmed block.

        Returns:
            The confirmed block, or None if the hold was no longer temporary
            for this payment intent (reaped, removed or already finalized)
        """
        attrs = self.db.update_item(
            self.TABLE,
            self.block_key(block),
            "SET hold_kind = :confirmed, confirmed_rental_id = :rid, finalized_at = :now "
            "REMOVE payment_intent_id",
            {
                ":confirmed": HoldKind.CONFIRMED.value,
                ":rid": rental_id,
                ":now": now.isoformat(),
                ":temporary": HoldKind.TEMPORARY.value,
                ":pi": block.payment_intent_id,
            },
            condition_expression="hold_kind = :temporary AND payment_intent_id = :pi",
        )
        return item_to_block(attrs) if attrs else None

    def delete_confirmed_block(self, block: BlockedPeriod) -> bool:
        """Delete the confirmed block of a rental."""
        deleted = self.db.delete_item(
            self.TABLE,
            self.block_key(block),
            condition_expression="hold_kind = :confirmed AND confirmed_rental_id = :rid",
            expression_attribute_values={
                ":confirmed": HoldKind.CONFIRMED.value,
                ":rid": block.rental_id,
            },
        )
        return deleted is not None

    def find_blocks_for_payment_intent(
        self, payment_intent_id: str, resource_id: str | None = None
    ) -> list[BlockedPeriod]:
        """Find temporary holds of a payment intent.

        With a resource_id the partition is read consistently; otherwise the
        payment_intent_id-index is used.
        """
        if resource_id:
            items = self.db.query(
                self.TABLE,
                Key("resource_id").eq(resource_id) & Key("sk").begins_with(BLOCK_PREFIX),
                filter_expression=Attr("payment_intent_id").eq(payment_intent_id),
                consistent_read=True,
            )
        else:
            items = self.db.query_by_gsi(
                self.TABLE,
                "payment_intent_id-index",
                "payment_intent_id",
                payment_intent_id,
                sort_key_condition=Key("sk").begins_with(BLOCK_PREFIX),
            )
        return [item_to_block(item) for item in items]

    def find_blocks_for_rental(self, rental_id: str, resource_id: str) -> list[BlockedPeriod]:
        """Find confirmed blocks backing a rental."""
        items = self.db.query(
            self.TABLE,
            Key("resource_id").eq(resource_id) & Key("sk").begins_with(BLOCK_PREFIX),
            filter_expression=Attr("confirmed_rental_id").eq(rental_id),
            consistent_read=True,
        )
        return [item_to_block(item) for item in items]

    def find_holds_created_before(self, cutoff: dt.datetime) -> list[BlockedPeriod]:
        """Find temporary holds created before a UTC cutoff."""
        items = self.db.query(
            self.TABLE,
            Key("hold_kind").eq(HoldKind.TEMPORARY.value)
            & Key("created_at").lt(cutoff.isoformat()),
            index_name="hold_kind-created_at-index",
        )
        return [item_to_block(item) for item in items]

    # Rentals

    def rental_key(self, rental: Rental) -> dict[str, str]:
        """Primary key of a rental row."""
        return {"resource_id": rental.resource_id, "sk": f"{RENTAL_PREFIX}{rental.rental_id}"}

    def get_rental(self, rental_id: str) -> Rental | None:
        """Get a rental by ID.

        The index only yields the partition; the row itself is read
        consistently.
        """
        refs = self.db.query_by_gsi(self.TABLE, "rental_id-index", "rental_id", rental_id)
        if not refs:
            return None
        item = self.db.get_item(
            self.TABLE,
            {"resource_id": refs[0]["resource_id"], "sk": f"{RENTAL_PREFIX}{rental_id}"},
            consistent_read=True,
        )
        return item_to_rental(item) if item else None

    def put_rental_op(self, rental: Rental) -> dict[str, Any]:
        """Transaction item inserting a new rental."""
        return self.db.put_op(
            self.TABLE, rental_to_item(rental), condition_expression="attribute_not_exists(sk)"
        )

    def rental_transition_op(
        self,
        rental: Rental,
        from_statuses: tuple[RentalStatus, ...],
        to_status: RentalStatus,
        now: dt.datetime,
        **fields: Any,
    ) -> dict[str, Any]:
        """Transaction item moving a rental between statuses.

        The update only applies if the rental is still in one of
        from_statuses. Extra keyword fields are set on the row.
        """
        assignments = ["#status = :to_status", "updated_at = :now"]
        values: dict[str, Any] = {":to_status": to_status.value, ":now": now.isoformat()}
        for name, value in fields.items():
            if value is None:
                continue
            assignments.append(f"{name} = :{name}")
            values[f":{name}"] = value.isoformat() if isinstance(value, dt.datetime) else value

        allowed = []
        for index, status in enumerate(from_statuses):
            values[f":from{index}"] = status.value
            allowed.append(f"#status = :from{index}")

        return self.db.update_op(
            self.TABLE,
            self.rental_key(rental),
            "SET " + ", ".join(assignments),
            values,
            expression_attribute_names={"#status": "status"},
            condition_expression=" OR ".join(allowed),
        )

    def find_rentals_created_before(
        self, status: RentalStatus, cutoff: dt.datetime
    ) -> list[Rental]:
        """Find rentals in a status created before a UTC cutoff."""
        items = self.db.query(
            self.TABLE,
            Key("status").eq(status.value) & Key("created_at").lt(cutoff.isoformat()),
            index_name="status-created_at-index",
        )
        return [item_to_rental(item) for item in items]
