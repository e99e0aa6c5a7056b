"""
Source Record Adapter

Normalizes placements and timesheets into the engine's SourceRecord shape.
Accepts ORM rows or any object exposing the same attributes.
"""

from decimal import Decimal

from engines.schemas.commission_engine import PlacementType, SourceKind, SourceRecord


def _decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    # str() keeps floats from leaking binary noise into money
    return Decimal(str(value))


def _account_name(row) -> str | None:
    account = getattr(row, "account", None)
    if account is not None:
        return account.name
    return getattr(row, "account_name", None)


def from_placement(placement) -> SourceRecord:
    """Placements settle on their invoice date; gross equals NFI."""
    nfi = _decimal(placement.nfi_value)
    placement_type = getattr(placement, "placement_type", None)
    return SourceRecord(
        kind=SourceKind.PLACEMENT,
        id=placement.id,
        external_id=getattr(placement, "external_id", None),
        name=getattr(placement, "name", "") or "",
        account_name=_account_name(placement),
        owner_id=placement.owner_id,
        nfi_value=nfi,
        gross_value=nfi,
        settlement_date=placement.invoiced_date,
        placement_type=PlacementType(placement_type) if placement_type else None,
        is_clawback=bool(getattr(placement, "is_clawback", False)),
        commission_paid=bool(getattr(placement, "commission_paid", False)),
    )


def from_timesheet(timesheet) -> SourceRecord:
    """Timesheets settle on their week-ending date and carry a billed gross."""
    return SourceRecord(
        kind=SourceKind.TIMESHEET,
        id=timesheet.id,
        external_id=getattr(timesheet, "external_id", None),
        name=getattr(timesheet, "name", "") or "",
        account_name=_account_name(timesheet),
        owner_id=timesheet.owner_id,
        nfi_value=_decimal(timesheet.nfi_value),
        gross_value=_decimal(timesheet.gross_value),
        settlement_date=timesheet.week_ending,
        placement_type=None,
        is_clawback=bool(getattr(timesheet, "is_clawback", False)),
        commission_paid=bool(getattr(timesheet, "commission_paid", False)),
    )


def normalize_records(placements, timesheets) -> list[SourceRecord]:
    """Placements first, then timesheets, each in the order given."""
    records = [from_placement(p) for p in placements]
    records.extend(from_timesheet(t) for t in timesheets)
    return records
