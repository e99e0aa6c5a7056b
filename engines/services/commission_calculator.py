"""
Commission Calculator

Pure calculation logic for one employee and one monthly period.
Matches source records against assigned plan components, resolves tier
ladders, and layers threshold-gated kickers on top of earned commission.

No I/O happens here: callers load assignments, the report graph and the
period's source records, and persist the returned entries themselves.
"""

import logging
from collections.abc import Iterable, Sequence
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from engines.schemas.commission_engine import (
    AssignmentRule,
    CalculatedEntry,
    ComponentRule,
    ComponentType,
    PlacementType,
    SourceKind,
    SourceRecord,
)
from engines.services.fiscal_calendar import parse_period, period_of

logger = logging.getLogger(__name__)

MONEY_QUANTUM = Decimal("0.01")
ZERO = Decimal("0")

# Component types that earn against individual source records
RECORD_TYPES = {
    ComponentType.PLACEMENT_PERM,
    ComponentType.PLACEMENT_CONTRACT,
    ComponentType.TIMESHEET,
    ComponentType.OVERRIDE,
}


def to_money(value: Decimal) -> Decimal:
    """Round a currency amount to the penny."""
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def matches_account_filter(account_name: str | None, account_filter: str | None) -> bool:
    """Case-insensitive substring match; no filter matches everything."""
    if not account_filter:
        return True
    if not account_name:
        return False
    return account_filter.lower() in account_name.lower()


def matches_component_type(component_type: ComponentType, record: SourceRecord) -> bool:
    """Whether a record's kind/sub-type is the one a component pays on."""
    if component_type == ComponentType.PLACEMENT_PERM:
        return record.kind == SourceKind.PLACEMENT and record.placement_type == PlacementType.PERM
    if component_type == ComponentType.PLACEMENT_CONTRACT:
        return record.kind == SourceKind.PLACEMENT and record.placement_type == PlacementType.CONTRACT
    if component_type == ComponentType.TIMESHEET:
        return record.kind == SourceKind.TIMESHEET
    return False


def is_eligible(
    component: ComponentRule,
    record: SourceRecord,
    employee_id: UUID,
    direct_report_ids: set[UUID],
) -> bool:
    """
    Eligibility of one record for one component group.

    A record qualifies through direct ownership, through an override on a
    direct report's record, or through the component's account filter.
    An account filter bypasses ownership but, when present, must match.
    Non-override components also need a matching record type.
    """
    is_override = component.type == ComponentType.OVERRIDE
    is_direct_owner = record.owner_id == employee_id
    is_team_member = (
        is_override
        and record.owner_id is not None
        and record.owner_id in direct_report_ids
    )
    has_account_filter = bool(component.account_filter)

    if not (is_direct_owner or is_team_member or has_account_filter):
        return False
    if has_account_filter and not matches_account_filter(record.account_name, component.account_filter):
        return False
    if not is_override and not matches_component_type(component.type, record):
        return False
    return True


def sort_tiers(components: Iterable[ComponentRule]) -> list[ComponentRule]:
    return sorted(components, key=lambda c: c.tier if c.tier is not None else 0)


def ladder_problem(components: Sequence[ComponentRule]) -> str | None:
    """
    Describe what is wrong with a component group, or None if usable.

    A ladder needs a rate on every tier, ``min < max`` on every window,
    and windows that do not overlap.
    """
    for comp in components:
        if comp.rate is None:
            return f"component {comp.id} has no rate"
    if len(components) < 2:
        return None

    for comp in components:
        if comp.min_value is not None and comp.max_value is not None and comp.min_value >= comp.max_value:
            return f"tier {comp.tier} of '{comp.name}' has inverted bounds"

    windows = sorted(components, key=lambda c: c.min_value if c.min_value is not None else ZERO)
    for lower, upper in zip(windows, windows[1:]):
        upper_min = upper.min_value if upper.min_value is not None else ZERO
        if lower.max_value is None or lower.max_value > upper_min:
            return f"tiers {lower.tier} and {upper.tier} of '{lower.name}' overlap"
    return None


def resolve_tier(components: Sequence[ComponentRule], value: Decimal) -> ComponentRule:
    """
    Pick the tier whose ``[min_value, max_value)`` window contains ``value``.

    Tiers are tried in ascending tier order and the first match wins.
    When no window contains the value the lowest tier is used.
    """
    ordered = sort_tiers(components)
    for comp in ordered:
        lower = comp.min_value if comp.min_value is not None else ZERO
        if value >= lower and (comp.max_value is None or value < comp.max_value):
            return comp
    logger.info(
        f"No tier of '{ordered[0].name}' covers {value}; "
        f"falling back to tier {ordered[0].tier}"
    )
    return ordered[0]


def calculate_amount(nfi_value: Decimal, rate: Decimal, is_percentage: bool) -> Decimal:
    """Percentage components multiply NFI; flat components pay the rate as-is."""
    if is_percentage:
        return to_money(nfi_value * rate)
    return to_money(rate)


def group_components(components: Iterable[ComponentRule]) -> dict[tuple[str, str], list[ComponentRule]]:
    """Group an assignment's components by ``(name, type)`` preserving order."""
    groups: dict[tuple[str, str], list[ComponentRule]] = {}
    for comp in components:
        groups.setdefault(comp.group_key, []).append(comp)
    return groups


def _entry(
    employee_id: UUID,
    component_id: UUID,
    record: SourceRecord,
    period: str,
    amount: Decimal,
    rate: Decimal,
    is_clawback: bool,
    backdated_from_period: str | None,
) -> CalculatedEntry:
    return CalculatedEntry(
        employee_id=employee_id,
        plan_component_id=component_id,
        source_kind=record.kind,
        source_placement_id=record.id if record.kind == SourceKind.PLACEMENT else None,
        source_timesheet_id=record.id if record.kind == SourceKind.TIMESHEET else None,
        period=period,
        gross_value=record.nfi_value,
        commission_amount=amount,
        rate=rate,
        is_clawback=is_clawback,
        backdated_from_period=backdated_from_period,
    )


def calculate_group_entries(
    employee_id: UUID,
    period: str,
    components: Sequence[ComponentRule],
    records: Sequence[SourceRecord],
    direct_report_ids: set[UUID],
    backdated_from_period: str | None = None,
) -> list[CalculatedEntry]:
    """Entries one component group earns across the period's records."""
    ordered = sort_tiers(components)
    representative = ordered[0]
    is_ladder = len(ordered) > 1

    entries = []
    for record in records:
        if not is_eligible(representative, record, employee_id, direct_report_ids):
            continue

        tier = resolve_tier(ordered, abs(record.nfi_value)) if is_ladder else representative
        amount = calculate_amount(record.nfi_value, tier.rate, tier.is_percentage)
        entries.append(
            _entry(
                employee_id,
                representative.id,
                record,
                period,
                amount,
                tier.rate,
                record.is_clawback,
                backdated_from_period,
            )
        )
    return entries


def apply_kickers(
    employee_id: UUID,
    period: str,
    kickers: Sequence[ComponentRule],
    records: Sequence[SourceRecord],
    earned: Sequence[CalculatedEntry],
) -> list[CalculatedEntry]:
    """
    Threshold-gated kicker entries for the period.

    The trigger is the sum of non-clawback gross values already earned.
    Once a kicker's threshold is met it pays its own rate on every directly
    owned, non-clawback record of the period. Below the threshold it pays
    nothing at all.
    """
    if not kickers:
        return []

    total_nfi = sum((e.gross_value for e in earned if not e.is_clawback), ZERO)

    entries = []
    for kicker in kickers:
        if kicker.kicker_threshold is None:
            logger.warning(f"Kicker {kicker.id} has no threshold; skipped")
            continue
        if kicker.rate is None:
            logger.warning(f"Kicker {kicker.id} has no rate; skipped")
            continue
        if total_nfi < kicker.kicker_threshold:
            logger.debug(
                f"Kicker {kicker.id} not reached: {total_nfi} < {kicker.kicker_threshold}"
            )
            continue

        for record in records:
            if record.owner_id != employee_id or record.is_clawback:
                continue
            amount = calculate_amount(record.nfi_value, kicker.rate, kicker.is_percentage)
            entries.append(
                _entry(employee_id, kicker.id, record, period, amount, kicker.rate, False, None)
            )
    return entries


def calculate_commission_entries(
    employee_id: UUID,
    period: str,
    assignments: Sequence[AssignmentRule],
    direct_report_ids: Iterable[UUID],
    records: Sequence[SourceRecord],
    current_period: str | None = None,
) -> list[CalculatedEntry]:
    """
    Calculate all commission entries for one employee and one period.

    Algorithm:
    1. Group each assignment's components by (name, type) into tier ladders
    2. Skip malformed groups (logged), BONUS_FLAT groups, and KICKER groups
    3. Match every record against every group: ownership, override, account filter
    4. Resolve the rate (tier ladder or single component) and the amount
    5. Post-process kickers against the period's cumulative non-clawback gross

    ``current_period`` only drives the inert ``backdated_from_period`` marker;
    entries always post to ``period``.
    """
    parse_period(period)
    effective_current = current_period or period_of(date.today())
    backdated_from_period = period if period != effective_current else None
    report_ids = set(direct_report_ids)

    results: list[CalculatedEntry] = []
    kickers: list[ComponentRule] = []

    for assignment in assignments:
        active = [c for c in assignment.components if c.is_active]
        kickers.extend(c for c in active if c.type == ComponentType.KICKER)

        for (name, type_), group in group_components(active).items():
            if type_ not in {t.value for t in RECORD_TYPES}:
                continue
            problem = ladder_problem(group)
            if problem:
                logger.warning(
                    f"Skipping component group '{name}' ({type_}) on plan "
                    f"{assignment.plan_id} for employee {employee_id}: {problem}"
                )
                continue
            results.extend(
                calculate_group_entries(
                    employee_id,
                    period,
                    group,
                    records,
                    report_ids,
                    backdated_from_period,
                )
            )

    results.extend(apply_kickers(employee_id, period, kickers, records, results))

    logger.info(
        f"Calculated {len(results)} entries for employee {employee_id} in {period}"
    )
    return results
