"""
Pending jewellery sale workflow: give -> confirm.

Pieces handed to a merchant are recorded as pending sells sharing one group
id. Confirming the group settles it all at once: every item becomes
confirmed with the settlement rate, pieces the merchant hands back become
buy transactions, and gold handed back is recorded in the raw gold ledger.

States per item: DRAFT (not stored) -> PENDING -> CONFIRMED, or DELETED.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from bullion.core.commands import RecordCommand, derive_ledger_effect, new_id
from bullion.core.exceptions import RecordNotFound, ValidationFailure, WorkflowStateError
from bullion.core.models import (
    HUNDRED,
    TEN,
    ZERO,
    GhaatTransaction,
    GhaatType,
    PendingSaleGroup,
    RecordKind,
    SaleStatus,
    SettlementType,
    fine_gold_of,
)

logger = logging.getLogger(__name__)


class SaleState(Enum):
    DRAFT = "draft"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DELETED = "deleted"


@dataclass(frozen=True)
class DraftItem:
    category: str
    units: int
    gross_weight_per_unit: Decimal
    purity: Decimal
    notes: str = ""


@dataclass(frozen=True)
class SaleDraft:
    """Pieces entered in one batch for one merchant."""
    merchant_id: str
    merchant_name: str
    date_given: date
    items: Tuple[DraftItem, ...] = ()


@dataclass(frozen=True)
class SaleSettlement:
    """
    Terms recorded when a merchant settles a pending group.

    Attributes:
        rate_per_10gm: Agreed rate per 10 gm of fine gold
        confirmed_date: Settlement date
        cash_received: Cash paid by the merchant
        gold_returned_weight: Gross weight of gold handed back
        gold_returned_purity: Purity (%) of that gold
        returned_units: Pieces handed back, by transaction id
        settlement_type: Defaults to gold when only gold was handed back,
            cash otherwise
    """
    rate_per_10gm: Decimal
    confirmed_date: date
    cash_received: Decimal = ZERO
    gold_returned_weight: Decimal = ZERO
    gold_returned_purity: Decimal = ZERO
    returned_units: Mapping[str, int] = field(default_factory=dict)
    settlement_type: Optional[SettlementType] = None


@dataclass
class SaleConfirmation:
    """Command to apply plus the settlement figures shown to the user."""
    command: RecordCommand
    total_amount: Decimal
    total_received: Decimal
    dues_shortfall: Decimal
    returned_units: int


def _validate_draft(draft: SaleDraft) -> None:
    if not draft.merchant_id:
        raise ValidationFailure("A merchant is required", field="merchant_id")
    if not draft.items:
        raise ValidationFailure("At least one item is required", field="items")
    for item in draft.items:
        if not item.category:
            raise ValidationFailure("Item category is required", field="category")
        if item.units <= 0:
            raise ValidationFailure(f"Units must be positive, got {item.units}", field="units")
        if item.gross_weight_per_unit <= ZERO:
            raise ValidationFailure("Gross weight per unit must be positive", field="gross_weight_per_unit")
        if item.purity <= ZERO or item.purity > HUNDRED:
            raise ValidationFailure(f"Purity must be in (0, 100], got {item.purity}", field="purity")


def _validate_settlement(settlement: SaleSettlement) -> None:
    if settlement.rate_per_10gm <= ZERO:
        raise ValidationFailure("Rate per 10 gm must be positive", field="rate_per_10gm")
    if settlement.cash_received < ZERO:
        raise ValidationFailure("Cash received cannot be negative", field="cash_received")
    if settlement.gold_returned_weight < ZERO:
        raise ValidationFailure("Gold returned cannot be negative", field="gold_returned_weight")
    if settlement.gold_returned_purity < ZERO or settlement.gold_returned_purity > HUNDRED:
        raise ValidationFailure("Gold returned purity must be between 0 and 100", field="gold_returned_purity")
    if settlement.gold_returned_weight > ZERO and settlement.gold_returned_purity == ZERO:
        raise ValidationFailure("Purity is required for gold returned", field="gold_returned_purity")


def _shares(total: Decimal, weights: Sequence[Decimal]) -> List[Decimal]:
    """Split total in proportion to weights; the last share takes the remainder."""
    weight_sum = sum(weights, ZERO)
    if not weights:
        return []
    if weight_sum == ZERO:
        return [ZERO] * (len(weights) - 1) + [total]
    shares = [total * w / weight_sum for w in weights[:-1]]
    shares.append(total - sum(shares, ZERO))
    return shares


class PendingSaleWorkflow:
    """
    Two-phase jewellery sale over a snapshot of jewellery transactions.

    Usage:
        command = PendingSaleWorkflow.submit(draft)
        store.apply(command)

        workflow = PendingSaleWorkflow(store.list_ghaat_transactions())
        group = workflow.pending_groups()[0]
        result = workflow.confirm(group.merchant_id, group.group_id, settlement)
        store.apply(result.command)
    """

    def __init__(self, transactions: Sequence[GhaatTransaction]):
        self.transactions = list(transactions)

    @staticmethod
    def submit(draft: SaleDraft, now: Optional[datetime] = None, group_id: Optional[str] = None) -> RecordCommand:
        """DRAFT -> PENDING: one pending sell per item, all under a fresh group id."""
        _validate_draft(draft)
        now = now or datetime.now()
        group_id = group_id or new_id()

        items = tuple(
            GhaatTransaction(
                id=new_id(),
                type=GhaatType.SELL,
                category=item.category,
                units=item.units,
                gross_weight_per_unit=item.gross_weight_per_unit,
                purity=item.purity,
                created_at=now,
                transaction_date=draft.date_given,
                merchant_id=draft.merchant_id,
                merchant_name=draft.merchant_name,
                status=SaleStatus.PENDING,
                group_id=group_id,
                group_size=len(draft.items),
                notes=item.notes,
            )
            for item in draft.items
        )
        logger.info(f"Pending sale {group_id}: {len(items)} items to {draft.merchant_name or draft.merchant_id}")
        return RecordCommand(appends=items, description=f"Give jewellery to {draft.merchant_id} ({group_id})")

    def _members(self, merchant_id: str, group_id: str) -> List[GhaatTransaction]:
        members = [
            t for t in self.transactions
            if t.type == GhaatType.SELL and t.merchant_id == merchant_id and (t.group_id or t.id) == group_id
        ]
        return sorted(members, key=lambda t: (t.created_at, t.id))

    @staticmethod
    def _is_fully_pending(members: Sequence[GhaatTransaction]) -> bool:
        if not members or any(t.status != SaleStatus.PENDING for t in members):
            return False
        expected = members[0].group_size
        return expected is None or expected == len(members)

    def pending_groups(self) -> List[PendingSaleGroup]:
        """One group per (merchant, group id) whose members are all still pending, newest first."""
        keys = []
        for txn in self.transactions:
            if txn.type == GhaatType.SELL and txn.status == SaleStatus.PENDING and txn.merchant_id:
                key = (txn.merchant_id, txn.group_id or txn.id)
                if key not in keys:
                    keys.append(key)

        groups = []
        for merchant_id, group_id in keys:
            members = self._members(merchant_id, group_id)
            if not self._is_fully_pending(members):
                continue
            groups.append(PendingSaleGroup(
                group_id=group_id,
                merchant_id=merchant_id,
                merchant_name=members[0].merchant_name,
                date_given=min(t.effective_date for t in members),
                items=tuple(members),
            ))
        groups.sort(key=lambda g: (g.date_given, g.group_id), reverse=True)
        return groups

    def find_group(self, merchant_id: str, group_id: str) -> PendingSaleGroup:
        """
        Raises:
            RecordNotFound: If the group has no members
            WorkflowStateError: If the group is not entirely pending
        """
        members = self._members(merchant_id, group_id)
        if not members:
            raise RecordNotFound("pending_sale_group", group_id)
        if not self._is_fully_pending(members):
            raise WorkflowStateError(
                f"Group {group_id} is not fully pending; only whole groups can be confirmed",
                group_id=group_id,
            )
        return PendingSaleGroup(
            group_id=group_id,
            merchant_id=merchant_id,
            merchant_name=members[0].merchant_name,
            date_given=min(t.effective_date for t in members),
            items=tuple(members),
        )

    def state_of(self, transaction_id: str) -> Optional[SaleState]:
        """
        Workflow state of a sell given to a merchant.

        Returns:
            DELETED for an unknown id, None for records outside the workflow
            (karigar buys, buy-backs, legacy sells without status)
        """
        for txn in self.transactions:
            if txn.id != transaction_id:
                continue
            if txn.type != GhaatType.SELL:
                return None
            if txn.status == SaleStatus.PENDING:
                return SaleState.PENDING
            if txn.status == SaleStatus.CONFIRMED:
                return SaleState.CONFIRMED
            return None
        return SaleState.DELETED

    def confirm(
        self,
        merchant_id: str,
        group_id: str,
        settlement: SaleSettlement,
        now: Optional[datetime] = None,
    ) -> SaleConfirmation:
        """
        PENDING -> CONFIRMED for every item of a group.

        The settlement (cash, gold handed back) is recorded on the first item
        of the group, which also becomes the reference of the raw gold entry.

        Raises:
            ValidationFailure: If the settlement or returned units are invalid
            RecordNotFound: If the group does not exist
            WorkflowStateError: If the group is not entirely pending
        """
        _validate_settlement(settlement)
        group = self.find_group(merchant_id, group_id)
        now = now or datetime.now()
        rate = settlement.rate_per_10gm

        item_ids = {item.id for item in group.items}
        for txn_id, units in settlement.returned_units.items():
            if txn_id not in item_ids:
                raise ValidationFailure(f"{txn_id} is not part of group {group_id}", field="returned_units")
            if units < 0:
                raise ValidationFailure("Returned units cannot be negative", field="returned_units", record_id=txn_id)

        kept: Dict[str, Tuple[int, Decimal, Decimal, Decimal]] = {}
        for item in group.items:
            returned = settlement.returned_units.get(item.id, 0)
            if returned > item.units:
                raise ValidationFailure(
                    f"Cannot return {returned} of {item.units} units", field="returned_units", record_id=item.id
                )
            units = item.units - returned
            gross = item.gross_weight_per_unit * units
            fine = fine_gold_of(gross, item.purity)
            kept[item.id] = (units, gross, fine, fine * rate / TEN)

        total_amount = sum((v[3] for v in kept.values()), ZERO)
        gold_value = fine_gold_of(settlement.gold_returned_weight, settlement.gold_returned_purity) * rate / TEN
        total_received = settlement.cash_received + gold_value
        shortfall = max(ZERO, total_amount - total_received)
        shares = _shares(shortfall, [kept[item.id][3] for item in group.items])

        settlement_type = settlement.settlement_type
        if settlement_type is None:
            only_gold = settlement.gold_returned_weight > ZERO and settlement.cash_received == ZERO
            settlement_type = SettlementType.GOLD if only_gold else SettlementType.CASH

        updates = []
        buy_backs = []
        for index, item in enumerate(group.items):
            units, gross, fine, value = kept[item.id]
            first = index == 0
            updates.append(replace(
                item,
                status=SaleStatus.CONFIRMED,
                rate_per_10gm=rate,
                total_amount=value,
                settlement_type=settlement_type,
                gold_returned_weight=settlement.gold_returned_weight if first else ZERO,
                gold_returned_purity=settlement.gold_returned_purity if first else ZERO,
                cash_received=settlement.cash_received if first else ZERO,
                confirmed_date=settlement.confirmed_date,
                confirmed_units=units,
                confirmed_gross_weight=gross,
                confirmed_fine_gold=fine,
                dues_shortfall=shares[index],
            ))

            returned = item.units - units
            if returned > 0:
                buy_backs.append(GhaatTransaction(
                    id=new_id(),
                    type=GhaatType.BUY,
                    category=item.category,
                    units=returned,
                    gross_weight_per_unit=item.gross_weight_per_unit,
                    purity=item.purity,
                    created_at=now,
                    transaction_date=settlement.confirmed_date,
                    merchant_id=item.merchant_id,
                    merchant_name=item.merchant_name,
                    source_transaction_id=item.id,
                    notes=f"Returned from pending sale (group: {group_id})",
                ))

        confirming = updates[0]
        command = RecordCommand(
            appends=tuple(buy_backs),
            updates=tuple(updates),
            ledger_effects=((confirming.id, derive_ledger_effect(confirming)),),
            expected_status=tuple((item.id, SaleStatus.PENDING) for item in group.items),
            description=f"Confirm sale {group_id} for {merchant_id}",
        )
        returned_total = sum(b.units for b in buy_backs)
        logger.info(
            f"Confirmed group {group_id}: amount {total_amount}, received {total_received}, "
            f"shortfall {shortfall}, {returned_total} units returned"
        )
        return SaleConfirmation(
            command=command,
            total_amount=total_amount,
            total_received=total_received,
            dues_shortfall=shortfall,
            returned_units=returned_total,
        )

    def delete_group(self, merchant_id: str, group_id: str) -> RecordCommand:
        """Delete every item of a group together with anything derived from it."""
        members = self._members(merchant_id, group_id)
        if not members:
            raise RecordNotFound("pending_sale_group", group_id)
        return RecordCommand(
            deletes=tuple((RecordKind.GHAAT_TRANSACTION, t.id) for t in members),
            description=f"Delete sale group {group_id}",
        )
