"""
Unit tests for the pending sale workflow.

Tests draft submission, pending group visibility, whole-group confirmation
with settlement figures and returned units, and store round trips.
"""

import pytest
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal

from bullion.core.exceptions import (
    RecordNotFound,
    ReferentialIntegrityViolation,
    ValidationFailure,
    WorkflowStateError,
)
from bullion.core.models import (
    GhaatType,
    LedgerEntryType,
    LedgerSource,
    SaleStatus,
    SettlementType,
)
from bullion.services.jewellery_inventory import JewelleryInventoryEngine
from bullion.services.pending_sales import (
    DraftItem,
    PendingSaleWorkflow,
    SaleDraft,
    SaleSettlement,
    SaleState,
)

GIVEN = date(2024, 4, 1)


@pytest.fixture
def pending_items(make_ghaat):
    """Two pieces given to m-1 under group grp-1."""
    common = dict(merchant_id="m-1", merchant_name="Shree Jewellers", status=SaleStatus.PENDING,
                  group_id="grp-1", group_size=2, on=GIVEN, created_at=datetime(2024, 4, 1, 11))
    return [
        make_ghaat("a-chain", "sell", 2, "5", "90", category="Chains", **common),
        make_ghaat("b-ring", "sell", 1, "4", "75", category="Rings", **common),
    ]


@pytest.fixture
def settlement():
    return SaleSettlement(
        rate_per_10gm=Decimal("60000"),
        confirmed_date=date(2024, 4, 15),
        cash_received=Decimal("50000"),
        gold_returned_weight=Decimal("2"),
        gold_returned_purity=Decimal("100"),
    )


class TestSubmit:
    """DRAFT -> PENDING."""

    def test_one_pending_sell_per_item(self):
        draft = SaleDraft("m-1", "Shree Jewellers", GIVEN, (
            DraftItem("Chains", 2, Decimal("5"), Decimal("90")),
            DraftItem("Rings", 1, Decimal("4"), Decimal("75"), notes="Pair"),
        ))

        command = PendingSaleWorkflow.submit(draft, now=datetime(2024, 4, 1, 11), group_id="grp-1")

        assert len(command.appends) == 2
        assert {t.group_id for t in command.appends} == {"grp-1"}
        assert all(t.status == SaleStatus.PENDING and t.type == GhaatType.SELL for t in command.appends)
        assert all(t.group_size == 2 for t in command.appends)
        assert command.appends[1].notes == "Pair"
        assert len({t.id for t in command.appends}) == 2

    def test_fresh_group_id(self):
        draft = SaleDraft("m-1", "", GIVEN, (DraftItem("Chains", 1, Decimal("5"), Decimal("90")),))

        first = PendingSaleWorkflow.submit(draft).appends[0].group_id
        second = PendingSaleWorkflow.submit(draft).appends[0].group_id

        assert first != second

    @pytest.mark.parametrize("draft", [
        SaleDraft("", "", GIVEN, (DraftItem("Chains", 1, Decimal("5"), Decimal("90")),)),
        SaleDraft("m-1", "", GIVEN, ()),
        SaleDraft("m-1", "", GIVEN, (DraftItem("Chains", 0, Decimal("5"), Decimal("90")),)),
        SaleDraft("m-1", "", GIVEN, (DraftItem("Chains", 1, Decimal("0"), Decimal("90")),)),
        SaleDraft("m-1", "", GIVEN, (DraftItem("", 1, Decimal("5"), Decimal("90")),)),
        SaleDraft("m-1", "", GIVEN, (DraftItem("Chains", 1, Decimal("5"), Decimal("0")),)),
    ], ids=["no-merchant", "no-items", "no-units", "no-weight", "no-category", "no-purity"])
    def test_invalid_drafts(self, draft):
        with pytest.raises(ValidationFailure):
            PendingSaleWorkflow.submit(draft)


class TestPendingGroups:

    def test_group_listed_with_totals(self, pending_items):
        groups = PendingSaleWorkflow(pending_items).pending_groups()

        assert len(groups) == 1
        group = groups[0]
        assert (group.merchant_id, group.group_id, group.date_given) == ("m-1", "grp-1", GIVEN)
        assert group.total_units == 3
        assert group.total_fine_gold == Decimal("12")

    def test_partly_confirmed_group_hidden(self, pending_items):
        items = [replace(pending_items[0], status=SaleStatus.CONFIRMED), pending_items[1]]

        workflow = PendingSaleWorkflow(items)

        assert workflow.pending_groups() == []
        with pytest.raises(WorkflowStateError):
            workflow.find_group("m-1", "grp-1")

    def test_group_with_deleted_member_hidden(self, pending_items):
        assert PendingSaleWorkflow(pending_items[:1]).pending_groups() == []

    def test_newest_first(self, pending_items, make_ghaat):
        later = make_ghaat("c-1", "sell", 1, "3", "90", merchant_id="m-2", status=SaleStatus.PENDING,
                           group_id="grp-2", on=date(2024, 4, 9))
        legacy = make_ghaat("d-1", "sell", 1, "3", "90", merchant_id="m-1", status=SaleStatus.PENDING,
                            on=date(2024, 3, 1))

        groups = PendingSaleWorkflow(pending_items + [later, legacy]).pending_groups()

        assert [g.group_id for g in groups] == ["grp-2", "grp-1", "d-1"]

    def test_state_of(self, pending_items):
        workflow = PendingSaleWorkflow(pending_items)

        assert workflow.state_of("a-chain") == SaleState.PENDING
        assert workflow.state_of("gone") == SaleState.DELETED

    def test_state_of_records_outside_workflow(self, pending_items, make_ghaat):
        confirmed = replace(pending_items[1], status=SaleStatus.CONFIRMED)
        karigar_buy = make_ghaat("k-1", "buy", 2, "5", "90", karigar_id="k-1")
        legacy_sell = make_ghaat("l-1", "sell", 1, "5", "90", merchant_id="m-1")

        workflow = PendingSaleWorkflow([pending_items[0], confirmed, karigar_buy, legacy_sell])

        assert workflow.state_of("b-ring") == SaleState.CONFIRMED
        assert workflow.state_of("k-1") is None
        assert workflow.state_of("l-1") is None

    def test_unknown_group(self, pending_items):
        with pytest.raises(RecordNotFound):
            PendingSaleWorkflow(pending_items).find_group("m-1", "nope")


class TestConfirm:
    """PENDING -> CONFIRMED for the whole group."""

    def test_every_item_confirmed(self, pending_items, settlement):
        result = PendingSaleWorkflow(pending_items).confirm("m-1", "grp-1", settlement)

        updates = result.command.updates
        assert [t.id for t in updates] == ["a-chain", "b-ring"]
        assert all(t.status == SaleStatus.CONFIRMED for t in updates)
        assert all(t.confirmed_date == date(2024, 4, 15) for t in updates)
        assert result.command.appends == ()

    def test_settlement_figures(self, pending_items, settlement):
        result = PendingSaleWorkflow(pending_items).confirm("m-1", "grp-1", settlement)

        assert result.total_amount == Decimal("72000")
        assert result.total_received == Decimal("62000")
        assert result.dues_shortfall == Decimal("10000")
        chain, ring = result.command.updates
        assert (chain.total_amount, ring.total_amount) == (Decimal("54000"), Decimal("18000"))
        assert chain.dues_shortfall + ring.dues_shortfall == Decimal("10000")
        assert chain.dues_shortfall == Decimal("7500")

    def test_settlement_recorded_on_first_item(self, pending_items, settlement):
        chain, ring = PendingSaleWorkflow(pending_items).confirm("m-1", "grp-1", settlement).command.updates

        assert chain.cash_received == Decimal("50000")
        assert chain.gold_returned_weight == Decimal("2")
        assert ring.cash_received == Decimal("0")
        assert ring.gold_returned_weight == Decimal("0")
        assert chain.settlement_type == SettlementType.CASH

    def test_gold_entry_references_first_item(self, pending_items, settlement):
        command = PendingSaleWorkflow(pending_items).confirm("m-1", "grp-1", settlement).command

        (reference_id, effect), = command.ledger_effects
        assert reference_id == "a-chain"
        assert effect.type == LedgerEntryType.IN
        assert effect.source == LedgerSource.MERCHANT_RETURN
        assert effect.gross_weight == Decimal("2")

    def test_gold_only_settlement_type(self, pending_items):
        settlement = SaleSettlement(Decimal("60000"), date(2024, 4, 15), gold_returned_weight=Decimal("12"),
                                    gold_returned_purity=Decimal("100"))

        result = PendingSaleWorkflow(pending_items).confirm("m-1", "grp-1", settlement)

        assert result.command.updates[0].settlement_type == SettlementType.GOLD
        assert result.dues_shortfall == Decimal("0")

    def test_returned_units_become_buy_backs(self, pending_items, settlement):
        settlement = SaleSettlement(settlement.rate_per_10gm, settlement.confirmed_date,
                                    cash_received=Decimal("45000"), returned_units={"a-chain": 1})

        result = PendingSaleWorkflow(pending_items).confirm("m-1", "grp-1", settlement)

        chain = result.command.updates[0]
        assert (chain.confirmed_units, chain.confirmed_fine_gold) == (1, Decimal("4.5"))
        assert chain.total_amount == Decimal("27000")
        (buy_back,) = result.command.appends
        assert (buy_back.type, buy_back.units, buy_back.source_transaction_id) == (GhaatType.BUY, 1, "a-chain")
        assert buy_back.merchant_id == "m-1"
        assert result.returned_units == 1
        assert result.dues_shortfall == Decimal("0")

    @pytest.mark.parametrize("returned", [{"a-chain": 3}, {"other": 1}, {"b-ring": -1}])
    def test_invalid_returned_units(self, pending_items, settlement, returned):
        settlement = SaleSettlement(settlement.rate_per_10gm, settlement.confirmed_date, returned_units=returned)

        with pytest.raises(ValidationFailure):
            PendingSaleWorkflow(pending_items).confirm("m-1", "grp-1", settlement)

    def test_rate_required(self, pending_items):
        with pytest.raises(ValidationFailure):
            PendingSaleWorkflow(pending_items).confirm(
                "m-1", "grp-1", SaleSettlement(Decimal("0"), date(2024, 4, 15))
            )

    def test_returned_gold_needs_purity(self, pending_items):
        settlement = SaleSettlement(Decimal("60000"), date(2024, 4, 15), gold_returned_weight=Decimal("1"))
        with pytest.raises(ValidationFailure):
            PendingSaleWorkflow(pending_items).confirm("m-1", "grp-1", settlement)


class TestWorkflowWithStore:
    """Commands applied through the record store."""

    def test_give_confirm_delete(self, store, settlement):
        draft = SaleDraft("m-1", "Shree Jewellers", GIVEN, (
            DraftItem("Chains", 2, Decimal("5"), Decimal("90")),
            DraftItem("Rings", 1, Decimal("4"), Decimal("75")),
        ))
        store.apply(PendingSaleWorkflow.submit(draft, group_id="grp-1"))

        workflow = PendingSaleWorkflow(store.list_ghaat_transactions())
        assert [g.group_id for g in workflow.pending_groups()] == ["grp-1"]

        settlement = SaleSettlement(settlement.rate_per_10gm, settlement.confirmed_date,
                                    cash_received=Decimal("10000"), gold_returned_weight=Decimal("2"),
                                    gold_returned_purity=Decimal("100"))
        result = workflow.confirm("m-1", "grp-1", settlement)
        store.apply(result.command)

        transactions = store.list_ghaat_transactions()
        assert {t.status for t in transactions} == {SaleStatus.CONFIRMED}
        assert PendingSaleWorkflow(transactions).pending_groups() == []
        (entry,) = store.list_raw_gold_ledger_entries()
        assert entry.reference_id == result.command.updates[0].id
        assert entry.fine_gold == Decimal("2")

        store.apply(PendingSaleWorkflow(transactions).delete_group("m-1", "grp-1"))

        assert store.list_ghaat_transactions() == []
        assert store.list_raw_gold_ledger_entries() == []

    def test_confirm_is_all_or_nothing(self, store, pending_items, settlement):
        for item in pending_items:
            store.append_record(item)
        result = PendingSaleWorkflow(store.list_ghaat_transactions()).confirm("m-1", "grp-1", settlement)

        # one item disappears before the confirmation is applied
        store.delete_record("ghaat_transaction", "b-ring")
        with pytest.raises(RecordNotFound):
            store.apply(result.command)

        remaining = store.list_ghaat_transactions()
        assert [(t.id, t.status) for t in remaining] == [("a-chain", SaleStatus.PENDING)]
        assert store.list_raw_gold_ledger_entries() == []

    def test_buy_backs_removed_with_group(self, store, pending_items, settlement):
        for item in pending_items:
            store.append_record(item)
        settlement = SaleSettlement(settlement.rate_per_10gm, settlement.confirmed_date,
                                    returned_units={"b-ring": 1})
        store.apply(PendingSaleWorkflow(store.list_ghaat_transactions()).confirm("m-1", "grp-1", settlement).command)
        assert len(store.list_ghaat_transactions()) == 3

        store.apply(PendingSaleWorkflow(store.list_ghaat_transactions()).delete_group("m-1", "grp-1"))

        assert store.list_ghaat_transactions() == []

    def test_confirm_from_stale_snapshot_refused(self, store, config, pending_items, settlement):
        for item in pending_items:
            store.append_record(item)
        snapshot = store.list_ghaat_transactions()
        settlement = SaleSettlement(settlement.rate_per_10gm, settlement.confirmed_date,
                                    cash_received=Decimal("54000"), returned_units={"b-ring": 1})
        first = PendingSaleWorkflow(snapshot).confirm("m-1", "grp-1", settlement)
        second = PendingSaleWorkflow(snapshot).confirm("m-1", "grp-1", settlement)

        store.apply(first.command)
        transactions = store.list_ghaat_transactions()
        rings = JewelleryInventoryEngine(transactions, config.categories.jewellery, config.weight_brackets)
        ring_units = rings.calculate_stock("Rings").total_units

        with pytest.raises(WorkflowStateError):
            store.apply(second.command)

        after = store.list_ghaat_transactions()
        assert after == transactions
        buy_backs = [t for t in after if t.source_transaction_id == "b-ring"]
        assert [t.units for t in buy_backs] == [1]
        engine = JewelleryInventoryEngine(after, config.categories.jewellery, config.weight_brackets)
        assert engine.calculate_stock("Rings").total_units == ring_units

    def test_confirmed_member_not_deleted_alone(self, store, config, pending_items):
        for item in pending_items:
            store.append_record(item)
        paid = SaleSettlement(Decimal("60000"), date(2024, 4, 15), cash_received=Decimal("72000"))
        store.apply(PendingSaleWorkflow(store.list_ghaat_transactions()).confirm("m-1", "grp-1", paid).command)

        for txn_id in ("a-chain", "b-ring"):
            with pytest.raises(ReferentialIntegrityViolation):
                store.delete_record("ghaat_transaction", txn_id)

        transactions = store.list_ghaat_transactions()
        assert len(transactions) == 2
        engine = JewelleryInventoryEngine(transactions, config.categories.jewellery, config.weight_brackets)
        assert engine.calculate_merchant_jewellery_dues("m-1").cash_due == Decimal("0")

    def test_pending_member_deleted_alone(self, store, pending_items):
        for item in pending_items:
            store.append_record(item)

        store.delete_record("ghaat_transaction", "b-ring")

        assert [t.id for t in store.list_ghaat_transactions()] == ["a-chain"]
