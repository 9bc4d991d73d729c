"""Tests for chain creation, split, merge and transform."""
from __future__ import annotations

from decimal import Decimal
from unittest.mock import patch

import pytest
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from palmtrace.errors import CustodyError, InsufficientQuantityError, NotFoundError, PersistenceError
from palmtrace.models.base import (
    ChainStatusEnum, CustodyEventTypeEnum, MassBalanceEventTypeEnum,
)
from palmtrace.models.custody_chain import CustodyChain
from palmtrace.models.custody_event import CustodyEvent
from palmtrace.models.mass_balance_event import MassBalanceEvent
from palmtrace.modules.chain_of_custody import (
    create_chain,
    get_chain,
    list_custody_chains,
    list_custody_events,
    merge_chains,
    record_custody_event,
    split_chain,
    transform_chain,
)


def _ffb(db, quantity="1000", **kwargs):
    return create_chain(db, product_type="FFB", total_quantity=Decimal(quantity), **kwargs)


class TestCreateChain:
    def test_new_chain_is_active_and_full(self, db, mill):
        chain = _ffb(db, source_facility_id=mill.facility_id, batch_number="B-1")
        assert chain.chain_id.startswith("CHAIN-")
        assert chain.status == ChainStatusEnum.ACTIVE
        assert chain.total_quantity == Decimal("1000")
        assert chain.remaining_quantity == Decimal("1000")
        assert chain.version == 1

    def test_creation_event_recorded(self, db, mill):
        chain = _ffb(db, source_facility_id=mill.facility_id)
        events = list_custody_events(db, chain_id=chain.chain_id)
        assert len(events) == 1
        assert events[0].event_type == CustodyEventTypeEnum.CREATION
        assert events[0].location_id == mill.facility_id
        assert events[0].quantity == Decimal("1000")

    def test_float_quantity_kept_exact(self, db):
        chain = create_chain(db, product_type="CPO", total_quantity=0.1)
        assert chain.total_quantity == Decimal("0.1")

    @pytest.mark.parametrize("quantity", [0, -5])
    def test_non_positive_quantity_rejected(self, db, quantity):
        with pytest.raises(ValidationError):
            create_chain(db, product_type="FFB", total_quantity=quantity)
        assert db.query(CustodyChain).count() == 0

    def test_quantity_below_storage_precision_rejected(self, db):
        with pytest.raises(ValidationError):
            create_chain(db, product_type="FFB", total_quantity=Decimal("0.00004"))
        assert db.query(CustodyChain).count() == 0


class TestSplitChain:
    def test_partial_split_leaves_parent_active(self, db, mill):
        parent = _ffb(db)
        result = split_chain(db, parent.chain_id, [{"quantity": 300}, {"quantity": 200}],
                             process_location_id=mill.facility_id)
        assert result.parent_chain.status == ChainStatusEnum.ACTIVE
        assert result.parent_chain.remaining_quantity == Decimal("500")
        assert [c.total_quantity for c in result.child_chains] == [Decimal("300"), Decimal("200")]

    def test_exact_split_completes_parent(self, db):
        parent = _ffb(db)
        result = split_chain(db, parent.chain_id, [{"quantity": 600}, {"quantity": 400}])
        db.refresh(parent)
        assert parent.status == ChainStatusEnum.COMPLETED
        assert parent.remaining_quantity == 0
        assert len(result.child_chains) == 2

    def test_children_inherit_parent_attributes(self, db, mill):
        parent = _ffb(db, destination_facility_id=mill.facility_id, quality_grade="A",
                      batch_number="FFB-77")
        result = split_chain(db, parent.chain_id, [
            {"quantity": 100},
            {"quantity": 100, "quality_grade": "B"},
        ])
        first, second = result.child_chains
        assert first.chain_id.startswith("SPLIT-")
        assert first.chain_id != second.chain_id
        assert first.product_type == "FFB"
        assert first.batch_number == "FFB-77"
        assert first.source_facility_id == mill.facility_id
        assert first.quality_grade == "A"
        assert second.quality_grade == "B"

    def test_over_split_creates_nothing(self, db):
        parent = _ffb(db, quantity="500")
        with pytest.raises(InsufficientQuantityError) as exc_info:
            split_chain(db, parent.chain_id, [{"quantity": 300}, {"quantity": 300}])
        assert exc_info.value.requested == Decimal("600")
        db.refresh(parent)
        assert parent.remaining_quantity == Decimal("500")
        assert db.query(CustodyChain).count() == 1
        assert db.query(MassBalanceEvent).count() == 0

    def test_missing_parent(self, db):
        with pytest.raises(NotFoundError):
            split_chain(db, "CHAIN-NOPE", [{"quantity": 1}])

    def test_empty_split_list_rejected(self, db):
        parent = _ffb(db)
        with pytest.raises(ValidationError):
            split_chain(db, parent.chain_id, [])

    def test_split_mass_balance_event(self, db, mill):
        parent = _ffb(db)
        result = split_chain(db, parent.chain_id, [{"quantity": 600}, {"quantity": 400}],
                             process_location_id=mill.facility_id, notes="intake")
        event = result.mass_balance_event
        assert event.event_type == MassBalanceEventTypeEnum.SPLIT
        assert event.parent_chain_id == parent.chain_id
        assert event.input_quantity == Decimal("1000")
        assert event.output_quantity == Decimal("1000")
        assert event.waste_quantity == 0
        assert event.child_chain_ids == [c.chain_id for c in result.child_chains]
        assert event.input_chain_ids == [parent.chain_id]

    def test_each_child_gets_aggregation_event(self, db):
        parent = _ffb(db)
        result = split_chain(db, parent.chain_id, [{"quantity": 10}, {"quantity": 20}])
        for child in result.child_chains:
            events = list_custody_events(db, chain_id=child.chain_id)
            assert [e.event_type for e in events] == [CustodyEventTypeEnum.AGGREGATION]
            assert events[0].source_object_id == parent.chain_id

    def test_sequential_splits_respect_remaining(self, db):
        parent = _ffb(db, quantity="100")
        split_chain(db, parent.chain_id, [{"quantity": 70}])
        with pytest.raises(InsufficientQuantityError):
            split_chain(db, parent.chain_id, [{"quantity": 40}])
        split_chain(db, parent.chain_id, [{"quantity": 30}])
        assert get_chain(db, parent.chain_id).status == ChainStatusEnum.COMPLETED

    def test_split_finer_than_storage_precision_rejected(self, db):
        parent = _ffb(db, quantity="0.0003")
        with pytest.raises(ValidationError):
            split_chain(db, parent.chain_id, [{"quantity": "0.00015"}, {"quantity": "0.00015"}])
        db.refresh(parent)
        assert parent.remaining_quantity == Decimal("0.0003")
        assert db.query(CustodyChain).count() == 1

    def test_children_hold_exactly_what_parent_released(self, db):
        parent = _ffb(db, quantity="0.0003")
        result = split_chain(db, parent.chain_id, [{"quantity": "0.0001"}, {"quantity": "0.0002"}])
        db.refresh(parent)
        released = parent.total_quantity - parent.remaining_quantity
        assert sum(c.total_quantity for c in result.child_chains) == released
        assert parent.status == ChainStatusEnum.COMPLETED

class TestMergeChains:
    def test_merge_sums_remaining_and_completes_parents(self, db, mill):
        a = _ffb(db, quantity="300")
        b = _ffb(db, quantity="200")
        split_chain(db, a.chain_id, [{"quantity": 50}])  # a has 250 left
        result = merge_chains(db, [a.chain_id, b.chain_id], "FFB",
                              process_location_id=mill.facility_id)
        merged = result.merged_chain
        assert merged.chain_id.startswith("MERGE-")
        assert merged.batch_number.startswith("MERGED-")
        assert merged.total_quantity == Decimal("450")
        assert merged.source_facility_id == mill.facility_id
        for parent in result.parent_chains:
            assert parent.remaining_quantity == 0
            assert parent.status == ChainStatusEnum.COMPLETED

    def test_merge_event_links_inputs(self, db):
        a, b = _ffb(db, quantity="10"), _ffb(db, quantity="20")
        event = merge_chains(db, [a.chain_id, b.chain_id], "FFB").mass_balance_event
        assert event.event_type == MassBalanceEventTypeEnum.MERGE
        assert event.parent_chain_id is None
        assert event.input_chain_ids == [a.chain_id, b.chain_id]
        assert event.child_chain_ids != []

    def test_completed_parent_refused(self, db):
        a, b = _ffb(db, quantity="10"), _ffb(db, quantity="20")
        split_chain(db, a.chain_id, [{"quantity": 10}])
        with pytest.raises(InsufficientQuantityError):
            merge_chains(db, [a.chain_id, b.chain_id], "FFB")
        assert get_chain(db, b.chain_id).remaining_quantity == Decimal("20")

    def test_missing_parent(self, db):
        a = _ffb(db)
        with pytest.raises(NotFoundError):
            merge_chains(db, [a.chain_id, "CHAIN-NOPE"], "FFB")
        assert get_chain(db, a.chain_id).remaining_quantity == Decimal("1000")

    def test_duplicate_parents_rejected(self, db):
        a = _ffb(db)
        with pytest.raises(ValidationError):
            merge_chains(db, [a.chain_id, a.chain_id], "FFB")


class TestTransformChain:
    def test_transform_yields_output_and_waste(self, db):
        source = _ffb(db, quantity="100")
        result = transform_chain(db, source.chain_id, 100, "CPO", Decimal("0.2"))
        assert result.transformed_chain.total_quantity == Decimal("20")
        assert result.transformed_chain.product_type == "CPO"
        assert result.transformed_chain.chain_id.startswith("TRANS-")
        assert result.mass_balance_event.waste_quantity == Decimal("80")
        assert result.mass_balance_event.conversion_rate == Decimal("0.2")
        assert result.source_chain.status == ChainStatusEnum.COMPLETED

    def test_partial_transform(self, db):
        source = _ffb(db, quantity="100")
        transform_chain(db, source.chain_id, 40, "CPO", "0.25")
        db.refresh(source)
        assert source.remaining_quantity == Decimal("60")
        assert source.status == ChainStatusEnum.ACTIVE

    def test_over_draw_refused(self, db):
        source = _ffb(db, quantity="100")
        with pytest.raises(InsufficientQuantityError):
            transform_chain(db, source.chain_id, 150, "CPO", "0.2")
        assert db.query(CustodyChain).count() == 1

    @pytest.mark.parametrize("rate", [0, "1.5", -0.2, "0.21005"])
    def test_conversion_rate_bounds(self, db, rate):
        source = _ffb(db)
        with pytest.raises(ValidationError):
            transform_chain(db, source.chain_id, 10, "CPO", rate)

    def test_transformation_event_on_output(self, db):
        source = _ffb(db, quantity="100")
        result = transform_chain(db, source.chain_id, 100, "CPO", "0.2")
        events = list_custody_events(db, chain_id=result.transformed_chain.chain_id)
        assert events[0].event_type == CustodyEventTypeEnum.TRANSFORMATION
        assert events[0].event_metadata["input_product_type"] == "FFB"


class TestAtomicity:
    def test_commit_failure_rolls_back_split(self, db):
        parent = _ffb(db)
        failure = OperationalError("COMMIT", {}, Exception("disk I/O error"))
        with patch.object(db, "commit", side_effect=failure):
            with pytest.raises(PersistenceError) as exc_info:
                split_chain(db, parent.chain_id, [{"quantity": 600}])
        assert not isinstance(exc_info.value, CustodyError)
        assert get_chain(db, parent.chain_id).remaining_quantity == Decimal("1000")
        assert db.query(CustodyChain).count() == 1
        assert db.query(MassBalanceEvent).count() == 0

    def test_commit_false_leaves_transaction_open(self, db):
        parent = _ffb(db)
        result = split_chain(db, parent.chain_id, [{"quantity": 600}], commit=False)
        assert db.get(CustodyChain, result.child_chains[0].chain_id) is not None
        db.rollback()
        assert db.query(CustodyChain).count() == 1
        assert get_chain(db, parent.chain_id).remaining_quantity == Decimal("1000")


class TestConservation:
    def test_end_to_end_split_then_transform(self, db, mill):
        c1 = _ffb(db, quantity="1000")
        split = split_chain(db, c1.chain_id, [{"quantity": 600}, {"quantity": 400}],
                            process_location_id=mill.facility_id)
        c2, c3 = split.child_chains
        transform = transform_chain(db, c2.chain_id, 600, "CPO", Decimal("0.21"),
                                    process_location_id=mill.facility_id)
        c4 = transform.transformed_chain

        assert get_chain(db, c1.chain_id).status == ChainStatusEnum.COMPLETED
        assert get_chain(db, c1.chain_id).remaining_quantity == 0
        assert get_chain(db, c2.chain_id).status == ChainStatusEnum.COMPLETED
        assert get_chain(db, c3.chain_id).status == ChainStatusEnum.ACTIVE
        assert get_chain(db, c3.chain_id).remaining_quantity == Decimal("400")
        assert c4.status == ChainStatusEnum.ACTIVE
        assert c4.total_quantity == Decimal("126")

        split_event, transform_event = (
            db.query(MassBalanceEvent).order_by(MassBalanceEvent.event_id).all()
        )
        assert split_event.input_quantity == split_event.output_quantity == Decimal("1000")
        assert split_event.waste_quantity == 0
        assert transform_event.input_quantity == Decimal("600")
        assert transform_event.output_quantity == Decimal("126")
        assert transform_event.waste_quantity == Decimal("474")

        # Leaves plus recorded waste account for everything harvested
        leaves = [get_chain(db, c3.chain_id), c4]
        waste = sum(e.waste_quantity for e in db.query(MassBalanceEvent).all())
        assert sum(c.total_quantity for c in leaves) + waste == Decimal("1000")

    def test_remaining_never_exceeds_total(self, db):
        chain = _ffb(db, quantity="90")
        split = split_chain(db, chain.chain_id, [{"quantity": "33.3333"}, {"quantity": "33.3333"}])
        merge_chains(db, [c.chain_id for c in split.child_chains], "FFB")
        for c in db.query(CustodyChain).all():
            assert 0 <= c.remaining_quantity <= c.total_quantity


class TestReads:
    def test_record_custody_event(self, db, mill):
        chain = _ffb(db)
        event = record_custody_event(
            db, chain_id=chain.chain_id, event_type="observation", business_step="receiving",
            disposition="in_transit", location_id=mill.facility_id,
            event_metadata={"truck": "BM 1234 XY"},
        )
        assert event.event_id is not None
        assert len(list_custody_events(db, chain_id=chain.chain_id)) == 2
        assert [e.event_id for e in list_custody_events(db, facility_id=mill.facility_id)] == [event.event_id]
        assert db.query(CustodyEvent).count() == 2

    def test_record_custody_event_unknown_chain(self, db):
        with pytest.raises(NotFoundError):
            record_custody_event(db, chain_id="CHAIN-NOPE", event_type="observation",
                                 business_step="receiving")

    def test_list_custody_events_limit(self, db):
        chain = _ffb(db)
        for _ in range(3):
            record_custody_event(db, chain_id=chain.chain_id, event_type="observation",
                                 business_step="shipping")
        assert len(list_custody_events(db, chain_id=chain.chain_id, limit=2)) == 2

    def test_list_custody_events_oldest_first(self, db):
        chain = _ffb(db)
        record_custody_event(db, chain_id=chain.chain_id, event_type="observation",
                             business_step="shipping")
        events = list_custody_events(db, chain_id=chain.chain_id)
        assert [e.event_type for e in events] == [
            CustodyEventTypeEnum.CREATION, CustodyEventTypeEnum.OBSERVATION,
        ]
        db.refresh(chain)
        assert [e.event_id for e in chain.events] == [e.event_id for e in events]

    def test_list_custody_chains_filters(self, db):
        ffb = _ffb(db, quantity="100")
        create_chain(db, product_type="CPO", total_quantity=10)
        split_chain(db, ffb.chain_id, [{"quantity": 100}])
        assert {c.product_type for c in list_custody_chains(db, product_type="CPO")} == {"CPO"}
        completed = list_custody_chains(db, status="completed")
        assert [c.chain_id for c in completed] == [ffb.chain_id]
        assert len(list_custody_chains(db)) == 3

    def test_get_chain_missing(self, db):
        with pytest.raises(NotFoundError) as exc_info:
            get_chain(db, "CHAIN-NOPE")
        assert exc_info.value.entity_id == "CHAIN-NOPE"
