"""Optimistic locking on custody chains across two sessions."""
from __future__ import annotations

from decimal import Decimal

import pytest

from palmtrace.errors import ConcurrentModificationError
from palmtrace.models.custody_chain import CustodyChain
from palmtrace.modules.chain_of_custody import create_chain, get_chain, split_chain


def test_stale_split_is_refused(file_sessionmaker):
    setup = file_sessionmaker()
    chain_id = create_chain(setup, product_type="FFB", total_quantity=Decimal("1000")).chain_id
    setup.close()

    first, second = file_sessionmaker(), file_sessionmaker()
    try:
        # Both writers read remaining_quantity=1000 at version 1. The
        # identity map holds weak references, so keep the stale copy alive.
        get_chain(first, chain_id)
        stale = get_chain(second, chain_id)
        assert stale.version == 1

        split_chain(first, chain_id, [{"quantity": 700}])
        with pytest.raises(ConcurrentModificationError):
            split_chain(second, chain_id, [{"quantity": 700}])
    finally:
        first.close()
        second.close()

    check = file_sessionmaker()
    try:
        chain = get_chain(check, chain_id)
        assert chain.remaining_quantity == Decimal("300")
        assert chain.version == 2
        assert check.query(CustodyChain).count() == 2
    finally:
        check.close()


def test_retry_after_conflict_sees_fresh_quantity(file_sessionmaker):
    setup = file_sessionmaker()
    chain_id = create_chain(setup, product_type="FFB", total_quantity=Decimal("1000")).chain_id
    setup.close()

    first, second = file_sessionmaker(), file_sessionmaker()
    try:
        stale = get_chain(second, chain_id)
        split_chain(first, chain_id, [{"quantity": 400}])
        assert stale.remaining_quantity == Decimal("1000")
        with pytest.raises(ConcurrentModificationError):
            split_chain(second, chain_id, [{"quantity": 400}])
        # The failed session was rolled back; a retry reloads version 2
        result = split_chain(second, chain_id, [{"quantity": 400}])
        assert result.parent_chain.remaining_quantity == Decimal("200")
    finally:
        first.close()
        second.close()
