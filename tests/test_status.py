"""Tests for payment status derivation."""

import itertools
import pytest

from tuition_ledger.database import PaymentStatus, StudentRepository, TransactionRepository
from tuition_ledger.exceptions import UnknownPlan, UnknownStudent
from tuition_ledger.pricing import PricingTable
from tuition_ledger.services import LedgerService
from tuition_ledger.status import StatusResolver, derive_status


class TestDeriveStatus:

    @pytest.mark.parametrize("paid,expected", [
        (0, PaymentStatus.NOT_PAID),
        (1, PaymentStatus.PARTIALLY_PAID),
        (479_999, PaymentStatus.PARTIALLY_PAID),
        (799_999, PaymentStatus.PARTIALLY_PAID),
        (800_000, PaymentStatus.FULLY_PAID),
        (900_000, PaymentStatus.FULLY_PAID),
    ])
    def test_tiers(self, paid, expected):
        assert derive_status(paid, 800_000) is expected


class TestStatusResolver:

    async def test_recompute_writes_derived_status(self, db_session):
        student = await StudentRepository(db_session).create("Ada Obi", "ada@example.com", 8)
        await TransactionRepository(db_session).create(student.id, 100_000, "initial", "R1", "success")

        status = await StatusResolver(db_session).recompute(student.id)

        assert status is PaymentStatus.PARTIALLY_PAID
        assert student.payment_status == "partially_paid"

    async def test_recompute_is_idempotent(self, db_session):
        student = await StudentRepository(db_session).create("Ada Obi", "ada@example.com", 4)
        await TransactionRepository(db_session).create(student.id, 400_000, "initial", "R1", "success")
        resolver = StatusResolver(db_session)

        first = await resolver.recompute(student.id)
        second = await resolver.recompute(student.id)

        assert first is second is PaymentStatus.FULLY_PAID

    async def test_failed_transactions_ignored(self, db_session):
        student = await StudentRepository(db_session).create("Ada Obi", "ada@example.com", 4)
        await TransactionRepository(db_session).create(student.id, 400_000, "initial", "R1", "failed")

        assert await StatusResolver(db_session).recompute(student.id) is PaymentStatus.NOT_PAID

    async def test_cache_ahead_of_ledger_is_reset(self, db_session, caplog):
        repo = StudentRepository(db_session)
        student = await repo.create("Ada Obi", "ada@example.com", 4)
        await repo.update_status(student, PaymentStatus.FULLY_PAID.value)

        status = await StatusResolver(db_session).recompute(student.id)

        assert status is PaymentStatus.NOT_PAID
        assert student.payment_status == "not_paid"
        assert "ahead of the ledger" in caplog.text

    async def test_unknown_student(self, db_session):
        with pytest.raises(UnknownStudent):
            await StatusResolver(db_session).recompute("missing")

    async def test_unpriced_plan(self, db_session):
        student = await StudentRepository(db_session).create("Ada Obi", "ada@example.com", 6)
        with pytest.raises(UnknownPlan):
            await StatusResolver(db_session).recompute(student.id)

    async def test_custom_pricing(self, db_session):
        student = await StudentRepository(db_session).create("Ada Obi", "ada@example.com", 6)
        await TransactionRepository(db_session).create(student.id, 700_000, "initial", "R1", "success")

        resolver = StatusResolver(db_session, PricingTable({6: 700_000}))
        assert await resolver.recompute(student.id) is PaymentStatus.FULLY_PAID


class TestStatusMonotonicity:
    """Successful payments only ever move a student forward."""

    @pytest.mark.parametrize("amounts", list(itertools.permutations([100_000, 380_000, 320_000, 50_000])))
    async def test_forward_only(self, db_session, amounts):
        student = await StudentRepository(db_session).create("Ada Obi", "ada@example.com", 8)
        ledger = LedgerService(db_session)

        ranks = [PaymentStatus.NOT_PAID.rank]
        for i, amount in enumerate(amounts):
            result = await ledger.record_success(student.id, amount, f"R{i}")
            ranks.append(result.payment_status.rank)

        assert ranks == sorted(ranks)
        assert ranks[-1] == PaymentStatus.FULLY_PAID.rank

    async def test_order_of_recompute_does_not_matter(self, db_session):
        student = await StudentRepository(db_session).create("Ada Obi", "ada@example.com", 8)
        txns = TransactionRepository(db_session)
        await txns.create(student.id, 480_000, "initial", "R1", "success")
        await txns.create(student.id, 320_000, "balance", "R2", "success")
        resolver = StatusResolver(db_session)

        results = {await resolver.recompute(student.id) for _ in range(3)}
        assert results == {PaymentStatus.FULLY_PAID}
