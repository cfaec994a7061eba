"""Tests for the webhook ingestion pipeline."""

import asyncio
import os
import pytest
from unittest.mock import patch

from sqlalchemy import func, select

from tuition_ledger.database import (
    Base,
    PaymentStatus,
    StudentRepository,
    Transaction,
    TransactionRepository,
    create_async_engine,
    get_async_session_factory,
)
from tuition_ledger.exceptions import MalformedPayload
from tuition_ledger.notifications import FULLY_PAID, PAYMENT_RECORDED
from tuition_ledger.reconciliation import ReconciliationService
from tuition_ledger.webhooks import WebhookPipeline, parse_event, to_major_units


KOBO = 100


async def _ledger_rows(session_factory):
    async with session_factory() as session:
        result = await session.execute(select(Transaction).order_by(Transaction.created_at))
        return list(result.scalars().all())


class TestParseEvent:

    def test_valid_event(self, charge_event):
        event = parse_event(charge_event("ada@example.com", 48_000_000, "R1"))
        assert event.event == "charge.success"
        assert event.data.reference == "R1"
        assert event.data.amount == 48_000_000
        assert event.data.customer.email == "ada@example.com"

    @pytest.mark.parametrize("body", [
        b"",
        b"not json",
        b"[]",
        b'{"event": "charge.success"}',
        b'{"event": "charge.success", "data": {"amount": 100, "customer": {"email": "a@b.c"}}}',
        b'{"event": "charge.success", "data": {"reference": "R1", "amount": "lots", "customer": {"email": "a@b.c"}}}',
        b'{"event": "charge.success", "data": {"reference": "R1", "amount": 100}}',
    ])
    def test_malformed(self, body):
        with pytest.raises(MalformedPayload):
            parse_event(body)


class TestToMajorUnits:

    def test_whole_amount(self):
        assert to_major_units(48_000_000, "R1") == 480_000

    def test_fraction_truncated_with_warning(self, caplog):
        assert to_major_units(48_000_050, "R1") == 480_000
        assert "truncating" in caplog.text


class TestChargeSuccess:
    """Tests for charge.success deliveries."""

    async def test_first_payment(self, pipeline, make_student, charge_event, signed_headers):
        await make_student()
        body = charge_event("ada@example.com", 480_000 * KOBO, "R1")

        outcome = await pipeline.handle(body, signed_headers(body))

        assert outcome.status_code == 200
        assert outcome.body == {
            "received": True,
            "success": True,
            "installment": "initial",
            "payment_status": "partially_paid",
        }
        assert [n.kind for n in outcome.notifications] == [PAYMENT_RECORDED]

    async def test_email_lookup_ignores_case(self, pipeline, make_student, charge_event, signed_headers):
        await make_student(email="ada@example.com")
        body = charge_event("ADA@Example.com", 480_000 * KOBO, "R1")

        outcome = await pipeline.handle(body, signed_headers(body))

        assert outcome.body["success"] is True

    async def test_header_name_is_case_insensitive(self, pipeline, make_student, charge_event, verifier):
        await make_student()
        body = charge_event("ada@example.com", 480_000 * KOBO, "R1")

        outcome = await pipeline.handle(body, {"X-Paystack-Signature": verifier.sign(body)})

        assert outcome.status_code == 200

    async def test_duplicate_delivery(self, pipeline, make_student, charge_event, signed_headers, session_factory):
        await make_student()
        body = charge_event("ada@example.com", 480_000 * KOBO, "R1")

        first = await pipeline.handle(body, signed_headers(body))
        second = await pipeline.handle(body, signed_headers(body))

        assert first.body["success"] is True
        assert second.status_code == 200
        assert second.body == {"received": True, "message": "Already processed"}
        assert second.notifications == []
        assert len(await _ledger_rows(session_factory)) == 1

    async def test_fully_paid_notification(self, pipeline, make_student, charge_event, signed_headers):
        await make_student(duration=4)
        body = charge_event("ada@example.com", 400_000 * KOBO, "R1")

        outcome = await pipeline.handle(body, signed_headers(body))

        assert outcome.body["payment_status"] == "fully_paid"
        assert [n.kind for n in outcome.notifications] == [PAYMENT_RECORDED, FULLY_PAID]
        notification = outcome.notifications[1]
        assert notification.email == "ada@example.com"
        assert notification.amount == 400_000
        assert notification.installment == "initial"

    async def test_other_events_acknowledged(self, pipeline, make_student, charge_event, signed_headers,
                                             session_factory):
        await make_student()
        body = charge_event("ada@example.com", 1000, "T1", event="transfer.success")

        outcome = await pipeline.handle(body, signed_headers(body))

        assert outcome.status_code == 200
        assert outcome.body == {"received": True}
        assert await _ledger_rows(session_factory) == []

    async def test_installment_scenario(self, pipeline, make_student, charge_event, signed_headers,
                                        session_factory):
        """Eight-month plan paid as 480,000 then 320,000."""
        student = await make_student(duration=8)

        body = charge_event("ada@example.com", 480_000 * KOBO, "R1")
        outcome = await pipeline.handle(body, signed_headers(body))
        assert outcome.body["payment_status"] == "partially_paid"

        async with session_factory() as session:
            view = await ReconciliationService(session).audit(student.id)
        assert view.initial.amount == 480_000
        assert view.initial.expected == 480_000
        assert view.balance is None

        body = charge_event("ada@example.com", 320_000 * KOBO, "R2")
        outcome = await pipeline.handle(body, signed_headers(body))
        assert outcome.body["installment"] == "balance"
        assert outcome.body["payment_status"] == "fully_paid"

        async with session_factory() as session:
            view = await ReconciliationService(session).audit(student.id)
            reloaded = await StudentRepository(session).get_by_id(student.id)
        assert view.balance.amount == 320_000
        assert view.balance.expected == 320_000
        assert view.outstanding == 0
        assert reloaded.payment_status == "fully_paid"


class TestChargeFailed:
    """Tests for charge.failed deliveries."""

    async def test_failed_event_recorded(self, pipeline, make_student, charge_event, signed_headers,
                                         session_factory):
        student = await make_student()
        body = charge_event("ada@example.com", 480_000 * KOBO, "F1", event="charge.failed")

        outcome = await pipeline.handle(body, signed_headers(body))

        assert outcome.status_code == 200
        assert outcome.body == {"received": True}
        assert outcome.notifications == []

        rows = await _ledger_rows(session_factory)
        assert [(t.reference, t.status, t.amount) for t in rows] == [("F1", "failed", 480_000)]
        async with session_factory() as session:
            reloaded = await StudentRepository(session).get_by_id(student.id)
        assert reloaded.payment_status == "not_paid"

    async def test_failed_event_after_partial_payment(self, pipeline, make_student, charge_event,
                                                      signed_headers, session_factory):
        student = await make_student()
        for event, ref in (("charge.success", "R1"), ("charge.failed", "F1")):
            body = charge_event("ada@example.com", 480_000 * KOBO, ref, event=event)
            await pipeline.handle(body, signed_headers(body))

        async with session_factory() as session:
            reloaded = await StudentRepository(session).get_by_id(student.id)
            total = await TransactionRepository(session).sum_success(student.id)
        assert reloaded.payment_status == "partially_paid"
        assert total == 480_000

    async def test_failed_then_success_same_reference(self, pipeline, make_student, charge_event,
                                                      signed_headers, session_factory):
        await make_student()
        failed = charge_event("ada@example.com", 480_000 * KOBO, "R1", event="charge.failed")
        success = charge_event("ada@example.com", 480_000 * KOBO, "R1")

        await pipeline.handle(failed, signed_headers(failed))
        outcome = await pipeline.handle(success, signed_headers(success))

        assert outcome.body == {"received": True, "message": "Already processed"}
        rows = await _ledger_rows(session_factory)
        assert [t.status for t in rows] == ["failed"]


class TestDevelopmentMode:

    async def test_signature_skipped_in_development(self, pipeline, make_student, charge_event):
        await make_student()
        body = charge_event("ada@example.com", 480_000 * KOBO, "R1")

        with patch.dict(os.environ, {"APP_ENV": "development"}):
            outcome = await pipeline.handle(body, {})

        assert outcome.status_code == 200
        assert outcome.body["success"] is True

    async def test_signature_required_outside_development(self, pipeline, make_student, charge_event):
        await make_student()
        body = charge_event("ada@example.com", 480_000 * KOBO, "R1")

        with patch.dict(os.environ, {"APP_ENV": "staging"}):
            outcome = await pipeline.handle(body, {})

        assert outcome.status_code == 401


class TestConcurrentDelivery:
    """Concurrent units of work against a file-backed database."""

    @pytest.fixture
    async def file_factory(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        yield get_async_session_factory(engine)
        await engine.dispose()

    @pytest.fixture
    async def file_student(self, file_factory):
        async with file_factory() as session:
            student = await StudentRepository(session).create("Ada Obi", "ada@example.com", 8)
            await session.commit()
        return student

    async def test_concurrent_duplicates_insert_once(self, file_factory, file_student, verifier,
                                                     charge_event, signed_headers):
        pipeline = WebhookPipeline(session_factory=file_factory, verifier=verifier)
        body = charge_event("ada@example.com", 480_000 * KOBO, "R1")
        headers = signed_headers(body)

        outcomes = await asyncio.gather(*[pipeline.handle(body, headers) for _ in range(5)])

        assert {o.status_code for o in outcomes} == {200}
        assert sum(1 for o in outcomes if o.body.get("success")) == 1
        assert sum(1 for o in outcomes if o.body.get("message") == "Already processed") == 4

        async with file_factory() as session:
            count = (await session.execute(select(func.count(Transaction.id)))).scalar_one()
            total = await TransactionRepository(session).sum_success(file_student.id)
        assert count == 1
        assert total == 480_000

    async def test_concurrent_payments_classified_once(self, file_factory, file_student, verifier,
                                                       charge_event, signed_headers):
        pipeline = WebhookPipeline(session_factory=file_factory, verifier=verifier)
        bodies = [
            charge_event("ada@example.com", 480_000 * KOBO, "R1"),
            charge_event("ada@example.com", 320_000 * KOBO, "R2"),
        ]

        outcomes = await asyncio.gather(*[pipeline.handle(b, signed_headers(b)) for b in bodies])

        assert sorted(o.body["installment"] for o in outcomes) == ["balance", "initial"]
        async with file_factory() as session:
            student = await StudentRepository(session).get_by_id(file_student.id)
        assert student.payment_status == PaymentStatus.FULLY_PAID.value

    async def test_concurrent_completion_notifies_once(self, file_factory, file_student, verifier,
                                                       charge_event, signed_headers):
        pipeline = WebhookPipeline(session_factory=file_factory, verifier=verifier)
        bodies = [
            charge_event("ada@example.com", 800_000 * KOBO, "R1"),
            charge_event("ada@example.com", 100 * KOBO, "R2"),
        ]

        outcomes = await asyncio.gather(*[pipeline.handle(b, signed_headers(b)) for b in bodies])

        kinds = [n.kind for o in outcomes for n in o.notifications]
        assert kinds.count(PAYMENT_RECORDED) == 2
        assert kinds.count(FULLY_PAID) == 1
