"""Report rendering for audit views and outstanding balances."""

import json
import csv
import io
from typing import List, Optional

from ..pricing import format_amount
from .models import AuditView, InstallmentLine, OutstandingRecord


class ReportGenerator:
    """Renders reconciliation read models as JSON, CSV or plain text."""

    def audit_to_json(self, view: AuditView, include_transactions: bool = True, indent: int = 2) -> str:
        return json.dumps(view.to_dict(include_transactions=include_transactions), indent=indent)

    def audit_to_csv(self, view: AuditView) -> str:
        """One row per installment, including ones not yet received."""
        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow([
            "student_id", "email", "installment", "expected", "received",
            "difference", "reference", "date",
        ])
        for name, line, expected in (
            ("initial", view.initial, view.expected_initial),
            ("balance", view.balance, view.expected_balance),
        ):
            writer.writerow([
                view.student.id,
                view.student.email,
                name,
                expected,
                line.amount if line else 0,
                line.difference if line else -expected,
                line.reference if line else "",
                line.date.isoformat() if line else "",
            ])
        return output.getvalue()

    @staticmethod
    def _installment_text(name: str, line: Optional[InstallmentLine], expected: int) -> List[str]:
        if line is None:
            return [f"{name}: pending (expected {format_amount(expected)})"]
        lines = [
            f"{name}: {format_amount(line.amount)} received "
            f"(expected {format_amount(expected)})",
            f"  Reference: {line.reference}",
            f"  Date: {line.date.isoformat()}",
        ]
        if line.difference:
            direction = "over" if line.difference > 0 else "short"
            lines.append(f"  {direction} by {format_amount(abs(line.difference))}")
        return lines

    def audit_to_text(self, view: AuditView) -> str:
        """Human-readable audit for the admin screen and the CLI."""
        student = view.student
        lines = [
            "=" * 60,
            "PAYMENT AUDIT",
            "=" * 60,
            f"Student: {student.full_name} <{student.email}>",
            f"Student ID: {student.id}",
            f"Plan: {student.duration} months",
            f"Status: {student.payment_status}"
            + ("" if view.status_in_sync else f" (ledger says {view.derived_status})"),
            "",
            f"Tuition: {format_amount(view.tuition)}",
            f"Paid: {format_amount(view.paid_total)}",
            f"Outstanding: {format_amount(view.outstanding)}",
            "",
        ]
        lines.extend(self._installment_text("Initial", view.initial, view.expected_initial))
        lines.extend(self._installment_text("Balance", view.balance, view.expected_balance))
        lines.extend(["", view.snapshot, "=" * 60])
        return "\n".join(lines)

    def outstanding_to_json(self, records: List[OutstandingRecord], indent: int = 2) -> str:
        return json.dumps([r.model_dump(mode="json") for r in records], indent=indent)

    def outstanding_to_csv(self, records: List[OutstandingRecord]) -> str:
        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow([
            "student_id", "full_name", "email", "duration", "payment_status",
            "tuition", "paid_total", "outstanding", "next_installment",
        ])
        for r in records:
            writer.writerow([
                r.student_id, r.full_name, r.email, r.duration, r.payment_status,
                r.tuition, r.paid_total, r.outstanding, r.next_installment,
            ])
        return output.getvalue()

    def outstanding_to_text(self, records: List[OutstandingRecord]) -> str:
        if not records:
            return "No outstanding tuition."
        lines = [f"OUTSTANDING TUITION ({len(records)} students)", "-" * 40]
        for r in records:
            lines.append(
                f"{r.full_name} <{r.email}>: {format_amount(r.outstanding)} outstanding "
                f"({r.next_installment}), paid {format_amount(r.paid_total)} "
                f"of {format_amount(r.tuition)}"
            )
        return "\n".join(lines)
