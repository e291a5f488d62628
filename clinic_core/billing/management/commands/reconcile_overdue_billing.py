# clinic_core/billing/management/commands/reconcile_overdue_billing.py
from __future__ import annotations

from django.core.management.base import BaseCommand
from django.utils import timezone

from clinic_core.billing.selectors import overdue_candidates
from clinic_core.billing.services import BillingReportService


class Command(BaseCommand):
    help = "Mark completed / partially paid billing reports past their due date as overdue."

    def add_arguments(self, parser):
        parser.add_argument("--dry-run", action="store_true", help="Print counts only; do not write.")
        parser.add_argument("--doctor-id", type=str, default=None, help="Only reconcile reports of this doctor.")
        parser.add_argument("--actor", type=str, default="system", help="Actor id recorded in status history.")

    def handle(self, *args, **opts):
        now = timezone.now()

        if opts["dry_run"]:
            qs = overdue_candidates(now=now, doctor_id=opts["doctor_id"])
            for r in qs:
                self.stdout.write(f"{r.id} {r.invoice_number} due={r.due_date:%Y-%m-%d} pending={r.pending_amount}")
            self.stdout.write(self.style.WARNING(f"Would mark {qs.count()} report(s) overdue."))
            return

        count = BillingReportService().mark_overdue_reports(
            performed_by=opts["actor"],
            now=now,
            doctor_id=opts["doctor_id"],
        )
        self.stdout.write(self.style.SUCCESS(f"Marked {count} report(s) overdue."))
