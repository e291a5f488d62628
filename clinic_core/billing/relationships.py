# clinic_core/billing/relationships.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Iterable

from django.db import transaction

from clinic_core.billing import calculator
from clinic_core.billing.models import BillingPayment, BillingReport, LinkType, ReportStatus, ReportType
from clinic_core.billing.selectors import list_by_appointment
from clinic_core.billing.sequences import allocate_report_sequence
from clinic_core.billing.services import BaseBillingService, copy_lines
from clinic_core.billing.state_machine import ISSUED_STATUSES
from clinic_core.common.api.exceptions import InvalidStateError, NotFoundError, ValidationError
from clinic_core.common.retry import retry_on_contention

logger = logging.getLogger(__name__)


LINK_FIELDS = [
    "linked_reports",
    "link_id",
    "link_type",
    "link_notes",
    "linked_by",
    "linked_at",
    "updated_at",
]


def detach_from_group(members: Iterable[BillingReport], leaving: set[str]) -> None:
    """
    Drop `leaving` ids from the given reports' link lists. A report left alone
    in its group has its link cleared.
    """
    for peer in members:
        remaining = [rid for rid in (peer.linked_reports or []) if rid not in leaving]
        if remaining:
            peer.linked_reports = remaining
        else:
            _clear_link(peer)
        peer.save(update_fields=LINK_FIELDS)


def _clear_link(report: BillingReport) -> None:
    report.linked_reports = []
    report.link_id = None
    report.link_type = ""
    report.link_notes = ""
    report.linked_by = ""
    report.linked_at = None


@dataclass(frozen=True)
class DuplicateOptions:
    include_services: bool = False
    include_payments: bool = False
    report_type: str | None = None
    report_title: str | None = None
    report_description: str | None = None


class ReportRelationshipService(BaseBillingService):
    """
    Parent/child duplication and symmetric link groups between reports.
    """

    @retry_on_contention
    @transaction.atomic
    def duplicate_report(
        self,
        *,
        source_id: Any,
        duplicated_by: str,
        options: DuplicateOptions | None = None,
    ) -> str:
        duplicated_by = self._require_actor(duplicated_by, "duplicated_by")
        options = options or DuplicateOptions()

        source = self._get_report(source_id, lock=True)
        if source.is_deleted or source.status == ReportStatus.DELETED:
            raise InvalidStateError("Cannot duplicate a deleted report.", current_status=source.status)

        report_type = options.report_type or source.report_type
        if report_type not in ReportType.values:
            raise ValidationError({"report_type": f"Unknown report type '{report_type}'."})

        lines = copy_lines(source.services.all()) if options.include_services else []
        payments = list(source.payments.all()) if options.include_payments else []

        # paid_amount is carried over as-is; pending is clamped at zero when the
        # copied payments exceed the copied services
        totals = calculator.compute_totals(
            lines,
            discount=source.discount if options.include_services else calculator.ZERO,
            paid_amount=source.paid_amount if options.include_payments else calculator.ZERO,
        )

        sequence = allocate_report_sequence(appointment_id=source.appointment_id)
        report = self._insert_report(
            appointment_id=source.appointment_id,
            patient_id=source.patient_id,
            doctor_id=source.doctor_id,
            report_type=report_type,
            report_title=options.report_title if options.report_title is not None else source.report_title,
            report_description=(
                options.report_description
                if options.report_description is not None
                else source.report_description
            ),
            is_partial_report=True,
            report_sequence=sequence,
            parent_report=source,
            status=ReportStatus.DRAFT,
            created_by=duplicated_by,
            last_modified_by=duplicated_by,
            **totals.as_fields(),
        )
        self._create_lines(report, lines)

        if payments:
            BillingPayment.objects.bulk_create(
                [
                    BillingPayment(
                        report=report,
                        amount=p.amount,
                        method=p.method,
                        reference=p.reference,
                        notes=p.notes,
                        date=p.date,
                        processed_by=p.processed_by,
                        verified=p.verified,
                        verified_by=p.verified_by,
                        verified_at=p.verified_at,
                    )
                    for p in payments
                ]
            )

        self._record(
            report,
            previous_status=None,
            details=f"Duplicated from report {source.id} (#{sequence})",
            performed_by=duplicated_by,
            amount=totals.total,
        )
        self._record(
            source,
            previous_status=source.status,
            details=f"Duplicated into report {report.id}",
            performed_by=duplicated_by,
        )

        logger.info("Duplicated report %s into %s (sequence %s) by %s", source.id, report.id, sequence, duplicated_by)
        return str(report.id)

    # -------------------------
    # Link groups
    # -------------------------
    @retry_on_contention
    @transaction.atomic
    def link_reports(
        self,
        *,
        report_ids: Iterable[Any],
        link_type: str = LinkType.RELATED,
        linked_by: str,
        notes: str = "",
    ) -> uuid.UUID:
        linked_by = self._require_actor(linked_by, "linked_by")

        ids: list[str] = []
        for rid in report_ids:
            try:
                sid = str(uuid.UUID(str(rid)))
            except ValueError:
                raise NotFoundError(f"Billing report {rid} not found.")
            if sid not in ids:
                ids.append(sid)
        if len(ids) < 2:
            raise ValidationError({"report_ids": "At least two distinct reports are required to link."})
        if link_type not in LinkType.values:
            raise ValidationError({"link_type": f"Unknown link type '{link_type}'."})

        # stable lock order across concurrent batches
        members = list(BillingReport.objects.select_for_update().filter(id__in=ids).order_by("id"))
        found = {str(r.id) for r in members}
        missing = [rid for rid in ids if rid not in found]
        if missing:
            raise NotFoundError(f"Billing report(s) not found: {', '.join(missing)}")

        for r in members:
            if r.is_deleted or r.status == ReportStatus.DELETED:
                raise InvalidStateError(f"Cannot link deleted report {r.id}.", current_status=r.status)

        # prune former groups so nobody outside the new group still points at a member
        member_ids = set(ids)
        old_peer_ids = {
            pid for r in members for pid in (r.linked_reports or []) if pid not in member_ids
        }
        if old_peer_ids:
            old_peers = BillingReport.objects.select_for_update().filter(id__in=old_peer_ids).order_by("id")
            detach_from_group(old_peers, member_ids)

        link_id = uuid.uuid4()
        now = self.now()
        for r in members:
            previous = r.status
            r.link_id = link_id
            r.linked_reports = [rid for rid in ids if rid != str(r.id)]
            r.link_type = link_type
            r.link_notes = notes or ""
            r.linked_by = linked_by
            r.linked_at = now
            r.last_modified_by = linked_by
            r.save(update_fields=LINK_FIELDS + ["last_modified_by"])
            self._record(
                r,
                previous_status=previous,
                details=f"Linked ({link_type}) with {len(ids) - 1} report(s)",
                performed_by=linked_by,
            )

        logger.info("Linked %s reports under %s (%s) by %s", len(ids), link_id, link_type, linked_by)
        return link_id

    @retry_on_contention
    @transaction.atomic
    def unlink_report(self, *, report_id: Any, unlinked_by: str) -> BillingReport:
        unlinked_by = self._require_actor(unlinked_by, "unlinked_by")
        report = self._get_report(report_id, lock=True)
        if not report.link_id:
            raise InvalidStateError("Report is not linked.", current_status=report.status)

        peers = BillingReport.objects.select_for_update().filter(id__in=report.linked_reports or []).order_by("id")
        detach_from_group(peers, {str(report.id)})

        _clear_link(report)
        report.last_modified_by = unlinked_by
        report.save(update_fields=LINK_FIELDS + ["last_modified_by"])
        self._record(report, previous_status=report.status, details="Unlinked from group", performed_by=unlinked_by)
        return report

    # -------------------------
    # Per-appointment summary
    # -------------------------
    def get_appointment_billing_summary(self, appointment_id: str) -> dict[str, Any]:
        reports = [r for r in list_by_appointment(appointment_id=appointment_id) if not r.is_deleted]

        report_types: list[str] = []
        for r in reports:
            if r.report_type not in report_types:
                report_types.append(r.report_type)

        return {
            "appointment_id": str(appointment_id),
            "total_amount": sum((r.total for r in reports), calculator.ZERO),
            "total_paid": sum((r.paid_amount for r in reports), calculator.ZERO),
            "total_pending": sum((r.pending_amount for r in reports), calculator.ZERO),
            "has_draft_reports": any(r.status == ReportStatus.DRAFT for r in reports),
            "has_completed_reports": any(r.status in ISSUED_STATUSES for r in reports),
            "report_types": report_types,
            "report_count": len(reports),
        }
