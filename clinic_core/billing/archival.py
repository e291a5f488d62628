# clinic_core/billing/archival.py
from __future__ import annotations

import logging
from typing import Any

from django.db import transaction
from django.db.models import ProtectedError

from clinic_core.billing.models import BillingReport, ReportStatus
from clinic_core.billing.relationships import detach_from_group
from clinic_core.billing.services import BaseBillingService
from clinic_core.billing.state_machine import reversal_target, transition
from clinic_core.common.api.exceptions import InvalidStateError, NotFoundError, ValidationError
from clinic_core.common.retry import retry_on_contention

logger = logging.getLogger(__name__)

PURGEABLE_STATUSES = frozenset({ReportStatus.DRAFT, ReportStatus.DELETED})


class ReportArchivalService(BaseBillingService):
    """
    Archive / soft delete and their reversals, plus the irreversible purge.
    """

    @retry_on_contention
    @transaction.atomic
    def archive_report(self, *, report_id: Any, archived_by: str, reason: str | None = None) -> BillingReport:
        archived_by = self._require_actor(archived_by, "archived_by")
        report = self._get_report(report_id, lock=True)

        if report.status in (ReportStatus.ARCHIVED, ReportStatus.DELETED):
            raise InvalidStateError(f"Cannot archive a report in '{report.status}' status.", current_status=report.status)

        previous = transition(report, ReportStatus.ARCHIVED)
        report.status_before_archive = previous
        report.archived_at = self.now()
        report.archived_by = archived_by
        report.archived_reason = reason or ""
        report.last_modified_by = archived_by
        report.save(
            update_fields=[
                "status",
                "status_before_archive",
                "archived_at",
                "archived_by",
                "archived_reason",
                "last_modified_by",
                "updated_at",
            ]
        )

        self._record(
            report,
            previous_status=previous,
            details=f"Report archived. {reason or ''}".strip(),
            performed_by=archived_by,
        )
        logger.info("Archived report %s (was %s) by %s", report.id, previous, archived_by)
        return report

    @retry_on_contention
    @transaction.atomic
    def unarchive_report(self, *, report_id: Any, unarchived_by: str) -> BillingReport:
        unarchived_by = self._require_actor(unarchived_by, "unarchived_by")
        report = self._get_report(report_id, lock=True)

        if report.status != ReportStatus.ARCHIVED:
            raise InvalidStateError("Only archived reports can be unarchived.", current_status=report.status)

        previous = report.status
        report.status = reversal_target(report)
        report.status_before_archive = ""
        report.archived_at = None
        report.archived_by = ""
        report.archived_reason = ""
        report.last_modified_by = unarchived_by
        report.save(
            update_fields=[
                "status",
                "status_before_archive",
                "archived_at",
                "archived_by",
                "archived_reason",
                "last_modified_by",
                "updated_at",
            ]
        )

        self._record(report, previous_status=previous, details="Report unarchived", performed_by=unarchived_by)
        logger.info("Unarchived report %s back to %s by %s", report.id, report.status, unarchived_by)
        return report

    @retry_on_contention
    @transaction.atomic
    def soft_delete(self, *, report_id: Any, deleted_by: str, reason: str | None = None) -> BillingReport:
        deleted_by = self._require_actor(deleted_by, "deleted_by")
        report = self._get_report(report_id, lock=True)

        if report.status == ReportStatus.DELETED or report.is_deleted:
            raise InvalidStateError("Report is already deleted.", current_status=report.status)

        previous = transition(report, ReportStatus.DELETED)
        report.status_before_delete = previous
        report.is_deleted = True
        report.deleted_at = self.now()
        report.deleted_by = deleted_by
        report.delete_reason = reason or ""
        report.last_modified_by = deleted_by
        report.save(
            update_fields=[
                "status",
                "status_before_delete",
                "is_deleted",
                "deleted_at",
                "deleted_by",
                "delete_reason",
                "last_modified_by",
                "updated_at",
            ]
        )

        self._record(
            report,
            previous_status=previous,
            details=f"Report deleted. {reason or ''}".strip(),
            performed_by=deleted_by,
        )
        logger.info("Soft-deleted report %s (was %s) by %s", report.id, previous, deleted_by)
        return report

    @retry_on_contention
    @transaction.atomic
    def restore_report(self, *, report_id: Any, restored_by: str) -> BillingReport:
        restored_by = self._require_actor(restored_by, "restored_by")
        report = self._get_report(report_id, lock=True)

        if report.status != ReportStatus.DELETED:
            raise InvalidStateError("Only deleted reports can be restored.", current_status=report.status)

        previous = report.status
        report.status = reversal_target(report)
        report.status_before_delete = ""
        report.is_deleted = False
        report.deleted_at = None
        report.deleted_by = ""
        report.delete_reason = ""
        report.last_modified_by = restored_by
        report.save(
            update_fields=[
                "status",
                "status_before_delete",
                "is_deleted",
                "deleted_at",
                "deleted_by",
                "delete_reason",
                "last_modified_by",
                "updated_at",
            ]
        )

        self._record(report, previous_status=previous, details="Report restored", performed_by=restored_by)
        logger.info("Restored report %s to %s by %s", report.id, report.status, restored_by)
        return report

    @retry_on_contention
    @transaction.atomic
    def hard_delete(self, *, report_id: Any, confirm: bool = False) -> None:
        """
        Irreversibly remove a draft or soft-deleted report with its services,
        payments and history. A report that is still some other report's
        parent cannot be purged.
        """
        report = self._get_report(report_id, lock=True)

        if not confirm:
            raise ValidationError({"confirm": "Permanent deletion requires confirm=true."})
        if report.status not in PURGEABLE_STATUSES:
            raise InvalidStateError(
                "Only draft or deleted reports can be permanently deleted.",
                current_status=report.status,
            )
        if report.child_reports.exists():
            raise InvalidStateError(
                "Report is the parent of other reports and cannot be permanently deleted.",
                current_status=report.status,
            )

        if report.linked_reports:
            peers = BillingReport.objects.select_for_update().filter(id__in=report.linked_reports).order_by("id")
            detach_from_group(peers, {str(report.id)})

        logger.warning(
            "Permanently deleting report %s (appointment %s, sequence %s, status %s)",
            report.id,
            report.appointment_id,
            report.report_sequence,
            report.status,
        )
        try:
            report.delete()
        except ProtectedError:
            raise InvalidStateError(
                "Report is referenced by other reports and cannot be permanently deleted.",
                current_status=report.status,
            )
