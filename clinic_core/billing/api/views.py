# clinic_core/billing/api/views.py
from __future__ import annotations

from datetime import datetime, time, timedelta

from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from clinic_core.billing.api.serializers import (
    AppointmentBillingSummarySerializer,
    BillingDashboardSerializer,
    BillingPaymentSerializer,
    BillingReportListSerializer,
    BillingReportSerializer,
    CompleteSerializer,
    DiscountSerializer,
    DuplicateSerializer,
    LinkSerializer,
    NotesSerializer,
    PaymentCreateSerializer,
    PdfSerializer,
    QuickPaymentOptionSerializer,
    ReasonSerializer,
    ReportCreateSerializer,
    RevenueSummarySerializer,
    ServicesUpdateSerializer,
)
from clinic_core.billing.archival import ReportArchivalService
from clinic_core.billing.models import BillingReport
from clinic_core.billing.relationships import DuplicateOptions, ReportRelationshipService
from clinic_core.billing.reporting import get_billing_dashboard, get_revenue_summary
from clinic_core.billing.selectors import list_by_appointment, report_detail_qs, reports_filtered
from clinic_core.billing.services import BillingReportService, PaymentInput, ReportOptions
from clinic_core.common.api.exceptions import NotFoundError
from clinic_core.common.api.pagination import paginate
from clinic_core.common.idempotency import get_key, load_response, save_response
from clinic_core.common.permissions import CanManageBilling, actor_id_for

TRUTHY = {"1", "true", "yes", "on"}


def _flag(value: str | None) -> bool:
    return str(value or "").strip().lower() in TRUTHY


def _parse_bound(value: str | None, field_name: str, *, end_of_day: bool = False) -> datetime | None:
    """
    Accepts an ISO datetime or a plain date (start/end of that day in the
    current timezone).
    """
    if not value:
        return None

    dt = parse_datetime(value)
    if dt is None:
        d = parse_date(value)
        if d is None:
            raise DRFValidationError({field_name: "Invalid date/datetime."})
        dt = datetime.combine(d, time.max if end_of_day else time.min)

    if timezone.is_naive(dt):
        dt = timezone.make_aware(dt)
    return dt


def _detail(report_id) -> BillingReport:
    try:
        return report_detail_qs().get(id=report_id)
    except (BillingReport.DoesNotExist, ValueError, DjangoValidationError):
        raise NotFoundError(f"Billing report {report_id} not found.")


def _detail_response(report_id, http_status=status.HTTP_200_OK) -> Response:
    return Response(BillingReportSerializer(_detail(report_id)).data, status=http_status)


REPORT_FILTER_PARAMS = [
    OpenApiParameter(name="patient", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
    OpenApiParameter(name="doctor", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
    OpenApiParameter(name="appointment", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
    OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
    OpenApiParameter(name="report_type", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
    OpenApiParameter(
        name="start",
        type=OpenApiTypes.STR,
        location=OpenApiParameter.QUERY,
        required=False,
        description="Created at or after (ISO date or datetime).",
    ),
    OpenApiParameter(
        name="end",
        type=OpenApiTypes.STR,
        location=OpenApiParameter.QUERY,
        required=False,
        description="Created at or before (ISO date or datetime).",
    ),
    OpenApiParameter(name="include_deleted", type=OpenApiTypes.BOOL, location=OpenApiParameter.QUERY, required=False),
]


class BillingReportViewSet(viewsets.GenericViewSet):
    """
    Billing reports:
    - list/retrieve/create, hard delete (?confirm=true)
    - draft editing: services, discount
    - lifecycle: complete, cancel, archive/unarchive, soft-delete/restore
    - payments (GET/POST) + payment-suggestions
    - duplicate, link, unlink
    """
    serializer_class = BillingReportSerializer
    queryset = BillingReport.objects.none()
    permission_classes = [CanManageBilling]

    # -------------------------
    # Collection
    # -------------------------
    @extend_schema(
        tags=["Billing"],
        responses={200: BillingReportListSerializer(many=True)},
        parameters=REPORT_FILTER_PARAMS,
    )
    def list(self, request):
        qp = request.query_params
        qs = reports_filtered(
            patient_id=qp.get("patient") or None,
            doctor_id=qp.get("doctor") or None,
            appointment_id=qp.get("appointment") or None,
            status=qp.get("status") or None,
            report_type=qp.get("report_type") or None,
            start=_parse_bound(qp.get("start"), "start"),
            end=_parse_bound(qp.get("end"), "end", end_of_day=True),
            include_deleted=_flag(qp.get("include_deleted")),
        )
        return paginate(request, qs, BillingReportListSerializer)

    @extend_schema(
        tags=["Billing"],
        request=ReportCreateSerializer,
        responses={201: BillingReportSerializer},
    )
    def create(self, request):
        ser = ReportCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        report_id = BillingReportService().create_report(
            appointment_id=data["appointment_id"],
            created_by=actor_id_for(request.user),
            options=ReportOptions(
                report_type=data["report_type"],
                report_title=data["report_title"],
                report_description=data["report_description"],
                is_partial_report=data["is_partial_report"],
                parent_report_id=data.get("parent_report_id"),
                include_previous_services=data["include_previous_services"],
                discount=data["discount"],
                notes=data["notes"],
            ),
            initial_services=data.get("services") or [],
        )
        return _detail_response(report_id, status.HTTP_201_CREATED)

    @extend_schema(tags=["Billing"], responses={200: BillingReportSerializer})
    def retrieve(self, request, pk=None):
        return _detail_response(pk)

    @extend_schema(
        tags=["Billing"],
        responses={204: None},
        parameters=[
            OpenApiParameter(
                name="confirm",
                type=OpenApiTypes.BOOL,
                location=OpenApiParameter.QUERY,
                required=True,
                description="Must be true: permanent deletion cannot be undone.",
            )
        ],
    )
    def destroy(self, request, pk=None):
        ReportArchivalService().hard_delete(report_id=pk, confirm=_flag(request.query_params.get("confirm")))
        return Response(status=status.HTTP_204_NO_CONTENT)

    # -------------------------
    # Draft editing
    # -------------------------
    @extend_schema(tags=["Billing"], request=ServicesUpdateSerializer, responses={200: BillingReportSerializer})
    @action(detail=True, methods=["put"], url_path="services")
    def services(self, request, pk=None):
        ser = ServicesUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        BillingReportService().update_services(
            report_id=pk,
            services=ser.validated_data["services"],
            updated_by=actor_id_for(request.user),
            discount=ser.validated_data.get("discount"),
        )
        return _detail_response(pk)

    @extend_schema(tags=["Billing"], request=DiscountSerializer, responses={200: BillingReportSerializer})
    @action(detail=True, methods=["post"], url_path="discount")
    def discount(self, request, pk=None):
        ser = DiscountSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        BillingReportService().update_discount(
            report_id=pk,
            discount=ser.validated_data["discount"],
            updated_by=actor_id_for(request.user),
        )
        return _detail_response(pk)

    # -------------------------
    # Lifecycle
    # -------------------------
    @extend_schema(tags=["Billing"], request=CompleteSerializer, responses={200: BillingReportSerializer})
    @action(detail=True, methods=["post"], url_path="complete")
    def complete(self, request, pk=None):
        ser = CompleteSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        BillingReportService().complete_report(
            report_id=pk,
            performed_by=actor_id_for(request.user),
            notes=ser.validated_data.get("notes"),
        )
        return _detail_response(pk)

    @extend_schema(tags=["Billing"], request=ReasonSerializer, responses={200: BillingReportSerializer})
    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, pk=None):
        ser = ReasonSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        BillingReportService().cancel_report(
            report_id=pk,
            performed_by=actor_id_for(request.user),
            reason=ser.validated_data["reason"],
        )
        return _detail_response(pk)

    @extend_schema(tags=["Billing"], request=NotesSerializer, responses={200: BillingReportSerializer})
    @action(detail=True, methods=["patch"], url_path="notes")
    def notes(self, request, pk=None):
        ser = NotesSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        BillingReportService().update_notes(
            report_id=pk,
            updated_by=actor_id_for(request.user),
            notes=ser.validated_data.get("notes"),
            internal_notes=ser.validated_data.get("internal_notes"),
        )
        return _detail_response(pk)

    @extend_schema(tags=["Billing"], request=PdfSerializer, responses={200: BillingReportSerializer})
    @action(detail=True, methods=["post"], url_path="pdf")
    def pdf(self, request, pk=None):
        ser = PdfSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        BillingReportService().mark_pdf_generated(
            report_id=pk,
            pdf_url=ser.validated_data["pdf_url"],
            generated_by=actor_id_for(request.user),
        )
        return _detail_response(pk)

    @extend_schema(tags=["Billing"], request=ReasonSerializer, responses={200: BillingReportSerializer})
    @action(detail=True, methods=["post"], url_path="archive")
    def archive(self, request, pk=None):
        ser = ReasonSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        ReportArchivalService().archive_report(
            report_id=pk,
            archived_by=actor_id_for(request.user),
            reason=ser.validated_data["reason"],
        )
        return _detail_response(pk)

    @extend_schema(tags=["Billing"], request=None, responses={200: BillingReportSerializer})
    @action(detail=True, methods=["post"], url_path="unarchive")
    def unarchive(self, request, pk=None):
        ReportArchivalService().unarchive_report(report_id=pk, unarchived_by=actor_id_for(request.user))
        return _detail_response(pk)

    @extend_schema(tags=["Billing"], request=ReasonSerializer, responses={200: BillingReportSerializer})
    @action(detail=True, methods=["post"], url_path="soft-delete")
    def soft_delete(self, request, pk=None):
        ser = ReasonSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        ReportArchivalService().soft_delete(
            report_id=pk,
            deleted_by=actor_id_for(request.user),
            reason=ser.validated_data["reason"],
        )
        return _detail_response(pk)

    @extend_schema(tags=["Billing"], request=None, responses={200: BillingReportSerializer})
    @action(detail=True, methods=["post"], url_path="restore")
    def restore(self, request, pk=None):
        ReportArchivalService().restore_report(report_id=pk, restored_by=actor_id_for(request.user))
        return _detail_response(pk)

    # -------------------------
    # Payments
    # -------------------------
    @extend_schema(
        tags=["Billing"],
        request=PaymentCreateSerializer,
        responses={
            200: BillingPaymentSerializer(many=True),
            201: BillingPaymentSerializer,
        },
    )
    @action(detail=True, methods=["get", "post"], url_path="payments")
    def payments(self, request, pk=None):
        """
        /billing/reports/<report_id>/payments/
        - GET: list payments
        - POST: record a payment (honours Idempotency-Key)
        """
        if request.method.lower() == "get":
            report = _detail(pk)
            return Response(
                BillingPaymentSerializer(report.payments.all(), many=True).data,
                status=status.HTTP_200_OK,
            )

        idem = get_key(request)
        if idem:
            cached = load_response(request.user.pk, request.method, request.path, idem)
            if cached is not None:
                return Response(cached, status=status.HTTP_201_CREATED)

        ser = PaymentCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        pay = BillingReportService().add_payment(
            report_id=pk,
            payment=PaymentInput(
                amount=data["amount"],
                method=data["method"],
                reference=data["reference"],
                notes=data["notes"],
                date=data.get("date"),
                payment_id=data.get("payment_id"),
            ),
            performed_by=actor_id_for(request.user),
        )
        out = BillingPaymentSerializer(pay).data

        if idem:
            save_response(request.user.pk, request.method, request.path, idem, out, status.HTTP_201_CREATED)

        return Response(out, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Billing"], responses={200: QuickPaymentOptionSerializer(many=True)})
    @action(detail=True, methods=["get"], url_path="payment-suggestions")
    def payment_suggestions(self, request, pk=None):
        options = BillingReportService().get_payment_suggestions(pk)
        return Response(QuickPaymentOptionSerializer(options, many=True).data, status=status.HTTP_200_OK)

    # -------------------------
    # Relationships
    # -------------------------
    @extend_schema(tags=["Billing"], request=DuplicateSerializer, responses={201: BillingReportSerializer})
    @action(detail=True, methods=["post"], url_path="duplicate")
    def duplicate(self, request, pk=None):
        ser = DuplicateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        new_id = ReportRelationshipService().duplicate_report(
            source_id=pk,
            duplicated_by=actor_id_for(request.user),
            options=DuplicateOptions(**ser.validated_data),
        )
        return _detail_response(new_id, status.HTTP_201_CREATED)

    @extend_schema(tags=["Billing"], request=LinkSerializer, responses={200: BillingReportListSerializer(many=True)})
    @action(detail=False, methods=["post"], url_path="link")
    def link(self, request):
        ser = LinkSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        link_id = ReportRelationshipService().link_reports(
            report_ids=ser.validated_data["report_ids"],
            link_type=ser.validated_data["link_type"],
            linked_by=actor_id_for(request.user),
            notes=ser.validated_data["notes"],
        )
        members = BillingReport.objects.filter(link_id=link_id).order_by("appointment_id", "report_sequence")
        return Response(
            {"link_id": str(link_id), "reports": BillingReportListSerializer(members, many=True).data},
            status=status.HTTP_200_OK,
        )

    @extend_schema(tags=["Billing"], request=None, responses={200: BillingReportSerializer})
    @action(detail=True, methods=["post"], url_path="unlink")
    def unlink(self, request, pk=None):
        ReportRelationshipService().unlink_report(report_id=pk, unlinked_by=actor_id_for(request.user))
        return _detail_response(pk)


class AppointmentReportsView(APIView):
    """
    /billing/appointments/<appointment_id>/reports/
    """
    permission_classes = [CanManageBilling]

    @extend_schema(
        tags=["Billing"],
        responses={200: BillingReportListSerializer(many=True)},
        parameters=[
            OpenApiParameter(
                name="include_deleted",
                type=OpenApiTypes.BOOL,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Defaults to true.",
            )
        ],
    )
    def get(self, request, appointment_id: str):
        raw = request.query_params.get("include_deleted")
        include_deleted = True if raw is None else _flag(raw)

        qs = list_by_appointment(appointment_id=appointment_id, include_deleted=include_deleted)
        return Response(BillingReportListSerializer(qs, many=True).data, status=status.HTTP_200_OK)


class AppointmentBillingSummaryView(APIView):
    """
    /billing/appointments/<appointment_id>/summary/
    """
    permission_classes = [CanManageBilling]

    @extend_schema(tags=["Billing"], responses={200: AppointmentBillingSummarySerializer})
    def get(self, request, appointment_id: str):
        summary = ReportRelationshipService().get_appointment_billing_summary(appointment_id)
        return Response(AppointmentBillingSummarySerializer(summary).data, status=status.HTTP_200_OK)


class BillingDashboardView(APIView):
    permission_classes = [CanManageBilling]

    @extend_schema(
        tags=["Billing"],
        responses={200: BillingDashboardSerializer},
        parameters=[
            OpenApiParameter(name="start", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="end", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="doctor", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def get(self, request):
        """
        Defaults to the last 30 days when no period is given.
        """
        now = timezone.now()
        end = _parse_bound(request.query_params.get("end"), "end", end_of_day=True) or now
        start = _parse_bound(request.query_params.get("start"), "start") or (end - timedelta(days=30))
        if start > end:
            raise DRFValidationError({"start": "start must be before end."})

        data = get_billing_dashboard(
            start=start,
            end=end,
            doctor_id=request.query_params.get("doctor") or None,
            now=now,
        )
        return Response(BillingDashboardSerializer(data).data, status=status.HTTP_200_OK)


class RevenueSummaryView(APIView):
    permission_classes = [CanManageBilling]

    @extend_schema(
        tags=["Billing"],
        responses={200: RevenueSummarySerializer},
        parameters=[
            OpenApiParameter(name="doctor", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def get(self, request):
        data = get_revenue_summary(doctor_id=request.query_params.get("doctor") or None)
        return Response(RevenueSummarySerializer(data).data, status=status.HTTP_200_OK)
