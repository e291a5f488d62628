# clinic_core/api/urls.py
from __future__ import annotations

from django.urls import path
from rest_framework.routers import DefaultRouter

from clinic_core.billing.api.views import (
    AppointmentBillingSummaryView,
    AppointmentReportsView,
    BillingDashboardView,
    BillingReportViewSet,
    RevenueSummaryView,
)
from clinic_core.expenses.api.views import ExpenseViewSet

router = DefaultRouter()

router.register(r"billing/reports", BillingReportViewSet, basename="billing-reports")
router.register(r"expenses", ExpenseViewSet, basename="expenses")

urlpatterns = [
    path(
        "billing/appointments/<str:appointment_id>/reports/",
        AppointmentReportsView.as_view(),
        name="billing-appointment-reports",
    ),
    path(
        "billing/appointments/<str:appointment_id>/summary/",
        AppointmentBillingSummaryView.as_view(),
        name="billing-appointment-summary",
    ),
    path("billing/dashboard/", BillingDashboardView.as_view(), name="billing-dashboard"),
    path("billing/revenue-summary/", RevenueSummaryView.as_view(), name="billing-revenue-summary"),

    # Router URLs last (so explicit paths win if ever overlapping)
    *router.urls,
]
