from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from clinic_core.common.permissions import CanManageBilling, actor_id_for
from clinic_core.expenses.api.filters import ExpenseFilter
from clinic_core.expenses.api.serializers import (
    ExpenseCreateSerializer,
    ExpenseSerializer,
    ExpenseStatusSerializer,
)
from clinic_core.expenses.selectors import expenses_filtered
from clinic_core.expenses.services import ExpenseService


class ExpenseViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    Clinic expenses:
    - list (filters: category, status, submitted_by, deductible, start, end)
    - retrieve / create / delete
    - status: approve, reject, mark paid
    """
    serializer_class = ExpenseSerializer
    permission_classes = [CanManageBilling]
    filterset_class = ExpenseFilter
    ordering_fields = ["date", "amount", "created_at"]
    search_fields = ["description", "vendor", "receipt_number"]

    def get_queryset(self):
        return expenses_filtered()

    @extend_schema(
        tags=["Expenses"],
        request=ExpenseCreateSerializer,
        responses={201: ExpenseSerializer},
    )
    def create(self, request):
        ser = ExpenseCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        expense = ExpenseService().add_expense(submitted_by=actor_id_for(request.user), **ser.validated_data)
        return Response(ExpenseSerializer(expense).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Expenses"], responses={204: None})
    def destroy(self, request, pk=None):
        ExpenseService().delete_expense(expense_id=pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        tags=["Expenses"],
        request=ExpenseStatusSerializer,
        responses={200: ExpenseSerializer},
    )
    @action(detail=True, methods=["post"], url_path="status")
    def set_status(self, request, pk=None):
        ser = ExpenseStatusSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        expense = ExpenseService().update_status(
            expense_id=pk,
            status=ser.validated_data["status"],
            approved_by=actor_id_for(request.user),
            notes=ser.validated_data.get("notes") or None,
        )
        return Response(ExpenseSerializer(expense).data, status=status.HTTP_200_OK)
