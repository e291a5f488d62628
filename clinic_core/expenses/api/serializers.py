from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from clinic_core.expenses.models import Expense, ExpenseCategory, ExpenseStatus


class ExpenseSerializer(serializers.ModelSerializer):
    class Meta:
        model = Expense
        fields = [
            "id",
            "description",
            "amount",
            "category",
            "date",
            "vendor",
            "receipt_number",
            "receipt_url",
            "deductible",
            "tax_amount",
            "status",
            "approved_by",
            "approved_at",
            "submitted_by",
            "notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ExpenseCreateSerializer(serializers.Serializer):
    description = serializers.CharField(max_length=255)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"))
    category = serializers.ChoiceField(choices=ExpenseCategory.choices)
    date = serializers.DateTimeField(required=False, allow_null=True, default=None)
    vendor = serializers.CharField(required=False, allow_blank=True, default="")
    receipt_number = serializers.CharField(required=False, allow_blank=True, default="")
    receipt_url = serializers.URLField(required=False, allow_blank=True, default="")
    deductible = serializers.BooleanField(required=False, default=False)
    tax_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, default=Decimal("0.00"))
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class ExpenseStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=ExpenseStatus.choices)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
