from __future__ import annotations

import django_filters

from clinic_core.expenses.models import Expense, ExpenseCategory, ExpenseStatus


class ExpenseFilter(django_filters.FilterSet):
    category = django_filters.ChoiceFilter(choices=ExpenseCategory.choices)
    status = django_filters.ChoiceFilter(choices=ExpenseStatus.choices)
    submitted_by = django_filters.CharFilter()
    start = django_filters.IsoDateTimeFilter(field_name="date", lookup_expr="gte")
    end = django_filters.IsoDateTimeFilter(field_name="date", lookup_expr="lte")

    class Meta:
        model = Expense
        fields = ["category", "status", "submitted_by", "deductible"]
