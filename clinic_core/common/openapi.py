# clinic_core/common/openapi.py
from __future__ import annotations

from drf_spectacular.openapi import AutoSchema
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter


class ClinicAutoSchema(AutoSchema):
    """
    Adds the optional Idempotency-Key header to every mutating endpoint.
    """

    IDEMPOTENCY_HEADER = OpenApiParameter(
        name="Idempotency-Key",
        type=OpenApiTypes.STR,
        location=OpenApiParameter.HEADER,
        required=False,
        description=(
            "Optional idempotency key for safely retrying POST requests. "
            "Strongly recommended when recording payments."
        ),
    )

    def get_override_parameters(self):
        params = list(super().get_override_parameters() or [])

        if self.method.upper() != "POST":
            return params

        if not any(p.name.lower() == "idempotency-key" for p in params):
            params.append(self.IDEMPOTENCY_HEADER)

        return params
