# clinic_core/common/models.py
from __future__ import annotations

import uuid

from django.core.serializers.json import DjangoJSONEncoder
from django.db import models


class TimeStampedModel(models.Model):
    """
    Standard timestamps for all entities.
    """
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class UUIDModel(TimeStampedModel):
    """
    Opaque, store-assigned identity. Callers never derive ids from content.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Meta:
        abstract = True


# -------------------------------------------------------------------
# Durable idempotency for client retries (payments etc.)
# -------------------------------------------------------------------

class IdempotencyRecord(UUIDModel):
    """
    Stores idempotent responses durably.

    Keyed by:
      (user_id, method, path, idempotency_key)

    A resubmitted POST with the same key replays the stored response
    instead of applying the mutation a second time.
    """
    user_id = models.CharField(max_length=64, db_index=True)
    method = models.CharField(max_length=16, db_index=True)
    path = models.CharField(max_length=255, db_index=True)
    idempotency_key = models.CharField(max_length=255, db_index=True)

    status_code = models.PositiveIntegerField(default=200)
    response_data = models.JSONField(default=dict, encoder=DjangoJSONEncoder)

    class Meta:
        db_table = "common_idempotency_record"
        constraints = [
            models.UniqueConstraint(
                fields=["user_id", "method", "path", "idempotency_key"],
                name="uq_idempo_user_method_path_key",
            )
        ]

    def __str__(self) -> str:
        return f"{self.method} {self.path} {self.idempotency_key}"
