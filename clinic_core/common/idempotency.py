# clinic_core/common/idempotency.py
from __future__ import annotations

import logging
import threading

from django.conf import settings
from django.db import IntegrityError, transaction

from clinic_core.common.models import IdempotencyRecord

logger = logging.getLogger(__name__)

_LOCK = threading.Lock()
_STORE = {}  # process-local store for dev/test


def _use_db() -> bool:
    """
    Enable in production with:
        COMMON_IDEMPOTENCY_USE_DB = True
    """
    return bool(getattr(settings, "COMMON_IDEMPOTENCY_USE_DB", False))


def get_key(request):
    # In DRF test client: "HTTP_IDEMPOTENCY_KEY" becomes request.META["HTTP_IDEMPOTENCY_KEY"]
    return request.META.get("HTTP_IDEMPOTENCY_KEY")


def _norm(user_id, method, path, key):
    return (str(user_id), method.upper(), path, str(key))


def load_response(user_id, method, path, key):
    if not key:
        return None

    if not _use_db():
        with _LOCK:
            return _STORE.get(_norm(user_id, method, path, key))

    rec = (
        IdempotencyRecord.objects.filter(
            user_id=str(user_id),
            method=method.upper(),
            path=path,
            idempotency_key=str(key),
        )
        .order_by("-created_at")
        .first()
    )
    return None if rec is None else rec.response_data


def save_response(user_id, method, path, key, response_data, status_code: int = 200):
    if not key:
        return

    if not _use_db():
        with _LOCK:
            _STORE[_norm(user_id, method, path, key)] = response_data
        return

    try:
        with transaction.atomic():
            IdempotencyRecord.objects.create(
                user_id=str(user_id),
                method=method.upper(),
                path=path,
                idempotency_key=str(key),
                status_code=int(status_code),
                response_data=response_data,
            )
    except IntegrityError:
        # already saved by a concurrent request
        logger.info("Idempotency key %s already recorded for %s %s", key, method, path)
