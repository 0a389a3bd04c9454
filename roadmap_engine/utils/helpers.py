"""Shared utility functions for blueprints and services.

get_or_404:  tuple-return lookup used by blueprints (NOT abort)
ensure_utc:  normalise datetimes read back from SQLite (naive) to aware UTC
iso_utc:     ensure_utc + isoformat for to_dict payloads
"""
import logging
from datetime import datetime, timezone

from flask import jsonify

from roadmap_engine.models import db

logger = logging.getLogger(__name__)


def get_or_404(model, pk, label=None):
    """Fetch a model instance by primary key or return a 404 error tuple.

    - Success: (obj, None)
    - Failure: (None, (jsonify_response, 404))

    Usage:
        obj, err = get_or_404(ProjectRoadmapStage, sid)
        if err:
            return err
    """
    label = label or model.__name__
    obj = db.session.get(model, pk)
    if not obj:
        return None, (jsonify({"error": f"{label} not found"}), 404)
    return obj, None


def ensure_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as a timezone-aware UTC datetime.

    SQLite drops tzinfo on DateTime(timezone=True) columns, so values read
    back from it are naive; they are stored in UTC and tagged as such here.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso_utc(value: datetime | None) -> str | None:
    """ISO-8601 string in UTC for API payloads (None passes through)."""
    value = ensure_utc(value)
    return value.isoformat() if value else None
