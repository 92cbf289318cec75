"""Timezone-aware UTC helpers."""

from __future__ import annotations

import datetime as dt


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def utc_today() -> dt.date:
    return utc_now().date()


__all__ = ["utc_now", "utc_today"]
