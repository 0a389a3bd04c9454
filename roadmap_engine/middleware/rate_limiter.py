"""
Rate limiting configuration.

The Limiter instance is created in roadmap_engine/__init__.py with no
default limits; storage comes from ``RATELIMIT_STORAGE_URI`` and this
module applies the per-blueprint limit.

Usage:
    from roadmap_engine.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

DEFAULT_WRITE_LIMIT = "60/minute"


def init_rate_limits(app, limiter):
    """
    Apply ``ROADMAP_WRITE_LIMIT`` (per remote IP) to the roadmap blueprint.

    Stage starts generate task batches, so the whole blueprint is limited.
    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    write_limit = app.config.get("ROADMAP_WRITE_LIMIT") or DEFAULT_WRITE_LIMIT
    bp = app.blueprints.get("roadmap")
    if bp:
        limiter.limit(write_limit)(bp)

    app.logger.info("Rate limiter configured: roadmap=%s", write_limit)
