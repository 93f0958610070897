"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter instance
is created in promotion_engine/__init__.py with no default limits.

Usage:
    from promotion_engine.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# blueprint name → limit string (per remote IP)
BLUEPRINT_LIMITS = {
    "promotion": "60/minute",
    "badge_application": "60/minute",
}


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Promotion / badge application endpoints: 60/minute
        - Health check: exempt

    Rate limiting is disabled in testing mode or with RATELIMIT_ENABLED off.
    """
    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    for bp_name, limit in BLUEPRINT_LIMITS.items():
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(limit)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: %s", ", ".join(
        f"{name}={limit}" for name, limit in BLUEPRINT_LIMITS.items()
    ))
