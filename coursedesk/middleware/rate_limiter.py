"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in coursedesk/__init__.py with no default
limits; this module applies granular limits per route category.

Usage:
    from coursedesk.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
STRICT_LIMIT = "10/minute"

# Blueprints carrying the bulk of admin mutations
WRITE_BLUEPRINTS = ("clients", "courses", "enrollment", "students", "vehicles", "closure")


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Invitation emails and CSV imports: 10/minute
        - Other API blueprints:              60/minute
        - Health check:                      exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name in WRITE_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    # Endpoints that send mail or bulk-write rows
    for endpoint in (
        "clients.create_invitation",
        "clients.resend_invitation",
        "enrollment.import_students",
    ):
        view = app.view_functions.get(endpoint)
        if view is not None:
            app.view_functions[endpoint] = limiter.limit(STRICT_LIMIT)(view)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: write %s, invitations/imports %s",
        WRITE_LIMIT, STRICT_LIMIT,
    )
