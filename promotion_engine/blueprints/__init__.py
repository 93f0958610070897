"""
Promotion Engine
Blueprint registry.

    promotion_bp          /api/v1/promotions/...
    badge_application_bp  /api/v1/badge-applications/...
    health_bp             /api/v1/health/...
"""
