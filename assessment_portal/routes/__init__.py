"""Routes package for FastAPI endpoints.

This package contains all route modules of the assessment portal.
"""

from assessment_portal.routes import admin, assessments, auth, health

__all__ = ["admin", "assessments", "auth", "health"]
