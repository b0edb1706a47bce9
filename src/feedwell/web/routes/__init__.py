# ABOUTME: Routes module initialization.
# ABOUTME: Exports all route modules for FastAPI app.

from feedwell.web.routes import api

__all__ = ["api"]
