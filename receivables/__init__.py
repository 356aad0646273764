# receivables/__init__.py
"""
Payment-to-invoice reconciliation service.

    uvicorn receivables:app --reload
"""

from .main import app

__all__ = ["app"]
