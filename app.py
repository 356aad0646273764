# app.py
"""
Entrypoint for the reconciliation API. Configuration comes from the
RECEIVABLES_* environment variables (see receivables/config.py).

    uvicorn app:app --reload
"""

from receivables.main import app  # noqa: F401
