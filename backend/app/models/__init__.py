"""SQLAlchemy models for TaxMate.

All models are imported here so that ``Base.metadata`` knows every table.
If you add a new model, import it in this file.
"""

from app.models.form_job import FormJob
from app.models.subscription import Subscription

__all__ = [
    "FormJob",
    "Subscription",
]
