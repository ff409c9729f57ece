"""FastAPI dependency providers."""

from .auth import get_current_coach, get_current_profile
from .database import get_db
from .services import get_payment_processor_dep

__all__ = [
    "get_current_coach",
    "get_current_profile",
    "get_db",
    "get_payment_processor_dep",
]
