"""SQLAlchemy ORM models for the BookEasy onboarding service.

All models are exported from this module for convenient imports:
    from app.models import User, Provider, ProviderService, ...

Models are organized by domain:
- user.py: User (Tier 0)
- provider.py: Provider (Tier 1 - one per user)
- service.py: ProviderService (Tier 2)
- availability.py: Availability (Tier 2)
"""

from app.models.availability import Availability
from app.models.base import Base, TimestampMixin
from app.models.provider import Provider
from app.models.service import ProviderService
from app.models.user import User

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    # Tier 0
    "User",
    # Tier 1
    "Provider",
    # Tier 2
    "ProviderService",
    "Availability",
]
