"""User service package.

Importing the package does not open broker or database connections; the
worker entrypoint lives in ``user_service.worker``.
"""

from .consumer import AckAlways, MessageConsumer, SubscriptionState
from .profile_service import UserProfileCreationResult, UserProfileService

__all__ = [
    'AckAlways',
    'MessageConsumer',
    'SubscriptionState',
    'UserProfileCreationResult',
    'UserProfileService',
]
