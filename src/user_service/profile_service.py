"""
User Profile Service
Creates and manages the profile that backs each externally created user
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from audiobook_shared.database import retry_on_db_error, session_scope
from user_service.config import Config
from user_service.models import DEFAULT_PREFERENCES, UserProfile
from user_service.username_generator import UsernameGenerator

logger = logging.getLogger(__name__)


@dataclass
class UserProfileCreationResult:
    success: bool
    user_profile: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class UserProfileService:

    def __init__(self, session_factory, username_generator: UsernameGenerator = None, config: Config = None):
        self.session_factory = session_factory
        self.username_generator = username_generator or UsernameGenerator(session_factory)
        self.config = config or Config()

    def create_user_profile(self, user_id: str) -> UserProfileCreationResult:
        """Create a profile with a generated username.

        Returns the existing profile when one is already present. Failures
        come back as ``success=False`` rather than raising.
        """
        try:
            with session_scope(self.session_factory) as session:
                existing = session.query(UserProfile).filter(UserProfile.user_id == user_id).first()
                if existing:
                    logger.info(f"User profile already exists for userId: {user_id}")
                    return UserProfileCreationResult(
                        success=True,
                        user_profile=self._summary(existing)
                    )

                username, _ = self.username_generator.generate_unique_username(
                    word_count=self.config.USERNAME_WORD_COUNT,
                    number_count=self.config.USERNAME_NUMBER_COUNT,
                    max_retries=self.config.USERNAME_MAX_RETRIES
                )

                profile = UserProfile(
                    user_id=user_id,
                    username=username,
                    preferences=json.dumps(DEFAULT_PREFERENCES)
                )
                session.add(profile)
                session.commit()

                return UserProfileCreationResult(success=True, user_profile=self._summary(profile))
        except Exception as e:
            logger.error(f"Failed to create user profile for userId: {user_id}: {e}")
            return UserProfileCreationResult(success=False, error=str(e) or 'Unknown error occurred')

    @retry_on_db_error(max_retries=3, retry_delay=0.5)
    def get_user_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        with session_scope(self.session_factory) as session:
            profile = session.query(UserProfile).filter(UserProfile.user_id == user_id).first()
            return profile.to_dict() if profile else None

    def delete_user_profile(self, user_id: str) -> bool:
        """Delete the profile for ``user_id``; raises LookupError when missing."""
        with session_scope(self.session_factory) as session:
            profile = session.query(UserProfile).filter(UserProfile.user_id == user_id).first()
            if profile is None:
                raise LookupError(f"No user profile for userId: {user_id}")
            session.delete(profile)
            session.commit()

        logger.info(f"Deleted user profile for userId: {user_id}")
        return True

    @staticmethod
    def _summary(profile: UserProfile) -> Dict[str, Any]:
        return {
            'id': profile.id,
            'user_id': profile.user_id,
            'username': profile.username,
        }
