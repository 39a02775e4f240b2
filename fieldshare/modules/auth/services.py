import logging

from fieldshare.core.exceptions import UserAlreadyExists
from fieldshare.models import User
from fieldshare.repository import FieldRepository

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, repository: FieldRepository):
        self.repository = repository

    def register_user(self, user_data) -> User:
        # Phone numbers route SMS notifications, so one account per number
        if user_data.phone_number and self.repository.get_user_by_phone(user_data.phone_number):
            raise UserAlreadyExists(user_data.phone_number)

        user = self.repository.create_user(**user_data.model_dump())
        self.repository.commit()
        logger.info(f"Registered {user.user_role} {user.id}")
        return user
