from typing import Optional

from ..extensions import db
from ..models.user import User


def get_user_by_id(user_id: str) -> Optional[User]:
    return db.session.get(User, user_id)
