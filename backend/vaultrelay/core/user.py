# vaultrelay/core/user.py

import logging
from typing import List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from vaultrelay.core.errors import Conflict, InvalidInput
from vaultrelay.models.user import User

logger = logging.getLogger(__name__)

MAX_USER_ID_LENGTH = 100


def register_user(db: Session, user_id: str) -> User:
    """Register a new identity. Raises Conflict if it already exists."""
    user_id = (user_id or "").strip()
    if not user_id:
        raise InvalidInput("Missing required field: userId")
    if len(user_id) > MAX_USER_ID_LENGTH:
        raise InvalidInput(f"userId too long (max {MAX_USER_ID_LENGTH})")

    if db.get(User, user_id) is not None:
        raise Conflict("User already exists")

    user = User(id=user_id)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration of the same id
        db.rollback()
        raise Conflict("User already exists")

    db.refresh(user)
    logger.info("User created", extra={"user_id": user_id, "action": "register"})
    return user


def list_users(db: Session) -> List[str]:
    return [u.id for u in db.query(User).order_by(User.created_at, User.id).all()]
