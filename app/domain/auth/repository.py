"""Auth repository - Database operations for accounts"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import User


class AuthRepository:
    """Repository for account database operations"""

    @staticmethod
    def get_by_email(db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(User.email == email.lower()).first()

    @staticmethod
    def create_user(db: Session, **data) -> User:
        user = User(**data)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
