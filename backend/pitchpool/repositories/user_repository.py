"""User lookups needed by the join path and ledger attribution."""

from __future__ import annotations

from sqlalchemy.orm import Session

from pitchpool.models import User


class UserRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_user(
        self,
        *,
        display_name: str,
        user_id: str | None = None,
        wallet_address: str | None = None,
    ) -> User:
        user = User(display_name=display_name, wallet_address=wallet_address)
        if user_id is not None:
            user.id = user_id
        self._session.add(user)
        self._session.flush()
        return user

    def get_user(self, user_id: str) -> User | None:
        return self._session.get(User, user_id)


__all__ = ["UserRepository"]
