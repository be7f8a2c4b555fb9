"""
Identity Directory: User records, lookup by email, substring search and
credential/recovery verification.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from .errors import Forbidden, NotFound
from .models import UserEntity
from .repositories import USER_FIELDS, UserRepository
from .security import hash_secret, normalize_answer, verify_secret

logger = logging.getLogger(__name__)

MIN_SEARCH_LENGTH = 2


class IdentityDirectory:
    def __init__(self, users: UserRepository, hash_iterations: int = 100000, search_limit: int = 5) -> None:
        self._users = users
        self._iterations = hash_iterations
        self._search_limit = search_limit

    def get(self, user_id: int) -> UserEntity:
        user = self._users.get(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def find_by_email(self, email: str) -> Optional[UserEntity]:
        """Case-insensitive exact match on email."""
        return self._users.get_by_email(email)

    def search(self, query: str, limit: Optional[int] = None) -> List[UserEntity]:
        """
        Substring match on name or email, case-insensitive.

        Queries shorter than two characters return nothing rather than
        scanning every user.
        """
        q = (query or "").strip()
        if len(q) < MIN_SEARCH_LENGTH:
            return []
        return self._users.search(q, self._search_limit if limit is None else limit)

    def create(
        self,
        name: str,
        email: str,
        password_hash: str,
        recovery_question: str,
        recovery_answer_hash: str,
    ) -> UserEntity:
        user = self._users.create(name, email, password_hash, recovery_question, recovery_answer_hash)
        logger.info("Registered user %s", user["id"])
        return user

    def register(
        self,
        name: str,
        email: str,
        password: str,
        recovery_question: str,
        recovery_answer: str,
    ) -> UserEntity:
        """Hash the plain-text secrets and create the user."""
        return self.create(
            name=name,
            email=email,
            password_hash=hash_secret(password, self._iterations),
            recovery_question=recovery_question,
            recovery_answer_hash=hash_secret(normalize_answer(recovery_answer), self._iterations),
        )

    def update(self, user_id: int, fields: Mapping[str, Any]) -> UserEntity:
        unknown = set(fields) - USER_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)}")
        updated = self._users.update(user_id, fields)
        if updated is None:
            raise NotFound("User not found")
        return updated

    def update_profile(
        self,
        user_id: int,
        name: Optional[str] = None,
        email: Optional[str] = None,
        password: Optional[str] = None,
        recovery_question: Optional[str] = None,
        recovery_answer: Optional[str] = None,
    ) -> UserEntity:
        """Update any subset of the profile, hashing new secrets."""
        fields: Dict[str, Any] = {}
        if name is not None:
            fields["name"] = name
        if email is not None:
            fields["email"] = email
        if password is not None:
            fields["password_hash"] = hash_secret(password, self._iterations)
        if recovery_question is not None:
            fields["recovery_question"] = recovery_question
        if recovery_answer is not None:
            fields["recovery_answer_hash"] = hash_secret(normalize_answer(recovery_answer), self._iterations)
        return self.update(user_id, fields)

    def delete(self, user_id: int) -> None:
        """Remove the identity record only. Dependent groups and tasks are the caller's concern."""
        if not self._users.delete(user_id):
            raise NotFound("User not found")

    def authenticate(self, email: str, password: str) -> Optional[UserEntity]:
        user = self._users.get_by_email(email)
        if user is None or not verify_secret(password, user["password_hash"]):
            return None
        return user

    def recovery_question(self, email: str) -> str:
        user = self._users.get_by_email(email)
        if user is None:
            raise NotFound("Email not found")
        return user["recovery_question"]

    def reset_password(self, email: str, answer: str, new_password: str) -> UserEntity:
        user = self._users.get_by_email(email)
        if user is None or not verify_secret(normalize_answer(answer), user["recovery_answer_hash"]):
            raise Forbidden("Incorrect answer")
        logger.info("Password reset for user %s", user["id"])
        return self.update(user["id"], {"password_hash": hash_secret(new_password, self._iterations)})
