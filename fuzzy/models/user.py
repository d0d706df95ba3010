"""Operator account model."""

from dataclasses import dataclass
from datetime import datetime

import bcrypt

from fuzzy.models._time import isoformat

DEFAULT_ROLE = "User"
ADMIN_ROLE = "Administrator"
BCRYPT_ROUNDS = 12


@dataclass
class User:
    username: str = ""
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    role: str = DEFAULT_ROLE
    active: bool = False
    password_hash: str = ""
    id: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def set_password(self, password: str, rounds: int = BCRYPT_ROUNDS) -> None:
        """Store a salted bcrypt hash of ``password``."""
        self.password_hash = bcrypt.hashpw(
            password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)
        ).decode("utf-8")

    def check_password(self, password: str) -> bool:
        if not self.password_hash:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), self.password_hash.encode("utf-8"))
        except ValueError:
            # Malformed stored hash
            return False

    @property
    def display_name(self) -> str:
        full = f"{self.first_name} {self.last_name}".strip()
        return full or self.username

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "role": self.role,
            "active": self.active,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}', role='{self.role}')>"
