"""
User Model
==========

Minimal account record. Authentication lives upstream; the roadmap engine
only needs identities to resolve contributors/updaters and the admin role
for the regeneration gate.
"""

from typing import Any, Dict, Optional

from ..constants import UserRole
from ..extensions import db
from ..utils.time import utc_now


class User(db.Model):
    """Account referenced as contributor, updater, voter or regeneration actor."""

    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    email = db.Column(db.String(120), unique=True, nullable=True, index=True)
    avatar_url = db.Column(db.String(500))
    role = db.Column(db.String(20), nullable=False, default=UserRole.USER.value)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)

    def __init__(self, username: str, email: Optional[str] = None, role: str = UserRole.USER.value,
                 avatar_url: Optional[str] = None):
        self.username = username
        self.email = email
        self.role = role
        self.avatar_url = avatar_url

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def to_public_dict(self) -> Dict[str, Any]:
        """Identity fields safe to embed in roadmap payloads."""
        return {
            'id': self.id,
            'username': self.username,
            'avatar_url': self.avatar_url,
        }

    def __repr__(self) -> str:
        return f'<User {self.username}>'
