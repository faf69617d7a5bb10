"""
Auth Models - organizations and user profiles.

Identity itself lives with the external identity provider; a UserProfile only
keeps what the report service needs: the org link, the role and the external
identity reference carried in the access token ``sub`` claim.
"""

from datetime import UTC, datetime
from enum import Enum

from nippo.models import db


def enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Role(str, Enum):
    """Closed role set. A higher role subsumes every capability of a lower one."""

    USER = "user"
    MANAGER = "manager"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    def at_least(self, other: "Role") -> bool:
        return self.rank >= Role(other).rank


_ROLE_RANK = {Role.USER: 1, Role.MANAGER: 2, Role.ADMIN: 3}


# ═══════════════════════════════════════════════════════════════
# 1. ORGANIZATIONS
# ═══════════════════════════════════════════════════════════════
class Organization(db.Model):
    __tablename__ = "organizations"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(UTC))

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# ═══════════════════════════════════════════════════════════════
# 2. USER PROFILES
# ═══════════════════════════════════════════════════════════════
class UserProfile(db.Model):
    __tablename__ = "user_profiles"

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    external_identity_ref = db.Column(db.String(200), nullable=False, unique=True)
    display_name = db.Column(db.String(200))
    role = db.Column(
        db.Enum(Role, native_enum=False, length=20, values_callable=enum_values),
        nullable=False,
        default=Role.USER,
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        db.Index("ix_user_profiles_org_role", "org_id", "role"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "org_id": self.org_id,
            "external_identity_ref": self.external_identity_ref,
            "display_name": self.display_name,
            "role": self.role.value if self.role else None,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<UserProfile {self.id} org={self.org_id} role={self.role}>"
