from __future__ import annotations

from ..extensions import db
from procure.time_utils import to_utc_z


ROLE_ADMIN = "admin"
ROLE_STAFF = "staff"
STAFF_ROLES = (ROLE_ADMIN, ROLE_STAFF)


class Staff(db.Model):
    """
    Person who can be assigned purchase orders.

    Admins see and act on every order; other staff only on orders assigned to them.
    """
    __tablename__ = "staff"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    fullname = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True)
    role = db.Column(db.String(16), nullable=False, default=ROLE_STAFF)
    avatar = db.Column(db.String(512), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def __repr__(self) -> str:
        return f"<Staff id={self.id} email={self.email!r} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "fullname": self.fullname,
            "email": self.email,
            "role": self.role,
            "avatar": self.avatar,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }

    def to_summary_dict(self) -> dict:
        return {
            "id": self.id,
            "fullname": self.fullname,
            "email": self.email,
            "avatar": self.avatar,
        }
