from __future__ import annotations

from ..extensions import db
from distro.time_utils import to_utc_z

ROLE_DISTRIBUTOR = "distributor"
ROLE_EMPLOYEE = "employee"
ROLE_ADMIN = "admin"


class User(db.Model):
    """
    Platform account.

    Distributors are the tenants: they own shops, products and employees.
    Employees act on behalf of exactly one distributor (see Employee).
    Admins oversee the whole platform and own nothing.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(20), nullable=False, unique=True)
    role = db.Column(db.String(20), nullable=False, default=ROLE_DISTRIBUTOR, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.name!r} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "role": self.role,
            "created_at": to_utc_z(self.created_at),
        }


class Employee(db.Model):
    """Links an employee user to the distributor it works for."""
    __tablename__ = "employees"
    __table_args__ = (
        db.UniqueConstraint("user_id", name="uq_employees_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    distributor_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    user = db.relationship("User", foreign_keys=[user_id])
    distributor = db.relationship("User", foreign_keys=[distributor_id], backref=db.backref("employees", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "distributor_id": self.distributor_id,
        }
