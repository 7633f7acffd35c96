"""
SiteWorks Project Platform
Identity & access models.

Tables:
    users                   — profile mirror of the external auth provider
    user_roles              — role assignments (a user may hold several)
    permission_definitions  — persisted permission catalog
"""

from datetime import datetime, timezone

from siteworks.models import db


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


# ═══════════════════════════════════════════════════════════════
# 1. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    uid = db.Column(db.String(128), primary_key=True, comment="Subject id from the auth provider")
    email = db.Column(db.String(255), nullable=True, index=True)
    display_name = db.Column(db.String(200), nullable=True)
    photo_url = db.Column(db.String(500), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    login_count = db.Column(db.Integer, nullable=False, default=0)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    roles = db.relationship(
        "UserRole", back_populates="user", lazy="select", cascade="all, delete-orphan",
        order_by="UserRole.role",
    )

    def to_dict(self, include_roles=False):
        d = {
            "uid": self.uid,
            "email": self.email,
            "display_name": self.display_name,
            "photo_url": self.photo_url,
            "is_active": self.is_active,
            "login_count": self.login_count,
            "last_login_at": _iso(self.last_login_at),
            "created_at": _iso(self.created_at),
        }
        if include_roles:
            d["roles"] = [ur.role for ur in self.roles if ur.is_active]
        return d

    def __repr__(self):
        return f"<User {self.uid}>"


# ═══════════════════════════════════════════════════════════════
# 2. USER ROLES
# ═══════════════════════════════════════════════════════════════
class UserRole(db.Model):
    __tablename__ = "user_roles"

    id = db.Column(db.Integer, primary_key=True)
    uid = db.Column(
        db.String(128), db.ForeignKey("users.uid", ondelete="CASCADE"), nullable=False, index=True,
    )
    role = db.Column(db.String(30), nullable=False)
    assigned_by = db.Column(db.String(128), nullable=True)
    assigned_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    __table_args__ = (
        db.UniqueConstraint("uid", "role", name="uq_user_role"),
    )

    user = db.relationship("User", back_populates="roles")

    def is_expired(self, now=None):
        if self.expires_at is None:
            return False
        now = now or _utcnow()
        expires_at = self.expires_at
        # SQLite drops tzinfo on round-trip
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= now

    def to_dict(self):
        return {
            "uid": self.uid,
            "role": self.role,
            "assigned_by": self.assigned_by,
            "assigned_at": _iso(self.assigned_at),
            "expires_at": _iso(self.expires_at),
            "is_active": self.is_active,
        }


# ═══════════════════════════════════════════════════════════════
# 3. PERMISSION DEFINITIONS
# ═══════════════════════════════════════════════════════════════
class PermissionDefinition(db.Model):
    __tablename__ = "permission_definitions"

    id = db.Column(db.String(100), primary_key=True, comment="e.g. project:package:write")
    name = db.Column(db.String(150), nullable=False, default="")
    description = db.Column(db.Text, nullable=True, default="")
    category = db.Column(db.String(50), nullable=False, default="", index=True)
    type = db.Column(db.String(20), nullable=False, default="feature", comment="feature | navigation | system")
    roles = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_permission(self):
        from siteworks.services.permission_registry import Permission

        return Permission.from_dict({
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "type": self.type,
            "roles": list(self.roles or []),
        })

    def to_dict(self):
        d = self.to_permission().to_dict()
        d["updated_at"] = _iso(self.updated_at)
        return d

    def __repr__(self):
        return f"<PermissionDefinition {self.id}>"
