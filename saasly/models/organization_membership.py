from sqlalchemy import func, CheckConstraint, UniqueConstraint
from saasly.extensions import db

# Keep simple text+CHECK for evolvable roles (no DB enum migration pain)
ROLE_MEMBER = "member"
ROLE_ADMIN = "admin"
ROLE_OWNER = "owner"
ROLE_CHOICES = (ROLE_OWNER, ROLE_ADMIN, ROLE_MEMBER)


class OrganizationMembership(db.Model):
    __tablename__ = "organization_memberships"

    id = db.Column(db.Integer, primary_key=True)

    organization_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # default is member; owner/admin must be explicit
    role = db.Column(db.String(20), nullable=False, default=ROLE_MEMBER, server_default=ROLE_MEMBER)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())

    organization = db.relationship("Organization", back_populates="memberships")
    user = db.relationship("User", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_organization_memberships_org_user"),
        CheckConstraint(
            "role IN ('owner','admin','member')",
            name="ck_organization_memberships_role_valid",
        ),
    )
