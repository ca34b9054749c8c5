from sqlalchemy import func
from saasly.extensions import db


class Organization(db.Model):
    __tablename__ = "organizations"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), nullable=False, unique=True, index=True)

    billing_email = db.Column(db.String(255), nullable=False, server_default="")
    stripe_customer_id = db.Column(db.String(255), nullable=True, unique=True)
    trial_end = db.Column(db.DateTime(timezone=True), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    memberships = db.relationship(
        "OrganizationMembership",
        back_populates="organization",
        cascade="all, delete-orphan",
    )
    stripe_subscriptions = db.relationship(
        "StripeSubscription",
        back_populates="organization",
        order_by="StripeSubscription.created.desc()",
    )

    def __repr__(self) -> str:
        return f"<Organization id={self.id} slug={self.slug!r}>"
