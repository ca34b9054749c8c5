from sqlalchemy import false
from saasly.extensions import db


class StripeSubscription(db.Model):
    __tablename__ = "stripe_subscriptions"

    stripe_id = db.Column(db.String(255), primary_key=True)
    organization_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    purchased_by_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    created = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    cancel_at_period_end = db.Column(db.Boolean, nullable=False, default=False, server_default=false())
    status = db.Column(db.String(32), nullable=False, index=True)

    organization = db.relationship("Organization", back_populates="stripe_subscriptions")
    purchased_by = db.relationship("User")
    items = db.relationship(
        "StripeSubscriptionItem",
        back_populates="subscription",
        cascade="all, delete-orphan",
        order_by="StripeSubscriptionItem.current_period_start",
    )
    schedules = db.relationship(
        "StripeSubscriptionSchedule",
        back_populates="subscription",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<StripeSubscription stripe_id={self.stripe_id!r} organization_id={self.organization_id} status={self.status!r}>"


class StripeSubscriptionItem(db.Model):
    __tablename__ = "stripe_subscription_items"

    stripe_id = db.Column(db.String(255), primary_key=True)
    stripe_subscription_id = db.Column(
        db.String(255),
        db.ForeignKey("stripe_subscriptions.stripe_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    price_id = db.Column(
        db.String(255),
        db.ForeignKey("stripe_prices.stripe_id"),
        nullable=False,
        index=True,
    )
    current_period_start = db.Column(db.DateTime(timezone=True), nullable=False)
    current_period_end = db.Column(db.DateTime(timezone=True), nullable=False)

    subscription = db.relationship("StripeSubscription", back_populates="items")
    price = db.relationship("StripePrice")
