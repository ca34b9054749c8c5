from saasly.extensions import db


class StripeSubscriptionSchedule(db.Model):
    __tablename__ = "stripe_subscription_schedules"

    stripe_id = db.Column(db.String(255), primary_key=True)
    subscription_id = db.Column(
        db.String(255),
        db.ForeignKey("stripe_subscriptions.stripe_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created = db.Column(db.DateTime(timezone=True), nullable=False)
    current_phase_start = db.Column(db.DateTime(timezone=True), nullable=False)
    current_phase_end = db.Column(db.DateTime(timezone=True), nullable=False)

    subscription = db.relationship("StripeSubscription", back_populates="schedules")
    # Stripe assigns no ids to phases; they are always replaced as a whole.
    phases = db.relationship(
        "StripeSubscriptionSchedulePhase",
        back_populates="schedule",
        cascade="all, delete-orphan",
        order_by="StripeSubscriptionSchedulePhase.start_date",
    )


class StripeSubscriptionSchedulePhase(db.Model):
    __tablename__ = "stripe_subscription_schedule_phases"

    id = db.Column(db.Integer, primary_key=True)
    schedule_id = db.Column(
        db.String(255),
        db.ForeignKey("stripe_subscription_schedules.stripe_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_date = db.Column(db.DateTime(timezone=True), nullable=False)
    end_date = db.Column(db.DateTime(timezone=True), nullable=False)
    price_id = db.Column(
        db.String(255),
        db.ForeignKey("stripe_prices.stripe_id"),
        nullable=False,
    )
    quantity = db.Column(db.Integer, nullable=False, default=1)

    schedule = db.relationship("StripeSubscriptionSchedule", back_populates="phases")
    price = db.relationship("StripePrice")
