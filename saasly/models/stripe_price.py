from sqlalchemy import func, true
from sqlalchemy.dialects.postgresql import JSONB
from saasly.extensions import db


class StripePrice(db.Model):
    __tablename__ = "stripe_prices"

    stripe_id = db.Column(db.String(255), primary_key=True)
    lookup_key = db.Column(db.String(255), nullable=True, unique=True, index=True)
    currency = db.Column(db.String(3), nullable=False)
    # minor currency units (cents)
    unit_amount = db.Column(db.Integer, nullable=False)
    metadata_json = db.Column("metadata", db.JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict)
    active = db.Column(db.Boolean, nullable=False, default=True, server_default=true())

    product_id = db.Column(
        db.String(255),
        db.ForeignKey("stripe_products.stripe_id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    product = db.relationship("StripeProduct", back_populates="prices")

    def __repr__(self) -> str:
        return f"<StripePrice stripe_id={self.stripe_id!r} lookup_key={self.lookup_key!r} unit_amount={self.unit_amount}>"
