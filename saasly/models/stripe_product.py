from sqlalchemy import func, true
from saasly.extensions import db


class StripeProduct(db.Model):
    __tablename__ = "stripe_products"

    stripe_id = db.Column(db.String(255), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=True, server_default=true())
    max_seats = db.Column(db.Integer, nullable=False, default=1, server_default="1")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    prices = db.relationship("StripePrice", back_populates="product")

    def __repr__(self) -> str:
        return f"<StripeProduct stripe_id={self.stripe_id!r} name={self.name!r}>"
