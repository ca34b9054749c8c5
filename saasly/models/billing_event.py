from sqlalchemy import func, true
from sqlalchemy.dialects.postgresql import JSONB
from saasly.extensions import db


class BillingEventLog(db.Model):
    __tablename__ = "billing_event_logs"

    id = db.Column(db.Integer, primary_key=True)
    stripe_event_id = db.Column(db.String(255), nullable=False, unique=True, index=True)
    type = db.Column(db.String(80), nullable=False, index=True)
    signature_valid = db.Column(db.Boolean, nullable=False, default=True, server_default=true())
    payload = db.Column(db.JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict)
    notes = db.Column(db.String(255), nullable=True)

    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
