import hashlib
import json
from flask import request, jsonify, abort, current_app
from . import bp
from saasly.extensions import db, csrf, limiter
from saasly.models import BillingEventLog
from saasly.billing.webhook_handlers import HANDLED, IGNORED, SKIPPED, dispatch_stripe_event
from saasly.utils.helpers import utc_now
import stripe


# Outcomes that a redelivery of the same event would not change
SETTLED_OUTCOMES = frozenset({HANDLED, SKIPPED, IGNORED})


def _ok(**extra):
    return jsonify({"message": "OK", **extra}), 200


# ----- Stripe Webhook -----
@csrf.exempt
@limiter.exempt
@bp.post("/stripe")
def stripe_webhook():
    """
    Stripe → /webhooks/stripe
    Verifies the signature, records the delivery, then mirrors the event into
    our tables. Always 200 once the event is authentic. A delivery whose
    handler failed is recorded as such and runs again when Stripe redelivers
    the same event id.
    """
    # 1) Verify signature
    secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    if not secret:
        abort(500, description="Stripe webhook secret not configured")

    raw_bytes = request.get_data(cache=False, as_text=False)
    sig_header = request.headers.get("Stripe-Signature", "")

    try:
        stripe.Webhook.construct_event(
            payload=raw_bytes.decode("utf-8"),
            sig_header=sig_header,
            secret=secret,
        )
    except (ValueError, stripe.SignatureVerificationError):
        # Log invalid attempts with a deterministic synthetic id (no payload trust)
        digest = hashlib.sha256(raw_bytes).hexdigest()[:32]
        synthetic_id = f"invalid:{digest}"
        if not BillingEventLog.query.filter_by(stripe_event_id=synthetic_id).first():
            db.session.add(BillingEventLog(
                stripe_event_id=synthetic_id,
                type="signature_invalid",
                signature_valid=False,
                payload={},
            ))
            db.session.commit()
        current_app.logger.warning("stripe_webhook_invalid_signature")
        return jsonify({"error": "invalid_signature"}), 400

    # Handlers work on the plain payload, not on SDK objects
    event = json.loads(raw_bytes.decode("utf-8"))
    ev_id = event.get("id")
    ev_type = event.get("type")
    if not ev_id or not ev_type:
        return jsonify({"error": "malformed_event"}), 400

    # 2) Idempotency guard: only settled deliveries short-circuit. A delivery
    #    that failed or was interrupted runs again on Stripe's retry or a
    #    dashboard resend, reusing its ledger row.
    log = BillingEventLog.query.filter_by(stripe_event_id=ev_id).first()
    if log is not None and log.processed_at is not None and log.notes in SETTLED_OUTCOMES:
        return _ok(duplicate=True)

    # 3) Persist raw payload to log (for audit/forensics)
    if log is None:
        log = BillingEventLog(stripe_event_id=ev_id, type=ev_type)
        db.session.add(log)
    else:
        current_app.logger.info(
            "stripe_webhook_redelivery",
            extra={"stripe_event_id": ev_id, "previous_outcome": log.notes},
        )
    log.signature_valid = True
    log.payload = event
    log.notes = None
    log.processed_at = None
    db.session.commit()
    log_id = log.id

    # 4) Mirror into our tables (handlers commit or roll back on their own)
    outcome = dispatch_stripe_event(db.session, event)

    log = db.session.get(BillingEventLog, log_id)
    log.notes = outcome
    log.processed_at = utc_now()
    db.session.commit()

    current_app.logger.info("stripe_webhook_processed", extra={"stripe_event_id": ev_id, "stripe_event_type": ev_type, "outcome": outcome})
    return _ok()
