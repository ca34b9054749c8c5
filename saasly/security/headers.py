from flask_talisman import Talisman


def init_security(app):
    """
    Production/staging security headers with a conservative CSP.
    Stripe.js and the hosted checkout/portal frames are the only third parties.
    """
    csp = {
        "default-src": ["'self'"],
        "script-src":  ["'self'", "https://js.stripe.com"],
        "style-src":   ["'self'"],
        "img-src":     ["'self'", "data:"],
        "connect-src": ["'self'", "https://api.stripe.com"],
        "frame-src":   ["'self'", "https://js.stripe.com", "https://hooks.stripe.com"],
        "frame-ancestors": ["'none'"],
        "base-uri":    ["'self'"],
        "form-action": ["'self'", "https://checkout.stripe.com", "https://billing.stripe.com"],
    }

    Talisman(
        app,
        content_security_policy=csp,
        force_https=True,
        strict_transport_security=True,
        session_cookie_secure=True,
        frame_options="DENY",
        referrer_policy="strict-origin-when-cross-origin",
    )
