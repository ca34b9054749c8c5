import json

from saasly.extensions import db
from saasly.models import Organization, OrganizationMembership, StripePrice, StripeProduct, User, ROLE_OWNER
from saasly.services import billing as billing_service
from saasly.utils.helpers import ensure_utc, utc_now

from factories import stripe_price, stripe_product


def _bootstrap(runner, slug="volt-co", email="owner@volt.test"):
    return runner.invoke(args=[
        "bootstrap", "owner",
        "--org-name", "Volt Co",
        "--slug", slug,
        "--email", email,
        "--password", "s3cret",
    ])


def test_bootstrap_owner_creates_trial_organization(app):
    runner = app.test_cli_runner()
    result = _bootstrap(runner)
    assert result.exit_code == 0, result.output
    assert "organization=volt-co" in result.output

    with app.app_context():
        org = Organization.query.filter_by(slug="volt-co").one()
        assert ensure_utc(org.trial_end) > utc_now()
        assert org.billing_email == "owner@volt.test"
        user = User.query.filter_by(email="owner@volt.test").one()
        assert user.check_password("s3cret")
        m = OrganizationMembership.query.filter_by(organization_id=org.id, user_id=user.id).one()
        assert m.role == ROLE_OWNER


def test_bootstrap_refuses_taken_slug(app):
    runner = app.test_cli_runner()
    _bootstrap(runner)
    result = _bootstrap(runner, email="someone@else.test")
    assert result.exit_code != 0
    assert "slug already taken" in result.output


def test_billing_show_prints_trial_defaults(app):
    runner = app.test_cli_runner()
    _bootstrap(runner)

    result = runner.invoke(args=["billing", "show", "volt-co"])

    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["current_tier_name"] == "Business (Trial)"
    assert data["current_seats"] == 1
    assert data["projected_total"] == 85


def test_billing_show_unknown_slug(app):
    result = app.test_cli_runner().invoke(args=["billing", "show", "nope"])
    assert result.exit_code != 0
    assert "not found" in result.output


def test_demote_last_owner_is_refused(app):
    runner = app.test_cli_runner()
    _bootstrap(runner)

    result = runner.invoke(args=["members", "demote", "--slug", "volt-co", "--email", "owner@volt.test"])

    assert result.exit_code != 0
    assert "last owner" in result.output


def test_members_add_and_promote(app):
    runner = app.test_cli_runner()
    _bootstrap(runner)

    added = runner.invoke(args=[
        "members", "add", "--slug", "volt-co", "--email", "crew@volt.test", "--password", "pw",
    ])
    promoted = runner.invoke(args=[
        "members", "promote", "--slug", "volt-co", "--email", "crew@volt.test", "--role", "admin",
    ])

    assert added.exit_code == 0, added.output
    assert promoted.exit_code == 0, promoted.output
    with app.app_context():
        user = User.query.filter_by(email="crew@volt.test").one()
        assert OrganizationMembership.query.filter_by(user_id=user.id).one().role == "admin"


def test_sync_catalog_mirrors_prices_and_products(app, monkeypatch):
    prices = [
        stripe_price(product=stripe_product()),
        stripe_price(id="price_startup_annual", lookup_key="startup_annual", unit_amount=19990, product=stripe_product()),
    ]
    monkeypatch.setattr(billing_service, "list_active_prices", lambda: iter(prices))

    result = app.test_cli_runner().invoke(args=["billing", "sync-catalog"])

    assert result.exit_code == 0, result.output
    assert "Synced 2 prices" in result.output
    with app.app_context():
        assert db.session.get(StripeProduct, "prod_startup").name == "Startup"
        assert db.session.get(StripePrice, "price_startup_annual").product_id == "prod_startup"
