import json
from datetime import timedelta

import click
from flask import current_app
from flask.cli import with_appcontext
from saasly.extensions import db
from saasly.models import (
    Organization,
    OrganizationMembership,
    User,
    ROLE_OWNER,
    ROLE_ADMIN,
    ROLE_MEMBER,
)
from saasly.services import billing as billing_service
from saasly.services import stripe_catalog
from saasly.services.billing_page import get_billing_page_data
from saasly.utils.helpers import slugify, utc_now


def _get_or_create_user(email: str, password: str | None) -> User:
    user = db.session.query(User).filter_by(email=email).one_or_none()
    if user:
        return user
    if not password:
        raise click.ClickException(f"User {email} does not exist; pass --password to create it")
    user = User(email=email)
    user.set_password(password)
    db.session.add(user)
    db.session.flush()
    return user


def _require_org(slug: str) -> Organization:
    org = db.session.query(Organization).filter_by(slug=slug).one_or_none()
    if not org:
        raise click.ClickException(f"Organization {slug!r} not found")
    return org


@click.group()
def bootstrap():
    """Bootstrap helpers."""


@bootstrap.command("owner")
@click.option("--org-name", required=True)
@click.option("--slug", default=None, help="Defaults to a slug of --org-name")
@click.option("--email", required=True)
@click.option("--password", required=True)
@with_appcontext
def bootstrap_owner(org_name, slug, email, password):
    slug = slug or slugify(org_name)
    if db.session.query(Organization).filter_by(slug=slug).count():
        raise click.ClickException("Organization slug already taken")
    if db.session.query(User).filter_by(email=email).count():
        raise click.ClickException("User already exists")

    trial_days = current_app.config.get("TRIAL_PERIOD_DAYS", 14)
    org = Organization(
        name=org_name,
        slug=slug,
        billing_email=email,
        trial_end=utc_now() + timedelta(days=trial_days),
    )
    db.session.add(org)
    user = _get_or_create_user(email, password)
    db.session.flush()

    db.session.add(OrganizationMembership(organization_id=org.id, user_id=user.id, role=ROLE_OWNER))
    db.session.commit()

    click.echo(f"Bootstrap complete: organization={org.slug} owner_user_id={user.id} email={email}")


@click.group()
def members():
    """Organization membership ops."""


@members.command("add")
@click.option("--slug", required=True)
@click.option("--email", required=True)
@click.option("--password", default=None, help="Only needed when the user is new")
@click.option("--role", type=click.Choice([ROLE_MEMBER, ROLE_ADMIN, ROLE_OWNER]), default=ROLE_MEMBER)
@with_appcontext
def members_add(slug, email, password, role):
    org = _require_org(slug)
    user = _get_or_create_user(email, password)
    if db.session.query(OrganizationMembership).filter_by(organization_id=org.id, user_id=user.id).count():
        raise click.ClickException("Already a member")
    db.session.add(OrganizationMembership(organization_id=org.id, user_id=user.id, role=role))
    db.session.commit()
    click.echo(f"Added {email} to {slug} as {role}")


@members.command("promote")
@click.option("--slug", required=True)
@click.option("--email", required=True)
@click.option("--role", type=click.Choice([ROLE_ADMIN, ROLE_OWNER]), required=True)
@with_appcontext
def members_promote(slug, email, role):
    org = _require_org(slug)
    user = db.session.query(User).filter_by(email=email).one_or_none()
    if not user:
        raise click.ClickException("User not found")
    m = db.session.query(OrganizationMembership).filter_by(organization_id=org.id, user_id=user.id).one_or_none()
    if not m:
        raise click.ClickException("Membership not found")
    m.role = role
    db.session.commit()
    click.echo(f"Promoted {email} in {slug} to {role}")


@members.command("demote")
@click.option("--slug", required=True)
@click.option("--email", required=True)
@with_appcontext
def members_demote(slug, email):
    org = _require_org(slug)
    user = db.session.query(User).filter_by(email=email).one_or_none()
    if not user:
        raise click.ClickException("User not found")

    m = db.session.query(OrganizationMembership).filter_by(organization_id=org.id, user_id=user.id).one_or_none()
    if not m:
        raise click.ClickException("Membership not found")

    # Safety rail: cannot demote last owner
    owners = db.session.query(OrganizationMembership).filter_by(organization_id=org.id, role=ROLE_OWNER).count()
    if m.role == ROLE_OWNER and owners <= 1:
        raise click.ClickException("Refused: cannot demote the last owner of this organization")

    m.role = ROLE_MEMBER
    db.session.commit()
    click.echo(f"Demoted {email} in {slug} to member")


@click.group()
def billing():
    """Billing ops."""


@billing.command("show")
@click.argument("slug")
@with_appcontext
def billing_show(slug):
    data = get_billing_page_data(db.session, slug)
    if data is None:
        raise click.ClickException(f"Organization {slug!r} not found")
    click.echo(json.dumps(data.to_dict(), indent=2))


@billing.command("sync-catalog")
@with_appcontext
def billing_sync_catalog():
    """Mirror active Stripe prices (and their products) into the local catalog."""
    count = 0
    for price in billing_service.list_active_prices():
        stripe_catalog.upsert_price_from_stripe(db.session, price)
        count += 1
    db.session.commit()
    click.echo(f"Synced {count} prices")


def register_cli(app):
    app.cli.add_command(bootstrap)
    app.cli.add_command(members)
    app.cli.add_command(billing)
