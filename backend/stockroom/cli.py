# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/stockroom/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Store directory:
# - python -m flask stores seed [--create-tables]
#   Idempotent demo bootstrap: stores, users per role, articles and assignments.
# - python -m flask stores list [--all]
#   List stores (use --all to include inactive).
#
# Inventory:
# - python -m flask inventory rebuild [--store-id 1] [--article-id 2]
#   Re-fold the stock ledger and repair drifted projection rows.
# - python -m flask inventory summary [--store-id 1]
#   Print headline stock figures.
#
# Store access:
# - python -m flask access grant manager 2 --perm can_manage_stock --primary
#   Assign a user to a store (role defaults plus the given bits).
# - python -m flask access revoke manager 2
#   Remove a user's assignment to a store.
# - python -m flask access global manager --on
#   Turn global access on (--off to revoke; assignments are kept).
# - python -m flask access show manager
#   Print the resolved access profile.
#
# Catalog sync:
# - python -m flask sync flush [--limit 100]
#   Push outstanding outbox entries to CATALOG_SYNC_URL.
# - python -m flask sync status
#   Outbox entry counts per status.

import click
from flask.cli import with_appcontext

from .errors import InventoryError
from .extensions import db
from .models import Article, Store, User
from .permissions import Role, StorePermissions
from .services import access_service, inventory_service, sync_service


def _user_by_username(username: str) -> User:
    user = db.session.query(User).filter_by(username=username).first()
    if user is None:
        raise click.ClickException(f"User '{username}' not found")
    return user


# =============================================================================
# stores
# =============================================================================

@click.group('stores')
def stores_group():
    """Store directory commands."""


@stores_group.command('seed')
@click.option('--create-tables', is_flag=True, help='Create missing tables first (dev only).')
@with_appcontext
def seed_stores(create_tables):
    """
    Seed a demo directory.

    Creates:
    - Stores: HQ (headquarters), Downtown, Airport
    - Users: superadmin, admin, manager, sales, accountant
    - Articles with suppliers and thresholds
    - Assignments: manager -> Downtown (primary) + Airport, sales -> Downtown
    """
    if create_tables:
        db.create_all()

    click.echo("START Seeding stores...")
    stores = {}
    for code, name, city, is_hq in (
        ("HQ", "Headquarters", "Paris", True),
        ("DT", "Downtown", "Paris", False),
        ("AP", "Airport", "Roissy", False),
    ):
        store = db.session.query(Store).filter_by(code=code).first()
        if store is None:
            store = Store(code=code, name=name, city=city, is_headquarters=is_hq, is_active=True)
            db.session.add(store)
            click.echo(f"PASS Created store: {name} ({code})")
        else:
            click.echo(f"WARN  Store '{code}' already exists, skipping...")
        stores[code] = store
    db.session.commit()

    click.echo("\nUSERS Creating users...")
    users = {}
    for username, full_name, role in (
        ("superadmin", "Super Admin", Role.SUPERADMIN),
        ("admin", "Admin", Role.ADMIN),
        ("manager", "Store Manager", Role.MANAGER),
        ("sales", "Sales Clerk", Role.SALES),
        ("accountant", "Accountant", Role.ACCOUNTANT),
    ):
        user = db.session.query(User).filter_by(username=username).first()
        if user is None:
            user = User(username=username, full_name=full_name, role=role.value, is_active=True)
            db.session.add(user)
            click.echo(f"PASS Created user: {username} with role '{role.value}'")
        else:
            click.echo(f"WARN  User '{username}' already exists, skipping...")
        users[username] = user
    db.session.commit()

    click.echo("\nARTICLES Creating articles...")
    for name, unit, price, cost, min_stock, supplier in (
        ("Espresso beans 1kg", "bag", 1890, 1100, 10, "Roastery Co"),
        ("Oat milk 1L", "bottle", 290, 150, 24, "Dairy Alt"),
        ("Paper cups (50)", "pack", 450, 200, 15, None),
    ):
        if db.session.query(Article).filter_by(name=name).first() is None:
            db.session.add(Article(
                name=name,
                unit=unit,
                price_cents=price,
                purchase_price_cents=cost,
                min_stock=min_stock,
                supplier_name=supplier,
            ))
            click.echo(f"PASS Created article: {name}")
    db.session.commit()

    click.echo("\nACCESS Assigning stores...")
    access_service.assign_user_to_store(user_id=users["manager"].id, store_id=stores["DT"].id, is_primary=True)
    access_service.assign_user_to_store(user_id=users["manager"].id, store_id=stores["AP"].id)
    access_service.assign_user_to_store(user_id=users["sales"].id, store_id=stores["DT"].id, is_primary=True)
    access_service.assign_user_to_store(user_id=users["accountant"].id, store_id=stores["HQ"].id, is_primary=True)

    click.echo("\n" + "=" * 60)
    click.echo("DONE Seed complete")
    click.echo("=" * 60)
    for user in users.values():
        click.echo(f"   {user.username:<11} -> X-User-Id: {user.id}")


@stores_group.command('list')
@click.option('--all', 'show_all', is_flag=True, help='Include inactive stores.')
@with_appcontext
def list_stores(show_all):
    """List stores."""
    stores = access_service.list_stores(active_only=not show_all)
    if not stores:
        click.echo("No stores found.")
        return
    for store in stores:
        flags = []
        if store.is_headquarters:
            flags.append("HQ")
        if not store.is_active:
            flags.append("inactive")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        click.echo(f"{store.id:>4}  {store.code or '-':<6} {store.name}{suffix}")


# =============================================================================
# inventory
# =============================================================================

@click.group('inventory')
def inventory_group():
    """Stock ledger and projection commands."""


@inventory_group.command('rebuild')
@click.option('--store-id', type=int, default=None)
@click.option('--article-id', type=int, default=None)
@with_appcontext
def rebuild(store_id, article_id):
    """Re-fold the ledger and repair drifted projection rows."""
    corrected = inventory_service.rebuild_projection(store_id=store_id, article_id=article_id)
    if not corrected:
        click.echo("PASS Projection matches the ledger.")
        return
    for row in corrected:
        click.echo(
            f"FIXED store={row['store_id']} article={row['article_id']}: "
            f"{row['previous_stock']} -> {row['stock']}"
        )
    click.echo(f"DONE {len(corrected)} row(s) repaired")


@inventory_group.command('summary')
@click.option('--store-id', type=int, default=None)
@with_appcontext
def summary(store_id):
    """Print headline stock figures."""
    data = inventory_service.get_stock_summary(store_id)
    click.echo(f"Store:          {store_id if store_id is not None else 'all'}")
    click.echo(f"Articles:       {data['total_articles']}")
    click.echo(f"Value:          {data['total_value_cents'] / 100:,.2f}")
    click.echo(f"Low stock:      {data['low_stock_count']}")
    click.echo(f"Out of stock:   {data['out_of_stock_count']}")
    click.echo(f"Recent moves:   {data['recent_movements']}")


# =============================================================================
# access
# =============================================================================

@click.group('access')
def access_group():
    """Store access administration."""


@access_group.command('grant')
@click.argument('username')
@click.argument('store_id', type=int)
@click.option('--perm', 'perms', multiple=True,
              type=click.Choice(sorted(StorePermissions().to_dict().keys())),
              help='Permission bit to set (repeatable); role defaults apply otherwise.')
@click.option('--primary', is_flag=True, help='Make this the primary store.')
@with_appcontext
def grant(username, store_id, perms, primary):
    """Assign USERNAME to STORE_ID."""
    user = _user_by_username(username)
    try:
        assignment = access_service.assign_user_to_store(
            user_id=user.id,
            store_id=store_id,
            permissions={p: True for p in perms},
            is_primary=True if primary else None,
        )
    except InventoryError as e:
        db.session.rollback()
        raise click.ClickException(str(e))
    bits = [k for k, v in assignment.to_dict().items() if k.startswith("can_") and v]
    click.echo(f"PASS {username} -> store {store_id}: {', '.join(bits) or 'no permissions'}")


@access_group.command('revoke')
@click.argument('username')
@click.argument('store_id', type=int)
@with_appcontext
def revoke(username, store_id):
    """Remove USERNAME from STORE_ID."""
    user = _user_by_username(username)
    if access_service.remove_user_from_store(user_id=user.id, store_id=store_id):
        click.echo(f"PASS Removed {username} from store {store_id}")
    else:
        click.echo(f"WARN  {username} was not assigned to store {store_id}")


@access_group.command('global')
@click.argument('username')
@click.option('--on/--off', 'enabled', required=True)
@with_appcontext
def set_global(username, enabled):
    """Turn global access on or off for USERNAME."""
    user = _user_by_username(username)
    profile = access_service.set_user_global_access(user_id=user.id, is_global=enabled)
    click.echo(f"PASS {username}: access_type={profile.access_type}")


@access_group.command('show')
@click.argument('username')
@with_appcontext
def show(username):
    """Print the resolved access profile of USERNAME."""
    user = _user_by_username(username)
    profile = access_service.resolve(user.id)
    if profile is None:
        raise click.ClickException(f"User '{username}' is inactive")
    click.echo(f"User:    {username} (role: {profile.role.value})")
    click.echo(f"Access:  {profile.access_type}{' (global)' if profile.is_global_access else ''}")
    click.echo(f"Primary: {profile.primary_store_id}")
    for store_id in sorted(profile.assigned_store_ids):
        bits = [k for k, v in profile.permissions_for(store_id).to_dict().items() if v]
        click.echo(f"  store {store_id}: {', '.join(bits) or '-'}")


# =============================================================================
# sync
# =============================================================================

@click.group('sync')
def sync_group():
    """Catalog sync (outbox) commands."""


@sync_group.command('flush')
@click.option('--limit', type=int, default=100, show_default=True)
@with_appcontext
def flush(limit):
    """Push outstanding outbox entries to the catalog service."""
    result = sync_service.flush_outbox(limit=limit)
    if result["gateway"] is None:
        click.echo("WARN  CATALOG_SYNC_URL is not set; nothing sent")
    click.echo(f"Sent: {result['sent']}  Failed: {result['failed']}  Outstanding: {result['outstanding']}")
    if result["failed"]:
        raise click.ClickException("Catalog sync degraded")


@sync_group.command('status')
@with_appcontext
def status():
    """Outbox entry counts per status."""
    for state, count in sync_service.outbox_status().items():
        click.echo(f"{state:<8} {count}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(stores_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(access_group)
    app.cli.add_command(sync_group)
