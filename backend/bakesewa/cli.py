# Overview: Flask CLI command groups for bootstrap, inspection and periodic checks.

# backend/bakesewa/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create tables (if missing) and seed the default units. Idempotent.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data, audit log included).
#
# Units:
# - python -m flask units seed
#   Insert any missing default units (kg, g, lbs, L, ml, cups, tbsp, tsp, pcs, pkt, box, bag).
# - python -m flask units list [--type weight]
#   List active units with their base unit and factor.
#
# Inventory:
# - python -m flask inventory low-stock
#   List items at or below their minimum level.
#
# Products:
# - python -m flask products recost [--product-id 3]
#   Refresh the cached cost/margin of one or all products.
#
# Audit (schedule these; nothing runs in the background):
# - python -m flask audit compliance [--json]
#   Print the audit compliance report. Exit code 1 when not compliant.
# - python -m flask audit security-scan
#   Run the security detectors once and print new alerts and the risk score.

import json

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .quantities import decimal_str


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create missing tables and seed default units."""
    from .services.unit_service import seed_default_units

    click.echo("START Initializing BakeSewa backend...")
    db.create_all()
    created = seed_default_units()
    click.echo(f"PASS Units seeded: {created} new")
    click.echo("DONE Initialization complete.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the append-only audit log!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()
    current_app.extensions["unit_catalog"].invalidate()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('units')
def units_group():
    """Unit catalog commands."""


@units_group.command('seed')
@with_appcontext
def seed_units_cli():
    from .services.unit_service import seed_default_units

    created = seed_default_units()
    click.echo(f"PASS Created {created} unit(s)")


@units_group.command('list')
@click.option('--type', 'measurement_type', default=None, help='weight, volume, count, length, temperature')
@with_appcontext
def list_units_cli(measurement_type):
    from .services.unit_service import get_unit_catalog

    units = get_unit_catalog().get_units()
    if measurement_type:
        units = [u for u in units if u.measurement_type == measurement_type]
    if not units:
        click.echo("No units found. Run 'python -m flask units seed'.")
        return
    for u in units:
        base = f"{decimal_str(u.conversion_factor)} {u.base_unit_name}" if u.base_unit_name else "no base unit"
        click.echo(f"{u.id:>4}  {u.abbreviation:<6} {u.name:<14} {u.measurement_type:<8} {base}")


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('low-stock')
@with_appcontext
def low_stock_cli():
    from .services.inventory_service import list_low_stock_items

    items = list_low_stock_items()
    if not items:
        click.echo("PASS No items below minimum level.")
        return
    for item in items:
        click.echo(
            f"WARN  {item.id:>4}  {item.name:<30} stock={decimal_str(item.current_stock)} "
            f"min={decimal_str(item.min_level)}"
        )


@click.group('products')
def products_group():
    """Product cost commands."""


@products_group.command('recost')
@click.option('--product-id', type=int, default=None, help='Refresh a single product')
@with_appcontext
def recost_cli(product_id):
    """Refresh cached product cost and margin from current inventory costs."""
    from .services import product_cost_service

    if product_id is not None:
        breakdown = product_cost_service.update_product_cost(product_id)
        click.echo(f"PASS Product {product_id} cost: {decimal_str(breakdown.total_cost)}")
        if breakdown.has_conversion_failures:
            click.echo("WARN  Some ingredients could not be converted; see logs.")
        return

    count = product_cost_service.recalculate_all_products()
    click.echo(f"PASS Refreshed {count} product(s)")


@click.group('audit')
def audit_group():
    """Audit compliance and security commands."""


@audit_group.command('compliance')
@click.option('--json', 'as_json', is_flag=True, help='Print the report as JSON')
@with_appcontext
def compliance_cli(as_json):
    from .services.audit_service import compute_compliance_report

    report = compute_compliance_report()
    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        click.echo(f"Total audit logs:      {report.total_logs}")
        click.echo(f"Last 24h:              {report.recent_activity_count}")
        click.echo(f"Critical events:       {report.critical_event_count}")
        click.echo(f"Data integrity:        {'PASS' if report.data_integrity_ok else 'FAIL'}")
        click.echo(f"Retention:             {'PASS' if report.retention_ok else 'FAIL'}")
        click.echo(f"Gap heuristic:         {'PASS' if report.gap_heuristic_ok else 'WARN'}")
        for gap in report.suspicious_gaps:
            click.echo(f"  gap {gap['hours']}h between {gap['from']} and {gap['to']}")
        for action, count in sorted(report.counts_by_action.items()):
            click.echo(f"  {action:<8} {count}")

    if not report.overall_compliant:
        raise SystemExit(1)


@audit_group.command('security-scan')
@with_appcontext
def security_scan_cli():
    from .services.security_monitor import get_security_monitor

    monitor = get_security_monitor()
    raised = monitor.run_checks()
    for alert in raised:
        click.echo(f"ALERT [{alert.severity}] {alert.title}: {alert.description}")
    metrics = monitor.get_security_metrics()
    click.echo(f"Failed logins (24h):   {metrics['failed_logins_24h']}")
    click.echo(f"Failed actions (24h):  {metrics['suspicious_activities_24h']}")
    click.echo(f"Risk score:            {metrics['risk_score']}/100")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(units_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(products_group)
    app.cli.add_command(audit_group)
