"""
Reference data and a first admin account.

    python -m app.seed --company "Acme Oil" --email admin@example.com --password admin123

``seed_reference_data`` is idempotent and is also used by the test suite.
"""
import argparse
import logging

from sqlalchemy.orm import Session

from app.core.logging import configure_logging
from app.core.security import hash_password
from app.db.init_db import init_db
from app.db.session import SessionLocal
from app.models.alarm import AlarmStatus, AlarmType
from app.models.company import Company
from app.models.device import DeviceDataMapping, DeviceType
from app.models.hierarchy import HierarchyLevel
from app.models.user import User
from app.models.widget import Dashboard, WidgetType

logger = logging.getLogger(__name__)

HIERARCHY_LEVELS = [
    ("Region", 1, "globe"),
    ("Area", 2, "map"),
    ("Field", 3, "layers"),
    ("Well", 4, "droplet"),
]

ALARM_STATUSES = [
    ("Active", "Alarm condition is present"),
    ("Acknowledged", "Operator has seen the alarm"),
    ("Resolved", "Alarm condition has cleared"),
    ("Unacked", "Alarm cleared before it was acknowledged"),
]

ALARM_TYPES = [
    ("High Pressure", "Critical"),
    ("Low Pressure", "Major"),
    ("High Temperature", "Critical"),
    ("Low Temperature", "Minor"),
    ("High GVF", "Major"),
    ("High WLR", "Major"),
    ("Low Oil Flow", "Major"),
    ("No Flow", "Critical"),
    ("Communication Loss", "Critical"),
    ("Sensor Fault", "Major"),
    ("Calibration Due", "Warning"),
    ("Battery Low", "Minor"),
    ("Power Failure", "Critical"),
    ("Data Quality", "Warning"),
    ("Maintenance Required", "Warning"),
]

DEVICE_TYPES = [
    ("MPFM", "mpfm.svg"),
    ("Pressure Sensor", "pressure.svg"),
    ("Temperature Sensor", "temperature.svg"),
    ("Flow Meter", "flow.svg"),
]

# (name, tag, unit, expression)
MPFM_MAPPINGS = [
    ("Gas Flow Rate", "GFR", "m3/d", None),
    ("Gas Oil Ratio", "GOR", "m3/m3", None),
    ("Gas Volume Fraction", "GVF", "%", "GFR / (GFR + OFR + WFR) * 100"),
    ("Oil Flow Rate", "OFR", "m3/d", None),
    ("Water Flow Rate", "WFR", "m3/d", None),
    ("Water Liquid Ratio", "WLR", "%", "WFR / (WFR + OFR) * 100"),
    ("Pressure", "PressureAvg", "bar", None),
    ("Temperature", "TemperatureAvg", "C", None),
]

WIDGET_TYPES = [
    ("kpi", "MetricsCard", {"showTrend": True}),
    ("line_chart", "CustomLineChart", {"timeRange": "24h"}),
    ("donut_chart", "GVFWLRChart", {}),
    ("map", "ProductionMap", {"zoom": 6}),
]

DEFAULT_GRID = {"cols": 12, "rowHeight": 80, "margin": [16, 16]}


def _get_or_create(db: Session, model, defaults=None, **lookup):
    obj = db.query(model).filter_by(**lookup).first()
    if obj is None:
        obj = model(**lookup, **(defaults or {}))
        db.add(obj)
        db.flush()
    return obj


def seed_reference_data(db: Session) -> None:
    for name, order, icon in HIERARCHY_LEVELS:
        _get_or_create(db, HierarchyLevel, {"name": name, "icon": icon}, level_order=order)

    for name, description in ALARM_STATUSES:
        _get_or_create(db, AlarmStatus, {"description": description}, name=name)

    for name, severity in ALARM_TYPES:
        _get_or_create(db, AlarmType, {"severity": severity}, name=name)

    types = {}
    for type_name, logo in DEVICE_TYPES:
        types[type_name] = _get_or_create(db, DeviceType, {"logo": logo}, type_name=type_name)

    mpfm = types["MPFM"]
    for ui_order, (name, tag, unit, expression) in enumerate(MPFM_MAPPINGS, start=1):
        _get_or_create(
            db,
            DeviceDataMapping,
            {"variable_name": name, "unit": unit, "expression": expression, "ui_order": ui_order},
            device_type_id=mpfm.id,
            variable_tag=tag,
        )

    for name, component, config in WIDGET_TYPES:
        _get_or_create(db, WidgetType, {"component_name": component, "default_config": config}, name=name)

    db.commit()
    logger.info("Reference data seeded")


def create_company_with_admin(db: Session, company_name: str, email: str, password: str) -> User:
    company = _get_or_create(db, Company, name=company_name)
    _get_or_create(
        db,
        Dashboard,
        {"name": f"{company_name} Dashboard", "is_active": True, "grid_config": DEFAULT_GRID},
        company_id=company.id,
    )

    db.query(User).filter(User.email == email).delete()
    admin = User(
        company_id=company.id,
        name="Administrator",
        email=email,
        password_hash=hash_password(password),
        role="admin",
        is_active=True,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    return admin


def main():
    parser = argparse.ArgumentParser(description="Seed reference data and an admin user")
    parser.add_argument("--company", default="Demo Company")
    parser.add_argument("--email", default="admin@example.com")
    parser.add_argument("--password", default="admin123")
    args = parser.parse_args()

    configure_logging()
    init_db()
    db = SessionLocal()
    try:
        seed_reference_data(db)
        admin = create_company_with_admin(db, args.company, args.email, args.password)
        logger.info("Admin user ready: %s (company %s)", admin.email, admin.company_id)
    finally:
        db.close()


if __name__ == "__main__":
    main()
