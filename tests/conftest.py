"""
Shared pytest fixtures.

Provides:
    - engine: in-memory SQLite shared by every connection (StaticPool)
    - db: per-test session on freshly created tables with reference data
    - client: FastAPI TestClient whose requests use ``db``
    - world: two companies with hierarchies, devices, users and dashboards
    - headers_for: builds an Authorization header for a user
"""
import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["MQTT_ENABLED"] = "false"

from dataclasses import dataclass  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.core.deps import TenantContext, get_db  # noqa: E402
from app.core.security import token_for_user  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.main import app  # noqa: E402
from app.models import (  # noqa: E402
    Company,
    Dashboard,
    Device,
    DeviceType,
    Hierarchy,
    HierarchyLevel,
    User,
)
from app.seed import DEFAULT_GRID, seed_reference_data  # noqa: E402


@pytest.fixture(scope="session")
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    """Per-test: create tables, seed lookups, drop everything afterwards."""
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    seed_reference_data(session)
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
    app.dependency_overrides.clear()


# ── domain fixtures ──────────────────────────────────────────────────────


@dataclass
class World:
    acme: Company
    globex: Company
    admin: User
    operator: User
    outsider: User
    region: Hierarchy
    area: Hierarchy
    field_north: Hierarchy
    field_south: Hierarchy
    well_north: Hierarchy
    well_south: Hierarchy
    globex_well: Hierarchy
    mpfm_north: Device
    mpfm_south: Device
    globex_device: Device
    acme_dashboard: Dashboard
    globex_dashboard: Dashboard


def _level(db, order: int) -> HierarchyLevel:
    return db.query(HierarchyLevel).filter_by(level_order=order).one()


def _node(db, company, name, order, parent=None, can_attach=False) -> Hierarchy:
    node = Hierarchy(
        company_id=company.id,
        name=name,
        level_id=_level(db, order).id,
        parent_id=parent.id if parent else None,
        can_attach_device=can_attach,
    )
    db.add(node)
    db.flush()
    return node


def _device(db, company, serial, type_name, node=None) -> Device:
    device_type = db.query(DeviceType).filter_by(type_name=type_name).one()
    device = Device(
        company_id=company.id,
        hierarchy_id=node.id if node else None,
        device_type_id=device_type.id,
        serial_number=serial,
        meta={"installed": "2024-06-01"},
    )
    db.add(device)
    db.flush()
    return device


def _user(db, company, email, role) -> User:
    user = User(company_id=company.id, name=email.split("@")[0], email=email, password_hash="x", role=role)
    db.add(user)
    db.flush()
    return user


@pytest.fixture
def world(db) -> World:
    """Acme: Region > Area > {Field North > Well North, Field South > Well South}.
    Globex: Region > Area > Field > Well, one device."""
    acme = Company(name="Acme Oil")
    globex = Company(name="Globex Energy")
    db.add_all([acme, globex])
    db.flush()

    region = _node(db, acme, "North Sea", 1)
    area = _node(db, acme, "Block 9", 2, region)
    field_north = _node(db, acme, "Field North", 3, area)
    field_south = _node(db, acme, "Field South", 3, area)
    well_north = _node(db, acme, "Well N-1", 4, field_north, can_attach=True)
    well_south = _node(db, acme, "Well S-1", 4, field_south, can_attach=True)

    g_region = _node(db, globex, "Gulf", 1)
    g_area = _node(db, globex, "Gulf Area", 2, g_region)
    g_field = _node(db, globex, "Gulf Field", 3, g_area)
    globex_well = _node(db, globex, "Gulf Well", 4, g_field, can_attach=True)

    acme_dashboard = Dashboard(company_id=acme.id, name="Acme Dashboard", is_active=True, grid_config=DEFAULT_GRID)
    globex_dashboard = Dashboard(company_id=globex.id, name="Globex Dashboard", is_active=True, grid_config=DEFAULT_GRID)
    db.add_all([acme_dashboard, globex_dashboard])

    w = World(
        acme=acme,
        globex=globex,
        admin=_user(db, acme, "admin@acme.example.com", "admin"),
        operator=_user(db, acme, "operator@acme.example.com", "user"),
        outsider=_user(db, globex, "operator@globex.example.com", "user"),
        region=region,
        area=area,
        field_north=field_north,
        field_south=field_south,
        well_north=well_north,
        well_south=well_south,
        globex_well=globex_well,
        mpfm_north=_device(db, acme, "MPFM-1", "MPFM", well_north),
        mpfm_south=_device(db, acme, "MPFM-2", "MPFM", well_south),
        globex_device=_device(db, globex, "MPFM-G1", "MPFM", globex_well),
        acme_dashboard=acme_dashboard,
        globex_dashboard=globex_dashboard,
    )
    db.commit()
    return w


@pytest.fixture
def headers_for():
    def _headers(user: User) -> dict:
        token = token_for_user(user)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def ctx_for():
    def _ctx(user: User) -> TenantContext:
        return TenantContext(tenant_id=user.company_id, role=user.role, user_id=user.id)
    return _ctx


@pytest.fixture
def make_device(db):
    def _make(company: Company, serial: str, type_name: str, node: Hierarchy = None) -> Device:
        device = _device(db, company, serial, type_name, node)
        db.commit()
        return device
    return _make
