import pytest

from app.core.exceptions import ForbiddenError, InvalidInputError, NotFoundError
from app.models import AlarmStatus, AlarmType
from app.services import alarm_service
from app.services.alarm_service import AlarmFilters


def _type_id(db, name):
    return db.query(AlarmType).filter_by(name=name).one().id


def _status_id(db, name):
    return db.query(AlarmStatus).filter_by(name=name).one().id


@pytest.fixture
def alarms(db, world, ctx_for):
    """Two alarms on MPFM-1, one on MPFM-2, one on the Globex device."""
    admin = ctx_for(world.admin)
    return [
        alarm_service.create_alarm(db, admin, "MPFM-1", _type_id(db, "High Pressure"), "P > 300 bar"),
        alarm_service.create_alarm(db, admin, "MPFM-1", _type_id(db, "Calibration Due")),
        alarm_service.create_alarm(db, admin, "MPFM-2", _type_id(db, "Low Oil Flow")),
        alarm_service.create_alarm(db, admin, "MPFM-G1", _type_id(db, "High Pressure")),
    ]


# ── creation ─────────────────────────────────────────────────────────────


def test_admin_creates_active_alarm(client, db, world, headers_for):
    resp = client.post(
        "/api/alarms",
        json={"device_serial": "MPFM-1", "alarm_type_id": _type_id(db, "High GVF"), "metadata": {"gvf": 97}},
        headers=headers_for(world.admin),
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "Active"
    assert body["severity"] == "Major"
    assert body["hierarchy"] == "Well N-1"
    assert body["metadata"] == {"gvf": 97}
    assert body["acknowledged_at"] is None


def test_users_cannot_create_alarms(client, db, world, headers_for):
    resp = client.post(
        "/api/alarms",
        json={"device_serial": "MPFM-1", "alarm_type_id": _type_id(db, "High GVF")},
        headers=headers_for(world.operator),
    )
    assert resp.status_code == 403


def test_create_with_unknown_type(client, world, headers_for):
    resp = client.post("/api/alarms", json={"device_serial": "MPFM-1", "alarm_type_id": 999},
                       headers=headers_for(world.admin))
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid alarm type"


def test_create_for_unknown_device(db, world, ctx_for):
    with pytest.raises(NotFoundError):
        alarm_service.create_alarm(db, ctx_for(world.admin), "NOPE-1", _type_id(db, "No Flow"))


def test_message_length_is_capped(client, db, world, headers_for):
    resp = client.post(
        "/api/alarms",
        json={"device_serial": "MPFM-1", "alarm_type_id": _type_id(db, "No Flow"), "message": "x" * 501},
        headers=headers_for(world.admin),
    )
    assert resp.status_code == 422


# ── status transitions ───────────────────────────────────────────────────


def test_acknowledge_records_who_and_when(client, db, world, alarms, headers_for):
    resp = client.put(
        f"/api/alarms/{alarms[0].id}/status",
        json={"status_id": _status_id(db, "Acknowledged")},
        headers=headers_for(world.operator),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "Acknowledged"
    assert body["acknowledged_by"] == world.operator.id
    assert body["acknowledged_at"] is not None
    assert body["resolved_at"] is None


def test_resolve_then_reopen(db, world, alarms, ctx_for):
    ctx = ctx_for(world.operator)
    alarm = alarm_service.update_status(db, ctx, alarms[2].id, _status_id(db, "Resolved"))
    assert alarm.resolved_by == world.operator.id
    assert alarm.resolved_at is not None

    alarm = alarm_service.update_status(db, ctx, alarms[2].id, _status_id(db, "Active"))
    assert alarm.status.name == "Active"
    assert alarm.resolved_at is not None


def test_unknown_status_is_rejected(client, world, alarms, headers_for):
    resp = client.put(f"/api/alarms/{alarms[0].id}/status", json={"status_id": 77},
                      headers=headers_for(world.operator))
    assert resp.status_code == 400


def test_cannot_touch_other_company_alarm(db, world, alarms, ctx_for):
    with pytest.raises(ForbiddenError):
        alarm_service.update_status(db, ctx_for(world.outsider), alarms[0].id, _status_id(db, "Resolved"))
    with pytest.raises(NotFoundError):
        alarm_service.get_alarm(db, ctx_for(world.outsider), 12345)


# ── listing ──────────────────────────────────────────────────────────────


def test_list_is_tenant_scoped(client, world, alarms, headers_for):
    body = client.get("/api/alarms", headers=headers_for(world.outsider)).json()
    assert [a["device_serial"] for a in body["alarms"]] == ["MPFM-G1"]
    assert body["pagination"]["total"] == 1

    body = client.get("/api/alarms", headers=headers_for(world.admin)).json()
    assert body["pagination"]["total"] == 4


def test_filter_by_hierarchy_subtree(db, world, alarms, ctx_for):
    result = alarm_service.list_alarms(db, ctx_for(world.operator), AlarmFilters(hierarchy_id=world.field_north.id))
    assert {a["device_serial"] for a in result["alarms"]} == {"MPFM-1"}
    assert result["pagination"]["total"] == 2
    assert result["statistics"]["total"] == 2


def test_filters_combine(db, world, alarms, ctx_for):
    ctx = ctx_for(world.operator)
    result = alarm_service.list_alarms(db, ctx, AlarmFilters(device_serial="mpfm", severity="Critical"))
    assert [a["alarm_type"] for a in result["alarms"]] == ["High Pressure"]

    result = alarm_service.list_alarms(db, ctx, AlarmFilters(alarm_type_id=_type_id(db, "Low Oil Flow")))
    assert [a["device_serial"] for a in result["alarms"]] == ["MPFM-2"]


def test_pagination_count_matches_filters(client, world, alarms, headers_for):
    resp = client.get("/api/alarms", params={"limit": 2, "page": 2, "sort_by": "id", "sort_order": "asc"},
                      headers=headers_for(world.operator))
    body = resp.json()
    assert body["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}
    assert [a["id"] for a in body["alarms"]] == [alarms[2].id]


@pytest.mark.parametrize("params", [
    {"sort_by": "password"},
    {"sort_order": "sideways"},
    {"severity": "Catastrophic"},
])
def test_invalid_list_parameters(client, world, alarms, headers_for, params):
    resp = client.get("/api/alarms", params=params, headers=headers_for(world.operator))
    assert resp.status_code == 400


def test_statistics(db, world, alarms, ctx_for):
    ctx = ctx_for(world.operator)
    alarm_service.update_status(db, ctx, alarms[1].id, _status_id(db, "Acknowledged"))

    stats = alarm_service.alarm_statistics(db, ctx)
    assert stats["total"] == 3
    assert stats["active"] == 2
    assert stats["acknowledged"] == 1
    assert stats["resolved"] == 0
    assert stats["by_severity"] == {"Critical": 1, "Major": 1, "Minor": 0, "Warning": 1}


def test_dashboard_stats(client, world, alarms, headers_for):
    body = client.get("/api/alarms/dashboard/stats", headers=headers_for(world.operator)).json()
    assert body["statistics"]["total"] == 3
    assert len(body["recent_alarms"]) == 3
    assert body["recent_alarms"][0]["id"] == alarms[2].id


def test_reference_lists(client, world, headers_for):
    types = client.get("/api/alarms/types/all", headers=headers_for(world.operator)).json()
    statuses = client.get("/api/alarms/statuses/all", headers=headers_for(world.operator)).json()
    assert len(types) == 15
    assert [s["name"] for s in statuses] == ["Active", "Acknowledged", "Resolved", "Unacked"]


def test_get_alarm_over_http(client, world, alarms, headers_for):
    assert client.get(f"/api/alarms/{alarms[0].id}", headers=headers_for(world.operator)).status_code == 200
    assert client.get(f"/api/alarms/{alarms[0].id}", headers=headers_for(world.outsider)).status_code == 403
    assert client.get("/api/alarms/9999", headers=headers_for(world.operator)).status_code == 404


def test_invalid_input_error_carries_details(db, world, ctx_for):
    with pytest.raises(InvalidInputError) as excinfo:
        alarm_service.create_alarm(db, ctx_for(world.admin), "MPFM-1", 404)
    assert excinfo.value.details == {"alarm_type_id": 404}


def test_hierarchy_filter_keeps_node_company(db, world, alarms, make_device, ctx_for):
    make_device(world.globex, "GLOBEX-X", "MPFM", world.well_north)
    admin = ctx_for(world.admin)
    alarm_service.create_alarm(db, admin, "GLOBEX-X", _type_id(db, "No Flow"))

    result = alarm_service.list_alarms(db, admin, AlarmFilters(hierarchy_id=world.well_north.id))
    assert {a["device_serial"] for a in result["alarms"]} == {"MPFM-1"}
    assert result["statistics"]["total"] == 2
