from datetime import timedelta

import pytest

from app.core.clock import utcnow
from app.models import AlarmStatus, AlarmType, DeviceAlarm, DeviceData, DeviceLatest


@pytest.fixture
def north_online(db, world):
    db.add(DeviceLatest(
        device_id=world.mpfm_north.id,
        serial_number="MPFM-1",
        updated_at=utcnow() - timedelta(minutes=1),
        data={"OFR": 88.5, "WFR": 11.5},
    ))
    db.add(DeviceLatest(
        device_id=world.mpfm_south.id,
        serial_number="MPFM-2",
        updated_at=utcnow() - timedelta(hours=2),
        data={"OFR": 3},
    ))
    db.commit()


def _alarm(db, serial, status):
    db.add(DeviceAlarm(
        device_serial=serial,
        alarm_type_id=db.query(AlarmType).filter_by(name="No Flow").one().id,
        status_id=db.query(AlarmStatus).filter_by(name=status).one().id,
    ))
    db.commit()


def _serials(body):
    return [d["serial_number"] for d in body["devices"]]


def test_list_devices_for_tenant(client, db, world, north_online, headers_for):
    _alarm(db, "MPFM-1", "Active")
    _alarm(db, "MPFM-2", "Resolved")

    resp = client.get("/api/devices", headers=headers_for(world.operator))
    assert resp.status_code == 200
    body = resp.json()
    assert _serials(body) == ["MPFM-1", "MPFM-2"]
    assert body["statistics"] == {"total": 2, "online": 1, "offline": 1, "total_alarms": 1, "locations": 2}

    north = body["devices"][0]
    assert north["status"] == "online"
    assert north["hierarchy"] == "Well N-1"
    assert north["flow_data"]["ofr"] == 88.5
    assert north["flow_data"]["gfr"] == 0.0
    assert body["devices"][1]["status"] == "offline"


@pytest.mark.parametrize("params, expected", [
    ({"status": "online"}, ["MPFM-1"]),
    ({"status": "OFFLINE"}, ["MPFM-2"]),
    ({"search": "S-1"}, ["MPFM-2"]),
    ({"search": "mpfm-1"}, ["MPFM-1"]),
    ({"deviceType": "MPFM"}, ["MPFM-1", "MPFM-2"]),
    ({"deviceType": "Flow Meter"}, []),
])
def test_list_devices_filters(client, world, north_online, headers_for, params, expected):
    body = client.get("/api/devices", params=params, headers=headers_for(world.operator)).json()
    assert _serials(body) == expected


def test_list_devices_bad_status(client, world, headers_for):
    resp = client.get("/api/devices", params={"status": "sleeping"}, headers=headers_for(world.operator))
    assert resp.status_code == 400


def test_list_devices_pagination(client, world, headers_for):
    body = client.get("/api/devices", params={"limit": 1, "page": 2}, headers=headers_for(world.operator)).json()
    assert _serials(body) == ["MPFM-2"]
    assert body["pagination"] == {"page": 2, "limit": 1, "total": 2, "pages": 2}
    assert body["statistics"]["total"] == 2


def test_admin_lists_every_company(client, world, headers_for):
    body = client.get("/api/devices", headers=headers_for(world.admin)).json()
    assert _serials(body) == ["MPFM-1", "MPFM-2", "MPFM-G1"]

    body = client.get("/api/devices", params={"company_id": world.globex.id}, headers=headers_for(world.admin)).json()
    assert _serials(body) == ["MPFM-G1"]


def test_company_id_is_ignored_for_users(client, world, headers_for):
    body = client.get("/api/devices", params={"company_id": world.globex.id},
                      headers=headers_for(world.operator)).json()
    assert _serials(body) == ["MPFM-1", "MPFM-2"]


def test_hierarchy_devices(client, world, north_online, headers_for):
    resp = client.get(f"/api/devices/hierarchy/{world.field_north.id}", headers=headers_for(world.operator))
    assert resp.status_code == 200
    body = resp.json()
    assert body["hierarchy"] == {"id": world.field_north.id, "name": "Field North", "level": "Field"}
    assert _serials(body) == ["MPFM-1"]
    assert body["statistics"]["online"] == 1


def test_hierarchy_devices_other_company(client, world, headers_for):
    resp = client.get(f"/api/devices/hierarchy/{world.field_north.id}", headers=headers_for(world.outsider))
    assert resp.status_code == 403


def test_device_detail_history(client, db, world, headers_for):
    now = utcnow()
    for hours, ofr in ((1, 10), (2, 20), (30, 30)):
        db.add(DeviceData(device_id=world.mpfm_north.id, serial_number="MPFM-1",
                          created_at=now - timedelta(hours=hours), data={"OFR": ofr}))
    db.commit()

    resp = client.get(f"/api/devices/{world.mpfm_north.id}", headers=headers_for(world.operator))
    assert resp.status_code == 200
    body = resp.json()
    assert [h["data"]["OFR"] for h in body["history"]] == [10, 20]
    assert body["latest"]["data"] == {"OFR": 10}
    assert body["device"]["metadata"] == {"installed": "2024-06-01"}


def test_device_detail_access(client, world, headers_for):
    assert client.get("/api/devices/31337", headers=headers_for(world.operator)).status_code == 404
    resp = client.get(f"/api/devices/{world.mpfm_north.id}", headers=headers_for(world.outsider))
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Device belongs to another company"


def test_update_metadata(client, world, headers_for):
    url = f"/api/devices/{world.mpfm_north.id}"
    body = {"metadata": {"installed": "2024-06-01", "vendor": "Acme Meters"}}

    assert client.put(url, json=body, headers=headers_for(world.operator)).status_code == 403

    resp = client.put(url, json=body, headers=headers_for(world.admin))
    assert resp.status_code == 200
    assert resp.json()["metadata"]["vendor"] == "Acme Meters"


def test_readings_endpoint_scoped_to_tenant(client, world, headers_for):
    resp = client.get(f"/api/readings/latest/{world.globex_device.id}", headers=headers_for(world.operator))
    assert resp.status_code == 403
    resp = client.get(f"/api/readings/latest/{world.mpfm_north.id}", headers=headers_for(world.operator))
    assert resp.status_code == 404
