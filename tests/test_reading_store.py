from datetime import datetime, timedelta

from app.models import DeviceData, DeviceLatest
from app.services import reading_store

T1 = datetime(2025, 1, 10, 10, 0)
T2 = datetime(2025, 1, 10, 10, 5)


def _latest(db, device):
    db.expire_all()
    return db.get(DeviceLatest, device.id)


def test_latest_follows_newer_reading(db, world):
    reading_store.record_reading(db, world.mpfm_north, {"OFR": 100}, timestamp=T1)
    reading_store.record_reading(db, world.mpfm_north, {"OFR": 200}, timestamp=T2)

    latest = _latest(db, world.mpfm_north)
    assert latest.updated_at == T2
    assert latest.data == {"OFR": 200}


def test_latest_ignores_out_of_order_reading(db, world):
    reading_store.record_reading(db, world.mpfm_north, {"OFR": 200}, timestamp=T2)
    reading_store.record_reading(db, world.mpfm_north, {"OFR": 100}, timestamp=T1)

    latest = _latest(db, world.mpfm_north)
    assert latest.updated_at == T2
    assert latest.data == {"OFR": 200}
    # both raw rows are kept
    assert db.query(DeviceData).filter_by(device_id=world.mpfm_north.id).count() == 2


def test_one_projection_row_per_device(db, world):
    for minute in range(5):
        reading_store.record_reading(db, world.mpfm_north, {"OFR": minute}, timestamp=T1 + timedelta(minutes=minute))
    assert db.query(DeviceLatest).filter_by(device_id=world.mpfm_north.id).count() == 1


def test_latest_reading_prefers_projection(db, world):
    reading_store.record_reading(db, world.mpfm_north, {"OFR": 1}, timestamp=T1, longitude=3.5, latitude=56.1)
    latest = reading_store.latest_reading(db, world.mpfm_north)
    assert latest["data"] == {"OFR": 1}
    assert latest["timestamp"] == T1
    assert latest["longitude"] == 3.5


def test_latest_reading_falls_back_to_raw_rows(db, world):
    db.add_all([
        DeviceData(device_id=world.mpfm_north.id, serial_number="MPFM-1", created_at=T1, data={"OFR": 1}),
        DeviceData(device_id=world.mpfm_north.id, serial_number="MPFM-1", created_at=T2, data={"OFR": 2}),
    ])
    db.commit()

    latest = reading_store.latest_reading(db, world.mpfm_north)
    assert latest["timestamp"] == T2
    assert latest["data"] == {"OFR": 2}


def test_latest_reading_none_without_data(db, world):
    assert reading_store.latest_reading(db, world.mpfm_north) is None


def test_readings_in_window_bounds(db, world):
    for minute in (0, 30, 90):
        reading_store.record_reading(db, world.mpfm_north, {"OFR": minute}, timestamp=T1 + timedelta(minutes=minute))

    rows = reading_store.readings_in_window(db, [world.mpfm_north.id], T1, T1 + timedelta(hours=1))
    assert [r.data["OFR"] for r in rows] == [0, 30]
    assert reading_store.readings_in_window(db, [], T1, T2) == []


def test_post_reading_endpoint(client, world, headers_for):
    resp = client.post(
        "/api/readings",
        json={"serial_number": "MPFM-1", "data": {"OFR": 42.5}, "timestamp": "2025-01-10T10:00:00Z"},
        headers=headers_for(world.admin),
    )
    assert resp.status_code == 201
    assert resp.json()["created_at"].startswith("2025-01-10T10:00:00")

    resp = client.get(f"/api/readings/latest/{world.mpfm_north.id}", headers=headers_for(world.operator))
    assert resp.status_code == 200
    assert resp.json()["data"] == {"OFR": 42.5}


def test_post_reading_requires_admin(client, world, headers_for):
    resp = client.post(
        "/api/readings",
        json={"serial_number": "MPFM-1", "data": {"OFR": 1}},
        headers=headers_for(world.operator),
    )
    assert resp.status_code == 403
