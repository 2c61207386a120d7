from datetime import timedelta

import pytest

from app.core.clock import utcnow
from app.core.exceptions import ForbiddenError, NotFoundError
from app.models import DeviceData, Hierarchy
from app.services import chart_service, device_registry, hierarchy_service


def test_region_subtree_reaches_well_devices(db, world):
    node_ids = hierarchy_service.resolve_subtree(db, world.region.id)
    assert {world.region.id, world.area.id, world.field_north.id, world.well_north.id} <= node_ids

    devices = device_registry.devices_for_subtree(db, node_ids, world.acme.id)
    assert {d.serial_number for d in devices} == {"MPFM-1", "MPFM-2"}


def test_sibling_field_excludes_other_wells(db, world):
    node_ids = hierarchy_service.resolve_subtree(db, world.field_south.id)
    assert node_ids == {world.field_south.id, world.well_south.id}

    devices = device_registry.devices_for_subtree(db, node_ids, world.acme.id)
    assert [d.serial_number for d in devices] == ["MPFM-2"]


def test_leaf_subtree_is_itself(db, world):
    assert hierarchy_service.resolve_subtree(db, world.well_north.id) == {world.well_north.id}


def test_subtree_terminates_on_cycles(db, world):
    # Region's parent becomes its own grandchild
    world.region.parent_id = world.field_north.id
    db.commit()

    node_ids = hierarchy_service.resolve_subtree(db, world.region.id)
    assert world.well_south.id in node_ids
    assert len(node_ids) == 6


def test_subtree_depth_bound(db, world):
    node_ids = hierarchy_service.resolve_subtree(db, world.region.id, max_depth=2)
    assert node_ids == {world.region.id, world.area.id, world.field_north.id, world.field_south.id}


def test_subtree_node_bound(db, world):
    node_ids = hierarchy_service.resolve_subtree(db, world.region.id, max_nodes=3)
    assert len(node_ids) == 3


def test_subtree_ignores_children_from_other_companies(db, world):
    stray = Hierarchy(
        company_id=world.globex.id,
        name="Misfiled",
        level_id=world.well_north.level_id,
        parent_id=world.field_north.id,
    )
    db.add(stray)
    db.commit()

    node_ids = hierarchy_service.resolve_subtree(db, world.region.id, company_id=world.acme.id)
    assert stray.id not in node_ids


def _foreign_device_on_acme_well(db, world, make_device):
    device = make_device(world.globex, "GLOBEX-X", "MPFM", world.well_north)
    db.add(DeviceData(device_id=device.id, serial_number="GLOBEX-X",
                      created_at=utcnow() - timedelta(minutes=2), data={"OFR": 777}))
    db.commit()
    return device


def test_subtree_devices_stay_in_node_company(db, world, make_device):
    _foreign_device_on_acme_well(db, world, make_device)

    node_ids = hierarchy_service.resolve_subtree(db, world.region.id, company_id=world.acme.id)
    devices = device_registry.devices_for_subtree(db, node_ids, world.acme.id)
    assert {d.serial_number for d in devices} == {"MPFM-1", "MPFM-2"}


def test_rollups_skip_devices_of_other_companies(db, world, make_device, ctx_for):
    _foreign_device_on_acme_well(db, world, make_device)
    ctx = ctx_for(world.operator)

    chart = chart_service.get_hierarchy_chart(db, ctx, world.region.id, "hour")
    assert [d["serial_number"] for d in chart["devices"]] == ["MPFM-1", "MPFM-2"]
    assert all(p["total_ofr"] == 0.0 for p in chart["series"])

    listing = device_registry.hierarchy_devices(db, ctx, world.well_north.id)
    assert [d["serial_number"] for d in listing["devices"]] == ["MPFM-1"]

    tree = hierarchy_service.build_tree(db, world.acme.id)
    assert tree["Acme Oil"]["statistics"]["devices"] == 2


def test_get_node_enforces_tenant(db, world, ctx_for):
    with pytest.raises(ForbiddenError):
        hierarchy_service.get_node(db, ctx_for(world.outsider), world.region.id)
    with pytest.raises(NotFoundError):
        hierarchy_service.get_node(db, ctx_for(world.outsider), 99999)
    assert hierarchy_service.get_node(db, ctx_for(world.admin), world.globex_well.id).name == "Gulf Well"


def test_build_tree_groups_by_company(db, world):
    tree = hierarchy_service.build_tree(db)
    assert set(tree) == {"Acme Oil", "Globex Energy"}

    acme = tree["Acme Oil"]
    assert [root["name"] for root in acme["hierarchy"]] == ["North Sea"]
    assert acme["statistics"]["total_nodes"] == 6
    assert acme["statistics"]["regions"] == 1
    assert acme["statistics"]["areas"] == 1
    assert acme["statistics"]["fields"] == 2
    assert acme["statistics"]["wells"] == 2
    assert acme["statistics"]["devices"] == 2

    area = acme["hierarchy"][0]["children"][0]
    assert [f["name"] for f in area["children"]] == ["Field North", "Field South"]
    well = area["children"][0]["children"][0]
    assert well["devices"][0]["serial_number"] == "MPFM-1"
    assert well["devices"][0]["latest_data"] is None


def test_build_tree_skips_cyclic_nodes(db, world):
    world.region.parent_id = world.area.id
    db.commit()

    tree = hierarchy_service.build_tree(db, world.acme.id)
    assert "Acme Oil" not in tree


def test_tree_endpoint_is_tenant_scoped(client, world, headers_for):
    resp = client.get("/api/hierarchy/tree", headers=headers_for(world.operator))
    assert resp.status_code == 200
    assert list(resp.json()) == ["Acme Oil"]

    resp = client.get("/api/hierarchy/tree", headers=headers_for(world.admin))
    assert set(resp.json()) == {"Acme Oil", "Globex Energy"}


def test_hierarchy_dashboard_statistics(client, world, headers_for):
    resp = client.get("/api/hierarchy/dashboard", headers=headers_for(world.operator))
    assert resp.status_code == 200
    stats = resp.json()["statistics"]
    assert stats["total_locations"] == 6
    assert stats["wells"] == 2
    assert stats["total_devices"] == 2
    assert stats["device_types"] == [{"type": "MPFM", "count": 2}]


def test_node_endpoints(client, world, headers_for):
    headers = headers_for(world.operator)

    resp = client.get("/api/hierarchy", headers=headers)
    assert resp.status_code == 200
    assert len(resp.json()) == 6
    assert resp.json()[0]["level_name"] == "Region"

    resp = client.get(f"/api/hierarchy/{world.globex_well.id}", headers=headers)
    assert resp.status_code == 403

    resp = client.get("/api/hierarchy/levels", headers=headers)
    assert [level["name"] for level in resp.json()] == ["Region", "Area", "Field", "Well"]
