"""
Organizational tree (Region > Area > Field > Well) per company.

``resolve_subtree`` walks parent pointers breadth first, one query per
level, and stops on cycles or when the configured depth/node bounds are
reached. ``build_tree`` assembles the forest for one or all companies.
"""
import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from app.core.config import settings
from app.core.deps import TenantContext
from app.core.exceptions import ForbiddenError, NotFoundError
from app.models.company import Company
from app.models.device import Device, DeviceType
from app.models.hierarchy import Hierarchy, HierarchyLevel

logger = logging.getLogger(__name__)

# level_order -> statistics key
LEVEL_KEYS = {1: "regions", 2: "areas", 3: "fields", 4: "wells"}


def get_node(db: Session, ctx: TenantContext, node_id: int) -> Hierarchy:
    node = (
        db.query(Hierarchy)
        .options(joinedload(Hierarchy.level))
        .filter(Hierarchy.id == node_id)
        .first()
    )
    if not node:
        raise NotFoundError("Hierarchy", node_id)
    if not ctx.is_admin and node.company_id != ctx.tenant_id:
        raise ForbiddenError("Hierarchy node belongs to another company")
    return node


def resolve_subtree(
    db: Session,
    node_id: int,
    company_id: Optional[int] = None,
    max_depth: Optional[int] = None,
    max_nodes: Optional[int] = None,
) -> Set[int]:
    """Return ``node_id`` plus every transitive descendant."""
    max_depth = max_depth or settings.HIERARCHY_MAX_DEPTH
    max_nodes = max_nodes or settings.HIERARCHY_MAX_NODES

    visited: Set[int] = {node_id}
    frontier: List[int] = [node_id]
    depth = 0

    while frontier:
        if depth >= max_depth:
            logger.warning("Hierarchy %s: depth limit %s reached, subtree truncated", node_id, max_depth)
            break

        q = db.query(Hierarchy.id).filter(Hierarchy.parent_id.in_(frontier))
        if company_id is not None:
            q = q.filter(Hierarchy.company_id == company_id)

        next_frontier: List[int] = []
        for (child_id,) in q.all():
            if child_id in visited:
                logger.warning("Hierarchy %s: cycle detected at node %s", node_id, child_id)
                continue
            visited.add(child_id)
            next_frontier.append(child_id)
            if len(visited) >= max_nodes:
                logger.warning("Hierarchy %s: node limit %s reached, subtree truncated", node_id, max_nodes)
                return visited

        frontier = next_frontier
        depth += 1

    return visited


def list_nodes(db: Session, ctx: TenantContext, company_id: Optional[int] = None) -> List[Hierarchy]:
    q = db.query(Hierarchy).options(joinedload(Hierarchy.level)).join(Hierarchy.level)
    if not ctx.is_admin:
        q = q.filter(Hierarchy.company_id == ctx.tenant_id)
    elif company_id is not None:
        q = q.filter(Hierarchy.company_id == company_id)
    return q.order_by(HierarchyLevel.level_order, Hierarchy.name).all()


def list_levels(db: Session) -> List[HierarchyLevel]:
    return db.query(HierarchyLevel).order_by(HierarchyLevel.level_order).all()


def _device_summary(device: Device) -> Dict[str, Any]:
    latest = device.latest
    return {
        "id": device.id,
        "serial_number": device.serial_number,
        "type": device.type_name,
        "logo": device.device_type.logo if device.device_type else None,
        "metadata": device.meta or {},
        "latest_data": latest.data if latest else None,
        "last_update": latest.updated_at if latest else None,
    }


def _node_dict(node: Hierarchy) -> Dict[str, Any]:
    return {
        "id": node.id,
        "name": node.name,
        "level": node.level_name,
        "level_order": node.level_order,
        "parent_id": node.parent_id,
        "can_attach_device": bool(node.can_attach_device),
        "children": [],
        "devices": [],
    }


def _empty_statistics() -> Dict[str, Any]:
    stats: Dict[str, Any] = {"total_nodes": 0, "devices": 0, "by_level": {}}
    for key in LEVEL_KEYS.values():
        stats[key] = 0
    return stats


def build_tree(db: Session, company_id: Optional[int] = None) -> Dict[str, Dict[str, Any]]:
    """Forest per company name, with per-company statistics.

    Nodes are attached while walking down from the roots; a node reached
    twice is only added once, and nodes never reached from a root (cyclic
    parent chains) are left out and logged.
    """
    q_nodes = (
        db.query(Hierarchy)
        .options(joinedload(Hierarchy.level), joinedload(Hierarchy.company))
        .join(Hierarchy.level)
    )
    if company_id is not None:
        q_nodes = q_nodes.filter(Hierarchy.company_id == company_id)
    nodes = q_nodes.order_by(HierarchyLevel.level_order, Hierarchy.name).all()

    node_ids = [n.id for n in nodes]
    by_id = {n.id: n for n in nodes}
    devices_by_node: Dict[int, List[Device]] = defaultdict(list)
    if node_ids:
        devices = (
            db.query(Device)
            .options(joinedload(Device.device_type), joinedload(Device.latest))
            .filter(Device.hierarchy_id.in_(node_ids))
            .order_by(Device.serial_number)
            .all()
        )
        # a device filed under another company's node is not shown there
        for device in devices:
            if device.company_id == by_id[device.hierarchy_id].company_id:
                devices_by_node[device.hierarchy_id].append(device)

    children: Dict[int, List[Hierarchy]] = defaultdict(list)
    roots: List[Hierarchy] = []
    for n in nodes:
        parent = by_id.get(n.parent_id) if n.parent_id is not None else None
        if parent is not None and parent.company_id == n.company_id:
            children[parent.id].append(n)
        else:
            roots.append(n)

    result: Dict[str, Dict[str, Any]] = {}
    added: Set[int] = set()

    for root in roots:
        company_name = root.company.name if root.company else str(root.company_id)
        entry = result.setdefault(company_name, {
            "company_id": root.company_id,
            "company_name": company_name,
            "hierarchy": [],
            "statistics": _empty_statistics(),
        })
        stats = entry["statistics"]

        root_dict = _node_dict(root)
        stack = [(root, root_dict)]
        added.add(root.id)
        while stack:
            node, node_dict = stack.pop()
            stats["total_nodes"] += 1
            key = LEVEL_KEYS.get(node.level_order)
            if key:
                stats[key] += 1
            level_name = node.level_name or "Unknown"
            stats["by_level"][level_name] = stats["by_level"].get(level_name, 0) + 1

            for device in devices_by_node.get(node.id, []):
                node_dict["devices"].append(_device_summary(device))
                stats["devices"] += 1

            for child in children.get(node.id, []):
                if child.id in added:
                    continue
                added.add(child.id)
                child_dict = _node_dict(child)
                node_dict["children"].append(child_dict)
                stack.append((child, child_dict))

        entry["hierarchy"].append(root_dict)

    orphaned = set(node_ids) - added
    if orphaned:
        logger.warning("Hierarchy nodes unreachable from any root (cyclic parents?): %s", sorted(orphaned))

    return result


def hierarchy_dashboard(db: Session, ctx: TenantContext, company_id: Optional[int] = None) -> Dict[str, Any]:
    """Tree plus location and device statistics for the caller's scope."""
    scope = company_id if ctx.is_admin else ctx.tenant_id
    tree = build_tree(db, scope)

    statistics = _empty_statistics()
    statistics.pop("devices")
    statistics["total_locations"] = statistics.pop("total_nodes")
    for entry in tree.values():
        stats = entry["statistics"]
        statistics["total_locations"] += stats["total_nodes"]
        for key in LEVEL_KEYS.values():
            statistics[key] += stats[key]
        for name, count in stats["by_level"].items():
            statistics["by_level"][name] = statistics["by_level"].get(name, 0) + count

    q_devices = db.query(Device)
    q_types = (
        db.query(DeviceType.type_name, func.count(Device.id))
        .join(Device, Device.device_type_id == DeviceType.id)
    )
    if scope is not None:
        q_devices = q_devices.filter(Device.company_id == scope)
        q_types = q_types.filter(Device.company_id == scope)

    statistics["total_devices"] = q_devices.count()
    statistics["device_types"] = [
        {"type": type_name, "count": count}
        for type_name, count in q_types.group_by(DeviceType.type_name).order_by(DeviceType.type_name).all()
    ]

    return {"tree": tree, "statistics": statistics}

