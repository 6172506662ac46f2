# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
Data models for the SR-IOV node policy resolver.

This module contains:
- Policy input (NicSelector, BridgeSpec, NodePolicy)
- Desired node configuration (VfGroup, Interface, OVSConfigExt, Bridges)
- Observed node state (VirtualFunction, InterfaceExt)
- The per-node aggregate (NodeState) and pool configuration (PoolConfig)

Every type converts to and from the camelCase dicts that CustomObjectsApi
returns for the SR-IOV Network Operator CRDs.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

import constants

logger = logging.getLogger(__name__)

# Returned by NodeState.get_keep_until_time() when no usable value is stored
ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)


def _omit_empty(obj: Dict[str, Any],
                required: Tuple[str, ...] = ()) -> Dict[str, Any]:
    """Drop zero-valued entries, mirroring the CRD's omitempty tags."""
    return {
        k: v
        for k, v in obj.items()
        if k in required or (v is not None and v != "" and v is not False
                             and v != 0 and v != [] and v != {})
    }


# ============================================================================
# Policy Input
# ============================================================================


@dataclass
class NicSelector:
    """Selects physical functions by hardware identity or name"""
    vendor: str = ""
    device_id: str = ""
    root_devices: List[str] = field(default_factory=list)
    pf_names: List[str] = field(default_factory=list)  # "ens1f0" or "ens1f0#2-5"
    net_filter: str = ""  # e.g. "openstack/NetworkID:<uuid>"

    def is_empty(self) -> bool:
        return (not self.vendor and not self.device_id
                and not self.root_devices and not self.pf_names
                and not self.net_filter)

    @classmethod
    def from_dict(cls, obj: Optional[Dict]) -> 'NicSelector':
        obj = obj or {}
        return cls(vendor=obj.get("vendor", ""),
                   device_id=obj.get("deviceID", ""),
                   root_devices=list(obj.get("rootDevices") or []),
                   pf_names=list(obj.get("pfNames") or []),
                   net_filter=obj.get("netFilter", ""))

    def to_dict(self) -> Dict[str, Any]:
        return _omit_empty({
            "vendor": self.vendor,
            "deviceID": self.device_id,
            "rootDevices": list(self.root_devices),
            "pfNames": list(self.pf_names),
            "netFilter": self.net_filter,
        })


@dataclass
class OVSBridgeConfig:
    datapath_type: str = ""
    external_ids: Dict[str, str] = field(default_factory=dict)
    other_config: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, obj: Optional[Dict]) -> 'OVSBridgeConfig':
        obj = obj or {}
        return cls(datapath_type=obj.get("datapathType", ""),
                   external_ids=dict(obj.get("externalIDs") or {}),
                   other_config=dict(obj.get("otherConfig") or {}))

    def to_dict(self) -> Dict[str, Any]:
        return _omit_empty({
            "datapathType": self.datapath_type,
            "externalIDs": dict(self.external_ids),
            "otherConfig": dict(self.other_config),
        })


@dataclass
class OVSInterfaceConfig:
    type: str = ""
    external_ids: Dict[str, str] = field(default_factory=dict)
    other_config: Dict[str, str] = field(default_factory=dict)
    mtu_request: Optional[int] = None

    @classmethod
    def from_dict(cls, obj: Optional[Dict]) -> 'OVSInterfaceConfig':
        obj = obj or {}
        return cls(type=obj.get("type", ""),
                   external_ids=dict(obj.get("externalIDs") or {}),
                   other_config=dict(obj.get("otherConfig") or {}),
                   mtu_request=obj.get("mtuRequest"))

    def to_dict(self) -> Dict[str, Any]:
        result = _omit_empty({
            "type": self.type,
            "externalIDs": dict(self.external_ids),
            "otherConfig": dict(self.other_config),
        })
        # pointer field: an explicit zero is still a request
        if self.mtu_request is not None:
            result["mtuRequest"] = self.mtu_request
        return result


@dataclass
class OVSUplinkConfig:
    interface: OVSInterfaceConfig = field(default_factory=OVSInterfaceConfig)


@dataclass
class OVSConfig:
    """Software bridge requested by a policy"""
    bridge: OVSBridgeConfig = field(default_factory=OVSBridgeConfig)
    uplink: OVSUplinkConfig = field(default_factory=OVSUplinkConfig)

    @classmethod
    def from_dict(cls, obj: Optional[Dict]) -> 'OVSConfig':
        obj = obj or {}
        uplink = obj.get("uplink") or {}
        return cls(bridge=OVSBridgeConfig.from_dict(obj.get("bridge")),
                   uplink=OVSUplinkConfig(interface=OVSInterfaceConfig.from_dict(
                       uplink.get("interface"))))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bridge": self.bridge.to_dict(),
            "uplink": {
                "interface": self.uplink.interface.to_dict()
            },
        }


@dataclass
class BridgeSpec:
    ovs: Optional[OVSConfig] = None

    def is_empty(self) -> bool:
        return self.ovs is None

    @classmethod
    def from_dict(cls, obj: Optional[Dict]) -> 'BridgeSpec':
        obj = obj or {}
        ovs = obj.get("ovs")
        return cls(ovs=OVSConfig.from_dict(ovs) if ovs is not None else None)

    def to_dict(self) -> Dict[str, Any]:
        if self.ovs is None:
            return {}
        return {"ovs": self.ovs.to_dict()}


@dataclass
class NodePolicy:
    """SriovNetworkNodePolicy: administrator intent for a set of PFs"""
    name: str
    resource_name: str = ""
    namespace: str = ""
    priority: int = 0
    num_vfs: int = 0
    nic_selector: NicSelector = field(default_factory=NicSelector)
    node_selector: Dict[str, str] = field(default_factory=dict)
    device_type: str = ""
    mtu: int = 0
    is_rdma: bool = False
    link_type: str = ""
    eswitch_mode: str = ""
    vdpa_type: str = ""
    externally_managed: bool = False
    bridge: BridgeSpec = field(default_factory=BridgeSpec)

    @classmethod
    def from_dict(cls, obj: Dict) -> 'NodePolicy':
        metadata = obj.get("metadata", {})
        spec = obj.get("spec", {})
        return cls(name=metadata.get("name", ""),
                   namespace=metadata.get("namespace", ""),
                   resource_name=spec.get("resourceName", ""),
                   priority=spec.get("priority", 0),
                   num_vfs=spec.get("numVfs", 0),
                   nic_selector=NicSelector.from_dict(spec.get("nicSelector")),
                   node_selector=dict(spec.get("nodeSelector") or {}),
                   device_type=spec.get("deviceType", ""),
                   mtu=spec.get("mtu", 0),
                   is_rdma=spec.get("isRdma", False),
                   link_type=spec.get("linkType", ""),
                   eswitch_mode=spec.get("eSwitchMode", ""),
                   vdpa_type=spec.get("vdpaType", ""),
                   externally_managed=spec.get("externallyManaged", False),
                   bridge=BridgeSpec.from_dict(spec.get("bridge")))


# ============================================================================
# Desired State (NodeState spec)
# ============================================================================


@dataclass
class VfGroup:
    """A contiguous VF index range on one PF, owned by one policy"""
    resource_name: str = ""
    device_type: str = ""
    vf_range: str = ""  # "start-end", inclusive
    policy_name: str = ""
    mtu: int = 0
    is_rdma: bool = False
    vdpa_type: str = ""

    @classmethod
    def from_dict(cls, obj: Dict) -> 'VfGroup':
        return cls(resource_name=obj.get("resourceName", ""),
                   device_type=obj.get("deviceType", ""),
                   vf_range=obj.get("vfRange", ""),
                   policy_name=obj.get("policyName", ""),
                   mtu=obj.get("mtu", 0),
                   is_rdma=obj.get("isRdma", False),
                   vdpa_type=obj.get("vdpaType", ""))

    def to_dict(self) -> Dict[str, Any]:
        return _omit_empty(
            {
                "resourceName": self.resource_name,
                "deviceType": self.device_type,
                "vfRange": self.vf_range,
                "policyName": self.policy_name,
                "mtu": self.mtu,
                "isRdma": self.is_rdma,
                "vdpaType": self.vdpa_type,
            },
            required=("vfRange", ))


@dataclass
class Interface:
    """Desired configuration of one PF"""
    pci_address: str
    name: str = ""
    mtu: int = 0
    num_vfs: int = 0
    link_type: str = ""
    eswitch_mode: str = ""
    externally_managed: bool = False
    vf_groups: List[VfGroup] = field(default_factory=list)

    @classmethod
    def from_dict(cls, obj: Dict) -> 'Interface':
        return cls(pci_address=obj.get("pciAddress", ""),
                   name=obj.get("name", ""),
                   mtu=obj.get("mtu", 0),
                   num_vfs=obj.get("numVfs", 0),
                   link_type=obj.get("linkType", ""),
                   eswitch_mode=obj.get("eSwitchMode", ""),
                   externally_managed=obj.get("externallyManaged", False),
                   vf_groups=[
                       VfGroup.from_dict(g) for g in obj.get("vfGroups") or []
                   ])

    def to_dict(self) -> Dict[str, Any]:
        return _omit_empty(
            {
                "pciAddress": self.pci_address,
                "name": self.name,
                "mtu": self.mtu,
                "numVfs": self.num_vfs,
                "linkType": self.link_type,
                "eSwitchMode": self.eswitch_mode,
                "externallyManaged": self.externally_managed,
                "vfGroups": [g.to_dict() for g in self.vf_groups],
            },
            required=("pciAddress", ))


@dataclass
class OVSUplinkConfigExt:
    pci_address: str = ""
    name: str = ""
    interface: OVSInterfaceConfig = field(default_factory=OVSInterfaceConfig)

    @classmethod
    def from_dict(cls, obj: Dict) -> 'OVSUplinkConfigExt':
        return cls(pci_address=obj.get("pciAddress", ""),
                   name=obj.get("name", ""),
                   interface=OVSInterfaceConfig.from_dict(obj.get("interface")))

    def to_dict(self) -> Dict[str, Any]:
        return _omit_empty({
            "pciAddress": self.pci_address,
            "name": self.name,
            "interface": self.interface.to_dict(),
        })


@dataclass
class OVSConfigExt:
    """Software bridge on a node, named after its uplink PF"""
    name: str
    bridge: OVSBridgeConfig = field(default_factory=OVSBridgeConfig)
    uplinks: List[OVSUplinkConfigExt] = field(default_factory=list)

    @classmethod
    def from_dict(cls, obj: Dict) -> 'OVSConfigExt':
        return cls(name=obj.get("name", ""),
                   bridge=OVSBridgeConfig.from_dict(obj.get("bridge")),
                   uplinks=[
                       OVSUplinkConfigExt.from_dict(u)
                       for u in obj.get("uplinks") or []
                   ])

    def to_dict(self) -> Dict[str, Any]:
        return _omit_empty(
            {
                "name": self.name,
                "bridge": self.bridge.to_dict(),
                "uplinks": [u.to_dict() for u in self.uplinks],
            },
            required=("name", ))


@dataclass
class Bridges:
    """
    Node-level bridge list, kept sorted by name.

    An empty list is always stored as None so that "no bridges" compares
    equal no matter how it was produced.
    """
    ovs: Optional[List[OVSConfigExt]] = None

    @classmethod
    def from_dict(cls, obj: Optional[Dict]) -> 'Bridges':
        obj = obj or {}
        ovs = [OVSConfigExt.from_dict(b) for b in obj.get("ovs") or []]
        return cls(ovs=ovs or None)

    def to_dict(self) -> Dict[str, Any]:
        if not self.ovs:
            return {}
        return {"ovs": [b.to_dict() for b in self.ovs]}


# ============================================================================
# Observed State (NodeState status)
# ============================================================================


@dataclass
class VirtualFunction:
    vf_id: int
    name: str = ""
    mac: str = ""
    driver: str = ""
    pci_address: str = ""
    vendor: str = ""
    device_id: str = ""
    mtu: int = 0
    vlan: int = 0
    vdpa_type: str = ""
    guid: str = ""
    representor_name: str = ""

    @classmethod
    def from_dict(cls, obj: Dict) -> 'VirtualFunction':
        return cls(vf_id=obj.get("vfID", 0),
                   name=obj.get("name", ""),
                   mac=obj.get("mac", ""),
                   driver=obj.get("driver", ""),
                   pci_address=obj.get("pciAddress", ""),
                   vendor=obj.get("vendor", ""),
                   device_id=obj.get("deviceID", ""),
                   mtu=obj.get("mtu", 0),
                   vlan=obj.get("Vlan", 0),
                   vdpa_type=obj.get("vdpaType", ""),
                   guid=obj.get("guid", ""),
                   representor_name=obj.get("representorName", ""))

    def to_dict(self) -> Dict[str, Any]:
        return _omit_empty(
            {
                "vfID": self.vf_id,
                "name": self.name,
                "mac": self.mac,
                "driver": self.driver,
                "pciAddress": self.pci_address,
                "vendor": self.vendor,
                "deviceID": self.device_id,
                "mtu": self.mtu,
                "Vlan": self.vlan,
                "vdpaType": self.vdpa_type,
                "guid": self.guid,
                "representorName": self.representor_name,
            },
            required=("vfID", "pciAddress"))


@dataclass
class InterfaceExt:
    """Observed state of one PF as reported by the config daemon"""
    pci_address: str
    name: str = ""
    mac: str = ""
    driver: str = ""
    vendor: str = ""
    device_id: str = ""
    net_filter: str = ""
    link_speed: str = ""
    link_type: str = ""
    link_admin_state: str = ""
    eswitch_mode: str = ""
    num_vfs: int = 0
    total_vfs: int = 0
    mtu: int = 0
    vfs: List[VirtualFunction] = field(default_factory=list)

    @classmethod
    def from_dict(cls, obj: Dict) -> 'InterfaceExt':
        return cls(pci_address=obj.get("pciAddress", ""),
                   name=obj.get("name", ""),
                   mac=obj.get("mac", ""),
                   driver=obj.get("driver", ""),
                   vendor=obj.get("vendor", ""),
                   device_id=obj.get("deviceID", ""),
                   net_filter=obj.get("netFilter", ""),
                   link_speed=obj.get("linkSpeed", ""),
                   link_type=obj.get("linkType", ""),
                   link_admin_state=obj.get("linkAdminState", ""),
                   eswitch_mode=obj.get("eSwitchMode", ""),
                   num_vfs=obj.get("numVfs", 0),
                   total_vfs=obj.get("totalvfs", 0),
                   mtu=obj.get("mtu", 0),
                   vfs=[VirtualFunction.from_dict(vf) for vf in obj.get("Vfs") or []])

    def to_dict(self) -> Dict[str, Any]:
        return _omit_empty(
            {
                "pciAddress": self.pci_address,
                "name": self.name,
                "mac": self.mac,
                "driver": self.driver,
                "vendor": self.vendor,
                "deviceID": self.device_id,
                "netFilter": self.net_filter,
                "linkSpeed": self.link_speed,
                "linkType": self.link_type,
                "linkAdminState": self.link_admin_state,
                "eSwitchMode": self.eswitch_mode,
                "numVfs": self.num_vfs,
                "totalvfs": self.total_vfs,
                "mtu": self.mtu,
                "Vfs": [vf.to_dict() for vf in self.vfs],
            },
            required=("pciAddress", ))


# ============================================================================
# Node State
# ============================================================================


@dataclass
class NodeStateSpec:
    interfaces: List[Interface] = field(default_factory=list)
    bridges: Bridges = field(default_factory=Bridges)


@dataclass
class NodeStateStatus:
    interfaces: List[InterfaceExt] = field(default_factory=list)
    bridges: Bridges = field(default_factory=Bridges)
    sync_status: str = ""
    last_sync_error: str = ""


@dataclass
class NodeState:
    """
    SriovNetworkNodeState: desired (spec) and observed (status) configuration
    of one node. Named after the node it describes.
    """
    name: str
    namespace: str = ""
    resource_version: str = ""
    annotations: Dict[str, str] = field(default_factory=dict)
    spec: NodeStateSpec = field(default_factory=NodeStateSpec)
    status: NodeStateStatus = field(default_factory=NodeStateStatus)

    @classmethod
    def from_dict(cls, obj: Dict) -> 'NodeState':
        metadata = obj.get("metadata", {})
        spec = obj.get("spec") or {}
        status = obj.get("status") or {}
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            resource_version=metadata.get("resourceVersion", ""),
            annotations=dict(metadata.get("annotations") or {}),
            spec=NodeStateSpec(
                interfaces=[
                    Interface.from_dict(i) for i in spec.get("interfaces") or []
                ],
                bridges=Bridges.from_dict(spec.get("bridges")),
            ),
            status=NodeStateStatus(
                interfaces=[
                    InterfaceExt.from_dict(i)
                    for i in status.get("interfaces") or []
                ],
                bridges=Bridges.from_dict(status.get("bridges")),
                sync_status=status.get("syncStatus", ""),
                last_sync_error=status.get("lastSyncError", ""),
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        metadata = _omit_empty({
            "name": self.name,
            "namespace": self.namespace,
            "resourceVersion": self.resource_version,
            "annotations": dict(self.annotations),
        })
        return {
            "apiVersion": f"{constants.SRIOV_GROUP}/{constants.SRIOV_VERSION}",
            "kind": "SriovNetworkNodeState",
            "metadata": metadata,
            "spec": self.spec_dict(),
            "status": _omit_empty({
                "interfaces": [i.to_dict() for i in self.status.interfaces],
                "bridges": self.status.bridges.to_dict(),
                "syncStatus": self.status.sync_status,
                "lastSyncError": self.status.last_sync_error,
            }),
        }

    def spec_dict(self) -> Dict[str, Any]:
        return _omit_empty({
            "interfaces": [i.to_dict() for i in self.spec.interfaces],
            "bridges": self.spec.bridges.to_dict(),
        })

    def get_interface_state_by_pci_address(
            self, addr: str) -> Optional[InterfaceExt]:
        for iface in self.status.interfaces:
            if iface.pci_address == addr:
                return iface
        return None

    def get_driver_by_pci_address(self, addr: str) -> str:
        iface = self.get_interface_state_by_pci_address(addr)
        return iface.driver if iface is not None else ""

    # ------------------------------------------------------------------
    # Keep-until annotation
    # ------------------------------------------------------------------

    def set_keep_until_time(self, t: datetime) -> None:
        """Record the earliest time this state may be removed if the config
        daemon pod is not found on the node."""
        if t.tzinfo is None:
            t = t.replace(tzinfo=timezone.utc)
        ts = t.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        self.annotations[constants.NODE_STATE_KEEP_UNTIL_ANNOTATION] = ts

    def get_keep_until_time(self) -> datetime:
        """
        Return the stored "keep until" time.

        A missing or malformed annotation reads as ZERO_TIME, which makes the
        object eligible for removal straight away.
        """
        value = self.annotations.get(
            constants.NODE_STATE_KEEP_UNTIL_ANNOTATION, "")
        if not value:
            return ZERO_TIME
        try:
            t = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.debug("Ignoring malformed keep-until annotation on %s: %s",
                         self.name, value)
            return ZERO_TIME
        if t.tzinfo is None:
            # RFC3339 always carries an offset
            return ZERO_TIME
        return t

    def reset_keep_until_time(self) -> bool:
        """Remove the "keep until" annotation. Returns True if it was set."""
        return self.annotations.pop(constants.NODE_STATE_KEEP_UNTIL_ANNOTATION,
                                    None) is not None


def contains_switchdev_interface(interfaces: List[Interface]) -> bool:
    return any(iface.eswitch_mode == constants.ESWITCH_MODE_SWITCHDEV
               for iface in interfaces)


def is_switchdev_mode_spec(spec: NodeStateSpec) -> bool:
    return contains_switchdev_interface(spec.interfaces)


# ============================================================================
# Pool Configuration
# ============================================================================


@dataclass
class PoolConfig:
    """SriovNetworkPoolConfig: how many nodes of a pool may drain at once"""
    name: str
    max_unavailable: Optional[Union[int, str]] = None

    @classmethod
    def from_dict(cls, obj: Dict) -> 'PoolConfig':
        return cls(name=obj.get("metadata", {}).get("name", ""),
                   max_unavailable=obj.get("spec", {}).get("maxUnavailable"))

    def max_unavailable_nodes(self, num_nodes: int) -> int:
        """
        Number of nodes that can be drained in parallel.

        Returns -1 when unset (drain all nodes at once). Percentages are
        scaled by num_nodes and rounded down.
        """
        value = self.max_unavailable
        if value is None:
            return -1

        if isinstance(value, str):
            if not value.endswith("%"):
                raise ValueError(
                    "invalid type: strings needs to be a percentage")
            try:
                percent = int(value[:-1])
            except ValueError as e:
                raise ValueError(f"invalid value {value!r}: {e}") from e
            if percent > 100 or percent < 1:
                raise ValueError(
                    "invalid value: percentage needs to be between 1 and 100")
            return math.floor(percent * num_nodes / 100)

        if value < 0:
            raise ValueError("negative number is not allowed")
        return value
