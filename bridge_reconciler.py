# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""Software bridge (OVS) reconciliation for SriovNetworkNodeState.

Each PF selected by a bridge-enabled policy gets exactly one bridge, named
after the PF's PCI address. The node's bridge list is kept sorted by name so
that repeated passes serialize identically and don't cause spurious writes.
"""

import bisect
import copy
import logging

from constants import ESWITCH_MODE_SWITCHDEV, LINK_TYPE_ETH
from models import (
    InterfaceExt,
    NodePolicy,
    NodeState,
    OVSConfigExt,
    OVSUplinkConfigExt,
)
from selector import selected

logger = logging.getLogger(__name__)


class BridgeConfigError(ValueError):
    """Raised when a policy's bridge settings can't be honoured."""


def generate_bridge_name(iface: InterfaceExt) -> str:
    """Predictable bridge name for a PF, e.g. br-0000_00_03.0"""
    return "br-" + iface.pci_address.replace(":", "_")


def validate_bridge_policy(policy: NodePolicy) -> None:
    if policy.bridge.is_empty():
        return
    if policy.eswitch_mode != ESWITCH_MODE_SWITCHDEV:
        raise BridgeConfigError(
            "eSwitchMode must be switchdev to use software bridge management")
    if policy.link_type and policy.link_type.upper() != LINK_TYPE_ETH:
        raise BridgeConfigError(
            "linkType must be eth or ETH to use software bridge management")
    if policy.externally_managed:
        raise BridgeConfigError(
            "software bridge management can't be used when link is externally managed")


def _remove_bridges_for_uplink(state: NodeState, pci_address: str) -> None:
    # PF to bridge mapping is 1:1 (no bonding), so any bridge using this PF
    # as uplink belongs to it
    remaining = [
        br for br in state.spec.bridges.ovs or []
        if not any(u.pci_address == pci_address for u in br.uplinks)
    ]
    state.spec.bridges.ovs = remaining or None


def _upsert_bridge(state: NodeState, bridge: OVSConfigExt) -> None:
    bridges = state.spec.bridges.ovs or []
    pos = bisect.bisect_left([br.name for br in bridges], bridge.name)
    if pos < len(bridges) and bridges[pos].name == bridge.name:
        bridges[pos] = bridge
    else:
        bridges.insert(pos, bridge)
    state.spec.bridges.ovs = bridges


def apply_bridge_config(policy: NodePolicy, state: NodeState) -> None:
    """
    Apply the bridge part of a policy to the desired bridges of a node.

    A policy without a bridge removes the bridges of the PFs it selects.
    Raises BridgeConfigError before touching the state if the policy's
    bridge settings are invalid.
    """
    if policy.nic_selector.is_empty():
        return
    validate_bridge_policy(policy)

    for iface in state.status.interfaces:
        if not selected(policy.nic_selector, iface):
            continue

        if policy.bridge.ovs is None:
            _remove_bridges_for_uplink(state, iface.pci_address)
            continue

        ovs = policy.bridge.ovs
        uplink_interface = copy.deepcopy(ovs.uplink.interface)
        if policy.mtu > 0:
            uplink_interface.mtu_request = policy.mtu

        bridge = OVSConfigExt(
            name=generate_bridge_name(iface),
            bridge=copy.deepcopy(ovs.bridge),
            uplinks=[
                OVSUplinkConfigExt(pci_address=iface.pci_address,
                                   name=iface.name,
                                   interface=uplink_interface)
            ],
        )
        logger.info("[BRIDGE] Update bridge %s for interface %s on %s",
                    bridge.name, iface.name, state.name)
        _upsert_bridge(state, bridge)
