# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
Drift detection between desired and observed node configuration.

Reconfiguring a PF interrupts traffic on all of its VFs, so these checks
only report drift that the config daemon can actually fix. The MTU check is
growth-only; per-VF checks run only for VFs covered by a desired VF group.
"""

import logging

from constants import (
    DEVICE_TYPE_NETDEVICE,
    DPDK_DRIVERS,
    ESWITCH_MODE_LEGACY,
    LINK_ADMIN_STATE_DOWN,
    LINK_TYPE_ETH,
    LINK_TYPE_IB,
    UNINITIALIZED_NODE_GUID,
)
from models import Bridges, Interface, InterfaceExt, VfGroup, VirtualFunction
from vf_range import index_in_range

logger = logging.getLogger(__name__)


def get_eswitch_mode_from_spec(iface_spec: Interface) -> str:
    """ESwitch mode from the interface spec; legacy if not set."""
    return iface_spec.eswitch_mode or ESWITCH_MODE_LEGACY


def get_eswitch_mode_from_status(iface_status: InterfaceExt) -> str:
    """ESwitch mode from the interface status; legacy if not set."""
    return iface_status.eswitch_mode or ESWITCH_MODE_LEGACY


def _vf_needs_update(iface_spec: Interface, iface_status: InterfaceExt,
                     group: VfGroup, vf: VirtualFunction) -> bool:
    if not vf.driver:
        logger.info("[DRIFT] Driver needs update - VF %d has no driver (desired: %s)",
                    vf.vf_id, group.device_type)
        return True

    if group.device_type and group.device_type != DEVICE_TYPE_NETDEVICE:
        if group.device_type != vf.driver:
            logger.info("[DRIFT] Driver needs update (desired: %s, current: %s)",
                        group.device_type, vf.driver)
            return True
    else:
        if vf.driver in DPDK_DRIVERS:
            logger.info("[DRIFT] Driver needs update (desired: %s, current: %s)",
                        group.device_type, vf.driver)
            return True
        if vf.mtu != 0 and group.mtu != 0 and vf.mtu != group.mtu:
            logger.info("[DRIFT] VF %d MTU needs update (desired: %d, current: %d)",
                        vf.vf_id, group.mtu, vf.mtu)
            return True

        link_type = iface_status.link_type.upper()
        if (link_type == LINK_TYPE_ETH and group.is_rdma) or link_type == LINK_TYPE_IB:
            # An empty GUID is expected while the VF is allocated to a
            # workload; only the uninitialized sentinel means it was never set.
            if vf.guid == UNINITIALIZED_NODE_GUID:
                logger.info("[DRIFT] VF %d GUID needs update (current: %s)",
                            vf.vf_id, vf.guid)
                return True

        # re-assert the admin MAC address on every pass
        if iface_spec.externally_managed:
            logger.info("[DRIFT] Device %s is externally managed, needs update",
                        iface_status.pci_address)
            return True

    if group.vdpa_type != vf.vdpa_type:
        logger.info("[DRIFT] VF %d VdpaType mismatch (desired: %s, current: %s)",
                    vf.vf_id, group.vdpa_type, vf.vdpa_type)
        return True
    return False


def need_to_update_sriov(iface_spec: Interface,
                         iface_status: InterfaceExt) -> bool:
    """Return True if the PF must be reconfigured to reach iface_spec."""
    if iface_spec.mtu > 0 and iface_spec.mtu > iface_status.mtu:
        logger.info("[DRIFT] MTU needs update (desired: %d, current: %d)",
                    iface_spec.mtu, iface_status.mtu)
        return True

    desired_mode = get_eswitch_mode_from_spec(iface_spec)
    current_mode = get_eswitch_mode_from_status(iface_status)
    if desired_mode != current_mode:
        logger.info("[DRIFT] EswitchMode needs update (desired: %s, current: %s)",
                    desired_mode, current_mode)
        return True

    if iface_spec.num_vfs != iface_status.num_vfs:
        logger.info("[DRIFT] NumVfs needs update (desired: %d, current: %d)",
                    iface_spec.num_vfs, iface_status.num_vfs)
        return True

    if iface_status.link_admin_state == LINK_ADMIN_STATE_DOWN:
        logger.info("[DRIFT] PF link status needs update (desired: up, current: %s)",
                    iface_status.link_admin_state)
        return True

    if iface_spec.num_vfs > 0:
        for vf in iface_status.vfs:
            for group in iface_spec.vf_groups:
                if index_in_range(vf.vf_id, group.vf_range):
                    if _vf_needs_update(iface_spec, iface_status, group, vf):
                        return True
                    # ranges are disjoint; no other group owns this VF
                    break
    return False


def need_to_update_bridges(bridge_spec: Bridges, bridge_status: Bridges) -> bool:
    """True if the desired bridges differ from the observed ones in any way,
    including order."""
    return bridge_spec != bridge_status
