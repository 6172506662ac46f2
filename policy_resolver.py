# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
Policy merge resolution for SriovNetworkNodeState.

Policies are applied to a node one at a time, in the order given by
sort_policies(). Each application writes the policy's intent into the
desired interface list; when several policies target the same PF, their
VF groups are merged so that every VF index has a single owner.

Merge rules (see merge_configs):
- a group with the same resource name, or an overlapping VF range, is
  replaced by the group of the policy applied later
- disjoint groups are kept side by side
- PF-wide settings (MTU, VF count) take the larger value whenever groups
  were kept or the policies have the same priority
"""

import copy
import logging
from typing import Dict, Iterable, List, Optional

from bridge_reconciler import apply_bridge_config
from constants import DEFAULT_POLICY_NAME, MANAGE_SOFTWARE_BRIDGES_FEATURE_GATE
from feature_gate import FeatureGate
from models import Interface, InterfaceExt, NodePolicy, NodeState, NodeStateSpec, VfGroup
from selector import policy_selects_node, selected
from vf_range import INVALID_VF_INDEX, is_vf_range_overlapping, parse_vf_range

logger = logging.getLogger(__name__)


def sort_policies(policies: Iterable[NodePolicy]) -> List[NodePolicy]:
    """Order policies for application: priority value descending, then name."""
    return sorted(policies, key=lambda p: (-p.priority, p.name))


def generate_pf_name_vf_group(policy: NodePolicy,
                              iface: InterfaceExt) -> VfGroup:
    """
    Build the VF group the policy claims on one PF.

    The range comes from a "name#start-end" pfNames entry for this PF. Without
    one, the group covers VFs 0 to num_vfs-1. Raises VfRangeError if a
    pfNames entry carries a malformed range.
    """
    rng_start, rng_end = 0, policy.num_vfs - 1
    for pf_selector in policy.nic_selector.pf_names:
        pf_name, start, end = parse_vf_range(pf_selector)
        if pf_name == iface.name:
            if start != INVALID_VF_INDEX or end != INVALID_VF_INDEX:
                rng_start, rng_end = start, end
            break

    return VfGroup(resource_name=policy.resource_name,
                   device_type=policy.device_type,
                   vf_range=f"{rng_start}-{rng_end}",
                   policy_name=policy.name,
                   mtu=policy.mtu,
                   is_rdma=policy.is_rdma,
                   vdpa_type=policy.vdpa_type)


def merge_configs(existing: Interface, incoming: Interface,
                  equal_priority: bool) -> Interface:
    """
    Merge an existing PF configuration into the incoming one.

    The incoming interface belongs to the policy applied later and carries
    exactly one VF group. Existing groups that share its resource name or
    overlap its range are dropped, the rest are appended to incoming.
    If nothing was kept and the priorities differ, incoming replaces the
    existing configuration entirely. Otherwise MTU and VF count become the
    maximum of both sides.

    incoming is modified in place and returned.
    """
    new_group = incoming.vf_groups[0]
    merged = False
    for group in existing.vf_groups:
        if (group.resource_name == new_group.resource_name
                or is_vf_range_overlapping(group.vf_range, new_group.vf_range)):
            logger.debug(
                "[RESOLVE] %s: dropping VF group %s (%s) in favour of %s (%s)",
                incoming.pci_address, group.resource_name, group.vf_range,
                new_group.resource_name, new_group.vf_range)
            continue
        merged = True
        incoming.vf_groups.append(group)

    if not equal_priority and not merged:
        return incoming

    incoming.mtu = max(incoming.mtu, existing.mtu)
    incoming.num_vfs = max(incoming.num_vfs, existing.num_vfs)
    return incoming


def apply_policy(policy: NodePolicy, state: NodeState,
                 equal_priority: bool) -> None:
    """
    Apply one policy to the desired interfaces of a node state.

    Only PFs present in the observed status can be selected. A PF gets a
    desired entry only when the policy requests VFs.
    """
    nic_selector = policy.nic_selector
    if nic_selector.is_empty():
        # an empty selector matches nothing
        return

    for iface in state.status.interfaces:
        if not selected(nic_selector, iface):
            continue
        logger.info("[RESOLVE] Policy %s selects interface %s (%s) on %s",
                    policy.name, iface.name, iface.pci_address, state.name)
        if policy.num_vfs <= 0:
            continue

        result = Interface(pci_address=iface.pci_address,
                           name=iface.name,
                           mtu=policy.mtu,
                           num_vfs=policy.num_vfs,
                           link_type=policy.link_type,
                           eswitch_mode=policy.eswitch_mode,
                           externally_managed=policy.externally_managed,
                           vf_groups=[generate_pf_name_vf_group(policy, iface)])
        for i, existing in enumerate(state.spec.interfaces):
            if existing.pci_address == result.pci_address:
                state.spec.interfaces[i] = merge_configs(
                    existing, result, equal_priority)
                break
        else:
            state.spec.interfaces.append(result)


class NodeStateResolution:
    """
    One resolution pass over a single node.

    Owns a private copy of the node state; policies are consumed one at a
    time in application order. equal_priority is derived from the priority
    of the previously applied policy.
    """

    def __init__(self,
                 state: NodeState,
                 feature_gate: Optional[FeatureGate] = None,
                 reset_spec: bool = True):
        self._state = copy.deepcopy(state)
        if reset_spec:
            self._state.spec = NodeStateSpec()
        self._feature_gate = feature_gate
        self._last_priority: Optional[int] = None
        self.applied: List[str] = []

    @property
    def manage_bridges(self) -> bool:
        return (self._feature_gate is not None and
                self._feature_gate.is_enabled(MANAGE_SOFTWARE_BRIDGES_FEATURE_GATE))

    def apply(self, policy: NodePolicy) -> 'NodeStateResolution':
        """Apply the next policy. Raises VfRangeError or BridgeConfigError."""
        equal_priority = self._last_priority == policy.priority
        apply_policy(policy, self._state, equal_priority)
        if self.manage_bridges:
            apply_bridge_config(policy, self._state)
        self._last_priority = policy.priority
        self.applied.append(policy.name)
        return self

    def result(self) -> NodeState:
        return copy.deepcopy(self._state)


def resolve_node_state(policies: Iterable[NodePolicy],
                       state: NodeState,
                       node_labels: Optional[Dict[str, str]] = None,
                       feature_gate: Optional[FeatureGate] = None) -> NodeState:
    """
    Compute the desired spec of a node from all policies.

    Policies whose nodeSelector doesn't match node_labels are skipped, as is
    the deprecated default policy. The input state is not modified.
    """
    node_labels = node_labels or {}
    resolution = NodeStateResolution(state, feature_gate)
    for policy in sort_policies(policies):
        if policy.name == DEFAULT_POLICY_NAME:
            continue
        if not policy_selects_node(policy, node_labels):
            continue
        logger.debug("[RESOLVE] Applying policy %s (priority %d) to %s",
                     policy.name, policy.priority, state.name)
        resolution.apply(policy)

    resolved = resolution.result()
    logger.info("[RESOLVE] Node %s: %d policies applied, %d interfaces, %d bridges",
                state.name, len(resolution.applied),
                len(resolved.spec.interfaces),
                len(resolved.spec.bridges.ovs or []))
    return resolved
