# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""Policy selection: which nodes and which PFs a policy applies to."""

import logging
import re
from typing import Dict

from models import InterfaceExt, NicSelector, NodePolicy
from vf_range import split_device_from_range

logger = logging.getLogger(__name__)

# "<key>:<value>", e.g. "openstack/NetworkID:ada9ec67-..."
_NET_FILTER_RE = re.compile(r"^\s*(\S+)\s*:\s*(\S+)", re.MULTILINE)


def net_filter_match(net_filter: str, net_value: str) -> bool:
    """Return True if both filters parse and their key and value are equal."""
    filter_match = _NET_FILTER_RE.search(net_filter)
    if filter_match is None:
        logger.info("Invalid NetFilter spec: %r", net_filter)
        return False

    value_match = _NET_FILTER_RE.search(net_value)
    if value_match is None:
        logger.info("Invalid netValue: %r", net_value)
        return False

    return filter_match.groups() == value_match.groups()


def selected(selector: NicSelector, iface: InterfaceExt) -> bool:
    """
    Check whether a NIC selector matches one observed PF.

    Every non-empty criterion has to match. An empty selector matches
    nothing; callers skip such policies up front via NicSelector.is_empty().
    """
    if selector.is_empty():
        return False
    if selector.vendor and selector.vendor != iface.vendor:
        return False
    if selector.device_id and selector.device_id != iface.device_id:
        return False
    if selector.root_devices and iface.pci_address not in selector.root_devices:
        return False
    if selector.pf_names:
        pf_names = [split_device_from_range(p)[0] for p in selector.pf_names]
        if iface.name not in pf_names:
            return False
    if selector.net_filter and not net_filter_match(selector.net_filter,
                                                    iface.net_filter):
        return False
    return True


def policy_selects_node(policy: NodePolicy, node_labels: Dict[str, str]) -> bool:
    """True if every nodeSelector label is present on the node with the same value."""
    for key, value in policy.node_selector.items():
        if node_labels.get(key) != value:
            return False
    return True
