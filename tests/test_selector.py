# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.

import pytest

from models import NicSelector
from selector import net_filter_match, policy_selects_node, selected

from testlib import (
    E810_DEVICE,
    INTEL_VENDOR,
    PF0_NAME,
    PF0_PCI,
    PF1_PCI,
    gen_iface_ext,
    gen_policy,
)

NET_ID = "openstack/NetworkID:ada9ec67-2c97-467c-b674-c47200e2f5da"


class TestSelected:
    @pytest.mark.parametrize("iface", [
        gen_iface_ext(),
        gen_iface_ext("eth0", PF1_PCI, vendor="", device_id=""),
    ])
    def test_empty_selector_matches_nothing(self, iface):
        selector = NicSelector()
        assert selector.is_empty()
        assert not selected(selector, iface)

    def test_vendor_and_device(self):
        iface = gen_iface_ext()
        assert selected(NicSelector(vendor=INTEL_VENDOR), iface)
        assert selected(NicSelector(vendor=INTEL_VENDOR, device_id=E810_DEVICE),
                        iface)
        assert not selected(NicSelector(vendor="15b3"), iface)
        assert not selected(
            NicSelector(vendor=INTEL_VENDOR, device_id="1017"), iface)

    def test_root_devices(self):
        iface = gen_iface_ext()
        assert selected(NicSelector(root_devices=[PF1_PCI, PF0_PCI]), iface)
        assert not selected(NicSelector(root_devices=[PF1_PCI]), iface)

    def test_pf_names_ignore_range_suffix(self):
        iface = gen_iface_ext()
        assert selected(NicSelector(pf_names=[PF0_NAME]), iface)
        assert selected(NicSelector(pf_names=[f"{PF0_NAME}#0-3"]), iface)
        assert not selected(NicSelector(pf_names=["ens2f0#0-3"]), iface)

    def test_all_criteria_must_match(self):
        iface = gen_iface_ext()
        selector = NicSelector(vendor=INTEL_VENDOR, pf_names=["ens2f0"])
        assert not selected(selector, iface)

    def test_net_filter(self):
        iface = gen_iface_ext(net_filter=NET_ID)
        assert selected(NicSelector(net_filter=NET_ID), iface)
        assert not selected(
            NicSelector(net_filter="openstack/NetworkID:other"), iface)


class TestNetFilterMatch:
    def test_equal(self):
        assert net_filter_match(NET_ID, NET_ID)

    def test_whitespace_around_separator(self):
        assert net_filter_match("  openstack/NetworkID : abc", "openstack/NetworkID:abc")

    def test_key_differs(self):
        assert not net_filter_match("openstack/NetworkID:abc", "other/NetworkID:abc")

    def test_invalid_filter(self):
        assert not net_filter_match("no-separator", NET_ID)
        assert not net_filter_match(NET_ID, "")


class TestPolicySelectsNode:
    def test_empty_node_selector_selects_all(self):
        assert policy_selects_node(gen_policy("p"), {})

    def test_labels_must_match(self):
        policy = gen_policy(
            "p", node_selector={"feature.node.kubernetes.io/network-sriov.capable": "true"})
        assert policy_selects_node(
            policy, {"feature.node.kubernetes.io/network-sriov.capable": "true",
                     "kubernetes.io/hostname": "worker-0"})
        assert not policy_selects_node(
            policy, {"feature.node.kubernetes.io/network-sriov.capable": "false"})
        assert not policy_selects_node(policy, {})
