# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.

import json

import pytest

import constants
from netattdef import (
    OVSNetwork,
    SriovIBNetwork,
    SriovNetwork,
    get_or,
    ib_sriov_render_data,
    is_set,
    ovs_render_data,
    render_data,
    render_net_att_def,
    sriov_render_data,
)

PREFIX = "openshift.io"


def cni_config(net_att_def):
    return json.loads(net_att_def["spec"]["config"])


class TestTemplateHelpers:
    def test_get_or(self):
        assert get_or({"a": "x"}, "a", "y") == "x"
        assert get_or({"a": ""}, "a", "y") == "y"
        assert get_or({}, "a", "y") == "y"

    def test_is_set(self):
        assert is_set({"a": True}, "a")
        assert not is_set({"a": False}, "a")
        assert not is_set({}, "a")


class TestSriovNetwork:
    def test_minimal(self):
        net = SriovNetwork(name="net-a", namespace="network-operator",
                           resource_name="intelnics",
                           network_namespace="default")
        data = sriov_render_data(net, resource_prefix=PREFIX)

        assert data["CniType"] == "sriov"
        assert data["SriovNetworkNamespace"] == "default"
        assert data["SriovCniResourceName"] == "openshift.io/intelnics"
        assert data["VlanQoSConfigured"]
        assert not data["SpoofChkConfigured"]
        assert not data["MinTxRateConfigured"]

        doc = render_net_att_def(data)
        assert doc["apiVersion"] == constants.NET_ATT_DEF_API_VERSION
        assert doc["kind"] == "NetworkAttachmentDefinition"
        assert doc["metadata"]["name"] == "net-a"
        assert doc["metadata"]["namespace"] == "default"
        assert doc["metadata"]["annotations"] == {
            constants.NET_ATT_DEF_RESOURCE_NAME_ANNOTATION: "openshift.io/intelnics"
        }
        assert cni_config(doc) == {
            "cniVersion": constants.CNI_VERSION,
            "name": "net-a",
            "type": "sriov",
            "vlan": 0,
            "vlanQoS": 0,
            "ipam": {},
        }

    def test_optional_fields(self):
        net = SriovNetwork(name="net-a", namespace="network-operator",
                           resource_name="intelnics", vlan=100, vlan_qos=3,
                           vlan_proto="802.1ad", spoof_chk="on", trust="off",
                           link_state="enable", min_tx_rate=0, max_tx_rate=100,
                           capabilities='{"mac": true}',
                           ipam='{"type": "host-local", "subnet": "10.56.217.0/24"}',
                           log_level="debug", log_file="/tmp/sriov.log")

        config = cni_config(render_net_att_def(
            sriov_render_data(net, resource_prefix=PREFIX)))

        assert config["vlan"] == 100
        assert config["vlanQoS"] == 3
        assert config["vlanProto"] == "802.1ad"
        assert config["spoofchk"] == "on"
        assert config["trust"] == "off"
        assert config["link_state"] == "enable"
        assert config["min_tx_rate"] == 0
        assert config["max_tx_rate"] == 100
        assert config["capabilities"] == {"mac": True}
        assert config["ipam"] == {"type": "host-local", "subnet": "10.56.217.0/24"}
        assert config["logLevel"] == "debug"
        assert config["logFile"] == "/tmp/sriov.log"

    def test_unknown_states_are_dropped(self):
        net = SriovNetwork(name="net-a", namespace="network-operator",
                           resource_name="intelnics", spoof_chk="maybe",
                           link_state="up", vlan_qos=9)
        config = cni_config(render_net_att_def(
            sriov_render_data(net, resource_prefix=PREFIX)))
        assert "spoofchk" not in config
        assert "link_state" not in config
        assert "vlanQoS" not in config

    def test_meta_plugins(self):
        net = SriovNetwork(name="net-a", namespace="network-operator",
                           resource_name="intelnics",
                           meta_plugins_config='{"type": "tuning", "sysctl": {}}')
        config = cni_config(render_net_att_def(
            sriov_render_data(net, resource_prefix=PREFIX)))

        assert config["name"] == "net-a"
        assert [p["type"] for p in config["plugins"]] == ["sriov", "tuning"]
        assert "type" not in config

    def test_invalid_ipam(self):
        net = SriovNetwork(name="net-a", namespace="network-operator",
                           resource_name="intelnics", ipam='{"type": ')
        with pytest.raises(ValueError):
            render_net_att_def(sriov_render_data(net, resource_prefix=PREFIX))

    def test_resource_prefix_from_environment(self, monkeypatch):
        monkeypatch.setattr(constants, "RESOURCE_PREFIX", None)
        monkeypatch.setenv("RESOURCE_PREFIX", "example.com")
        net = SriovNetwork(name="net-a", namespace="network-operator",
                           resource_name="intelnics")
        assert sriov_render_data(net)["SriovCniResourceName"] == \
            "example.com/intelnics"

    def test_resource_prefix_from_runtime_config(self, monkeypatch):
        monkeypatch.setattr(constants, "RESOURCE_PREFIX", "nvidia.com")
        monkeypatch.setenv("RESOURCE_PREFIX", "example.com")
        net = SriovNetwork(name="net-a", namespace="network-operator",
                           resource_name="mlnx")
        assert sriov_render_data(net)["SriovCniResourceName"] == "nvidia.com/mlnx"


def test_ib_sriov_network():
    net = SriovIBNetwork(name="ib-net", namespace="network-operator",
                         resource_name="mlnx_ib", link_state="auto")
    data = ib_sriov_render_data(net, resource_prefix=PREFIX)

    assert not data["LogLevelConfigured"]
    assert cni_config(render_net_att_def(data)) == {
        "cniVersion": constants.CNI_VERSION,
        "name": "ib-net",
        "type": "ib-sriov",
        "link_state": "auto",
        "ipam": {},
    }


class TestOVSNetwork:
    def test_full(self):
        net = OVSNetwork(name="ovs-net", namespace="network-operator",
                         resource_name="switchdev", bridge="br-0000_86_00.0",
                         vlan=10, mtu=9000,
                         trunk=[{"minID": 100, "maxID": 200}, {"id": 300}],
                         interface_type="netdev")
        doc = render_net_att_def(ovs_render_data(net, resource_prefix=PREFIX))

        assert doc["metadata"]["annotations"][
            constants.NET_ATT_DEF_RESOURCE_NAME_ANNOTATION] == "openshift.io/switchdev"
        assert cni_config(doc) == {
            "cniVersion": constants.CNI_VERSION,
            "name": "ovs-net",
            "type": "ovs",
            "bridge": "br-0000_86_00.0",
            "vlan": 10,
            "mtu": 9000,
            "trunk": [{"minID": 100, "maxID": 200}, {"id": 300}],
            "interface_type": "netdev",
            "ipam": {},
        }

    def test_minimal(self):
        net = OVSNetwork(name="ovs-net", namespace="network-operator",
                         resource_name="switchdev")
        config = cni_config(render_net_att_def(
            ovs_render_data(net, resource_prefix=PREFIX)))
        assert config == {
            "cniVersion": constants.CNI_VERSION,
            "name": "ovs-net",
            "type": "ovs",
            "ipam": {},
        }


class TestQuoting:
    def test_sriov_name_with_quote(self):
        net = SriovNetwork(name='net"a', namespace="network-operator",
                           resource_name="intelnics", vlan_proto='802"1q')
        doc = render_net_att_def(sriov_render_data(net, resource_prefix=PREFIX))

        assert doc["metadata"]["name"] == 'net"a'
        config = cni_config(doc)
        assert config["name"] == 'net"a'
        assert config["vlanProto"] == '802"1q'

    def test_ovs_bridge_with_quote(self):
        net = OVSNetwork(name="ovs-net", namespace="network-operator",
                         resource_name="switchdev", bridge='br"0')
        config = cni_config(render_net_att_def(
            ovs_render_data(net, resource_prefix=PREFIX)))
        assert config["bridge"] == 'br"0'

    def test_invalid_meta_plugins(self):
        net = SriovNetwork(name="net-a", namespace="network-operator",
                           resource_name="intelnics",
                           meta_plugins_config='{"type": "tuning"')
        with pytest.raises(ValueError):
            render_net_att_def(sriov_render_data(net, resource_prefix=PREFIX))


class TestFromDict:
    def test_sriov_network(self):
        net = SriovNetwork.from_dict({
            "metadata": {"name": "net-a", "namespace": "network-operator"},
            "spec": {"resourceName": "intelnics", "networkNamespace": "default",
                     "vlan": 100, "vlanQoS": 2, "spoofChk": "on",
                     "minTxRate": 10, "metaPlugins": '{"type": "tuning"}'},
        })
        assert net.resource_name == "intelnics"
        assert net.network_namespace == "default"
        assert net.vlan_qos == 2
        assert net.min_tx_rate == 10
        assert net.max_tx_rate is None
        assert net.meta_plugins_config == '{"type": "tuning"}'

    def test_ovs_network(self):
        net = OVSNetwork.from_dict({
            "metadata": {"name": "ovs-net", "namespace": "network-operator"},
            "spec": {"resourceName": "switchdev", "bridge": "br-0",
                     "trunk": [{"id": 300}], "interfaceType": "netdev"},
        })
        assert net.trunk == [{"id": 300}]
        assert net.interface_type == "netdev"


@pytest.mark.parametrize("net, cni_type", [
    (SriovNetwork(name="a", namespace="ns", resource_name="r"), "sriov"),
    (SriovIBNetwork(name="a", namespace="ns", resource_name="r"), "ib-sriov"),
    (OVSNetwork(name="a", namespace="ns", resource_name="r"), "ovs"),
])
def test_render_data_picks_network_type(net, cni_type):
    assert render_data(net, resource_prefix=PREFIX)["CniType"] == cni_type
