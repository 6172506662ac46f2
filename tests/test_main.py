# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.

import json
import sys
from unittest.mock import MagicMock

import constants
from feature_gate import FeatureGate
from main import (
    detect_drift,
    load_input_file,
    load_input_networks,
    main,
    render_networks,
    run_pass,
)
from models import Interface, VfGroup
from policy_resolver import resolve_node_state
from testlib import (
    NODE_NAME,
    PF0_NAME,
    PF0_PCI,
    gen_iface_ext,
    gen_node_state,
    gen_policy,
    gen_vfs,
)


def feature_gate(**features):
    gate = FeatureGate()
    gate.init(features)
    return gate


def test_load_input_file(tmp_path):
    path = tmp_path / "input.json"
    path.write_text(json.dumps({
        "policies": [{
            "metadata": {"name": "policy-1"},
            "spec": {"resourceName": "net", "numVfs": 4,
                     "nicSelector": {"pfNames": [PF0_NAME]}},
        }],
        "nodeStates": [{
            "metadata": {"name": NODE_NAME, "resourceVersion": "1"},
            "status": {"interfaces": [{"pciAddress": PF0_PCI, "name": PF0_NAME}]},
        }],
        "nodeLabels": {NODE_NAME: {"kubernetes.io/os": "linux"}},
    }))

    policies, states, labels = load_input_file(str(path))

    assert [p.name for p in policies] == ["policy-1"]
    assert states[0].status.interfaces[0].name == PF0_NAME
    assert labels == {NODE_NAME: {"kubernetes.io/os": "linux"}}


class TestRunPass:
    def test_resolves_and_writes_changed_specs(self):
        store = MagicMock()
        policies = [gen_policy("policy-a", [f"{PF0_NAME}#0-3"], num_vfs=4)]

        resolved = run_pass(policies, [gen_node_state()], {}, feature_gate(),
                            store=store)

        iface = resolved[NODE_NAME]["interfaces"][0]
        assert iface["pciAddress"] == PF0_PCI
        assert iface["numVfs"] == 4
        assert iface["vfGroups"][0]["vfRange"] == "0-3"
        assert store.update_spec.call_count == 1

    def test_unchanged_spec_is_not_written(self):
        store = MagicMock()
        policies = [gen_policy("policy-a", num_vfs=4)]
        state = gen_node_state()
        state.spec = resolve_node_state(policies, state).spec

        run_pass(policies, [state], {}, feature_gate(), store=store)

        store.update_spec.assert_not_called()

    def test_node_selector(self):
        policies = [gen_policy("policy-a", node_selector={"sriov": "true"})]
        states = [gen_node_state(), gen_node_state(name="worker-1")]

        resolved = run_pass(policies, states, {"worker-1": {"sriov": "true"}},
                            feature_gate())

        assert resolved[NODE_NAME] == {}
        assert len(resolved["worker-1"]["interfaces"]) == 1

    def test_failing_node_is_skipped(self):
        policies = [gen_policy("policy-bad", [f"{PF0_NAME}#a-b"])]
        states = [
            gen_node_state(),
            gen_node_state(gen_iface_ext("ens2f0", "0000:3b:00.0"),
                           name="worker-1"),
        ]

        resolved = run_pass(policies, states, {}, feature_gate())

        assert list(resolved) == ["worker-1"]


class TestDetectDrift:
    def test_in_sync(self):
        state = gen_node_state(gen_iface_ext(num_vfs=4, vfs=gen_vfs(4)))
        state.spec.interfaces = [
            Interface(pci_address=PF0_PCI, name=PF0_NAME, num_vfs=4,
                      vf_groups=[VfGroup(resource_name="net",
                                         device_type="netdevice",
                                         vf_range="0-3")])
        ]
        assert not detect_drift(state, manage_bridges=False)

    def test_num_vfs_changed(self):
        state = gen_node_state()
        state.spec.interfaces = [
            Interface(pci_address=PF0_PCI, name=PF0_NAME, num_vfs=4)
        ]
        assert detect_drift(state, manage_bridges=False)

    def test_missing_interface_is_not_drift(self):
        state = gen_node_state()
        state.spec.interfaces = [Interface(pci_address="0000:3b:00.0",
                                           num_vfs=4)]
        assert not detect_drift(state, manage_bridges=False)


NETWORKS = {
    "sriovNetworks": [{
        "metadata": {"name": "net-a", "namespace": "network-operator"},
        "spec": {"resourceName": "intelnics", "networkNamespace": "default",
                 "vlan": 100},
    }, {
        "metadata": {"name": "net-bad", "namespace": "network-operator"},
        "spec": {"resourceName": "intelnics", "ipam": '{"type": '},
    }],
    "sriovIBNetworks": [{
        "metadata": {"name": "ib-net", "namespace": "network-operator"},
        "spec": {"resourceName": "mlnx_ib", "linkState": "auto"},
    }],
    "ovsNetworks": [{
        "metadata": {"name": "ovs-net", "namespace": "network-operator"},
        "spec": {"resourceName": "switchdev", "bridge": "br-0000_86_00.0"},
    }],
}


class TestRenderNetworks:
    def test_load_and_render(self, tmp_path, monkeypatch):
        monkeypatch.setattr(constants, "RESOURCE_PREFIX", "openshift.io")
        path = tmp_path / "networks.json"
        path.write_text(json.dumps(NETWORKS))

        net_att_defs = render_networks(load_input_networks(str(path)))

        assert [(d["metadata"]["namespace"], d["metadata"]["name"])
                for d in net_att_defs] == [("default", "net-a"),
                                           ("network-operator", "ib-net"),
                                           ("network-operator", "ovs-net")]
        configs = [json.loads(d["spec"]["config"]) for d in net_att_defs]
        assert [c["type"] for c in configs] == ["sriov", "ib-sriov", "ovs"]
        assert configs[0]["vlan"] == 100
        assert configs[2]["bridge"] == "br-0000_86_00.0"
        assert net_att_defs[0]["metadata"]["annotations"][
            constants.NET_ATT_DEF_RESOURCE_NAME_ANNOTATION] == \
            "openshift.io/intelnics"

    def test_cli(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setattr(constants, "RESOURCE_PREFIX", None)
        monkeypatch.setattr(constants, "OPERATOR_NAMESPACE",
                            constants.OPERATOR_NAMESPACE)
        path = tmp_path / "networks.json"
        path.write_text(json.dumps(NETWORKS))
        monkeypatch.setattr(sys, "argv", [
            "sriov-node-policy-resolver", "--input", str(path),
            "--render-networks", "--resource-prefix", "example.com"
        ])

        main()

        net_att_defs = json.loads(capsys.readouterr().out)
        assert len(net_att_defs) == 3
        assert {
            d["metadata"]["annotations"][
                constants.NET_ATT_DEF_RESOURCE_NAME_ANNOTATION]
            for d in net_att_defs
        } == {"example.com/intelnics", "example.com/mlnx_ib",
              "example.com/switchdev"}


def test_cli_resolves_input_file(tmp_path, monkeypatch, capsys):
    monkeypatch.setattr(constants, "RESOURCE_PREFIX", None)
    monkeypatch.setattr(constants, "OPERATOR_NAMESPACE",
                        constants.OPERATOR_NAMESPACE)
    path = tmp_path / "input.json"
    path.write_text(json.dumps({
        "policies": [{
            "metadata": {"name": "policy-1"},
            "spec": {"resourceName": "net", "numVfs": 4,
                     "nicSelector": {"pfNames": [PF0_NAME]}},
        }],
        "nodeStates": [{
            "metadata": {"name": NODE_NAME},
            "status": {"interfaces": [{"pciAddress": PF0_PCI, "name": PF0_NAME}]},
        }],
    }))
    monkeypatch.setattr(sys, "argv",
                        ["sriov-node-policy-resolver", "--input", str(path)])

    main()

    resolved = json.loads(capsys.readouterr().out)
    assert resolved[NODE_NAME]["interfaces"][0]["numVfs"] == 4
