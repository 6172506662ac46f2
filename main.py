#!/usr/bin/env python3
# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
SR-IOV Node Policy Resolver - Entry Point

Runs one resolution pass: applies every SriovNetworkNodePolicy to every
SriovNetworkNodeState, reports which nodes have drifted from their desired
configuration and prints the resolved specs. Input comes from the cluster or
from a JSON file; resolved specs are written back only with --apply.

With --render-networks it prints the NetworkAttachmentDefinitions for the
SriovNetwork, SriovIBNetwork and OVSNetwork objects instead.
"""

import argparse
import json
import logging
import sys
from typing import Dict, List, Optional, Tuple

from kubernetes import client, config

import constants
from drift import need_to_update_bridges, need_to_update_sriov
from feature_gate import FeatureGate, parse_feature_gates
from models import NodePolicy, NodeState
from netattdef import (
    Network,
    OVSNetwork,
    SriovIBNetwork,
    SriovNetwork,
    render_data,
    render_net_att_def,
)
from nic_ids import NicIdTable
from policy_resolver import resolve_node_state
from state_store import NodeStateStore

# Configure logging
logging.basicConfig(level=logging.INFO,
                    format='%(asctime)s [%(levelname)s] %(message)s',
                    handlers=[logging.StreamHandler(sys.stderr)])
logger = logging.getLogger(__name__)


def load_input_file(
    path: str
) -> Tuple[List[NodePolicy], List[NodeState], Dict[str, Dict[str, str]]]:
    """
    Load policies, node states and node labels from a JSON file of the form
    {"policies": [...], "nodeStates": [...], "nodeLabels": {"node": {...}}}
    where policies and node states are CR objects.
    """
    with open(path) as f:
        data = json.load(f)
    policies = [NodePolicy.from_dict(p) for p in data.get("policies", [])]
    states = [NodeState.from_dict(s) for s in data.get("nodeStates", [])]
    return policies, states, data.get("nodeLabels", {})


def load_input_networks(path: str) -> List[Network]:
    """
    Load network CRs from a JSON file with "sriovNetworks",
    "sriovIBNetworks" and "ovsNetworks" lists.
    """
    with open(path) as f:
        data = json.load(f)
    networks: List[Network] = []
    for key, network_type in (("sriovNetworks", SriovNetwork),
                              ("sriovIBNetworks", SriovIBNetwork),
                              ("ovsNetworks", OVSNetwork)):
        networks.extend(network_type.from_dict(n) for n in data.get(key, []))
    return networks


def render_networks(networks: List[Network],
                    resource_prefix: Optional[str] = None) -> List[Dict]:
    """
    Render one NetworkAttachmentDefinition per network.

    A network whose CNI config doesn't render is logged and skipped.
    """
    net_att_defs = []
    for net in networks:
        try:
            net_att_defs.append(
                render_net_att_def(render_data(net, resource_prefix)))
        except ValueError as e:
            logger.error("[RENDER] Failed to render network %s/%s: %s",
                         net.namespace, net.name, e)
    logger.info("[RENDER] Rendered %d of %d networks", len(net_att_defs),
                len(networks))
    return net_att_defs


def check_supported_models(state: NodeState, nic_ids: NicIdTable) -> None:
    for iface in state.status.interfaces:
        if not nic_ids.is_supported_model(iface.vendor, iface.device_id):
            logger.warning("[DRIFT] %s: interface %s (%s) is not a supported model",
                           state.name, iface.name, iface.pci_address)


def detect_drift(state: NodeState, manage_bridges: bool) -> bool:
    """True if any desired interface or the bridges of state need an update."""
    drifted = False
    for iface in state.spec.interfaces:
        observed = state.get_interface_state_by_pci_address(iface.pci_address)
        if observed is None:
            logger.warning("[DRIFT] %s: desired interface %s not found in status",
                           state.name, iface.pci_address)
            continue
        if need_to_update_sriov(iface, observed):
            logger.info("[DRIFT] %s: interface %s (%s) needs reconfiguration",
                        state.name, iface.name, iface.pci_address)
            drifted = True
    if manage_bridges and need_to_update_bridges(state.spec.bridges,
                                                 state.status.bridges):
        logger.info("[DRIFT] %s: software bridges need reconfiguration",
                    state.name)
        drifted = True
    return drifted


def run_pass(policies: List[NodePolicy],
             states: List[NodeState],
             node_labels: Dict[str, Dict[str, str]],
             feature_gate: FeatureGate,
             nic_ids: Optional[NicIdTable] = None,
             store: Optional[NodeStateStore] = None) -> Dict[str, Dict]:
    """
    Resolve every node state and return node name -> resolved spec dict.

    A node that fails to resolve is logged and left out of the result; the
    other nodes are still processed.
    """
    manage_bridges = feature_gate.is_enabled(
        constants.MANAGE_SOFTWARE_BRIDGES_FEATURE_GATE)
    resolved_specs: Dict[str, Dict] = {}
    for state in states:
        try:
            resolved = resolve_node_state(policies, state,
                                          node_labels.get(state.name, {}),
                                          feature_gate)
        except ValueError as e:
            logger.error("[RESOLVE] Failed to resolve node %s: %s", state.name, e)
            continue

        if nic_ids is not None:
            check_supported_models(resolved, nic_ids)
        detect_drift(resolved, manage_bridges)

        resolved_specs[state.name] = resolved.spec_dict()
        if store is not None and resolved.spec_dict() != state.spec_dict():
            store.update_spec(resolved)
    return resolved_specs


def connect_store(namespace: str) -> NodeStateStore:
    """Load the Kubernetes config (in-cluster first) and build a store."""
    try:
        config.load_incluster_config()
        logger.info("[INIT] Loaded in-cluster Kubernetes config")
    except config.ConfigException:
        config.load_kube_config()
        logger.info("[INIT] Loaded kubeconfig")
    return NodeStateStore(client.CustomObjectsApi(),
                          namespace,
                          core_api=client.CoreV1Api())


def resolve(args: argparse.Namespace, store: Optional[NodeStateStore],
            feature_gate: FeatureGate) -> Dict[str, Dict]:
    """Resolution pass over file input, or over the cluster through store."""
    nic_ids = None
    if args.input:
        policies, states, node_labels = load_input_file(args.input)
    else:
        policies = store.list_policies()
        states = store.list_node_states()
        node_labels = store.list_node_labels()
        if args.supported_nic_ids:
            nic_ids = NicIdTable.from_config_map(store.core_api,
                                                 constants.OPERATOR_NAMESPACE)
    return run_pass(policies, states, node_labels, feature_gate,
                    nic_ids=nic_ids,
                    store=store if args.apply else None)


def main():
    """Main entry point for the SR-IOV node policy resolver."""
    parser = argparse.ArgumentParser(
        description=
        "Resolve SriovNetworkNodePolicies into SriovNetworkNodeState specs "
        "and report configuration drift")
    parser.add_argument(
        '--namespace',
        default=constants.OPERATOR_NAMESPACE,
        help='Namespace of the SR-IOV operator objects (default: %(default)s)')
    parser.add_argument('--log-level',
                        default='info',
                        choices=[
                            'debug', 'info', 'warning', 'error', 'DEBUG',
                            'INFO', 'WARNING', 'ERROR'
                        ],
                        help='Log level (default: info)')
    parser.add_argument(
        '--feature-gates',
        default='',
        type=parse_feature_gates,
        help='Comma-separated feature gate overrides, e.g. "manageSoftwareBridges=true"')
    parser.add_argument(
        '--supported-nic-ids',
        action='store_true',
        help=f'Warn about interfaces missing from the {constants.SUPPORTED_NIC_ID_CONFIGMAP} ConfigMap')
    parser.add_argument(
        '--input',
        help='Read policies and node states from this JSON file instead of the cluster')
    parser.add_argument('--apply',
                        action='store_true',
                        help='Write resolved specs back to the cluster')
    parser.add_argument(
        '--render-networks',
        action='store_true',
        help='Print NetworkAttachmentDefinitions for the network objects '
        'instead of resolving node states')
    parser.add_argument(
        '--resource-prefix',
        help='Resource name prefix for rendered networks (default: $RESOURCE_PREFIX)')
    args = parser.parse_args()

    # Set log level from argument (convert to uppercase for Python logging module)
    logging.getLogger().setLevel(getattr(logging, args.log_level.upper()))

    # Suppress verbose Kubernetes client logs
    logging.getLogger('kubernetes').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)

    if args.input and (args.apply or args.supported_nic_ids):
        parser.error('--apply and --supported-nic-ids need cluster input')
    if args.render_networks and (args.apply or args.supported_nic_ids):
        parser.error('--render-networks can\'t be combined with --apply or '
                     '--supported-nic-ids')

    constants.OPERATOR_NAMESPACE = args.namespace
    constants.RESOURCE_PREFIX = args.resource_prefix

    feature_gate = FeatureGate()
    feature_gate.init(args.feature_gates)
    logger.info("[INIT] Feature gates: %s", feature_gate)

    store = None
    try:
        if not args.input:
            store = connect_store(constants.OPERATOR_NAMESPACE)

        if args.render_networks:
            networks = (load_input_networks(args.input)
                        if args.input else store.list_networks())
            output = render_networks(networks)
        else:
            output = resolve(args, store, feature_gate)
    except Exception as e:
        logger.error("[MAIN] Run failed: %s", e, exc_info=True)
        sys.exit(1)

    json.dump(output, sys.stdout, indent=2, sort_keys=True)
    sys.stdout.write("\n")


if __name__ == "__main__":
    main()
