# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""SriovNetworkNodeState / SriovNetworkNodePolicy access.

Reads policies, node states, network CRs and node labels from the cluster
and writes resolved node state specs back. Writes always carry the
resourceVersion they were computed against; the config daemon updates the
status of the same objects concurrently, so conflicts are expected and
retried.
"""

import copy
import logging
from typing import Dict, List, Optional

from kubernetes import client

from constants import (
    OVS_NETWORK_PLURAL,
    SRIOV_GROUP,
    SRIOV_IB_NETWORK_PLURAL,
    SRIOV_NETWORK_PLURAL,
    SRIOV_NODE_STATE_PLURAL,
    SRIOV_POLICY_PLURAL,
    SRIOV_VERSION,
    UPDATE_CONFLICT_RETRIES,
)
from models import NodePolicy, NodeState
from netattdef import Network, OVSNetwork, SriovIBNetwork, SriovNetwork

logger = logging.getLogger(__name__)


class ConflictRetryExhausted(RuntimeError):
    """Raised when a node state write keeps conflicting."""


class NodeStateStore:
    """CustomObjectsApi access to SR-IOV operator objects in one namespace."""

    def __init__(self,
                 custom_api: client.CustomObjectsApi,
                 namespace: str,
                 core_api: Optional[client.CoreV1Api] = None):
        self.custom_api = custom_api
        self.core_api = core_api
        self.namespace = namespace

    def _list(self, plural: str) -> List[Dict]:
        resp = self.custom_api.list_namespaced_custom_object(
            group=SRIOV_GROUP,
            version=SRIOV_VERSION,
            namespace=self.namespace,
            plural=plural,
        )
        return resp.get("items", [])

    def list_policies(self) -> List[NodePolicy]:
        items = self._list(SRIOV_POLICY_PLURAL)
        logger.info("[SYNC] Found %d node policies in namespace '%s'",
                    len(items), self.namespace)
        return [NodePolicy.from_dict(obj) for obj in items]

    def list_node_states(self) -> List[NodeState]:
        items = self._list(SRIOV_NODE_STATE_PLURAL)
        logger.info("[SYNC] Found %d node states in namespace '%s'",
                    len(items), self.namespace)
        return [NodeState.from_dict(obj) for obj in items]

    def list_networks(self) -> List[Network]:
        """SriovNetwork, SriovIBNetwork and OVSNetwork objects, in that order."""
        networks: List[Network] = []
        for plural, network_type in ((SRIOV_NETWORK_PLURAL, SriovNetwork),
                                     (SRIOV_IB_NETWORK_PLURAL, SriovIBNetwork),
                                     (OVS_NETWORK_PLURAL, OVSNetwork)):
            items = self._list(plural)
            logger.info("[SYNC] Found %d %s in namespace '%s'", len(items),
                        plural, self.namespace)
            networks.extend(network_type.from_dict(obj) for obj in items)
        return networks

    def get_node_state(self, name: str) -> NodeState:
        obj = self.custom_api.get_namespaced_custom_object(
            group=SRIOV_GROUP,
            version=SRIOV_VERSION,
            namespace=self.namespace,
            plural=SRIOV_NODE_STATE_PLURAL,
            name=name,
        )
        return NodeState.from_dict(obj)

    def list_node_labels(self) -> Dict[str, Dict[str, str]]:
        """node name -> labels; empty if no CoreV1Api was given."""
        if self.core_api is None:
            return {}
        nodes = self.core_api.list_node()
        return {
            node.metadata.name: dict(node.metadata.labels or {})
            for node in nodes.items
        }

    def update_spec(self,
                    state: NodeState,
                    max_retries: int = UPDATE_CONFLICT_RETRIES) -> NodeState:
        """
        Write the spec and annotations of state to the cluster.

        On a 409 conflict the object is re-read and the spec of state is
        laid over the fresh copy, so annotations written concurrently are
        kept. Up to max_retries retries. Returns the stored object.
        """
        current = state
        for attempt in range(max_retries + 1):
            body = current.to_dict()
            body.pop("status", None)
            try:
                updated = self.custom_api.replace_namespaced_custom_object(
                    group=SRIOV_GROUP,
                    version=SRIOV_VERSION,
                    namespace=self.namespace,
                    plural=SRIOV_NODE_STATE_PLURAL,
                    name=state.name,
                    body=body,
                )
            except client.exceptions.ApiException as e:
                if e.status != 409:
                    raise
                logger.warning(
                    "[SYNC] Conflict updating node state %s (attempt %d/%d), "
                    "re-reading", state.name, attempt + 1, max_retries + 1)
                current = self.get_node_state(state.name)
                current.spec = copy.deepcopy(state.spec)
                continue

            logger.info("[SYNC] Updated node state %s (resourceVersion %s)",
                        state.name,
                        updated.get("metadata", {}).get("resourceVersion"))
            return NodeState.from_dict(updated)

        raise ConflictRetryExhausted(
            f"node state {state.name}: still conflicting after "
            f"{max_retries + 1} attempts")
