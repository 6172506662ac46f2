# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
Constants and configuration for the SR-IOV node policy resolver.

This module contains all constants used across the application:
- Runtime configuration (set via command-line arguments)
- SR-IOV Network Operator CR coordinates and annotations
- Interface modes, link types and device types
- Feature gate names
- CNI rendering values
"""

from typing import Optional

# ============================================================================
# Runtime Configuration (set via command-line arguments in main.py)
# ============================================================================
OPERATOR_NAMESPACE: str = 'network-operator'
RESOURCE_PREFIX: Optional[str] = None

# Number of times a conflicting NodeState write is re-read and retried
# before giving up.
UPDATE_CONFLICT_RETRIES: int = 5

# ============================================================================
# SR-IOV Network Operator CR Configuration
# ============================================================================
SRIOV_GROUP = "sriovnetwork.openshift.io"
SRIOV_VERSION = "v1"
SRIOV_NODE_STATE_PLURAL = "sriovnetworknodestates"
SRIOV_POLICY_PLURAL = "sriovnetworknodepolicies"
SRIOV_NETWORK_PLURAL = "sriovnetworks"
SRIOV_IB_NETWORK_PLURAL = "sriovibnetworks"
OVS_NETWORK_PLURAL = "ovsnetworks"

# ConfigMap holding "vendor pfDevice vfDevice" entries
SUPPORTED_NIC_ID_CONFIGMAP = "supported-nic-ids"

# Policy kept for backwards compatibility only; never applied
DEFAULT_POLICY_NAME = "default"

# RFC3339 timestamp: earliest time a node state may be removed when the
# config daemon pod is missing from the node
NODE_STATE_KEEP_UNTIL_ANNOTATION = "sriovnetwork.openshift.io/keep-state-until"

# ============================================================================
# Interface Configuration
# ============================================================================
ESWITCH_MODE_LEGACY = "legacy"
ESWITCH_MODE_SWITCHDEV = "switchdev"

LINK_TYPE_ETH = "ETH"
LINK_TYPE_IB = "IB"

LINK_ADMIN_STATE_UP = "up"
LINK_ADMIN_STATE_DOWN = "down"

DEVICE_TYPE_NETDEVICE = "netdevice"
DEVICE_TYPE_VFIO_PCI = "vfio-pci"

# Userspace (fast-path) drivers; a VF bound to one of these is not usable
# as a kernel net device
DPDK_DRIVERS = ["igb_uio", "vfio-pci", "uio_pci_generic"]

# GUID reported before the node GUID of an IB/RoCE VF has been assigned
UNINITIALIZED_NODE_GUID = "0000:0000:0000:0000"

# ============================================================================
# Feature Gates
# ============================================================================
PARALLEL_NIC_CONFIG_FEATURE_GATE = "parallelNicConfig"
RESOURCE_INJECTOR_MATCH_CONDITION_FEATURE_GATE = "resourceInjectorMatchCondition"
METRICS_EXPORTER_FEATURE_GATE = "metricsExporter"
MANAGE_SOFTWARE_BRIDGES_FEATURE_GATE = "manageSoftwareBridges"
BLOCK_DEVICE_PLUGIN_UNTIL_CONFIGURED_FEATURE_GATE = "blockDevicePluginUntilConfigured"
MELLANOX_FIRMWARE_RESET_FEATURE_GATE = "mellanoxFirmwareReset"

# ============================================================================
# CNI Rendering
# ============================================================================
SRIOV_CNI_STATE_ENABLE = "enable"
SRIOV_CNI_STATE_DISABLE = "disable"
SRIOV_CNI_STATE_AUTO = "auto"
SRIOV_CNI_STATE_OFF = "off"
SRIOV_CNI_STATE_ON = "on"
SRIOV_CNI_IPAM = '"ipam"'
SRIOV_CNI_IPAM_EMPTY = SRIOV_CNI_IPAM + ":{}"

NET_ATT_DEF_API_VERSION = "k8s.cni.cncf.io/v1"
NET_ATT_DEF_RESOURCE_NAME_ANNOTATION = "k8s.v1.cni.cncf.io/resourceName"
CNI_VERSION = "1.0.0"
