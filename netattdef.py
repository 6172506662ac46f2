# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
NetworkAttachmentDefinition rendering for SR-IOV, IB-SR-IOV and OVS networks.

Rendering happens in two steps:
- *_render_data() turns a network CR into the flat key/value mapping the CNI
  config templates consume ("CniType", "CapabilitiesConfigured", ...)
- render_net_att_def() builds the NetworkAttachmentDefinition object from
  such a mapping, adding optional CNI fields only when their
  "...Configured" toggle is set
- render_data() picks the mapping for any of the three network types
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import constants
from constants import (
    SRIOV_CNI_IPAM,
    SRIOV_CNI_IPAM_EMPTY,
    SRIOV_CNI_STATE_AUTO,
    SRIOV_CNI_STATE_DISABLE,
    SRIOV_CNI_STATE_ENABLE,
    SRIOV_CNI_STATE_OFF,
    SRIOV_CNI_STATE_ON,
)

logger = logging.getLogger(__name__)

_LINK_STATES = (SRIOV_CNI_STATE_ENABLE, SRIOV_CNI_STATE_DISABLE,
                SRIOV_CNI_STATE_AUTO)
_ON_OFF_STATES = (SRIOV_CNI_STATE_ON, SRIOV_CNI_STATE_OFF)


# ============================================================================
# Network CRs
# ============================================================================


@dataclass
class SriovNetwork:
    name: str
    namespace: str
    resource_name: str
    network_namespace: str = ""
    vlan: int = 0
    vlan_qos: int = 0
    vlan_proto: str = ""
    spoof_chk: str = ""
    trust: str = ""
    link_state: str = ""
    min_tx_rate: Optional[int] = None
    max_tx_rate: Optional[int] = None
    capabilities: str = ""
    ipam: str = ""
    meta_plugins_config: str = ""
    log_level: str = ""
    log_file: str = ""

    @classmethod
    def from_dict(cls, obj: Dict) -> 'SriovNetwork':
        metadata = obj.get("metadata", {})
        spec = obj.get("spec", {})
        return cls(name=metadata.get("name", ""),
                   namespace=metadata.get("namespace", ""),
                   resource_name=spec.get("resourceName", ""),
                   network_namespace=spec.get("networkNamespace", ""),
                   vlan=spec.get("vlan", 0),
                   vlan_qos=spec.get("vlanQoS", 0),
                   vlan_proto=spec.get("vlanProto", ""),
                   spoof_chk=spec.get("spoofChk", ""),
                   trust=spec.get("trust", ""),
                   link_state=spec.get("linkState", ""),
                   min_tx_rate=spec.get("minTxRate"),
                   max_tx_rate=spec.get("maxTxRate"),
                   capabilities=spec.get("capabilities", ""),
                   ipam=spec.get("ipam", ""),
                   meta_plugins_config=spec.get("metaPlugins", ""),
                   log_level=spec.get("logLevel", ""),
                   log_file=spec.get("logFile", ""))


@dataclass
class SriovIBNetwork:
    name: str
    namespace: str
    resource_name: str
    network_namespace: str = ""
    link_state: str = ""
    capabilities: str = ""
    ipam: str = ""
    meta_plugins_config: str = ""

    @classmethod
    def from_dict(cls, obj: Dict) -> 'SriovIBNetwork':
        metadata = obj.get("metadata", {})
        spec = obj.get("spec", {})
        return cls(name=metadata.get("name", ""),
                   namespace=metadata.get("namespace", ""),
                   resource_name=spec.get("resourceName", ""),
                   network_namespace=spec.get("networkNamespace", ""),
                   link_state=spec.get("linkState", ""),
                   capabilities=spec.get("capabilities", ""),
                   ipam=spec.get("ipam", ""),
                   meta_plugins_config=spec.get("metaPlugins", ""))


@dataclass
class OVSNetwork:
    name: str
    namespace: str
    resource_name: str
    network_namespace: str = ""
    capabilities: str = ""
    bridge: str = ""
    vlan: int = 0
    mtu: int = 0
    trunk: List[Dict[str, int]] = field(default_factory=list)
    interface_type: str = ""
    ipam: str = ""
    meta_plugins_config: str = ""

    @classmethod
    def from_dict(cls, obj: Dict) -> 'OVSNetwork':
        metadata = obj.get("metadata", {})
        spec = obj.get("spec", {})
        return cls(name=metadata.get("name", ""),
                   namespace=metadata.get("namespace", ""),
                   resource_name=spec.get("resourceName", ""),
                   network_namespace=spec.get("networkNamespace", ""),
                   capabilities=spec.get("capabilities", ""),
                   bridge=spec.get("bridge", ""),
                   vlan=spec.get("vlan", 0),
                   mtu=spec.get("mtu", 0),
                   trunk=list(spec.get("trunk") or []),
                   interface_type=spec.get("interfaceType", ""),
                   ipam=spec.get("ipam", ""),
                   meta_plugins_config=spec.get("metaPlugins", ""))


Network = Union[SriovNetwork, SriovIBNetwork, OVSNetwork]


# ============================================================================
# Template helpers
# ============================================================================


def get_or(m: Dict[str, Any], key: str, fallback: Any) -> Any:
    """m[key] if present and not an empty string, fallback otherwise."""
    value = m.get(key)
    if value is None or value == "":
        return fallback
    return value


def is_set(m: Dict[str, Any], key: str) -> Any:
    """m[key] if present (zero values included), False otherwise."""
    return m.get(key, False)


def _resource_name(resource_name: str, resource_prefix: Optional[str]) -> str:
    if resource_prefix is None:
        resource_prefix = (constants.RESOURCE_PREFIX
                           if constants.RESOURCE_PREFIX is not None else
                           os.environ.get("RESOURCE_PREFIX", ""))
    return f"{resource_prefix}/{resource_name}"


def _ipam(ipam: str) -> str:
    if not ipam:
        return SRIOV_CNI_IPAM_EMPTY
    return SRIOV_CNI_IPAM + ":" + "".join(ipam.split())


# ============================================================================
# Render data
# ============================================================================


def sriov_render_data(net: SriovNetwork,
                      resource_prefix: Optional[str] = None) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "CniType": "sriov",
        "SriovNetworkName": net.name,
        "SriovNetworkNamespace": net.network_namespace or net.namespace,
        "SriovCniResourceName": _resource_name(net.resource_name,
                                               resource_prefix),
        "SriovCniVlan": net.vlan,
        "SriovCniIpam": _ipam(net.ipam),
    }

    data["VlanQoSConfigured"] = 0 <= net.vlan_qos <= 7
    if data["VlanQoSConfigured"]:
        data["SriovCniVlanQoS"] = net.vlan_qos

    data["VlanProtoConfigured"] = bool(net.vlan_proto)
    if net.vlan_proto:
        data["SriovCniVlanProto"] = net.vlan_proto

    data["CapabilitiesConfigured"] = bool(net.capabilities)
    if net.capabilities:
        data["SriovCniCapabilities"] = net.capabilities

    data["SpoofChkConfigured"] = net.spoof_chk in _ON_OFF_STATES
    if data["SpoofChkConfigured"]:
        data["SriovCniSpoofChk"] = net.spoof_chk

    data["TrustConfigured"] = net.trust in _ON_OFF_STATES
    if data["TrustConfigured"]:
        data["SriovCniTrust"] = net.trust

    data["StateConfigured"] = net.link_state in _LINK_STATES
    if data["StateConfigured"]:
        data["SriovCniState"] = net.link_state

    data["MinTxRateConfigured"] = (net.min_tx_rate is not None
                                   and net.min_tx_rate >= 0)
    if data["MinTxRateConfigured"]:
        data["SriovCniMinTxRate"] = net.min_tx_rate

    data["MaxTxRateConfigured"] = (net.max_tx_rate is not None
                                   and net.max_tx_rate >= 0)
    if data["MaxTxRateConfigured"]:
        data["SriovCniMaxTxRate"] = net.max_tx_rate

    data["MetaPluginsConfigured"] = bool(net.meta_plugins_config)
    if net.meta_plugins_config:
        data["MetaPlugins"] = net.meta_plugins_config

    data["LogLevelConfigured"] = bool(net.log_level)
    data["LogLevel"] = net.log_level
    data["LogFileConfigured"] = bool(net.log_file)
    data["LogFile"] = net.log_file
    return data


def ib_sriov_render_data(net: SriovIBNetwork,
                         resource_prefix: Optional[str] = None
                         ) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "CniType": "ib-sriov",
        "SriovNetworkName": net.name,
        "SriovNetworkNamespace": net.network_namespace or net.namespace,
        "SriovCniResourceName": _resource_name(net.resource_name,
                                               resource_prefix),
        "SriovCniIpam": _ipam(net.ipam),
    }

    data["StateConfigured"] = net.link_state in _LINK_STATES
    if data["StateConfigured"]:
        data["SriovCniState"] = net.link_state

    data["CapabilitiesConfigured"] = bool(net.capabilities)
    if net.capabilities:
        data["SriovCniCapabilities"] = net.capabilities

    data["MetaPluginsConfigured"] = bool(net.meta_plugins_config)
    if net.meta_plugins_config:
        data["MetaPlugins"] = net.meta_plugins_config

    # not supported by the ib-sriov CNI
    data["LogLevelConfigured"] = False
    data["LogFileConfigured"] = False
    return data


def ovs_render_data(net: OVSNetwork,
                    resource_prefix: Optional[str] = None) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "CniType": "ovs",
        "NetworkName": net.name,
        "NetworkNamespace": net.network_namespace or net.namespace,
        "CniResourceName": _resource_name(net.resource_name, resource_prefix),
        "Bridge": net.bridge,
        "VlanTag": net.vlan,
        "MTU": net.mtu,
        "Trunk": json.dumps(net.trunk, separators=(",", ":")) if net.trunk else "",
        "InterfaceType": net.interface_type,
        "CniIpam": _ipam(net.ipam),
    }

    data["CapabilitiesConfigured"] = bool(net.capabilities)
    if net.capabilities:
        data["CniCapabilities"] = net.capabilities

    data["MetaPluginsConfigured"] = bool(net.meta_plugins_config)
    if net.meta_plugins_config:
        data["MetaPlugins"] = net.meta_plugins_config
    return data


def render_data(net: Network,
                resource_prefix: Optional[str] = None) -> Dict[str, Any]:
    if isinstance(net, SriovIBNetwork):
        return ib_sriov_render_data(net, resource_prefix)
    if isinstance(net, OVSNetwork):
        return ovs_render_data(net, resource_prefix)
    return sriov_render_data(net, resource_prefix)


# ============================================================================
# Document
# ============================================================================


def _load_fragment(raw: str, what: str, name: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"invalid {what} for network {name}: {e}") from e


def _ipam_config(fragment: str, name: str) -> Any:
    # fragment is the '"ipam":{...}' member carried in the render data
    return _load_fragment("{" + fragment + "}", "ipam", name)["ipam"]


def _sriov_plugin(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    plugin: Dict[str, Any] = {"type": data["CniType"]}
    if data["CniType"] == "sriov":
        plugin["vlan"] = data["SriovCniVlan"]
        if is_set(data, "SpoofChkConfigured"):
            plugin["spoofchk"] = data["SriovCniSpoofChk"]
        if is_set(data, "TrustConfigured"):
            plugin["trust"] = data["SriovCniTrust"]
        if is_set(data, "VlanQoSConfigured"):
            plugin["vlanQoS"] = data["SriovCniVlanQoS"]
        if is_set(data, "VlanProtoConfigured"):
            plugin["vlanProto"] = data["SriovCniVlanProto"]
        if is_set(data, "MinTxRateConfigured"):
            plugin["min_tx_rate"] = data["SriovCniMinTxRate"]
        if is_set(data, "MaxTxRateConfigured"):
            plugin["max_tx_rate"] = data["SriovCniMaxTxRate"]
    if is_set(data, "CapabilitiesConfigured"):
        plugin["capabilities"] = _load_fragment(data["SriovCniCapabilities"],
                                                "capabilities", name)
    if is_set(data, "StateConfigured"):
        plugin["link_state"] = data["SriovCniState"]
    if is_set(data, "LogLevelConfigured"):
        plugin["logLevel"] = data["LogLevel"]
    if is_set(data, "LogFileConfigured"):
        plugin["logFile"] = data["LogFile"]
    plugin["ipam"] = _ipam_config(
        get_or(data, "SriovCniIpam", SRIOV_CNI_IPAM_EMPTY), name)
    return plugin


def _ovs_plugin(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    plugin: Dict[str, Any] = {"type": data["CniType"]}
    if is_set(data, "CapabilitiesConfigured"):
        plugin["capabilities"] = _load_fragment(data["CniCapabilities"],
                                                "capabilities", name)
    if is_set(data, "Bridge"):
        plugin["bridge"] = data["Bridge"]
    if is_set(data, "VlanTag"):
        plugin["vlan"] = data["VlanTag"]
    if is_set(data, "MTU"):
        plugin["mtu"] = data["MTU"]
    if is_set(data, "Trunk"):
        plugin["trunk"] = json.loads(data["Trunk"])
    if is_set(data, "InterfaceType"):
        plugin["interface_type"] = data["InterfaceType"]
    plugin["ipam"] = _ipam_config(get_or(data, "CniIpam", SRIOV_CNI_IPAM_EMPTY),
                                  name)
    return plugin


def render_net_att_def(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Build a NetworkAttachmentDefinition from render data.

    Raises ValueError if user supplied fragments (capabilities, ipam,
    meta plugins) aren't valid JSON.
    """
    if data["CniType"] == "ovs":
        name = data["NetworkName"]
        namespace = data["NetworkNamespace"]
        resource_name = data["CniResourceName"]
        plugin = _ovs_plugin(data, name)
    else:
        name = data["SriovNetworkName"]
        namespace = data["SriovNetworkNamespace"]
        resource_name = data["SriovCniResourceName"]
        plugin = _sriov_plugin(data, name)

    cni_config: Dict[str, Any] = {
        "cniVersion": constants.CNI_VERSION,
        "name": name,
    }
    if is_set(data, "MetaPluginsConfigured"):
        # metaPlugins is a comma separated series of plugin objects
        meta_plugins = _load_fragment("[" + data["MetaPlugins"] + "]",
                                      "metaPlugins", name)
        cni_config["plugins"] = [plugin] + meta_plugins
    else:
        cni_config.update(plugin)

    net_att_def = {
        "apiVersion": constants.NET_ATT_DEF_API_VERSION,
        "kind": "NetworkAttachmentDefinition",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "annotations": {
                constants.NET_ATT_DEF_RESOURCE_NAME_ANNOTATION: resource_name,
            },
        },
        "spec": {
            "config": json.dumps(cni_config, separators=(",", ":")),
        },
    }
    logger.debug("[RENDER] NetworkAttachmentDefinition output: %s",
                 json.dumps(net_att_def))
    return net_att_def
