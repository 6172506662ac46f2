# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""Supported NIC model table.

Each entry is a "vendor pfDeviceID vfDeviceID" string, e.g. "8086 158b 154c".
The table is built once at startup (from a list or from the supported-nic-ids
ConfigMap) and handed to whatever needs it.
"""

import logging
from typing import Iterable, List

from kubernetes import client

from constants import SUPPORTED_NIC_ID_CONFIGMAP

logger = logging.getLogger(__name__)


class NicIdTable:
    """Lookup of supported vendor / PF device / VF device IDs."""

    def __init__(self, entries: Iterable[str] = ()):
        self._ids: List[List[str]] = [entry.split(" ") for entry in entries]

    @classmethod
    def from_list(cls, id_list: Iterable[str]) -> 'NicIdTable':
        return cls(id_list)

    @classmethod
    def from_config_map(cls, core_api: client.CoreV1Api,
                        namespace: str) -> 'NicIdTable':
        """Load the table from the supported-nic-ids ConfigMap.

        Raises client.exceptions.ApiException if the ConfigMap can't be read.
        """
        cm = core_api.read_namespaced_config_map(
            name=SUPPORTED_NIC_ID_CONFIGMAP, namespace=namespace)
        entries = list((cm.data or {}).values())
        logger.info("[INIT] Loaded %d supported NIC IDs from %s/%s",
                    len(entries), namespace, SUPPORTED_NIC_ID_CONFIGMAP)
        return cls(entries)

    def __len__(self) -> int:
        return len(self._ids)

    def is_supported_vendor(self, vendor_id: str) -> bool:
        return any(ids[0] == vendor_id for ids in self._ids)

    def is_supported_device(self, device_id: str) -> bool:
        return any(ids[1] == device_id for ids in self._ids)

    def is_supported_model(self, vendor_id: str, device_id: str) -> bool:
        for ids in self._ids:
            if ids[0] == vendor_id and ids[1] == device_id:
                return True
        logger.info("Found unsupported model (vendorId: %s, deviceId: %s)",
                    vendor_id, device_id)
        return False

    def is_vf_supported_model(self, vendor_id: str, device_id: str) -> bool:
        for ids in self._ids:
            if ids[0] == vendor_id and ids[2] == device_id:
                return True
        logger.info("Found unsupported VF model (vendorId: %s, deviceId: %s)",
                    vendor_id, device_id)
        return False

    def get_supported_vf_ids(self) -> List[str]:
        """Unique VF device IDs as "0x..." strings, sorted numerically so
        generated udev rules stay stable."""
        vf_ids: List[str] = []
        for ids in self._ids:
            vf_id = "0x" + ids[2]
            if vf_id not in vf_ids:
                vf_ids.append(vf_id)
        return sorted(vf_ids, key=lambda v: int(v, 16))

    def get_vf_device_id(self, device_id: str) -> str:
        for ids in self._ids:
            if ids[1] == device_id:
                return ids[2]
        return ""
