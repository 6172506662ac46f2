# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""Feature gates for optional operator behaviour."""

import threading
from typing import Dict, Optional

from constants import (
    BLOCK_DEVICE_PLUGIN_UNTIL_CONFIGURED_FEATURE_GATE,
    MANAGE_SOFTWARE_BRIDGES_FEATURE_GATE,
    MELLANOX_FIRMWARE_RESET_FEATURE_GATE,
    METRICS_EXPORTER_FEATURE_GATE,
    PARALLEL_NIC_CONFIG_FEATURE_GATE,
    RESOURCE_INJECTOR_MATCH_CONDITION_FEATURE_GATE,
)

# Default state of every known feature gate
DEFAULT_FEATURE_STATES: Dict[str, bool] = {
    PARALLEL_NIC_CONFIG_FEATURE_GATE: False,
    RESOURCE_INJECTOR_MATCH_CONDITION_FEATURE_GATE: False,
    METRICS_EXPORTER_FEATURE_GATE: False,
    MANAGE_SOFTWARE_BRIDGES_FEATURE_GATE: False,
    BLOCK_DEVICE_PLUGIN_UNTIL_CONFIGURED_FEATURE_GATE: True,
    MELLANOX_FIRMWARE_RESET_FEATURE_GATE: False,
}


class FeatureGate:
    """
    Thread-safe feature state store.

    Nothing is enabled until init() is called; init() merges the overrides
    on top of the default states.
    """

    def __init__(self, default_features: Optional[Dict[str, bool]] = None):
        self._lock = threading.Lock()
        self._state: Dict[str, bool] = {}
        self._default_features = (DEFAULT_FEATURE_STATES
                                  if default_features is None else
                                  default_features)

    def is_enabled(self, feature: str) -> bool:
        """State of the feature; unknown features are always disabled."""
        with self._lock:
            return self._state.get(feature, False)

    def init(self, features: Optional[Dict[str, bool]]) -> None:
        state = dict(self._default_features)
        state.update(features or {})
        with self._lock:
            self._state = state

    def __str__(self) -> str:
        with self._lock:
            return ", ".join(f"{k}:{str(v).lower()}"
                             for k, v in self._state.items())


def parse_feature_gates(value: str) -> Dict[str, bool]:
    """Parse "feat1=true,feat2=false" as given on the command line."""
    features: Dict[str, bool] = {}
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        name, sep, state = item.partition("=")
        state = state.strip().lower()
        if not sep or not name.strip() or state not in ("true", "false"):
            raise ValueError(f"invalid feature gate {item!r}: "
                             "expected <name>=true|false")
        features[name.strip()] = state == "true"
    return features
