# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.

import pytest

import constants
from feature_gate import FeatureGate, parse_feature_gates


class TestIsEnabled:
    def test_unknown_feature(self):
        assert not FeatureGate().is_enabled("something")

    def test_nothing_enabled_before_init(self):
        gate = FeatureGate()
        assert not gate.is_enabled(
            constants.BLOCK_DEVICE_PLUGIN_UNTIL_CONFIGURED_FEATURE_GATE)


class TestInit:
    def test_updates_state(self):
        gate = FeatureGate()
        gate.init({"feat1": True, "feat2": False})
        assert gate.is_enabled("feat1")
        assert not gate.is_enabled("feat2")

    def test_applies_default_state(self):
        gate = FeatureGate({"default1": True, "default2": False})
        gate.init(None)
        assert gate.is_enabled("default1")
        assert not gate.is_enabled("default2")

    def test_overrides_default_state(self):
        gate = FeatureGate({"feat1": False, "feat2": True})
        gate.init({"feat1": True})
        assert gate.is_enabled("feat1")
        assert gate.is_enabled("feat2")

    def test_real_default_states(self):
        gate = FeatureGate()
        gate.init(None)
        assert not gate.is_enabled(constants.PARALLEL_NIC_CONFIG_FEATURE_GATE)
        assert not gate.is_enabled(
            constants.RESOURCE_INJECTOR_MATCH_CONDITION_FEATURE_GATE)
        assert not gate.is_enabled(constants.METRICS_EXPORTER_FEATURE_GATE)
        assert not gate.is_enabled(constants.MANAGE_SOFTWARE_BRIDGES_FEATURE_GATE)
        assert gate.is_enabled(
            constants.BLOCK_DEVICE_PLUGIN_UNTIL_CONFIGURED_FEATURE_GATE)
        assert not gate.is_enabled(constants.MELLANOX_FIRMWARE_RESET_FEATURE_GATE)

    def test_overrides_real_default_state(self):
        gate = FeatureGate()
        gate.init({constants.BLOCK_DEVICE_PLUGIN_UNTIL_CONFIGURED_FEATURE_GATE: False})
        assert not gate.is_enabled(
            constants.BLOCK_DEVICE_PLUGIN_UNTIL_CONFIGURED_FEATURE_GATE)


class TestString:
    def test_no_features(self):
        assert str(FeatureGate()) == ""

    def test_feature_state(self):
        gate = FeatureGate({})
        gate.init({"feat1": True, "feat2": False})
        assert "feat1:true" in str(gate)
        assert "feat2:false" in str(gate)


class TestParseFeatureGates:
    def test_parse(self):
        assert parse_feature_gates(" feat1=true, feat2=False ,") == {
            "feat1": True,
            "feat2": False,
        }

    def test_empty(self):
        assert parse_feature_gates("") == {}

    @pytest.mark.parametrize("value", ["feat1", "feat1=yes", "=true"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_feature_gates(value)
