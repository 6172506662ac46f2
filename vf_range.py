# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""VF index range helpers.

A VF range is written "start-end" (decimal, inclusive). Policies can pin a
range to one PF with the "#" notation in their pfNames, e.g. "ens1f0#0-3".
"""

from typing import Tuple

INVALID_VF_INDEX = -1


class VfRangeError(ValueError):
    """Raised when a VF range string cannot be parsed."""


def parse_range(rng: str) -> Tuple[int, int]:
    """Parse "start-end" into its integer bounds."""
    fields = rng.split("-")
    if len(fields) < 2:
        raise VfRangeError(f"invalid VF range {rng!r}: expected start-end")
    try:
        return int(fields[0]), int(fields[1])
    except ValueError as e:
        raise VfRangeError(f"invalid VF range {rng!r}: {e}") from e


def split_device_from_range(device: str) -> Tuple[str, str]:
    """Split "name#range" into ("name", "range"); the range is "" without '#'."""
    if "#" in device:
        fields = device.split("#")
        return fields[0], fields[1]
    return device, ""


def parse_vf_range(device: str) -> Tuple[str, int, int]:
    """
    Parse a root device or PF name that may carry a VF range.

    Returns (name, start, end). Without a range, both bounds are
    INVALID_VF_INDEX. Raises VfRangeError if the range is malformed.
    """
    name, rng = split_device_from_range(device)
    if not rng:
        return device, INVALID_VF_INDEX, INVALID_VF_INDEX
    start, end = parse_range(rng)
    return name, start, end


def index_in_range(i: int, rng: str) -> bool:
    try:
        start, end = parse_range(rng)
    except VfRangeError:
        return False
    return start <= i <= end


def is_vf_range_overlapping(rng_a: str, rng_b: str) -> bool:
    """
    Return True if the two ranges share at least one VF index.

    A range that cannot be parsed is reported as not overlapping.
    TODO: confirm with product whether a malformed range should block
    merging instead of letting two policies claim the same VFs.
    """
    try:
        start_a, end_a = parse_range(rng_a)
        start_b, end_b = parse_range(rng_b)
    except VfRangeError:
        return False
    # check the endpoints of the later-starting range against the other one
    if start_a < start_b:
        return index_in_range(start_b, rng_a) or index_in_range(end_b, rng_a)
    return index_in_range(start_a, rng_b) or index_in_range(end_a, rng_b)
