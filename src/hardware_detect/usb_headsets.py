#!/usr/bin/env python3
"""
TenPod Hardware Detection - VR Headset Detection

Matches `lsusb` lines against a small table of known VR headsets.
"""

import logging
from dataclasses import dataclass, asdict
from typing import List, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HeadsetSignature:
    """USB vendor/product id pair of a known headset."""

    vendor_id: str
    product_id: str
    display_name: str

    def matches(self, line: str) -> bool:
        line = line.lower()
        return self.vendor_id in line and self.product_id in line


@dataclass(frozen=True)
class HeadsetDevice:
    """A headset found in the USB listing."""

    vendor_id: str
    product_id: str
    display_name: str

    @classmethod
    def from_signature(cls, signature: HeadsetSignature) -> "HeadsetDevice":
        return cls(signature.vendor_id, signature.product_id, signature.display_name)

    def to_dict(self) -> dict:
        return asdict(self)


HEADSET_SIGNATURES: Tuple[HeadsetSignature, ...] = (
    HeadsetSignature("28de", "2012", "Valve Index"),
    HeadsetSignature("28de", "2000", "HTC Vive"),
    HeadsetSignature("28de", "2101", "HTC Vive Pro"),
    HeadsetSignature("28de", "2102", "HTC Vive Cosmos"),
    HeadsetSignature("2833", "0186", "Meta Quest 2"),
    HeadsetSignature("2833", "0187", "Meta Quest Pro"),
    HeadsetSignature("2833", "0188", "Meta Quest 3"),
    HeadsetSignature("2d40", "2000", "Pico 4"),
    HeadsetSignature("03f0", "0580", "HP Reverb G2"),
    HeadsetSignature("0483", "0101", "Pimax 5K/8K"),
)


def resolve_headsets(
    raw_usb_text: str,
    signatures: Tuple[HeadsetSignature, ...] = HEADSET_SIGNATURES,
) -> List[HeadsetDevice]:
    """
    Return the headsets present in `lsusb` output, in listing order.

    Matching is substring containment of both ids on the raw line, so a
    line can in principle match on unrelated text carrying the same digits.
    Each line yields at most one headset (the first signature it satisfies).
    An empty result is not an error; the headset may be plugged in later.
    """
    found = []
    for line in raw_usb_text.splitlines():
        for signature in signatures:
            if signature.matches(line):
                logger.info(f"Found headset: {signature.display_name}")
                found.append(HeadsetDevice.from_signature(signature))
                break

    if not found:
        logger.info("No VR headset detected")
    return found
