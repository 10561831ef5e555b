"""Compact 5-byte sensor payload used on the uplink ``frm_payload``.

Layout (big-endian)::

    [temp_hi, temp_lo, humidity, battery, flags]

- temperature: signed 16-bit, 0.01 °C per unit, ``FF FF`` when absent
- humidity:    unsigned 8-bit, 0.5 % per unit, ``FF`` when absent
- battery:     unsigned 8-bit, 0.01 V per unit (0.00-2.55 V), ``FF`` when absent
- flags:       bit 0 = door open

Encoding never fails: values outside a field's range wrap through byte
truncation. Decoding a malformed payload yields an empty reading.
"""
from __future__ import annotations

import base64
import binascii
import logging
import math

from ..domain.models import SensorReading

logger = logging.getLogger(__name__)

PAYLOAD_SIZE = 5
ABSENT = 0xFF

TEMP_SCALE = 100
HUMIDITY_SCALE = 2
BATTERY_SCALE = 100

FLAG_DOOR_OPEN = 0x01


def _round(value: float) -> int:
    if not math.isfinite(value):
        return 0
    # Half-up, so 0.125 V -> 13 like the network-side decoders expect
    return int(math.floor(value + 0.5))


def encode_bytes(reading: SensorReading) -> bytes:
    buf = bytearray()

    if reading.temperature is not None:
        t = _round(reading.temperature * TEMP_SCALE)
        buf.append((t >> 8) & 0xFF)
        buf.append(t & 0xFF)
    else:
        buf.extend((ABSENT, ABSENT))

    if reading.humidity is not None:
        buf.append(_round(reading.humidity * HUMIDITY_SCALE) & 0xFF)
    else:
        buf.append(ABSENT)

    if reading.battery is not None:
        buf.append(_round(reading.battery * BATTERY_SCALE) & 0xFF)
    else:
        buf.append(ABSENT)

    flags = 0
    if reading.door_open:
        flags |= FLAG_DOOR_OPEN
    buf.append(flags)

    return bytes(buf)


def decode_bytes(raw: bytes) -> SensorReading:
    values: dict = {}

    # The temperature pair is only "absent" when both bytes are FF
    if len(raw) >= 2 and not (raw[0] == ABSENT and raw[1] == ABSENT):
        t = (raw[0] << 8) | raw[1]
        if t > 32767:
            t -= 65536
        values["temperature"] = t / TEMP_SCALE

    if len(raw) >= 3 and raw[2] != ABSENT:
        values["humidity"] = raw[2] / HUMIDITY_SCALE

    if len(raw) >= 4 and raw[3] != ABSENT:
        values["battery"] = raw[3] / BATTERY_SCALE

    if len(raw) >= 5:
        values["door_open"] = bool(raw[4] & FLAG_DOOR_OPEN)

    return SensorReading(**values)


def encode_payload(reading: SensorReading) -> str:
    return base64.b64encode(encode_bytes(reading)).decode("ascii")


def decode_payload(payload: str) -> SensorReading:
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        logger.warning("Failed to decode payload %r: %s", payload, e)
        return SensorReading()
    return decode_bytes(raw)
