#!/usr/bin/env python3
"""Probe a controller once and print every block with both word orders.

Use this to confirm which word order a device's firmware uses before
setting WORD_ORDER: plausible values (e.g. ~230 V mains) show up in only
one of the two columns.
"""

from __future__ import annotations

import argparse
from typing import List

from app.config.registers import load_register_map
from app.core.config import settings
from app.core.decoder import WordOrder, decode32, decode_point
from app.core.modbus_client import ModbusSession, ReadError
from app.core.register_map import RegisterMap


def probe(session, register_map: RegisterMap) -> List[str]:
    """Read every block once and return printable report lines."""
    lines = []
    session.open()
    try:
        for block in register_map:
            try:
                words = session.read(block.address, block.count, block=block.name)
            except ReadError as exc:
                lines.append(f"[{block.name}] addr={block.address} count={block.count} FAILED: {exc.cause}")
                continue
            lines.append(f"[{block.name}] addr={block.address} count={block.count} raw={words}")
            for point in block.points:
                if point.width == 32:
                    high = decode32(words, point.offset, WordOrder.HIGH_FIRST, point.scale)
                    low = decode32(words, point.offset, WordOrder.LOW_FIRST, point.scale)
                    lines.append(f"  {point.id:<26} high_first={high} low_first={low} {point.unit}")
                else:
                    value = decode_point(words, point, WordOrder.LOW_FIRST)
                    lines.append(f"  {point.id:<26} {value} {point.unit}")
    finally:
        session.close()
    return lines


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--host", default=settings.DATAKOM_HOST)
    parser.add_argument("--port", type=int, default=settings.DATAKOM_PORT)
    parser.add_argument("--map", dest="map_file", default=settings.REGISTER_MAP_FILE)
    args = parser.parse_args()

    session = ModbusSession(
        host=args.host,
        port=args.port,
        unit_id=settings.MODBUS_UNIT_ID,
        timeout=settings.MODBUS_TIMEOUT_SECONDS,
    )
    print(f"Probing {session.target} (configured word order: {settings.WORD_ORDER.value})")
    for line in probe(session, load_register_map(args.map_file)):
        print(line)


if __name__ == "__main__":
    main()
