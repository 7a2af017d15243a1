#!/usr/bin/env python3
"""Show byte sizes per pipeline stage for a delta dump and verify the round trip.

Usage
-----
    python scripts/compression_report.py deltas.json
    python scripts/compression_report.py --adaptive --key "$DELTALINK_SECRET_KEY" deltas.json
"""

from __future__ import annotations

import argparse
import json
import os
from pathlib import Path

from pydeltalink.pipeline import DeltaPipeline

DEMO_KEY = "12345678901234567890123456789012"


def main() -> None:
    parser = argparse.ArgumentParser(description="Report delta pipeline compression per stage.")
    parser.add_argument("dump", help="JSON file holding a list of delta records")
    parser.add_argument("--key", default=os.environ.get("DELTALINK_SECRET_KEY", DEMO_KEY), help="32-character key")
    parser.add_argument("--adaptive", action="store_true", help="Pick Brotli qualities from the batch size")
    args = parser.parse_args()

    records = json.loads(Path(args.dump).read_text(encoding="utf-8"))
    pipeline = DeltaPipeline(adaptive=args.adaptive)
    wire, report = pipeline.encode_with_report(records, args.key)
    restored = pipeline.decode(wire, args.key)

    rows = [
        ("Serialized (compacted JSON)", report.serialized),
        (f"Stage 1 Brotli text q={report.stage1_quality}", report.compressed),
        ("Encrypted JSON envelope", report.encrypted),
        (f"Stage 2 Brotli generic q={report.stage2_quality}", report.wire),
    ]
    label_w = max(len(label) for label, _ in rows)
    for label, size in rows:
        print(f"{label:<{label_w}}  {size:>8} bytes")
    print("─" * (label_w + 16))
    print(f"{'Saved':<{label_w}}  {report.ratio * 100:>7.2f} %")
    print(f"Round trip: {'PASS' if restored == records else 'FAIL'}")


if __name__ == "__main__":
    main()
