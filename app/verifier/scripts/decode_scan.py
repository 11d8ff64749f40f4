from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from verifier.pipeline.barcode import parse_license_data
from verifier.pipeline.canonical import identity_age
from verifier.pipeline.mrz import parse_mrz_text


def main() -> int:
    parser = argparse.ArgumentParser(description="Decode a saved barcode result (JSON) or MRZ text capture.")
    parser.add_argument("path", type=Path, help="Barcode SDK JSON (.json) or MRZ text file")
    args = parser.parse_args()

    raw = args.path.read_text()
    if args.path.suffix.lower() == ".json":
        identity = parse_license_data(json.loads(raw))
    else:
        identity = parse_mrz_text(raw)

    if identity is None:
        print("No MRZ layout recognised", file=sys.stderr)
        return 1
    payload = {"identity": identity.model_dump(), "age": identity_age(identity)}
    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
