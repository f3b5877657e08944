#!/usr/bin/env python3
"""
Bridge generation CLI - static translation units from two schema descriptors.

Writes the rendered Python bridge and, optionally, the JSON bridge file the
engine registers at startup (BRIDGE_FILE_PATH).
"""

import argparse
import json
import sys
from pathlib import Path

import dotenv
dotenv.load_dotenv()

# Add the repository root so the script runs from a checkout
sys.path.insert(0, str(Path(__file__).parent.parent))

from schemabridge.core.config import get_generation_provider
from schemabridge.core.errors import GenerationError
from schemabridge.core.schema import SchemaDescriptor
from schemabridge.engine.bridge_generator import BridgeGenerator


def load_descriptor(path: str) -> SchemaDescriptor:
    return SchemaDescriptor.from_dict(json.loads(Path(path).read_text(encoding="utf-8")))


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Generate a static schema bridge")
    parser.add_argument("consumer", help="Consumer schema descriptor (JSON)")
    parser.add_argument("server", help="Server schema descriptor (JSON)")
    parser.add_argument("--code", help="Write the Python bridge module here (default: stdout)")
    parser.add_argument("--bridge-file", help="Write the JSON bridge file here")
    args = parser.parse_args(argv)

    try:
        consumer = load_descriptor(args.consumer)
        server = load_descriptor(args.server)
    except (OSError, ValueError) as e:
        print(f"ERROR: Could not load schema descriptors: {e}", file=sys.stderr)
        return 2

    try:
        bundle = BridgeGenerator(get_generation_provider()).generate(consumer, server)
    except GenerationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    if args.code:
        Path(args.code).write_text(bundle.bridge_code, encoding="utf-8")
        print(f"✓ Wrote bridge code to {args.code}")
    else:
        print(bundle.bridge_code)

    if args.bridge_file:
        Path(args.bridge_file).write_text(json.dumps(bundle.to_bridge_file(), indent=2), encoding="utf-8")
        print(f"✓ Wrote bridge file to {args.bridge_file} ({len(bundle.units)} units)")

    return 0


if __name__ == "__main__":
    sys.exit(main())
