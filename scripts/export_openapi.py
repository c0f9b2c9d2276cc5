"""
Write the MeetRead OpenAPI document to docs/openapi.json.

Usage:
    python scripts/export_openapi.py
"""

import json
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from meetread.main import app  # noqa: E402

OUTPUT_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "docs")
OUTPUT_FILE = os.path.join(OUTPUT_DIR, "openapi.json")


def main():
    os.makedirs(OUTPUT_DIR, exist_ok=True)

    spec = app.openapi()
    with open(OUTPUT_FILE, "w") as f:
        json.dump(spec, f, indent=2, default=str)

    paths = spec.get("paths", {})
    print(f"OpenAPI {spec.get('openapi')} written to {OUTPUT_FILE} ({len(paths)} paths)")


if __name__ == "__main__":
    main()
