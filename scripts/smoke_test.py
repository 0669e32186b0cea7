#!/usr/bin/env python3
"""
Service Smoke Test Script
=========================

Standalone script to exercise a running CrowdCountFusion service.

This script:
    1. Waits for /ready (all estimators settled)
    2. Reports per-kind availability
    3. Uploads one or more images to /analyze
    4. Reports the fused count, note and failures for each

Prerequisites:
    - The service must be running at the configured URL
    - Install dependencies: pip install -e .

Usage:
    python scripts/smoke_test.py crowd.jpg
    python scripts/smoke_test.py --url http://localhost:8002 a.jpg b.png
"""

import argparse
import logging
import os
import sys
import time
from pathlib import Path

import requests


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


def wait_ready(url: str, timeout: float) -> bool:
    """Poll /ready until 200 or the timeout expires."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            r = requests.get(f"{url}/ready", timeout=2)
            if r.status_code == 200:
                return True
        except requests.RequestException as e:
            logger.debug(f"Service not reachable yet: {e}")
        time.sleep(1.0)
    return False


def analyze_file(url: str, path: Path) -> bool:
    """
    Upload one image and log the result.

    Returns:
        True if the service returned a rendered analysis
    """
    with open(path, "rb") as f:
        r = requests.post(f"{url}/analyze", files={"file": (path.name, f)}, timeout=300)

    if r.status_code != 200:
        logger.error(f"{path.name}: HTTP {r.status_code} {r.text[:200]}")
        return False

    data = r.json()
    logger.info("-" * 40)
    logger.info(f"{path.name}: {data['final_count']} people ({data['note']})")
    logger.info(f"  Status: {data['status']}")
    logger.info(f"  Estimators: {data['estimators']}")
    if data.get("categories"):
        logger.info(f"  Categories: {data['categories']}")
    for failure in data.get("failures", []):
        logger.warning(f"  {failure['message']}")
    return True


def main():
    parser = argparse.ArgumentParser(
        description="Smoke test for a running CrowdCountFusion service"
    )
    parser.add_argument("images", nargs="+", type=Path, help="Image files to analyze")
    parser.add_argument(
        "--url",
        type=str,
        default=os.environ.get("CROWD_FUSION_URL", "http://localhost:8002"),
        help="HTTP root of the service",
    )
    parser.add_argument(
        "--ready-timeout",
        type=float,
        default=180.0,
        help="Seconds to wait for /ready (default: 180)",
    )

    args = parser.parse_args()
    url = args.url.rstrip("/")

    logger.info("=" * 60)
    logger.info(f"Service URL: {url}")
    logger.info("=" * 60)

    if not wait_ready(url, args.ready_timeout):
        logger.error("❌ Service did not become ready")
        sys.exit(1)

    for row in requests.get(f"{url}/estimators", timeout=5).json():
        logger.info(f"  {row['kind']}: {row['availability']}")

    passed = [analyze_file(url, path) for path in args.images]

    logger.info("=" * 60)
    if all(passed):
        logger.info(f"✅ SMOKE TEST PASSED - {len(passed)} image(s) analyzed")
    else:
        logger.error(f"❌ SMOKE TEST FAILED - {passed.count(False)} of {len(passed)} image(s) failed")
    sys.exit(0 if all(passed) else 1)


if __name__ == "__main__":
    main()
