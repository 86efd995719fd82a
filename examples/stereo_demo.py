#!/usr/bin/env python3
"""Demo script for stereo point and line extraction.

This script loads one EuRoC-style stereo pair, rectifies it with the
calibration of both cameras and extracts validated stereo features:
- Points (green circles)
- Line segments (red lines)

Usage:
    uv run python examples/stereo_demo.py left.png right.png \
        --cam0 data/euroc/MH_01_easy/mav0/cam0/sensor.yaml \
        --cam1 data/euroc/MH_01_easy/mav0/cam1/sensor.yaml

Requirements:
    - A stereo pair and the sensor.yaml of both cameras
"""

import argparse
import logging

import cv2

from stvo import StereoCamera, StereoConfig, StereoFrame


def main() -> None:
    """Run the stereo extraction demo."""
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("left", help="Left image")
    parser.add_argument("right", help="Right image")
    parser.add_argument("--cam0", required=True, help="Left camera sensor.yaml")
    parser.add_argument("--cam1", required=True, help="Right camera sensor.yaml")
    parser.add_argument("--config", help="Optional pipeline configuration YAML")
    parser.add_argument("--output", default="stereo_features.png", help="Output image")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    camera = StereoCamera.from_euroc_yaml(args.cam0, args.cam1)
    config = StereoConfig.from_yaml(args.config) if args.config else StereoConfig()

    left = cv2.imread(args.left, cv2.IMREAD_GRAYSCALE)
    right = cv2.imread(args.right, cv2.IMREAD_GRAYSCALE)
    if left is None or right is None:
        raise SystemExit("Could not read the stereo pair")
    left, right = camera.rectify_images(left, right)

    frame = StereoFrame(left, right, 0, camera, config)
    frame.extract_initial_stereo_features()

    print(f"Stereo baseline: {camera.baseline:.4f} m")
    print(f"{len(frame.stereo_pt)} stereo points, {len(frame.stereo_ls)} stereo lines")
    if frame.stereo_pt:
        depths = [f.P[2] for f in frame.stereo_pt]
        print(f"Average point depth: {sum(depths) / len(depths):.2f} m")

    cv2.imwrite(args.output, frame.plot_stereo_frame())
    print(f"Wrote {args.output}")


if __name__ == "__main__":
    main()
