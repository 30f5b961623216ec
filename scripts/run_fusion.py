#!/usr/bin/env python3
"""Project LiDAR scans into cameras and associate points with detections."""

import argparse
import json
import sys
import threading
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

import cv2

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from pcdfuse.errors import ValidationError
from pcdfuse.fusion import (
    DetectionCameraMessage,
    DetectionInput,
    FusionPipeline,
    HandoffBuffer,
    ImageCameraMessage,
    ImageInput,
    PointCloudInput,
    PointCloudMessage,
    dispatch_message,
)
from pcdfuse.sensors import LiDARLoader, PointCloud, read_bin_pointcloud, rects_from_detections
from pcdfuse.utils import FusionConfig, load_fusion_config, setup_logger
from pcdfuse.viz import (
    ColorSampler,
    PointColorMode,
    colorize_points,
    create_bev_image,
    render_camera_message,
    save_image,
)


IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg")


def parse_camera_paths(values: Optional[List[str]]) -> Dict[str, Path]:
    """Parse repeated 'camera=path' arguments."""
    paths = {}
    for value in values or []:
        camera, sep, path = value.partition("=")
        if not sep or not camera or not path:
            raise argparse.ArgumentTypeError(f"expected camera=path, got '{value}'")
        paths[camera] = Path(path)
    return paths


def iterate_clouds(path: Path) -> Iterator[Tuple[str, PointCloud]]:
    """Yield (frame_id, cloud) from a .bin file or a directory of them."""
    if path.is_dir():
        yield from LiDARLoader(path).iterate_frames()
    else:
        yield path.stem, read_bin_pointcloud(path)


def frame_file(path: Path, frame_id: str, suffixes: Tuple[str, ...]) -> Optional[Path]:
    """The per-frame file inside a directory, or the path itself for a file."""
    if not path.is_dir():
        return path
    for suffix in suffixes:
        candidate = path / f"{frame_id}{suffix}"
        if candidate.exists():
            return candidate
    return None


def produce(
    buffer: HandoffBuffer,
    config: FusionConfig,
    pointcloud: Path,
    images: Dict[str, Path],
    detections: Dict[str, Path],
    logger,
) -> None:
    """Feed input messages into the buffer, closing it when done."""
    try:
        for frame_id, cloud in iterate_clouds(pointcloud):
            for camera, path in images.items():
                image_file = frame_file(path, frame_id, IMAGE_SUFFIXES)
                if image_file is None:
                    continue
                image = cv2.imread(str(image_file))
                if image is None:
                    logger.warning(f"Could not read image {image_file}")
                    continue
                buffer.put(ImageInput(camera, image))

            for camera, path in detections.items():
                det_file = frame_file(path, frame_id, (".json",))
                if det_file is None:
                    continue
                camera_config = config.camera(camera)
                with open(det_file, "r") as f:
                    rects = rects_from_detections(
                        json.load(f),
                        det_hw=camera_config.det_hw,
                        image_hw=camera_config.image_hw,
                    )
                buffer.put(DetectionInput(camera, rects))

            logger.info(f"Frame {frame_id}: {len(cloud)} points")
            buffer.put(PointCloudInput(cloud))
    finally:
        buffer.close()


def main():
    parser = argparse.ArgumentParser(description="LiDAR-camera fusion")
    parser.add_argument(
        "--config",
        type=str,
        required=True,
        help="Fusion configuration YAML",
    )
    parser.add_argument(
        "--pointcloud",
        type=str,
        required=True,
        help="Point cloud .bin file or directory of .bin files",
    )
    parser.add_argument(
        "--image",
        action="append",
        metavar="CAMERA=PATH",
        help="Camera image file or directory (repeatable)",
    )
    parser.add_argument(
        "--detections",
        action="append",
        metavar="CAMERA=PATH",
        help="Detection JSON file or directory (repeatable)",
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default="outputs/fusion",
        help="Output directory",
    )
    parser.add_argument(
        "--color-mode",
        type=str,
        default=PointColorMode.OBJECT_CLASS.value,
        choices=[mode.value for mode in PointColorMode],
        help="Point coloring of the bird's eye view",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=0,
        help="Class color seed",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        help="Logging level",
    )

    args = parser.parse_args()
    logger = setup_logger("pcdfuse", level=args.log_level)

    try:
        config = load_fusion_config(args.config)
        images = parse_camera_paths(args.image)
        detections = parse_camera_paths(args.detections)
        for camera in list(images) + list(detections):
            config.camera(camera)
        pipeline = FusionPipeline.from_config(config)
    except (ValidationError, FileNotFoundError, KeyError, argparse.ArgumentTypeError) as err:
        logger.error(str(err))
        return 1

    output_dir = Path(args.output_dir)
    sampler = ColorSampler(seed=args.seed)
    color_mode = PointColorMode(args.color_mode)

    def write_camera(message):
        camera = config.camera(message.camera)
        image = render_camera_message(message, camera, sampler)
        save_image(image, output_dir / message.camera / f"{message.frame:06d}.png")

    def write_cloud(message: PointCloudMessage):
        colors = colorize_points(message.points, message.associations, color_mode, sampler)
        save_image(
            create_bev_image(message.points, colors),
            output_dir / "bev" / f"{message.frame:06d}.png",
        )

    handlers = {
        ImageCameraMessage: write_camera,
        DetectionCameraMessage: write_camera,
        PointCloudMessage: write_cloud,
    }

    buffer = HandoffBuffer()
    producer = threading.Thread(
        target=produce,
        args=(buffer, config, Path(args.pointcloud), images, detections, logger),
        daemon=True,
    )
    producer.start()

    frames = pipeline.run(buffer, lambda message: dispatch_message(message, handlers))
    producer.join()

    logger.info(f"Wrote {frames} frames to {output_dir}/")
    return 0


if __name__ == "__main__":
    exit(main())
