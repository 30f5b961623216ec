"""
Per-camera fusion pipelines.

One CameraPipeline runs per camera: it projects the shared cloud with that
camera's calibration and associates the result with that camera's
detections. FusionPipeline fans a frame out to all camera pipelines on a
thread pool and assembles the fusion messages.

Threading Model:
================
    source thread ──put──▶ HandoffBuffer(capacity=2) ──iter──▶ FusionPipeline.run
                                                                 │
                                        ThreadPoolExecutor ◀─────┘ one task per camera

The cloud, calibrations and rectangle sets are never mutated after they
are published, so camera tasks read them concurrently without locks. The
bulk numpy/OpenCV calls release the GIL.
"""

import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Iterator, List, Optional

import numpy as np

from .associator import Associations, associate
from .messages import (
    DetectionInput,
    FuseMessage,
    ImageInput,
    InputMessage,
    PointCloudInput,
    assemble_messages,
    dispatch_message,
)
from .projector import PointProjector
from ..calibration.camera import CameraCalibration, load_camera_calibration
from ..errors import ProjectionError
from ..sensors.detections import RectSet
from ..sensors.pointcloud import PointCloud
from ..utils.config_loader import FusionConfig
from ..utils.logger import LoggerMixin


DEFAULT_HANDOFF_CAPACITY = 2


# =============================================================================
# Hand-off Buffer
# =============================================================================

class BufferClosed(Exception):
    """Raised when putting into a closed HandoffBuffer."""


class HandoffBuffer:
    """
    Bounded hand-off between a message source and a consumer.

    ``put`` blocks while the buffer is full. ``close`` signals the end of
    input: iteration stops once the remaining items are drained. Every
    ``put`` that returns normally is delivered before the end of input;
    a ``put`` still waiting for room when the buffer closes raises
    BufferClosed instead.

    Example:
        >>> buffer = HandoffBuffer()
        >>> threading.Thread(target=produce, args=(buffer,)).start()
        >>> for message in buffer:
        ...     handle(message)
    """

    _CLOSED = object()

    def __init__(self, capacity: int = DEFAULT_HANDOFF_CAPACITY):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        # One extra slot so close() never blocks on a full buffer
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=capacity + 1)
        self._slots = queue.Queue(maxsize=capacity)
        # Orders enqueues against the close marker
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, item, timeout: Optional[float] = None) -> None:
        """
        Hand an item to the consumer, blocking while the buffer is full.

        Raises:
            BufferClosed: If the buffer was closed, before or while waiting.
            queue.Full: If timeout elapsed while the buffer stayed full.
        """
        if self._closed:
            raise BufferClosed("put on a closed buffer")
        self._slots.put(None, timeout=timeout)
        with self._lock:
            if self._closed:
                self._slots.get_nowait()
                raise BufferClosed("buffer closed while waiting to put")
            self._queue.put_nowait(item)

    def close(self) -> None:
        """Signal that no more items will be put."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put_nowait(self._CLOSED)

    def get(self, timeout: Optional[float] = None):
        """
        Take the next item.

        Raises:
            BufferClosed: If the buffer is closed and drained.
            queue.Empty: If timeout elapsed with nothing available.
        """
        item = self._queue.get(timeout=timeout)
        if item is self._CLOSED:
            # Leave the marker for any later get()
            self._queue.put(item)
            raise BufferClosed("buffer closed")
        self._slots.get()
        return item

    def __iter__(self) -> Iterator:
        while True:
            try:
                yield self.get()
            except BufferClosed:
                return


# =============================================================================
# Frame Assembly
# =============================================================================

@dataclass(frozen=True)
class FusionFrame:
    """
    Everything one fusion cycle needs.

    Attributes:
        number: Frame sequence number.
        cloud: The shared point cloud.
        images: Latest image per camera.
        rects: Latest detections per camera.
    """

    number: int
    cloud: PointCloud
    images: Dict[str, np.ndarray] = field(default_factory=dict)
    rects: Dict[str, RectSet] = field(default_factory=dict)


class FrameAssembler:
    """
    Keep the latest image and detections per camera, and emit a
    FusionFrame whenever a point cloud arrives.
    """

    def __init__(self):
        self._images: Dict[str, np.ndarray] = {}
        self._rects: Dict[str, RectSet] = {}
        self._frame_count = 0

    def update(self, message: InputMessage) -> Optional[FusionFrame]:
        """
        Consume one input message.

        Returns:
            FusionFrame when the message was a point cloud, else None.
        """
        return dispatch_message(
            message,
            {
                PointCloudInput: self._on_cloud,
                ImageInput: self._on_image,
                DetectionInput: self._on_rects,
            },
        )

    def _on_cloud(self, message: PointCloudInput) -> FusionFrame:
        frame = FusionFrame(
            number=self._frame_count,
            cloud=message.cloud,
            images=dict(self._images),
            rects=dict(self._rects),
        )
        self._frame_count += 1
        return frame

    def _on_image(self, message: ImageInput) -> None:
        self._images[message.camera] = message.image

    def _on_rects(self, message: DetectionInput) -> None:
        self._rects[message.camera] = message.rects


# =============================================================================
# Pipelines
# =============================================================================

class CameraPipeline(LoggerMixin):
    """
    Projection and association for one camera.

    Attributes:
        name: Camera name.
        kind: 'image' or 'detection'.
        projector: The camera's point projector.
    """

    def __init__(self, name: str, kind: str, projector: PointProjector):
        self.name = name
        self.kind = kind
        self.projector = projector

    @classmethod
    def from_calibration(cls, calibration: CameraCalibration, kind: str) -> "CameraPipeline":
        return cls(calibration.name, kind, PointProjector(calibration))

    def process(
        self,
        cloud: PointCloud,
        rects: Optional[RectSet] = None,
        frame: int = 0,
    ) -> Optional[Associations]:
        """
        Run one fusion cycle.

        Args:
            cloud: The frame's point cloud.
            rects: The camera's detections, if any.
            frame: Frame number for logging.

        Returns:
            Associations, or None when the frame is dropped after a
            projection failure.
        """
        try:
            projected = self.projector.project(cloud)
        except ProjectionError as err:
            self.logger.warning(f"[{self.name}] dropping frame {frame}: {err}")
            return None

        associations = associate(projected, rects)
        self.logger.debug(
            f"[{self.name}] frame {frame}: {len(cloud)} points, "
            f"{len(projected)} projected, "
            f"{len(associations.associated())} associated"
        )
        return associations


class FusionPipeline(LoggerMixin):
    """
    Fan frames out to all camera pipelines and assemble fusion messages.

    Example:
        >>> pipeline = FusionPipeline.from_config(load_fusion_config("configs/default.yaml"))
        >>> messages = pipeline.process_frame(frame)
    """

    def __init__(self, cameras: Iterable[CameraPipeline], max_workers: int = 4):
        self.cameras: List[CameraPipeline] = list(cameras)
        self.max_workers = max_workers

    @classmethod
    def from_config(cls, config: FusionConfig) -> "FusionPipeline":
        """
        Build camera pipelines from a validated configuration.

        Calibration errors surface here, before any frame is processed.
        """
        cameras = [
            CameraPipeline.from_calibration(
                load_camera_calibration(camera, config.base_dir),
                camera.kind,
            )
            for camera in config.cameras
        ]
        return cls(cameras, max_workers=config.max_workers)

    def process_frame(
        self,
        frame: FusionFrame,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> List[FuseMessage]:
        """
        Run every camera pipeline on one frame.

        Args:
            frame: The frame to fuse.
            executor: Pool to run camera tasks on; a temporary one is
                      created when omitted.

        Returns:
            List[FuseMessage]: One message per camera plus the point cloud
                               message.
        """
        if executor is None:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                return self.process_frame(frame, pool)

        futures = {
            camera.name: executor.submit(
                camera.process,
                frame.cloud,
                frame.rects.get(camera.name),
                frame.number,
            )
            for camera in self.cameras
        }
        associations = {name: future.result() for name, future in futures.items()}

        return assemble_messages(
            frame.number,
            frame.cloud,
            {camera.name: camera.kind for camera in self.cameras},
            associations,
            images=frame.images,
            rects=frame.rects,
        )

    def run(
        self,
        source: HandoffBuffer,
        sink: Callable[[FuseMessage], None],
    ) -> int:
        """
        Consume input messages until the source closes.

        Args:
            source: Buffer of InputMessages.
            sink: Called with every fusion message.

        Returns:
            int: Number of frames processed.
        """
        assembler = FrameAssembler()
        frames = 0

        self.logger.info(f"Fusion started with cameras {[c.name for c in self.cameras]}")
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            for message in source:
                frame = assembler.update(message)
                if frame is None:
                    continue
                for fused in self.process_frame(frame, executor):
                    sink(fused)
                frames += 1

        self.logger.info(f"Input closed after {frames} frames")
        return frames
