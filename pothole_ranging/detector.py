# detector.py
"""Ultralytics YOLO pothole-detection adapter."""
from __future__ import annotations

from typing import List

import numpy as np
from ultralytics import YOLO

from pothole_ranging.common import Detection
from pothole_ranging.config import DetectorConfig


class YoloPotholeDetector:
    def __init__(self, config: DetectorConfig):
        self.config = config
        print(f"[Detector] Loading model {config.model_path}")
        self.model = YOLO(config.model_path)

    def detect(self, frame_bgr: np.ndarray) -> List[Detection]:
        """Returns Detection(x1, y1, x2, y2, conf, cls) sorted by confidence."""
        results = self.model.predict(
            frame_bgr,
            conf=self.config.min_confidence,
            iou=self.config.iou_threshold,
            imgsz=self.config.input_size,
            classes=self.config.class_ids,
            device=self.config.device,
            verbose=False,
        )
        out: List[Detection] = []
        if not results:
            return out

        boxes = results[0].boxes
        if boxes is None or len(boxes) == 0:
            return out

        data = boxes.data.cpu().numpy()
        min_size = self.config.min_bbox_size_px
        for x1, y1, x2, y2, conf, cls in data[:, :6]:
            if conf < self.config.min_confidence:
                continue
            if x2 - x1 < min_size or y2 - y1 < min_size:
                continue
            out.append(
                Detection(float(x1), float(y1), float(x2), float(y2), float(conf), int(cls))
            )

        out.sort(key=lambda d: d.confidence, reverse=True)
        return out

    def close(self) -> None:
        self.model = None
