"""SortTracker: ID persistence, confirmation and track expiry."""

import unittest

import numpy as np

from pothole_ranging.common import Detection
from pothole_ranging.config import TrackerConfig
from pothole_ranging.tracker import SortTracker, bbox_to_z, iou_matrix, x_to_bbox


def det(x1, y1, x2, y2, conf=0.9):
    return Detection(x1, y1, x2, y2, conf)


class BoxMathTest(unittest.TestCase):
    def test_z_round_trip(self):
        z = bbox_to_z((10.0, 20.0, 50.0, 40.0))
        self.assertEqual(z.shape, (4, 1))
        x = np.zeros((7, 1))
        x[:4] = z
        np.testing.assert_allclose(x_to_bbox(x), (10.0, 20.0, 50.0, 40.0))

    def test_iou(self):
        a = np.array([[0, 0, 10, 10]], dtype=float)
        b = np.array([[0, 0, 10, 10], [5, 0, 15, 10], [20, 20, 30, 30]], dtype=float)
        np.testing.assert_allclose(iou_matrix(a, b), [[1.0, 50.0 / 150.0, 0.0]])

    def test_iou_empty(self):
        self.assertEqual(iou_matrix(np.zeros((0, 4)), np.zeros((3, 4))).shape, (0, 3))


class SortTrackerTest(unittest.TestCase):
    def setUp(self):
        self.tracker = SortTracker(TrackerConfig(max_age=2, min_hits=3, iou_threshold=0.3))

    def test_first_detection_is_reported_immediately(self):
        out = self.tracker.update([det(100, 300, 140, 330)])
        self.assertEqual(len(out), 1)
        self.assertEqual(out[0].track_id, 1)
        self.assertAlmostEqual(out[0].x1, 100.0)
        self.assertAlmostEqual(out[0].y2, 330.0)

    def test_id_persists_while_box_moves(self):
        ids = set()
        for i in range(8):
            out = self.tracker.update([det(100, 300 + 2 * i, 140, 330 + 2 * i)])
            self.assertEqual(len(out), 1)
            ids.add(out[0].track_id)
        self.assertEqual(ids, {1})

    def test_separate_boxes_get_separate_ids(self):
        out = self.tracker.update([det(10, 300, 50, 330), det(400, 300, 440, 330)])
        self.assertEqual(sorted(t.track_id for t in out), [1, 2])

    def test_late_track_needs_min_hits(self):
        a = det(10, 300, 50, 330)
        b = det(400, 300, 440, 330)
        for _ in range(4):
            self.tracker.update([a])
        seen = []
        for _ in range(4):
            out = self.tracker.update([a, b])
            seen.append(sorted(t.track_id for t in out))
        # b is created on its first frame, then needs three consecutive hits
        self.assertEqual(seen, [[1], [1], [1], [1, 2]])

    def test_lost_track_expires(self):
        self.tracker.update([det(100, 300, 140, 330)])
        self.assertEqual(self.tracker.update([]), [])
        self.assertEqual(len(self.tracker.tracks), 1)
        self.tracker.update([])
        self.tracker.update([])
        self.assertEqual(self.tracker.tracks, [])

    def test_degenerate_boxes_ignored(self):
        self.assertEqual(self.tracker.update([det(10, 10, 10, 30)]), [])
        self.assertEqual(self.tracker.tracks, [])

    def test_reset_keeps_counting_ids(self):
        self.tracker.update([det(100, 300, 140, 330)])
        self.tracker.reset()
        out = self.tracker.update([det(100, 300, 140, 330)])
        self.assertEqual(out[0].track_id, 2)


if __name__ == "__main__":
    unittest.main()
