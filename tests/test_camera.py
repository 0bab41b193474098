"""VideoSource over a mocked cv2.VideoCapture."""

import unittest
from unittest import mock

import cv2
import numpy as np

from pothole_ranging.camera import StreamInfo, VideoSource
from pothole_ranging.config import VideoConfig

PROPS = {
    cv2.CAP_PROP_FRAME_WIDTH: 640.0,
    cv2.CAP_PROP_FRAME_HEIGHT: 480.0,
    cv2.CAP_PROP_FPS: 30.0,
    cv2.CAP_PROP_FRAME_COUNT: 900.0,
    cv2.CAP_PROP_POS_FRAMES: 12.0,
}


def fake_capture(opened=True, props=PROPS):
    cap = mock.Mock()
    cap.isOpened.return_value = opened
    cap.get.side_effect = lambda prop: props.get(prop, 0.0)
    cap.set.return_value = True
    return cap


@mock.patch("builtins.print")
class VideoSourceTest(unittest.TestCase):
    def test_file_source(self, _print):
        cap = fake_capture()
        with mock.patch("cv2.VideoCapture", return_value=cap) as ctor:
            src = VideoSource(VideoConfig(source="drive.mp4"))
            self.assertTrue(src.open())
        ctor.assert_called_once_with("drive.mp4")
        self.assertTrue(src.is_file)
        self.assertEqual(src.info, StreamInfo(640, 480, 30.0, 900))
        self.assertEqual(src.frame_count, 900)
        self.assertEqual(src.position, 12)
        cap.set.assert_not_called()

    def test_device_source(self, _print):
        cap = fake_capture()
        with mock.patch("cv2.VideoCapture", return_value=cap) as ctor:
            src = VideoSource(VideoConfig(source="1", buffer_size=2))
            self.assertTrue(src.open())
        ctor.assert_called_once_with(1)
        cap.set.assert_called_once_with(cv2.CAP_PROP_BUFFERSIZE, 2)
        self.assertEqual(src.frame_count, 0)
        self.assertFalse(src.rewind())

    def test_open_failures(self, _print):
        for cap in (fake_capture(opened=False), fake_capture(props={})):
            with self.subTest(cap=cap):
                with mock.patch("cv2.VideoCapture", return_value=cap):
                    src = VideoSource(VideoConfig(source="drive.mp4"))
                    self.assertFalse(src.open())
                self.assertFalse(src.is_opened())
                cap.release.assert_called_once()

    def test_read_and_rewind(self, _print):
        cap = fake_capture()
        frame = np.zeros((480, 640, 3), dtype=np.uint8)
        cap.read.side_effect = [(True, frame), (False, None)]
        with mock.patch("cv2.VideoCapture", return_value=cap):
            src = VideoSource(VideoConfig(source="drive.mp4"))
            src.open()

        _, got = src.read()
        self.assertIs(got, frame)
        _, got = src.read()
        self.assertIsNone(got)
        self.assertTrue(src.rewind())
        cap.set.assert_called_once_with(cv2.CAP_PROP_POS_FRAMES, 0)

        src.release()
        cap.release.assert_called_once()
        self.assertIsNone(src.read()[1])


if __name__ == "__main__":
    unittest.main()
