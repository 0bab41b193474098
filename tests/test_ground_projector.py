"""GroundProjector geometry, trig cache and contact-point policy."""

import math
import unittest

from pothole_ranging.common import CameraIntrinsics, ConfigurationError
from pothole_ranging.ground_projector import GroundProjector, contact_point

THETA = math.radians(15.0)


def make_projector(h=1.50, theta=THETA):
    proj = GroundProjector(CameraIntrinsics(600.0, 600.0, 320.0, 240.0, h))
    proj.update_theta_cache(theta)
    return proj


def reference_distance(v, h=1.50, theta=THETA, fy=600.0, cy=240.0):
    yn = (v - cy) / fy
    return h * math.cos(theta) / (math.sin(theta) + yn * math.cos(theta))


class IntrinsicsTest(unittest.TestCase):
    def test_rejects_bad_values(self):
        bad = [
            (0.0, 600.0, 320.0, 240.0, 1.5),
            (600.0, -1.0, 320.0, 240.0, 1.5),
            (600.0, 600.0, 320.0, 240.0, 0.0),
            (600.0, 600.0, float("nan"), 240.0, 1.5),
        ]
        for args in bad:
            with self.subTest(args=args):
                with self.assertRaises(ConfigurationError):
                    CameraIntrinsics(*args)


class DistanceScenarioTest(unittest.TestCase):
    def setUp(self):
        self.proj = make_projector()

    def test_straight_ahead(self):
        res = self.proj.distance_from_pixel((320, 400))
        self.assertTrue(res.valid)
        self.assertAlmostEqual(res.distance_m, reference_distance(400), places=12)
        self.assertAlmostEqual(res.distance_m, 2.806, places=3)
        self.assertEqual(res.lateral_m, 0.0)

    def test_column_only_changes_lateral(self):
        centre = self.proj.distance_from_pixel((320, 400))
        right = self.proj.distance_from_pixel((500, 400))
        self.assertTrue(right.valid)
        self.assertEqual(right.distance_m, centre.distance_m)
        self.assertAlmostEqual(right.lateral_m, right.distance_m * 180.0 / 600.0, places=12)

    def test_left_is_negative(self):
        res = self.proj.distance_from_pixel((100, 400))
        self.assertLess(res.lateral_m, 0.0)

    def test_near_horizon_is_far_but_valid(self):
        res = self.proj.distance_from_pixel((320, 100))
        self.assertTrue(res.valid)
        self.assertAlmostEqual(res.distance_m, reference_distance(100), places=9)
        self.assertAlmostEqual(res.distance_m, 43.3, delta=0.2)

    def test_horizon_row_is_invalid(self):
        self.assertFalse(self.proj.distance_from_pixel((320, 79.2)).valid)
        v_h = self.proj.horizon_row()
        self.assertAlmostEqual(v_h, 240.0 - 600.0 * math.tan(THETA), places=9)
        self.assertFalse(self.proj.distance_from_pixel((320, v_h)).valid)

    def test_everything_above_horizon_is_invalid(self):
        v_h = self.proj.horizon_row()
        for v in range(0, int(v_h) + 1):
            with self.subTest(v=v):
                self.assertFalse(self.proj.distance_from_pixel((320, v)).valid)

    def test_negative_distance_is_invalid(self):
        # Pitch beyond 90°: cos < 0 makes D negative wherever denom > 0
        proj = make_projector(theta=2.0)
        res = proj.distance_from_pixel((320, 240))
        self.assertFalse(res.valid)


class PropertyTest(unittest.TestCase):
    def test_distance_decreases_down_the_image(self):
        proj = make_projector()
        start = int(proj.horizon_row()) + 2
        prev = math.inf
        for v in range(start, 480):
            res = proj.distance_from_pixel((320, v), d_min=0.0, d_max=1e12)
            self.assertTrue(res.valid)
            self.assertLess(res.distance_m, prev)
            prev = res.distance_m

    def test_distance_scales_with_height(self):
        for k in (0.5, 2.0, 3.7):
            with self.subTest(k=k):
                base = make_projector(h=1.5).distance_from_pixel((320, 400), 0.0, 1e12)
                scaled = make_projector(h=1.5 * k).distance_from_pixel((320, 400), 0.0, 1e12)
                self.assertAlmostEqual(scaled.distance_m, base.distance_m * k, places=12)

    def test_cache_matches_reference_formula(self):
        for theta in (0.05, 0.1, THETA, 0.4, 0.7):
            proj = make_projector(theta=theta)
            for v in (300, 350, 479):
                res = proj.distance_from_pixel((320, v), 0.0, 1e12)
                self.assertTrue(res.valid)
                self.assertEqual(res.distance_m, reference_distance(v, theta=theta))

    def test_results_are_clamped(self):
        proj = make_projector()
        far = proj.distance_from_pixel((320, 81), d_max=50.0)
        self.assertTrue(far.valid)
        self.assertEqual(far.distance_m, 50.0)

        near = proj.distance_from_pixel((320, 479), d_min=5.0)
        self.assertTrue(near.valid)
        self.assertEqual(near.distance_m, 5.0)

        wide = proj.distance_from_pixel((639, 300), x_max=0.5)
        self.assertEqual(wide.lateral_m, 0.5)
        wide_left = proj.distance_from_pixel((0, 300), x_max=0.5)
        self.assertEqual(wide_left.lateral_m, -0.5)

    def test_default_clamp_window(self):
        proj = make_projector()
        for v in range(81, 480, 7):
            for u in (0, 320, 639):
                res = proj.distance_from_pixel((u, v))
                self.assertTrue(0.5 <= res.distance_m <= 200.0)
                self.assertTrue(-50.0 <= res.lateral_m <= 50.0)


class TrigCacheTest(unittest.TestCase):
    def test_fresh_cache_is_level(self):
        proj = GroundProjector(CameraIntrinsics(600.0, 600.0, 320.0, 240.0, 1.5))
        self.assertEqual(proj.cached_theta, 0.0)
        res = proj.distance_from_pixel((320, 300), 0.0, 1e12)
        self.assertAlmostEqual(res.distance_m, 1.5 / (60.0 / 600.0), places=12)
        self.assertFalse(proj.distance_from_pixel((320, 240)).valid)

    def test_tiny_changes_do_not_refresh(self):
        proj = make_projector()
        proj.update_theta_cache(THETA + 5e-7)
        self.assertEqual(proj.cached_theta, THETA)
        proj.update_theta_cache(THETA + 5e-6)
        self.assertEqual(proj.cached_theta, THETA + 5e-6)

    def test_query_does_not_touch_cache(self):
        proj = make_projector()
        before = proj.distance_from_pixel((320, 400))
        proj.distance_from_pixel((320, 10))
        after = proj.distance_from_pixel((320, 400))
        self.assertEqual(before, after)
        self.assertEqual(proj.cached_theta, THETA)

    def test_non_finite_theta_invalidates_queries(self):
        for bad in (float("nan"), float("inf"), -float("inf")):
            with self.subTest(theta=bad):
                proj = make_projector()
                proj.update_theta_cache(bad)
                self.assertFalse(proj.distance_from_pixel((320, 400)).valid)
                self.assertFalse(proj.distance_from_pixel((320, 479)).valid)

    def test_recovers_after_non_finite_theta(self):
        proj = make_projector()
        good = proj.distance_from_pixel((320, 400))
        proj.update_theta_cache(float("nan"))
        proj.update_theta_cache(THETA)
        self.assertEqual(proj.cached_theta, THETA)
        self.assertEqual(proj.distance_from_pixel((320, 400)), good)


class ContactPointTest(unittest.TestCase):
    def test_bottom_centre_with_bias(self):
        self.assertEqual(contact_point((300, 380, 40, 30), 480), (320.0, 411))

    def test_custom_bias(self):
        self.assertEqual(contact_point((300, 380, 40, 30), 480, bias_px=0), (320.0, 409))

    def test_clamped_to_last_row(self):
        self.assertEqual(contact_point((0, 470, 10, 20), 480), (5.0, 479))


class AreaTest(unittest.TestCase):
    def test_legacy_scale(self):
        proj = make_projector()
        area = proj.estimate_area_m2(40, 30, 3.0, 480)
        scale = 3.0 / 240.0
        self.assertAlmostEqual(area, (40 * scale) * (30 * scale), places=12)

    def test_pinhole_scale(self):
        proj = make_projector()
        area = proj.estimate_area_m2(40, 30, 3.0, 480, model="pinhole")
        self.assertAlmostEqual(area, 40 * 30 * 9.0 / (600.0 * 600.0), places=12)


if __name__ == "__main__":
    unittest.main()
