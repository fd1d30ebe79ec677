from math import degrees

from django.test import SimpleTestCase, override_settings

from common.conf import dispatch_setting
from common.notifier import EmailNotifier, Notifier, get_notifier, reset_notifier
from common.utils import (
	EARTH_RADIUS_KM,
	GeoPoint,
	bounding_box,
	display_km,
	distance_km,
	is_dispatch_candidate,
	offers_service,
	within_radius,
)

MUMBAI = GeoPoint(19.0760, 72.8777)


def north_of(center, km):
	return GeoPoint(center.latitude + degrees(km / EARTH_RADIUS_KM), center.longitude)


class SilentNotifier(Notifier):
	def send(self, address, subject, body):
		return None


class GeoTests(SimpleTestCase):
	def test_distance_between_mumbai_points(self):
		distance = distance_km(MUMBAI, GeoPoint(19.0825, 72.8900))
		self.assertAlmostEqual(distance, 1.48, delta=0.05)
		self.assertEqual(display_km(distance), 1.5)

	def test_distance_to_self_is_zero(self):
		self.assertEqual(distance_km(MUMBAI, MUMBAI), 0)

	def test_far_point_outside_radius(self):
		self.assertFalse(within_radius(MUMBAI, GeoPoint(19.4000, 72.8000), 10))

	def test_radius_boundary_is_inclusive(self):
		point = north_of(MUMBAI, 10)
		radius = distance_km(MUMBAI, point)
		self.assertTrue(within_radius(MUMBAI, point, radius))

	def test_bounding_box_contains_cap(self):
		min_lat, max_lat, min_lon, max_lon = bounding_box(MUMBAI, 10)
		for km in (2, 9, 9.99):
			point = north_of(MUMBAI, km)
			self.assertTrue(min_lat <= point.latitude <= max_lat)
		self.assertLess(min_lon, MUMBAI.longitude)
		self.assertGreater(max_lon, MUMBAI.longitude)
		self.assertLess(max_lon - min_lon, 1)

	def test_bounding_box_near_pole_spans_all_longitudes(self):
		_, max_lat, min_lon, max_lon = bounding_box(GeoPoint(89.99, 10), 50)
		self.assertEqual((min_lon, max_lon), (-180.0, 180.0))
		self.assertEqual(max_lat, 90.0)

	def test_bounding_box_across_antimeridian_spans_all_longitudes(self):
		_, _, min_lon, max_lon = bounding_box(GeoPoint(0, 179.99), 20)
		self.assertEqual((min_lon, max_lon), (-180.0, 180.0))


class CandidateFilterTests(SimpleTestCase):
	def test_offers_service(self):
		self.assertTrue(offers_service(['battery-service', 'electrical'], 'battery-service'))
		self.assertFalse(offers_service(['tire-repair'], 'battery-service'))
		self.assertFalse(offers_service([], 'battery-service'))
		self.assertFalse(offers_service(None, 'battery-service'))

	def test_unavailable_mechanic_is_never_a_candidate(self):
		self.assertFalse(is_dispatch_candidate(False, ['battery-service'], 'battery-service'))
		self.assertTrue(is_dispatch_candidate(True, ['battery-service'], 'battery-service'))


class DispatchSettingTests(SimpleTestCase):
	@override_settings(DISPATCH={"DEFAULT_RADIUS_KM": 25})
	def test_override_and_default(self):
		self.assertEqual(dispatch_setting("DEFAULT_RADIUS_KM"), 25)
		self.assertEqual(dispatch_setting("NEARBY_WINDOW_HOURS"), 24)

	def test_unknown_setting(self):
		with self.assertRaises(KeyError):
			dispatch_setting("NOPE")


class NotifierSettingTests(SimpleTestCase):
	def setUp(self):
		reset_notifier()
		self.addCleanup(reset_notifier)

	@override_settings(DISPATCH={"NOTIFIER_CLASS": "common.tests.SilentNotifier", "FROM_EMAIL": "dispatch@example.com"})
	def test_notifier_class_and_sender_come_from_dispatch_settings(self):
		self.assertIsInstance(get_notifier(), SilentNotifier)
		self.assertEqual(EmailNotifier().from_email, 'dispatch@example.com')

	def test_default_notifier_is_email(self):
		self.assertIsInstance(get_notifier(), EmailNotifier)
