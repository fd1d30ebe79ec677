import asyncio
import time
from math import degrees
from unittest.mock import AsyncMock, MagicMock, patch

from django.core import mail
from django.test import SimpleTestCase, TestCase, override_settings

from accounts.models import User
from common.notifier import EmailNotifier, Notifier
from common.utils import EARTH_RADIUS_KM, GeoPoint
from mechanics.models import Mechanic
from realtime.exceptions import DeliveryError
from realtime.identity import VerifiedIdentity
from realtime.presence import PresenceRegistry
from service_requests.models import RequestStatus, ServiceRequest
from services.matching import (
	DispatchReport,
	dispatch_service_request,
	fan_out,
	find_candidates,
	schedule_dispatch,
)
from services.matching.fanout import Delivery
from services.request_lifecycle import ServiceRequestNotFoundError

MUMBAI = GeoPoint(19.0760, 72.8777)


def north_of(center, km):
	return GeoPoint(center.latitude + degrees(km / EARTH_RADIUS_KM), center.longitude)


def make_mechanic(username, point, services=('battery-service',), available=True, rating=0, review_count=0):
	user = User.objects.create_user(
		username=username,
		password='mech1234',
		role=User.ROLE_MECHANIC,
		email=f'{username}@example.com',
	)
	return Mechanic.objects.create(
		user=user,
		business_name=f'{username} garage',
		latitude=round(point.latitude, 6),
		longitude=round(point.longitude, 6),
		services_offered=list(services),
		is_available=available,
		rating=rating,
		review_count=review_count,
	)


def make_request(point=MUMBAI, service_type='battery-service', **extra):
	return ServiceRequest.objects.create(
		latitude=round(point.latitude, 6),
		longitude=round(point.longitude, 6),
		service_type=service_type,
		description='Battery is dead',
		**extra
	)


class FakeVerifier:
	"""Maps token -> mechanic id."""

	def __init__(self, tokens):
		self.tokens = tokens

	def verify(self, token):
		return VerifiedIdentity(subject_id=0, role='mechanic', mechanic_id=self.tokens[token])


class RecordingNotifier(Notifier):
	def __init__(self, fail_for=()):
		self.sent = []
		self.fail_for = set(fail_for)

	def send(self, address, subject, body):
		if address in self.fail_for:
			raise DeliveryError(f'mailbox {address} unavailable')
		self.sent.append((address, subject, body))


class SlowNotifier(Notifier):
	def send(self, address, subject, body):
		time.sleep(0.5)


class FindCandidatesTests(TestCase):
	def test_radius_correctness(self):
		for km in (2, 9, 11, 15):
			make_mechanic(f'mech_{km}km', north_of(MUMBAI, km))

		candidates = find_candidates(MUMBAI, 10, 'battery-service')

		names = sorted(m.user.username for m in candidates)
		self.assertEqual(names, ['mech_2km', 'mech_9km'])
		for mechanic in candidates:
			self.assertLessEqual(mechanic.distance_km, 10)

	def test_mumbai_scenario(self):
		make_mechanic('p1', GeoPoint(19.0825, 72.8900))
		make_mechanic('p2', GeoPoint(19.4000, 72.8000))

		candidates = find_candidates(MUMBAI, 10, 'battery-service')

		self.assertEqual([m.user.username for m in candidates], ['p1'])
		self.assertAlmostEqual(candidates[0].distance_km, 1.48, delta=0.05)

	def test_service_type_filter(self):
		make_mechanic('battery', north_of(MUMBAI, 1), services=['battery-service'])
		make_mechanic('tires', north_of(MUMBAI, 1), services=['tire-repair'])
		make_mechanic('nothing', north_of(MUMBAI, 1), services=[])

		candidates = find_candidates(MUMBAI, 10, 'battery-service')

		self.assertEqual([m.user.username for m in candidates], ['battery'])

	def test_unavailable_and_unlocated_mechanics_are_skipped(self):
		make_mechanic('off_shift', north_of(MUMBAI, 1), available=False)
		unlocated = make_mechanic('unlocated', north_of(MUMBAI, 1))
		Mechanic.objects.filter(pk=unlocated.pk).update(latitude=None, longitude=None)

		self.assertEqual(find_candidates(MUMBAI, 10, 'battery-service'), [])

	def test_ranked_by_rating_then_distance(self):
		make_mechanic('close_low', north_of(MUMBAI, 1), rating=3.0, review_count=10)
		make_mechanic('far_high', north_of(MUMBAI, 8), rating=4.8, review_count=2)
		make_mechanic('mid_low', north_of(MUMBAI, 4), rating=3.0, review_count=10)

		candidates = find_candidates(MUMBAI, 10, 'battery-service')

		self.assertEqual(
			[m.user.username for m in candidates],
			['far_high', 'close_low', 'mid_low'],
		)


class FanOutTests(SimpleTestCase):
	def _delivery(self, mechanic_id, send):
		return Delivery(mechanic_id=mechanic_id, route='live', send=send, bucket='live_notified')

	def test_failures_are_collected_not_raised(self):
		async def ok():
			return None

		async def boom():
			raise DeliveryError('socket gone')

		deliveries = [self._delivery(1, ok), self._delivery(2, boom), self._delivery(3, ok)]
		succeeded, failures = asyncio.run(fan_out(deliveries, max_concurrency=2, timeout=1))

		self.assertEqual([d.mechanic_id for d in succeeded], [1, 3])
		self.assertEqual(len(failures), 1)
		self.assertEqual(failures[0].mechanic_id, 2)
		self.assertIn('socket gone', failures[0].reason)

	def test_slow_send_times_out(self):
		async def hang():
			await asyncio.sleep(5)

		succeeded, failures = asyncio.run(
			fan_out([self._delivery(7, hang)], max_concurrency=1, timeout=0.05)
		)

		self.assertEqual(succeeded, [])
		self.assertIn('timed out', failures[0].reason)

	def test_concurrency_is_bounded(self):
		in_flight = 0
		peak = 0

		async def send():
			nonlocal in_flight, peak
			in_flight += 1
			peak = max(peak, in_flight)
			await asyncio.sleep(0.01)
			in_flight -= 1

		deliveries = [self._delivery(i, send) for i in range(10)]
		succeeded, failures = asyncio.run(fan_out(deliveries, max_concurrency=3, timeout=1))

		self.assertEqual(len(succeeded), 10)
		self.assertEqual(failures, [])
		self.assertLessEqual(peak, 3)

	def test_empty(self):
		self.assertEqual(asyncio.run(fan_out([], max_concurrency=3, timeout=1)), ([], []))


@override_settings(DISPATCH={"FALLBACK_TO_LIVE_CANDIDATES": False, "SEND_TIMEOUT_SECONDS": 1})
class DispatchTests(TestCase):
	def setUp(self):
		self.m1 = make_mechanic('m1', north_of(MUMBAI, 1))
		self.m2 = make_mechanic('m2', north_of(MUMBAI, 2))
		self.m3 = make_mechanic('m3', north_of(MUMBAI, 3))
		make_mechanic('too_far', north_of(MUMBAI, 30))
		self.request = make_request()
		self.registry = PresenceRegistry(verifier=FakeVerifier({'tok-m1': self.m1.id}), emit=lambda *a: None)

	@patch('services.matching.dispatch.send_to_channel', new_callable=AsyncMock)
	def test_presence_partition(self, mock_send):
		self.registry.identify('tok-m1', 'chan-m1')
		notifier = RecordingNotifier()

		report = dispatch_service_request(self.request.id, registry=self.registry, notifier=notifier)

		self.assertIsInstance(report, DispatchReport)
		self.assertEqual(report.total_candidates, 3)
		self.assertEqual(report.live_notified, 1)
		self.assertEqual(report.offline_notified, 2)
		self.assertEqual(report.failures, [])

		mock_send.assert_awaited_once()
		channel_name, event_type, payload = mock_send.await_args.args
		self.assertEqual(channel_name, 'chan-m1')
		self.assertEqual(event_type, 'service_request_offer')
		self.assertEqual(payload['request']['id'], self.request.id)
		self.assertEqual(payload['distance_km'], 1.0)

		addresses = sorted(address for address, _, _ in notifier.sent)
		self.assertEqual(addresses, ['m2@example.com', 'm3@example.com'])
		self.assertEqual(notifier.sent[0][1], 'New Service Request Near You')

	@patch('services.matching.dispatch.send_to_channel', new_callable=AsyncMock)
	def test_one_failed_email_does_not_stop_the_rest(self, mock_send):
		notifier = RecordingNotifier(fail_for={'m2@example.com'})

		report = dispatch_service_request(self.request.id, registry=self.registry, notifier=notifier)

		self.assertEqual(report.offline_notified, 2)
		self.assertEqual(len(report.failures), 1)
		self.assertEqual(report.failures[0].mechanic_id, self.m2.id)
		self.assertEqual(report.failures[0].route, 'email')
		mock_send.assert_not_awaited()

	@patch('services.matching.dispatch.send_to_channel', new_callable=AsyncMock)
	def test_live_push_failure_is_recorded(self, mock_send):
		mock_send.side_effect = DeliveryError('channel closed')
		self.registry.identify('tok-m1', 'chan-m1')

		report = dispatch_service_request(self.request.id, registry=self.registry, notifier=RecordingNotifier())

		self.assertEqual(report.live_notified, 0)
		self.assertEqual([f.route for f in report.failures], ['live'])

	@override_settings(DISPATCH={"SEND_TIMEOUT_SECONDS": 0.1})
	def test_slow_notifier_times_out(self):
		report = dispatch_service_request(self.request.id, registry=self.registry, notifier=SlowNotifier())

		self.assertEqual(report.offline_notified, 0)
		self.assertEqual(len(report.failures), 3)
		self.assertTrue(all('timed out' in f.reason for f in report.failures))

	@override_settings(DISPATCH={"FALLBACK_TO_LIVE_CANDIDATES": True})
	@patch('services.matching.dispatch.send_to_channel', new_callable=AsyncMock)
	def test_live_candidates_also_get_fallback_email(self, mock_send):
		self.registry.identify('tok-m1', 'chan-m1')
		notifier = RecordingNotifier()

		report = dispatch_service_request(self.request.id, registry=self.registry, notifier=notifier)

		self.assertEqual(report.live_notified, 1)
		self.assertEqual(report.offline_notified, 2)
		self.assertEqual(report.fallback_to_live_notified, 1)
		self.assertIn('m1@example.com', [address for address, _, _ in notifier.sent])

	def test_email_notifier_uses_django_mail(self):
		report = dispatch_service_request(self.request.id, registry=self.registry, notifier=EmailNotifier())

		self.assertEqual(report.offline_notified, 3)
		self.assertEqual(len(mail.outbox), 3)
		self.assertIn('battery-service', mail.outbox[0].body)

	def test_request_no_longer_pending_is_skipped(self):
		ServiceRequest.objects.filter(pk=self.request.pk).update(status=RequestStatus.CANCELLED)
		notifier = RecordingNotifier()

		report = dispatch_service_request(self.request.id, registry=self.registry, notifier=notifier)

		self.assertEqual(report.total_candidates, 0)
		self.assertEqual(report.skipped_reason, 'request is cancelled')
		self.assertEqual(notifier.sent, [])

	def test_unknown_request_raises_not_found(self):
		notifier = RecordingNotifier()

		with self.assertRaises(ServiceRequestNotFoundError):
			dispatch_service_request(999999, registry=self.registry, notifier=notifier)

		self.assertEqual(notifier.sent, [])

	def test_no_candidates(self):
		request = make_request(point=GeoPoint(0, 0))

		report = dispatch_service_request(request.id, registry=self.registry, notifier=RecordingNotifier())

		self.assertEqual(report.as_dict()['total_candidates'], 0)
		self.assertEqual(report.failures, [])

	@patch('services.matching.dispatch._get_executor')
	def test_schedule_dispatch_runs_after_commit(self, mock_get_executor):
		executor = MagicMock()
		mock_get_executor.return_value = executor

		with self.captureOnCommitCallbacks(execute=False) as callbacks:
			schedule_dispatch(self.request.id)
		executor.submit.assert_not_called()

		for callback in callbacks:
			callback()
		self.assertEqual(executor.submit.call_args.args[1], self.request.id)
