import threading
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.core import mail
from django.db import connection
from django.test import TestCase, TransactionTestCase
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.models import User
from mechanics.models import Mechanic
from services.request_lifecycle import (
	TRANSITIONS,
	AlreadyResolvedError,
	InvalidTransitionError,
	RequestValidationError,
	ServiceRequestNotFoundError,
	accept_service_request,
	add_request_note,
	can_transition,
	cancel_service_request,
	create_service_request,
	list_nearby_requests_for_mechanic,
	rate_service_request,
	update_request_status,
)
from .models import RequestStatus, ServiceRequest


VALID_REQUEST = {
	'latitude': 19.0760,
	'longitude': 72.8777,
	'address': 'Santacruz, Mumbai',
	'service_type': 'battery-service',
	'description': 'Battery is dead',
	'vehicle_make': 'Maruti',
	'vehicle_model': 'Swift',
	'customer_name': 'Asha',
	'customer_email': 'asha@example.com',
}


def make_mechanic(username, lat=19.0800, lon=72.8800, services=('battery-service',)):
	user = User.objects.create_user(
		username=username,
		password='mech1234',
		role=User.ROLE_MECHANIC,
		email=f'{username}@example.com',
	)
	return Mechanic.objects.create(
		user=user,
		business_name=f'{username} garage',
		latitude=lat,
		longitude=lon,
		services_offered=list(services),
	)


def make_request(**extra):
	data = {
		'latitude': 19.0760,
		'longitude': 72.8777,
		'service_type': 'battery-service',
		'description': 'Battery is dead',
	}
	data.update(extra)
	return ServiceRequest.objects.create(**data)


class CreateServiceRequestTests(TestCase):
	def test_create_is_pending_and_schedules_dispatch(self):
		with patch('services.matching.schedule_dispatch') as mock_schedule:
			request = create_service_request(VALID_REQUEST)

		self.assertEqual(request.status, RequestStatus.PENDING)
		self.assertIsNone(request.accepted_by)
		self.assertEqual(request.vehicle_make, 'Maruti')
		mock_schedule.assert_called_once_with(request.id)

	def test_missing_fields_are_rejected(self):
		with self.assertRaises(RequestValidationError) as ctx:
			create_service_request({'latitude': 19.0, 'service_type': 'battery-service'}, dispatch=False)

		self.assertIn('longitude', ctx.exception.errors)
		self.assertIn('description', ctx.exception.errors)
		self.assertEqual(ServiceRequest.objects.count(), 0)

	def test_out_of_range_coordinates_and_unknown_service(self):
		data = dict(VALID_REQUEST, latitude=91, service_type='teleport')

		with self.assertRaises(RequestValidationError) as ctx:
			create_service_request(data, dispatch=False)

		self.assertIn('latitude', ctx.exception.errors)
		self.assertIn('service_type', ctx.exception.errors)

	def test_description_limit(self):
		with self.assertRaises(RequestValidationError):
			create_service_request(dict(VALID_REQUEST, description='x' * 501), dispatch=False)
		with self.assertRaises(RequestValidationError):
			create_service_request(dict(VALID_REQUEST, description=''), dispatch=False)


class AcceptServiceRequestTests(TestCase):
	def setUp(self):
		self.mech_one = make_mechanic('mech_one')
		self.mech_two = make_mechanic('mech_two')
		self.request = make_request(customer_email='asha@example.com')

	def test_accept_awards_the_request(self):
		with self.captureOnCommitCallbacks(execute=True):
			accepted = accept_service_request(self.request.id, self.mech_one.id, Decimal('1500'))

		self.assertEqual(accepted.status, RequestStatus.ACCEPTED)
		self.assertEqual(accepted.accepted_by_id, self.mech_one.id)
		self.assertEqual(accepted.estimated_cost, Decimal('1500'))
		self.assertIsNotNone(accepted.accepted_at)

		# Customer email goes through the eager Celery task
		self.assertEqual(len(mail.outbox), 1)
		self.assertEqual(mail.outbox[0].to, ['asha@example.com'])
		self.assertEqual(mail.outbox[0].subject, 'Service Request Accepted')

	def test_second_accept_loses(self):
		accept_service_request(self.request.id, self.mech_one.id)

		with self.assertRaises(AlreadyResolvedError) as ctx:
			accept_service_request(self.request.id, self.mech_two.id)

		self.assertEqual(ctx.exception.request.status, RequestStatus.ACCEPTED)
		self.assertEqual(ctx.exception.request.accepted_by_id, self.mech_one.id)
		self.request.refresh_from_db()
		self.assertEqual(self.request.accepted_by_id, self.mech_one.id)

	def test_accept_cancelled_request(self):
		cancel_service_request(self.request.id)

		with self.assertRaises(AlreadyResolvedError):
			accept_service_request(self.request.id, self.mech_one.id)

	def test_negative_estimate(self):
		with self.assertRaises(RequestValidationError):
			accept_service_request(self.request.id, self.mech_one.id, Decimal('-1'))

	def test_unknown_request(self):
		with self.assertRaises(ServiceRequestNotFoundError):
			accept_service_request(999999, self.mech_one.id)

	@patch('realtime.notifications.broadcast_event')
	def test_accept_announces_request_taken(self, mock_broadcast):
		with self.captureOnCommitCallbacks(execute=True):
			accept_service_request(self.request.id, self.mech_one.id)

		group, event_type, payload = mock_broadcast.call_args.args
		self.assertEqual(group, 'mechanics')
		self.assertEqual(event_type, 'request_taken')
		self.assertEqual(payload['request_id'], self.request.id)
		self.assertEqual(payload['accepted_by'], self.mech_one.id)


class AcceptRaceTests(TransactionTestCase):
	def test_exactly_one_winner_under_concurrent_accepts(self):
		mechanics = [make_mechanic(f'racer_{i}') for i in range(8)]
		request = make_request()
		barrier = threading.Barrier(len(mechanics))
		winners, losers, errors = [], [], []

		def attempt(mechanic):
			try:
				barrier.wait()
				accept_service_request(request.id, mechanic.id)
				winners.append(mechanic.id)
			except AlreadyResolvedError:
				losers.append(mechanic.id)
			except Exception as e:
				errors.append(e)
			finally:
				connection.close()

		threads = [threading.Thread(target=attempt, args=(m,)) for m in mechanics]
		for thread in threads:
			thread.start()
		for thread in threads:
			thread.join()

		self.assertEqual(errors, [])
		self.assertEqual(len(winners), 1)
		self.assertEqual(len(losers), len(mechanics) - 1)

		request.refresh_from_db()
		self.assertEqual(request.status, RequestStatus.ACCEPTED)
		self.assertEqual(request.accepted_by_id, winners[0])


class StatusTransitionTests(TestCase):
	def setUp(self):
		self.mechanic = make_mechanic('mech')
		self.request = make_request()

	def test_transition_table(self):
		self.assertTrue(can_transition('pending', 'accepted'))
		self.assertTrue(can_transition('pending', 'cancelled'))
		self.assertTrue(can_transition('accepted', 'in-progress'))
		self.assertTrue(can_transition('accepted', 'cancelled'))
		self.assertTrue(can_transition('in-progress', 'completed'))
		self.assertFalse(can_transition('pending', 'completed'))
		self.assertFalse(can_transition('in-progress', 'cancelled'))
		self.assertEqual(TRANSITIONS['completed'], set())
		self.assertEqual(TRANSITIONS['cancelled'], set())

	def test_full_happy_path(self):
		update_request_status(self.request.id, 'accepted', mechanic_id=self.mechanic.id)
		update_request_status(self.request.id, 'in-progress')
		done = update_request_status(self.request.id, 'completed', actual_cost=Decimal('1200.50'))

		self.assertEqual(done.status, RequestStatus.COMPLETED)
		self.assertIsNotNone(done.completed_at)
		self.assertEqual(done.actual_cost, Decimal('1200.50'))
		self.assertEqual(done.accepted_by_id, self.mechanic.id)

	def test_illegal_jump_keeps_state(self):
		with self.assertRaises(InvalidTransitionError) as ctx:
			update_request_status(self.request.id, 'completed')

		self.assertEqual(ctx.exception.current_status, 'pending')
		self.request.refresh_from_db()
		self.assertEqual(self.request.status, RequestStatus.PENDING)

	def test_accept_through_status_requires_mechanic(self):
		with self.assertRaises(RequestValidationError):
			update_request_status(self.request.id, 'accepted')

	def test_unknown_status(self):
		with self.assertRaises(RequestValidationError):
			update_request_status(self.request.id, 'teleported')

	def test_terminal_states_are_final(self):
		cancel_service_request(self.request.id, reason='Fixed it myself')

		for target in ('accepted', 'in-progress', 'completed', 'cancelled'):
			with self.assertRaises(InvalidTransitionError):
				update_request_status(self.request.id, target, mechanic_id=self.mechanic.id)

	def test_cancel_after_accept_keeps_mechanic(self):
		accept_service_request(self.request.id, self.mechanic.id)

		cancelled = cancel_service_request(self.request.id, reason='Changed plans')

		self.assertEqual(cancelled.status, RequestStatus.CANCELLED)
		self.assertEqual(cancelled.accepted_by_id, self.mechanic.id)
		self.assertEqual(cancelled.cancellation_reason, 'Changed plans')
		self.assertIsNotNone(cancelled.cancelled_at)

	def test_cannot_cancel_in_progress(self):
		accept_service_request(self.request.id, self.mechanic.id)
		update_request_status(self.request.id, 'in-progress')

		with self.assertRaises(InvalidTransitionError):
			cancel_service_request(self.request.id)


class NotesAndRatingTests(TestCase):
	def setUp(self):
		self.mechanic = make_mechanic('mech')
		self.request = make_request()

	def _complete(self):
		accept_service_request(self.request.id, self.mechanic.id)
		update_request_status(self.request.id, 'in-progress')
		update_request_status(self.request.id, 'completed')

	def test_add_note(self):
		note = add_request_note(self.request.id, 'On my way', 'mechanic')

		self.assertEqual(note.author_role, 'mechanic')
		self.assertEqual(list(self.request.notes.values_list('message', flat=True)), ['On my way'])

	def test_note_validation(self):
		with self.assertRaises(RequestValidationError):
			add_request_note(self.request.id, '', 'customer')
		with self.assertRaises(RequestValidationError):
			add_request_note(self.request.id, 'hi', 'stranger')

	def test_rate_completed_request_once(self):
		self._complete()

		rated = rate_service_request(self.request.id, 4, 'Quick and polite')

		self.assertEqual(rated.rating, 4)
		self.assertEqual(rated.review, 'Quick and polite')
		self.mechanic.refresh_from_db()
		self.assertEqual(self.mechanic.review_count, 1)
		self.assertEqual(self.mechanic.rating, 4.0)

		with self.assertRaises(InvalidTransitionError):
			rate_service_request(self.request.id, 5)

	def test_cannot_rate_before_completion(self):
		with self.assertRaises(InvalidTransitionError):
			rate_service_request(self.request.id, 5)

	def test_rating_range(self):
		self._complete()
		with self.assertRaises(RequestValidationError):
			rate_service_request(self.request.id, 6)

	def test_rating_rolls_back_when_roll_up_fails(self):
		self._complete()

		with patch('services.request_lifecycle.lifecycle._roll_up_rating', side_effect=RuntimeError('db gone')):
			with self.assertRaises(RuntimeError):
				rate_service_request(self.request.id, 5)

		self.request.refresh_from_db()
		self.assertIsNone(self.request.rating)
		# A retry still counts once
		rate_service_request(self.request.id, 5)
		self.mechanic.refresh_from_db()
		self.assertEqual(self.mechanic.review_count, 1)


class NearbyRequestsTests(TestCase):
	def setUp(self):
		self.mechanic = make_mechanic('mech', lat=19.0760, lon=72.8777)

	def test_catch_up_lists_recent_matching_pending_requests(self):
		near = make_request(latitude=19.0825, longitude=72.8900)
		make_request(latitude=19.4000, longitude=72.8000)
		make_request(latitude=19.0800, longitude=72.8800, service_type='tire-repair')
		taken = make_request(latitude=19.0800, longitude=72.8800)
		accept_service_request(taken.id, self.mechanic.id)
		stale = make_request(latitude=19.0800, longitude=72.8800)
		ServiceRequest.objects.filter(pk=stale.pk).update(created_at=timezone.now() - timedelta(hours=30))

		nearby = list_nearby_requests_for_mechanic(self.mechanic.id)

		self.assertEqual([r.id for r in nearby], [near.id])
		self.assertAlmostEqual(nearby[0].distance_km, 1.48, delta=0.05)

	def test_window_is_configurable(self):
		stale = make_request()
		ServiceRequest.objects.filter(pk=stale.pk).update(created_at=timezone.now() - timedelta(hours=30))

		nearby = list_nearby_requests_for_mechanic(self.mechanic.id, within_hours=48)

		self.assertEqual([r.id for r in nearby], [stale.id])


class ServiceRequestApiTests(TestCase):
	def setUp(self):
		self.client = APIClient()
		self.customer = User.objects.create_user(
			username='customer',
			password='pass1234',
			role=User.ROLE_CUSTOMER,
			email='customer@example.com',
		)
		self.mech_one = make_mechanic('mech_one')
		self.mech_two = make_mechanic('mech_two')

	def test_guest_can_create_request(self):
		with patch('services.matching.schedule_dispatch'):
			response = self.client.post('/api/requests/', VALID_REQUEST, format='json')

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['status'], 'pending')
		self.assertIsNone(response.data['customer'])

	def test_create_validation_error(self):
		response = self.client.post('/api/requests/', {'service_type': 'battery-service'}, format='json')

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['error'], 'validation_error')
		self.assertIn('latitude', response.data['errors'])

	def test_accept_conflict_returns_409_with_current_state(self):
		request = make_request(customer=self.customer)

		self.client.force_authenticate(user=self.mech_one.user)
		first = self.client.post(f'/api/requests/{request.id}/accept/', {}, format='json')
		self.client.force_authenticate(user=self.mech_two.user)
		second = self.client.post(f'/api/requests/{request.id}/accept/', {}, format='json')

		self.assertEqual(first.status_code, 200)
		self.assertEqual(second.status_code, 409)
		self.assertEqual(second.data['error'], 'already_resolved')
		self.assertEqual(second.data['request']['accepted_by']['id'], self.mech_one.id)

	def test_customers_cannot_accept(self):
		request = make_request(customer=self.customer)
		self.client.force_authenticate(user=self.customer)

		response = self.client.post(f'/api/requests/{request.id}/accept/', {}, format='json')

		self.assertEqual(response.status_code, 403)

	def test_status_update_by_assigned_mechanic(self):
		request = make_request(customer=self.customer)
		accept_service_request(request.id, self.mech_one.id)

		self.client.force_authenticate(user=self.mech_two.user)
		other = self.client.post(f'/api/requests/{request.id}/status/', {'status': 'in-progress'}, format='json')
		self.client.force_authenticate(user=self.mech_one.user)
		mine = self.client.post(f'/api/requests/{request.id}/status/', {'status': 'in-progress'}, format='json')
		illegal = self.client.post(f'/api/requests/{request.id}/status/', {'status': 'accepted'}, format='json')

		self.assertEqual(other.status_code, 403)
		self.assertEqual(mine.status_code, 200)
		self.assertEqual(mine.data['request']['status'], 'in-progress')
		self.assertEqual(illegal.status_code, 409)
		self.assertEqual(illegal.data['status'], 'in-progress')

	def test_customer_cancels_own_request(self):
		request = make_request(customer=self.customer)
		self.client.force_authenticate(user=self.customer)

		response = self.client.post(f'/api/requests/{request.id}/cancel/', {'reason': 'Found help'}, format='json')
		again = self.client.post(f'/api/requests/{request.id}/cancel/', {}, format='json')

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['request']['status'], 'cancelled')
		self.assertEqual(again.status_code, 409)

	def test_cancel_unknown_request(self):
		self.client.force_authenticate(user=self.customer)

		response = self.client.post('/api/requests/424242/cancel/', {}, format='json')

		self.assertEqual(response.status_code, 404)

	def test_notes_and_review_flow(self):
		request = make_request(customer=self.customer)
		accept_service_request(request.id, self.mech_one.id)

		self.client.force_authenticate(user=self.mech_one.user)
		note = self.client.post(f'/api/requests/{request.id}/notes/', {'message': 'Ten minutes away'}, format='json')
		self.assertEqual(note.status_code, 201)
		self.assertEqual(note.data['author_role'], 'mechanic')

		update_request_status(request.id, 'in-progress')
		update_request_status(request.id, 'completed')

		self.client.force_authenticate(user=self.customer)
		notes = self.client.get(f'/api/requests/{request.id}/notes/')
		review = self.client.post(f'/api/requests/{request.id}/review/', {'rating': 5, 'review': 'Great'}, format='json')
		repeat = self.client.post(f'/api/requests/{request.id}/review/', {'rating': 4}, format='json')

		self.assertEqual([n['message'] for n in notes.data], ['Ten minutes away'])
		self.assertEqual(review.status_code, 200)
		self.assertEqual(review.data['rating'], 5)
		self.assertEqual(repeat.status_code, 409)

	def test_candidate_preview_uses_default_radius(self):
		make_mechanic('far_away', lat=19.4000, lon=72.8000)
		self.client.force_authenticate(user=self.customer)

		response = self.client.post(
			'/api/requests/candidates/',
			{'latitude': 19.0760, 'longitude': 72.8777, 'service_type': 'battery-service'},
			format='json',
		)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['radius_km'], 10.0)
		self.assertEqual(
			sorted(m['id'] for m in response.data['mechanics']),
			sorted([self.mech_one.id, self.mech_two.id]),
		)

	def test_list_scoped_to_customer_newest_first(self):
		other = User.objects.create_user(username='other', password='pass1234', role=User.ROLE_CUSTOMER)
		older = make_request(customer=self.customer)
		newer = make_request(customer=self.customer)
		ServiceRequest.objects.filter(pk=older.pk).update(created_at=timezone.now() - timedelta(hours=1))
		make_request(customer=other)
		make_request()
		self.client.force_authenticate(user=self.customer)

		response = self.client.get('/api/requests/')

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['count'], 2)
		self.assertEqual([r['id'] for r in response.data['requests']], [newer.id, older.id])

	def test_list_for_mechanic_shows_awarded_jobs(self):
		mine = make_request(customer=self.customer)
		theirs = make_request(customer=self.customer)
		make_request(customer=self.customer)
		accept_service_request(mine.id, self.mech_one.id)
		accept_service_request(theirs.id, self.mech_two.id)
		self.client.force_authenticate(user=self.mech_one.user)

		response = self.client.get('/api/requests/')

		self.assertEqual([r['id'] for r in response.data['requests']], [mine.id])

	def test_list_status_filter(self):
		pending = make_request(customer=self.customer)
		cancelled = make_request(customer=self.customer)
		cancel_service_request(cancelled.id)
		self.client.force_authenticate(user=self.customer)

		response = self.client.get('/api/requests/?status=cancelled')
		bad = self.client.get('/api/requests/?status=lost')

		self.assertEqual([r['id'] for r in response.data['requests']], [cancelled.id])
		self.assertNotIn(pending.id, [r['id'] for r in response.data['requests']])
		self.assertEqual(bad.status_code, 400)
		self.assertIn('status', bad.data['errors'])

	def test_admin_lists_everything(self):
		admin = User.objects.create_user(username='admin', password='admin1234', role=User.ROLE_ADMIN)
		make_request(customer=self.customer)
		make_request()
		self.client.force_authenticate(user=admin)

		response = self.client.get('/api/requests/')

		self.assertEqual(response.data['count'], 2)

	def test_list_requires_authentication(self):
		response = self.client.get('/api/requests/')

		self.assertIn(response.status_code, (401, 403))
