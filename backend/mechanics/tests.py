from datetime import timedelta

from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.models import User
from mechanics.models import Mechanic, default_availability
from realtime.identity import VerifiedIdentity
from realtime.presence import PresenceRegistry
from service_requests.models import ServiceRequest
from unittest.mock import patch


class StaticVerifier:
	def __init__(self, mechanic):
		self.mechanic = mechanic

	def verify(self, token):
		return VerifiedIdentity(self.mechanic.user_id, 'mechanic', self.mechanic.id)


class MechanicApiTests(TestCase):
	def setUp(self):
		self.client = APIClient()
		self.user = User.objects.create_user(
			username='mech',
			password='mech1234',
			role=User.ROLE_MECHANIC,
			email='mech@example.com',
		)
		self.mechanic = Mechanic.objects.create(
			user=self.user,
			business_name='Bandra Auto Care',
			latitude=19.0760,
			longitude=72.8777,
			services_offered=['battery-service'],
		)
		self.customer = User.objects.create_user(username='cust', password='pass1234', role=User.ROLE_CUSTOMER)
		self.client.force_authenticate(user=self.user)

	def test_defaults(self):
		self.assertTrue(self.mechanic.is_available)
		self.assertEqual(self.mechanic.availability, default_availability())
		self.assertEqual(self.mechanic.contact_email, 'mech@example.com')

	def test_update_location(self):
		before = self.mechanic.last_location_update

		response = self.client.put('/api/mechanics/location/', {'latitude': 19.1, 'longitude': 72.9}, format='json')

		self.assertEqual(response.status_code, 200)
		self.mechanic.refresh_from_db()
		self.assertAlmostEqual(float(self.mechanic.latitude), 19.1)
		self.assertAlmostEqual(float(self.mechanic.longitude), 72.9)
		self.assertGreaterEqual(self.mechanic.last_location_update, before)

	def test_update_location_validates_range(self):
		response = self.client.put('/api/mechanics/location/', {'latitude': 120, 'longitude': 72.9}, format='json')

		self.assertEqual(response.status_code, 400)

	def test_toggle_availability(self):
		response = self.client.put('/api/mechanics/availability/', {'is_available': False}, format='json')

		self.assertEqual(response.status_code, 200)
		self.mechanic.refresh_from_db()
		self.assertFalse(self.mechanic.is_available)

	def test_customers_are_forbidden(self):
		self.client.force_authenticate(user=self.customer)

		response = self.client.put('/api/mechanics/availability/', {'is_available': False}, format='json')

		self.assertEqual(response.status_code, 403)

	def test_nearby_requests(self):
		near = ServiceRequest.objects.create(
			latitude=19.0825, longitude=72.8900, service_type='battery-service', description='Dead battery'
		)
		old = ServiceRequest.objects.create(
			latitude=19.0825, longitude=72.8900, service_type='battery-service', description='Old one'
		)
		ServiceRequest.objects.filter(pk=old.pk).update(created_at=timezone.now() - timedelta(hours=3))

		response = self.client.get('/api/mechanics/nearby-requests/?within_hours=2')

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['count'], 1)
		self.assertEqual(response.data['requests'][0]['id'], near.id)
		self.assertEqual(response.data['requests'][0]['distance_km'], 1.5)

	def test_nearby_requests_rejects_bad_window(self):
		self.assertEqual(self.client.get('/api/mechanics/nearby-requests/?within_hours=abc').status_code, 400)
		self.assertEqual(self.client.get('/api/mechanics/nearby-requests/?within_hours=0').status_code, 400)

	def test_nearby_requests_rejects_non_finite_window(self):
		for value in ('nan', 'inf', '-inf'):
			response = self.client.get(f'/api/mechanics/nearby-requests/?within_hours={value}')
			self.assertEqual(response.status_code, 400)

	def test_online_mechanics(self):
		registry = PresenceRegistry(verifier=StaticVerifier(self.mechanic), emit=lambda *a: None)
		registry.identify('token', 'chan-1')

		with patch('mechanics.views.get_presence_registry', return_value=registry):
			response = self.client.get('/api/mechanics/online/')

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['count'], 1)
		self.assertEqual(response.data['mechanics'][0]['mechanic_id'], self.mechanic.id)
