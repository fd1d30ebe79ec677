import threading
from unittest.mock import patch

from channels.testing import WebsocketCommunicator
from django.test import SimpleTestCase, TestCase
from rest_framework_simplejwt.tokens import AccessToken

from accounts.models import User
from mechanics.models import Mechanic
from realtime.consumers import MechanicConsumer
from realtime.exceptions import InvalidIdentityError
from realtime.identity import JWTIdentityVerifier, VerifiedIdentity
from realtime.presence import PresenceRegistry


class FakeVerifier:
	"""token -> VerifiedIdentity; anything else is rejected."""

	def __init__(self, identities):
		self.identities = identities

	def verify(self, token):
		try:
			return self.identities[token]
		except KeyError:
			raise InvalidIdentityError('Token verification failed')


def mechanic_identity(mechanic_id):
	return VerifiedIdentity(subject_id=100 + mechanic_id, role='mechanic', mechanic_id=mechanic_id)


class PresenceRegistryTests(SimpleTestCase):
	def setUp(self):
		self.events = []
		self.registry = PresenceRegistry(
			verifier=FakeVerifier({
				'tok-1': mechanic_identity(1),
				'tok-2': mechanic_identity(2),
				'tok-customer': VerifiedIdentity(subject_id=9, role='customer'),
			}),
			emit=lambda event_type, payload: self.events.append((event_type, payload)),
		)

	def test_identify_registers_channel_and_announces(self):
		mechanic_id = self.registry.identify('tok-1', 'chan-a')

		self.assertEqual(mechanic_id, 1)
		self.assertTrue(self.registry.is_online(1))
		self.assertEqual(self.registry.channel_of(1), 'chan-a')
		self.assertEqual(self.events, [('mechanic_online', {'mechanic_id': 1})])

	def test_invalid_token_leaves_registry_unchanged(self):
		with self.assertRaises(InvalidIdentityError):
			self.registry.identify('forged', 'chan-a')

		self.assertEqual(len(self.registry), 0)
		self.assertEqual(self.events, [])

	def test_non_mechanic_is_rejected(self):
		with self.assertRaises(InvalidIdentityError):
			self.registry.identify('tok-customer', 'chan-a')

		self.assertEqual(len(self.registry), 0)

	def test_reidentify_replaces_channel(self):
		self.registry.identify('tok-1', 'chan-a')
		self.registry.identify('tok-1', 'chan-b')

		self.assertEqual(len(self.registry), 1)
		self.assertEqual(self.registry.channel_of(1), 'chan-b')
		# The old channel no longer owns the mechanic
		self.assertEqual(self.registry.remove('chan-a'), [])
		self.assertTrue(self.registry.is_online(1))

	def test_remove_is_idempotent(self):
		self.registry.identify('tok-1', 'chan-a')
		self.registry.identify('tok-2', 'chan-b')
		self.events.clear()

		self.assertEqual(self.registry.remove('chan-a'), [1])
		self.assertEqual(self.registry.remove('chan-a'), [])
		self.assertEqual(self.registry.remove('never-seen'), [])

		self.assertFalse(self.registry.is_online(1))
		self.assertTrue(self.registry.is_online(2))
		self.assertEqual(self.events, [('mechanic_offline', {'mechanic_id': 1})])

	def test_online_mechanics_in_arrival_order(self):
		self.registry.identify('tok-2', 'chan-b')
		self.registry.identify('tok-1', 'chan-a')

		self.assertEqual([e.mechanic_id for e in self.registry.online_mechanics()], [2, 1])

	def test_broadcast_failure_does_not_break_identify(self):
		def broken_emit(event_type, payload):
			raise RuntimeError('layer down')

		registry = PresenceRegistry(verifier=FakeVerifier({'tok-1': mechanic_identity(1)}), emit=broken_emit)

		self.assertEqual(registry.identify('tok-1', 'chan-a'), 1)
		self.assertTrue(registry.is_online(1))

	def test_concurrent_identify_and_remove(self):
		identities = {f'tok-{i}': mechanic_identity(i) for i in range(50)}
		registry = PresenceRegistry(verifier=FakeVerifier(identities), emit=lambda *a: None)

		def cycle(i):
			registry.identify(f'tok-{i}', f'chan-{i}')
			if i % 2:
				registry.remove(f'chan-{i}')

		threads = [threading.Thread(target=cycle, args=(i,)) for i in range(50)]
		for thread in threads:
			thread.start()
		for thread in threads:
			thread.join()

		self.assertEqual(len(registry), 25)
		self.assertTrue(all(e.mechanic_id % 2 == 0 for e in registry.online_mechanics()))


class JWTIdentityVerifierTests(TestCase):
	def setUp(self):
		self.verifier = JWTIdentityVerifier()
		self.mech_user = User.objects.create_user(username='mech', password='mech1234', role=User.ROLE_MECHANIC)
		self.mechanic = Mechanic.objects.create(user=self.mech_user, business_name='Garage')
		self.customer = User.objects.create_user(username='cust', password='pass1234', role=User.ROLE_CUSTOMER)

	def test_valid_mechanic_token(self):
		identity = self.verifier.verify(str(AccessToken.for_user(self.mech_user)))

		self.assertEqual(identity.subject_id, self.mech_user.id)
		self.assertEqual(identity.role, 'mechanic')
		self.assertEqual(identity.mechanic_id, self.mechanic.id)

	def test_customer_token_has_no_mechanic(self):
		identity = self.verifier.verify(str(AccessToken.for_user(self.customer)))

		self.assertEqual(identity.role, 'customer')
		self.assertIsNone(identity.mechanic_id)

	def test_garbage_and_empty_tokens(self):
		for token in ('not-a-jwt', '', None):
			with self.assertRaises(InvalidIdentityError):
				self.verifier.verify(token)

	def test_inactive_user(self):
		token = str(AccessToken.for_user(self.mech_user))
		User.objects.filter(pk=self.mech_user.pk).update(is_active=False)

		with self.assertRaises(InvalidIdentityError):
			self.verifier.verify(token)


class MechanicConsumerTests(TestCase):
	def setUp(self):
		self.events = []
		self.registry = PresenceRegistry(
			verifier=FakeVerifier({'tok-7': mechanic_identity(7)}),
			emit=lambda event_type, payload: self.events.append((event_type, payload)),
		)
		patcher = patch.object(MechanicConsumer, 'registry', self.registry)
		patcher.start()
		self.addCleanup(patcher.stop)

	async def _connect(self):
		communicator = WebsocketCommunicator(MechanicConsumer.as_asgi(), '/ws/mechanic/')
		connected, _ = await communicator.connect()
		self.assertTrue(connected)
		hello = await communicator.receive_json_from()
		self.assertEqual(hello['type'], 'connection_established')
		return communicator

	async def test_identify_then_disconnect(self):
		communicator = await self._connect()

		await communicator.send_json_to({'type': 'mechanic_identify', 'token': 'tok-7'})
		reply = await communicator.receive_json_from()

		self.assertEqual(reply, {'type': 'identified', 'mechanic_id': 7})
		self.assertTrue(self.registry.is_online(7))

		await communicator.disconnect()

		self.assertFalse(self.registry.is_online(7))
		self.assertEqual([e[0] for e in self.events], ['mechanic_online', 'mechanic_offline'])

	async def test_invalid_identity_gets_error(self):
		communicator = await self._connect()

		await communicator.send_json_to({'type': 'mechanic_identify', 'token': 'forged'})
		reply = await communicator.receive_json_from()

		self.assertEqual(reply['type'], 'error')
		self.assertEqual(len(self.registry), 0)
		await communicator.disconnect()
		self.assertEqual(self.events, [])

	async def test_unknown_message_type(self):
		communicator = await self._connect()

		await communicator.send_json_to({'type': 'dance'})
		reply = await communicator.receive_json_from()

		self.assertEqual(reply['type'], 'error')
		await communicator.disconnect()

	async def test_offer_is_forwarded_to_identified_channel(self):
		communicator = await self._connect()
		await communicator.send_json_to({'type': 'mechanic_identify', 'token': 'tok-7'})
		await communicator.receive_json_from()

		from realtime.notifications import send_to_channel
		await send_to_channel(
			self.registry.channel_of(7),
			'service_request_offer',
			{'request': {'id': 42, 'service_type': 'battery-service'}, 'distance_km': 1.5},
		)
		offer = await communicator.receive_json_from()

		self.assertEqual(offer['type'], 'new_service_request')
		self.assertEqual(offer['request']['id'], 42)
		self.assertEqual(offer['distance_km'], 1.5)
		await communicator.disconnect()
