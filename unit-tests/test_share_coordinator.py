import asyncio
import threading
from unittest import TestCase, IsolatedAsyncioTestCase, mock

from data_sharing import (FakeSharingService, make_project, make_share, make_participant, make_invitation,
                          make_referencing_record)
from cloudshare.coordinator import ShareCoordinator
from cloudshare.error import SharingApiError, UnknownResultError, Error
from cloudshare.presenter import SharingUIPresenter
from cloudshare.records import (ShareRecord, PublicPermission, ParticipantPermission, ParticipantStatus,
                                RecordId)
from cloudshare.service import ModifyResult, SavePolicy
from cloudshare.sharing_state import SharingStatus, SharingState, ShareEvent, InvitationsEvent


class TestCreateShare(IsolatedAsyncioTestCase):
    def setUp(self):
        self.service = FakeSharingService()
        self.coordinator = ShareCoordinator(self.service)

    async def test_create_share(self):
        project = make_project('proj1')
        share = await self.coordinator.create_share(project, 'proj1')

        self.assertIsInstance(share, ShareRecord)
        self.assertEqual(share.title, 'Card Game Project')
        self.assertEqual(share.public_permission, PublicPermission.NONE)
        self.assertEqual(share.root_record_id, project.record_id)
        self.assertIs(self.coordinator.active_shares['proj1'], share)
        self.assertEqual(self.coordinator.status('proj1'), SharingStatus.shared())

        self.assertEqual(self.service.call_names(), ['create_records'])
        _, records, policy = self.service.calls[0]
        self.assertEqual(records, [project, share])
        self.assertEqual(policy, SavePolicy.ALL_KEYS)

    async def test_create_share_custom_title(self):
        coordinator = ShareCoordinator(self.service, share_title='Team Board')
        share = await coordinator.create_share(make_project(), 'p')
        self.assertEqual(share.title, 'Team Board')

    async def test_create_share_quota_exceeded(self):
        self.service.modify_result = ModifyResult.failure(SharingApiError('QUOTA_EXCEEDED', 'quota exceeded'))

        with self.assertRaises(SharingApiError) as ctx:
            await self.coordinator.create_share(make_project('proj1'), 'proj1')

        self.assertEqual(ctx.exception.message, 'quota exceeded')
        self.assertEqual(self.coordinator.status('proj1'), SharingStatus.error('quota exceeded'))
        self.assertNotIn('proj1', self.coordinator.active_shares)
        self.assertEqual(self.coordinator.error_message, 'quota exceeded')

    async def test_create_share_transport_error_raised_by_service(self):
        self.service.errors['create_records'] = SharingApiError('transport_error', 'connection reset')

        with self.assertRaises(SharingApiError):
            await self.coordinator.create_share(make_project('proj1'), 'proj1')

        self.assertEqual(self.coordinator.status('proj1'), SharingStatus.error('connection reset'))
        self.assertEqual(self.coordinator.error_message, 'connection reset')

    async def test_create_share_unknown_result(self):
        self.service.modify_result = ModifyResult('partial')

        with self.assertRaises(UnknownResultError):
            await self.coordinator.create_share(make_project('proj1'), 'proj1')

        status = self.coordinator.status('proj1')
        self.assertEqual(status.state, SharingState.ERROR)
        self.assertEqual(status.message, 'Unknown result type')
        self.assertNotIn('proj1', self.coordinator.active_shares)

    async def test_error_is_not_terminal(self):
        self.service.modify_result = ModifyResult.failure(SharingApiError('QUOTA_EXCEEDED', 'quota exceeded'))
        with self.assertRaises(SharingApiError):
            await self.coordinator.create_share(make_project('proj1'), 'proj1')

        self.service.modify_result = None
        await self.coordinator.create_share(make_project('proj1'), 'proj1')
        self.assertEqual(self.coordinator.status('proj1'), SharingStatus.shared())
        self.assertIn('proj1', self.coordinator.active_shares)


class TestAcceptShare(IsolatedAsyncioTestCase):
    def setUp(self):
        self.service = FakeSharingService()
        self.coordinator = ShareCoordinator(self.service)
        self.invitations = [
            make_invitation('proj1', 'Share-A'),
            make_invitation('proj1', 'Share-B'),
            make_invitation('proj2', 'Share-C'),
        ]
        self.service.invitations = list(self.invitations)

    async def test_accept_prunes_only_matching_share(self):
        await self.coordinator.fetch_pending_invitations()
        await self.coordinator.accept_share(self.invitations[0])

        pending = [x.share_id.record_name for x in self.coordinator.pending_invitations]
        self.assertEqual(pending, ['Share-B', 'Share-C'])
        self.assertEqual(self.coordinator.status('proj1'), SharingStatus.shared())
        self.assertEqual(self.coordinator.active_shares['proj1'].record_id, RecordId('Share-A'))

    async def test_accept_sets_pending_while_in_flight(self):
        seen = []

        async def accept_invitation(metadata):
            seen.append(self.coordinator.status('proj2'))
            return make_share('proj2', 'Share-C')

        with mock.patch.object(self.service, 'accept_invitation', side_effect=accept_invitation):
            await self.coordinator.accept_share(self.invitations[2])

        self.assertEqual(seen, [SharingStatus.pending()])
        self.assertEqual(self.coordinator.status('proj2'), SharingStatus.shared())

    async def test_accept_failure(self):
        await self.coordinator.fetch_pending_invitations()
        self.service.errors['accept_invitation'] = SharingApiError('ZONE_NOT_FOUND', 'zone not found')

        with self.assertRaises(SharingApiError):
            await self.coordinator.accept_share(self.invitations[1])

        self.assertEqual(self.coordinator.status('proj1'), SharingStatus.error('zone not found'))
        self.assertEqual(self.coordinator.error_message, 'zone not found')
        self.assertNotIn('proj1', self.coordinator.active_shares)
        self.assertEqual(len(self.coordinator.pending_invitations), 3)


class TestPendingInvitations(IsolatedAsyncioTestCase):
    def setUp(self):
        self.service = FakeSharingService()
        self.coordinator = ShareCoordinator(self.service)

    async def test_only_pending_invitations_kept(self):
        self.service.invitations = [
            make_invitation('proj1', 'Share-A', ParticipantStatus.PENDING),
            make_invitation('proj2', 'Share-B', ParticipantStatus.ACCEPTED),
            make_invitation('proj3', 'Share-C', ParticipantStatus.DECLINED),
            make_invitation('proj4', 'Share-D', ParticipantStatus.PENDING),
        ]
        result = await self.coordinator.fetch_pending_invitations()

        names = {x.share_id.record_name for x in self.coordinator.pending_invitations}
        self.assertEqual(names, {'Share-A', 'Share-D'})
        self.assertEqual(len(result), 2)

    async def test_fetch_replaces_previous_list(self):
        self.service.invitations = [make_invitation('proj1', 'Share-A')]
        await self.coordinator.fetch_pending_invitations()

        self.service.invitations = [make_invitation('proj2', 'Share-B')]
        await self.coordinator.fetch_pending_invitations()

        self.assertEqual([x.share_id.record_name for x in self.coordinator.pending_invitations], ['Share-B'])

    async def test_fetch_failure(self):
        self.service.invitations = [make_invitation('proj1', 'Share-A')]
        await self.coordinator.fetch_pending_invitations()
        self.service.errors['list_invitation_metadata'] = SharingApiError('AUTHENTICATION_REQUIRED', 'sign in')

        with self.assertRaises(SharingApiError):
            await self.coordinator.fetch_pending_invitations()

        self.assertEqual(self.coordinator.error_message, 'sign in')
        self.assertEqual(len(self.coordinator.pending_invitations), 1)


class TestRemoveShare(IsolatedAsyncioTestCase):
    def setUp(self):
        self.service = FakeSharingService()
        self.coordinator = ShareCoordinator(self.service)

    async def test_remove_without_cached_share_is_noop(self):
        await self.coordinator.remove_share('proj1')

        self.assertEqual(self.service.calls, [])
        snapshot = self.coordinator.snapshot()
        self.assertEqual(snapshot.active_shares, {})
        self.assertEqual(snapshot.statuses, {})
        self.assertIsNone(snapshot.error_message)

    async def test_remove_deletes_by_share_id(self):
        share = await self.coordinator.create_share(make_project('proj1'), 'proj1')
        await self.coordinator.remove_share('proj1')

        self.assertEqual(self.service.calls[-1], ('delete_record', share.record_id))
        self.assertNotEqual(share.record_id, RecordId('proj1'))
        self.assertNotIn('proj1', self.coordinator.active_shares)
        self.assertEqual(self.coordinator.status('proj1'), SharingStatus.not_shared())
        self.assertIn('proj1', self.service.records)

    async def test_remove_failure_keeps_cached_state(self):
        await self.coordinator.create_share(make_project('proj1'), 'proj1')
        self.service.errors['delete_record'] = SharingApiError('NOT_FOUND', 'already deleted')

        with self.assertRaises(SharingApiError):
            await self.coordinator.remove_share('proj1')

        self.assertIn('proj1', self.coordinator.active_shares)
        self.assertEqual(self.coordinator.status('proj1'), SharingStatus.shared())


class TestParticipants(IsolatedAsyncioTestCase):
    def setUp(self):
        self.service = FakeSharingService()
        self.coordinator = ShareCoordinator(self.service)

    async def test_update_participant_permission(self):
        participant = make_participant('user-1')
        share = make_share('proj1', participants=[participant])

        await self.coordinator.update_participant_permission(share, participant, ParticipantPermission.READ_WRITE)

        self.assertEqual(participant.permission, ParticipantPermission.READ_WRITE)
        self.assertEqual(self.service.calls, [('save_record', share)])
        self.assertEqual(self.coordinator.active_shares, {})

    async def test_update_participant_permission_rejected(self):
        participant = make_participant('user-1')
        share = make_share('proj1', participants=[participant])
        self.service.errors['save_record'] = SharingApiError('CONFLICT', 'record changed')

        with self.assertRaises(SharingApiError):
            await self.coordinator.update_participant_permission(share, participant, ParticipantPermission.NONE)
        self.assertEqual(self.coordinator.error_message, 'record changed')

    async def test_remove_participant_stores_server_share(self):
        participant = make_participant('user-1')
        share = make_share('proj1', participants=[participant])
        self.service.saved_changes[share.record_id.record_name] = 'v2'

        await self.coordinator.remove_participant(share, participant, 'proj1')

        cached = self.coordinator.active_shares['proj1']
        self.assertIsNot(cached, share)
        self.assertEqual(cached.change_tag, 'v2')
        self.assertIsNone(cached.find_participant('user-1'))
        self.assertIsNone(share.find_participant('user-1'))
        self.assertEqual(self.coordinator.status('proj1'), SharingStatus.shared())

    async def test_remove_participant_rejected(self):
        participant = make_participant('user-1')
        share = make_share('proj1', participants=[participant])
        self.service.errors['save_record'] = SharingApiError('CONFLICT', 'record changed')

        with self.assertRaises(SharingApiError):
            await self.coordinator.remove_participant(share, participant, 'proj1')
        self.assertEqual(self.coordinator.status('proj1'), SharingStatus.error('record changed'))
        self.assertNotIn('proj1', self.coordinator.active_shares)


class TestFetchShare(IsolatedAsyncioTestCase):
    def setUp(self):
        self.service = FakeSharingService()
        self.coordinator = ShareCoordinator(self.service)

    async def test_fetch_share_record(self):
        share = make_share('proj1', 'Share-1')
        self.service.records['Share-1'] = share

        result = await self.coordinator.fetch_share('proj1', RecordId('Share-1'))

        self.assertIs(result, share)
        self.assertIs(self.coordinator.active_shares['proj1'], share)
        self.assertEqual(self.coordinator.status('proj1'), SharingStatus.shared())

    async def test_fetch_share_through_reference(self):
        share = make_share('proj1', 'Share-1')
        self.service.records['Share-1'] = share
        self.service.records['proj1'] = make_referencing_record('proj1', 'Share-1')

        result = await self.coordinator.fetch_share('proj1', 'proj1')

        self.assertIs(result, share)
        self.assertEqual([x[1] for x in self.service.calls], [RecordId('proj1'), RecordId('Share-1')])
        self.assertEqual(self.coordinator.status('proj1'), SharingStatus.shared())

    async def test_fetch_plain_record(self):
        self.service.records['proj1'] = make_project('proj1')

        result = await self.coordinator.fetch_share('proj1', RecordId('proj1'))

        self.assertIsNone(result)
        snapshot = self.coordinator.snapshot()
        self.assertNotIn('proj1', snapshot.active_shares)
        self.assertNotIn('proj1', snapshot.statuses)

    async def test_fetch_reference_to_plain_record(self):
        self.service.records['proj1'] = make_referencing_record('proj1', 'other')
        self.service.records['other'] = make_project('other')

        result = await self.coordinator.fetch_share('proj1', RecordId('proj1'))

        self.assertIsNone(result)
        self.assertNotIn('proj1', self.coordinator.snapshot().statuses)

    async def test_fetch_not_found(self):
        result = await self.coordinator.fetch_share('proj1', RecordId('missing'))

        self.assertIsNone(result)
        self.assertEqual(self.coordinator.status('proj1'), SharingStatus.not_shared())
        self.assertEqual(self.coordinator.snapshot().statuses['proj1'], SharingStatus.not_shared())
        self.assertIsNone(self.coordinator.error_message)

    async def test_fetch_error(self):
        self.service.errors['fetch_record'] = SharingApiError('SERVICE_UNAVAILABLE', 'try later')

        with self.assertRaises(SharingApiError):
            await self.coordinator.fetch_share('proj1', RecordId('proj1'))

        self.assertEqual(self.coordinator.status('proj1'), SharingStatus.error('try later'))
        self.assertEqual(self.coordinator.error_message, 'try later')


class TestListeners(IsolatedAsyncioTestCase):
    def setUp(self):
        self.service = FakeSharingService()
        self.coordinator = ShareCoordinator(self.service)
        self.events = []
        self.coordinator.add_listener(self.events.append)

    async def test_events(self):
        share = await self.coordinator.create_share(make_project('proj1'), 'proj1')
        await self.coordinator.remove_share('proj1')

        self.assertEqual(self.events, [
            ShareEvent('proj1', SharingStatus.shared(), share),
            ShareEvent('proj1', SharingStatus.not_shared(), None),
        ])

    async def test_invitation_events(self):
        self.service.invitations = [make_invitation('proj1', 'Share-A')]
        await self.coordinator.fetch_pending_invitations()

        self.assertEqual(len(self.events), 1)
        self.assertIsInstance(self.events[0], InvitationsEvent)
        self.assertEqual(len(self.events[0].invitations), 1)

    async def test_failing_listener_does_not_break_operation(self):
        self.coordinator.add_listener(mock.Mock(side_effect=ValueError('boom')))

        await self.coordinator.create_share(make_project('proj1'), 'proj1')

        self.assertEqual(self.coordinator.status('proj1'), SharingStatus.shared())
        self.assertEqual(len(self.events), 1)

    async def test_remove_listener(self):
        self.coordinator.remove_listener(self.events.append)
        await self.coordinator.create_share(make_project('proj1'), 'proj1')
        self.assertEqual(self.events, [])

    async def test_mutations_happen_on_owner_loop(self):
        await self.coordinator.fetch_pending_invitations()
        owner_thread = threading.get_ident()
        threads = []
        self.coordinator.add_listener(lambda _: threads.append(threading.get_ident()))

        def create_in_other_loop():
            return asyncio.run(self.coordinator.create_share(make_project('proj1'), 'proj1'))

        share = await asyncio.to_thread(create_in_other_loop)

        self.assertIs(self.coordinator.active_shares['proj1'], share)
        self.assertEqual(threads, [owner_thread])


class TestSequentialLoops(TestCase):
    def setUp(self):
        self.service = FakeSharingService()
        self.coordinator = ShareCoordinator(self.service)

    def test_operations_across_asyncio_runs(self):
        share = asyncio.run(self.coordinator.create_share(make_project('proj1'), 'proj1'))

        fetched = asyncio.run(self.coordinator.fetch_share('proj1', share.record_id))

        self.assertIs(fetched, share)
        self.assertEqual(self.coordinator.status('proj1'), SharingStatus.shared())

    def test_failure_after_previous_loop_closed(self):
        asyncio.run(self.coordinator.fetch_pending_invitations())
        self.service.modify_result = ModifyResult.failure(SharingApiError('QUOTA_EXCEEDED', 'quota exceeded'))

        with self.assertRaises(SharingApiError) as ctx:
            asyncio.run(self.coordinator.create_share(make_project('proj1'), 'proj1'))

        self.assertEqual(ctx.exception.message, 'quota exceeded')
        self.assertEqual(self.coordinator.status('proj1'), SharingStatus.error('quota exceeded'))
        self.assertEqual(self.coordinator.error_message, 'quota exceeded')

    def test_owner_loop_not_running(self):
        loop = asyncio.new_event_loop()
        self.addCleanup(loop.close)
        loop.run_until_complete(self.coordinator.fetch_pending_invitations())

        share = asyncio.run(self.coordinator.create_share(make_project('proj1'), 'proj1'))

        self.assertIs(self.coordinator.active_shares['proj1'], share)

    def test_delegate_callback_after_loop_closed(self):
        asyncio.run(self.coordinator.fetch_pending_invitations())
        self.coordinator.presenter = mock.Mock(spec=SharingUIPresenter)
        share = make_share('proj1')

        delegate = self.coordinator.present_sharing(share, 'proj1')
        delegate.did_save_share()

        self.assertIs(self.coordinator.active_shares['proj1'], share)


class TestPresentSharing(IsolatedAsyncioTestCase):
    def setUp(self):
        self.service = FakeSharingService()
        self.presenter = mock.Mock(spec=SharingUIPresenter)
        self.coordinator = ShareCoordinator(self.service, presenter=self.presenter)

    async def test_save_succeeded(self):
        share = make_share('proj1')
        on_dismiss = mock.Mock()
        delegate = self.coordinator.present_sharing(share, 'proj1', on_dismiss=on_dismiss)

        self.presenter.present.assert_called_once_with(share, delegate)
        self.assertEqual(delegate.item_title(), 'Card Game Project')

        delegate.did_save_share()
        self.assertIs(self.coordinator.active_shares['proj1'], share)
        self.assertEqual(self.coordinator.status('proj1'), SharingStatus.shared())
        on_dismiss.assert_called_once_with()

    async def test_save_failed(self):
        delegate = self.coordinator.present_sharing(make_share('proj1'), 'proj1')
        delegate.failed_to_save_share(SharingApiError('NETWORK_FAILURE', 'offline'))

        self.assertEqual(self.coordinator.status('proj1'), SharingStatus.error('offline'))
        self.assertEqual(self.coordinator.error_message, 'offline')

    async def test_stopped_sharing(self):
        await self.coordinator.create_share(make_project('proj1'), 'proj1')
        share = self.coordinator.active_shares['proj1']

        delegate = self.coordinator.present_sharing(share, 'proj1')
        delegate.did_stop_sharing()
        delegate.did_save_share()

        self.assertNotIn('proj1', self.coordinator.active_shares)
        self.assertEqual(self.coordinator.status('proj1'), SharingStatus.not_shared())

    async def test_no_presenter(self):
        coordinator = ShareCoordinator(self.service)
        with self.assertRaises(Error):
            coordinator.present_sharing(make_share('proj1'), 'proj1')
