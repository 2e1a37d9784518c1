#  _  __
# | |/ /___ ___ _ __  ___ _ _ ®
# | ' </ -_) -_) '_ \/ -_) '_|
# |_|\_\___\___| .__/\___|_|
#              |_|
#
# Keeper CloudShare
# Copyright 2026 Keeper Security Inc.
# Contact: ops@keepersecurity.com
#

"""
Share lifecycle coordinator.

Issues sharing requests to the remote sharing service and mirrors the results
into local bookkeeping: active shares by resource id, pending invitations and
the sharing status of every resource. The bookkeeping belongs to one event
loop; whichever loop awaits an operation, the state changes and the observer
notifications happen on the owner loop.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Union

from . import rest_api
from .error import Error, SharingApiError, RecordNotFoundError, UnknownResultError, error_message
from .params import SharingParams, DEFAULT_SHARE_TITLE
from .presenter import SharingUIPresenter, SharingSessionDelegate
from .records import (CloudRecord, PlainRecord, RecordWithShareReference, ShareRecord, Participant,
                      ParticipantPermission, PublicPermission, InvitationMetadata, RecordId, pending_only)
from .service import RemoteSharingService, ResultStatus, SavePolicy
from .sharing_state import SharingStatus, ShareEvent, InvitationsEvent, SharingSnapshot

SharingListener = Callable[[Union[ShareEvent, InvitationsEvent]], None]


class ShareCoordinator:
    def __init__(self, service, share_title=DEFAULT_SHARE_TITLE, presenter=None, loop=None):
        # type: (RemoteSharingService, str, Optional[SharingUIPresenter], Optional[asyncio.AbstractEventLoop]) -> None
        self.service = service
        self.share_title = share_title
        self.presenter = presenter
        self._loop = loop
        self._active_shares = {}          # type: Dict[str, ShareRecord]
        self._pending_invitations = []    # type: List[InvitationMetadata]
        self._sharing_state = {}          # type: Dict[str, SharingStatus]
        self._error_message = None        # type: Optional[str]
        self._listeners = []              # type: List[SharingListener]

    @classmethod
    def from_params(cls, params, presenter=None):
        # type: (SharingParams, Optional[SharingUIPresenter]) -> 'ShareCoordinator'
        return cls(rest_api.sharing_service(params), share_title=params.share_title, presenter=presenter)

    @property
    def active_shares(self):    # type: () -> Dict[str, ShareRecord]
        return dict(self._active_shares)

    @property
    def pending_invitations(self):    # type: () -> List[InvitationMetadata]
        return list(self._pending_invitations)

    @property
    def error_message(self):    # type: () -> Optional[str]
        return self._error_message

    def status(self, resource_id):    # type: (str) -> SharingStatus
        return self._sharing_state.get(resource_id) or SharingStatus.not_shared()

    def snapshot(self):    # type: () -> SharingSnapshot
        return SharingSnapshot(active_shares=dict(self._active_shares),
                               pending_invitations=tuple(self._pending_invitations),
                               statuses=dict(self._sharing_state),
                               error_message=self._error_message)

    def add_listener(self, listener):    # type: (SharingListener) -> None
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener):    # type: (SharingListener) -> None
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def create_share(self, resource, resource_id):    # type: (CloudRecord, str) -> ShareRecord
        logging.debug('Creating share for resource: %s', resource_id)

        share = ShareRecord.for_root(resource)
        share.title = self.share_title
        share.public_permission = PublicPermission.NONE

        try:
            result = await self.service.create_records([resource, share], SavePolicy.ALL_KEYS)
            if result.status == ResultStatus.FAILURE:
                raise result.error or SharingApiError('failure', 'Share was not saved')
            if result.status != ResultStatus.SUCCESS:
                raise UnknownResultError()
        except Exception as e:
            logging.error('Failed to create share: %s', error_message(e))
            await self._commit(self._report_error, resource_id, error_message(e))
            raise

        await self._commit(self._register_share, resource_id, share)
        logging.info('Created share "%s" for resource: %s', share.record_id.record_name, resource_id)
        return share

    async def accept_share(self, metadata):    # type: (InvitationMetadata) -> None
        root_name = metadata.root_record_id.record_name
        logging.debug('Accepting share: %s', root_name)

        await self._commit(self._set_status, root_name, SharingStatus.pending())
        try:
            share = await self.service.accept_invitation(metadata)
        except Exception as e:
            logging.error('Failed to accept share: %s', error_message(e))
            await self._commit(self._report_error, root_name, error_message(e))
            raise

        logging.info('Accepted share (share id): %s', share.record_id.record_name)
        await self._commit(self._complete_accept, root_name, share, metadata.share_id)

    async def fetch_pending_invitations(self):    # type: () -> List[InvitationMetadata]
        logging.debug('Fetching pending share invitations')

        try:
            metadata = await self.service.list_invitation_metadata()
        except Exception as e:
            logging.error('Failed to fetch share invitations: %s', error_message(e))
            await self._commit(self._set_error_message, error_message(e))
            raise

        pending = pending_only(metadata)
        await self._commit(self._replace_invitations, pending)
        logging.info('Found %d pending invitations', len(pending))
        return list(pending)

    async def remove_share(self, resource_id):    # type: (str) -> None
        logging.debug('Removing share for resource: %s', resource_id)

        share = await self._commit(self._active_shares.get, resource_id)
        if share is None:
            logging.warning('No active share found for resource: %s', resource_id)
            return

        # the share is deleted by its own id, never by the root record id
        share_id = share.record_id
        try:
            await self.service.delete_record(share_id)
        except Exception as e:
            # TODO: decide whether a rejected delete should mark the resource as Error; cached state is left as is
            logging.error('Failed to remove share "%s": %s', share_id.record_name, error_message(e))
            raise

        await self._commit(self._clear_share, resource_id)
        logging.info('Removed share: %s', share_id.record_name)

    async def update_participant_permission(self, share, participant, permission):
        # type: (ShareRecord, Participant, ParticipantPermission) -> None
        logging.debug('Updating participant permission')

        participant.permission = permission
        shared = share.find_participant(participant.participant_id) if participant.participant_id else None
        if shared is not None:
            shared.permission = permission

        try:
            await self.service.save_record(share)
        except Exception as e:
            logging.error('Failed to update participant permission: %s', error_message(e))
            await self._commit(self._set_error_message, error_message(e))
            raise

        logging.info('Updated participant permission to: %s', permission.value)

    async def remove_participant(self, share, participant, resource_id):
        # type: (ShareRecord, Participant, str) -> None
        logging.debug('Removing participant from share')

        share.remove_participant(participant)
        try:
            updated_share = await self.service.save_record(share)
            if not isinstance(updated_share, ShareRecord):
                raise UnknownResultError(f'Saved record "{updated_share.record_id.record_name}" is not a share')
        except Exception as e:
            logging.error('Failed to remove participant: %s', error_message(e))
            await self._commit(self._report_error, resource_id, error_message(e))
            raise

        await self._commit(self._register_share, resource_id, updated_share)
        logging.info('Removed participant from share')

    async def fetch_share(self, resource_id, record_id):
        # type: (str, Union[RecordId, str]) -> Optional[ShareRecord]
        logging.debug('Fetching share for resource: %s', resource_id)

        if isinstance(record_id, str):
            record_id = RecordId(record_id)
        share = None    # type: Optional[ShareRecord]
        try:
            record = await self.service.fetch_record(record_id)
            if isinstance(record, ShareRecord):
                share = record
            elif isinstance(record, RecordWithShareReference):
                if record.share_reference:
                    share_record = await self.service.fetch_record(record.share_reference)
                    if isinstance(share_record, ShareRecord):
                        share = share_record
            elif not isinstance(record, PlainRecord):
                raise UnknownResultError(f'Unsupported record: {type(record).__name__}')
        except RecordNotFoundError:
            logging.info('No share found for resource: %s', resource_id)
            await self._commit(self._clear_share, resource_id)
            return None
        except Exception as e:
            logging.error('Error fetching share: %s', error_message(e))
            await self._commit(self._report_error, resource_id, error_message(e))
            raise

        if share is None:
            logging.debug('Record "%s" is not shared', record_id.record_name)
            return None

        await self._commit(self._register_share, resource_id, share)
        return share

    def present_sharing(self, share, resource_id, on_dismiss=None):
        # type: (ShareRecord, str, Optional[Callable[[], None]]) -> SharingSessionDelegate
        if self.presenter is None:
            raise Error('Sharing presenter is not configured')

        delegate = SharingSessionDelegate(
            share, self.share_title,
            on_saved=lambda saved: self._dispatch(self._register_share, resource_id, saved),
            on_failed=lambda message: self._dispatch(self._report_error, resource_id, message),
            on_stopped=lambda: self._dispatch(self._clear_share, resource_id),
            on_dismiss=on_dismiss)
        self.presenter.present(share, delegate)
        return delegate

    async def _commit(self, mutation, *args):
        loop = asyncio.get_running_loop()
        if not self._owner_alive():
            self._loop = loop
        if loop is self._loop:
            return mutation(*args)
        future = asyncio.run_coroutine_threadsafe(self._apply(mutation, *args), self._loop)
        return await asyncio.wrap_future(future)

    @staticmethod
    async def _apply(mutation, *args):
        return mutation(*args)

    def _owner_alive(self):
        # an owner loop that is closed or idle can no longer run marshalled mutations
        return self._loop is not None and not self._loop.is_closed() and self._loop.is_running()

    def _dispatch(self, mutation, *args):
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if not self._owner_alive() or running is self._loop:
            mutation(*args)
        else:
            self._loop.call_soon_threadsafe(mutation, *args)

    def _notify(self, event):
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logging.warning('Sharing listener error: %s', e)

    def _set_status(self, resource_id, status, share=None):
        self._sharing_state[resource_id] = status
        self._notify(ShareEvent(resource_id, status, share))

    def _set_error_message(self, message):
        self._error_message = message

    def _report_error(self, resource_id, message):
        self._error_message = message
        self._set_status(resource_id, SharingStatus.error(message))

    def _register_share(self, resource_id, share):
        self._active_shares[resource_id] = share
        self._set_status(resource_id, SharingStatus.shared(), share)

    def _clear_share(self, resource_id):
        self._active_shares.pop(resource_id, None)
        self._set_status(resource_id, SharingStatus.not_shared())

    def _replace_invitations(self, invitations):
        self._pending_invitations = list(invitations)
        self._notify(InvitationsEvent(tuple(self._pending_invitations)))

    def _complete_accept(self, resource_id, share, share_id):
        self._register_share(resource_id, share)
        count = len(self._pending_invitations)
        self._pending_invitations = [x for x in self._pending_invitations if x.share_id != share_id]
        if len(self._pending_invitations) != count:
            self._notify(InvitationsEvent(tuple(self._pending_invitations)))
