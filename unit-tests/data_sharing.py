from typing import Dict, List, Optional

from cloudshare.error import RecordNotFoundError
from cloudshare.records import (CloudRecord, PlainRecord, RecordWithShareReference, ShareRecord, Participant,
                                ParticipantRole, ParticipantPermission, ParticipantStatus, InvitationMetadata,
                                RecordId)
from cloudshare.service import RemoteSharingService, ModifyResult, SavePolicy

_OWNER_EMAIL = 'owner@company.com'
_USER_EMAIL = 'unit.test@company.com'


class FakeSharingService(RemoteSharingService):
    """In-memory sharing backend that records every call"""

    def __init__(self):
        self.records = {}        # type: Dict[str, CloudRecord]
        self.invitations = []    # type: List[InvitationMetadata]
        self.calls = []          # type: List[tuple]
        self.errors = {}         # type: Dict[str, Exception]
        self.modify_result = None    # type: Optional[ModifyResult]
        self.saved_changes = {}   # type: Dict[str, str]

    def call_names(self):
        return [x[0] for x in self.calls]

    def _call(self, name, *args):
        self.calls.append((name,) + args)
        error = self.errors.get(name)
        if error:
            raise error

    async def create_records(self, records, policy=SavePolicy.ALL_KEYS):
        self._call('create_records', list(records), policy)
        if self.modify_result is not None:
            return self.modify_result
        for record in records:
            self.records[record.record_id.record_name] = record
        return ModifyResult.success(records)

    async def accept_invitation(self, metadata):
        self._call('accept_invitation', metadata)
        share = ShareRecord(metadata.share_id, metadata.root_record_id)
        share.participants = list(metadata.share.participants)
        share.change_tag = 'accepted'
        return share

    async def list_invitation_metadata(self):
        self._call('list_invitation_metadata')
        return list(self.invitations)

    async def delete_record(self, record_id):
        self._call('delete_record', record_id)
        if record_id.record_name not in self.records:
            raise RecordNotFoundError(f'Record "{record_id.record_name}" not found')
        del self.records[record_id.record_name]

    async def save_record(self, record):
        self._call('save_record', record)
        if isinstance(record, ShareRecord):
            saved = ShareRecord(record.record_id, record.root_record_id)
            saved.fields = dict(record.fields)
            saved.public_permission = record.public_permission
            saved.participants = list(record.participants)
        else:
            saved = PlainRecord(record.record_id, record.record_type)
            saved.fields = dict(record.fields)
        saved.change_tag = self.saved_changes.get(record.record_id.record_name, 'saved')
        self.records[record.record_id.record_name] = saved
        return saved

    async def fetch_record(self, record_id):
        self._call('fetch_record', record_id)
        record = self.records.get(record_id.record_name)
        if record is None:
            raise RecordNotFoundError(f'Record "{record_id.record_name}" not found')
        return record


def make_project(name='project-1'):    # type: (str) -> PlainRecord
    record = PlainRecord.new('Project', name)
    record.fields['name'] = name.title()
    return record


def make_share(root_name='project-1', share_name=None, participants=None):
    # type: (str, Optional[str], Optional[List[Participant]]) -> ShareRecord
    share = ShareRecord(RecordId(share_name or f'Share-{root_name}'), RecordId(root_name))
    share.title = 'Card Game Project'
    share.participants = [Participant('owner', _OWNER_EMAIL, ParticipantRole.OWNER,
                                      ParticipantPermission.READ_WRITE, ParticipantStatus.ACCEPTED)]
    if participants:
        share.participants.extend(participants)
    return share


def make_participant(participant_id='user-1', email=_USER_EMAIL, status=ParticipantStatus.ACCEPTED):
    return Participant(participant_id, email, ParticipantRole.PRIVATE_USER, ParticipantPermission.READ_ONLY, status)


def make_invitation(root_name, share_name, status=ParticipantStatus.PENDING):
    # type: (str, str, ParticipantStatus) -> InvitationMetadata
    share = make_share(root_name, share_name)
    return InvitationMetadata(share, RecordId(root_name), participant_status=status,
                              participant_permission=ParticipantPermission.READ_ONLY, owner_email=_OWNER_EMAIL)


def make_referencing_record(name, share_name):    # type: (str, str) -> RecordWithShareReference
    return RecordWithShareReference(RecordId(name), 'Project', RecordId(share_name))


def share_dict(root_name='project-1', share_name='Share-1'):
    return {
        'recordName': share_name,
        'recordType': 'cloudkit.share',
        'zoneID': {'zoneName': 'Projects'},
        'recordChangeTag': 'k1',
        'fields': {'cloudkit.title': {'value': 'Card Game Project'}},
        'publicPermission': 'NONE',
        'rootRecordName': root_name,
        'participants': [
            {
                'participantId': 'owner',
                'type': 'OWNER',
                'permission': 'READ_WRITE',
                'acceptanceStatus': 'ACCEPTED',
                'userIdentity': {'lookupInfo': {'emailAddress': _OWNER_EMAIL}}
            },
            {
                'participantId': 'user-1',
                'type': 'PRIVATE_USER',
                'permission': 'READ_ONLY',
                'acceptanceStatus': 'PENDING',
                'userIdentity': {'lookupInfo': {'emailAddress': _USER_EMAIL}}
            }
        ]
    }


def metadata_dict(root_name, share_name, status):
    return {
        'share': share_dict(root_name, share_name),
        'rootRecordName': root_name,
        'zoneID': {'zoneName': 'Projects'},
        'participantStatus': status,
        'participantPermission': 'READ_ONLY',
        'ownerIdentity': {'lookupInfo': {'emailAddress': _OWNER_EMAIL}}
    }
