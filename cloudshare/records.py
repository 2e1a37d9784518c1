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

import abc
import enum
import logging
import uuid
from typing import Optional, List, Dict, Any, NamedTuple, Iterable

DEFAULT_ZONE_NAME = '_defaultZone'
SHARE_RECORD_TYPE = 'cloudkit.share'
SHARE_TITLE_FIELD = 'cloudkit.title'


class PublicPermission(enum.Enum):
    NONE = 'NONE'
    READ_ONLY = 'READ_ONLY'
    READ_WRITE = 'READ_WRITE'


class ParticipantPermission(enum.Enum):
    UNKNOWN = 'UNKNOWN'
    NONE = 'NONE'
    READ_ONLY = 'READ_ONLY'
    READ_WRITE = 'READ_WRITE'


class ParticipantRole(enum.Enum):
    UNKNOWN = 'UNKNOWN'
    OWNER = 'OWNER'
    PRIVATE_USER = 'PRIVATE_USER'
    PUBLIC_USER = 'PUBLIC_USER'


class ParticipantStatus(enum.Enum):
    UNKNOWN = 'UNKNOWN'
    PENDING = 'PENDING'
    ACCEPTED = 'ACCEPTED'
    DECLINED = 'DECLINED'
    REMOVED = 'REMOVED'


def to_enum(enum_type, value, default):
    if isinstance(value, enum_type):
        return value
    if isinstance(value, str):
        try:
            return enum_type(value.upper())
        except ValueError:
            logging.debug('Unsupported %s value: "%s"', enum_type.__name__, value)
    return default


class RecordId(NamedTuple):
    record_name: str
    zone_name: str = DEFAULT_ZONE_NAME

    def to_dict(self):    # type: () -> dict
        return {
            'recordName': self.record_name,
            'zoneID': {'zoneName': self.zone_name}
        }

    @classmethod
    def load(cls, rid):    # type: (dict) -> 'RecordId'
        zone = rid.get('zoneID') or {}
        return cls(rid.get('recordName') or '', zone.get('zoneName') or DEFAULT_ZONE_NAME)

    def __str__(self):
        return self.record_name


class Participant:
    def __init__(self, participant_id='', email='', role=ParticipantRole.PRIVATE_USER,
                 permission=ParticipantPermission.READ_ONLY, acceptance_status=ParticipantStatus.PENDING):
        self.participant_id = participant_id
        self.email = email
        self.role = role
        self.permission = permission
        self.acceptance_status = acceptance_status

    @classmethod
    def load(cls, p):    # type: (dict) -> 'Participant'
        lookup = (p.get('userIdentity') or {}).get('lookupInfo') or {}
        return cls(participant_id=p.get('participantId') or '',
                   email=lookup.get('emailAddress') or '',
                   role=to_enum(ParticipantRole, p.get('type'), ParticipantRole.UNKNOWN),
                   permission=to_enum(ParticipantPermission, p.get('permission'), ParticipantPermission.UNKNOWN),
                   acceptance_status=to_enum(ParticipantStatus, p.get('acceptanceStatus'), ParticipantStatus.UNKNOWN))

    def to_dict(self):    # type: () -> dict
        p = {
            'type': self.role.value,
            'permission': self.permission.value,
            'acceptanceStatus': self.acceptance_status.value,
        }
        if self.participant_id:
            p['participantId'] = self.participant_id
        if self.email:
            p['userIdentity'] = {'lookupInfo': {'emailAddress': self.email}}
        return p

    def __repr__(self):
        return f'Participant({self.participant_id or self.email!r}, {self.permission.name})'


class CloudRecord(abc.ABC):
    """A record as returned by the sharing service.

    The service hands back one of three shapes: a plain record, a record that
    is the root of a share and references it, or the share record itself.
    ``load_record`` decides which one a response describes.
    """

    def __init__(self, record_id, record_type=''):    # type: (RecordId, str) -> None
        self.record_id = record_id
        self.record_type = record_type
        self.fields = {}    # type: Dict[str, Any]
        self.change_tag = None    # type: Optional[str]

    @abc.abstractmethod
    def to_dict(self):    # type: () -> dict
        pass

    def _base_dict(self):
        rec = self.record_id.to_dict()
        rec['recordType'] = self.record_type
        rec['fields'] = {k: {'value': v} for k, v in self.fields.items()}
        if self.change_tag:
            rec['recordChangeTag'] = self.change_tag
        return rec

    def _load_base(self, rec):
        fields = rec.get('fields') or {}
        self.fields = {k: v.get('value') if isinstance(v, dict) else v for k, v in fields.items()}
        self.change_tag = rec.get('recordChangeTag')

    def __repr__(self):
        return f'{type(self).__name__}({self.record_id.record_name!r})'


class PlainRecord(CloudRecord):
    @classmethod
    def new(cls, record_type, record_name=None, zone_name=DEFAULT_ZONE_NAME):
        record = cls(RecordId(record_name or str(uuid.uuid4()).upper(), zone_name), record_type)
        return record

    def to_dict(self):
        return self._base_dict()


class RecordWithShareReference(PlainRecord):
    def __init__(self, record_id, record_type='', share_reference=None):
        # type: (RecordId, str, Optional[RecordId]) -> None
        super().__init__(record_id, record_type)
        self.share_reference = share_reference

    def to_dict(self):
        rec = self._base_dict()
        if self.share_reference:
            rec['share'] = self.share_reference.to_dict()
        return rec


class ShareRecord(CloudRecord):
    def __init__(self, record_id, root_record_id=None):    # type: (RecordId, Optional[RecordId]) -> None
        super().__init__(record_id, SHARE_RECORD_TYPE)
        self.root_record_id = root_record_id
        self.public_permission = PublicPermission.NONE
        self.participants = []    # type: List[Participant]

    @classmethod
    def for_root(cls, root_record):    # type: (CloudRecord) -> 'ShareRecord'
        share_name = f'Share-{str(uuid.uuid4()).upper()}'
        return cls(RecordId(share_name, root_record.record_id.zone_name), root_record.record_id)

    @property
    def title(self):    # type: () -> str
        return self.fields.get(SHARE_TITLE_FIELD) or ''

    @title.setter
    def title(self, value):
        self.fields[SHARE_TITLE_FIELD] = value

    @property
    def owner(self):    # type: () -> Optional[Participant]
        return next((x for x in self.participants if x.role == ParticipantRole.OWNER), None)

    def find_participant(self, participant_id):    # type: (str) -> Optional[Participant]
        return next((x for x in self.participants if x.participant_id == participant_id), None)

    def remove_participant(self, participant):    # type: (Participant) -> bool
        count = len(self.participants)
        self.participants = [x for x in self.participants
                             if x is not participant and x.participant_id != participant.participant_id]
        return len(self.participants) < count

    def to_dict(self):
        rec = self._base_dict()
        rec['publicPermission'] = self.public_permission.value
        rec['participants'] = [x.to_dict() for x in self.participants]
        if self.root_record_id:
            rec['rootRecordName'] = self.root_record_id.record_name
        return rec

    def load_share_data(self, rec):    # type: (dict) -> None
        self._load_base(rec)
        self.public_permission = to_enum(PublicPermission, rec.get('publicPermission'), PublicPermission.NONE)
        self.participants = [Participant.load(x) for x in rec.get('participants') or []]
        root_name = rec.get('rootRecordName')
        if root_name:
            self.root_record_id = RecordId(root_name, self.record_id.zone_name)


def load_record(rec):    # type: (dict) -> CloudRecord
    record_id = RecordId.load(rec)
    record_type = rec.get('recordType') or ''
    if record_type == SHARE_RECORD_TYPE:
        share = ShareRecord(record_id)
        share.load_share_data(rec)
        return share

    share_ref = rec.get('share')
    if isinstance(share_ref, dict) and share_ref.get('recordName'):
        record = RecordWithShareReference(record_id, record_type, RecordId.load(share_ref))
    else:
        record = PlainRecord(record_id, record_type)
    record._load_base(rec)
    return record


def load_share(rec):    # type: (dict) -> ShareRecord
    record = load_record(rec)
    if not isinstance(record, ShareRecord):
        raise ValueError(f'Record "{record.record_id.record_name}" is not a share')
    return record


class InvitationMetadata:
    def __init__(self, share, root_record_id, participant_status=ParticipantStatus.PENDING,
                 participant_permission=ParticipantPermission.READ_ONLY, owner_email=''):
        # type: (ShareRecord, RecordId, ParticipantStatus, ParticipantPermission, str) -> None
        self.share = share
        self.root_record_id = root_record_id
        self.participant_status = participant_status
        self.participant_permission = participant_permission
        self.owner_email = owner_email

    @property
    def share_id(self):    # type: () -> RecordId
        return self.share.record_id

    @property
    def is_pending(self):
        return self.participant_status == ParticipantStatus.PENDING

    @classmethod
    def load(cls, md):    # type: (dict) -> 'InvitationMetadata'
        share = load_share(md.get('share') or {})
        zone = md.get('zoneID') or {}
        root_record_id = RecordId(md.get('rootRecordName') or '',
                                  zone.get('zoneName') or share.record_id.zone_name)
        owner = (md.get('ownerIdentity') or {}).get('lookupInfo') or {}
        return cls(share, root_record_id,
                   participant_status=to_enum(ParticipantStatus, md.get('participantStatus'),
                                              ParticipantStatus.UNKNOWN),
                   participant_permission=to_enum(ParticipantPermission, md.get('participantPermission'),
                                                  ParticipantPermission.UNKNOWN),
                   owner_email=owner.get('emailAddress') or '')

    def __repr__(self):
        return f'InvitationMetadata({self.share_id.record_name!r}, {self.participant_status.name})'


def pending_only(invitations):    # type: (Iterable[InvitationMetadata]) -> List[InvitationMetadata]
    return [x for x in invitations if x.is_pending]
