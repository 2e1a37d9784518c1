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
from typing import List, Optional, Sequence

from .error import Error
from .records import CloudRecord, ShareRecord, InvitationMetadata, RecordId


class SavePolicy(enum.Enum):
    IF_SERVER_RECORD_UNCHANGED = 'ifServerRecordUnchanged'
    CHANGED_KEYS = 'changedKeys'
    ALL_KEYS = 'allKeys'


class ResultStatus(enum.Enum):
    SUCCESS = 'success'
    FAILURE = 'failure'


class ModifyResult:
    def __init__(self, status, records=None, error=None):
        # type: (object, Optional[List[CloudRecord]], Optional[Error]) -> None
        self.status = status
        self.records = records or []
        self.error = error

    @classmethod
    def success(cls, records):
        return cls(ResultStatus.SUCCESS, records=list(records))

    @classmethod
    def failure(cls, error):
        return cls(ResultStatus.FAILURE, error=error)


class RemoteSharingService(abc.ABC):
    """Asynchronous contract of the record sharing backend"""

    @abc.abstractmethod
    async def create_records(self, records, policy=SavePolicy.ALL_KEYS):
        # type: (Sequence[CloudRecord], SavePolicy) -> ModifyResult
        """Saves all records or none of them"""

    @abc.abstractmethod
    async def accept_invitation(self, metadata):    # type: (InvitationMetadata) -> ShareRecord
        pass

    @abc.abstractmethod
    async def list_invitation_metadata(self):    # type: () -> List[InvitationMetadata]
        pass

    @abc.abstractmethod
    async def delete_record(self, record_id):    # type: (RecordId) -> None
        pass

    @abc.abstractmethod
    async def save_record(self, record):    # type: (CloudRecord) -> CloudRecord
        """Returns the record as stored by the server"""

    @abc.abstractmethod
    async def fetch_record(self, record_id):    # type: (RecordId) -> CloudRecord
        """Raises RecordNotFoundError when the record does not exist"""
