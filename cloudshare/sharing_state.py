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

import enum
from typing import Optional, NamedTuple, Dict, Tuple

from .records import ShareRecord, InvitationMetadata


class SharingState(enum.Enum):
    NOT_SHARED = 'not_shared'
    SHARED = 'shared'
    PENDING = 'pending'
    ERROR = 'error'


class SharingStatus(NamedTuple):
    state: SharingState
    message: Optional[str] = None

    @classmethod
    def not_shared(cls):
        return cls(SharingState.NOT_SHARED)

    @classmethod
    def shared(cls):
        return cls(SharingState.SHARED)

    @classmethod
    def pending(cls):
        return cls(SharingState.PENDING)

    @classmethod
    def error(cls, message):    # type: (str) -> 'SharingStatus'
        return cls(SharingState.ERROR, message or '')

    def __str__(self):
        if self.state == SharingState.ERROR:
            return f'Error: {self.message}'
        return self.state.value


class ShareEvent(NamedTuple):
    """Sharing status of a single resource has changed"""
    resource_id: str
    status: SharingStatus
    share: Optional[ShareRecord] = None


class InvitationsEvent(NamedTuple):
    """Pending invitation list has been rebuilt or pruned"""
    invitations: Tuple[InvitationMetadata, ...]


class SharingSnapshot(NamedTuple):
    active_shares: Dict[str, ShareRecord]
    pending_invitations: Tuple[InvitationMetadata, ...]
    statuses: Dict[str, SharingStatus]
    error_message: Optional[str]
