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

import asyncio
import json
import logging
from typing import List

import requests

from . import records as rec_mod
from .error import SharingApiError, RecordNotFoundError, NOT_FOUND, TRANSPORT_ERROR
from .params import RestApiContext, SharingParams
from .records import CloudRecord, ShareRecord, InvitationMetadata, RecordId
from .service import RemoteSharingService, ModifyResult, SavePolicy

OPERATION_TYPES = {
    SavePolicy.ALL_KEYS: 'forceReplace',
    SavePolicy.CHANGED_KEYS: 'forceUpdate',
    SavePolicy.IF_SERVER_RECORD_UNCHANGED: 'update',
}


def raise_api_error(result_code, message):
    if result_code == NOT_FOUND:
        raise RecordNotFoundError(message or 'Record not found')
    raise SharingApiError(result_code, message)


def check_record_error(rs_record):    # type: (dict) -> dict
    if 'serverErrorCode' in rs_record:
        logging.debug('<<< Record Error: [%s]', rs_record)
        raise_api_error(rs_record['serverErrorCode'], rs_record.get('reason') or rs_record['serverErrorCode'])
    return rs_record


def execute_rest(context, endpoint, payload):
    # type: (RestApiContext, str, dict) -> dict
    url = endpoint if endpoint.startswith('https://') else context.database_url + endpoint
    query = {}
    if context.api_token:
        query['ckAPIToken'] = context.api_token
    if context.web_auth_token:
        query['ckWebAuthToken'] = context.web_auth_token

    if logging.getLogger().level <= logging.DEBUG:
        logging.debug('>>> [RQ] %s: %s', endpoint, json.dumps(payload, sort_keys=True, indent=4))
    try:
        rs = requests.post(url, json=payload, params=query, proxies=context.proxies,
                           verify=context.certificate_check)
    except requests.exceptions.RequestException as e:
        logging.debug('<<< Transport Error: [%s]', e)
        raise SharingApiError(TRANSPORT_ERROR, str(e)) from e

    content_type = rs.headers.get('Content-Type') or ''
    if rs.status_code == 200:
        try:
            rs_body = rs.json() if rs.content else {}
        except ValueError as e:
            raise SharingApiError(TRANSPORT_ERROR, 'Sharing service returned invalid JSON response') from e
        if logging.getLogger().level <= logging.DEBUG:
            logging.debug('<<< [RS] %s: %s', endpoint, json.dumps(rs_body, sort_keys=True, indent=4))
        return rs_body

    if content_type.startswith('application/json'):
        try:
            failure = rs.json()
        except ValueError as e:
            raise SharingApiError(TRANSPORT_ERROR, 'Sharing service returned invalid JSON error response') from e
        logging.debug('<<< Response Error: [%s]', failure)
        if not isinstance(failure, dict):
            failure = {}
        result_code = failure.get('serverErrorCode') or (NOT_FOUND if rs.status_code == 404 else rs.status_code)
        raise_api_error(result_code, failure.get('reason') or rs.reason)
    if logging.getLogger().level <= logging.DEBUG:
        if rs.text:
            logging.debug('<<< Response Content: [%s]', rs.text)
        else:
            logging.debug('<<< HTTP Status: [%s]  Reason: [%s]', rs.status_code, rs.reason)
    raise SharingApiError(rs.status_code, rs.reason)


def modify_records(context, operations, atomic=True):
    # type: (RestApiContext, List[dict], bool) -> List[dict]
    rq = {
        'operations': operations,
        'atomic': atomic
    }
    rs = execute_rest(context, 'records/modify', rq)
    return [check_record_error(x) for x in rs.get('records') or []]


class RestSharingService(RemoteSharingService):
    """Sharing service backed by the CloudKit style web services API.

    Every call is a blocking ``requests`` round trip, so each one runs in a
    worker thread and the caller's event loop is never blocked.
    """

    def __init__(self, context):    # type: (RestApiContext) -> None
        self.context = context

    async def create_records(self, records, policy=SavePolicy.ALL_KEYS):
        operation_type = OPERATION_TYPES[policy]
        operations = [{'operationType': operation_type, 'record': x.to_dict()} for x in records]
        try:
            rs_records = await asyncio.to_thread(modify_records, self.context, operations)
        except SharingApiError as e:
            return ModifyResult.failure(e)
        return ModifyResult.success(rec_mod.load_record(x) for x in rs_records)

    async def accept_invitation(self, metadata):    # type: (InvitationMetadata) -> ShareRecord
        rq = {'shares': [metadata.share_id.to_dict()]}
        rs = await asyncio.to_thread(execute_rest, self.context, 'shares/accept', rq)
        shares = [check_record_error(x) for x in rs.get('shares') or []]
        if not shares:
            raise SharingApiError('invalid_response', 'Accepted share is missing from the response')
        return rec_mod.load_share(shares[0])

    async def list_invitation_metadata(self):    # type: () -> List[InvitationMetadata]
        rs = await asyncio.to_thread(execute_rest, self.context, 'shares/metadata', {})
        result = []
        for md in rs.get('metadata') or []:
            try:
                result.append(InvitationMetadata.load(md))
            except ValueError as e:
                logging.debug('Skipping invitation metadata: %s', e)
        return result

    async def delete_record(self, record_id):    # type: (RecordId) -> None
        operations = [{'operationType': 'forceDelete', 'record': record_id.to_dict()}]
        await asyncio.to_thread(modify_records, self.context, operations)

    async def save_record(self, record):    # type: (CloudRecord) -> CloudRecord
        operations = [{'operationType': OPERATION_TYPES[SavePolicy.IF_SERVER_RECORD_UNCHANGED],
                       'record': record.to_dict()}]
        rs_records = await asyncio.to_thread(modify_records, self.context, operations)
        if not rs_records:
            raise SharingApiError('invalid_response', 'Saved record is missing from the response')
        return rec_mod.load_record(rs_records[0])

    async def fetch_record(self, record_id):    # type: (RecordId) -> CloudRecord
        rq = {'records': [record_id.to_dict()]}
        rs = await asyncio.to_thread(execute_rest, self.context, 'records/lookup', rq)
        rs_records = rs.get('records') or []
        if not rs_records:
            raise RecordNotFoundError(f'Record "{record_id.record_name}" not found')
        return rec_mod.load_record(check_record_error(rs_records[0]))


def sharing_service(params):    # type: (SharingParams) -> RestSharingService
    return RestSharingService(params.rest_context)
