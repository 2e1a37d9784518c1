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
import logging
from typing import Callable, Optional

from .error import error_message
from .records import ShareRecord


class SharingUIPresenter(abc.ABC):
    """Shows the platform sharing dialog for a share.

    A presenter calls exactly one terminal method of the delegate per session:
    ``did_save_share``, ``failed_to_save_share`` or ``did_stop_sharing``.
    """

    @abc.abstractmethod
    def present(self, share, delegate):    # type: (ShareRecord, SharingSessionDelegate) -> None
        pass


class SharingSessionDelegate:
    def __init__(self, share, item_title, on_saved, on_failed, on_stopped, on_dismiss=None):
        # type: (ShareRecord, str, Callable[[ShareRecord], None], Callable[[str], None], Callable[[], None], Optional[Callable[[], None]]) -> None
        self.share = share
        self._item_title = item_title
        self._on_saved = on_saved
        self._on_failed = on_failed
        self._on_stopped = on_stopped
        self._on_dismiss = on_dismiss
        self.finished = False

    def item_title(self):    # type: () -> str
        return self._item_title

    def _finish(self, callback, *args):
        if self.finished:
            logging.warning('Sharing session for "%s" is already finished', self.share.record_id.record_name)
            return
        self.finished = True
        callback(*args)
        if self._on_dismiss:
            self._on_dismiss()

    def did_save_share(self):
        logging.info('Share saved successfully')
        self._finish(self._on_saved, self.share)

    def failed_to_save_share(self, error):    # type: (BaseException) -> None
        logging.error('Failed to save share: %s', error_message(error))
        self._finish(self._on_failed, error_message(error))

    def did_stop_sharing(self):
        logging.info('Stopped sharing')
        self._finish(self._on_stopped)
