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

NOT_FOUND = 'NOT_FOUND'
TRANSPORT_ERROR = 'transport_error'
UNKNOWN_RESULT = 'unknown_result'


class Error(Exception):
    """Base class for exceptions in this module."""
    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def __str__(self):
        return self.message or ''


class SharingApiError(Error):
    """Exception raised when the sharing service rejects or fails a request
    """

    def __init__(self, result_code, message):
        super().__init__(message)
        self.result_code = result_code

    def __repr__(self):
        return f'{type(self).__name__}({self.result_code!r}, {self.message!r})'


class RecordNotFoundError(SharingApiError):
    def __init__(self, message='Record not found'):
        super().__init__(NOT_FOUND, message)


class UnknownResultError(Error):
    """Raised when the service reports a result the client does not recognize"""
    def __init__(self, message='Unknown result type'):
        super().__init__(message)
        self.result_code = UNKNOWN_RESULT


class ConfigError(Error):
    pass


def error_message(e):    # type: (BaseException) -> str
    if isinstance(e, Error):
        return e.message or ''
    return str(e)
