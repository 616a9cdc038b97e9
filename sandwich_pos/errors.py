"""
Data Access Errors
Exception taxonomy shared by the backends, the facade and the cache layer
"""


class DataAccessError(Exception):
    """Base class for every data access failure"""


class NetworkUnavailableError(DataAccessError):
    """The remote backend could not be reached (connection error, timeout, 5xx)"""


class BackendRejectedError(DataAccessError):
    """The backend refused the operation; retrying would repeat the rejection"""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(DataAccessError):
    """Update or delete targeted an id that does not exist"""

    def __init__(self, table, record_id):
        super().__init__(f"Record with id {record_id} not found in {table}")
        self.table = table
        self.record_id = record_id


class StorageUnavailableError(DataAccessError):
    """The local on-device store could not be opened or written"""


class CacheInstallError(Exception):
    """Installing the static asset cache failed; nothing was written"""
