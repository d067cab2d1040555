from enum import IntEnum
from typing import Optional


class ErrorCode(IntEnum):
    """Error codes for errors raised by the REDCap API client."""
    INVALID_ARGUMENT = 1
    TOO_MANY_ARGUMENTS = 2
    INVALID_URL = 3
    CA_CERTIFICATE_FILE_NOT_FOUND = 4
    CA_CERTIFICATE_FILE_UNREADABLE = 5
    CONNECTION_ERROR = 6
    REDCAP_API_ERROR = 7
    JSON_ERROR = 8
    OUTPUT_FILE_ERROR = 9
    INPUT_FILE_NOT_FOUND = 10
    INPUT_FILE_UNREADABLE = 11
    INPUT_FILE_ERROR = 12


class EtlErrorCode(IntEnum):
    """Error codes for errors raised while running an ETL task."""
    DATABASE_ERROR = 1
    FILE_ERROR = 2
    INPUT_ERROR = 3
    PHPCAP_ERROR = 4


class RedCapError(Exception):
    def __init__(
            self,
            message: str,
            code: ErrorCode,
            connection_error_number: Optional[int] = None,
            http_status_code: Optional[int] = None
    ):
        """
        Error raised by the REDCap API client.

        Args:
            message (str): Description of the error.
            code (ErrorCode): The type of error.
            connection_error_number (Optional[int]): The OS level error number for connection errors.
            http_status_code (Optional[int]): The HTTP status code for errors caused by an HTTP response.
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.connection_error_number = connection_error_number
        self.http_status_code = http_status_code


class EtlError(Exception):
    def __init__(self, message: str, code: EtlErrorCode):
        """
        Error raised by the ETL process.

        Args:
            message (str): Description of the error.
            code (EtlErrorCode): The type of error.
        """
        super().__init__(message)
        self.message = message
        self.code = code
