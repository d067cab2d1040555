import logging
import os
from typing import Any, Optional, Union

import backoff
import requests

from . import ARG_DEFAULTS
from .exceptions import ErrorCode, RedCapError

POST = "POST"


class RunRequest:
    def __init__(
            self,
            url: str,
            ssl_verify: bool = False,
            ca_cert_file: Optional[str] = None,
            timeout: int = ARG_DEFAULTS["timeout"],
            connection_timeout: int = ARG_DEFAULTS["connection_timeout"],
            max_retries: int = ARG_DEFAULTS["max_retries"],
            max_backoff_time: int = ARG_DEFAULTS["max_backoff_time"]
    ):
        """
        Initialize the connection used for all calls to a REDCap API.

        Args:
            url (str): The URL of the REDCap API.
            ssl_verify (bool, optional): Whether the server's SSL certificate should be verified. Defaults to False.
            ca_cert_file (Optional[str], optional): Certificate authority file used for verification.
                Only used when ssl_verify is True. Defaults to None.
            timeout (int, optional): Seconds to wait for a response. Defaults to 1200.
            connection_timeout (int, optional): Seconds to wait for a connection. Defaults to 20.
            max_retries (int, optional): Maximum tries for calls that fail to connect. Defaults to 5.
            max_backoff_time (int, optional): Maximum seconds spent retrying. Defaults to 5 minutes.

        Raises:
            RedCapError: If the certificate authority file is missing or unreadable.
        """
        self.url = url
        self.ssl_verify = ssl_verify
        self.ca_cert_file = ca_cert_file
        self.timeout = timeout
        self.connection_timeout = connection_timeout
        self.max_retries = max_retries
        self.max_backoff_time = max_backoff_time
        self.last_content_type = ""
        if self.ssl_verify and self.ca_cert_file:
            self._check_ca_cert_file()

    def _check_ca_cert_file(self) -> None:
        if not os.path.exists(self.ca_cert_file):  # type: ignore[arg-type]
            raise RedCapError(
                f'The cert file "{self.ca_cert_file}" does not exist.',
                ErrorCode.CA_CERTIFICATE_FILE_NOT_FOUND
            )
        if not os.access(self.ca_cert_file, os.R_OK):  # type: ignore[arg-type]
            raise RedCapError(
                f'The cert file "{self.ca_cert_file}" exists, but cannot be read.',
                ErrorCode.CA_CERTIFICATE_FILE_UNREADABLE
            )

    def _get_verify(self) -> Union[bool, str]:
        if self.ssl_verify and self.ca_cert_file:
            return self.ca_cert_file
        return self.ssl_verify

    @staticmethod
    def _create_backoff_decorator(max_tries: int, factor: int, max_time: int) -> Any:
        """Create backoff decorator so we can pass in max_tries."""
        return backoff.on_exception(
            backoff.expo,
            (requests.exceptions.ConnectionError, requests.exceptions.Timeout),
            max_tries=max_tries,
            factor=factor,
            max_time=max_time
        )

    @staticmethod
    def _get_connection_error_number(exception: BaseException) -> Optional[int]:
        """Walk the exception chain looking for an OS level error number."""
        current: Optional[BaseException] = exception
        while current is not None:
            error_number = getattr(current, "errno", None)
            if isinstance(error_number, int):
                return error_number
            current = current.__cause__ or current.__context__
        return None

    def _check_response(self, response: requests.Response) -> None:
        if response.status_code == 301:
            location = response.headers.get("Location", "")
            raise RedCapError(
                f"The page for the specified URL ({self.url}) has moved to {location}. "
                "Please update your URL.",
                ErrorCode.INVALID_URL,
                http_status_code=response.status_code
            )
        if response.status_code == 404:
            raise RedCapError(
                f"The specified URL ({self.url}) appears to be incorrect. Nothing was found at this URL.",
                ErrorCode.INVALID_URL,
                http_status_code=response.status_code
            )

    def run_request(self, data: dict, files: Optional[dict] = None, factor: int = 15) -> requests.Response:
        """
        Run a form POST request against the REDCap API.

        Args:
            data (dict): The form data for the call.
            files (Optional[dict], optional): Files to upload as a multipart request. Defaults to None.
            factor (int, optional): Backoff factor in seconds. Defaults to 15.

        Returns:
            requests.Response: The response. REDCap reports API errors in the body, so non-2xx
                statuses other than 301 and 404 are returned unchanged.

        Raises:
            RedCapError: For connection failures and invalid URLs.
        """
        backoff_decorator = self._create_backoff_decorator(
            max_tries=self.max_retries,
            factor=factor,
            max_time=self.max_backoff_time
        )

        @backoff_decorator
        def _make_request() -> requests.Response:
            return requests.post(
                self.url,
                data=data,
                files=files,
                verify=self._get_verify(),
                timeout=(self.connection_timeout, self.timeout),
                allow_redirects=False
            )

        try:
            response = _make_request()
        except requests.exceptions.RequestException as e:
            logging.error(f"Unable to connect to {self.url}: {e}")
            raise RedCapError(
                str(e),
                ErrorCode.CONNECTION_ERROR,
                connection_error_number=self._get_connection_error_number(e)
            ) from e
        self._check_response(response)
        self.last_content_type = response.headers.get("Content-Type", "")
        return response

    def call(self, data: dict) -> str:
        """Make a call and return the body of the response as text."""
        return self.run_request(data=data).text

    def call_for_content(self, data: dict) -> tuple[bytes, str]:
        """Make a call and return the raw body along with its content type."""
        response = self.run_request(data=data)
        return response.content, self.last_content_type

    def call_with_file(self, data: dict, file_path: str) -> str:
        """Run POST request with one file uploaded as the 'file' form field."""
        with open(file_path, "rb") as f:
            response = self.run_request(data=data, files={"file": (os.path.basename(file_path), f)})
        return response.text
