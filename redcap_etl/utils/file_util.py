import os

from .exceptions import ErrorCode, RedCapError


class FileUtil:
    """Reading and writing of files used as API input and output."""

    @staticmethod
    def file_to_string(file_path: str) -> str:
        """
        Read the contents of a file.

        Args:
            file_path (str): The path of the file to read.

        Returns:
            str: The contents of the file.

        Raises:
            RedCapError: If the file does not exist, can't be read, or reading fails.
        """
        if not os.path.exists(file_path):
            raise RedCapError(f'The input file "{file_path}" could not be found.', ErrorCode.INPUT_FILE_NOT_FOUND)
        if not os.access(file_path, os.R_OK):
            raise RedCapError(f'The input file "{file_path}" was unreadable.', ErrorCode.INPUT_FILE_UNREADABLE)
        try:
            with open(file_path, "r") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise RedCapError(
                f'An error occurred in input file "{file_path}": {e}',
                ErrorCode.INPUT_FILE_ERROR
            ) from e

    @staticmethod
    def _write(file_path: str, contents: str, mode: str) -> int:
        try:
            with open(file_path, mode) as f:
                return f.write(contents)
        except OSError as e:
            raise RedCapError(
                f'An error occurred writing output file "{file_path}": {e}',
                ErrorCode.OUTPUT_FILE_ERROR
            ) from e

    @classmethod
    def write_string_to_file(cls, file_path: str, contents: str) -> int:
        """Write a string to a file, replacing any existing contents. Returns the number of characters written."""
        return cls._write(file_path, contents, "w")

    @classmethod
    def append_string_to_file(cls, file_path: str, contents: str) -> int:
        """Append a string to a file. Returns the number of characters written."""
        return cls._write(file_path, contents, "a")

    @staticmethod
    def write_bytes_to_file(file_path: str, contents: bytes) -> int:
        """Write binary contents, such as an exported PDF, to a file."""
        try:
            with open(file_path, "wb") as f:
                return f.write(contents)
        except OSError as e:
            raise RedCapError(
                f'An error occurred writing output file "{file_path}": {e}',
                ErrorCode.OUTPUT_FILE_ERROR
            ) from e
