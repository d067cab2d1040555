import csv
import logging
from typing import Any, Optional


class Csv:
    def __init__(self, file_path: str, delimiter: str = ','):
        """
        Initialize the Csv class.

        Args:
            file_path (str): The path to the CSV file.
            delimiter (str, optional): The delimiter to use in the CSV file. Defaults to ','.
        """
        self.delimiter = delimiter
        self.file_path = file_path

    def create_csv_with_header(self, header_list: list[str]) -> str:
        """
        Create (or replace) a CSV file that contains only a header row. All header values are quoted.

        Args:
            header_list (list[str]): The column names.

        Returns:
            str: The path to the created CSV file.
        """
        logging.info(f'Creating {self.file_path}')
        with open(self.file_path, 'w', newline='') as f:
            writer = csv.writer(f, delimiter=self.delimiter, quoting=csv.QUOTE_ALL)
            writer.writerow(header_list)
        return self.file_path

    def append_rows(self, list_of_lists: list[list[Any]], raw_columns: Optional[set[int]] = None) -> str:
        """
        Append rows to a CSV file. Strings are quoted and numbers are written as is.

        Args:
            list_of_lists (list[list[Any]]): The rows to append.
            raw_columns (Optional[set[int]], optional): Indexes of columns whose values are written
                unchanged, without quotes, unless a value contains the delimiter, a quote or a line break.
                Defaults to None.

        Returns:
            str: The path to the CSV file.
        """
        if not raw_columns:
            with open(self.file_path, 'a', newline='') as f:
                writer = csv.writer(f, delimiter=self.delimiter, quoting=csv.QUOTE_NONNUMERIC)
                writer.writerows(list_of_lists)
            return self.file_path

        with open(self.file_path, 'a', newline='') as f:
            for row in list_of_lists:
                line = self.delimiter.join(
                    self._format_raw_value(value) if index in raw_columns else self._quote(value)
                    for index, value in enumerate(row)
                )
                f.write(line + '\r\n')
        return self.file_path

    @staticmethod
    def _quote(value: Any) -> str:
        text = "" if value is None else str(value)
        return '"' + text.replace('"', '""') + '"'

    def _format_raw_value(self, value: Any) -> str:
        text = "" if value is None else str(value)
        if any(character in text for character in (self.delimiter, '"', '\r', '\n')):
            return self._quote(text)
        return text

    def create_list_of_dicts_from_csv(
            self, expected_headers: Optional[list[str]] = None,
            allow_extra_headers: bool = False
    ) -> list[dict]:
        """
        Create a list of dictionaries from a CSV file.

        Args:
            expected_headers (Optional[list[str]], optional): The list of expected headers. If provided
                will check that all headers are present in the CSV file. Defaults to None.
            allow_extra_headers (bool, optional): Whether to allow extra headers in the CSV file.
                Only used if expected_headers is provided. Defaults to False.

        Returns:
            list[dict]: The list of dictionaries created from the CSV file.

        Raises:
            ValueError: If the expected headers are not found in the CSV file.
        """
        with open(self.file_path, newline='') as f:
            dict_reader = csv.DictReader(f, delimiter=self.delimiter)
            if expected_headers:
                match = True
                csv_headers = dict_reader.fieldnames or []
                extra_headers = set(csv_headers) - set(expected_headers)
                missing_headers = set(expected_headers) - set(csv_headers)
                if extra_headers:
                    logging.warning(f"Extra headers found in csv: {','.join(extra_headers)}")
                    if not allow_extra_headers:
                        match = False
                if missing_headers:
                    logging.error(f"Missing expected headers: {','.join(missing_headers)}")
                    match = False
                if not match:
                    raise ValueError(f"Expected headers not in {self.file_path}")
            return [dict(row) for row in dict_reader]
