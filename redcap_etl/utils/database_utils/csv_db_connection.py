import logging
import os
from typing import Any, Optional

from .. import CHECKBOX_SEPARATOR
from ..csv_util import Csv
from ..exceptions import EtlError, EtlErrorCode
from ..schema_utils import FieldType
from ..schema_utils.lookup_table import LookupTable
from ..schema_utils.table import Field, Row, Table
from . import DBTYPE_CSV, DbConnection

FILE_EXTENSION = ".csv"
UNQUOTED_FIELD_TYPES = [FieldType.INT, FieldType.FLOAT, FieldType.CHECKBOX, FieldType.DATE, FieldType.DATETIME]


class CsvDbConnection(DbConnection):
    """A "database" that is a directory with one CSV file per table (and per label view)."""

    def __init__(self, db_string: str, table_prefix: str = "", label_view_suffix: str = "_label_view"):
        super().__init__(db_string, table_prefix, label_view_suffix)
        self.directory = db_string
        self.lookup_table: Optional[LookupTable] = None
        if not os.path.isdir(self.directory):
            raise EtlError(f'CSV directory "{self.directory}" does not exist.', EtlErrorCode.INPUT_ERROR)

    def get_id(self) -> str:
        return f"{DBTYPE_CSV}:{self.db_string}"

    def get_table_file(self, table: Table) -> str:
        return os.path.join(self.directory, f"{table.name}{FILE_EXTENSION}")

    def get_label_view_file(self, table: Table) -> str:
        return os.path.join(self.directory, f"{table.name}{self.label_view_suffix}{FILE_EXTENSION}")

    def drop_table(self, table: Table, if_exists: bool = False) -> None:
        file_path = self.get_table_file(table)
        if not if_exists or os.path.exists(file_path):
            os.remove(file_path)
        label_view_file = self.get_label_view_file(table)
        if os.path.exists(label_view_file):
            os.remove(label_view_file)

    def create_table(self, table: Table, if_not_exists: bool = False) -> None:
        file_path = self.get_table_file(table)
        if if_not_exists and os.path.exists(file_path):
            return
        Csv(file_path=file_path).create_csv_with_header(self._get_header(table))

    @staticmethod
    def _get_header(table: Table) -> list[str]:
        return [field.db_name for field in table.get_all_fields()]

    def add_primary_key_constraint(self, table: Table) -> None:
        logging.debug(f"Primary keys are not supported for CSV files, skipping table '{table.name}'")

    def add_foreign_key_constraint(self, table: Table) -> None:
        logging.debug(f"Foreign keys are not supported for CSV files, skipping table '{table.name}'")

    def replace_lookup_view(self, table: Table, lookup_table: LookupTable) -> None:
        if self.lookup_table is None:
            self.lookup_table = lookup_table
        Csv(file_path=self.get_label_view_file(table)).create_csv_with_header(self._get_header(table))

    @staticmethod
    def _get_raw_columns(fields: list[Field]) -> set[int]:
        """Indexes of the numeric, checkbox and date columns, which are written unquoted."""
        return {index for index, field in enumerate(fields) if field.type in UNQUOTED_FIELD_TYPES}

    def _get_label(self, table: Table, field: Field, value: Any) -> Any:
        if self.lookup_table is None:
            return value
        if CHECKBOX_SEPARATOR in field.db_name:
            if str(value) == "1":
                checkbox_value = field.db_name.split(CHECKBOX_SEPARATOR, 1)[1]
                return self.lookup_table.get_label(table.name, field.uses_lookup, checkbox_value)  # type: ignore[arg-type]
            return "0"
        return self.lookup_table.get_label(table.name, field.uses_lookup, value)  # type: ignore[arg-type]

    def insert_rows(self, table: Table, rows: list[Row]) -> None:
        fields = table.get_all_fields()
        raw_columns = self._get_raw_columns(fields)
        values = []
        label_values = []
        for row in rows:
            data = row.get_data()
            row_values = [data.get(field.db_name, "") for field in fields]
            values.append(row_values)
            if table.uses_lookup:
                label_values.append([
                    self._get_label(table, field, value) if field.uses_lookup else value
                    for field, value in zip(fields, row_values)
                ])
        Csv(file_path=self.get_table_file(table)).append_rows(values, raw_columns=raw_columns)
        if table.uses_lookup and os.path.exists(self.get_label_view_file(table)):
            Csv(file_path=self.get_label_view_file(table)).append_rows(label_values, raw_columns=raw_columns)

    def process_queries(self, queries: str) -> None:
        raise EtlError("Processing queries is not supported for CSV files", EtlErrorCode.INPUT_ERROR)

    def process_query_file(self, query_file: str) -> None:
        raise EtlError("Processing a query file is not supported for CSV files", EtlErrorCode.INPUT_ERROR)
