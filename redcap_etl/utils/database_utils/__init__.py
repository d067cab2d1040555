from typing import Any

from ..schema_utils.lookup_table import LookupTable
from ..schema_utils.table import Row, Table

DBTYPE_CSV = "CSV"
DBTYPE_SQLITE = "SQLite"
DBTYPE_MYSQL = "MySQL"
DBTYPE_POSTGRESQL = "PostgreSQL"
DBTYPE_SQLSERVER = "SQLServer"
DB_TYPES = [DBTYPE_CSV, DBTYPE_SQLITE, DBTYPE_MYSQL, DBTYPE_POSTGRESQL, DBTYPE_SQLSERVER]

CONNECTION_STRING_SEPARATOR = ":"


class DbConnection:
    def __init__(self, db_string: str, table_prefix: str = "", label_view_suffix: str = "_label_view"):
        """
        Base class for connections to the databases that transformed data is loaded into.

        Args:
            db_string (str): The connection string, without the database type.
            table_prefix (str, optional): Prefix used for table names. Defaults to "".
            label_view_suffix (str, optional): Suffix appended to a table name for its label view.
                Defaults to "_label_view".
        """
        self.db_string = db_string
        self.table_prefix = table_prefix
        self.label_view_suffix = label_view_suffix

    def replace_table(self, table: Table) -> None:
        """Drop the table (if it exists) and create it again with no rows."""
        self.drop_table(table, if_exists=True)
        self.create_table(table)

    def drop_table(self, table: Table, if_exists: bool = False) -> None:
        raise NotImplementedError

    def create_table(self, table: Table, if_not_exists: bool = False) -> None:
        raise NotImplementedError

    def replace_lookup_view(self, table: Table, lookup_table: LookupTable) -> None:
        """Create (or replace) the view of a table that has labels in place of multiple choice values."""
        raise NotImplementedError

    def add_primary_key_constraint(self, table: Table) -> None:
        raise NotImplementedError

    def add_foreign_key_constraint(self, table: Table) -> None:
        raise NotImplementedError

    def store_rows(self, table: Table) -> None:
        """Store all the in-memory rows of a table."""
        if table.get_num_rows() > 0:
            self.insert_rows(table, table.get_rows())

    def insert_rows(self, table: Table, rows: list[Row]) -> None:
        raise NotImplementedError

    def process_queries(self, queries: str) -> None:
        raise NotImplementedError

    def process_query_file(self, query_file: str) -> None:
        raise NotImplementedError

    @staticmethod
    def get_row_values(row: Row, table: Table) -> list[Any]:
        """Get the values of a row, in the order of the table's fields."""
        data = row.get_data()
        return [data.get(field.db_name, "") for field in table.get_all_fields()]
