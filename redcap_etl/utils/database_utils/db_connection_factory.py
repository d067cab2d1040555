from typing import Optional

from ..exceptions import EtlError, EtlErrorCode
from . import CONNECTION_STRING_SEPARATOR, DB_TYPES, DBTYPE_CSV, DbConnection
from .csv_db_connection import CsvDbConnection
from .sql_db_connection import SqlDbConnection


def parse_connection_string(connection_string: str) -> tuple[str, str]:
    """
    Split a database connection string like "MySQL:localhost:user:password:db" into
    the database type and the rest of the connection string.
    """
    db_type, _, db_string = connection_string.partition(CONNECTION_STRING_SEPARATOR)
    return db_type.strip(), db_string.strip()


def create_connection_string(db_type: str, db_string: str) -> str:
    return f"{db_type}{CONNECTION_STRING_SEPARATOR}{db_string}"


def create_db_connection(
        connection_string: str,
        table_prefix: str = "",
        label_view_suffix: str = "_label_view",
        ca_cert_file: Optional[str] = None
) -> DbConnection:
    """
    Create a database connection from a connection string.

    Args:
        connection_string (str): CSV:<directory>, SQLite:<file>, or
            <MySQL|PostgreSQL|SQLServer>:<host>:<user>:<password>:<database>[:<port>].
        table_prefix (str, optional): Prefix used for table names. Defaults to "".
        label_view_suffix (str, optional): Suffix for label views. Defaults to "_label_view".
        ca_cert_file (Optional[str], optional): Certificate authority file for SSL
            database connections. Defaults to None.

    Returns:
        DbConnection: The connection.

    Raises:
        EtlError: INPUT_ERROR for an unrecognized database type.
    """
    db_type, db_string = parse_connection_string(connection_string)
    if db_type == DBTYPE_CSV:
        return CsvDbConnection(db_string, table_prefix, label_view_suffix)
    if db_type in DB_TYPES:
        return SqlDbConnection(
            db_type,
            db_string,
            ca_cert_file=ca_cert_file,
            table_prefix=table_prefix,
            label_view_suffix=label_view_suffix
        )
    raise EtlError(
        f'Invalid database type: "{db_type}". Valid types are: CSV, SQLite, MySQL, PostgreSQL and SQLServer.',
        EtlErrorCode.INPUT_ERROR
    )
