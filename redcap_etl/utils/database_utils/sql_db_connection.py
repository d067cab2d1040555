import logging
from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import (
    CHAR,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Text,
    case,
    cast,
    create_engine,
    literal,
    select,
    text,
)
from sqlalchemy import Table as SqlTable
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError

from .. import ARG_DEFAULTS, CHECKBOX_SEPARATOR
from ..exceptions import EtlError, EtlErrorCode, RedCapError
from ..file_util import FileUtil
from ..schema_utils import FieldType
from ..schema_utils.lookup_table import LookupTable
from ..schema_utils.table import Field, Row, Table
from . import (
    CONNECTION_STRING_SEPARATOR,
    DBTYPE_MYSQL,
    DBTYPE_POSTGRESQL,
    DBTYPE_SQLITE,
    DBTYPE_SQLSERVER,
    DbConnection,
)

DRIVER_NAMES = {
    DBTYPE_MYSQL: "mysql+pymysql",
    DBTYPE_POSTGRESQL: "postgresql+psycopg2",
    DBTYPE_SQLSERVER: "mssql+pyodbc",
}
DEFAULT_PORTS = {
    DBTYPE_MYSQL: 3306,
    DBTYPE_POSTGRESQL: 5432,
    DBTYPE_SQLSERVER: 1433,
}
SQLSERVER_ODBC_DRIVER = "ODBC Driver 18 for SQL Server"


class SqlDbConnection(DbConnection):
    def __init__(
            self,
            db_type: str,
            db_string: str,
            ca_cert_file: Optional[str] = None,
            table_prefix: str = "",
            label_view_suffix: str = "_label_view",
            insert_batch_size: int = ARG_DEFAULTS["db_insert_batch_size"]
    ):
        """
        Connection to a relational database, through SQLAlchemy.

        Args:
            db_type (str): One of SQLite, MySQL, PostgreSQL or SQLServer.
            db_string (str): For SQLite, the database file. For the other types,
                host:user:password:database with an optional :port.
            ca_cert_file (Optional[str], optional): Certificate authority file for SSL connections.
                Defaults to None.
            table_prefix (str, optional): Prefix used for table names. Defaults to "".
            label_view_suffix (str, optional): Suffix for label view names. Defaults to "_label_view".
            insert_batch_size (int, optional): Maximum rows per insert statement. Defaults to 100.

        Raises:
            EtlError: INPUT_ERROR for a badly formatted connection string.
        """
        super().__init__(db_string, table_prefix, label_view_suffix)
        self.db_type = db_type
        self.ca_cert_file = ca_cert_file
        self.insert_batch_size = insert_batch_size
        self.metadata = MetaData()
        self.sql_tables: dict[str, SqlTable] = {}
        self.engine = self._create_engine()

    def _create_engine(self) -> Engine:
        if self.db_type == DBTYPE_SQLITE:
            return create_engine(f"sqlite:///{self.db_string}")

        values = self.db_string.split(CONNECTION_STRING_SEPARATOR)
        if len(values) not in (4, 5):
            raise EtlError(
                f"The {self.db_type} connection string should have the format"
                " host:user:password:database or host:user:password:database:port.",
                EtlErrorCode.INPUT_ERROR
            )
        host, username, password, database = values[:4]
        port = DEFAULT_PORTS[self.db_type]
        if len(values) == 5:
            if not values[4].isdigit():
                raise EtlError(f'Invalid database port "{values[4]}".', EtlErrorCode.INPUT_ERROR)
            port = int(values[4])

        query: dict[str, str] = {}
        connect_args: dict[str, Any] = {}
        if self.db_type == DBTYPE_SQLSERVER:
            query["driver"] = SQLSERVER_ODBC_DRIVER
        if self.ca_cert_file:
            if self.db_type == DBTYPE_MYSQL:
                connect_args["ssl"] = {"ca": self.ca_cert_file}
            elif self.db_type == DBTYPE_POSTGRESQL:
                connect_args["sslrootcert"] = self.ca_cert_file
                connect_args["sslmode"] = "verify-full"
        url = URL.create(
            drivername=DRIVER_NAMES[self.db_type],
            username=username,
            password=password,
            host=host,
            port=port,
            database=database,
            query=query,
        )
        logging.info(f"Connecting to {self.db_type} database '{database}' on {host}:{port}")
        return create_engine(url, connect_args=connect_args)

    def get_id(self) -> str:
        if self.db_type == DBTYPE_SQLITE:
            return f"{self.db_type}:{self.db_string}"
        # Leave out the password
        values = self.db_string.split(CONNECTION_STRING_SEPARATOR)
        return f"{self.db_type}:{values[0]}:{values[3]}"

    def _quote(self, name: str) -> str:
        return self.engine.dialect.identifier_preparer.quote(name)

    @staticmethod
    def _get_column_type(field: Field) -> Any:
        if field.type in (FieldType.INT, FieldType.CHECKBOX):
            return Integer()
        if field.type == FieldType.FLOAT:
            return Float()
        if field.type == FieldType.CHAR:
            return CHAR(field.size or 1)
        if field.type == FieldType.VARCHAR:
            return String(field.size or 255)
        if field.type == FieldType.DATE:
            return Date()
        if field.type == FieldType.DATETIME:
            return DateTime()
        return Text()

    def _get_sql_table(self, table: Table) -> SqlTable:
        if table.name not in self.sql_tables:
            columns = [
                Column(
                    field.db_name,
                    self._get_column_type(field),
                    nullable=not (field is table.primary and table.has_unique_key)
                )
                for field in table.get_all_fields()
            ]
            self.sql_tables[table.name] = SqlTable(table.name, self.metadata, *columns)
        return self.sql_tables[table.name]

    def _execute(self, statements: list[Any], error_context: str) -> None:
        try:
            with self.engine.begin() as connection:
                for statement in statements:
                    connection.execute(statement)
        except SQLAlchemyError as e:
            raise EtlError(f"Database error {error_context}: {e}", EtlErrorCode.DATABASE_ERROR) from e

    def _drop_label_view(self, table: Table) -> None:
        view_name = self._quote(f"{table.name}{self.label_view_suffix}")
        self._execute([text(f"DROP VIEW IF EXISTS {view_name}")], f"dropping label view for table '{table.name}'")

    def drop_table(self, table: Table, if_exists: bool = False) -> None:
        self._drop_label_view(table)
        exists = "IF EXISTS " if if_exists else ""
        self._execute([text(f"DROP TABLE {exists}{self._quote(table.name)}")], f"dropping table '{table.name}'")
        sql_table = self.sql_tables.pop(table.name, None)
        if sql_table is not None:
            self.metadata.remove(sql_table)

    def create_table(self, table: Table, if_not_exists: bool = False) -> None:
        sql_table = self._get_sql_table(table)
        try:
            sql_table.create(self.engine, checkfirst=if_not_exists)
        except SQLAlchemyError as e:
            raise EtlError(f"Database error creating table '{table.name}': {e}", EtlErrorCode.DATABASE_ERROR) from e
        logging.debug(f"Created table '{table.name}'")

    def add_primary_key_constraint(self, table: Table) -> None:
        if not table.has_unique_key:
            return
        if self.db_type == DBTYPE_SQLITE:
            logging.debug(f"Adding primary keys to existing tables is not supported for SQLite ('{table.name}')")
            return
        query = f"ALTER TABLE {self._quote(table.name)} ADD PRIMARY KEY ({self._quote(table.primary.db_name)})"
        self._execute([text(query)], f"adding primary key to table '{table.name}'")

    def add_foreign_key_constraint(self, table: Table) -> None:
        if table.foreign is None or not isinstance(table.parent, Table):
            return
        if self.db_type == DBTYPE_SQLITE:
            logging.debug(f"Adding foreign keys to existing tables is not supported for SQLite ('{table.name}')")
            return
        query = (
            f"ALTER TABLE {self._quote(table.name)} ADD FOREIGN KEY ({self._quote(table.foreign.db_name)})"
            f" REFERENCES {self._quote(table.parent.name)}({self._quote(table.parent.primary.db_name)})"
        )
        self._execute([text(query)], f"adding foreign key to table '{table.name}'")

    def replace_lookup_view(self, table: Table, lookup_table: LookupTable) -> None:
        sql_table = self._get_sql_table(table)
        selects = []
        for field in table.get_all_fields():
            column = sql_table.c[field.db_name]
            if not field.uses_lookup:
                selects.append(column)
            elif CHECKBOX_SEPARATOR in field.db_name:
                checkbox_value = field.db_name.split(CHECKBOX_SEPARATOR, 1)[1]
                label = lookup_table.get_label(table.name, field.uses_lookup, checkbox_value)
                selects.append(
                    case((column == 1, literal(label, String())), else_=literal("0", String())).label(field.db_name)
                )
            else:
                value_label_map = lookup_table.get_value_label_map(table.name, field.uses_lookup)
                if value_label_map:
                    whens = [
                        (cast(column, String()) == literal(value, String()), literal(label, String()))
                        for value, label in value_label_map.items()
                    ]
                    selects.append(case(*whens).label(field.db_name))
                else:
                    selects.append(column)

        query = select(*selects).select_from(sql_table)
        compiled_query = query.compile(self.engine, compile_kwargs={"literal_binds": True})
        view_name = self._quote(f"{table.name}{self.label_view_suffix}")
        self._drop_label_view(table)
        self._execute(
            [text(f"CREATE VIEW {view_name} AS {compiled_query}")], f"creating label view for table '{table.name}'"
        )

    @staticmethod
    def _convert_value(field: Field, value: Any) -> Any:
        if value is None:
            return None
        if field.type in (FieldType.INT, FieldType.CHECKBOX, FieldType.FLOAT):
            if isinstance(value, str):
                if value.strip() == "":
                    return None
                try:
                    return float(value) if field.type == FieldType.FLOAT else int(value)
                except ValueError:
                    return value
            return value
        if field.type == FieldType.DATE:
            if isinstance(value, date) or value == "":
                return value or None
            return date.fromisoformat(value[:10])
        if field.type == FieldType.DATETIME:
            if isinstance(value, datetime) or value == "":
                return value or None
            return datetime.fromisoformat(value)
        return value

    def insert_rows(self, table: Table, rows: list[Row]) -> None:
        sql_table = self._get_sql_table(table)
        fields = table.get_all_fields()
        try:
            values = [
                {field.db_name: self._convert_value(field, row.get_data().get(field.db_name)) for field in fields}
                for row in rows
            ]
        except ValueError as e:
            raise EtlError(f"Invalid value for table '{table.name}': {e}", EtlErrorCode.DATABASE_ERROR) from e

        try:
            with self.engine.begin() as connection:
                for start in range(0, len(values), self.insert_batch_size):
                    connection.execute(sql_table.insert(), values[start:start + self.insert_batch_size])
        except SQLAlchemyError as e:
            raise EtlError(
                f"Database error inserting rows into table '{table.name}': {e}", EtlErrorCode.DATABASE_ERROR
            ) from e

    @staticmethod
    def split_queries(queries: str) -> list[str]:
        """Split SQL text into statements at semicolons. Semicolons inside string literals are not supported."""
        return [query.strip() for query in queries.split(";") if query.strip()]

    def process_queries(self, queries: str) -> None:
        statements = self.split_queries(queries)
        logging.info(f"Running {len(statements)} SQL statements")
        self._execute([text(query) for query in statements], "processing queries")

    def process_query_file(self, query_file: str) -> None:
        try:
            queries = FileUtil.file_to_string(query_file)
        except RedCapError as e:
            raise EtlError(f'Could not access query file "{query_file}": {e.message}', EtlErrorCode.FILE_ERROR) from e
        self.process_queries(queries)

    def get_data(self, table_name: str) -> list[dict]:
        """Get all the rows of a table or view, as dicts."""
        try:
            with self.engine.connect() as connection:
                result = connection.execute(text(f"SELECT * FROM {self._quote(table_name)}"))
                return [dict(row._mapping) for row in result]
        except SQLAlchemyError as e:
            raise EtlError(f"Database error reading table '{table_name}': {e}", EtlErrorCode.DATABASE_ERROR) from e
