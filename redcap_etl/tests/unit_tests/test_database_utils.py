import pytest

from redcap_etl.utils.database_utils import DBTYPE_SQLITE
from redcap_etl.utils.database_utils.csv_db_connection import CsvDbConnection
from redcap_etl.utils.database_utils.db_connection_factory import create_db_connection, parse_connection_string
from redcap_etl.utils.database_utils.sql_db_connection import SqlDbConnection
from redcap_etl.utils.exceptions import EtlError, EtlErrorCode
from redcap_etl.utils.schema_utils import FieldType, FieldTypeSpecifier, RowsType
from redcap_etl.utils.schema_utils.table import Field, Row, Table


def create_table():
    table = Table("Visits", "visits_id", FieldTypeSpecifier(type=FieldType.INT), [RowsType.ROOT])
    table.add_field(Field("record_id", FieldType.VARCHAR, 255))
    table.add_field(Field("visit_date", FieldType.DATE))
    table.add_field(Field("weight", FieldType.FLOAT))
    table.add_field(Field("pulse", FieldType.INT))
    for primary_key, values in enumerate([("1", "2024-01-31", "60.5", "70"), ("2", "", "", "")], start=1):
        row = Row(table)
        for field, value in zip(table.get_fields(), values):
            row.add_value(field.db_name, value)
        row.add_value("visits_id", primary_key)
        table.add_row(row)
    return table


class TestDbConnectionFactory:

    def test_parse_connection_string(self):
        assert parse_connection_string("MySQL:localhost:etl:secret:redcap") == ("MySQL", "localhost:etl:secret:redcap")
        assert parse_connection_string(" CSV : /tmp/out ") == ("CSV", "/tmp/out")

    def test_create_csv_connection(self, tmp_path):
        db_connection = create_db_connection(f"CSV:{tmp_path}", table_prefix="etl_")
        assert isinstance(db_connection, CsvDbConnection)
        assert db_connection.table_prefix == "etl_"
        assert db_connection.get_id() == f"CSV:{tmp_path}"

    def test_csv_directory_not_found(self, tmp_path):
        with pytest.raises(EtlError) as e:
            create_db_connection(f"CSV:{tmp_path.joinpath('missing')}")
        assert e.value.code == EtlErrorCode.INPUT_ERROR

    def test_create_sqlite_connection(self, tmp_path):
        db_file = tmp_path.joinpath("etl.db")
        db_connection = create_db_connection(f"SQLite:{db_file}")
        assert isinstance(db_connection, SqlDbConnection)
        assert db_connection.db_type == DBTYPE_SQLITE
        assert db_connection.get_id() == f"SQLite:{db_file}"

    def test_invalid_database_type(self):
        with pytest.raises(EtlError) as e:
            create_db_connection("Oracle:localhost:etl:secret:redcap")
        assert e.value.code == EtlErrorCode.INPUT_ERROR
        assert 'Invalid database type: "Oracle"' in e.value.message

    @pytest.mark.parametrize(
        "connection_string,message",
        [
            ("MySQL:localhost:etl", "connection string should have the format"),
            ("PostgreSQL:localhost:etl:secret:redcap:port", 'Invalid database port "port".'),
        ]
    )
    def test_invalid_connection_string(self, connection_string, message):
        with pytest.raises(EtlError) as e:
            create_db_connection(connection_string)
        assert message in e.value.message


class TestCsvDbConnection:

    @pytest.fixture(autouse=True)
    def _get_connection(self, tmp_path):
        self.tmp_path = tmp_path
        self.db_connection = CsvDbConnection(str(tmp_path))

    def test_create_table_and_store_rows(self):
        table = create_table()
        self.db_connection.replace_table(table)
        self.db_connection.store_rows(table)
        assert self.tmp_path.joinpath("Visits.csv").read_text() == (
            '"visits_id","record_id","visit_date","weight","pulse"\n'
            '1,"1",2024-01-31,60.5,70\n'
            '2,"2",,,\n'
        )

    def test_numeric_values_written_unchanged(self):
        table = create_table()
        table.empty_rows()
        values = [
            ("1", "12345678901234567890", "007"),
            ("2", "1.10", "-3"),
            ('say "hi", 3', "0.000001", "1,5"),
        ]
        for primary_key, (record_id, weight, pulse) in enumerate(values, start=1):
            row = Row(table)
            row.add_value("visits_id", primary_key)
            row.add_value("record_id", record_id)
            row.add_value("weight", weight)
            row.add_value("pulse", pulse)
            table.add_row(row)
        self.db_connection.replace_table(table)
        self.db_connection.store_rows(table)
        lines = self.tmp_path.joinpath("Visits.csv").read_text().splitlines()
        assert lines[1:] == [
            '1,"1",,12345678901234567890,007',
            '2,"2",,1.10,-3',
            '3,"say ""hi"", 3",,0.000001,"1,5"',
        ]

    def test_drop_missing_table(self):
        with pytest.raises(FileNotFoundError):
            self.db_connection.drop_table(create_table())
        self.db_connection.drop_table(create_table(), if_exists=True)

    def test_queries_not_supported(self):
        with pytest.raises(EtlError) as e:
            self.db_connection.process_queries("SELECT 1")
        assert e.value.code == EtlErrorCode.INPUT_ERROR


class TestSqlDbConnection:

    @pytest.fixture(autouse=True)
    def _get_connection(self, tmp_path):
        self.tmp_path = tmp_path
        self.db_connection = SqlDbConnection(DBTYPE_SQLITE, str(tmp_path.joinpath("etl.db")))

    def test_create_table_and_store_rows(self):
        table = create_table()
        self.db_connection.replace_table(table)
        self.db_connection.store_rows(table)
        rows = self.db_connection.get_data("Visits")
        assert rows == [
            {"visits_id": 1, "record_id": "1", "visit_date": "2024-01-31", "weight": 60.5, "pulse": 70},
            {"visits_id": 2, "record_id": "2", "visit_date": None, "weight": None, "pulse": None},
        ]

    def test_replace_table_removes_rows(self):
        table = create_table()
        self.db_connection.replace_table(table)
        self.db_connection.store_rows(table)
        self.db_connection.replace_table(table)
        assert self.db_connection.get_data("Visits") == []

    def test_invalid_value(self):
        table = create_table()
        table.get_rows()[0].add_value("visit_date", "01/31/2024")
        self.db_connection.replace_table(table)
        with pytest.raises(EtlError) as e:
            self.db_connection.store_rows(table)
        assert e.value.code == EtlErrorCode.DATABASE_ERROR

    def test_split_queries(self):
        assert SqlDbConnection.split_queries("DELETE FROM a;\n\nDELETE FROM b;  ") == ["DELETE FROM a", "DELETE FROM b"]

    def test_process_query_file(self):
        query_file = self.tmp_path.joinpath("post.sql")
        query_file.write_text("CREATE TABLE notes (note TEXT);\nINSERT INTO notes VALUES ('done');\n")
        self.db_connection.process_query_file(str(query_file))
        assert self.db_connection.get_data("notes") == [{"note": "done"}]

    def test_process_query_file_not_found(self):
        with pytest.raises(EtlError) as e:
            self.db_connection.process_query_file(str(self.tmp_path.joinpath("missing.sql")))
        assert e.value.code == EtlErrorCode.FILE_ERROR

    def test_query_error(self):
        with pytest.raises(EtlError) as e:
            self.db_connection.process_queries("DELETE FROM missing_table")
        assert e.value.code == EtlErrorCode.DATABASE_ERROR
        assert e.value.message.startswith("Database error processing queries:")
