from typing import Optional, TypeVar

from ..exceptions import EtlError, EtlErrorCode
from . import RowsType
from .lookup_table import LookupTable
from .metadata_table import MetadataTable
from .project_info_table import ProjectInfoTable
from .table import Table

DescriptionTable = TypeVar("DescriptionTable", MetadataTable, ProjectInfoTable)


class Schema:
    """The tables generated from the transformation rules, plus the tables that describe the project."""

    def __init__(self) -> None:
        self.tables: list[Table] = []
        self.root_tables: list[Table] = []
        self.lookup_table: Optional[LookupTable] = None
        self.metadata_table: Optional[MetadataTable] = None
        self.project_info_table: Optional[ProjectInfoTable] = None
        self.label_views = False
        self.label_view_suffix = ""

    def add_table(self, table: Table) -> None:
        self.tables.append(table)
        if RowsType.ROOT in table.rows_type:
            self.root_tables.append(table)

    def get_tables(self) -> list[Table]:
        return self.tables

    def get_root_tables(self) -> list[Table]:
        return self.root_tables

    def get_table(self, table_name: str) -> Optional[Table]:
        for table in self.tables:
            if table.name == table_name:
                return table
        return None

    @staticmethod
    def _get_depth(table: Table) -> int:
        depth = 0
        while isinstance(table.parent, Table):
            table = table.parent
            depth += 1
        return depth

    def get_tables_top_down(self) -> list[Table]:
        """Get the tables ordered so that each parent table comes before its children."""
        return sorted(self.tables, key=self._get_depth)

    def to_string(self, indent: int = 0) -> str:
        prefix = " " * indent
        lines = [
            f"{prefix}Number of tables: {len(self.tables)}\n",
            f"{prefix}Number of root tables: {len(self.root_tables)}\n",
            f"\n{prefix}Tables\n",
        ]
        lines.extend(table.to_string(indent + 4) + "\n" for table in self.tables)
        return "".join(lines)

    @staticmethod
    def _get_columns(table: Table) -> list[tuple]:
        return [(field.db_name, field.type, field.size) for field in table.get_all_fields()]

    def merge(self, schema: "Schema", db_id: str = "", task_name: str = "") -> "Schema":
        """
        Create a schema with the tables of this schema and of another schema that loads into the same
        database. Tables with the same name are loaded into the same database table, so they must have
        the same columns, and they share one sequence of primary key values.

        Args:
            schema (Schema): The schema to merge with this one.
            db_id (str, optional): ID of the database, for error messages. Defaults to "".
            task_name (str, optional): Name of the task of the other schema, for error messages. Defaults to "".

        Returns:
            Schema: The merged schema. This schema and the other schema are not changed, except that
                tables of the other schema may share primary key sequences with tables of this schema.

        Raises:
            EtlError: INPUT_ERROR if tables with the same name have different columns.
        """
        merged = Schema()
        merged.label_views = self.label_views or schema.label_views
        merged.label_view_suffix = self.label_view_suffix or schema.label_view_suffix
        for table in self.tables:
            merged.add_table(table)

        for table in schema.get_tables():
            existing_table = merged.get_table(table.name)
            if existing_table is None:
                merged.add_table(table)
                continue
            if self._get_columns(existing_table) != self._get_columns(table):
                raise EtlError(
                    f'Table "{table.name}" of task "{task_name}" has different columns than the table'
                    f' with the same name in another task that loads data into database "{db_id}".',
                    EtlErrorCode.INPUT_ERROR
                )
            table.share_primary_keys(existing_table)

        merged.lookup_table = self._merge_lookup_tables(self.lookup_table, schema.lookup_table)
        merged.project_info_table = self._merge_rows(self.project_info_table, schema.project_info_table)
        merged.metadata_table = self._merge_rows(self.metadata_table, schema.metadata_table)
        return merged

    @staticmethod
    def _merge_lookup_tables(
            lookup_table: Optional[LookupTable], other_lookup_table: Optional[LookupTable]
    ) -> Optional[LookupTable]:
        if lookup_table is None or other_lookup_table is None:
            return lookup_table or other_lookup_table
        merged = LookupTable({}, key_type=lookup_table.key_type)
        merged.name = lookup_table.name
        merged.merge(lookup_table)
        merged.merge(other_lookup_table)
        return merged

    @staticmethod
    def _merge_rows(
            table: Optional[DescriptionTable], other_table: Optional[DescriptionTable]
    ) -> Optional[DescriptionTable]:
        """Combine the rows of two project info tables or of two metadata tables."""
        if table is None or other_table is None:
            return table or other_table
        merged = type(table)(table.name)
        for row in table.get_rows() + other_table.get_rows():
            merged.add_row(row)
        return merged
