from typing import Any

from . import FieldType, FieldTypeSpecifier, RowsType
from .table import Field, Row, Table

DEFAULT_NAME = "redcap_metadata"
FIELD_PRIMARY_ID = "redcap_data_source"
FIELD_TABLE = "table_name"
FIELD_TABLE_FIELD = "table_field"
FIELD_FIELD_NAME = "field_name"
FIELD_FORM_NAME = "form_name"
FIELD_FIELD_TYPE = "field_type"
FIELD_IDENTIFIER = "identifier"


class MetadataTable(Table):
    """Table with the REDCap metadata of each database field the ETL process generated."""

    def __init__(self, name: str = DEFAULT_NAME):
        super().__init__(name, FIELD_PRIMARY_ID, FieldTypeSpecifier(type=FieldType.INT), [RowsType.ROOT])
        # One row per generated field, all with the same data source
        self.has_unique_key = False
        for field_name in [FIELD_TABLE, FIELD_TABLE_FIELD, FIELD_FIELD_NAME, FIELD_FORM_NAME, FIELD_FIELD_TYPE]:
            self.add_field(Field(field_name, FieldType.VARCHAR, 255))
        self.add_field(Field(FIELD_IDENTIFIER, FieldType.VARCHAR, 1))

    def create_data_row(self, task_id: int, table_name: str, table_field: str, metadata: dict[str, Any]) -> Row:
        row = Row(self)
        row.add_value(FIELD_PRIMARY_ID, task_id)
        row.add_value(FIELD_TABLE, table_name)
        row.add_value(FIELD_TABLE_FIELD, table_field)
        row.add_value(FIELD_FIELD_NAME, metadata.get(FIELD_FIELD_NAME, ""))
        row.add_value(FIELD_FORM_NAME, metadata.get(FIELD_FORM_NAME, ""))
        row.add_value(FIELD_FIELD_TYPE, metadata.get(FIELD_FIELD_TYPE, ""))
        row.add_value(FIELD_IDENTIFIER, metadata.get(FIELD_IDENTIFIER, ""))
        return row
