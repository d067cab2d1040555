from typing import Any

from . import FieldType, FieldTypeSpecifier, RowsType
from .table import Field, Row, Table

DEFAULT_NAME = "redcap_project_info"
FIELD_PRIMARY_ID = "redcap_data_source"
FIELD_API_URL = "api_url"
FIELD_PROJECT_ID = "project_id"
FIELD_PROJECT_TITLE = "project_title"
FIELD_PROJECT_LANGUAGE = "project_language"


class ProjectInfoTable(Table):
    """Table with information about the REDCap project the data was extracted from."""

    def __init__(self, name: str = DEFAULT_NAME):
        super().__init__(name, FIELD_PRIMARY_ID, FieldTypeSpecifier(type=FieldType.INT), [RowsType.ROOT])
        self.add_field(Field(FIELD_API_URL, FieldType.VARCHAR, 255))
        self.add_field(Field(FIELD_PROJECT_ID, FieldType.INT))
        self.add_field(Field(FIELD_PROJECT_TITLE, FieldType.VARCHAR, 255))
        self.add_field(Field(FIELD_PROJECT_LANGUAGE, FieldType.VARCHAR, 255))

    def create_data_row(self, task_id: int, api_url: str, project_info: dict[str, Any]) -> Row:
        row = Row(self)
        row.add_value(FIELD_PRIMARY_ID, task_id)
        row.add_value(FIELD_API_URL, api_url)
        row.add_value(FIELD_PROJECT_ID, project_info.get(FIELD_PROJECT_ID))
        row.add_value(FIELD_PROJECT_TITLE, project_info.get(FIELD_PROJECT_TITLE, ""))
        row.add_value(FIELD_PROJECT_LANGUAGE, project_info.get(FIELD_PROJECT_LANGUAGE, ""))
        return row
