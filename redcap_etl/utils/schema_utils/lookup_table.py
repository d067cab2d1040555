from typing import Any, Optional

from . import FieldType, FieldTypeSpecifier, RowsType
from .table import Field, Row, Table

DEFAULT_NAME = "Lookup"
FIELD_PRIMARY_ID = "lookup_id"
FIELD_TABLE_NAME = "table_name"
FIELD_FIELD_NAME = "field_name"
FIELD_VALUE = "value"
FIELD_LABEL = "label"


class LookupTable(Table):
    """Table that maps the values of multiple choice fields to their labels, by table and field."""

    def __init__(
            self,
            lookup_choices: dict[str, dict[str, str]],
            table_prefix: Optional[str] = "",
            key_type: Optional[FieldTypeSpecifier] = None,
            name: str = DEFAULT_NAME
    ):
        """
        Initialize the LookupTable class.

        Args:
            lookup_choices (dict[str, dict[str, str]]): REDCap field name to map of choice value to label.
            table_prefix (Optional[str], optional): Prefix for the table name. Defaults to "".
            key_type (Optional[FieldTypeSpecifier], optional): Type of the primary key. Defaults to int.
            name (str, optional): The table name, without prefix. Defaults to "Lookup".
        """
        key_type = key_type or FieldTypeSpecifier(type=FieldType.INT)
        super().__init__(f"{table_prefix or ''}{name}", FIELD_PRIMARY_ID, key_type, [RowsType.ROOT])
        self.lookup_choices = lookup_choices
        # table name -> lookup field name -> value -> label
        self.map: dict[str, dict[str, dict[str, str]]] = {}

        self.add_field(Field(FIELD_TABLE_NAME, FieldType.VARCHAR, 255))
        self.add_field(Field(FIELD_FIELD_NAME, FieldType.VARCHAR, 255))
        self.add_field(Field(FIELD_VALUE, FieldType.VARCHAR, 255))
        self.add_field(Field(FIELD_LABEL, FieldType.STRING))

    def add_lookup_field(self, table_name: str, field_name: str, db_field_name: Optional[str] = None) -> None:
        """
        Add rows for the choices of a multiple choice field used in a table. Each
        table/field combination is only added once.

        Args:
            table_name (str): The table that contains the field.
            field_name (str): The REDCap field name, used to find the choices.
            db_field_name (Optional[str], optional): The database field name, if it differs from
                the REDCap field name. Defaults to None.
        """
        lookup_field_name = db_field_name or field_name
        if lookup_field_name in self.map.get(table_name, {}):
            return
        self._add_choices(table_name, lookup_field_name, self.lookup_choices.get(field_name, {}))

    def _add_choices(self, table_name: str, lookup_field_name: str, choices: dict[str, str]) -> None:
        table_map = self.map.setdefault(table_name, {})
        table_map[lookup_field_name] = {}
        for value, label in choices.items():
            row = Row(self)
            row.add_value(FIELD_TABLE_NAME, table_name)
            row.add_value(FIELD_FIELD_NAME, lookup_field_name)
            row.add_value(FIELD_VALUE, str(value))
            row.add_value(FIELD_LABEL, label)
            row.add_value(FIELD_PRIMARY_ID, self.next_primary_key())
            self.add_row(row)
            table_map[lookup_field_name][str(value)] = label

    def merge(self, lookup_table: "LookupTable") -> None:
        """Add the table/field choices of another lookup table that are not in this one yet."""
        for table_name, table_map in lookup_table.map.items():
            for lookup_field_name, choices in table_map.items():
                if lookup_field_name not in self.map.get(table_name, {}):
                    self._add_choices(table_name, lookup_field_name, choices)

    def get_value_label_map(self, table_name: str, field_name: str) -> dict[str, str]:
        return self.map.get(table_name, {}).get(field_name, {})

    def get_label(self, table_name: str, field_name: str, value: Any) -> str:
        """Get the label for a value of a field in a table. Blank values and unknown values have a blank label."""
        if value is None or value == "":
            return ""
        return self.get_value_label_map(table_name, field_name).get(str(value), "")
