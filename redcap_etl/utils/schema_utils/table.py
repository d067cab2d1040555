import copy
import itertools
import re
from typing import Any, Optional, Union

from .. import (
    CHECKBOX_SEPARATOR,
    COLUMN_DATA_SOURCE,
    COLUMN_EVENT,
    COLUMN_REPEATING_INSTANCE,
    COLUMN_REPEATING_INSTRUMENT,
    COLUMN_SUFFIXES,
    FORM_COMPLETE_SUFFIX,
    REDCAP_EVENT_NAME,
)
from . import FieldType, FieldTypeSpecifier, RowsType


class Field:
    def __init__(
            self,
            name: str,
            type: Union[FieldType, str],
            size: Optional[int] = None,
            db_name: Optional[str] = None,
            redcap_type: str = ""
    ):
        """
        A field (column) of a table.

        Args:
            name (str): The REDCap field name. For checkbox fields this is the exported
                field name, e.g. "race___1".
            type (Union[FieldType, str]): The database type of the field.
            size (Optional[int], optional): The size for types like varchar. Defaults to None.
            db_name (Optional[str], optional): The database column name, if different
                from the REDCap field name. Defaults to None.
            redcap_type (str, optional): The REDCap field type (text, radio, checkbox, calc, ...).
                Defaults to "".
        """
        self.name = name
        self.type = FieldType(type)
        self.size = size
        self.db_name = db_name or name
        self.redcap_type = redcap_type
        # Name of the field in the lookup table, if the field has multiple choice labels
        self.uses_lookup: Optional[str] = None
        self.checkbox_label = ""
        self.is_label = False
        self.value_to_label_map: dict[str, str] = {}

    def is_checkbox(self) -> bool:
        return CHECKBOX_SEPARATOR in self.name and self.redcap_type == FieldType.CHECKBOX.value

    def clone(self) -> "Field":
        return copy.copy(self)

    def to_string(self, indent: int = 0) -> str:
        return f"{' ' * indent}{self.name} : {self.type.value}\n"

    def __repr__(self) -> str:
        return f"Field(name={self.name!r}, type={self.type.value!r}, db_name={self.db_name!r})"


class Row:
    def __init__(self, table: "Table"):
        """A row of a table. Data is keyed by database field name."""
        self.table = table
        self.data: dict[str, Any] = {}

    def add_value(self, field_name: str, value: Any) -> None:
        self.data[field_name] = value

    def get_data(self) -> dict[str, Any]:
        return self.data

    def to_string(self, indent: int = 0) -> str:
        values = ", ".join(f"{key}: {value}" for key, value in self.data.items())
        return f"{' ' * indent}({values})\n"


# Fields added to tables by the schema generator rather than by field rules
GENERATED_FIELD_NAMES = [
    COLUMN_DATA_SOURCE,
    COLUMN_EVENT,
    COLUMN_REPEATING_INSTRUMENT,
    COLUMN_REPEATING_INSTANCE,
    COLUMN_SUFFIXES,
]


class Table:
    def __init__(
            self,
            name: str,
            parent: Union["Table", str],
            key_type: FieldTypeSpecifier,
            rows_type: list[RowsType],
            suffixes: Optional[list[str]] = None,
            record_id_field_name: Optional[str] = None,
            table_prefix: str = ""
    ):
        """
        A table generated from the transformation rules.

        Args:
            name (str): The table name (including any table prefix). Spaces are replaced with underscores.
            parent (Union[Table, str]): The parent table, or for root tables the name of the primary key.
            key_type (FieldTypeSpecifier): The type of the generated primary and foreign keys.
            rows_type (list[RowsType]): How rows are created from the records of a record ID.
            suffixes (Optional[list[str]], optional): Suffixes for suffix tables. Defaults to None.
            record_id_field_name (Optional[str], optional): The REDCap record ID field. Defaults to None.
            table_prefix (str, optional): Prefix of the table name, left out of generated key names.
                Defaults to "".
        """
        self.name = name.replace(" ", "_")
        self.parent = parent
        self.key_type = key_type
        self.rows_type = list(rows_type)
        self.rows_suffixes = list(suffixes) if suffixes else []
        self.record_id_field_name = record_id_field_name
        self.table_prefix = table_prefix or ""

        self.foreign: Optional[Field] = None
        self.children: list[Table] = []
        self.fields: list[Field] = []
        self.rows: list[Row] = []
        self.uses_lookup = False
        self.needs_label_view = False
        self.has_unique_key = True
        self.data_source = 1
        self._possible_suffixes: list[str] = []
        self._primary_keys = itertools.count(1)

        if RowsType.ROOT in self.rows_type and isinstance(parent, str):
            self.primary = Field(parent, self.key_type.type, self.key_type.size)
        else:
            self.primary = self.create_primary()

    def create_primary(self) -> Field:
        """Create a synthetic primary key named after the table (without prefix), e.g. visits_id."""
        name = self.name
        if self.table_prefix and name.startswith(self.table_prefix):
            name = name[len(self.table_prefix):]
        return Field(f"{name.lower()}_id", self.key_type.type, self.key_type.size)

    def set_foreign(self, parent_table: "Table") -> None:
        self.foreign = parent_table.primary

    def add_field(self, field: Field) -> None:
        """Add a field, unless it has the same database name as the primary key."""
        if self.primary.db_name != field.db_name:
            self.fields.append(field)

    def get_fields(self) -> list[Field]:
        return self.fields

    def get_all_fields(self) -> list[Field]:
        """Get the primary key, foreign key (if any) and the other fields, in database column order."""
        all_fields = list(self.fields)
        if self.foreign and self.foreign.db_name not in [field.db_name for field in all_fields]:
            all_fields.insert(0, self.foreign)
        all_fields.insert(0, self.primary)
        return all_fields

    def add_child(self, table: "Table") -> None:
        self.children.append(table)

    def add_row(self, row: Row) -> None:
        self.rows.append(row)

    def get_rows(self) -> list[Row]:
        return self.rows

    def get_num_rows(self) -> int:
        return len(self.rows)

    def empty_rows(self) -> None:
        self.rows = []

    def next_primary_key(self) -> int:
        return next(self._primary_keys)

    def share_primary_keys(self, table: "Table") -> None:
        """Use the primary key sequence of another table, for tables with the same name in one database."""
        self._primary_keys = table._primary_keys

    def is_record_id_table(self) -> bool:
        """True if the only non-generated field of the table is the record ID field."""
        user_fields = [
            field for field in self.fields
            if field.name not in GENERATED_FIELD_NAMES and field.name != self.record_id_field_name
        ]
        return len(user_fields) == 0

    def get_possible_suffixes(self) -> list[str]:
        """Suffixes of this table combined with the possible suffixes of its ancestor tables."""
        if RowsType.has_suffixes(self.rows_type) and not self._possible_suffixes:
            parent_suffixes = self.parent.get_possible_suffixes() if isinstance(self.parent, Table) else []
            if not parent_suffixes:
                parent_suffixes = [""]
            self._possible_suffixes = [
                parent_suffix + suffix for parent_suffix in parent_suffixes for suffix in self.rows_suffixes
            ]
        return self._possible_suffixes

    @staticmethod
    def _is_empty(value: Any) -> bool:
        return value is None or value == ""

    def _skip_record(self, data: dict, rows_type: RowsType) -> bool:
        instrument = data.get(COLUMN_REPEATING_INSTRUMENT, "")
        instance = data.get(COLUMN_REPEATING_INSTANCE, "")
        if rows_type == RowsType.BY_REPEATING_INSTRUMENTS:
            return self._is_empty(instrument)
        if rows_type == RowsType.BY_REPEATING_EVENTS:
            return not self._is_empty(instrument) or self._is_empty(instance)
        # Records for repeating instruments and events are only stored in their own tables
        return COLUMN_REPEATING_INSTANCE in data and not self._is_empty(instance)

    @staticmethod
    def _get_label(field: Field, value: Any) -> str:
        if field.is_checkbox():
            return field.checkbox_label if str(value) == "1" else ""
        if Table._is_empty(value):
            return ""
        return field.value_to_label_map.get(str(value), "")

    @staticmethod
    def _counts_as_data(
            field: Field,
            value: Any,
            calc_field_ignore_pattern: Optional[str],
            ignore_empty_incomplete_forms: bool = False
    ) -> bool:
        if Table._is_empty(value):
            return False
        # Unchecked checkboxes are exported for every record
        if field.is_checkbox() and str(value) == "0":
            return False
        if field.name.endswith(FORM_COMPLETE_SUFFIX) and str(value) == "0" and ignore_empty_incomplete_forms:
            return False
        if field.redcap_type == "calc" and calc_field_ignore_pattern:
            if re.match(calc_field_ignore_pattern, str(value)):
                return False
        return True

    def _get_variable_name(self, field: Field, suffix: str) -> str:
        """Get the exported REDCap field name for a field and suffix."""
        if CHECKBOX_SEPARATOR in field.name:
            root_name, category = field.name.split(CHECKBOX_SEPARATOR, 1)
            return f"{root_name}{suffix}{CHECKBOX_SEPARATOR}{category}"
        return f"{field.name}{suffix}"

    def create_row(
            self,
            data: dict,
            foreign_key: Any,
            suffix: str,
            rows_type: RowsType,
            calc_field_ignore_pattern: Optional[str] = None,
            ignore_empty_incomplete_forms: bool = False
    ) -> Optional[int]:
        """
        Create a row from a REDCap record, if the record has data for this table.

        Args:
            data (dict): A record exported from REDCap (one event/instance of a record ID).
            foreign_key (Any): The primary key of the parent row, or '' for root tables.
            suffix (str): The suffix to append to field names, for suffix tables.
            rows_type (RowsType): The rows type being processed.
            calc_field_ignore_pattern (Optional[str], optional): Values of calc fields that
                match this pattern don't count as data. Defaults to None.
            ignore_empty_incomplete_forms (bool, optional): If true, an "Incomplete" (0) form complete
                value doesn't count as data, so forms with no other data are ignored. Defaults to False.

        Returns:
            Optional[int]: The primary key of the created row, or None if no row was created.
        """
        if self._skip_record(data, rows_type):
            return None

        row = Row(self)
        if not self._is_empty(foreign_key) and self.foreign:
            row.data[self.foreign.db_name] = foreign_key

        is_record_id_table = self.is_record_id_table()
        data_found = False
        for field in self.fields:
            if field.name == COLUMN_DATA_SOURCE:
                value = self.data_source
            elif self.record_id_field_name and field.name == self.record_id_field_name:
                value = data.get(field.name, "")
                if is_record_id_table and not self._is_empty(value):
                    data_found = True
            elif field.name == COLUMN_EVENT:
                value = data.get(REDCAP_EVENT_NAME, "")
            elif field.name == COLUMN_SUFFIXES:
                value = suffix
            elif field.name in (COLUMN_REPEATING_INSTRUMENT, COLUMN_REPEATING_INSTANCE):
                value = data.get(field.name, "")
            else:
                redcap_value = data.get(self._get_variable_name(field, suffix), "")
                if field.is_label:
                    value = self._get_label(field, redcap_value)
                else:
                    value = redcap_value
                    if self._counts_as_data(field, value, calc_field_ignore_pattern, ignore_empty_incomplete_forms):
                        data_found = True
            row.data[field.db_name] = value

        if not data_found:
            return None
        primary_key = self.next_primary_key()
        row.data[self.primary.db_name] = primary_key
        self.add_row(row)
        return primary_key

    def to_string(self, indent: int = 0) -> str:
        prefix = " " * indent
        parent_name = self.parent.name if isinstance(self.parent, Table) else self.parent
        foreign = self.foreign.to_string() if self.foreign else "\n"
        lines = [
            f"{prefix}{self.name} [{parent_name}]\n",
            f"{prefix}primary key: {self.primary.to_string()}",
            f"{prefix}foreign key: {foreign}",
            f"{prefix}rows type: {', '.join(rows_type.name for rows_type in self.rows_type)}\n",
            f"{prefix}Rows Suffixes: {' '.join(self.rows_suffixes)}\n",
            f"{prefix}Fields:\n",
        ]
        lines.extend(field.to_string(indent + 4) for field in self.fields)
        lines.append(f"{prefix}Rows:\n")
        lines.extend(row.to_string(indent + 4) for row in self.rows)
        lines.append(f"{prefix}Children:\n")
        lines.extend(f"{prefix}    {child.name}\n" for child in self.children)
        return "".join(lines)
