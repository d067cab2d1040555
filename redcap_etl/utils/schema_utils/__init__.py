import re
from enum import Enum, IntEnum
from typing import Any, Optional

from pydantic import BaseModel

from ..exceptions import EtlError, EtlErrorCode


class FieldType(str, Enum):
    INT = "int"
    FLOAT = "float"
    STRING = "string"
    CHAR = "char"
    VARCHAR = "varchar"
    DATE = "date"
    DATETIME = "datetime"
    CHECKBOX = "checkbox"

    @classmethod
    def is_valid(cls, field_type: Any) -> bool:
        return field_type in cls._value2member_map_


class RowsType(IntEnum):
    """How the rows of a table are created from the REDCap records of a record ID."""
    ROOT = 0
    BY_EVENTS = 1
    BY_SUFFIXES = 2
    BY_EVENTS_SUFFIXES = 3
    BY_REPEATING_INSTRUMENTS = 4
    BY_REPEATING_EVENTS = 5

    @classmethod
    def is_valid(cls, rows_type: Any) -> bool:
        return rows_type in cls._value2member_map_

    @staticmethod
    def has_suffixes(rows_types: list["RowsType"]) -> bool:
        return RowsType.BY_SUFFIXES in rows_types or RowsType.BY_EVENTS_SUFFIXES in rows_types


FIELD_TYPE_DEFINITION_PATTERN = re.compile(r"([a-zA-Z]+)\(([0-9]+)\)")


class FieldTypeSpecifier(BaseModel):
    """A database field type with an optional size, e.g. varchar(255)."""
    type: FieldType
    size: Optional[int] = None

    @classmethod
    def create(cls, field_type_definition: Any) -> "FieldTypeSpecifier":
        """
        Parse a field type definition like "int" or "varchar(255)".

        Args:
            field_type_definition (Any): The definition to parse.

        Returns:
            FieldTypeSpecifier: The parsed type and size.

        Raises:
            EtlError: INPUT_ERROR for a missing, non-string or invalid definition.
        """
        if field_type_definition is None:
            raise EtlError("Missing field type definition.", EtlErrorCode.INPUT_ERROR)
        if not isinstance(field_type_definition, str):
            raise EtlError("Non-string field type definition.", EtlErrorCode.INPUT_ERROR)
        field_type_definition = field_type_definition.strip()
        if field_type_definition == "":
            raise EtlError("Missing field type definition.", EtlErrorCode.INPUT_ERROR)

        match = FIELD_TYPE_DEFINITION_PATTERN.search(field_type_definition)
        if match:
            db_field_type, db_field_size = match.group(1), int(match.group(2))
        else:
            db_field_type, db_field_size = field_type_definition, None

        if not FieldType.is_valid(db_field_type):
            raise EtlError(f'Invalid field type "{db_field_type}".', EtlErrorCode.INPUT_ERROR)
        return cls(type=FieldType(db_field_type), size=db_field_size)

    def __str__(self) -> str:
        if self.size is None:
            return self.type.value
        return f"{self.type.value}({self.size})"
