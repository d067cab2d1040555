from typing import Optional

from ..schema_utils import RowsType


class Rule:
    def __init__(self, line: str, line_number: int):
        """
        A parsed line of the transformation rules.

        Args:
            line (str): The text of the line.
            line_number (int): The line number, starting at 1.
        """
        self.line = line
        self.line_number = line_number
        self.errors: list[str] = []

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def add_error(self, error: str) -> None:
        self.errors.append(error)


class TableRule(Rule):
    def __init__(self, line: str, line_number: int):
        super().__init__(line, line_number)
        self.table_name = ""
        # The parent table name, or the primary key name for root tables
        self.parent_table = ""
        self.table_rows_type = ""
        self.rows_type: list[RowsType] = []
        self.suffixes: list[str] = []

    def is_root_table(self) -> bool:
        return RowsType.ROOT in self.rows_type


class FieldRule(Rule):
    def __init__(self, line: str, line_number: int):
        super().__init__(line, line_number)
        self.redcap_field_name = ""
        self.db_field_type = ""
        self.db_field_size: Optional[int] = None
        # Only set if the database field name differs from the REDCap field name
        self.db_field_name = ""


class Rules:
    """The rules parsed from a transformation rules text, in order."""

    def __init__(self) -> None:
        self.rules: list[Rule] = []
        self.parsed_line_count = 0

    def add_rule(self, rule: Rule) -> None:
        self.rules.append(rule)
        if not rule.has_errors():
            self.parsed_line_count += 1

    def get_rules(self) -> list[Rule]:
        return self.rules

    def get_errors(self) -> list[str]:
        return [error for rule in self.rules for error in rule.errors]
