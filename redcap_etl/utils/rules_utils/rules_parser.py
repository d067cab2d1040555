import re
from typing import Optional

from ..schema_utils import FieldType, RowsType
from . import FieldRule, Rule, Rules, TableRule

ELEMENTS_SEPARATOR = ","
ROWS_DEF_SEPARATOR = ":"
SUFFIXES_SEPARATOR = ";"
ROWS_TYPE_SEPARATOR = "&"

ELEMENT_TABLE = "TABLE"
ELEMENT_FIELD = "FIELD"

RULE_TYPE_POS = 0
TABLE_NAME_POS = 1
TABLE_PARENT_POS = 2
TABLE_ROWS_TYPE_POS = 3
FIELD_NAME_POS = 1
FIELD_TYPE_POS = 2
FIELD_DB_NAME_POS = 3

ROOT = "ROOT"
EVENTS = "EVENTS"
SUFFIXES = "SUFFIXES"
REPEATING_INSTRUMENTS = "REPEATING_INSTRUMENTS"
REPEATING_EVENTS = "REPEATING_EVENTS"

BLANK_LINE_PATTERN = re.compile(r"^[\s,]*$")
FIELD_TYPE_PATTERN = re.compile(r"([a-zA-Z]+)\(([0-9]+)\)")


class RulesParser:
    """
    Parser for the transformation rules language, for example:

        TABLE, Demography, demography_id, ROOT
        FIELD, first_name, string
        FIELD, dob, date, birth_date

        TABLE, Visits, Demography, EVENTS
        FIELD, weight, float

    Errors are recorded in the rule objects rather than raised, so that all errors in
    the rules can be reported at once.
    """

    def parse(self, rules_text: str) -> Rules:
        rules = Rules()
        table_rules_count = 0
        for line_number, line in enumerate(re.split(r"\r\n|\r|\n", rules_text or ""), start=1):
            if BLANK_LINE_PATTERN.match(line):
                continue
            values = [value.strip() for value in line.split(ELEMENTS_SEPARATOR)]
            rule_type = values[RULE_TYPE_POS]
            rule: Rule
            if rule_type == ELEMENT_TABLE:
                rule = self._parse_table_rule(values, line, line_number)
                table_rules_count += 1
            elif rule_type == ELEMENT_FIELD:
                rule = self._parse_field_rule(values, line, line_number)
                if table_rules_count == 0:
                    rule.add_error(f'Field rule specified before any Table rule on line {line_number}: "{line}"')
            else:
                rule = Rule(line, line_number)
                rule.add_error(f'Unrecognized rule type "{rule_type}" on line {line_number}: "{line}"')
            rules.add_rule(rule)
        return rules

    def _parse_table_rule(self, values: list[str], line: str, line_number: int) -> TableRule:
        table_rule = TableRule(line, line_number)
        if len(values) < 4:
            table_rule.add_error(f'Not enough values (less than 4) on line {line_number}: "{line}"')
            return table_rule

        table_rule.table_name = self._general_sql_clean(values[TABLE_NAME_POS])
        table_rule.parent_table = self._general_sql_clean(values[TABLE_PARENT_POS])
        table_rule.table_rows_type = self._general_sql_clean(values[TABLE_ROWS_TYPE_POS])

        if not table_rule.table_name:
            table_rule.add_error(f'Missing table name on line {line_number}: "{line}"')
        elif not table_rule.parent_table:
            table_rule.add_error(f'Missing table parent/primary key on line {line_number}: "{line}"')
        elif not table_rule.table_rows_type:
            table_rule.add_error(f'Missing table rows type on line {line_number}: "{line}"')
        else:
            rows_type, suffixes = self.parse_rows_def(table_rule.table_rows_type)
            if rows_type is None:
                table_rule.add_error(f"Unrecognized rows type on line {line_number}: {line}")
            else:
                table_rule.rows_type = rows_type
                table_rule.suffixes = suffixes
        return table_rule

    def _parse_field_rule(self, values: list[str], line: str, line_number: int) -> FieldRule:
        field_rule = FieldRule(line, line_number)

        if len(values) <= FIELD_NAME_POS:
            field_rule.add_error(f"Missing field name on line {line_number}: '{line}'")
        else:
            field_rule.redcap_field_name = self._general_sql_clean(values[FIELD_NAME_POS])
            if not field_rule.redcap_field_name:
                field_rule.add_error(f"Missing field name on line {line_number}: '{line}'")

        if len(values) <= FIELD_TYPE_POS:
            field_rule.add_error(f"Missing field type on line {line_number}: '{line}'")
        else:
            field_type_specification = self._clean_field_type(values[FIELD_TYPE_POS])
            if not field_type_specification:
                field_rule.add_error(f"Missing field type on line {line_number}: '{line}'")
            else:
                match = FIELD_TYPE_PATTERN.search(field_type_specification)
                if match:
                    field_rule.db_field_type = match.group(1)
                    field_rule.db_field_size = int(match.group(2))
                else:
                    field_rule.db_field_type = field_type_specification
                    field_rule.db_field_size = None
                if not FieldType.is_valid(field_rule.db_field_type):
                    field_rule.add_error(
                        f'Invalid field type "{field_rule.db_field_type}" on line {line_number}: "{line}"'
                    )

        # Optional, so it's OK if this ends up empty
        if len(values) > FIELD_DB_NAME_POS:
            field_rule.db_field_name = self._general_sql_clean(values[FIELD_DB_NAME_POS])
        return field_rule

    def parse_rows_def(self, rows_def: str) -> tuple[Optional[list[RowsType]], list[str]]:
        """
        Parse a rows definition like "EVENTS", "SUFFIXES:a;b" or "EVENTS&REPEATING_INSTRUMENTS".

        Args:
            rows_def (str): The rows definition from a table rule.

        Returns:
            tuple[Optional[list[RowsType]], list[str]]: The rows types (None if the definition is
                invalid) and the suffixes.
        """
        rows_types: list[RowsType] = []
        suffixes: list[str] = []
        for rows_encode in rows_def.strip().split(ROWS_TYPE_SEPARATOR):
            rows_type, rows_type_suffixes = self._assign_rows_type(rows_encode.strip())
            if rows_type is None:
                return None, []
            if rows_type not in rows_types:
                rows_types.append(rows_type)
            suffixes.extend(suffix for suffix in rows_type_suffixes if suffix not in suffixes)
        return rows_types, suffixes

    @staticmethod
    def _assign_rows_type(rows_encode: str) -> tuple[Optional[RowsType], list[str]]:
        rows_encode, _, suffixes_def = rows_encode.partition(ROWS_DEF_SEPARATOR)
        suffixes = [suffix for suffix in suffixes_def.split(SUFFIXES_SEPARATOR)] if suffixes_def else []
        if rows_encode == ROOT:
            return RowsType.ROOT, []
        if rows_encode == EVENTS:
            if suffixes and suffixes[0]:
                return RowsType.BY_EVENTS_SUFFIXES, suffixes
            return RowsType.BY_EVENTS, []
        if rows_encode == REPEATING_INSTRUMENTS:
            return RowsType.BY_REPEATING_INSTRUMENTS, []
        if rows_encode == REPEATING_EVENTS:
            return RowsType.BY_REPEATING_EVENTS, []
        if rows_encode == SUFFIXES:
            if suffixes and suffixes[0]:
                return RowsType.BY_SUFFIXES, suffixes
            return None, []
        if SUFFIXES_SEPARATOR in rows_encode:
            suffixes = rows_encode.split(SUFFIXES_SEPARATOR)
            if suffixes[0]:
                return RowsType.BY_SUFFIXES, suffixes
        return None, []

    @staticmethod
    def _clean_field_type(field_type: str) -> str:
        """Remove all characters except letters, digits, underscores and parentheses."""
        return re.sub(r"[^a-zA-Z0-9_()]+", "", field_type)

    @staticmethod
    def _general_sql_clean(value: str) -> str:
        return re.sub(r"[^a-zA-Z0-9_;:&]+", "", value)
