import logging
from typing import Any

from .. import FORM_COMPLETE_SUFFIX, REDCAP_DATA_ACCESS_GROUP, REDCAP_SURVEY_IDENTIFIER
from ..schema_utils import FieldType
from .rules_parser import (
    ELEMENT_FIELD,
    ELEMENT_TABLE,
    EVENTS,
    REPEATING_EVENTS,
    REPEATING_INSTRUMENTS,
    ROOT,
    ROWS_TYPE_SEPARATOR,
)

ROOT_TABLE_NAME = "root"
DEFAULT_NON_REPEATING_FIELDS_TABLE = "all_nonrepeating_fields"


class RulesGenerator:
    """Generates transformation rules from the metadata of a REDCap project."""

    def generate(
            self,
            data_project: Any,
            include_complete_fields: bool = False,
            include_dag_fields: bool = False,
            include_file_fields: bool = False,
            include_survey_fields: bool = False,
            remove_notes_fields: bool = False,
            remove_identifier_fields: bool = False,
            combine_non_repeating_fields: bool = False,
            non_repeating_fields_table: str = DEFAULT_NON_REPEATING_FIELDS_TABLE
    ) -> str:
        """
        Generate transformation rules for a project.

        Classic projects without repeating instruments get one root table per
        instrument. Longitudinal projects, and projects with repeating
        instruments, get a root table with the record ID and one child table per
        instrument, with rows types based on the instrument's events and
        whether it repeats.

        Args:
            data_project (Any): The REDCap project (RedCapProject or a stand-in with the same export methods).
            include_complete_fields (bool, optional): Add the form complete field of each instrument.
            include_dag_fields (bool, optional): Add the data access group field to each table.
            include_file_fields (bool, optional): Add file upload fields.
            include_survey_fields (bool, optional): Add survey identifier and timestamp fields
                for survey enabled projects.
            remove_notes_fields (bool, optional): Leave out notes (free text) fields.
            remove_identifier_fields (bool, optional): Leave out fields tagged as identifiers.
            combine_non_repeating_fields (bool, optional): Put the fields of all non-repeating
                instruments into one table.
            non_repeating_fields_table (str, optional): Name of the combined non-repeating fields table.

        Returns:
            str: The generated rules.
        """
        self.data_project = data_project
        self.include_complete_fields = include_complete_fields
        self.include_dag_fields = include_dag_fields
        self.include_file_fields = include_file_fields
        self.include_survey_fields = include_survey_fields
        self.remove_notes_fields = remove_notes_fields
        self.remove_identifier_fields = remove_identifier_fields

        self.project_info = data_project.export_project_info()
        self.instruments = data_project.export_instruments()
        self.metadata = data_project.export_metadata()
        self.record_id = self.metadata[0]["field_name"]

        self.is_longitudinal = self.project_info.get("is_longitudinal") in (1, "1")
        self.surveys_enabled = self.project_info.get("surveys_enabled") in (1, "1")
        has_repeating = self.project_info.get("has_repeating_instruments_or_events") in (1, "1")

        repeating_instruments_and_events = []
        if has_repeating:
            repeating_instruments_and_events = data_project.export_repeating_instruments_and_events()

        if self.is_longitudinal:
            rules = self._generate_longitudinal(
                repeating_instruments_and_events, combine_non_repeating_fields, non_repeating_fields_table
            )
        elif has_repeating:
            rules = self._generate_classic_repeating(
                repeating_instruments_and_events, combine_non_repeating_fields, non_repeating_fields_table
            )
        else:
            rules = self._generate_classic(combine_non_repeating_fields, non_repeating_fields_table)

        logging.info(f"Generated transformation rules for {len(self.instruments)} instruments")
        return rules

    def _generate_classic(self, combine_non_repeating_fields: bool, non_repeating_fields_table: str) -> str:
        if combine_non_repeating_fields:
            rules = self._table_rule(non_repeating_fields_table, f"{non_repeating_fields_table.lower()}_id", ROOT)
            for form_name in self.instruments:
                rules += self._field_rules(form_name)
            return rules + "\n"

        rules = ""
        for form_name in self.instruments:
            rules += self._table_rule(form_name, f"{form_name.lower()}_id", ROOT)
            rules += self._field_rules(form_name)
            rules += "\n"
        return rules

    def _generate_classic_repeating(
            self,
            repeating_instruments_and_events: list[dict],
            combine_non_repeating_fields: bool,
            non_repeating_fields_table: str
    ) -> str:
        repeating_forms = {entry["form_name"] for entry in repeating_instruments_and_events if entry.get("form_name")}
        rules = self._root_table_rules()

        non_repeating_forms = [form_name for form_name in self.instruments if form_name not in repeating_forms]
        if combine_non_repeating_fields and non_repeating_forms:
            rules += self._table_rule(non_repeating_fields_table, ROOT_TABLE_NAME, EVENTS)
            for form_name in non_repeating_forms:
                rules += self._field_rules(form_name)
            rules += "\n"

        for form_name in self.instruments:
            if form_name in repeating_forms:
                rows_type = REPEATING_INSTRUMENTS
            elif combine_non_repeating_fields:
                continue
            else:
                rows_type = EVENTS
            rules += self._table_rule(form_name, ROOT_TABLE_NAME, rows_type)
            rules += self._field_rules(form_name)
            rules += "\n"
        return rules

    def _generate_longitudinal(
            self,
            repeating_instruments_and_events: list[dict],
            combine_non_repeating_fields: bool,
            non_repeating_fields_table: str
    ) -> str:
        mappings = self.data_project.export_instrument_event_mappings()
        form_events: dict[str, list[str]] = {}
        for mapping in mappings:
            form_events.setdefault(mapping["form"], []).append(mapping["unique_event_name"])

        repeating_events = set()
        repeating_forms = set()
        for entry in repeating_instruments_and_events:
            if entry.get("form_name"):
                repeating_forms.add((entry["event_name"], entry["form_name"]))
            else:
                repeating_events.add(entry["event_name"])

        form_rows_types = {}
        for form_name in self.instruments:
            rows_types = []
            for event_name in form_events.get(form_name, []):
                if event_name in repeating_events:
                    rows_type = REPEATING_EVENTS
                elif (event_name, form_name) in repeating_forms:
                    rows_type = REPEATING_INSTRUMENTS
                else:
                    rows_type = EVENTS
                if rows_type not in rows_types:
                    rows_types.append(rows_type)
            form_rows_types[form_name] = rows_types

        rules = self._root_table_rules()

        non_repeating_forms = [form_name for form_name, rows_types in form_rows_types.items() if rows_types == [EVENTS]]
        if combine_non_repeating_fields and non_repeating_forms:
            rules += self._table_rule(non_repeating_fields_table, ROOT_TABLE_NAME, EVENTS)
            for form_name in non_repeating_forms:
                rules += self._field_rules(form_name)
            rules += "\n"

        for form_name, rows_types in form_rows_types.items():
            if not rows_types:
                logging.warning(f"Instrument '{form_name}' is not used in any event, so no table was generated for it")
                continue
            if combine_non_repeating_fields and form_name in non_repeating_forms:
                continue
            rules += self._table_rule(form_name, ROOT_TABLE_NAME, ROWS_TYPE_SEPARATOR.join(rows_types))
            rules += self._field_rules(form_name)
            rules += "\n"
        return rules

    def _root_table_rules(self) -> str:
        rules = self._table_rule(ROOT_TABLE_NAME, f"{ROOT_TABLE_NAME}_id", ROOT)
        rules += f"{ELEMENT_FIELD},{self.record_id},{FieldType.STRING.value}\n"
        return rules + "\n"

    @staticmethod
    def _table_rule(table_name: str, parent: str, rows_type: str) -> str:
        return f"{ELEMENT_TABLE},{table_name},{parent},{rows_type}\n"

    def _field_rules(self, form_name: str) -> str:
        rules = ""
        if self.include_dag_fields:
            rules += f"{ELEMENT_FIELD},{REDCAP_DATA_ACCESS_GROUP},{FieldType.VARCHAR.value}(255)\n"
        if self.include_survey_fields and self.surveys_enabled:
            rules += f"{ELEMENT_FIELD},{REDCAP_SURVEY_IDENTIFIER},{FieldType.VARCHAR.value}(255)\n"
            rules += f"{ELEMENT_FIELD},{form_name}_timestamp,{FieldType.DATETIME.value}\n"

        for field in self.metadata:
            if field["form_name"] != form_name or field["field_name"] == self.record_id:
                continue
            field_type = field["field_type"]
            if field_type == "descriptive":
                continue
            if field_type == "file" and not self.include_file_fields:
                continue
            if field_type == "notes" and self.remove_notes_fields:
                continue
            if field.get("identifier") == "y" and self.remove_identifier_fields:
                continue
            rules += f"{ELEMENT_FIELD},{field['field_name']},{self._get_field_type(field)}\n"

        if self.include_complete_fields:
            rules += f"{ELEMENT_FIELD},{form_name}{FORM_COMPLETE_SUFFIX},{FieldType.INT.value}\n"
        return rules

    @staticmethod
    def _get_field_type(field: dict) -> str:
        validation_type = field.get("text_validation_type_or_show_slider_number") or ""
        field_type = field["field_type"]
        if field_type == FieldType.CHECKBOX.value:
            return FieldType.CHECKBOX.value
        if validation_type == FieldType.INT.value:
            # The value may be too large for a database int
            return FieldType.STRING.value
        if field_type in ("dropdown", "radio"):
            return FieldType.INT.value
        if validation_type.startswith("date_"):
            return FieldType.DATE.value
        if validation_type.startswith("datetime_"):
            return FieldType.DATETIME.value
        return FieldType.STRING.value
