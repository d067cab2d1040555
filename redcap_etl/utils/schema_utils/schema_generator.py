import logging
from typing import Any, Union

from .. import (
    CHECKBOX_SEPARATOR,
    COLUMN_DATA_SOURCE,
    COLUMN_EVENT,
    COLUMN_REPEATING_INSTANCE,
    COLUMN_REPEATING_INSTRUMENT,
    COLUMN_SUFFIXES,
    FORM_COMPLETE_SUFFIX,
    REDCAP_DATA_ACCESS_GROUP,
    REDCAP_SURVEY_IDENTIFIER,
)
from ..exceptions import EtlError, EtlErrorCode
from ..rules_utils import FieldRule, TableRule
from ..rules_utils.rules_parser import RulesParser
from ..rules_utils.rules_semantic_analyzer import RulesSemanticAnalyzer
from . import FieldType, RowsType
from .lookup_table import LookupTable
from .metadata_table import MetadataTable
from .project_info_table import ProjectInfoTable
from .schema import Schema
from .table import Field, Table

PARSE_VALID = "valid"
PARSE_WARN = "warn"
PARSE_ERROR = "error"


class SchemaGenerator:
    def __init__(self, data_project: Any, task_config: Any, task_id: int = 1):
        """
        Generates the database schema for a REDCap project from transformation rules.

        Args:
            data_project (Any): The EtlRedCapProject the data is extracted from.
            task_config (Any): The TaskConfig of the ETL task.
            task_id (int, optional): ID stored in the redcap_data_source fields. Defaults to 1.
        """
        self.data_project = data_project
        self.task_config = task_config
        self.table_prefix = task_config.table_prefix
        self.task_id = task_id
        self.lookup_choices: dict[str, dict[str, str]] = {}
        self.lookup_table: Union[LookupTable, None] = None

    def generate_schema(self, rules_text: str) -> tuple[Schema, tuple[str, str]]:
        """
        Generate the schema from transformation rules.

        Args:
            rules_text (str): The transformation rules.

        Returns:
            tuple[Schema, tuple[str, str]]: The schema, and the parse status ('valid', 'warn'
                or 'error') with the info, warning and error messages.
        """
        redcap_api_url = self.task_config.redcap_api_url
        project_info = self.data_project.get_project_info()
        metadata = self.data_project.get_metadata()
        record_id_field_name = self.data_project.get_record_id_field_name()
        field_names = self.data_project.get_field_names()
        form_names = list(self.data_project.export_instruments().keys())

        timestamp_fields = set()
        if project_info.get("surveys_enabled") in (1, "1", True):
            timestamp_fields = {f"{form_name}_timestamp" for form_name in form_names}

        # User-created REDCap fields that have not been mapped by the rules
        unmapped_redcap_fields = {
            field_name: 1 for field_name in field_names
            if not field_name.endswith(FORM_COMPLETE_SUFFIX) and field_name != record_id_field_name
        }

        self.lookup_choices = self.data_project.get_lookup_choices()
        self.lookup_table = LookupTable(
            self.lookup_choices,
            self.table_prefix,
            self.task_config.generated_key_type,
            self.task_config.lookup_table_name
        )

        info = ""
        warnings = ""
        errors = ""

        schema = Schema()

        project_info_table = ProjectInfoTable(self.task_config.redcap_project_info_table)
        project_info_table.add_row(project_info_table.create_data_row(self.task_id, redcap_api_url, project_info))
        schema.project_info_table = project_info_table

        message = f"Found {len(unmapped_redcap_fields)} user-defined fields in REDCap."
        logging.info(message)
        info += message + "\n"

        parsed_rules = RulesParser().parse(rules_text)
        parsed_rules = RulesSemanticAnalyzer().check(parsed_rules)
        for error in parsed_rules.get_errors():
            logging.error(error)
            errors += error + "\n"

        table = None
        for rule in parsed_rules.get_rules():
            if rule.has_errors():
                # Field rules of a table rule with errors are skipped too
                if isinstance(rule, TableRule):
                    table = None
                continue
            if isinstance(rule, TableRule):
                parent_table: Union[Table, str, None]
                if rule.is_root_table():
                    # For root tables the "parent" is the primary key name, which is not prefixed
                    parent_table = rule.parent_table
                else:
                    parent_table = schema.get_table(self.table_prefix + rule.parent_table)
                if parent_table is None:
                    message = (
                        f'Parent table "{rule.parent_table}" for table "{rule.table_name}" must be defined'
                        f' before the table on line {rule.line_number}: "{rule.line}"'
                    )
                    logging.error(message)
                    errors += message + "\n"
                    table = None
                    continue

                table = self.generate_table(rule, parent_table, record_id_field_name)
                schema.add_table(table)
                if isinstance(parent_table, Table):
                    table.set_foreign(parent_table)
                    parent_table.add_child(table)

            elif isinstance(rule, FieldRule):
                if table is None:
                    continue
                warnings += self._add_rule_fields(
                    rule, table, field_names, timestamp_fields, unmapped_redcap_fields, record_id_field_name
                )

        schema.metadata_table = self._generate_metadata_table(schema, metadata)

        if parsed_rules.parsed_line_count < 1:
            message = "Found no transformation rules."
            logging.error(message)
            errors += message + "\n"

        message = f"Found {len(unmapped_redcap_fields)} unmapped user-defined fields in REDCap."
        logging.info(message)
        if len(unmapped_redcap_fields) > 0:
            warnings += message + "\n"
            if len(unmapped_redcap_fields) <= 10:
                message = "Unmapped fields: " + ", ".join(unmapped_redcap_fields.keys())
                logging.info(message)
                warnings += message

        if errors != "":
            messages = (PARSE_ERROR, errors + info + warnings)
        elif warnings != "":
            messages = (PARSE_WARN, info + warnings)
        else:
            messages = (PARSE_VALID, info)

        schema.label_views = self.task_config.label_views
        schema.label_view_suffix = self.task_config.label_view_suffix
        schema.lookup_table = self.lookup_table
        return schema, messages

    def _add_rule_fields(
            self,
            rule: FieldRule,
            table: Table,
            field_names: dict[str, int],
            timestamp_fields: set[str],
            unmapped_redcap_fields: dict[str, int],
            record_id_field_name: str
    ) -> str:
        """Add the fields generated for a field rule to a table. Returns any warnings."""
        warnings = ""
        has_suffixes = RowsType.has_suffixes(table.rows_type)
        is_checkbox_rule = rule.db_field_type == FieldType.CHECKBOX.value

        for field in self.generate_fields(rule, table):
            # Multiple choice values may be negative numbers or text with a '-'
            field_name = field.name.replace("-", "_")

            if has_suffixes:
                field_found = False
                original_field_name = field_name
                for suffix in table.get_possible_suffixes():
                    if is_checkbox_rule:
                        root_name, category = field_name.split(CHECKBOX_SEPARATOR, 1)
                        export_field_name = f"{root_name}{suffix}{CHECKBOX_SEPARATOR}{category}"
                        original_field_name = f"{root_name}{suffix}"
                    else:
                        export_field_name = f"{field_name}{suffix}"
                        original_field_name = export_field_name
                    if export_field_name in field_names:
                        field_found = True
                        unmapped_redcap_fields.pop(export_field_name, None)
                if not field_found:
                    message = f"Suffix field not found in REDCap: '{field_name}'"
                    logging.warning(message)
                    warnings += message + "\n"
                    break
            else:
                if (
                        field_name not in (REDCAP_DATA_ACCESS_GROUP, REDCAP_SURVEY_IDENTIFIER)
                        and field_name not in timestamp_fields
                        and field_name not in field_names
                ):
                    message = f"Field not found in REDCap: '{field_name}'"
                    logging.warning(message)
                    warnings += message + "\n"
                    return warnings
                if is_checkbox_rule:
                    original_field_name = field_name.split(CHECKBOX_SEPARATOR, 1)[0]
                else:
                    original_field_name = field_name
                unmapped_redcap_fields.pop(field_name, None)

            # The record ID field was already added to every table
            if field.db_name == record_id_field_name:
                continue
            table.add_field(field)

            if original_field_name in self.lookup_choices:
                label_field_suffix = self.task_config.label_field_suffix
                if label_field_suffix and label_field_suffix.strip() != "":
                    label_field = field.clone()
                    label_field.db_name = field.db_name + label_field_suffix
                    label_field.type = self.task_config.generated_label_type.type
                    label_field.size = self.task_config.generated_label_type.size
                    label_field.uses_lookup = None
                    label_field.is_label = True
                    table.add_field(label_field)

                self.lookup_table.add_lookup_field(  # type: ignore[union-attr]
                    table.name, original_field_name, rule.db_field_name
                )
                field.uses_lookup = rule.db_field_name or original_field_name
                table.uses_lookup = True
        return warnings

    def _generate_metadata_table(self, schema: Schema, metadata: list[dict]) -> MetadataTable:
        metadata_table = MetadataTable(self.task_config.redcap_metadata_table)
        metadata_map = {field_metadata["field_name"]: field_metadata for field_metadata in metadata}
        for table in schema.get_tables():
            for field in table.get_fields():
                field_name = field.name
                if field.redcap_type == FieldType.CHECKBOX.value:
                    field_name = field_name.split(CHECKBOX_SEPARATOR, 1)[0]
                if field_name in metadata_map:
                    metadata_table.add_row(
                        metadata_table.create_data_row(self.task_id, table.name, field.db_name, metadata_map[field_name])
                    )
        return metadata_table

    def generate_table(self, rule: TableRule, parent_table: Union[Table, str], record_id_field_name: str) -> Table:
        """
        Create the table for a table rule, with its generated fields: the data source,
        the record ID, and the event/instrument/instance/suffix identifier fields its
        rows types need.

        Raises:
            EtlError: INPUT_ERROR if the table's primary key has the record ID's name.
        """
        rows_type = rule.rows_type
        table = Table(
            self.table_prefix + rule.table_name,
            parent_table,
            self.task_config.generated_key_type,
            rows_type,
            rule.suffixes,
            record_id_field_name,
            self.table_prefix
        )
        table.needs_label_view = self.task_config.label_views
        table.data_source = self.task_id

        table.add_field(Field(COLUMN_DATA_SOURCE, FieldType.INT))

        if table.primary.db_name == record_id_field_name:
            raise EtlError(
                f'Primary key field has same name as REDCap record id "{record_id_field_name}"'
                f' on line {rule.line_number}: "{rule.line}"',
                EtlErrorCode.INPUT_ERROR
            )
        # Always a string type, since record IDs have no length limit in REDCap
        record_id_type = self.task_config.generated_record_id_type
        table.add_field(Field(record_id_field_name, record_id_type.type, record_id_type.size))

        has_event = False
        has_instrument = False
        has_instance = False
        has_suffixes = RowsType.BY_SUFFIXES in rows_type

        if self.data_project.is_longitudinal():
            if RowsType.BY_REPEATING_INSTRUMENTS in rows_type:
                has_event = has_instrument = has_instance = True
            elif RowsType.BY_REPEATING_EVENTS in rows_type:
                has_event = has_instance = True
            elif RowsType.BY_EVENTS in rows_type:
                has_event = True
            if RowsType.BY_EVENTS_SUFFIXES in rows_type:
                has_event = has_suffixes = True
        elif RowsType.BY_REPEATING_INSTRUMENTS in rows_type:
            has_instrument = has_instance = True

        name_type = self.task_config.generated_name_type
        if has_event:
            table.add_field(Field(COLUMN_EVENT, name_type.type, name_type.size))
        if has_instrument:
            table.add_field(Field(COLUMN_REPEATING_INSTRUMENT, name_type.type, name_type.size))
        if has_instance:
            instance_type = self.task_config.generated_instance_type
            table.add_field(Field(COLUMN_REPEATING_INSTANCE, instance_type.type, instance_type.size))
        if has_suffixes:
            suffix_type = self.task_config.generated_suffix_type
            table.add_field(Field(COLUMN_SUFFIXES, suffix_type.type, suffix_type.size))
        return table

    def generate_fields(self, rule: FieldRule, table: Table) -> list[Field]:
        """
        Create the field(s) for a field rule. A checkbox field becomes one int
        field per choice, named <field>___<choice value>.
        """
        field_name = rule.redcap_field_name
        db_field_name = rule.db_field_name

        if rule.db_field_type != FieldType.CHECKBOX.value:
            field = Field(
                field_name,
                rule.db_field_type,
                rule.db_field_size,
                db_field_name,
                self.data_project.get_field_type(field_name)
            )
            if field_name in self.lookup_choices:
                field.value_to_label_map = self.lookup_choices[field_name]
            return [field]

        # For suffix tables, any suffix can be used, since all suffixes have the same choices
        lookup_field_name = field_name
        if RowsType.has_suffixes(table.rows_type):
            possible_suffixes = table.get_possible_suffixes()
            if possible_suffixes:
                lookup_field_name = field_name + possible_suffixes[0]

        redcap_field_type = self.data_project.get_field_type(lookup_field_name)
        fields = []
        for value, label in self.lookup_choices.get(lookup_field_name, {}).items():
            # REDCap uses the lower case choice value in checkbox field names
            value = str(value).lower()
            checkbox_db_field_name = f"{db_field_name}{CHECKBOX_SEPARATOR}{value}" if db_field_name else None
            field = Field(
                f"{field_name}{CHECKBOX_SEPARATOR}{value}",
                FieldType.INT,
                None,
                checkbox_db_field_name,
                redcap_field_type
            )
            field.checkbox_label = label
            fields.append(field)
        return fields
