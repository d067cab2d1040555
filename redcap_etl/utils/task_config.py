import configparser
import json
import logging
import os
from typing import Any, Optional, Union

from pydantic import ValidationError

from .database_utils import DBTYPE_CSV, DBTYPE_SQLITE
from .database_utils.db_connection_factory import create_connection_string, parse_connection_string
from .etl_config_schema import TaskConfigSchema, TransformRulesSourceEnum
from .exceptions import EtlError, EtlErrorCode, RedCapError
from .file_util import FileUtil
from .schema_utils import FieldTypeSpecifier

INI_GLOBAL_SECTION = "global_properties"
LOG_FORMAT = "%(levelname)s: %(asctime)s : %(message)s"

# Properties that are file paths, relative to the configuration file's directory
FILE_PROPERTIES = [
    "ca_cert_file",
    "transform_rules_file",
    "pre_processing_sql_file",
    "post_processing_sql_file",
    "log_file",
]


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    return value


def make_file_properties_absolute(properties: dict[str, Any], base_dir: str) -> dict[str, Any]:
    """Get a copy of the properties with relative file property paths made relative to base_dir."""
    properties = dict(properties)
    for name in FILE_PROPERTIES:
        value = properties.get(name)
        if isinstance(value, str) and value.strip() != "":
            file_path = os.path.expanduser(value.strip())
            if not os.path.isabs(file_path):
                properties[name] = os.path.abspath(os.path.join(base_dir, file_path))
    return properties


def read_ini_file(configuration_file: str) -> dict[str, dict[str, str]]:
    """
    Read an ini configuration file.

    Properties that come before the first section header are returned in the
    "global_properties" section. Double quotes around values are removed.

    Args:
        configuration_file (str): The path of the ini file.

    Returns:
        dict[str, dict[str, str]]: Section name to the section's properties, in file order.

    Raises:
        EtlError: INPUT_ERROR if the file can't be read or parsed.
    """
    try:
        with open(configuration_file, "r") as f:
            text = f.read()
    except OSError as e:
        raise EtlError(
            f'The configuration file "{configuration_file}" could not be read: {e}.', EtlErrorCode.INPUT_ERROR
        ) from e

    config = configparser.ConfigParser(interpolation=None, strict=False)
    try:
        config.read_string(f"[{INI_GLOBAL_SECTION}]\n{text}", source=configuration_file)
    except configparser.Error as e:
        raise EtlError(
            f'The configuration file "{configuration_file}" could not be read: {e}.', EtlErrorCode.INPUT_ERROR
        ) from e

    sections = {}
    for section in config.sections():
        sections[section] = {key: _unquote(value) for key, value in config.items(section)}
    return sections


class TaskConfig:
    def __init__(
            self,
            properties: Union[str, dict],
            base_dir: Optional[str] = None,
            property_overrides: Optional[dict] = None
    ):
        """
        Configuration of an ETL task.

        Args:
            properties (Union[str, dict]): A .json or .ini configuration file, or a dict of properties.
            base_dir (Optional[str], optional): Directory that relative file paths are relative to.
                Defaults to the configuration file's directory, or the current directory.
            property_overrides (Optional[dict], optional): Properties that replace those in the
                configuration file. Defaults to None.

        Raises:
            EtlError: INPUT_ERROR for missing or invalid properties.
        """
        self.properties_file: Optional[str] = None
        if not properties:
            raise EtlError("No properties or properties file was specified.", EtlErrorCode.INPUT_ERROR)
        if isinstance(properties, dict):
            self.properties = dict(properties)
        else:
            self.properties_file = properties.strip()
            self.properties = self.get_properties_from_file(self.properties_file)
        if property_overrides:
            self.properties.update(property_overrides)

        if base_dir is not None:
            self.base_dir = base_dir
        elif self.properties_file:
            self.base_dir = os.path.dirname(os.path.abspath(self.properties_file))
        else:
            self.base_dir = os.getcwd()

        try:
            self.config = TaskConfigSchema(**self.properties)
        except ValidationError as e:
            raise EtlError(f"Configuration validation error: {e}", EtlErrorCode.INPUT_ERROR) from e

        config = self.config
        self.redcap_api_url = config.redcap_api_url
        self.data_source_api_token = config.data_source_api_token.strip() if config.data_source_api_token else None
        self.ssl_verify = config.ssl_verify
        self.extracted_record_count_check = config.extracted_record_count_check
        self.project_id = config.project_id
        self.db_primary_keys = config.db_primary_keys
        self.db_foreign_keys = config.db_foreign_keys
        self.batch_size = config.batch_size
        self.table_prefix = config.table_prefix
        self.label_views = config.label_views
        self.label_view_suffix = config.label_view_suffix
        self.label_field_suffix = config.label_field_suffix
        self.lookup_table_name = config.lookup_table_name
        self.redcap_metadata_table = config.redcap_metadata_table
        self.redcap_project_info_table = config.redcap_project_info_table
        self.calc_field_ignore_pattern = config.calc_field_ignore_pattern
        self.ignore_empty_incomplete_forms = config.ignore_empty_incomplete_forms
        self.transform_rules_source = config.transform_rules_source
        self.pre_processing_sql = config.pre_processing_sql
        self.post_processing_sql = config.post_processing_sql
        self.print_logging = config.print_logging

        self.autogen_include_complete_fields = config.autogen_include_complete_fields
        self.autogen_include_dag_fields = config.autogen_include_dag_fields
        self.autogen_include_file_fields = config.autogen_include_file_fields
        self.autogen_include_survey_fields = config.autogen_include_survey_fields
        self.autogen_remove_notes_fields = config.autogen_remove_notes_fields
        self.autogen_remove_identifier_fields = config.autogen_remove_identifier_fields
        self.autogen_combine_non_repeating_fields = config.autogen_combine_non_repeating_fields
        self.autogen_non_repeating_fields_table = config.autogen_non_repeating_fields_table

        self.ca_cert_file = self.process_file(config.ca_cert_file) if config.ca_cert_file else None
        self.pre_processing_sql_file = (
            self.process_file(config.pre_processing_sql_file) if config.pre_processing_sql_file else None
        )
        self.post_processing_sql_file = (
            self.process_file(config.post_processing_sql_file) if config.post_processing_sql_file else None
        )
        self.log_file = self.process_file(config.log_file, file_should_exist=False) if config.log_file else None

        self.generated_instance_type = FieldTypeSpecifier.create(config.generated_instance_type)
        self.generated_key_type = FieldTypeSpecifier.create(config.generated_key_type)
        self.generated_label_type = FieldTypeSpecifier.create(config.generated_label_type)
        self.generated_name_type = FieldTypeSpecifier.create(config.generated_name_type)
        self.generated_record_id_type = FieldTypeSpecifier.create(config.generated_record_id_type)
        self.generated_suffix_type = FieldTypeSpecifier.create(config.generated_suffix_type)

        self.db_connection = self._process_db_connection(config.db_connection)
        self.transformation_rules = self._process_transformation_rules()
        self._check_valid_set_of_properties()

    @staticmethod
    def get_properties_from_file(configuration_file: str) -> dict[str, Any]:
        """
        Read the properties from a JSON (.json) or ini (any other extension) file. The properties
        of all the sections of an ini file are combined, with later sections taking precedence.
        """
        if not isinstance(configuration_file, str) or configuration_file.strip() == "":
            raise EtlError("No configuration file was specified.", EtlErrorCode.INPUT_ERROR)
        if not os.path.isfile(configuration_file):
            raise EtlError(
                f'The configuration file "{configuration_file}" could not be found.', EtlErrorCode.INPUT_ERROR
            )

        if configuration_file.lower().endswith(".json"):
            try:
                with open(configuration_file, "r") as f:
                    properties = json.load(f)
            except OSError as e:
                raise EtlError(
                    f'The JSON configuration file "{configuration_file}" could not be read.', EtlErrorCode.INPUT_ERROR
                ) from e
            except json.JSONDecodeError as e:
                raise EtlError(
                    f'The JSON configuration file "{configuration_file}" could not be parsed: {e}.',
                    EtlErrorCode.INPUT_ERROR
                ) from e
            if not isinstance(properties, dict):
                raise EtlError(
                    f'The JSON configuration file "{configuration_file}" does not contain an object.',
                    EtlErrorCode.INPUT_ERROR
                )
            return properties

        ini_properties: dict[str, Any] = {}
        for section_properties in read_ini_file(configuration_file).values():
            ini_properties.update(section_properties)
        return ini_properties

    def process_file(self, file_path: str, file_should_exist: bool = True) -> str:
        """Get the absolute path of a file property. Relative paths are relative to the base directory."""
        file_path = os.path.expanduser(file_path.strip())
        if not os.path.isabs(file_path):
            file_path = os.path.join(self.base_dir, file_path)
        file_path = os.path.abspath(file_path)
        if file_should_exist and not os.path.isfile(file_path):
            raise EtlError(f'File "{file_path}" not found.', EtlErrorCode.INPUT_ERROR)
        if not file_should_exist and not os.path.isdir(os.path.dirname(file_path)):
            raise EtlError(f'Directory for file "{file_path}" not found.', EtlErrorCode.INPUT_ERROR)
        return file_path

    def _process_db_connection(self, db_connection: str) -> str:
        db_type, db_string = parse_connection_string(db_connection)
        if db_type in (DBTYPE_CSV, DBTYPE_SQLITE) and db_string:
            db_string = os.path.expanduser(db_string)
            if not os.path.isabs(db_string):
                db_string = os.path.abspath(os.path.join(self.base_dir, db_string))
            return create_connection_string(db_type, db_string)
        return db_connection

    def _process_transformation_rules(self) -> str:
        if self.transform_rules_source == TransformRulesSourceEnum.text.value:
            if self.config.transform_rules_text is None:
                raise EtlError("No transformation rules text was defined.", EtlErrorCode.INPUT_ERROR)
            if self.config.transform_rules_text == "":
                raise EtlError("No transformation rules were entered.", EtlErrorCode.FILE_ERROR)
            return self.config.transform_rules_text
        if self.transform_rules_source == TransformRulesSourceEnum.file.value:
            if not self.config.transform_rules_file:
                raise EtlError("No transformation rules file was specified.", EtlErrorCode.INPUT_ERROR)
            rules_file = self.process_file(self.config.transform_rules_file)
            try:
                return FileUtil.file_to_string(rules_file)
            except RedCapError as e:
                raise EtlError(e.message, EtlErrorCode.FILE_ERROR) from e
        # Auto-generated rules are created once the REDCap project is available
        return ""

    def is_auto_generated_rules(self) -> bool:
        return self.transform_rules_source == TransformRulesSourceEnum.default.value

    def is_sql_only_task(self) -> bool:
        """A task with only pre and/or post-processing SQL and no data to extract."""
        has_sql = any([
            self.pre_processing_sql, self.pre_processing_sql_file,
            self.post_processing_sql, self.post_processing_sql_file
        ])
        return has_sql and not self.redcap_api_url

    def _check_valid_set_of_properties(self) -> None:
        if self.is_sql_only_task():
            return
        if not self.redcap_api_url:
            raise EtlError("No REDCap API URL was specified.", EtlErrorCode.INPUT_ERROR)
        if not self.data_source_api_token:
            raise EtlError("No API token was found.", EtlErrorCode.INPUT_ERROR)
        if not self.transform_rules_source:
            raise EtlError("No transformation rules specified.", EtlErrorCode.INPUT_ERROR)

    def configure_logging(self) -> None:
        """Add handlers to the root logger for console output (print_logging) and the log file (log_file)."""
        root_logger = logging.getLogger()
        root_logger.setLevel(logging.INFO)
        formatter = logging.Formatter(LOG_FORMAT)
        if self.print_logging and not any(
                type(handler) is logging.StreamHandler for handler in root_logger.handlers
        ):
            stream_handler = logging.StreamHandler()
            stream_handler.setFormatter(formatter)
            root_logger.addHandler(stream_handler)
        if not self.print_logging:
            for handler in list(root_logger.handlers):
                if type(handler) is logging.StreamHandler:
                    root_logger.removeHandler(handler)
        if self.log_file:
            file_handler = logging.FileHandler(self.log_file)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
