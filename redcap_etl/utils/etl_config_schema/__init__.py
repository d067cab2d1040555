import re
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator


class TransformRulesSourceEnum(str, Enum):
    text = "1"
    file = "2"
    default = "3"


BOOLEAN_PROPERTIES = [
    "ssl_verify",
    "extracted_record_count_check",
    "ignore_empty_incomplete_forms",
    "db_primary_keys",
    "db_foreign_keys",
    "label_views",
    "print_logging",
    "autogen_include_complete_fields",
    "autogen_include_dag_fields",
    "autogen_include_file_fields",
    "autogen_include_survey_fields",
    "autogen_remove_notes_fields",
    "autogen_remove_identifier_fields",
    "autogen_combine_non_repeating_fields",
]

# Properties that may be given as a list of lines in JSON configuration files
MULTI_LINE_PROPERTIES = ["transform_rules_text", "pre_processing_sql", "post_processing_sql"]

NAME_PATTERN = re.compile(r"[^a-zA-Z0-9_]+")


class TaskConfigSchema(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    redcap_api_url: Optional[str] = None
    data_source_api_token: Optional[str] = None
    ssl_verify: bool = True
    ca_cert_file: Optional[str] = None
    extracted_record_count_check: bool = True
    ignore_empty_incomplete_forms: bool = False
    project_id: Optional[int] = None

    db_connection: str = Field(min_length=1)
    db_primary_keys: bool = True
    db_foreign_keys: bool = True

    batch_size: int = 100
    table_prefix: str = ""
    label_views: bool = True
    label_view_suffix: str = "_label_view"
    label_field_suffix: Optional[str] = None
    lookup_table_name: str = "Lookup"
    redcap_metadata_table: str = "redcap_metadata"
    redcap_project_info_table: str = "redcap_project_info"
    calc_field_ignore_pattern: Optional[str] = None

    transform_rules_source: Optional[TransformRulesSourceEnum] = None
    transform_rules_text: Optional[str] = None
    transform_rules_file: Optional[str] = None

    generated_instance_type: str = "int"
    generated_key_type: str = "int"
    generated_label_type: str = "varchar(255)"
    generated_name_type: str = "varchar(255)"
    generated_record_id_type: str = "varchar(255)"
    generated_suffix_type: str = "varchar(255)"

    pre_processing_sql: Optional[str] = None
    pre_processing_sql_file: Optional[str] = None
    post_processing_sql: Optional[str] = None
    post_processing_sql_file: Optional[str] = None

    print_logging: bool = True
    log_file: Optional[str] = None

    autogen_include_complete_fields: bool = False
    autogen_include_dag_fields: bool = False
    autogen_include_file_fields: bool = False
    autogen_include_survey_fields: bool = False
    autogen_remove_notes_fields: bool = False
    autogen_remove_identifier_fields: bool = False
    autogen_combine_non_repeating_fields: bool = False
    autogen_non_repeating_fields_table: str = ""

    @field_validator(*BOOLEAN_PROPERTIES, mode="before")
    @classmethod
    def parse_boolean(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None or (isinstance(value, str) and value.strip() == ""):
            return cls.model_fields[info.field_name].default
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        if isinstance(value, str) and value.strip().lower() in ("true", "1"):
            return True
        if isinstance(value, str) and value.strip().lower() in ("false", "0"):
            return False
        raise ValueError(
            f'Unrecognized value "{value}" for {info.field_name} property; a true or false value should be specified.'
        )

    @field_validator(*MULTI_LINE_PROPERTIES, mode="before")
    @classmethod
    def join_lines(cls, value: Any) -> Any:
        if isinstance(value, list):
            return "\n".join(value)
        return value

    @field_validator("db_connection", mode="before")
    @classmethod
    def check_db_connection(cls, value: Any) -> Any:
        if value is None or str(value).strip() == "":
            raise ValueError("No database connection was specified in the configuration.")
        return str(value).strip()

    @field_validator("batch_size", mode="before")
    @classmethod
    def check_batch_size(cls, value: Any) -> Any:
        message = "Invalid batch_size property. This property must be an integer greater than 0."
        if isinstance(value, str) and value.strip() == "":
            return cls.model_fields["batch_size"].default
        if isinstance(value, bool):
            raise ValueError(message)
        if isinstance(value, str):
            if not value.strip().isdigit():
                raise ValueError(message)
            value = int(value)
        if not isinstance(value, int) or value < 1:
            raise ValueError(message)
        return value

    @field_validator("table_prefix", "label_view_suffix", mode="before")
    @classmethod
    def check_name(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None or value == "":
            return cls.model_fields[info.field_name].default
        if NAME_PATTERN.search(str(value)):
            raise ValueError(
                f"Invalid {info.field_name} property. This property may only contain letters, numbers, and underscores."
            )
        return value

    @field_validator(
        "lookup_table_name", "redcap_metadata_table", "redcap_project_info_table", mode="before"
    )
    @classmethod
    def default_if_blank(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None or str(value).strip() == "":
            return cls.model_fields[info.field_name].default
        return str(value).strip()

    @field_validator("transform_rules_source", mode="before")
    @classmethod
    def rules_source_as_string(cls, value: Any) -> Any:
        if value is None or str(value).strip() == "":
            return None
        return str(value).strip()

    @field_validator("project_id", mode="before")
    @classmethod
    def blank_project_id(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    @model_validator(mode="after")
    def check_properties(self) -> "TaskConfigSchema":
        if self.db_foreign_keys and not self.db_primary_keys:
            raise ValueError(
                "The configuration was set to generate foreign keys in the database, but not primary keys."
            )
        if self.autogen_combine_non_repeating_fields and not self.autogen_non_repeating_fields_table:
            raise ValueError(
                "Invalid autogen_non_repeating_fields_table property. This property must have a value"
                " if the autogen_combine_non_repeating_fields property is set to true."
            )
        if self.autogen_non_repeating_fields_table and NAME_PATTERN.search(self.autogen_non_repeating_fields_table):
            raise ValueError(
                "Invalid autogen_non_repeating_fields_table property."
                " This property may only contain letters, numbers, and underscores."
            )
        return self
