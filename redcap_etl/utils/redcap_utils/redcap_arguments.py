"""Validation and normalization of the arguments passed to REDCap API methods.

Every function returns the value that should be sent to REDCap, or raises a
RedCapError with code INVALID_ARGUMENT (or a file error code for file arguments).
"""
import json
import os
import re
from datetime import datetime
from typing import Any, Optional, Union

from ..exceptions import ErrorCode, RedCapError

LEGAL_FORMATS = ["csv", "json", "php", "xml"]
LEGAL_RECORD_FORMATS = LEGAL_FORMATS + ["odm"]
LEGAL_CSV_DELIMITERS = [",", ";", "tab", "|", "^"]
LEGAL_DECIMAL_CHARACTERS = [",", "."]
LEGAL_DATE_FORMATS = ["MDY", "DMY", "YMD"]
LEGAL_LOG_TYPES = [
    "export",
    "manage",
    "user",
    "record",
    "record_add",
    "record_edit",
    "record_delete",
    "lock_record",
    "page_view",
]
DATE_RANGE_FORMAT = "%Y-%m-%d %H:%M:%S"
API_TOKEN_LENGTH = 32
SUPER_TOKEN_LENGTH = 64


def _type_name(value: Any) -> str:
    return type(value).__name__


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _invalid(message: str) -> RedCapError:
    return RedCapError(message, ErrorCode.INVALID_ARGUMENT)


def _process_string_list(values: Optional[list], name: str, item_name: str, required: bool = False) -> list:
    if values is None:
        if required:
            raise _invalid(f"The {name} argument was not set.")
        return []
    if not isinstance(values, list):
        raise _invalid(f'The {name} argument has invalid type "{_type_name(values)}"; it should be a list.')
    if required and len(values) < 1:
        raise _invalid(f"No {name} were specified in the {name} argument; at least one must be specified.")
    for value in values:
        if not isinstance(value, str):
            raise _invalid(
                f'A {item_name} with type "{_type_name(value)}" was found in the {name} list.'
                f' {item_name.capitalize()}s should be strings.'
            )
    return values


def _process_boolean(value: Optional[bool], name: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise _invalid(
            f"Invalid type for {name}. It should be a boolean (True or False), but has type: {_type_name(value)}."
        )
    return value


def _process_optional_int(value: Optional[int], name: str) -> Union[int, str]:
    if value is None:
        return ""
    if not _is_int(value):
        raise _invalid(f'The {name} has type "{_type_name(value)}", but it should be an integer.')
    return value


def _process_number(value: Union[int, str], description: str) -> Union[int, str]:
    if isinstance(value, str):
        if not re.match(r"^[0-9]+$", value):
            raise _invalid(f'{description} "{value}" is non-numeric string.')
    elif _is_int(value):
        if value < 0:
            raise _invalid(f'{description} "{value}" is a negative integer.')
    else:
        raise _invalid(
            f'The {description.lower()} has type "{_type_name(value)}"; it should be an integer or a (numeric) string.'
        )
    return value


def process_api_token_argument(api_token: Any, length: int = API_TOKEN_LENGTH) -> str:
    if api_token is None:
        raise _invalid("The REDCap API token specified for the project was null or blank.")
    if not isinstance(api_token, str):
        raise _invalid(f"The REDCap API token provided should be a string, but has type: {_type_name(api_token)}")
    if not re.match(r"^[0-9A-Fa-f]*$", api_token):
        raise _invalid(
            "The REDCap API token has an invalid format."
            " It should only contain numbers and the letters A, B, C, D, E and F."
        )
    if len(api_token) != length:
        raise _invalid(
            f"The REDCap API token has an invalid format. It has a length of {len(api_token)} characters,"
            f" but should have a length of {length}."
        )
    return api_token


def process_super_token_argument(super_token: Any) -> Optional[str]:
    """Super tokens may be omitted for methods that don't need them."""
    if super_token is None or super_token == "":
        return super_token
    return process_api_token_argument(super_token, length=SUPER_TOKEN_LENGTH)


def process_api_url_argument(api_url: Any) -> str:
    if api_url is None:
        raise _invalid("The REDCap API URL specified for the project was null or blank.")
    if not isinstance(api_url, str):
        raise _invalid(f"The REDCap API URL provided ({api_url}) should be a string, but has type: {_type_name(api_url)}")
    return api_url


def process_format_argument(format: Any, legal_formats: list[str]) -> str:
    """Returns the format to send to REDCap; 'php' results are requested as JSON."""
    if format is None:
        format = "php"
    if not isinstance(format, str):
        raise _invalid(f'The format specified has type "{_type_name(format)}", but it should be a string.')
    format = format.strip().lower()
    if format not in legal_formats:
        legal = '", "'.join(legal_formats)
        raise _invalid(f'Invalid format "{format}" specified. The format should be one of the following: "{legal}".')
    return "json" if format == "php" else format


def process_arm_argument(arm: Any) -> Any:
    if arm is None:
        return arm
    return _process_number(arm, "Arm number")


def process_arms_argument(arms: Optional[list], required: bool = False) -> list:
    if arms is None:
        if required:
            raise _invalid("The arms argument was not set.")
        return []
    if not isinstance(arms, list):
        raise _invalid(f'The arms argument has invalid type "{_type_name(arms)}"; it should be a list.')
    if required and len(arms) < 1:
        raise _invalid("No arms were specified in the arms argument; at least one must be specified.")
    for arm in arms:
        _process_number(arm, "Arm number")
    return arms


def process_csv_delimiter_argument(csv_delimiter: Any, format: str) -> Any:
    if format != "csv":
        return csv_delimiter
    if not csv_delimiter:
        csv_delimiter = ","
    if not isinstance(csv_delimiter, str):
        raise _invalid(f'The csv delimiter specified has type "{_type_name(csv_delimiter)}", but it should be a string.')
    csv_delimiter = csv_delimiter.strip().lower()
    if csv_delimiter not in LEGAL_CSV_DELIMITERS:
        legal = '", "'.join(LEGAL_CSV_DELIMITERS)
        raise _invalid(
            f'Invalid csv delimiter "{csv_delimiter}" specified. Valid csv delimiter options are: "{legal}".'
        )
    return csv_delimiter


def process_dag_argument(dag: Any, required: bool = False) -> Any:
    if dag:
        if not isinstance(dag, str):
            raise _invalid(f'The dag argument has invalid type "{_type_name(dag)}"; it should be a string.')
    elif required:
        raise _invalid("No DAG (Data Access Group) was specified.")
    return dag


def process_dags_argument(dags: Optional[list], required: bool = True) -> list:
    return _process_string_list(dags, "dags", "dag", required=required)


def process_dag_id_argument(dag_id: Any) -> Union[int, str]:
    return _process_optional_int(dag_id, "DAG ID")


def process_folder_id_argument(folder_id: Any) -> Union[int, str]:
    return _process_optional_int(folder_id, "folder ID")


def process_role_id_argument(role_id: Any) -> Union[int, str]:
    return _process_optional_int(role_id, "role ID")


def process_doc_id_argument(doc_id: Any) -> int:
    if doc_id is None:
        raise _invalid("No doc ID specified")
    if not _is_int(doc_id):
        raise _invalid(f'The doc ID has type "{_type_name(doc_id)}", but it should be an integer.')
    return doc_id


def process_date_format_argument(date_format: Any) -> str:
    if date_format is None:
        return "YMD"
    if isinstance(date_format, str):
        date_format = date_format.upper()
    if date_format not in LEGAL_DATE_FORMATS:
        legal = '", "'.join(LEGAL_DATE_FORMATS)
        raise _invalid(
            f'Invalid date format "{date_format}" specified. The date format should be one of the following: "{legal}".'
        )
    return date_format


def process_date_range_argument(date: Any) -> Optional[str]:
    if date is None:
        return None
    if isinstance(date, str) and date.strip() == "":
        return None
    valid = False
    if isinstance(date, str):
        try:
            valid = datetime.strptime(date, DATE_RANGE_FORMAT).strftime(DATE_RANGE_FORMAT) == date
        except ValueError:
            valid = False
    if not valid:
        raise _invalid(
            "Invalid date format. The date format for export dates is YYYY-MM-DD HH:MM:SS, e.g., 2020-01-31 00:00:00."
        )
    return date


def process_decimal_character_argument(decimal_character: Any) -> Any:
    if decimal_character and decimal_character not in LEGAL_DECIMAL_CHARACTERS:
        legal = '", "'.join(LEGAL_DECIMAL_CHARACTERS)
        raise _invalid(
            f'Invalid decimal character of "{decimal_character}" specified.'
            f' Valid decimal character options are: "{legal}".'
        )
    return decimal_character


def process_delete_logging_argument(delete_logging: Any) -> Any:
    if delete_logging is None:
        return delete_logging
    if not _is_int(delete_logging) or delete_logging not in (0, 1):
        raise _invalid("Invalid delete logging value. The delete logging value must be 0 or 1")
    return delete_logging


def process_event_argument(event: Any) -> Any:
    if event is not None and not isinstance(event, str):
        raise _invalid(f'Event has type "{_type_name(event)}", but should be a string.')
    return event


def process_events_argument(events: Optional[list], required: bool = False) -> list:
    return _process_string_list(events, "events", "event", required=required)


def process_field_argument(field: Any, required: bool = True) -> Any:
    if field is None:
        if required:
            raise _invalid("No field was specified.")
    elif not isinstance(field, str):
        raise _invalid(f'Field has type "{_type_name(field)}", but should be a string.')
    return field


def process_fields_argument(fields: Optional[list]) -> list:
    return _process_string_list(fields, "fields", "field")


def process_form_argument(form: Any, required: bool = False) -> str:
    if form is None:
        if required:
            raise _invalid("The form argument was not set.")
        return ""
    if not isinstance(form, str):
        raise _invalid(f'The form argument has invalid type "{_type_name(form)}"; it should be a string.')
    return form


def process_forms_argument(forms: Optional[list]) -> list:
    return _process_string_list(forms, "forms", "form")


def process_file_argument(file: Any) -> Any:
    if file is not None and not isinstance(file, str):
        raise _invalid(f"Argument 'file' has type '{_type_name(file)}', but should be a string.")
    return file


def process_filename_argument(filename: Any) -> str:
    if filename is None:
        raise _invalid("No filename specified.")
    if not isinstance(filename, str):
        raise _invalid(f"Argument 'filename' has type '{_type_name(filename)}', but should be a string.")
    if not os.path.exists(filename):
        raise RedCapError(f'The input file "{filename}" could not be found.', ErrorCode.INPUT_FILE_NOT_FOUND)
    if not os.access(filename, os.R_OK):
        raise RedCapError(f'The input file "{filename}" was unreadable.', ErrorCode.INPUT_FILE_UNREADABLE)
    return filename


def process_filter_logic_argument(filter_logic: Any) -> str:
    if filter_logic is None:
        return ""
    if not isinstance(filter_logic, str):
        raise _invalid(f'Invalid type for filterLogic. It should be a string, but has type "{_type_name(filter_logic)}".')
    return filter_logic


def process_boolean_argument(value: Any, name: str) -> bool:
    """Used for export_* flags, force_auto_number, compact_display and similar options."""
    return _process_boolean(value, name)


def process_override_argument(override: Any) -> int:
    return 1 if _process_boolean(override, "override") else 0


def process_import_data_argument(data: Any, data_name: str, format: str) -> str:
    """Import data in 'php' format is given as Python data and sent as JSON."""
    if data is None:
        raise _invalid(f"No value specified for required argument '{data_name}'.")
    if format == "php":
        if not isinstance(data, (list, dict)):
            raise _invalid(f"Argument '{data_name}' has type '{_type_name(data)}', but should be a list or dict.")
        try:
            return json.dumps(data)
        except (TypeError, ValueError) as e:
            raise RedCapError(
                f"JSON error \"{e}\" while processing argument '{data_name}'.", ErrorCode.JSON_ERROR
            ) from e
    if not isinstance(data, str):
        raise _invalid(f"Argument '{data_name}' has type '{_type_name(data)}', but should be a string.")
    return data


def process_log_type_argument(log_type: Any) -> Any:
    if log_type and log_type not in LEGAL_LOG_TYPES:
        legal = '", "'.join(LEGAL_LOG_TYPES)
        raise _invalid(f'Invalid log type of "{log_type}" specified. Valid log types are: "{legal}".')
    return log_type


def process_overwrite_behavior_argument(overwrite_behavior: Any) -> str:
    if overwrite_behavior is None:
        return "normal"
    if overwrite_behavior not in ("normal", "overwrite"):
        raise _invalid(
            f"Invalid value \"{overwrite_behavior}\" specified for overwriteBehavior."
            " Valid values are 'normal' and 'overwrite'."
        )
    return overwrite_behavior


def process_raw_or_label_argument(raw_or_label: Any, name: str = "rawOrLabel") -> str:
    if raw_or_label is None:
        return "raw"
    if raw_or_label not in ("raw", "label"):
        raise _invalid(f"Invalid value \"{raw_or_label}\" specified for {name}. Valid values are 'raw' and 'label'.")
    return raw_or_label


def process_record_id_argument(record_id: Any, required: bool = True) -> Any:
    if record_id is None:
        if required:
            raise _invalid("No record ID specified.")
    elif not isinstance(record_id, str) and not _is_int(record_id):
        raise _invalid(f'The record ID has type "{_type_name(record_id)}", but it should be a string or integer.')
    return record_id


def process_record_ids_argument(record_ids: Optional[list]) -> list:
    if record_ids is None:
        return []
    if not isinstance(record_ids, list):
        raise _invalid(f'The record IDs argument has type "{_type_name(record_ids)}"; it should be a list.')
    for record_id in record_ids:
        if not isinstance(record_id, str) and not _is_int(record_id):
            raise _invalid(
                f'A record ID with type "{_type_name(record_id)}" was found. Record IDs should be integers or strings.'
            )
    return record_ids


def process_repeat_instance_argument(repeat_instance: Any) -> Any:
    if repeat_instance is not None and not _is_int(repeat_instance):
        raise _invalid(f'The repeat instance has type "{_type_name(repeat_instance)}", but it should be an integer.')
    return repeat_instance


def process_report_id_argument(report_id: Any) -> Union[int, str]:
    if report_id is None:
        raise _invalid("No report ID specified for export.")
    return _process_number(report_id, "Report ID")


def process_return_content_argument(return_content: Any, force_auto_number: bool) -> str:
    if return_content is None:
        return "count"
    if return_content == "auto_ids":
        if force_auto_number is not True:
            raise _invalid(
                "'auto_ids' specified for returnContent, but forceAutoNumber was not set to True;"
                " 'auto_ids' can only be used when forceAutoNumber is set to True."
            )
    elif return_content not in ("count", "ids"):
        raise _invalid(
            f"Invalid value '{return_content}' specified for returnContent."
            " Valid values are 'count', 'ids' and 'auto_ids'."
        )
    return return_content


def process_type_argument(type: Any) -> str:
    if type is None:
        type = "flat"
    type = str(type).strip().lower()
    if type not in ("flat", "eav"):
        raise _invalid(f"Invalid type '{type}' specified. Type should be either 'flat' or 'eav'")
    return type


def process_user_argument(username: Any) -> Any:
    if username and not isinstance(username, str):
        raise _invalid(f'The user argument has invalid type "{_type_name(username)}"; it should be a string.')
    return username


def _unique(values: list) -> list:
    return list(dict.fromkeys(values))


def process_users_argument(users: Optional[list]) -> Optional[list]:
    if users is None:
        return users
    if not isinstance(users, list):
        raise _invalid(
            f'The users argument has invalid type "{_type_name(users)}":'
            " it should be a list of strings that represent usernames."
        )
    for user in users:
        if not isinstance(user, str):
            raise _invalid(f'The users argument contains an element of type "{_type_name(user)}": it should have type str.')
    return _unique(users)


def process_user_roles_argument(user_roles: Optional[list]) -> Optional[list]:
    if user_roles is None:
        return user_roles
    if not isinstance(user_roles, list):
        raise _invalid(
            f'The user roles argument has invalid type "{_type_name(user_roles)}":'
            " it should be a list of strings that represent unique user role names."
        )
    for user_role in user_roles:
        if not isinstance(user_role, str):
            raise _invalid(
                f'The user roles argument contains an element of type "{_type_name(user_role)}": it should have type str.'
            )
    return _unique(user_roles)
