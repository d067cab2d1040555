import json
import logging
import re
from typing import Any, Optional, Union

from .. import ARG_DEFAULTS
from ..exceptions import ErrorCode, RedCapError
from ..file_util import FileUtil
from ..request_util import RunRequest
from . import redcap_arguments as args

VERSION = "1.0.0"


class RedCapProject:
    """
    A class to interact with a single REDCap project through the REDCap API.

    For methods with a format argument, the 'php' format returns Python data structures
    (REDCap is called with JSON and the result is decoded); other formats return the raw
    text returned by REDCap.

    Attributes:
        JSON_RESULT_ERROR_PATTERN (re.Pattern): Matches the JSON error object REDCap returns for all formats.
        request_util (RunRequest): Connection used for API calls.
        api_token (str): The API token for the project.
    """
    JSON_RESULT_ERROR_PATTERN = re.compile(r'^[\s]*{"error":[\s]*"(.*)"}[\s]*$')

    def __init__(self, request_util: RunRequest, api_token: str):
        """
        Initialize the RedCapProject class.

        Args:
            request_util (RunRequest): Connection used for API calls.
            api_token (str): The API token for the project; 32 hexadecimal characters.
        """
        self.api_token = args.process_api_token_argument(api_token)
        self.request_util = request_util

    @staticmethod
    def _flatten_data(data: dict) -> dict:
        """Encode call data the way REDCap expects. Lists become 'name[i]' entries and None values are dropped."""
        flattened: dict = {}
        for key, value in data.items():
            if value is None:
                continue
            if isinstance(value, list):
                for index, item in enumerate(value):
                    flattened[f"{key}[{index}]"] = item
            elif isinstance(value, bool):
                flattened[key] = "true" if value else "false"
            else:
                flattened[key] = value
        return flattened

    def _create_data(self, content: str, action: Optional[str] = None) -> dict:
        data = {"token": self.api_token, "content": content, "returnFormat": "json"}
        if action:
            data["action"] = action
        return data

    def _call(self, data: dict) -> str:
        return self.request_util.call(data=self._flatten_data(data))

    def process_export_result(self, result: str, format: str) -> Any:
        """
        Check the result of an export call for errors and decode it for the 'php' format.

        Args:
            result (str): The text returned by REDCap.
            format (str): The format requested by the caller.

        Returns:
            Any: The decoded data for 'php', otherwise the result unchanged.

        Raises:
            RedCapError: JSON_ERROR if 'php' output can't be decoded, REDCAP_API_ERROR if REDCap returned an error.
        """
        if format == "php":
            try:
                decoded = json.loads(result)
            except ValueError as e:
                raise RedCapError(
                    f'JSON error "{e}" in REDCap API output.\n'
                    f"The first 1,000 characters of output returned from REDCap are:\n{result[:1000]}",
                    ErrorCode.JSON_ERROR
                ) from e
            if isinstance(decoded, dict) and "error" in decoded:
                raise RedCapError(decoded["error"], ErrorCode.REDCAP_API_ERROR)
            return decoded
        match = self.JSON_RESULT_ERROR_PATTERN.match(result or "")
        if match:
            raise RedCapError(match.group(1), ErrorCode.REDCAP_API_ERROR)
        return result

    def process_non_export_result(self, result: str) -> str:
        """Raise a REDCAP_API_ERROR if REDCap returned an error for an import, delete or other call."""
        match = self.JSON_RESULT_ERROR_PATTERN.match(result or "")
        if match:
            message = match.group(1).replace('\\"', '"').replace("\\n", "\n")
            raise RedCapError(message, ErrorCode.REDCAP_API_ERROR)
        return result

    @staticmethod
    def _to_int(result: str) -> int:
        try:
            return int(str(result).strip())
        except ValueError:
            raise RedCapError(f'Unexpected result returned from REDCap: "{result}"', ErrorCode.REDCAP_API_ERROR)

    def _export(self, data: dict, format: Optional[str], legal_formats: list[str] = args.LEGAL_FORMATS) -> Any:
        format = format or "php"
        data["format"] = args.process_format_argument(format, legal_formats)
        return self.process_export_result(self._call(data), format.strip().lower())

    def _import(self, data: dict, import_data: Any, data_name: str, format: Optional[str]) -> int:
        format = format or "php"
        data["format"] = args.process_format_argument(format, args.LEGAL_FORMATS)
        data["data"] = args.process_import_data_argument(import_data, data_name, format.strip().lower())
        return self._to_int(self.process_non_export_result(self._call(data)))

    def _delete(self, data: dict) -> int:
        return self._to_int(self.process_non_export_result(self._call(data)))

    @staticmethod
    def _get_file_info(content_type: str) -> dict:
        """Parse a content type like 'text/plain; name="test.txt";charset=UTF-8' into its parts."""
        file_info = {}
        parts = [part.strip() for part in content_type.split(";")] if content_type else []
        if len(parts) >= 1:
            file_info["mime_type"] = parts[0]
        if len(parts) >= 2:
            file_info["name"] = parts[1][len('name="'):].rstrip('"')
        if len(parts) >= 3:
            file_info["charset"] = parts[2][len("charset="):]
        return file_info

    def _export_file_content(self, data: dict) -> tuple[bytes, dict]:
        content, content_type = self.request_util.call_for_content(data=self._flatten_data(data))
        self.process_export_result(content.decode("utf-8", errors="ignore"), format="file")
        return content, self._get_file_info(content_type)

    # Arms
    def export_arms(self, format: str = "php", arms: Optional[list] = None) -> Any:
        """Export the arms of a longitudinal project, optionally limited to the given arm numbers."""
        data = self._create_data("arm")
        data["arms"] = args.process_arms_argument(arms)
        return self._export(data, format)

    def import_arms(self, arms: Any, format: str = "php", override: bool = False) -> int:
        """
        Import arms into a longitudinal project.

        Args:
            arms (Any): The arms to import. A list of dicts with 'arm_num' and 'name' keys for 'php' format.
            format (str, optional): The format of the arms data. Defaults to 'php'.
            override (bool, optional): If True, all existing arms are deleted first. Defaults to False.

        Returns:
            int: The number of arms imported.
        """
        data = self._create_data("arm", action="import")
        data["override"] = args.process_override_argument(override)
        return self._import(data, arms, "arms", format)

    def delete_arms(self, arms: list) -> int:
        """Delete the specified arms (and their events and data). Returns the number of arms deleted."""
        data = self._create_data("arm", action="delete")
        data["arms"] = args.process_arms_argument(arms, required=True)
        return self._delete(data)

    # Data access groups
    def export_dags(self, format: str = "php") -> Any:
        return self._export(self._create_data("dag"), format)

    def import_dags(self, dags: Any, format: str = "php") -> int:
        return self._import(self._create_data("dag", action="import"), dags, "dags", format)

    def delete_dags(self, dags: list) -> int:
        data = self._create_data("dag", action="delete")
        data["dags"] = args.process_dags_argument(dags, required=True)
        return self._delete(data)

    def switch_dag(self, dag: str) -> int:
        """Switch the DAG of the user that owns the API token. Returns 1 on success."""
        data = self._create_data("dag", action="switch")
        data["dag"] = args.process_dag_argument(dag, required=True)
        result = self._call(data)
        if str(result).strip() != "1":
            raise RedCapError(f"Error switching to DAG '{dag}': {result}.", ErrorCode.INVALID_ARGUMENT)
        return 1

    def export_user_dag_assignment(self, format: str = "php") -> Any:
        return self._export(self._create_data("userDagMapping"), format)

    def import_user_dag_assignment(self, dag_assignments: Any, format: str = "php") -> int:
        data = self._create_data("userDagMapping", action="import")
        return self._import(data, dag_assignments, "dagAssignments", format)

    # Events
    def export_events(self, format: str = "php", arms: Optional[list] = None) -> Any:
        data = self._create_data("event")
        data["arms"] = args.process_arms_argument(arms)
        return self._export(data, format)

    def import_events(self, events: Any, format: str = "php", override: bool = False) -> int:
        data = self._create_data("event", action="import")
        data["override"] = args.process_override_argument(override)
        return self._import(data, events, "events", format)

    def delete_events(self, events: list) -> int:
        data = self._create_data("event", action="delete")
        data["events"] = args.process_events_argument(events, required=True)
        return self._delete(data)

    def export_field_names(self, format: str = "php", field: Optional[str] = None) -> Any:
        """
        Export the names REDCap uses for exported fields, which differ from the metadata
        field names for checkboxes (one export field per choice).

        Args:
            format (str, optional): The output format. Defaults to 'php'.
            field (Optional[str], optional): Limit the export to one metadata field. Defaults to None.

        Returns:
            Any: For 'php', a list of dicts with 'original_field_name', 'choice_value'
                and 'export_field_name' keys.
        """
        data = self._create_data("exportFieldNames")
        data["field"] = args.process_field_argument(field, required=False)
        return self._export(data, format)

    # Files attached to records
    def export_file(
            self,
            record_id: Union[str, int],
            field: str,
            event: Optional[str] = None,
            repeat_instance: Optional[int] = None
    ) -> tuple[bytes, dict]:
        """
        Export a file stored in a record.

        Args:
            record_id (Union[str, int]): The record that contains the file.
            field (str): The file upload field.
            event (Optional[str], optional): The unique event name, for longitudinal projects. Defaults to None.
            repeat_instance (Optional[int], optional): The instance for repeating forms or events. Defaults to None.

        Returns:
            tuple[bytes, dict]: The contents of the file and a dict with the 'mime_type', 'name'
                and 'charset' parsed from the response content type.
        """
        data = self._create_data("file", action="export")
        data["record"] = args.process_record_id_argument(record_id)
        data["field"] = args.process_field_argument(field)
        data["event"] = args.process_event_argument(event)
        data["repeat_instance"] = args.process_repeat_instance_argument(repeat_instance)
        return self._export_file_content(data)

    def import_file(
            self,
            filename: str,
            record_id: Union[str, int],
            field: str,
            event: Optional[str] = None,
            repeat_instance: Optional[int] = None
    ) -> None:
        """Upload a file into a file upload field of a record."""
        data = self._create_data("file", action="import")
        filename = args.process_filename_argument(filename)
        data["record"] = args.process_record_id_argument(record_id)
        data["field"] = args.process_field_argument(field)
        data["event"] = args.process_event_argument(event)
        data["repeat_instance"] = args.process_repeat_instance_argument(repeat_instance)
        result = self.request_util.call_with_file(data=self._flatten_data(data), file_path=filename)
        self.process_non_export_result(result)

    def delete_file(
            self,
            record_id: Union[str, int],
            field: str,
            event: Optional[str] = None,
            repeat_instance: Optional[int] = None
    ) -> str:
        data = self._create_data("file", action="delete")
        data["record"] = args.process_record_id_argument(record_id)
        data["field"] = args.process_field_argument(field)
        data["event"] = args.process_event_argument(event)
        data["repeat_instance"] = args.process_repeat_instance_argument(repeat_instance)
        return self.process_non_export_result(self._call(data))

    # File repository
    def create_file_repository_folder(
            self,
            name: str,
            parent_folder_id: Optional[int] = None,
            dag_id: Optional[int] = None,
            role_id: Optional[int] = None
    ) -> Optional[int]:
        """
        Create a folder in the project's file repository.

        Args:
            name (str): The name of the folder.
            parent_folder_id (Optional[int], optional): The folder to create it in; the top level if None.
            dag_id (Optional[int], optional): Restrict access to a data access group. Defaults to None.
            role_id (Optional[int], optional): Restrict access to a user role. Defaults to None.

        Returns:
            Optional[int]: The ID of the new folder, or None if REDCap didn't return one.
        """
        data = self._create_data("fileRepository", action="createFolder")
        data["format"] = "json"
        data["name"] = name
        data["folder_id"] = args.process_folder_id_argument(parent_folder_id)
        data["dag_id"] = args.process_dag_id_argument(dag_id)
        data["role_id"] = args.process_role_id_argument(role_id)
        result = self.process_non_export_result(self._call(data))
        try:
            folders = json.loads(result)
        except ValueError:
            return None
        if isinstance(folders, list) and len(folders) == 1 and "folder_id" in folders[0]:
            return int(folders[0]["folder_id"])
        return None

    def export_file_repository_list(self, format: str = "php", folder_id: Optional[int] = None) -> Any:
        data = self._create_data("fileRepository", action="list")
        data["folder_id"] = args.process_folder_id_argument(folder_id)
        return self._export(data, format)

    def export_file_repository_file(self, doc_id: int) -> tuple[bytes, dict]:
        """Export a file from the file repository. Returns the contents and file info like export_file."""
        data = self._create_data("fileRepository", action="export")
        data["doc_id"] = args.process_doc_id_argument(doc_id)
        return self._export_file_content(data)

    def import_file_repository_file(self, filename: str, folder_id: Optional[int] = None) -> None:
        data = self._create_data("fileRepository", action="import")
        filename = args.process_filename_argument(filename)
        data["folder_id"] = args.process_folder_id_argument(folder_id)
        result = self.request_util.call_with_file(data=self._flatten_data(data), file_path=filename)
        self.process_non_export_result(result)

    def delete_file_repository_file(self, doc_id: int) -> str:
        data = self._create_data("fileRepository", action="delete")
        data["doc_id"] = args.process_doc_id_argument(doc_id)
        return self.process_non_export_result(self._call(data))

    # Instruments
    def export_instruments(self, format: str = "php") -> Any:
        """
        Export the instruments (forms) of the project.

        Args:
            format (str, optional): The output format. Defaults to 'php'.

        Returns:
            Any: For 'php', a dict that maps instrument name to instrument label, in project order.
        """
        instruments = self._export(self._create_data("instrument"), format)
        # The format was validated by _export
        if (format or "php").strip().lower() == "php":
            return {
                instrument["instrument_name"]: instrument["instrument_label"]
                for instrument in instruments
            }
        return instruments

    def export_pdf_file_of_instruments(
            self,
            file: Optional[str] = None,
            record_id: Optional[Union[str, int]] = None,
            event: Optional[str] = None,
            form: Optional[str] = None,
            all_records: Optional[bool] = None,
            compact_display: Optional[bool] = None,
            repeat_instance: Optional[int] = None
    ) -> bytes:
        """
        Export a PDF of instruments, blank or filled in with record data.

        Args:
            file (Optional[str], optional): If set, the PDF is also written to this file. Defaults to None.
            record_id (Optional[Union[str, int]], optional): The record to fill in the PDF with. Defaults to None.
            event (Optional[str], optional): The event, for longitudinal projects. Defaults to None.
            form (Optional[str], optional): The instrument; all instruments if not set. Defaults to None.
            all_records (Optional[bool], optional): Export all records. Defaults to None.
            compact_display (Optional[bool], optional): Leave out unanswered fields. Defaults to None.
            repeat_instance (Optional[int], optional): The repeat instance. Defaults to None.

        Returns:
            bytes: The PDF contents.
        """
        data = self._create_data("pdf")
        file = args.process_file_argument(file)
        data["record"] = args.process_record_id_argument(record_id, required=False)
        data["event"] = args.process_event_argument(event)
        data["instrument"] = args.process_form_argument(form)
        # Any value for allRecords makes REDCap export all records, so only send it when True
        data["allRecords"] = True if args.process_boolean_argument(all_records, "allRecords") else None
        data["compactDisplay"] = args.process_boolean_argument(compact_display, "compactDisplay")
        data["repeat_instance"] = args.process_repeat_instance_argument(repeat_instance)
        content, _ = self._export_file_content(data)
        if file:
            FileUtil.write_bytes_to_file(file, content)
        return content

    def export_instrument_event_mappings(self, format: str = "php", arms: Optional[list] = None) -> Any:
        data = self._create_data("formEventMapping")
        data["arms"] = args.process_arms_argument(arms)
        return self._export(data, format)

    def import_instrument_event_mappings(self, mappings: Any, format: str = "php") -> int:
        data = self._create_data("formEventMapping", action="import")
        return self._import(data, mappings, "mappings", format)

    def export_logging(
            self,
            format: str = "php",
            log_type: Optional[str] = None,
            username: Optional[str] = None,
            record_id: Optional[Union[str, int]] = None,
            dag: Optional[str] = None,
            begin_time: Optional[str] = None,
            end_time: Optional[str] = None
    ) -> Any:
        """
        Export the project's audit log.

        Args:
            format (str, optional): The output format. Defaults to 'php'.
            log_type (Optional[str], optional): One of the REDCap log types, e.g. 'record_add'. Defaults to None.
            username (Optional[str], optional): Only entries for this user. Defaults to None.
            record_id (Optional[Union[str, int]], optional): Only entries for this record. Defaults to None.
            dag (Optional[str], optional): Only entries for this data access group. Defaults to None.
            begin_time (Optional[str], optional): 'YYYY-MM-DD HH:MM:SS' start of the range. Defaults to None.
            end_time (Optional[str], optional): 'YYYY-MM-DD HH:MM:SS' end of the range. Defaults to None.

        Returns:
            Any: The log entries.
        """
        data = self._create_data("log")
        data["logtype"] = args.process_log_type_argument(log_type)
        data["user"] = args.process_user_argument(username)
        data["record"] = args.process_record_id_argument(record_id, required=False)
        data["dag"] = args.process_dag_argument(dag)
        data["beginTime"] = args.process_date_range_argument(begin_time)
        data["endTime"] = args.process_date_range_argument(end_time)
        return self._export(data, format)

    # Metadata
    def export_metadata(self, format: str = "php", fields: Optional[list] = None, forms: Optional[list] = None) -> Any:
        """Export the data dictionary, optionally limited to the given fields and forms."""
        data = self._create_data("metadata")
        data["fields"] = args.process_fields_argument(fields)
        data["forms"] = args.process_forms_argument(forms)
        return self._export(data, format)

    def import_metadata(self, metadata: Any, format: str = "php") -> int:
        """Replace the data dictionary of a development project. Returns the number of fields imported."""
        return self._import(self._create_data("metadata"), metadata, "metadata", format)

    # Project information
    def export_project_info(self, format: str = "php") -> Any:
        return self._export(self._create_data("project"), format)

    def import_project_info(self, project_info: Any, format: str = "php") -> int:
        return self._import(self._create_data("project_settings"), project_info, "projectInfo", format)

    def export_project_xml(
            self,
            return_metadata_only: bool = False,
            record_ids: Optional[list] = None,
            fields: Optional[list] = None,
            events: Optional[list] = None,
            filter_logic: Optional[str] = None,
            export_survey_fields: bool = False,
            export_data_access_groups: bool = False,
            export_files: bool = False
    ) -> str:
        """Export the project as a CDISC ODM XML string, with or without its data."""
        data = self._create_data("project_xml")
        data["returnMetadataOnly"] = args.process_boolean_argument(return_metadata_only, "returnMetadataOnly")
        data["records"] = args.process_record_ids_argument(record_ids)
        data["fields"] = args.process_fields_argument(fields)
        data["events"] = args.process_events_argument(events)
        data["filterLogic"] = args.process_filter_logic_argument(filter_logic)
        data["exportSurveyFields"] = args.process_boolean_argument(export_survey_fields, "exportSurveyFields")
        data["exportDataAccessGroups"] = args.process_boolean_argument(
            export_data_access_groups, "exportDataAccessGroups"
        )
        data["exportFiles"] = args.process_boolean_argument(export_files, "exportFiles")
        return self.process_export_result(self._call(data), format="xml")

    def generate_next_record_name(self) -> str:
        """Get the next record name REDCap would assign in an auto-numbered project."""
        return self.process_export_result(self._call(self._create_data("generateNextRecordName")), format="number")

    # Records
    def export_records(
            self,
            format: str = "php",
            type: str = "flat",
            record_ids: Optional[list] = None,
            fields: Optional[list] = None,
            forms: Optional[list] = None,
            events: Optional[list] = None,
            filter_logic: Optional[str] = None,
            raw_or_label: str = "raw",
            raw_or_label_headers: str = "raw",
            export_checkbox_label: bool = False,
            export_survey_fields: bool = False,
            export_data_access_groups: bool = False,
            date_range_begin: Optional[str] = None,
            date_range_end: Optional[str] = None,
            csv_delimiter: str = ",",
            decimal_character: Optional[str] = None,
            export_blank_for_gray_form_status: bool = False
    ) -> Any:
        """
        Export records from the project.

        Args:
            format (str, optional): One of 'php', 'csv', 'json', 'xml' or 'odm'. Defaults to 'php'.
            type (str, optional): 'flat' for one row per record (event/instance), 'eav' for
                one row per field value. Defaults to 'flat'.
            record_ids (Optional[list], optional): Only export these records. Defaults to None.
            fields (Optional[list], optional): Only export these fields. Defaults to None.
            forms (Optional[list], optional): Only export fields in these forms. Defaults to None.
            events (Optional[list], optional): Only export these events. Defaults to None.
            filter_logic (Optional[str], optional): REDCap logic that records must match. Defaults to None.
            raw_or_label (str, optional): Export raw values or labels. Defaults to 'raw'.
            raw_or_label_headers (str, optional): Export raw variable names or labels for CSV headers.
                Defaults to 'raw'.
            export_checkbox_label (bool, optional): Export checkbox labels instead of 'Checked'. Defaults to False.
            export_survey_fields (bool, optional): Include survey identifier and timestamp fields. Defaults to False.
            export_data_access_groups (bool, optional): Include the data access group field. Defaults to False.
            date_range_begin (Optional[str], optional): Only records changed after 'YYYY-MM-DD HH:MM:SS'.
            date_range_end (Optional[str], optional): Only records changed before 'YYYY-MM-DD HH:MM:SS'.
            csv_delimiter (str, optional): Delimiter used for the 'csv' format. Defaults to ','.
            decimal_character (Optional[str], optional): ',' or '.' for numbers. Defaults to None.
            export_blank_for_gray_form_status (bool, optional): Export blank instead of 0 for
                forms that have no data. Defaults to False.

        Returns:
            Any: For 'php', a list of dicts, one per record row.
        """
        data = self._create_data("record")
        data["type"] = args.process_type_argument(type)
        data["records"] = args.process_record_ids_argument(record_ids)
        data["fields"] = args.process_fields_argument(fields)
        data["forms"] = args.process_forms_argument(forms)
        data["events"] = args.process_events_argument(events)
        data["rawOrLabel"] = args.process_raw_or_label_argument(raw_or_label)
        data["rawOrLabelHeaders"] = args.process_raw_or_label_argument(raw_or_label_headers, "rawOrLabelHeaders")
        data["exportCheckboxLabel"] = args.process_boolean_argument(export_checkbox_label, "exportCheckboxLabel")
        data["exportSurveyFields"] = args.process_boolean_argument(export_survey_fields, "exportSurveyFields")
        data["exportDataAccessGroups"] = args.process_boolean_argument(
            export_data_access_groups, "exportDataAccessGroups"
        )
        data["filterLogic"] = args.process_filter_logic_argument(filter_logic)
        data["dateRangeBegin"] = args.process_date_range_argument(date_range_begin)
        data["dateRangeEnd"] = args.process_date_range_argument(date_range_end)
        if str(format).strip().lower() == "csv":
            data["csvDelimiter"] = args.process_csv_delimiter_argument(csv_delimiter, "csv")
        data["decimalCharacter"] = args.process_decimal_character_argument(decimal_character)
        data["exportBlankForGrayFormStatus"] = args.process_boolean_argument(
            export_blank_for_gray_form_status, "exportBlankForGrayFormStatus"
        )
        return self._export(data, format, args.LEGAL_RECORD_FORMATS)

    EXPORT_RECORDS_AP_ARGUMENTS = {
        "format": "format",
        "type": "type",
        "recordIds": "record_ids",
        "fields": "fields",
        "forms": "forms",
        "events": "events",
        "filterLogic": "filter_logic",
        "rawOrLabel": "raw_or_label",
        "rawOrLabelHeaders": "raw_or_label_headers",
        "exportCheckboxLabel": "export_checkbox_label",
        "exportSurveyFields": "export_survey_fields",
        "exportDataAccessGroups": "export_data_access_groups",
        "dateRangeBegin": "date_range_begin",
        "dateRangeEnd": "date_range_end",
        "csvDelimiter": "csv_delimiter",
        "decimalCharacter": "decimal_character",
        "exportBlankForGrayFormStatus": "export_blank_for_gray_form_status",
    }

    def export_records_ap(self, *arguments: Any) -> Any:
        """
        Export records using a single dict of REDCap API style argument names, for example
        {'recordIds': ['1', '2'], 'filterLogic': '[age] > 30'}.

        Raises:
            RedCapError: TOO_MANY_ARGUMENTS if more than one argument is given, INVALID_ARGUMENT
                for a non-dict argument or an unrecognized argument name.
        """
        if len(arguments) > 1:
            raise RedCapError(
                f"export_records_ap() was called with {len(arguments)} arguments, but it accepts at most 1 argument.",
                ErrorCode.TOO_MANY_ARGUMENTS
            )
        array_parameter = arguments[0] if arguments else None
        if array_parameter is None:
            array_parameter = {}
        elif not isinstance(array_parameter, dict):
            raise RedCapError(
                f'The argument has type "{type(array_parameter).__name__}", but it needs to be a dict.',
                ErrorCode.INVALID_ARGUMENT
            )
        kwargs = {}
        for number, (name, value) in enumerate(array_parameter.items(), start=1):
            if not isinstance(name, str):
                raise RedCapError(
                    f"Argument name number {number} in the dict argument has type {type(name).__name__},"
                    " but it needs to be a string.",
                    ErrorCode.INVALID_ARGUMENT
                )
            if name not in self.EXPORT_RECORDS_AP_ARGUMENTS:
                raise RedCapError(f'Unrecognized argument name "{name}".', ErrorCode.INVALID_ARGUMENT)
            if value is not None:
                kwargs[self.EXPORT_RECORDS_AP_ARGUMENTS[name]] = value
        return self.export_records(**kwargs)

    def import_records(
            self,
            records: Any,
            format: str = "php",
            type: str = "flat",
            overwrite_behavior: str = "normal",
            date_format: str = "YMD",
            return_content: str = "count",
            force_auto_number: bool = False,
            csv_delimiter: str = ","
    ) -> Any:
        """
        Import records into the project.

        Args:
            records (Any): The records; a list of dicts for the 'php' format, a string otherwise.
            format (str, optional): One of 'php', 'csv', 'json', 'xml' or 'odm'. Defaults to 'php'.
            type (str, optional): 'flat' or 'eav'. Defaults to 'flat'.
            overwrite_behavior (str, optional): 'normal' ignores blank values, 'overwrite' erases
                existing values with blanks. Defaults to 'normal'.
            date_format (str, optional): 'MDY', 'DMY' or 'YMD'. Defaults to 'YMD'.
            return_content (str, optional): 'count', 'ids', or 'auto_ids' when force_auto_number is set.
                Defaults to 'count'.
            force_auto_number (bool, optional): Have REDCap assign new record IDs. Defaults to False.
            csv_delimiter (str, optional): Delimiter used for the 'csv' format. Defaults to ','.

        Returns:
            Any: The number of records imported, or the imported record IDs.
        """
        data = self._create_data("record")
        format = format or "php"
        data["format"] = args.process_format_argument(format, args.LEGAL_RECORD_FORMATS)
        if data["format"] == "csv":
            data["csvDelimiter"] = args.process_csv_delimiter_argument(csv_delimiter, "csv")
        data["data"] = args.process_import_data_argument(records, "records", format.strip().lower())
        data["type"] = args.process_type_argument(type)
        data["overwriteBehavior"] = args.process_overwrite_behavior_argument(overwrite_behavior)
        data["forceAutoNumber"] = args.process_boolean_argument(force_auto_number, "forceAutoNumber")
        data["returnContent"] = args.process_return_content_argument(return_content, force_auto_number)
        data["dateFormat"] = args.process_date_format_argument(date_format)
        result = self.process_non_export_result(self._call(data))
        try:
            decoded = json.loads(result)
        except ValueError as e:
            raise RedCapError(
                f'JSON error "{e}" while processing import return value: "{result}".',
                ErrorCode.JSON_ERROR
            ) from e
        if isinstance(decoded, dict) and "count" in decoded:
            return decoded["count"]
        return decoded

    def delete_records(
            self,
            record_ids: list,
            arm: Optional[Union[str, int]] = None,
            form: Optional[str] = None,
            event: Optional[str] = None,
            repeat_instance: Optional[int] = None,
            delete_logging: Optional[int] = None
    ) -> int:
        """Delete records, or just a form, event or instance of them. Returns the number of records deleted."""
        data = self._create_data("record", action="delete")
        data["records"] = args.process_record_ids_argument(record_ids)
        data["arm"] = args.process_arm_argument(arm)
        data["instrument"] = args.process_form_argument(form)
        data["event"] = args.process_event_argument(event)
        data["repeat_instance"] = args.process_repeat_instance_argument(repeat_instance)
        data["delete_logging"] = args.process_delete_logging_argument(delete_logging)
        return self._delete(data)

    def rename_record(
            self,
            record_id: Union[str, int],
            new_record_id: Union[str, int],
            arm: Optional[Union[str, int]] = None
    ) -> int:
        data = self._create_data("record", action="rename")
        data["record"] = args.process_record_id_argument(record_id)
        data["new_record_name"] = args.process_record_id_argument(new_record_id)
        data["arm"] = args.process_arm_argument(arm)
        result = self._call(data)
        if str(result).strip() != "1":
            raise RedCapError(f"Error renaming record '{record_id}': {result}.", ErrorCode.INVALID_ARGUMENT)
        return 1

    # Repeating instruments and events
    def export_repeating_instruments_and_events(self, format: str = "php") -> Any:
        return self._export(self._create_data("repeatingFormsEvents"), format)

    def import_repeating_instruments_and_events(self, forms_events: Any, format: str = "php") -> int:
        data = self._create_data("repeatingFormsEvents", action="import")
        return self._import(data, forms_events, "formsEvents", format)

    def export_redcap_version(self) -> str:
        data = {"token": self.api_token, "content": "version"}
        return self.process_export_result(self._call(data), format="string")

    def export_reports(
            self,
            report_id: Union[str, int],
            format: str = "php",
            raw_or_label: str = "raw",
            raw_or_label_headers: str = "raw",
            export_checkbox_label: bool = False,
            csv_delimiter: str = ",",
            decimal_character: Optional[str] = None
    ) -> Any:
        """Export the records of a report defined in the project."""
        data = self._create_data("report")
        data["report_id"] = args.process_report_id_argument(report_id)
        data["rawOrLabel"] = args.process_raw_or_label_argument(raw_or_label)
        data["rawOrLabelHeaders"] = args.process_raw_or_label_argument(raw_or_label_headers, "rawOrLabelHeaders")
        data["exportCheckboxLabel"] = args.process_boolean_argument(export_checkbox_label, "exportCheckboxLabel")
        if str(format).strip().lower() == "csv":
            data["csvDelimiter"] = args.process_csv_delimiter_argument(csv_delimiter, "csv")
        data["decimalCharacter"] = args.process_decimal_character_argument(decimal_character)
        return self._export(data, format)

    # Surveys
    def _survey_data(
            self,
            content: str,
            record_id: Union[str, int],
            form: str,
            event: Optional[str],
            repeat_instance: Optional[int]
    ) -> dict:
        data = self._create_data(content)
        data["record"] = args.process_record_id_argument(record_id)
        data["instrument"] = args.process_form_argument(form, required=True)
        data["event"] = args.process_event_argument(event)
        data["repeat_instance"] = args.process_repeat_instance_argument(repeat_instance)
        return data

    def export_survey_link(
            self,
            record_id: Union[str, int],
            form: str,
            event: Optional[str] = None,
            repeat_instance: Optional[int] = None
    ) -> str:
        data = self._survey_data("surveyLink", record_id, form, event, repeat_instance)
        return self.process_export_result(self._call(data), format="string")

    def export_survey_participants(self, form: str, format: str = "php", event: Optional[str] = None) -> Any:
        data = self._create_data("participantList")
        data["instrument"] = args.process_form_argument(form, required=True)
        data["event"] = args.process_event_argument(event)
        return self._export(data, format)

    def export_survey_queue_link(self, record_id: Union[str, int]) -> str:
        data = self._create_data("surveyQueueLink")
        data["record"] = args.process_record_id_argument(record_id)
        return self.process_export_result(self._call(data), format="string")

    def export_survey_return_code(
            self,
            record_id: Union[str, int],
            form: str,
            event: Optional[str] = None,
            repeat_instance: Optional[int] = None
    ) -> str:
        data = self._survey_data("surveyReturnCode", record_id, form, event, repeat_instance)
        return self.process_export_result(self._call(data), format="string")

    # Users and user roles
    def export_users(self, format: str = "php") -> Any:
        return self._export(self._create_data("user"), format)

    def import_users(self, users: Any, format: str = "php") -> int:
        return self._import(self._create_data("user"), users, "users", format)

    def delete_users(self, users: list) -> int:
        data = self._create_data("user", action="delete")
        data["users"] = args.process_users_argument(users)
        return self._delete(data)

    def export_user_roles(self, format: str = "php") -> Any:
        return self._export(self._create_data("userRole"), format)

    def import_user_roles(self, user_roles: Any, format: str = "php") -> int:
        return self._import(self._create_data("userRole"), user_roles, "userRoles", format)

    def delete_user_roles(self, user_roles: list) -> int:
        data = self._create_data("userRole", action="delete")
        data["roles"] = args.process_user_roles_argument(user_roles)
        return self._delete(data)

    def export_user_role_assignments(self, format: str = "php") -> Any:
        return self._export(self._create_data("userRoleMapping"), format)

    def import_user_role_assignments(self, user_role_assignments: Any, format: str = "php") -> int:
        data = self._create_data("userRoleMapping", action="import")
        return self._import(data, user_role_assignments, "userRoleMapping", format)

    # Utility methods
    def get_record_id_batches(
            self,
            batch_size: int = ARG_DEFAULTS["batch_size"],
            filter_logic: Optional[str] = None,
            record_id_field_name: Optional[str] = None
    ) -> list[list]:
        """
        Get the project's record IDs split into batches, for exporting records a batch at a time.

        Args:
            batch_size (int, optional): The maximum number of record IDs per batch. Defaults to 100.
            filter_logic (Optional[str], optional): Only include records that match this logic. Defaults to None.
            record_id_field_name (Optional[str], optional): The record ID field; looked up from
                the metadata if not given. Defaults to None.

        Returns:
            list[list]: The batches of unique record IDs, in export order.
        """
        if batch_size is None:
            raise RedCapError("The number of batches was not specified.", ErrorCode.INVALID_ARGUMENT)
        if not isinstance(batch_size, int) or isinstance(batch_size, bool):
            raise RedCapError(
                f"The batch size argument has type '{type(batch_size).__name__}', but it should have type int.",
                ErrorCode.INVALID_ARGUMENT
            )
        if batch_size < 1:
            raise RedCapError(
                "The batch size argument is less than 1. It needs to be at least 1.", ErrorCode.INVALID_ARGUMENT
            )
        filter_logic = args.process_filter_logic_argument(filter_logic)
        if record_id_field_name is None:
            record_id_field_name = self.get_record_id_field_name()
        records = self.export_records_ap({"fields": [record_id_field_name], "filterLogic": filter_logic})
        record_ids = list(dict.fromkeys(record[record_id_field_name] for record in records))
        logging.debug(f"Splitting {len(record_ids)} record IDs into batches of {batch_size}")
        return [record_ids[position:position + batch_size] for position in range(0, len(record_ids), batch_size)]

    def get_record_id_field_name(self) -> str:
        """The record ID field is the first field in the metadata."""
        return self.export_metadata()[0]["field_name"]

    def get_api_url(self) -> str:
        return self.request_util.url

    def get_api_token(self) -> str:
        return self.api_token

    @staticmethod
    def get_phpcap_version() -> str:
        """Version of this API client."""
        return VERSION
