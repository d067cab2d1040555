import json
import pathlib
from typing import Any, Callable, Optional
from urllib.parse import parse_qsl

import responses
from requests import PreparedRequest

from redcap_etl.utils.redcap_utils.etl_redcap_project import EtlRedCapProject
from redcap_etl.utils.task_config import TaskConfig

RESOURCES_FILE = pathlib.Path(__file__).parent.parent.joinpath("unit_tests", "redcap_resources.json")


def load_resources() -> dict:
    return json.loads(RESOURCES_FILE.read_text())


def form_values_matcher(form_values: dict) -> Callable[[PreparedRequest], tuple[bool, str]]:
    """Match requests whose form body contains the given values; other form values are ignored."""
    def match(request: PreparedRequest) -> tuple[bool, str]:
        body = request.body or ""
        if isinstance(body, bytes):
            body = body.decode("utf-8")
        request_values = dict(parse_qsl(body, keep_blank_values=True))
        for key, value in form_values.items():
            if request_values.get(key) != str(value):
                return False, f"Form value {key}={request_values.get(key)!r} doesn't match {value!r}"
        return True, ""
    return match


def mock_api_response(url: str, content: str, response: Any, status: int = 200, extra_params: Optional[dict] = None):
    """Register a REDCap API response for calls with the given content (and optionally other form values)."""
    form_values = {"content": content}
    if extra_params:
        form_values.update(extra_params)
    body = response if isinstance(response, str) else json.dumps(response)
    responses.post(
        url=url,
        body=body,
        status=status,
        content_type='application/json',
        match=[form_values_matcher(form_values)]
    )


class EtlRedCapProjectMock(EtlRedCapProject):
    """EtlRedCapProject that returns project data from the JSON resources instead of calling REDCap."""

    def __init__(self, project_name: str, resources: Optional[dict] = None):
        resources = resources or load_resources()
        super().__init__(request_util=None, api_token=resources["api_token"])
        self.project_data = resources["projects"][project_name]

    def export_project_info(self, format: str = "php") -> Any:
        return self.project_data["project_info"]

    def export_instruments(self, format: str = "php") -> Any:
        return {
            instrument["instrument_name"]: instrument["instrument_label"]
            for instrument in self.project_data["instruments"]
        }

    def export_metadata(self, format: str = "php", fields: Optional[list] = None, forms: Optional[list] = None) -> Any:
        return self.project_data["metadata"]

    def export_field_names(self, format: str = "php", field: Optional[str] = None) -> Any:
        return self.project_data["field_names"]

    def export_instrument_event_mappings(self, format: str = "php", arms: Optional[list] = None) -> Any:
        return self.project_data.get("instrument_event_mappings", [])

    def export_repeating_instruments_and_events(self, format: str = "php") -> Any:
        return self.project_data.get("repeating_instruments_and_events", [])

    def export_records_ap(self, *arguments: Any) -> Any:
        argument_dict = arguments[0] if arguments else {}
        records = self.project_data["records"]
        record_ids = argument_dict.get("recordIds")
        if record_ids:
            records = [record for record in records if record["record_id"] in record_ids]
        fields = argument_dict.get("fields")
        if fields:
            records = [{field: record[field] for field in fields} for record in records]
        return records


def create_task_config(db_connection: str, rules: Optional[list[str]] = None, **properties: Any) -> TaskConfig:
    """Create a TaskConfig for the test REDCap API with text transformation rules (or auto-generated rules)."""
    resources = load_resources()
    task_properties = {
        "redcap_api_url": resources["api_url"],
        "data_source_api_token": resources["api_token"],
        "db_connection": db_connection,
        "print_logging": False,
    }
    if rules is not None:
        task_properties["transform_rules_source"] = "1"
        task_properties["transform_rules_text"] = rules
    else:
        task_properties["transform_rules_source"] = "3"
    task_properties.update(properties)
    return TaskConfig(task_properties)
