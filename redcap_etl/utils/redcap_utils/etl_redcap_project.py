import logging
from typing import Optional

from ..exceptions import EtlError, EtlErrorCode
from .redcap_project import RedCapProject


class EtlRedCapProject(RedCapProject):
    """REDCap project with the cached lookups the ETL process needs."""

    def __init__(self, *args, **kwargs):  # type: ignore[no-untyped-def]
        super().__init__(*args, **kwargs)
        self._metadata: Optional[list[dict]] = None
        self._project_info: Optional[dict] = None
        self._field_type_map: Optional[dict[str, str]] = None
        self._primary_key: Optional[str] = None
        self._field_names: Optional[dict[str, int]] = None

    def get_metadata(self) -> list[dict]:
        if self._metadata is None:
            self._metadata = self.export_metadata()
        return self._metadata

    def get_project_info(self) -> dict:
        if self._project_info is None:
            self._project_info = self.export_project_info()
        return self._project_info

    def get_field_type_map(self) -> dict[str, str]:
        if self._field_type_map is None:
            self._field_type_map = {field["field_name"]: field["field_type"] for field in self.get_metadata()}
        return self._field_type_map

    def get_field_type(self, field_name: str) -> str:
        """Get the REDCap field type (text, radio, checkbox, ...) of a field, or '' if it isn't in the metadata."""
        return self.get_field_type_map().get(field_name, "")

    def is_longitudinal(self) -> bool:
        return self.get_project_info().get("is_longitudinal") in (1, "1")

    def get_primary_key(self) -> str:
        if self._primary_key is None:
            self._primary_key = self.get_record_id_field_name()
        return self._primary_key

    def get_record_id_field_name(self) -> str:
        return self.get_metadata()[0]["field_name"]

    def get_lookup_choices(self) -> dict[str, dict[str, str]]:
        """
        Get the choices of all multiple choice (radio, dropdown and checkbox) fields.

        Returns:
            dict[str, dict[str, str]]: Field name to a map of choice value to choice label.

        Raises:
            EtlError: INPUT_ERROR if a choice has no label.
        """
        results = {}
        for field in self.get_metadata():
            if field["field_type"] not in ("radio", "dropdown", "checkbox"):
                continue
            field_results = {}
            choices = [choice.strip() for choice in (field.get("select_choices_or_calculations") or "").split("|")]
            for choice in choices:
                if choice == "":
                    continue
                if "," not in choice:
                    raise EtlError(
                        f'Field "{field["field_name"]}" in form "{field["form_name"]}"'
                        f' does not have a label for choice value "{choice}".',
                        EtlErrorCode.INPUT_ERROR
                    )
                value, label = [part.strip() for part in choice.split(",", 1)]
                field_results[value] = label
            results[field["field_name"]] = field_results
        return results

    def get_field_names(self) -> dict[str, int]:
        """Get the exported field names, plus file fields which aren't included in the field name export."""
        if not self._field_names:
            self._field_names = {field["export_field_name"]: 1 for field in self.export_field_names()}
            for field in self.get_metadata():
                if field["field_type"] == "file":
                    self._field_names[field["field_name"]] = 1
        return self._field_names

    def get_record_batch(self, record_ids: list, filter_logic: Optional[str] = None) -> dict[str, list[dict]]:
        """
        Export the records for a batch of record IDs.

        Args:
            record_ids (list): The record IDs in the batch.
            filter_logic (Optional[str], optional): REDCap logic that records must match. Defaults to None.

        Returns:
            dict[str, list[dict]]: Record ID to the rows exported for that record, in export order.
        """
        primary_key = self.get_primary_key()
        arguments = {"recordIds": record_ids, "exportSurveyFields": True, "exportDataAccessGroups": True}
        if filter_logic:
            arguments["filterLogic"] = filter_logic
        batch: dict[str, list[dict]] = {}
        for result in self.export_records_ap(arguments):
            batch.setdefault(result[primary_key], []).append(result)
        logging.debug(f"Exported {len(batch)} records for batch of {len(record_ids)} record IDs")
        return batch
