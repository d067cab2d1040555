import logging
from typing import Any, Callable, Optional

from ..exceptions import ErrorCode, RedCapError
from ..request_util import RunRequest
from . import redcap_arguments as args
from .redcap_project import RedCapProject


class RedCap:
    """
    Access to the REDCap instance level API methods that need a super token,
    and a factory for project objects.
    """

    def __init__(self, request_util: RunRequest, super_token: Optional[str] = None):
        """
        Initialize the RedCap class.

        Args:
            request_util (RunRequest): Connection used for API calls.
            super_token (Optional[str], optional): 64 character super token. Only needed
                for creating projects and getting the REDCap version. Defaults to None.
        """
        self.request_util = request_util
        self.super_token = args.process_super_token_argument(super_token)
        self._project_factory: Callable[[RunRequest, str], RedCapProject] = RedCapProject

    @property
    def project_factory(self) -> Callable[[RunRequest, str], RedCapProject]:
        """Callable used to create project objects; called with the connection and the project's API token."""
        return self._project_factory

    @project_factory.setter
    def project_factory(self, factory: Callable[[RunRequest, str], RedCapProject]) -> None:
        if not callable(factory):
            raise RedCapError(
                "The project constructor callback needs to be callable (i.e., be a function), but it isn't.",
                ErrorCode.INVALID_ARGUMENT
            )
        self._project_factory = factory

    def _require_super_token(self) -> str:
        if not self.super_token:
            raise RedCapError("No super token was specified.", ErrorCode.INVALID_ARGUMENT)
        return self.super_token

    def create_project(self, project_data: Any, format: str = "php", odm: Optional[str] = None) -> RedCapProject:
        """
        Create a new REDCap project.

        Args:
            project_data (Any): The project attributes, e.g. {'project_title': 'Test', 'purpose': 1}.
            format (str, optional): The format of project_data. Defaults to 'php'.
            odm (Optional[str], optional): CDISC ODM XML used to set up the project's metadata. Defaults to None.

        Returns:
            RedCapProject: The new project, created with the API token REDCap returned.
        """
        format = format or "php"
        data = {
            "token": self._require_super_token(),
            "content": "project",
            "returnFormat": "json",
            "format": args.process_format_argument(format, args.LEGAL_FORMATS),
            "data": args.process_import_data_argument(project_data, "projectData", format.strip().lower()),
        }
        if odm is not None:
            if not isinstance(odm, str):
                raise RedCapError(
                    f"The value for odm must have type string, but has type: {type(odm).__name__}",
                    ErrorCode.INVALID_ARGUMENT
                )
            data["odm"] = odm
        match = RedCapProject.JSON_RESULT_ERROR_PATTERN.match(api_token := self.request_util.call(data=data))
        if match:
            raise RedCapError(match.group(1), ErrorCode.REDCAP_API_ERROR)
        logging.info("Created new REDCap project")
        return self.project_factory(self.request_util, api_token.strip())

    def get_project(self, api_token: str) -> RedCapProject:
        """Get the project object for an existing project's API token."""
        api_token = args.process_api_token_argument(api_token)
        return self.project_factory(self.request_util, api_token)

    def export_redcap_version(self) -> str:
        data = {"token": self._require_super_token(), "content": "version"}
        return self.request_util.call(data=data)
