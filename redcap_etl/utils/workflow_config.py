import logging
import os
from typing import Any, Optional, Union

from .exceptions import EtlError, EtlErrorCode
from .task_config import INI_GLOBAL_SECTION, TaskConfig, make_file_properties_absolute, read_ini_file

JSON_WORKFLOW_KEY = "workflow"
JSON_GLOBAL_PROPERTIES_KEY = "global_properties"
JSON_TASKS_KEY = "tasks"
WORKFLOW_NAME = "workflow_name"
TASK_CONFIG_FILE = "task_config_file"


class WorkflowConfig:
    def __init__(
            self,
            properties: Union[str, dict],
            base_dir: Optional[str] = None,
            property_overrides: Optional[dict] = None
    ):
        """
        Configuration of a workflow: one or more ETL tasks that are run together.

        A dict of properties, a JSON file without a "workflow" key and an ini file without
        sections each define a workflow with a single task.

        A JSON workflow file has the form
        {"workflow": {"global_properties": {"workflow_name": ..., ...}, "tasks": [{...}, ...]}}.

        An ini workflow file has its global properties, including workflow_name, before the first
        section, and one section per task. A section can include the properties of a task
        configuration file with task_config_file. From lowest to highest precedence, a task uses the
        properties of its included file, the global properties and the properties of its section.

        Args:
            properties (Union[str, dict]): A .ini or .json configuration file, or a dict of properties.
            base_dir (Optional[str], optional): Directory that relative file paths are relative to.
                Defaults to the configuration file's directory, or the current directory.
            property_overrides (Optional[dict], optional): Properties that replace those of every task.
                Defaults to None.

        Raises:
            EtlError: INPUT_ERROR for invalid workflow files and task configurations.
        """
        self.configuration_file: Optional[str] = None
        self.workflow_name: Optional[str] = None
        self.task_configs: list[TaskConfig] = []
        self.task_names: list[str] = []
        self.global_properties: dict[str, Any] = {}
        self.property_overrides = property_overrides

        if not properties:
            raise EtlError("No configuration was specified.", EtlErrorCode.INPUT_ERROR)
        if isinstance(properties, dict):
            self._add_task(self._create_task_config(properties, base_dir))
            return

        self.configuration_file = properties.strip()
        if not os.path.isfile(self.configuration_file):
            raise EtlError(
                f'The configuration file "{self.configuration_file}" could not be found.', EtlErrorCode.INPUT_ERROR
            )
        self.base_dir = base_dir or os.path.dirname(os.path.abspath(self.configuration_file))
        extension = os.path.splitext(self.configuration_file)[1].lower()
        if extension == ".ini":
            self._parse_ini_file(self.configuration_file)
        elif extension == ".json":
            self._parse_json_file(self.configuration_file)
        else:
            raise EtlError(
                f'The configuration file "{self.configuration_file}" is not a .ini or .json file.',
                EtlErrorCode.INPUT_ERROR
            )
        logging.info(
            f"Workflow '{self.workflow_name or self.configuration_file}' has {len(self.task_configs)} task(s)"
        )

    def _add_task(self, task_config: TaskConfig, task_name: str = "") -> None:
        self.task_configs.append(task_config)
        self.task_names.append(task_name or f"task{len(self.task_configs)}")

    def _get_workflow_name(self, global_properties: dict[str, Any]) -> str:
        workflow_name = global_properties.pop(WORKFLOW_NAME, None)
        if workflow_name is None or str(workflow_name).strip() == "":
            raise EtlError("No workflow name was specified.", EtlErrorCode.INPUT_ERROR)
        return str(workflow_name).strip()

    def _parse_json_file(self, configuration_file: str) -> None:
        config = TaskConfig.get_properties_from_file(configuration_file)
        if JSON_WORKFLOW_KEY not in config:
            self._add_task(self._create_task_config(configuration_file, self.base_dir))
            return

        if len(config) > 1:
            raise EtlError(
                "Non-workflow properties at top-level of workflow configuration.", EtlErrorCode.INPUT_ERROR
            )
        workflow = config[JSON_WORKFLOW_KEY]
        if not isinstance(workflow, dict):
            raise EtlError('The "workflow" property is not an object.', EtlErrorCode.INPUT_ERROR)
        self.global_properties = dict(workflow.get(JSON_GLOBAL_PROPERTIES_KEY) or {})
        self.workflow_name = self._get_workflow_name(self.global_properties)

        tasks = workflow.get(JSON_TASKS_KEY)
        if not tasks:
            raise EtlError("No tasks defined for workflow.", EtlErrorCode.INPUT_ERROR)
        for task_properties in tasks:
            properties = {**self.global_properties, **task_properties}
            self._add_task(self._create_task_config(properties, self.base_dir))

    def _parse_ini_file(self, configuration_file: str) -> None:
        sections = read_ini_file(configuration_file)
        self.global_properties = dict(sections.pop(INI_GLOBAL_SECTION, {}))
        if not sections:
            self._add_task(self._create_task_config(configuration_file, self.base_dir))
            return

        self.workflow_name = self._get_workflow_name(self.global_properties)
        for task_name, section_properties in sections.items():
            section_properties = dict(section_properties)
            file_properties: dict[str, Any] = {}
            task_config_file = section_properties.pop(TASK_CONFIG_FILE, None)
            if task_config_file:
                file_properties = self._get_included_file_properties(task_config_file)
            properties = {**file_properties, **self.global_properties, **section_properties}
            self._add_task(self._create_task_config(properties, self.base_dir), task_name)

    def _get_included_file_properties(self, task_config_file: str) -> dict[str, Any]:
        """Read a task configuration file included in a workflow section. Its file paths are relative to it."""
        task_config_file = os.path.expanduser(task_config_file)
        if not os.path.isabs(task_config_file):
            task_config_file = os.path.join(self.base_dir, task_config_file)
        properties = TaskConfig.get_properties_from_file(task_config_file)
        return make_file_properties_absolute(properties, os.path.dirname(os.path.abspath(task_config_file)))

    def get_first_task_config(self) -> TaskConfig:
        return self.task_configs[0]

    def _create_task_config(self, properties: Union[str, dict], base_dir: Optional[str]) -> TaskConfig:
        return TaskConfig(properties, base_dir=base_dir, property_overrides=self.property_overrides)
