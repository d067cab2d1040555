import logging
import time
from typing import Any, Optional

from .database_utils import DbConnection
from .etl_task import EtlTask
from .exceptions import EtlError, EtlErrorCode, RedCapError
from .schema_utils.schema import Schema
from .workflow_config import WorkflowConfig


class Workflow:
    def __init__(
            self,
            workflow_config: WorkflowConfig,
            data_projects: Optional[list[Any]] = None,
            db_connections: Optional[dict[str, DbConnection]] = None
    ):
        """
        Runs the tasks of a workflow. Tasks that load into the same database share one connection and
        one merged schema, so their tables are created once and their keys are added once.

        Args:
            workflow_config (WorkflowConfig): The workflow's configuration.
            data_projects (Optional[list[Any]], optional): The REDCap project of each task, in task order.
                Created from the task configurations if not given. Defaults to None.
            db_connections (Optional[dict[str, DbConnection]], optional): Database ID (connection string)
                to database connection. Created from the task configurations if not given. Defaults to None.
        """
        self.workflow_config = workflow_config
        self.db_connections: dict[str, DbConnection] = dict(db_connections or {})
        self.db_schemas: dict[str, Schema] = {}
        self.db_tasks: dict[str, list[EtlTask]] = {}
        self.tasks: list[EtlTask] = []
        for index, task_config in enumerate(workflow_config.task_configs):
            data_project = data_projects[index] if data_projects else None
            task = EtlTask(
                task_config,
                data_project=data_project,
                task_id=index + 1,
                name=workflow_config.task_names[index]
            )
            self.tasks.append(task)

    def _get_etl_tasks(self) -> list[EtlTask]:
        return [task for task in self.tasks if not task.task_config.is_sql_only_task()]

    def connect_databases(self) -> None:
        """Give every task the connection of its database, creating one connection per database."""
        for task in self.tasks:
            db_id = task.get_db_id()
            if db_id in self.db_connections:
                task.db_connection = self.db_connections[db_id]
            else:
                self.db_connections[db_id] = task.create_db_connection()

    def generate_schemas(self) -> None:
        """Generate the schema of each ETL task and merge the schemas of tasks that use the same database."""
        for task in self._get_etl_tasks():
            logging.info(f"Processing transformation rules for task '{task.name}'")
            task.create_data_project()
            task.log_job_info()
            task.generate_schema()

            db_id = task.get_db_id()
            if db_id in self.db_schemas:
                self.db_schemas[db_id] = self.db_schemas[db_id].merge(task.get_schema(), db_id, task.name)
                self.db_tasks[db_id].append(task)
            else:
                self.db_schemas[db_id] = task.get_schema()
                self.db_tasks[db_id] = [task]

    def create_load_tables(self) -> None:
        for db_id, schema in self.db_schemas.items():
            self.db_tasks[db_id][0].create_load_tables(schema)

    def create_database_keys(self) -> None:
        """Add the keys of each database once, if any of the tasks that load into it is configured for them."""
        for db_id, schema in self.db_schemas.items():
            db_tasks = self.db_tasks[db_id]
            db_tasks[0].create_database_keys(
                schema,
                primary_keys=any(task.task_config.db_primary_keys for task in db_tasks),
                foreign_keys=any(task.task_config.db_foreign_keys for task in db_tasks)
            )

    def run(self) -> int:
        """
        Run the workflow: pre-processing SQL, then extract, transform and load for each task,
        then database keys, then post-processing SQL.

        Returns:
            int: The total number of record IDs processed.

        Raises:
            EtlError: For errors in the configuration, rules, REDCap API calls or database.
        """
        start_time = time.time()
        self.connect_databases()
        for task in self.tasks:
            task.run_pre_processing_sql()

        record_id_count = 0
        try:
            self.generate_schemas()
            self.create_load_tables()
            for task in self._get_etl_tasks():
                logging.info(f"Running task '{task.name}'")
                record_id_count += task.extract_transform_load()
        except RedCapError as e:
            raise EtlError(e.message, EtlErrorCode.PHPCAP_ERROR) from e

        self.create_database_keys()
        for task in self.tasks:
            task.run_post_processing_sql()

        workflow_name = self.workflow_config.workflow_name or "workflow"
        logging.info(f"Processing of {workflow_name} complete in {time.time() - start_time:.3f} seconds.")
        return record_id_count
