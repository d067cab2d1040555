import logging
import time
from typing import Any, Optional

from .database_utils import DbConnection
from .database_utils.db_connection_factory import create_db_connection
from .exceptions import EtlError, EtlErrorCode, RedCapError
from .redcap_utils.etl_redcap_project import EtlRedCapProject
from .request_util import RunRequest
from .rules_utils.rules_generator import RulesGenerator
from .schema_utils import RowsType
from .schema_utils.schema import Schema
from .schema_utils.schema_generator import PARSE_ERROR, SchemaGenerator
from .schema_utils.table import Table
from .task_config import TaskConfig


class EtlTask:
    def __init__(
            self,
            task_config: TaskConfig,
            data_project: Optional[Any] = None,
            db_connection: Optional[DbConnection] = None,
            task_id: int = 1,
            name: str = ""
    ):
        """
        Extracts the records of a REDCap project, transforms them into the tables defined
        by the transformation rules, and loads the tables into a database.

        Args:
            task_config (TaskConfig): The task's configuration.
            data_project (Optional[Any], optional): The REDCap project to extract from. Created from
                the configuration's API URL and token if not given. Defaults to None.
            db_connection (Optional[DbConnection], optional): The database to load into. Created
                from the configuration's db_connection if not given. Defaults to None.
            task_id (int, optional): ID stored in the redcap_data_source field of loaded rows. Defaults to 1.
            name (str, optional): The task name used in workflow logs and errors. Defaults to "".
        """
        self.task_config = task_config
        self.data_project = data_project
        self.db_connection = db_connection
        self.task_id = task_id
        self.name = name or f"task{task_id}"
        self.schema: Optional[Schema] = None
        self.rows_loaded_for_table: dict[str, int] = {}
        self.root_tables_with_multi_values: set[str] = set()

    def create_data_project(self) -> EtlRedCapProject:
        if self.data_project is None:
            try:
                request_util = RunRequest(
                    url=self.task_config.redcap_api_url,
                    ssl_verify=self.task_config.ssl_verify,
                    ca_cert_file=self.task_config.ca_cert_file
                )
                self.data_project = EtlRedCapProject(request_util, self.task_config.data_source_api_token)
            except RedCapError as e:
                raise EtlError(e.message, EtlErrorCode.PHPCAP_ERROR) from e
        return self.data_project

    def create_db_connection(self) -> DbConnection:
        if self.db_connection is None:
            self.db_connection = create_db_connection(
                self.task_config.db_connection,
                table_prefix=self.task_config.table_prefix,
                label_view_suffix=self.task_config.label_view_suffix,
                ca_cert_file=self.task_config.ca_cert_file
            )
        return self.db_connection

    def get_db_id(self) -> str:
        """Tasks with the same database connection string load into the same database."""
        return self.task_config.db_connection

    def get_schema(self) -> Schema:
        if self.schema is None:
            raise EtlError(
                f'The transformation rules of task "{self.name}" have not been processed.',
                EtlErrorCode.INPUT_ERROR
            )
        return self.schema

    def auto_generate_rules(self) -> str:
        """Generate transformation rules from the project's metadata, using the autogen_* settings."""
        if self.data_project is None:
            raise EtlError("No data project was found.", EtlErrorCode.INPUT_ERROR)
        config = self.task_config
        non_repeating_fields_table = ""
        if config.autogen_combine_non_repeating_fields:
            non_repeating_fields_table = config.autogen_non_repeating_fields_table
        return RulesGenerator().generate(
            self.data_project,
            include_complete_fields=config.autogen_include_complete_fields,
            include_dag_fields=config.autogen_include_dag_fields,
            include_file_fields=config.autogen_include_file_fields,
            include_survey_fields=config.autogen_include_survey_fields,
            remove_notes_fields=config.autogen_remove_notes_fields,
            remove_identifier_fields=config.autogen_remove_identifier_fields,
            combine_non_repeating_fields=config.autogen_combine_non_repeating_fields,
            non_repeating_fields_table=non_repeating_fields_table
        )

    def process_transformation_rules(self) -> tuple[str, str]:
        """
        Generate the schema from the configured (or auto-generated) transformation rules.

        Returns:
            tuple[str, str]: The parse status ('valid', 'warn' or 'error') and messages.
        """
        if self.task_config.is_auto_generated_rules():
            rules_text = self.auto_generate_rules()
        else:
            rules_text = self.task_config.transformation_rules
        schema_generator = SchemaGenerator(self.data_project, self.task_config, self.task_id)
        schema, parse_result = schema_generator.generate_schema(rules_text)
        logging.debug(f"Generated schema:\n{schema.to_string()}")
        self.schema = schema
        return parse_result

    def generate_schema(self) -> None:
        """Process the transformation rules, and stop if they could not be parsed."""
        status, message = self.process_transformation_rules()
        if status == PARSE_ERROR:
            logging.error(message)
            raise EtlError("Transformation rules not parsed. Processing stopped.", EtlErrorCode.INPUT_ERROR)

    def create_load_tables(self, schema: Optional[Schema] = None) -> None:
        """
        Drop and re-create the database tables of a schema, and load the lookup and project tables.

        Args:
            schema (Optional[Schema], optional): The schema to create the tables of, for example the merged
                schema of the tasks that load into one database. Defaults to the task's schema.
        """
        schema = schema or self.get_schema()
        db_connection = self.create_db_connection()
        tables = schema.get_tables_top_down()
        # Children are dropped before parents, because of foreign keys
        for table in reversed(tables):
            db_connection.drop_table(table, if_exists=True)
        for table in tables:
            db_connection.create_table(table, if_not_exists=True)
            if table.uses_lookup and schema.label_views and schema.lookup_table is not None:
                db_connection.replace_lookup_view(table, schema.lookup_table)
            logging.info(f"Created table '{table.name}'")

        for description_table in [schema.lookup_table, schema.project_info_table, schema.metadata_table]:
            if description_table is None:
                continue
            db_connection.replace_table(description_table)
            db_connection.store_rows(description_table)
            logging.info(f"Created table '{description_table.name}'")

    def extract_transform_load(self) -> int:
        """
        Extract the project's records in batches of record IDs, transform each batch
        into table rows, and load the rows into the database.

        Returns:
            int: The number of record IDs processed.

        Raises:
            EtlError: INPUT_ERROR if the extracted record count check fails.
        """
        data_project = self.create_data_project()
        schema = self.get_schema()
        start_etl_time = time.time()
        extract_time = 0.0
        transform_time = 0.0
        load_time = 0.0

        start_time = time.time()
        record_id_batches = data_project.get_record_id_batches(self.task_config.batch_size)
        extract_time += time.time() - start_time

        record_id_count = sum(len(record_id_batch) for record_id_batch in record_id_batches)
        logging.info(f"Number of record_ids found: {record_id_count}")

        record_events_count = 0
        for record_id_batch in record_id_batches:
            start_time = time.time()
            record_batch = data_project.get_record_batch(record_id_batch)
            extract_time += time.time() - start_time

            if self.task_config.extracted_record_count_check:
                self._check_extracted_record_count(len(record_id_batch), len(record_batch))

            start_time = time.time()
            for records in record_batch.values():
                record_events_count += len(records)
                for root_table in schema.get_root_tables():
                    self.transform(root_table, records, "", "")
            transform_time += time.time() - start_time

            start_time = time.time()
            for table in schema.get_tables():
                self.load_table_rows(table)
            load_time += time.time() - start_time

        logging.info(f"Extract time:   {extract_time:.3f} seconds")
        logging.info(f"Transform time: {transform_time:.3f} seconds")
        logging.info(f"Load time:      {load_time:.3f} seconds")
        logging.info(f"ETL total time: {time.time() - start_etl_time:.3f} seconds")

        for table_name, row_count in self.rows_loaded_for_table.items():
            logging.info(f"Rows loaded for table '{table_name}': {row_count}")
        logging.info(f"Number of record events transformed: {record_events_count}")
        return record_id_count

    @staticmethod
    def _check_extracted_record_count(requested_count: int, extracted_count: int) -> None:
        if extracted_count < requested_count:
            raise EtlError(
                f"Attempted to retrieve {requested_count} records, but only {extracted_count} were actually"
                " retrieved. This error can be caused by a very large batch size. If you are using a large"
                " batch size (1,000 or greater), try reducing it to 500 or less. This error could also be"
                " caused by records being deleted while the ETL process is running. You can turn this error"
                " check off by setting the extracted_record_count_check to false.",
                EtlErrorCode.INPUT_ERROR
            )
        if extracted_count > requested_count:
            raise EtlError(
                f"Attempted to retrieve {requested_count} records, but {extracted_count} were actually"
                " retrieved. This error could be caused by records being added while the ETL process is"
                " running. You can turn this error check off by setting the extracted_record_count_check"
                " to false.",
                EtlErrorCode.INPUT_ERROR
            )

    def load_table_rows(self, table: Table) -> None:
        """Store the in-memory rows of a table in the database, then remove them from the table."""
        self.create_db_connection().store_rows(table)
        self.rows_loaded_for_table[table.name] = self.rows_loaded_for_table.get(table.name, 0) + table.get_num_rows()
        table.empty_rows()

    def _create_row(
            self, table: Table, record: dict, foreign_key: Any, suffix: str, rows_type: RowsType
    ) -> Optional[int]:
        return table.create_row(
            record, foreign_key, suffix, rows_type,
            calc_field_ignore_pattern=self.task_config.calc_field_ignore_pattern,
            ignore_empty_incomplete_forms=self.task_config.ignore_empty_incomplete_forms
        )

    def transform(self, table: Table, records: list[dict], foreign_key: Any, suffix: str) -> None:
        """
        Create rows in a table, and recursively in its child tables, from the records of one record ID.

        Args:
            table (Table): The table to create rows in.
            records (list[dict]): The records exported for a record ID, one per event and/or
                repeating instance.
            foreign_key (Any): The primary key of the parent row, or '' for root tables.
            suffix (str): The suffix of the parent row, for suffix tables.
        """
        for rows_type in table.rows_type:
            if rows_type == RowsType.ROOT:
                # Root tables have one row per record ID; the first record with data for the table is used
                root_record_found = False
                for record in records:
                    primary_key = self._create_row(table, record, foreign_key, suffix, rows_type)
                    if not primary_key:
                        continue
                    if not root_record_found:
                        root_record_found = True
                        for child_table in table.children:
                            self.transform(child_table, records, primary_key, suffix)
                        if table.is_record_id_table():
                            break
                    elif table.name not in self.root_tables_with_multi_values:
                        logging.warning(
                            f'WARNING: ROOT table "{table.name}" has fields that have multiple values per'
                            ' record ID in REDCap. ROOT tables are intended for fields that only have one'
                            ' value per record ID.'
                        )
                        self.root_tables_with_multi_values.add(table.name)

            elif rows_type in (
                    RowsType.BY_EVENTS, RowsType.BY_REPEATING_INSTRUMENTS, RowsType.BY_REPEATING_EVENTS
            ):
                for record in records:
                    primary_key = self._create_row(table, record, foreign_key, suffix, rows_type)
                    if primary_key:
                        for child_table in table.children:
                            self.transform(child_table, [record], primary_key, suffix)

            elif rows_type == RowsType.BY_SUFFIXES:
                for new_suffix in table.rows_suffixes:
                    primary_key = self._create_row(table, records[0], foreign_key, suffix + new_suffix, rows_type)
                    if primary_key:
                        for child_table in table.children:
                            self.transform(child_table, records, primary_key, suffix + new_suffix)

            elif rows_type == RowsType.BY_EVENTS_SUFFIXES:
                for record in records:
                    for new_suffix in table.rows_suffixes:
                        primary_key = self._create_row(table, record, foreign_key, suffix + new_suffix, rows_type)
                        if primary_key:
                            for child_table in table.children:
                                self.transform(child_table, [record], primary_key, suffix + new_suffix)

    def create_database_keys(
            self,
            schema: Optional[Schema] = None,
            primary_keys: Optional[bool] = None,
            foreign_keys: Optional[bool] = None
    ) -> None:
        """
        Add primary and foreign key constraints. Parents are processed before children.

        Args:
            schema (Optional[Schema], optional): The schema to add keys for. Defaults to the task's schema.
            primary_keys (Optional[bool], optional): Whether to add primary keys. Defaults to db_primary_keys.
            foreign_keys (Optional[bool], optional): Whether to add foreign keys. Defaults to db_foreign_keys.
        """
        schema = schema or self.get_schema()
        if primary_keys is None:
            primary_keys = self.task_config.db_primary_keys
        if foreign_keys is None:
            foreign_keys = self.task_config.db_foreign_keys
        db_connection = self.create_db_connection()
        tables = schema.get_tables_top_down()
        if primary_keys:
            for table in tables:
                db_connection.add_primary_key_constraint(table)
        if foreign_keys:
            for table in tables:
                db_connection.add_foreign_key_constraint(table)

    def _run_sql(self, sql: Optional[str], sql_file: Optional[str], error_prefix: str) -> None:
        db_connection = self.create_db_connection()
        try:
            if sql:
                db_connection.process_queries(sql)
            if sql_file:
                db_connection.process_query_file(sql_file)
        except EtlError as e:
            raise EtlError(f"{error_prefix} SQL error: {e.message}", EtlErrorCode.INPUT_ERROR) from e

    def run_pre_processing_sql(self) -> None:
        self._run_sql(
            self.task_config.pre_processing_sql, self.task_config.pre_processing_sql_file, "Pre-processing"
        )

    def run_post_processing_sql(self) -> None:
        self._run_sql(
            self.task_config.post_processing_sql, self.task_config.post_processing_sql_file, "Post-processing"
        )

    def log_job_info(self) -> None:
        logging.info(f"REDCap API URL: {self.task_config.redcap_api_url}")
        project_info = self.create_data_project().get_project_info()
        if project_info:
            logging.info(f"Project ID: {project_info.get('project_id')}")
            logging.info(f"Project title: {project_info.get('project_title')}")
        if self.task_config.properties_file:
            logging.info(f"Configuration: {self.task_config.properties_file}")

    def run(self) -> int:
        """
        Run the task.

        Returns:
            int: The number of record IDs processed (0 for a SQL only task).

        Raises:
            EtlError: For errors in the configuration, rules, REDCap API calls or database.
        """
        self.create_db_connection()
        self.run_pre_processing_sql()

        if self.task_config.is_sql_only_task():
            self.run_post_processing_sql()
            logging.info("Processing complete.")
            return 0

        self.create_data_project()
        try:
            self.log_job_info()
            self.generate_schema()
            self.create_load_tables()
            record_id_count = self.extract_transform_load()
        except RedCapError as e:
            raise EtlError(e.message, EtlErrorCode.PHPCAP_ERROR) from e

        self.create_database_keys()
        self.run_post_processing_sql()
        logging.info("Processing complete.")
        return record_id_count
