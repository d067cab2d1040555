import json
from unittest.mock import MagicMock

import pytest

from redcap_etl.tests.utils.mock_util import EtlRedCapProjectMock, load_resources
from redcap_etl.utils.csv_util import Csv
from redcap_etl.utils.exceptions import EtlError, EtlErrorCode, ErrorCode, RedCapError
from redcap_etl.utils.workflow import Workflow
from redcap_etl.utils.workflow_config import WorkflowConfig


@pytest.fixture()
def redcap_test_resource_json():
    return load_resources()


class TestWorkflowConfig:

    @pytest.fixture(autouse=True)
    def _get_properties(self, redcap_test_resource_json, tmp_path):
        self.tmp_path = tmp_path
        self.api_url = redcap_test_resource_json["api_url"]
        self.api_token = redcap_test_resource_json["api_token"]
        self.tmp_path.joinpath("rules.txt").write_text("TABLE,Demography,demography_id,ROOT\nFIELD,sex,int\n")

    def _write_ini(self, text):
        config_file = self.tmp_path.joinpath("workflow.ini")
        config_file.write_text(text)
        return str(config_file)

    def _assert_input_error(self, properties, message):
        with pytest.raises(EtlError) as e:
            WorkflowConfig(properties)
        assert e.value.code == EtlErrorCode.INPUT_ERROR
        assert message in e.value.message

    def test_ini_workflow(self):
        self.tmp_path.joinpath("included.json").write_text(json.dumps({
            "transform_rules_source": "2",
            "transform_rules_file": "rules.txt",
            "batch_size": 10,
            "table_prefix": "inc_",
        }))
        config_file = self._write_ini(
            'workflow_name = "demography workflow"\n'
            f"redcap_api_url = {self.api_url}\n"
            f"data_source_api_token = {self.api_token}\n"
            f"db_connection = CSV:{self.tmp_path}\n"
            "batch_size = 20\n"
            "\n"
            "[first_task]\n"
            "task_config_file = included.json\n"
            "batch_size = 30\n"
            "\n"
            "[second_task]\n"
            "task_config_file = included.json\n"
        )
        workflow_config = WorkflowConfig(config_file)
        assert workflow_config.workflow_name == "demography workflow"
        assert workflow_config.task_names == ["first_task", "second_task"]
        first, second = workflow_config.task_configs
        assert first.batch_size == 30
        assert second.batch_size == 20
        assert first.table_prefix == "inc_"
        assert first.transformation_rules.startswith("TABLE,Demography")
        assert "workflow_name" not in workflow_config.global_properties

    def test_ini_file_without_sections_is_one_task(self):
        config_file = self._write_ini(
            f'redcap_api_url = "{self.api_url}"\n'
            f"data_source_api_token = {self.api_token}\n"
            f"db_connection = CSV:{self.tmp_path}\n"
            "transform_rules_source = 3\n"
        )
        workflow_config = WorkflowConfig(config_file)
        assert workflow_config.workflow_name is None
        assert workflow_config.task_names == ["task1"]
        assert workflow_config.get_first_task_config().is_auto_generated_rules()
        assert workflow_config.get_first_task_config().properties_file == config_file

    def test_ini_workflow_without_name(self):
        config_file = self._write_ini(
            f"redcap_api_url = {self.api_url}\n"
            "[first_task]\n"
            f"data_source_api_token = {self.api_token}\n"
        )
        self._assert_input_error(config_file, "No workflow name was specified.")

    def test_json_workflow(self):
        config_file = self.tmp_path.joinpath("workflow.json")
        config_file.write_text(json.dumps({
            "workflow": {
                "global_properties": {
                    "workflow_name": "json workflow",
                    "redcap_api_url": self.api_url,
                    "data_source_api_token": self.api_token,
                    "db_connection": f"CSV:{self.tmp_path}",
                    "transform_rules_source": "3",
                },
                "tasks": [{"batch_size": 5}, {"table_prefix": "second_"}],
            }
        }))
        workflow_config = WorkflowConfig(str(config_file), property_overrides={"extracted_record_count_check": False})
        assert workflow_config.workflow_name == "json workflow"
        assert workflow_config.task_names == ["task1", "task2"]
        assert [task_config.batch_size for task_config in workflow_config.task_configs] == [5, 100]
        assert workflow_config.task_configs[1].table_prefix == "second_"
        assert not any(task_config.extracted_record_count_check for task_config in workflow_config.task_configs)

    def test_json_workflow_without_tasks(self):
        config_file = self.tmp_path.joinpath("workflow.json")
        config_file.write_text(json.dumps({"workflow": {"global_properties": {"workflow_name": "empty"}}}))
        self._assert_input_error(str(config_file), "No tasks defined for workflow.")

    def test_json_workflow_with_other_top_level_properties(self):
        config_file = self.tmp_path.joinpath("workflow.json")
        config_file.write_text(json.dumps({"workflow": {}, "batch_size": 10}))
        self._assert_input_error(str(config_file), "Non-workflow properties at top-level")

    def test_unsupported_file_type(self):
        config_file = self.tmp_path.joinpath("workflow.txt")
        config_file.write_text("batch_size = 10\n")
        self._assert_input_error(str(config_file), "is not a .ini or .json file")


class TestWorkflow:

    @pytest.fixture(autouse=True)
    def _get_workflow_properties(self, redcap_test_resource_json, tmp_path):
        self.test_info = redcap_test_resource_json
        self.tmp_path = tmp_path
        self.rules = redcap_test_resource_json["projects"]["basic_demography"]["rules"]
        self.global_properties = {
            "workflow_name": "test workflow",
            "redcap_api_url": redcap_test_resource_json["api_url"],
            "data_source_api_token": redcap_test_resource_json["api_token"],
            "db_connection": f"CSV:{tmp_path}",
            "print_logging": False,
        }

    def _create_workflow_config(self, tasks, global_properties=None):
        config_file = self.tmp_path.joinpath("workflow.json")
        config_file.write_text(json.dumps({
            "workflow": {"global_properties": global_properties or self.global_properties, "tasks": tasks}
        }))
        return WorkflowConfig(str(config_file))

    def _mock_project(self, project_name):
        return EtlRedCapProjectMock(project_name, self.test_info)

    def _read_csv(self, file_name):
        return Csv(file_path=str(self.tmp_path.joinpath(file_name))).create_list_of_dicts_from_csv()

    def test_tasks_loading_different_tables(self):
        workflow_config = self._create_workflow_config([
            {"transform_rules_source": "1", "transform_rules_text": self.rules},
            {"transform_rules_source": "3"},
        ])
        workflow = Workflow(
            workflow_config, data_projects=[self._mock_project("basic_demography"), self._mock_project("visits")]
        )
        assert workflow.run() == 5

        assert len(self._read_csv("Demography.csv")) == 3
        assert len(self._read_csv("root.csv")) == 2
        assert {row["redcap_data_source"] for row in self._read_csv("visit.csv")} == {"2"}
        project_info = self._read_csv("redcap_project_info.csv")
        assert [(row["redcap_data_source"], row["project_id"]) for row in project_info] == [("1", "14"), ("2", "15")]
        assert len(workflow.db_connections) == 1

    def test_tasks_loading_the_same_table(self):
        workflow_config = self._create_workflow_config([
            {"transform_rules_source": "1", "transform_rules_text": self.rules},
            {"transform_rules_source": "1", "transform_rules_text": self.rules},
        ])
        data_projects = [self._mock_project("basic_demography"), self._mock_project("basic_demography")]
        assert Workflow(workflow_config, data_projects=data_projects).run() == 6

        rows = self._read_csv("Demography.csv")
        assert [row["demography_id"] for row in rows] == ["1", "2", "3", "4", "5", "6"]
        assert [row["redcap_data_source"] for row in rows] == ["1", "1", "1", "2", "2", "2"]
        assert [row["first_name"] for row in rows[:3]] == [row["first_name"] for row in rows[3:]]
        assert len(self._read_csv("Demography_label_view.csv")) == 6
        assert len(self._read_csv("Lookup.csv")) == 6
        assert len(self._read_csv("redcap_metadata.csv")) == 24

    def test_same_table_with_different_columns(self):
        workflow_config = self._create_workflow_config([
            {"transform_rules_source": "1", "transform_rules_text": self.rules},
            {
                "transform_rules_source": "1",
                "transform_rules_text": ["TABLE,Demography,demography_id,ROOT", "FIELD,sex,int"],
            },
        ])
        data_projects = [self._mock_project("basic_demography"), self._mock_project("basic_demography")]
        with pytest.raises(EtlError) as e:
            Workflow(workflow_config, data_projects=data_projects).run()
        assert e.value.code == EtlErrorCode.INPUT_ERROR
        assert 'Table "Demography" of task "task2" has different columns' in e.value.message
        assert not self.tmp_path.joinpath("Demography.csv").exists()

    def test_keys_added_once_per_database(self):
        workflow_config = self._create_workflow_config([
            {
                "transform_rules_source": "1", "transform_rules_text": self.rules,
                "db_primary_keys": False, "db_foreign_keys": False,
            },
            {"transform_rules_source": "1", "transform_rules_text": self.rules},
        ])
        db_connection = MagicMock()
        db_id = workflow_config.get_first_task_config().db_connection
        data_projects = [self._mock_project("basic_demography"), self._mock_project("basic_demography")]
        workflow = Workflow(workflow_config, data_projects=data_projects, db_connections={db_id: db_connection})
        workflow.run()

        assert db_connection.add_primary_key_constraint.call_count == 1
        assert db_connection.add_foreign_key_constraint.call_count == 1
        created_tables = [call.args[0].name for call in db_connection.create_table.call_args_list]
        assert created_tables == ["Demography"]
        assert all(call.kwargs == {"if_not_exists": True} for call in db_connection.create_table.call_args_list)

    def test_sql_only_task_shares_database(self):
        global_properties = dict(self.global_properties)
        del global_properties["redcap_api_url"]
        global_properties["db_connection"] = f"SQLite:{self.tmp_path.joinpath('etl.db')}"
        workflow_config = self._create_workflow_config(
            [
                {
                    "redcap_api_url": self.test_info["api_url"],
                    "transform_rules_source": "1",
                    "transform_rules_text": self.rules,
                },
                {
                    "post_processing_sql": "CREATE TABLE summary (total INTEGER);"
                                           " INSERT INTO summary SELECT COUNT(*) FROM Demography;",
                },
            ],
            global_properties
        )
        workflow = Workflow(workflow_config, data_projects=[self._mock_project("basic_demography"), None])
        assert workflow.run() == 3

        assert len(workflow.db_connections) == 1
        db_connection = workflow.tasks[1].db_connection
        assert db_connection is workflow.tasks[0].db_connection
        assert db_connection.get_data("summary") == [{"total": 3}]

    def test_redcap_error(self):
        workflow_config = self._create_workflow_config([
            {"transform_rules_source": "1", "transform_rules_text": self.rules},
        ])
        data_project = self._mock_project("basic_demography")
        data_project.get_record_id_batches = MagicMock(
            side_effect=RedCapError("The API token was not found.", ErrorCode.REDCAP_API_ERROR)
        )
        with pytest.raises(EtlError) as e:
            Workflow(workflow_config, data_projects=[data_project]).run()
        assert e.value.code == EtlErrorCode.PHPCAP_ERROR
        assert e.value.message == "The API token was not found."
