import json
import os

import pytest

from redcap_etl.tests.utils.mock_util import load_resources
from redcap_etl.utils.etl_config_schema import TransformRulesSourceEnum
from redcap_etl.utils.exceptions import EtlError, EtlErrorCode
from redcap_etl.utils.schema_utils import FieldType
from redcap_etl.utils.task_config import TaskConfig


@pytest.fixture()
def base_properties(tmp_path):
    resources = load_resources()
    return {
        "redcap_api_url": resources["api_url"],
        "data_source_api_token": resources["api_token"],
        "db_connection": f"CSV:{tmp_path}",
        "transform_rules_source": "1",
        "transform_rules_text": "TABLE,Demography,demography_id,ROOT\nFIELD,first_name,string",
    }


class TestTaskConfig:

    @pytest.fixture(autouse=True)
    def _get_properties(self, base_properties, tmp_path):
        self.properties = base_properties
        self.tmp_path = tmp_path

    def _assert_input_error(self, properties, message):
        with pytest.raises(EtlError) as e:
            TaskConfig(properties)
        assert e.value.code == EtlErrorCode.INPUT_ERROR
        assert message in e.value.message

    def test_defaults(self):
        task_config = TaskConfig(self.properties)
        assert task_config.batch_size == 100
        assert task_config.ssl_verify
        assert task_config.label_views
        assert task_config.label_view_suffix == "_label_view"
        assert task_config.lookup_table_name == "Lookup"
        assert task_config.generated_key_type.type == FieldType.INT
        assert task_config.generated_record_id_type.size == 255
        assert task_config.transformation_rules.startswith("TABLE,Demography")
        assert not task_config.is_auto_generated_rules()
        assert not task_config.is_sql_only_task()

    def test_boolean_and_integer_strings(self):
        self.properties.update({"ssl_verify": "false", "label_views": "0", "batch_size": "25", "print_logging": ""})
        task_config = TaskConfig(self.properties)
        assert task_config.ssl_verify is False
        assert task_config.label_views is False
        assert task_config.print_logging is True
        assert task_config.batch_size == 25

    def test_invalid_boolean(self):
        self.properties["ssl_verify"] = "maybe"
        self._assert_input_error(self.properties, 'Unrecognized value "maybe" for ssl_verify property')

    @pytest.mark.parametrize("batch_size", ["0", "ten", -5, True])
    def test_invalid_batch_size(self, batch_size):
        self.properties["batch_size"] = batch_size
        self._assert_input_error(self.properties, "Invalid batch_size property.")

    def test_invalid_table_prefix(self):
        self.properties["table_prefix"] = "etl-"
        self._assert_input_error(self.properties, "Invalid table_prefix property.")

    def test_foreign_keys_without_primary_keys(self):
        self.properties["db_primary_keys"] = False
        self._assert_input_error(self.properties, "generate foreign keys in the database, but not primary keys")

    def test_combine_non_repeating_fields_without_table_name(self):
        self.properties["autogen_combine_non_repeating_fields"] = True
        self._assert_input_error(self.properties, "Invalid autogen_non_repeating_fields_table property.")

    def test_missing_db_connection(self):
        self.properties["db_connection"] = " "
        self._assert_input_error(self.properties, "No database connection was specified in the configuration.")

    def test_missing_api_url(self):
        del self.properties["redcap_api_url"]
        self._assert_input_error(self.properties, "No REDCap API URL was specified.")

    def test_missing_api_token(self):
        self.properties["data_source_api_token"] = ""
        self._assert_input_error(self.properties, "No API token was found.")

    def test_empty_rules_text(self):
        self.properties["transform_rules_text"] = ""
        with pytest.raises(EtlError) as e:
            TaskConfig(self.properties)
        assert e.value.code == EtlErrorCode.FILE_ERROR

    def test_property_overrides(self):
        task_config = TaskConfig(self.properties, property_overrides={"batch_size": 10})
        assert task_config.batch_size == 10

    def test_sql_only_task(self):
        del self.properties["redcap_api_url"]
        del self.properties["transform_rules_source"]
        self.properties["post_processing_sql"] = ["DELETE FROM demography;", "DELETE FROM lookup;"]
        task_config = TaskConfig(self.properties)
        assert task_config.is_sql_only_task()
        assert task_config.post_processing_sql == "DELETE FROM demography;\nDELETE FROM lookup;"

    def test_json_file_with_relative_paths(self):
        config_dir = self.tmp_path.joinpath("config")
        config_dir.mkdir()
        config_dir.joinpath("rules.txt").write_text("TABLE,Demography,demography_id,ROOT\n")
        del self.properties["transform_rules_text"]
        self.properties.update({
            "transform_rules_source": 2,
            "transform_rules_file": "rules.txt",
            "db_connection": "SQLite:etl.db",
            "log_file": "etl.log",
        })
        config_file = config_dir.joinpath("task.json")
        config_file.write_text(json.dumps(self.properties))

        task_config = TaskConfig(str(config_file))
        assert task_config.transform_rules_source == TransformRulesSourceEnum.file.value
        assert task_config.transformation_rules == "TABLE,Demography,demography_id,ROOT\n"
        assert task_config.db_connection == f"SQLite:{os.path.join(str(config_dir), 'etl.db')}"
        assert task_config.log_file == os.path.join(str(config_dir), "etl.log")
        assert task_config.properties_file == str(config_file)

    def test_ini_file(self):
        config_file = self.tmp_path.joinpath("task.ini")
        config_file.write_text(
            "[redcap_etl]\n"
            f"redcap_api_url = {self.properties['redcap_api_url']}\n"
            f"data_source_api_token = {self.properties['data_source_api_token']}\n"
            f"db_connection = {self.properties['db_connection']}\n"
            "transform_rules_source = 3\n"
            "batch_size = 50\n"
            "db_foreign_keys = false\n"
        )
        task_config = TaskConfig(str(config_file))
        assert task_config.is_auto_generated_rules()
        assert task_config.batch_size == 50
        assert task_config.db_foreign_keys is False
        assert task_config.transformation_rules == ""

    def test_ini_file_without_sections(self):
        config_file = self.tmp_path.joinpath("task.ini")
        config_file.write_text(
            "; REDCap-ETL configuration\n"
            f'redcap_api_url = "{self.properties["redcap_api_url"]}"\n'
            f"data_source_api_token = {self.properties['data_source_api_token']}\n"
            f'db_connection = "{self.properties["db_connection"]}"\n'
            'transform_rules_source = "3"\n'
            'table_prefix = "etl_"\n'
            "ignore_empty_incomplete_forms = true\n"
        )
        task_config = TaskConfig(str(config_file))
        assert task_config.redcap_api_url == self.properties["redcap_api_url"]
        assert task_config.db_connection == self.properties["db_connection"]
        assert task_config.table_prefix == "etl_"
        assert task_config.is_auto_generated_rules()
        assert task_config.ignore_empty_incomplete_forms is True

    def test_ignore_empty_incomplete_forms_default(self):
        assert TaskConfig(self.properties).ignore_empty_incomplete_forms is False

    def test_missing_rules_file(self):
        del self.properties["transform_rules_text"]
        self.properties.update({"transform_rules_source": "2", "transform_rules_file": "missing.txt"})
        self._assert_input_error(self.properties, "missing.txt")

    def test_config_file_not_found(self):
        self._assert_input_error(str(self.tmp_path.joinpath("missing.json")), "could not be found")

    def test_invalid_json_file(self):
        config_file = self.tmp_path.joinpath("task.json")
        config_file.write_text("{not json")
        self._assert_input_error(str(config_file), "could not be parsed")
