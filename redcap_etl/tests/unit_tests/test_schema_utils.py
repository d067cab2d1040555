import pytest

from redcap_etl.tests.utils.mock_util import EtlRedCapProjectMock, create_task_config, load_resources
from redcap_etl.utils.exceptions import EtlError, EtlErrorCode
from redcap_etl.utils.schema_utils import FieldType, FieldTypeSpecifier, RowsType
from redcap_etl.utils.schema_utils.lookup_table import LookupTable
from redcap_etl.utils.schema_utils.schema_generator import PARSE_ERROR, PARSE_VALID, PARSE_WARN, SchemaGenerator
from redcap_etl.utils.schema_utils.table import Field, Table

KEY_TYPE = FieldTypeSpecifier(type=FieldType.INT)


@pytest.fixture()
def redcap_test_resource_json():
    return load_resources()


class TestFieldTypeSpecifier:

    def test_create_with_size(self):
        field_type = FieldTypeSpecifier.create("varchar(255)")
        assert field_type.type == FieldType.VARCHAR
        assert field_type.size == 255
        assert str(field_type) == "varchar(255)"

    def test_create_without_size(self):
        field_type = FieldTypeSpecifier.create(" int ")
        assert field_type.type == FieldType.INT
        assert field_type.size is None
        assert str(field_type) == "int"

    @pytest.mark.parametrize(
        "definition,message",
        [
            (None, "Missing field type definition."),
            ("", "Missing field type definition."),
            (12, "Non-string field type definition."),
            ("number", 'Invalid field type "number".'),
        ]
    )
    def test_create_invalid(self, definition, message):
        with pytest.raises(EtlError) as e:
            FieldTypeSpecifier.create(definition)
        assert e.value.code == EtlErrorCode.INPUT_ERROR
        assert e.value.message == message


class TestTable:

    @pytest.fixture(autouse=True)
    def _get_tables(self):
        self.root = Table("Demography", "demography_id", KEY_TYPE, [RowsType.ROOT], record_id_field_name="record_id")
        self.root.add_field(Field("redcap_data_source", FieldType.INT))
        self.root.add_field(Field("record_id", FieldType.VARCHAR, 255))
        self.root.add_field(Field("age", FieldType.INT))

    def test_root_table_primary_key_is_parent_name(self):
        assert self.root.primary.name == "demography_id"
        assert [field.db_name for field in self.root.get_all_fields()] == [
            "demography_id", "redcap_data_source", "record_id", "age"
        ]

    def test_child_table_keys(self):
        child = Table("etl_Visits Table", self.root, KEY_TYPE, [RowsType.BY_EVENTS], table_prefix="etl_")
        child.set_foreign(self.root)
        assert child.name == "etl_Visits_Table"
        assert child.primary.name == "visits_table_id"
        assert child.get_all_fields()[1].name == "demography_id"

    def test_possible_suffixes(self):
        child = Table("Visits", self.root, KEY_TYPE, [RowsType.BY_SUFFIXES], ["_a", "_b"])
        grandchild = Table("Labs", child, KEY_TYPE, [RowsType.BY_SUFFIXES], ["1", "2"])
        assert child.get_possible_suffixes() == ["_a", "_b"]
        assert grandchild.get_possible_suffixes() == ["_a1", "_a2", "_b1", "_b2"]

    def test_create_row(self):
        primary_key = self.root.create_row({"record_id": "1", "age": "42"}, "", "", RowsType.ROOT)
        assert primary_key == 1
        assert self.root.get_rows()[0].get_data() == {
            "redcap_data_source": 1, "record_id": "1", "age": "42", "demography_id": 1
        }

    def test_create_row_without_data(self):
        assert self.root.create_row({"record_id": "1", "age": ""}, "", "", RowsType.ROOT) is None
        assert self.root.get_num_rows() == 0

    def test_create_row_skips_repeating_instances(self):
        record = {"record_id": "1", "age": "42", "redcap_repeat_instrument": "meds", "redcap_repeat_instance": 1}
        assert self.root.create_row(record, "", "", RowsType.ROOT) is None

    def test_calc_field_ignore_pattern(self):
        table = Table("Scores", "scores_id", KEY_TYPE, [RowsType.ROOT], record_id_field_name="record_id")
        table.add_field(Field("score", FieldType.FLOAT, redcap_type="calc"))
        assert table.create_row({"record_id": "1", "score": "NaN"}, "", "", RowsType.ROOT, "^NaN$") is None
        assert table.create_row({"record_id": "1", "score": "3.5"}, "", "", RowsType.ROOT, "^NaN$") == 1

    def test_unchecked_checkbox_is_not_data(self):
        table = Table("Races", "races_id", KEY_TYPE, [RowsType.ROOT], record_id_field_name="record_id")
        table.add_field(Field("race___1", FieldType.INT, redcap_type="checkbox"))
        assert table.create_row({"record_id": "1", "race___1": "0"}, "", "", RowsType.ROOT) is None
        assert table.create_row({"record_id": "1", "race___1": "1"}, "", "", RowsType.ROOT) == 1

    def test_incomplete_form_counts_as_data_by_default(self):
        table = Table("Visit", "visit_id", KEY_TYPE, [RowsType.ROOT], record_id_field_name="record_id")
        table.add_field(Field("weight", FieldType.FLOAT))
        table.add_field(Field("visit_complete", FieldType.INT))
        record = {"record_id": "1", "weight": "", "visit_complete": "0"}
        assert table.create_row(record, "", "", RowsType.ROOT) == 1
        assert table.create_row(record, "", "", RowsType.ROOT, ignore_empty_incomplete_forms=True) is None

    def test_ignore_empty_incomplete_forms_keeps_forms_with_data(self):
        table = Table("Visit", "visit_id", KEY_TYPE, [RowsType.ROOT], record_id_field_name="record_id")
        table.add_field(Field("weight", FieldType.FLOAT))
        table.add_field(Field("visit_complete", FieldType.INT))
        assert table.create_row(
            {"record_id": "1", "weight": "61.5", "visit_complete": "0"}, "", "", RowsType.ROOT,
            ignore_empty_incomplete_forms=True
        ) == 1
        assert table.create_row(
            {"record_id": "2", "weight": "", "visit_complete": "2"}, "", "", RowsType.ROOT,
            ignore_empty_incomplete_forms=True
        ) == 2

    def test_shared_primary_keys(self):
        other = Table("Demography", "demography_id", KEY_TYPE, [RowsType.ROOT], record_id_field_name="record_id")
        other.add_field(Field("age", FieldType.INT))
        other.share_primary_keys(self.root)
        assert self.root.next_primary_key() == 1
        assert other.next_primary_key() == 2
        assert self.root.next_primary_key() == 3


class TestLookupTable:

    def test_add_lookup_field(self):
        lookup_table = LookupTable({"sex": {"0": "Female", "1": "Male"}}, "etl_")
        lookup_table.add_lookup_field("etl_Demography", "sex")
        lookup_table.add_lookup_field("etl_Demography", "sex")
        lookup_table.add_lookup_field("etl_Followup", "sex", "gender")

        assert lookup_table.name == "etl_Lookup"
        assert lookup_table.get_num_rows() == 4
        assert lookup_table.get_rows()[2].get_data() == {
            "table_name": "etl_Followup", "field_name": "gender", "value": "0", "label": "Female", "lookup_id": 3
        }
        assert lookup_table.get_label("etl_Demography", "sex", 1) == "Male"
        assert lookup_table.get_label("etl_Demography", "sex", "") == ""
        assert lookup_table.get_label("etl_Demography", "sex", "7") == ""

    def test_merge(self):
        lookup_table = LookupTable({"sex": {"0": "Female", "1": "Male"}})
        lookup_table.add_lookup_field("Demography", "sex")
        other = LookupTable({"sex": {"0": "F", "1": "M"}, "smoker": {"1": "Yes", "0": "No"}})
        other.add_lookup_field("Demography", "sex")
        other.add_lookup_field("Followup", "smoker")

        lookup_table.merge(other)
        assert lookup_table.get_num_rows() == 4
        assert lookup_table.get_label("Demography", "sex", "0") == "Female"
        assert lookup_table.get_label("Followup", "smoker", "1") == "Yes"
        assert [row.get_data()["lookup_id"] for row in lookup_table.get_rows()] == [1, 2, 3, 4]


class TestSchemaGenerator:

    @pytest.fixture(autouse=True)
    def _get_generator(self, redcap_test_resource_json, tmp_path):
        self.rules = redcap_test_resource_json["projects"]["basic_demography"]["rules"]
        self.db_connection = f"CSV:{tmp_path}"
        self.data_project = EtlRedCapProjectMock("basic_demography", redcap_test_resource_json)

    def _generate(self, rules, **properties):
        task_config = create_task_config(self.db_connection, rules, **properties)
        return SchemaGenerator(self.data_project, task_config).generate_schema(task_config.transformation_rules)

    def test_generate_schema(self):
        schema, (status, messages) = self._generate(self.rules)
        assert status == PARSE_WARN
        assert "Found 12 user-defined fields in REDCap." in messages
        assert "Found 1 unmapped user-defined fields in REDCap." in messages
        assert "Unmapped fields: notes" in messages

        table = schema.get_table("Demography")
        assert schema.get_root_tables() == [table]
        assert [field.db_name for field in table.get_all_fields()] == [
            "demography_id", "redcap_data_source", "record_id", "first_name", "last_name", "birthdate", "sex",
            "race___0", "race___1", "race___2", "race___3", "height", "weight", "bmi"
        ]
        assert table.uses_lookup
        race_field = table.get_fields()[6]
        assert race_field.name == "race___0"
        assert race_field.checkbox_label == "American Indian/Alaska Native"
        assert race_field.uses_lookup == "race"

        assert schema.lookup_table.get_num_rows() == 6
        assert schema.metadata_table.get_num_rows() == 12
        assert schema.project_info_table.get_rows()[0].get_data()["project_title"] == "Basic Demography"

    def test_all_fields_mapped(self):
        _, (status, messages) = self._generate(self.rules + ["FIELD,notes,string"])
        assert status == PARSE_VALID
        assert "Found 0 unmapped user-defined fields in REDCap." not in messages

    def test_table_prefix_and_label_fields(self):
        schema, _ = self._generate(self.rules, table_prefix="etl_", label_field_suffix="_label")
        table = schema.get_table("etl_Demography")
        field_names = [field.db_name for field in table.get_fields()]
        assert "sex_label" in field_names
        assert "race___3_label" in field_names
        assert schema.lookup_table.name == "etl_Lookup"

    def test_field_not_found(self):
        _, (status, messages) = self._generate(self.rules + ["FIELD,favorite_color,string"])
        assert status == PARSE_WARN
        assert "Field not found in REDCap: 'favorite_color'" in messages

    def test_parse_errors(self):
        schema, (status, messages) = self._generate(self.rules + ["FIELD,notes,number"])
        assert status == PARSE_ERROR
        assert 'Invalid field type "number" on line 10: "FIELD,notes,number"' in messages
        assert len(schema.get_tables()) == 1

    def test_parent_defined_after_child(self):
        _, (status, messages) = self._generate(
            ["TABLE,Visits,Demography,EVENTS", "FIELD,height,float"] + self.rules
        )
        assert status == PARSE_ERROR
        assert 'Parent table "Demography" for table "Visits" must be defined before the table on line 1' in messages

    def test_no_rules(self):
        _, (status, messages) = self._generate(["FIELD,first_name,string"])
        assert status == PARSE_ERROR
        assert "Found no transformation rules." in messages

    def test_primary_key_same_as_record_id(self):
        with pytest.raises(EtlError) as e:
            self._generate(["TABLE,Demography,record_id,ROOT", "FIELD,first_name,string"])
        assert e.value.code == EtlErrorCode.INPUT_ERROR
        assert 'Primary key field has same name as REDCap record id "record_id"' in e.value.message

    def test_longitudinal_generated_fields(self, redcap_test_resource_json):
        data_project = EtlRedCapProjectMock("visits", redcap_test_resource_json)
        task_config = create_task_config(
            self.db_connection,
            [
                "TABLE,root,root_id,ROOT",
                "FIELD,record_id,string",
                "TABLE,visit,root,EVENTS",
                "FIELD,weight,float",
                "TABLE,medication,root,REPEATING_INSTRUMENTS",
                "FIELD,med_name,string",
            ]
        )
        schema, _ = SchemaGenerator(data_project, task_config).generate_schema(task_config.transformation_rules)
        root = schema.get_table("root")
        assert root.is_record_id_table()
        assert [child.name for child in root.children] == ["visit", "medication"]
        assert [field.db_name for field in schema.get_table("visit").get_all_fields()] == [
            "visit_id", "root_id", "redcap_data_source", "record_id", "redcap_event_name", "weight"
        ]
        assert [field.db_name for field in schema.get_table("medication").get_all_fields()] == [
            "medication_id", "root_id", "redcap_data_source", "record_id", "redcap_event_name",
            "redcap_repeat_instrument", "redcap_repeat_instance", "med_name"
        ]
        assert [table.name for table in schema.get_tables_top_down()] == ["root", "visit", "medication"]


class TestSchemaMerge:

    @pytest.fixture(autouse=True)
    def _get_schemas(self, redcap_test_resource_json, tmp_path):
        self.test_info = redcap_test_resource_json
        self.rules = redcap_test_resource_json["projects"]["basic_demography"]["rules"]
        self.db_connection = f"CSV:{tmp_path}"

    def _generate(self, project_name, rules, task_id):
        task_config = create_task_config(self.db_connection, rules)
        data_project = EtlRedCapProjectMock(project_name, self.test_info)
        schema, _ = SchemaGenerator(data_project, task_config, task_id).generate_schema(
            task_config.transformation_rules
        )
        return schema

    def test_merge_same_tables(self):
        schema = self._generate("basic_demography", self.rules, 1)
        other = self._generate("basic_demography", self.rules, 2)
        merged = schema.merge(other, self.db_connection, "task2")

        assert [table.name for table in merged.get_tables()] == ["Demography"]
        assert merged.get_table("Demography") is schema.get_table("Demography")
        assert schema.get_table("Demography").next_primary_key() == 1
        assert other.get_table("Demography").next_primary_key() == 2
        assert merged.lookup_table.get_num_rows() == 6
        assert merged.metadata_table.get_num_rows() == 24
        assert [
            row.get_data()["redcap_data_source"] for row in merged.project_info_table.get_rows()
        ] == [1, 2]

    def test_merge_different_tables(self):
        schema = self._generate("basic_demography", self.rules, 1)
        visit_rules = [
            "TABLE,root,root_id,ROOT", "FIELD,record_id,string", "TABLE,visit,root,EVENTS", "FIELD,weight,float"
        ]
        other = self._generate("visits", visit_rules, 2)
        merged = schema.merge(other)
        assert [table.name for table in merged.get_tables_top_down()] == ["Demography", "root", "visit"]
        assert [table.name for table in merged.get_root_tables()] == ["Demography", "root"]
        assert [row.get_data()["project_id"] for row in merged.project_info_table.get_rows()] == [14, 15]

    def test_merge_tables_with_different_columns(self):
        schema = self._generate("basic_demography", self.rules, 1)
        other = self._generate("basic_demography", ["TABLE,Demography,demography_id,ROOT", "FIELD,sex,int"], 2)
        with pytest.raises(EtlError) as e:
            schema.merge(other, self.db_connection, "task2")
        assert e.value.code == EtlErrorCode.INPUT_ERROR
        assert e.value.message.startswith('Table "Demography" of task "task2" has different columns')
