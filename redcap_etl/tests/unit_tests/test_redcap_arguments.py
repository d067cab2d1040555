import pytest

from redcap_etl.utils.exceptions import ErrorCode, RedCapError
from redcap_etl.utils.redcap_utils import redcap_arguments as args


class TestRedCapArguments:

    def _assert_invalid(self, function, *function_args):
        with pytest.raises(RedCapError) as e:
            function(*function_args)
        assert e.value.code == ErrorCode.INVALID_ARGUMENT
        return e.value.message

    def test_format(self):
        assert args.process_format_argument(None, args.LEGAL_FORMATS) == "json"
        assert args.process_format_argument(" CSV ", args.LEGAL_FORMATS) == "csv"
        assert args.process_format_argument("odm", args.LEGAL_RECORD_FORMATS) == "odm"
        message = self._assert_invalid(args.process_format_argument, "odm", args.LEGAL_FORMATS)
        assert message.startswith('Invalid format "odm" specified.')
        self._assert_invalid(args.process_format_argument, 1, args.LEGAL_FORMATS)

    def test_api_token(self):
        assert args.process_api_token_argument("abcdef0123456789ABCDEF0123456789") == "abcdef0123456789ABCDEF0123456789"
        self._assert_invalid(args.process_api_token_argument, None)
        self._assert_invalid(args.process_api_token_argument, 1234)

    def test_super_token(self):
        assert args.process_super_token_argument(None) is None
        assert args.process_super_token_argument("") == ""
        message = self._assert_invalid(args.process_super_token_argument, "0" * 32)
        assert "should have a length of 64" in message

    def test_arms(self):
        assert args.process_arms_argument(None) == []
        assert args.process_arms_argument([1, "2"]) == [1, "2"]
        assert "is a negative integer" in self._assert_invalid(args.process_arms_argument, [-1])
        assert "is non-numeric string" in self._assert_invalid(args.process_arms_argument, ["one"])
        self._assert_invalid(args.process_arms_argument, None, True)
        self._assert_invalid(args.process_arms_argument, "1")

    def test_csv_delimiter(self):
        assert args.process_csv_delimiter_argument(None, "csv") == ","
        assert args.process_csv_delimiter_argument("TAB", "csv") == "tab"
        assert args.process_csv_delimiter_argument("#", "json") == "#"
        self._assert_invalid(args.process_csv_delimiter_argument, "#", "csv")

    def test_date_range(self):
        assert args.process_date_range_argument("2020-01-31 00:00:00") == "2020-01-31 00:00:00"
        assert args.process_date_range_argument(" ") is None
        self._assert_invalid(args.process_date_range_argument, "2020-02-30 00:00:00")
        self._assert_invalid(args.process_date_range_argument, "2020-01-31")

    def test_date_format(self):
        assert args.process_date_format_argument(None) == "YMD"
        assert args.process_date_format_argument("mdy") == "MDY"
        self._assert_invalid(args.process_date_format_argument, "YDM")

    def test_record_ids(self):
        assert args.process_record_ids_argument(None) == []
        assert args.process_record_ids_argument(["1001", 1002]) == ["1001", 1002]
        self._assert_invalid(args.process_record_ids_argument, [1.5])
        self._assert_invalid(args.process_record_ids_argument, "1001")

    def test_return_content(self):
        assert args.process_return_content_argument(None, False) == "count"
        assert args.process_return_content_argument("auto_ids", True) == "auto_ids"
        self._assert_invalid(args.process_return_content_argument, "auto_ids", False)
        self._assert_invalid(args.process_return_content_argument, "records", False)

    def test_users_are_unique(self):
        assert args.process_users_argument(["alice", "bob", "alice"]) == ["alice", "bob"]
        self._assert_invalid(args.process_users_argument, ["alice", 7])

    def test_type(self):
        assert args.process_type_argument(None) == "flat"
        assert args.process_type_argument("EAV") == "eav"
        self._assert_invalid(args.process_type_argument, "wide")
