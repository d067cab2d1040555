"""
Write transformation rules generated from a REDCap project's metadata to a file, so they
can be edited and then used with transform_rules_source = 2.
"""
import logging
from argparse import ArgumentParser, Namespace

from utils.file_util import FileUtil
from utils.redcap_utils.redcap_project import RedCapProject
from utils.request_util import RunRequest
from utils.rules_utils.rules_generator import DEFAULT_NON_REPEATING_FIELDS_TABLE, RulesGenerator

logging.basicConfig(
    format="%(levelname)s: %(asctime)s : %(message)s", level=logging.INFO
)


def get_args() -> Namespace:
    parser = ArgumentParser(description="Generate transformation rules for a REDCap project")
    parser.add_argument("--api_url", "-u", required=True, help="The REDCap API URL")
    parser.add_argument("--api_token", "-t", required=True, help="API token of the project")
    parser.add_argument("--output_file", "-o", required=True, help="File the rules are written to")
    parser.add_argument("--ssl_verify", action="store_true", help="Verify the REDCap server's SSL certificate")
    parser.add_argument("--ca_cert_file", required=False, help="Certificate authority file for SSL verification")
    parser.add_argument("--include_complete_fields", action="store_true")
    parser.add_argument("--include_dag_fields", action="store_true")
    parser.add_argument("--include_file_fields", action="store_true")
    parser.add_argument("--include_survey_fields", action="store_true")
    parser.add_argument("--remove_notes_fields", action="store_true")
    parser.add_argument("--remove_identifier_fields", action="store_true")
    parser.add_argument("--combine_non_repeating_fields", action="store_true",
                        help="Put the fields of all non-repeating instruments in one table")
    parser.add_argument("--non_repeating_fields_table", default=DEFAULT_NON_REPEATING_FIELDS_TABLE,
                        help="Name of the combined non-repeating fields table", required=False)
    return parser.parse_args()


if __name__ == '__main__':
    args = get_args()

    request_util = RunRequest(url=args.api_url, ssl_verify=args.ssl_verify, ca_cert_file=args.ca_cert_file)
    project = RedCapProject(request_util=request_util, api_token=args.api_token)

    rules = RulesGenerator().generate(
        project,
        include_complete_fields=args.include_complete_fields,
        include_dag_fields=args.include_dag_fields,
        include_file_fields=args.include_file_fields,
        include_survey_fields=args.include_survey_fields,
        remove_notes_fields=args.remove_notes_fields,
        remove_identifier_fields=args.remove_identifier_fields,
        combine_non_repeating_fields=args.combine_non_repeating_fields,
        non_repeating_fields_table=args.non_repeating_fields_table
    )
    FileUtil.write_string_to_file(args.output_file, rules)
    logging.info(f"Wrote transformation rules to {args.output_file}")
