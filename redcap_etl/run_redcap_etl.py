"""
Run an ETL workflow: extract the records of one or more REDCap projects, transform them with the
transformation rules of each task, and load the results into CSV directories or databases.

To run locally do python3 /path/to/run_redcap_etl.py -c /path/to/config.ini
"""
import logging
from argparse import ArgumentParser, Namespace

from utils.exceptions import EtlError
from utils.workflow import Workflow
from utils.workflow_config import WorkflowConfig

logging.basicConfig(
    format="%(levelname)s: %(asctime)s : %(message)s", level=logging.INFO
)


def get_args() -> Namespace:
    parser = ArgumentParser(description="Run a REDCap ETL task or workflow from a configuration file")
    parser.add_argument("--config_file", "-c", required=True,
                        help="The .ini or .json configuration file of the task or workflow")
    parser.add_argument("--batch_size", "-b", type=int, required=False,
                        help="Number of record IDs extracted per batch. Overrides the configuration file")
    parser.add_argument("--db_connection", "-d", required=False,
                        help="Database connection string. Overrides the configuration file")
    parser.add_argument("--no_count_check", action="store_true",
                        help="Set this flag to turn off the extracted record count check")
    return parser.parse_args()

if __name__ == '__main__':
    args = get_args()

    property_overrides: dict = {}
    if args.batch_size:
        property_overrides["batch_size"] = args.batch_size
    if args.db_connection:
        property_overrides["db_connection"] = args.db_connection
    if args.no_count_check:
        property_overrides["extracted_record_count_check"] = False

    workflow_config = WorkflowConfig(args.config_file, property_overrides=property_overrides)
    workflow_config.get_first_task_config().configure_logging()

    try:
        record_id_count = Workflow(workflow_config).run()
    except EtlError as e:
        logging.error(f"Processing failed with error code {e.code.name}: {e.message}")
        raise
    logging.info(f"Processed {record_id_count} record IDs")
