"""
Summary statistics for a CSV "database" created by an ETL task: the number of rows of each
table, and the empty cells and distinct values of each column. Tables with no rows and
label view columns with values that have no label are flagged.
"""
import logging
import os
from argparse import ArgumentParser, Namespace

import numpy as np
import pandas as pd
from pandas import DataFrame

from utils.csv_util import Csv

FILE_EXTENSION = ".csv"
OUTPUT_FILE = "summary_statistics.tsv"
DEFAULT_LABEL_VIEW_SUFFIX = "_label_view"

logging.basicConfig(
    format="%(levelname)s: %(asctime)s : %(message)s", level=logging.INFO
)


def get_args() -> Namespace:
    parser = ArgumentParser(description="Create summary statistics for the tables in a CSV database directory")
    parser.add_argument("--csv_dir", "-d", required=True, help="The CSV database directory")
    parser.add_argument("--output_file", "-o", default=OUTPUT_FILE, required=False,
                        help=f"The output TSV file. Defaults to {OUTPUT_FILE}")
    parser.add_argument("--label_view_suffix", "-s", default=DEFAULT_LABEL_VIEW_SUFFIX, required=False,
                        help=f"Suffix of the label view files. Defaults to {DEFAULT_LABEL_VIEW_SUFFIX}")
    return parser.parse_args()


class ReadCsvTables:
    def __init__(self, csv_dir: str):
        self.csv_dir = csv_dir

    def run(self) -> dict[str, DataFrame]:
        tables = {}
        for file_name in sorted(os.listdir(self.csv_dir)):
            if not file_name.endswith(FILE_EXTENSION):
                continue
            table_name = file_name[:-len(FILE_EXTENSION)]
            # Values are read as strings, so codes like "01" keep their format
            tables[table_name] = pd.read_csv(
                os.path.join(self.csv_dir, file_name), dtype=str, keep_default_na=False
            )
            logging.info(f"Read {len(tables[table_name])} rows from {file_name}")
        return tables


class CreateSummaryStatistics:
    def __init__(self, tables: dict[str, DataFrame], label_view_suffix: str = DEFAULT_LABEL_VIEW_SUFFIX):
        self.tables = tables
        self.label_view_suffix = label_view_suffix

    def _get_unlabeled_values(self, table_name: str, column_name: str) -> int:
        """Values of a label view column whose label is blank, although the table has a value."""
        base_table_name = table_name[:-len(self.label_view_suffix)]
        base_df = self.tables.get(base_table_name)
        label_df = self.tables[table_name]
        if base_df is None or column_name not in base_df.columns or len(base_df) != len(label_df):
            return 0
        has_value = base_df[column_name].to_numpy() != ""
        has_label = label_df[column_name].to_numpy() != ""
        return int(np.sum(has_value & ~has_label))

    def analyze_tables(self) -> dict:
        results: dict = {}
        for table_name, df in self.tables.items():
            is_label_view = bool(self.label_view_suffix) and table_name.endswith(self.label_view_suffix)
            table_result: dict = {"total_records": len(df), "is_label_view": is_label_view, "columns": {}}
            for column_name in df.columns:
                column = df[column_name]
                column_result = {
                    "empty_cells": int((column == "").sum()),
                    "distinct_values": int(column[column != ""].nunique()),
                }
                if is_label_view:
                    column_result["unlabeled_values"] = self._get_unlabeled_values(table_name, column_name)
                table_result["columns"][column_name] = column_result
            results[table_name] = table_result
        return results


class WriteTsv:
    HEADERS = [
        "Table", "Column", "Total Table Rows", "Empty Cells", "Distinct Values",
        "Unlabeled Values", "Flagged", "Flag Reason"
    ]

    def __init__(self, results: dict, output_file: str):
        self.results = results
        self.output_file = output_file

    def create_rows(self) -> list[list]:
        na = "N/A"
        rows = []
        for table_name, table_info in self.results.items():
            total_records = table_info["total_records"]
            rows.append([
                table_name, na, total_records, na, na, na,
                # Flag table if it has no records
                total_records == 0,
                "No records" if total_records == 0 else ""
            ])
            for column_name, column_info in table_info["columns"].items():
                unlabeled_values = column_info.get("unlabeled_values", na)
                flagged = unlabeled_values not in (na, 0)
                rows.append([
                    table_name,
                    column_name,
                    total_records,
                    column_info["empty_cells"],
                    column_info["distinct_values"],
                    unlabeled_values,
                    flagged,
                    "Values without labels" if flagged else ""
                ])
        return rows

    def run(self) -> str:
        csv = Csv(file_path=self.output_file, delimiter="\t")
        csv.create_csv_with_header(self.HEADERS)
        csv.append_rows(self.create_rows())
        logging.info(f"Wrote summary statistics to {self.output_file}")
        return self.output_file


if __name__ == '__main__':
    args = get_args()

    tables = ReadCsvTables(csv_dir=args.csv_dir).run()
    results = CreateSummaryStatistics(tables=tables, label_view_suffix=args.label_view_suffix).analyze_tables()
    WriteTsv(results=results, output_file=args.output_file).run()
