"""
Export the project info, instruments, metadata and (optionally) project XML of a REDCap
project into an output directory, one file per export.
"""
import json
import logging
import os
from argparse import ArgumentParser, Namespace

from utils.file_util import FileUtil
from utils.redcap_utils.redcap_project import RedCapProject
from utils.request_util import RunRequest

logging.basicConfig(
    format="%(levelname)s: %(asctime)s : %(message)s", level=logging.INFO
)


def get_args() -> Namespace:
    parser = ArgumentParser(description="Export the definition of a REDCap project to JSON files")
    parser.add_argument("--api_url", "-u", required=True, help="The REDCap API URL")
    parser.add_argument("--api_token", "-t", required=True, help="API token of the project")
    parser.add_argument("--output_dir", "-o", required=True, help="Directory the files are written to")
    parser.add_argument("--include_xml", "-x", action="store_true", help="Also export the project XML")
    parser.add_argument("--ssl_verify", action="store_true", help="Verify the REDCap server's SSL certificate")
    return parser.parse_args()


class ExportProjectData:
    def __init__(self, project: RedCapProject, output_dir: str, include_xml: bool = False):
        self.project = project
        self.output_dir = output_dir
        self.include_xml = include_xml

    def _write_json(self, file_name: str, data: object) -> str:
        file_path = os.path.join(self.output_dir, file_name)
        FileUtil.write_string_to_file(file_path, json.dumps(data, indent=4))
        logging.info(f"Wrote {file_path}")
        return file_path

    def run(self) -> list[str]:
        files = [
            self._write_json("project_info.json", self.project.export_project_info()),
            self._write_json("instruments.json", self.project.export_instruments()),
            self._write_json("metadata.json", self.project.export_metadata()),
        ]
        if self.include_xml:
            file_path = os.path.join(self.output_dir, "project.xml")
            FileUtil.write_string_to_file(file_path, self.project.export_project_xml())
            logging.info(f"Wrote {file_path}")
            files.append(file_path)
        return files


if __name__ == '__main__':
    args = get_args()

    os.makedirs(args.output_dir, exist_ok=True)
    request_util = RunRequest(url=args.api_url, ssl_verify=args.ssl_verify)
    project = RedCapProject(request_util=request_util, api_token=args.api_token)
    ExportProjectData(project=project, output_dir=args.output_dir, include_xml=args.include_xml).run()
