# import
## batteries
import json
import logging
import argparse
## package
from dbcopy.cli.utils import CustomFormatter
from dbcopy.copy.orchestrator import (
    TO_TEXT, TO_DB, TO_CSV, DB_TO_DB, DELETE, CopyScope, CopyOptions, CopyOrchestrator,
)
from dbcopy.db.connect import db_connect
from dbcopy.text.names import IdNamePolicy
from dbcopy.utils import load_settings

logger = logging.getLogger(__name__)

_COMMANDS = {
    TO_TEXT: (
        "Copy model from database to text files",
        "Write model json, run and workset json plus csv values, task json.\n"
        "Files are written into OUTPUT_DIR/modelName, use --zip to pack them."
    ),
    TO_DB: (
        "Copy model from text files to database",
        "Read model json, runs, worksets and tasks from INPUT_DIR/modelName.\n"
        "Existing model with the same digest is reused, existing runs are skipped."
    ),
    TO_CSV: (
        "Copy model from database to flat csv files",
        "Write one csv file per metadata table and values of all runs\n"
        "into all-in-one csv files under OUTPUT_DIR/modelName/all_model_runs."
    ),
    DB_TO_DB: (
        "Copy model from one database to another",
        "Insert model, runs, worksets and tasks into the --to-database with new ids.\n"
        "Existing model with the same digest is reused, existing runs are skipped."
    ),
    DELETE: (
        "Delete model, run, workset or task from database",
        "Delete is done in one transaction, nothing is deleted on error."
    ),
}

# functions
def _add_copy_args(sub_parser, settings) -> None:
    """
    Arguments shared by all copy commands, defaults are from settings.yml
    """
    sel = sub_parser.add_argument_group("what to copy")
    sel.add_argument('-m', '--model-name', type=str, default=None, help='Model name')
    sel.add_argument('--model-digest', type=str, default=None, help='Model digest, used instead of name if specified')
    sel.add_argument('--run-id', type=int, default=None, help='Model run id')
    sel.add_argument('--run-name', type=str, default=None, help='Model run name')
    sel.add_argument('--set-id', type=int, default=None, help='Workset id')
    sel.add_argument('--set-name', type=str, default=None, help='Workset name')
    sel.add_argument('--task-id', type=int, default=None, help='Modeling task id')
    sel.add_argument('--task-name', type=str, default=None, help='Modeling task name')

    db = sub_parser.add_argument_group("database")
    db.add_argument('--database', type=str, default=None, help='Sqlite database file, default from DB_PATH')
    db.add_argument('--database-driver', type=str, default=None, choices=['sqlite', 'postgres'],
                    help='Database driver, default from DB_DRIVER')

    io = sub_parser.add_argument_group("files")
    io.add_argument('--input-dir', type=str, default=settings.get("input_dir", "."), help='Input directory')
    io.add_argument('--output-dir', type=str, default=settings.get("output_dir", "."), help='Output directory')
    io.add_argument('-p', '--param-dir', type=str, default=None,
                    help='Workset parameters directory, overrides set.name directory on import')
    io.add_argument('--zip', action='store_true', default=settings.get("zip", False),
                    help='Pack output into modelName.zip or unpack input from it')
    io.add_argument('--double-format', type=str, default=settings.get("double_format", "%.15g"),
                    help='Format of float values, e.g.: %%.6f')
    io.add_argument('--id-csv', action='store_true', default=settings.get("id_csv", False),
                    help='Write enum ids instead of enum codes into csv files')
    io.add_argument('--id-names', type=str, default=settings.get("id_names", "default"),
                    choices=['default', 'yes', 'no'],
                    help='Include run, set or task id into file names: yes, no or only on name conflict')
    io.add_argument('--utf8-bom', action='store_true', default=settings.get("utf8_bom", False),
                    help='Write utf-8 byte order mark into csv files')
    io.add_argument('--encoding', type=str, default=settings.get("encoding", None), help='Encoding of input csv files')
    io.add_argument('--no-acc', action='store_true', default=settings.get("no_acc", False),
                    help='Do not write output table accumulators')
    io.add_argument('--no-microdata', action='store_true', default=settings.get("no_microdata", False),
                    help='Do not copy microdata')
    sub_parser.add_argument('--log-level', type=str, default=settings.get("log_level", "INFO"),
                            choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], help='Logging level')

def _add_dst_args(sub_parser) -> None:
    dst = sub_parser.add_argument_group("destination database")
    dst.add_argument('--to-database', type=str, required=True, help='Destination sqlite database file')
    dst.add_argument('--to-database-driver', type=str, default=None, choices=['sqlite', 'postgres'],
                     help='Destination database driver, default from DB_DRIVER')

def copy_parser(subparsers) -> None:
    """
    Add text, db, csv, db2db and delete sub-commands.

    Args:
        subparsers: argparse subparsers object
    """
    settings = load_settings()
    for command, (help_msg, desc) in _COMMANDS.items():
        sub_parser = subparsers.add_parser(
            command, help=help_msg, description=desc, formatter_class=CustomFormatter
        )
        sub_parser.set_defaults(func=copy_main)
        _add_copy_args(sub_parser, settings)
        if command == DB_TO_DB:
            _add_dst_args(sub_parser)

def scope_from_args(args) -> CopyScope:
    return CopyScope.from_selectors(
        model_name=args.model_name,
        model_digest=args.model_digest,
        run_id=args.run_id,
        run_name=args.run_name,
        set_id=args.set_id,
        set_name=args.set_name,
        task_id=args.task_id,
        task_name=args.task_name,
    )

def options_from_args(args) -> CopyOptions:
    return CopyOptions(
        input_dir=args.input_dir,
        output_dir=args.output_dir,
        param_dir=args.param_dir,
        double_format=args.double_format,
        id_csv=args.id_csv,
        id_names=IdNamePolicy.from_option(args.id_names),
        utf8_bom=args.utf8_bom,
        encoding=args.encoding or None,
        zip=args.zip,
        no_acc=args.no_acc,
        no_microdata=args.no_microdata,
    )

def copy_main(args) -> dict:
    """
    Run one copy command and print its result
    """
    scope = scope_from_args(args)
    options = options_from_args(args)

    conn = db_connect(driver=args.database_driver, path=args.database)
    dst_conn = None
    try:
        if args.command == DB_TO_DB:
            dst_conn = db_connect(driver=args.to_database_driver, path=args.to_database)
        result = CopyOrchestrator(args.command, scope, options, conn, dst_conn=dst_conn).run()
    finally:
        if dst_conn is not None:
            dst_conn.close()
        conn.close()

    print(json.dumps(result, indent=2, ensure_ascii=False, default=str))
    return result

# main
if __name__ == '__main__':
    from dotenv import load_dotenv
    load_dotenv(override=True)

    parser = argparse.ArgumentParser(formatter_class=CustomFormatter)
    subparsers = parser.add_subparsers(dest='command')
    copy_parser(subparsers)
    args = parser.parse_args()
    copy_main(args)
