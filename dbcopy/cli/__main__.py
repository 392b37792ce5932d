#!/usr/bin/env python
# import
## batteries
import sys
import logging
import argparse
## 3rd party
from dotenv import load_dotenv
## package
from dbcopy.cli.utils import CustomFormatter
from dbcopy.cli.commands import copy_parser
from dbcopy.errors import DbCopyError

# functions
def arg_parse(args=None) -> argparse.Namespace:
    """
    Parse command line arguments.
    """
    desc = "dbcopy: copy model metadata and values between database and text files"
    epi = """DESCRIPTION:
dbcopy copies a model, model run, workset or modeling task
from database into json and csv files, from text files into database,
from one database into another, dumps model database tables into csv files
or deletes them from database.

Examples:
  dbcopy text -m modelOne --database modelOne.sqlite
  dbcopy text -m modelOne --run-name Default --id-names yes
  dbcopy db -m modelOne --input-dir out --database new.sqlite
  dbcopy csv -m modelOne --id-csv
  dbcopy db2db -m modelOne --database modelOne.sqlite --to-database copy.sqlite
  dbcopy delete -m modelOne --set-id 7
"""
    parser = argparse.ArgumentParser(
        description=desc,
        epilog=epi,
        formatter_class=CustomFormatter
    )
    subparsers = parser.add_subparsers(dest="command", help="Copy direction")
    copy_parser(subparsers)
    return parser.parse_args(args)

def main(args=None):
    # load environment variables
    load_dotenv(override=True)
    # parse arguments
    args = arg_parse(args)

    if not args.command:
        print("Provide a subcommand or use -h/--help for help")
        sys.exit(0)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    try:
        args.func(args)
    except (DbCopyError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

if __name__ == "__main__":
    main()
