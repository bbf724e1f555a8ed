#!/usr/bin/env python3
"""
Create the coaching tables in Snowflake.

Prints the DDL by default; pass --apply to run it.

Usage:
    python scripts/create_schema.py            # print DDL
    python scripts/create_schema.py --apply    # create tables

Requires:
    - .env file with Snowflake credentials (for --apply)
"""

import argparse
import sys
import textwrap
from pathlib import Path

# Make the package importable when run from a checkout
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment variables before settings are read
load_dotenv()

from coachgen.api.dependencies import _snowflake_config
from coachgen.config.settings import get_settings
from coachgen.infrastructure.snowflake.client import create_snowflake_connection
from coachgen.infrastructure.snowflake.schema import DDL_STATEMENTS


def print_ddl() -> None:
    for statement in DDL_STATEMENTS:
        print(textwrap.dedent(statement).strip() + ";\n")


def apply_ddl() -> bool:
    settings = get_settings()

    missing = [f for f in settings.validate_required_fields() if f.startswith("SNOWFLAKE")]
    if settings.snowflake_mock_mode:
        print("ERROR: SNOWFLAKE_MOCK_MODE is set; nothing to apply against")
        return False
    if missing:
        print(f"ERROR: Missing {', '.join(missing)}")
        return False

    print(f"Connecting to Snowflake account: {settings.snowflake_account}")
    with create_snowflake_connection(config=_snowflake_config(settings)) as conn:
        cursor = conn.cursor()
        try:
            cursor.execute(f"USE DATABASE {settings.snowflake_database}")
            cursor.execute(f"USE SCHEMA {settings.snowflake_schema}")
            for statement in DDL_STATEMENTS:
                table = statement.split("EXISTS", 1)[1].split("(", 1)[0].strip()
                cursor.execute(statement)
                print(f"[OK] {table}")
            conn.commit()
        finally:
            cursor.close()

    print("\n=== Schema ready ===")
    return True


def main():
    parser = argparse.ArgumentParser(description='Create coaching tables in Snowflake')
    parser.add_argument('--apply', action='store_true', help='Run the DDL instead of printing it')
    args = parser.parse_args()

    if not args.apply:
        print_ddl()
        sys.exit(0)

    sys.exit(0 if apply_ddl() else 1)


if __name__ == '__main__':
    main()
