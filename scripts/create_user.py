import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from userapi.config import ConfigurationError, load_settings
from userapi.database import DRIVER_ERRORS, Database
from userapi.migrations import MigrationRunner


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a user record directly in the database")
    parser.add_argument("name", help="Display name for the user")
    parser.add_argument("email", help="Email address for the user")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the YAML configuration file (defaults to USERAPI_CONFIG or config/userapi.yaml)",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    database = Database(settings.database)
    try:
        outdated = MigrationRunner(database).has_pending_changes()
    except (*DRIVER_ERRORS, OSError) as exc:
        print(f"Error: database {settings.database.describe()} is not reachable: {exc}", file=sys.stderr)
        return 1
    if outdated:
        print("Error: the database schema is outdated. Run `python main.py migrate` first.", file=sys.stderr)
        return 1

    try:
        user = database.create_user(args.name, args.email)
    except (*DRIVER_ERRORS, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created user #{user.id}: {user.name} <{user.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
