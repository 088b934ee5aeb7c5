import argparse
import sys
from pathlib import Path

from enrollment.errors import EnrollmentError


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="enrollment-wizard",
        description="Enroll a new VPN device for a user account.",
    )
    parser.add_argument("--config", type=Path, help="Path to the YAML settings file")
    parser.add_argument("--user", help="Account to enroll the device for")
    parser.add_argument(
        "--edit-device", type=int, metavar="ID",
        help="Edit an existing network device instead of adding one",
    )
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    from settings import load_settings
    try:
        settings = load_settings(args.config)
    except (OSError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(2)
    username = args.user or settings.username
    if not username:
        print("ERROR: no account given (use --user or set 'username').", file=sys.stderr)
        sys.exit(2)

    from app import EnrollmentWizard
    app = EnrollmentWizard(settings, username=username, edit_device_id=args.edit_device)
    try:
        app.run()
    except EnrollmentError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
    sys.exit(app.return_code or 0)

if __name__ == "__main__":
    main()
