"""Allow ``python -m dbaquery``."""

import sys

from dbaquery.interface.cli import main

if __name__ == "__main__":
    sys.exit(main())
