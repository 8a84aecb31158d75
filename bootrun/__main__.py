"""Allow ``python -m bootrun``."""

import sys

from bootrun import cli

if __name__ == "__main__":
    sys.exit(cli.main())
