"""Allow ``python -m app_store_connect``."""

import sys

from .cli import main

sys.exit(main())
