"""Allow ``python -m secops.automation``."""

import sys

from secops.automation.cli import main

sys.exit(main())
