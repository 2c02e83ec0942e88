"""Allow `python -m signal_app`."""

import sys

from signal_app.main import main

sys.exit(main())
