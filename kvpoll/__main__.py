"""Allow running the server with ``python -m kvpoll``."""

import sys

from .server import main

sys.exit(main())
