import sys

from ..cli import configure_logging
from ..config import load_settings
from .server import main

try:
    settings = load_settings()
except ValueError as e:
    print(f"Error: {e}", file=sys.stderr)
    sys.exit(1)
configure_logging(settings.log_level)
main(settings)
