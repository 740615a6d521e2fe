# =============================================================================
# ectt Entry Point for `python -m ectt`
# =============================================================================
# This module allows ectt to be run as a Python module:
#
#   python -m ectt run --config config.toml
#
# This is equivalent to running the 'ectt' command after installation.
# =============================================================================

import sys

from ectt.app import main

if __name__ == "__main__":
    sys.exit(main())
