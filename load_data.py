# load_data.py
"""
Load a payments CSV into the database as unmatched payments.
"""

import sys

from scripts.ingest import main, FILE_PATH


if __name__ == "__main__":
    sys.exit(main(sys.argv[1] if len(sys.argv) > 1 else FILE_PATH))
