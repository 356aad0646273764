# parse_data.py
"""
Validate a payments CSV and print basic stats without writing anything.
"""

import sys

from scripts.ingest import parse_payments_csv, FILE_PATH


def main(file_path: str = FILE_PATH):
    payments_list, stats = parse_payments_csv(file_path)

    print(f"Total CSV rows read:   {stats['n_rows']}")
    print(f"Valid payments:        {stats['n_payments']}")
    print(f"Rows with errors:      {stats['n_errors']}")
    print(f"Duplicate payments:    {stats['n_duplicates']}")

    if stats["validation_errors"]:
        print("\nErrors:")
        for err in stats["validation_errors"]:
            print(f"- Row {err['row']} ({err['field']}): {err['error']}")

    if stats["duplicates"]:
        print("\nDuplicates:")
        for example in stats["duplicates"]:
            print(f"- {example}")


if __name__ == "__main__":
    main(sys.argv[1] if len(sys.argv) > 1 else FILE_PATH)
