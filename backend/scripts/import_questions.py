"""CLI script to import question bank files into the backend DB.
Usage: python scripts/import_questions.py PATH [PATH ...] [--dry-run] [--no-dedupe]

Each PATH may be a JSON/CSV file or a directory scanned recursively.
"""
import sys
import argparse
import pathlib
from typing import List
# Ensure `backend/` is on sys.path so `dailyquiz` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from dailyquiz.database import engine, create_db_and_tables
from dailyquiz import services

SUPPORTED_EXT = {'.csv', '.json'}


def find_bank_files(paths: List[pathlib.Path]) -> List[pathlib.Path]:
    """Expand directories into the supported files they contain."""
    files = []
    for p in paths:
        if p.is_dir():
            files.extend(f for f in p.rglob('*') if f.is_file() and f.suffix.lower() in SUPPORTED_EXT)
        elif p.is_file():
            files.append(p)
    # sort for deterministic order
    return sorted(set(files))


def main(paths: List[pathlib.Path], dry_run: bool = False, deduplicate: bool = True) -> int:
    """Import every file found under `paths`.

    Results are printed to stdout for a quick CLI feedback loop. Returns
    the number of files that failed to import.
    """
    files = find_bank_files(paths)
    if not files:
        print('No files found to import')
        return 0
    create_db_and_tables()
    failures = 0
    with Session(engine) as session:
        svc = services.ImportService(session)
        total_created = 0
        total_skipped = 0
        for f in files:
            try:
                result = svc.import_file(f.read_bytes(), f.name, deduplicate=deduplicate, dry_run=dry_run)
            except ValueError as e:
                failures += 1
                print(f'Error importing {f}: {e}')
                continue
            total_created += result['created']
            total_skipped += result['skipped']
            print(f"Imported {f}: created {result['created']}, skipped {result['skipped']}, errors {len(result['errors'])}")
            for err in result['errors']:
                print(f"  row {err['index']}: {err['error']}")
        print(f'Total created questions: {total_created}, skipped {total_skipped}')
    return failures


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('paths', nargs='+', type=pathlib.Path, help='Question bank files or folders')
    parser.add_argument('--dry-run', action='store_true', help='Validate without writing')
    parser.add_argument('--no-dedupe', action='store_true', help='Import questions even if the text already exists')
    args = parser.parse_args()
    sys.exit(1 if main(args.paths, dry_run=args.dry_run, deduplicate=not args.no_dedupe) else 0)
