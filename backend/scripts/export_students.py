"""CLI script to export students from the backend DB as CSV.
Usage: python scripts/export_students.py OUT.csv [--search TERM] [--grade GRADE] [--status STATUS]
"""
import sys
import argparse
import asyncio
import logging
import pathlib
from typing import Optional
# Ensure `backend/` is on sys.path so `educms` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from educms.config import settings
from educms.database import unit_of_work
from educms.models import StudentStatus
from educms.services import StudentService


async def main(out: pathlib.Path, search: Optional[str] = None, grade: Optional[str] = None, status: Optional[str] = None):
    """Write the filtered student export to `out`.

    Filters match the student listing: `search` looks at name, email and
    student id; `grade` and `status` must match exactly.
    """
    async with unit_of_work() as uow:
        svc = StudentService(uow)
        data = await svc.export_students_to_csv(search_term=search, grade=grade, status=status)
    out.write_bytes(data)
    print(f'Wrote {len(data)} bytes to {out}')

if __name__ == '__main__':
    logging.basicConfig(level=settings.LOG_LEVEL)
    parser = argparse.ArgumentParser()
    parser.add_argument('out', type=pathlib.Path, help='Destination CSV file')
    parser.add_argument('--search', help='Case-insensitive search term')
    parser.add_argument('--grade', help='Exact grade')
    parser.add_argument('--status', choices=[s.value for s in StudentStatus], help='Exact status')
    args = parser.parse_args()
    asyncio.run(main(args.out, search=args.search, grade=args.grade, status=args.status))
