"""Print a file consistency report for every report that references a stored file.

Reads DATABASE_URL and LOCAL_STORAGE_BASE_PATH from the environment (or `.env`), like
the API does. Exits with status 1 when issues were found so cron jobs can alert on it.
"""

# pyright: reportMissingImports=false
from __future__ import annotations

import argparse
import asyncio
import uuid
from pathlib import Path

from healthvault.core.db import create_engine, create_sessionmaker, import_all_models
from healthvault.core.settings import get_settings
from healthvault.reports.consistency import check_file_consistency, generate_consistency_report
from healthvault.storage.local import LocalFileStorage


async def run_check(*, user_id: uuid.UUID | None) -> int:
    """Run the check and print the text report. Returns the number of issues."""
    settings = get_settings()
    import_all_models()
    engine = create_engine(database_url=settings.database_url)
    sessionmaker = create_sessionmaker(engine=engine)
    storage = LocalFileStorage(base_dir=Path(settings.local_storage_base_path))

    async with sessionmaker() as session:
        result = await check_file_consistency(session=session, storage=storage, user_id=user_id)

    await engine.dispose()
    print(generate_consistency_report(result))
    return len(result.issues)


def main() -> None:
    """Entry point."""
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--user-id", type=uuid.UUID, default=None, help="Check one user only.")
    args = parser.parse_args()

    issues = asyncio.run(run_check(user_id=args.user_id))
    if issues:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
