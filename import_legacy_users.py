"""Script to import users exported from the single-currency wallet schema."""
import json
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from coinfolio.core.database import get_db, init_db
from coinfolio.services.migration import import_legacy_users


def main():
    """Main function to import legacy users."""
    if len(sys.argv) != 2:
        print("Usage: python import_legacy_users.py <users.json>")
        sys.exit(2)

    records = json.loads(Path(sys.argv[1]).read_text(encoding="utf-8"))
    print(f"Importing {len(records)} user records...")

    init_db()
    db = next(get_db())

    try:
        stats = import_legacy_users(db, records)

        print("\n=== Legacy Import Results ===")
        print(f"Imported: {stats['imported']} users")
        print(f"Skipped: {stats['skipped']} users")
        print(f"Dropped: {stats['dropped_transactions']} malformed transactions")
        print(f"Total: {stats['total']} records processed")
        print("\nImport completed successfully!")

    except Exception as e:
        print(f"\nError during import: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
