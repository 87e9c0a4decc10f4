#!/usr/bin/env python3
"""
Script to verify the test database configuration.

Tests default to a throwaway SQLite file; this checks that an explicit
TEST_DATABASE_URL never points at the application database.
"""

import os
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


def main() -> int:
    """Check test database configuration."""
    print("=" * 70)
    print("Test Database Setup Verification")
    print("=" * 70)
    print()

    from dotenv import load_dotenv

    load_dotenv()

    app_db = os.getenv("DATABASE_URL")
    test_db = os.getenv("TEST_DATABASE_URL")

    print("📊 Current Configuration:")
    print(f"   Application DB: {app_db}")
    print(f"   Test DB:        {test_db or '(temporary SQLite file per test)'}")
    print()

    if not test_db:
        print("✅ Tests will use a temporary SQLite database through aiosqlite.")
        return 0

    if test_db == app_db:
        print("🚨 CRITICAL: Test database is the same as the application database!")
        print("   Tests drop every table after each run. Use a separate database.")
        return 1

    if "test" not in test_db.lower():
        print("⚠️  WARNING: Test database URL doesn't contain 'test'")
        print("   Consider using a database name like 'clinic_test'")
        print()

    print("✅ Test database configuration looks good!")
    print("   Run: pytest")
    return 0


if __name__ == "__main__":
    sys.exit(main())
