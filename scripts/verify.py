"""
Archive Verification Script

Verifies data integrity of the Excel order archive written by the daily reset.
Run from project root: python scripts/verify.py

Author: Your Name
Version: 2.0.0
"""

import os
import sys
from datetime import datetime

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pandas as pd

from app.core.config import get_settings

ARCHIVE_FILE = str(get_settings().archive_file_path)


def verify_archive() -> bool:
    """Verify archive integrity: one order number per business day."""

    print("=" * 60)
    print("🔍 ORDER ARCHIVE VERIFICATION REPORT")
    print("=" * 60)
    print(f"⏰ Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"📄 File: {ARCHIVE_FILE}")
    print("=" * 60)

    if not os.path.exists(ARCHIVE_FILE):
        print("\n❌ Archive file not found!")
        print("   The archive is written by the daily reset.")
        return False

    try:
        df = pd.read_excel(ARCHIVE_FILE, engine='openpyxl', dtype={'order_number': str})
        print(f"\n✅ File loaded successfully!")
    except Exception as e:
        print(f"\n❌ Could not read archive: {e}")
        return False

    print(f"\n📊 STATISTICS:")
    print(f"   Archived Orders: {len(df)}")
    print(f"   Columns: {len(df.columns)}")

    required = ['business_day', 'order_number', 'meal_name', 'quantity', 'table_number']
    missing = [col for col in required if col not in df.columns]

    if missing:
        print(f"\n⚠️ Missing Columns: {missing}")
        return False
    print(f"\n✅ All required columns present")

    ok = True

    duplicates = df.duplicated(subset=['business_day', 'order_number']).sum()
    if duplicates > 0:
        print(f"\n⚠️ {duplicates} duplicate order numbers within a business day!")
        ok = False
    else:
        print(f"✅ No duplicate order numbers within a business day")

    malformed = df[~df['order_number'].astype(str).str.fullmatch(r'\d{6,}')]
    if len(malformed) > 0:
        print(f"⚠️ {len(malformed)} malformed order numbers")
        ok = False
    else:
        print(f"✅ All order numbers are zero-padded digits")

    print(f"\n📅 ORDERS PER DAY:")
    per_day = df.groupby('business_day').size()
    for day, count in per_day.tail(7).items():
        print(f"   {day}: {count}")

    print("\n" + "=" * 60)
    print("✅ VERIFICATION COMPLETE" if ok else "❌ VERIFICATION FAILED")
    print("=" * 60)

    return ok


if __name__ == "__main__":
    sys.exit(0 if verify_archive() else 1)
