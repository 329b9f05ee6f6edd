"""
Excel Verification Script

Checks the order report written by ``POST /api/orders/export``.
Run from project root: python scripts/verify.py
"""

import os
import sys
from datetime import datetime

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pandas as pd

from canteen.services.excel_manager import ExcelManager, report_path


def verify_excel() -> bool:
    """Verify the report after a simulation run."""
    path = report_path()

    print("=" * 60)
    print("🔍 EXCEL VERIFICATION REPORT")
    print("=" * 60)
    print(f"⏰ Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"📄 File: {path}")
    print("=" * 60)

    if not path.exists():
        print("\n❌ Excel file not found!")
        print("   Run the simulation with --export first: python scripts/simulate.py --export")
        return False

    df = pd.DataFrame(ExcelManager.read_orders_report())
    print(f"\n📊 STATISTICS:")
    print(f"   Total Orders: {len(df)}")
    print(f"   Columns: {len(df.columns)}")

    missing = [col for col in ExcelManager.ORDER_COLUMNS if col not in df.columns]
    if len(df) and missing:
        print(f"\n⚠️ Missing Columns: {missing}")
    else:
        print("\n✅ All report columns present")

    if "order_code" in df.columns:
        duplicates = df["order_code"].duplicated().sum()
        if duplicates > 0:
            print(f"\n⚠️ {duplicates} duplicate order codes found!")
        else:
            print("✅ No duplicate order codes")

    if "total" in df.columns and len(df):
        print("\n💰 REVENUE:")
        print(f"   Total: ₹{df['total'].sum():.2f}")
        print(f"   Average: ₹{df['total'].mean():.2f}")
        print("\n🏪 BY CANTEEN:")
        print(df.groupby("canteen")["total"].agg(["count", "sum"]).to_string())

    if "status" in df.columns and len(df):
        print("\n📋 BY STATUS:")
        print(df["status"].value_counts().to_string())

    print("\n" + "=" * 60)
    print("✅ VERIFICATION COMPLETE")
    print("=" * 60)
    return True


if __name__ == "__main__":
    verify_excel()
