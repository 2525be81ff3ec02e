"""
Reconciliation report - where the mirror database disagrees with the ledger.

Reads every product from the ledger (CHAIN_RPC_URL / CONTRACT_ADDRESS) and
every mirrored product row (SUPABASE_URL / SUPABASE_KEY) and prints:
- products on the ledger with no mirror row
- mirror rows with no ledger product
- field mismatches (status, owner, price, for-sale flag)

Nothing is written. Fixing a divergence is a manual decision.
"""

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.product import Product

COMPARED_FIELDS = ("status", "owner", "price", "is_for_sale")


@dataclass(frozen=True, slots=True)
class Difference:
    product_id: int
    kind: str  # "missing_in_mirror", "missing_in_ledger" or "mismatch"
    field: str = ""
    ledger_value: object = None
    mirror_value: object = None

    def describe(self) -> str:
        if self.kind == "missing_in_mirror":
            return f"Product {self.product_id}: on the ledger, not in the database"
        if self.kind == "missing_in_ledger":
            return f"Product {self.product_id}: in the database, not on the ledger"
        return (
            f"Product {self.product_id}: {self.field} differs "
            f"(ledger={self.ledger_value!r}, database={self.mirror_value!r})"
        )


def _normalize(field: str, value: object) -> object:
    if field == "owner" and isinstance(value, str):
        return value.lower()
    return value


def find_differences(ledger_products: List[Product], mirror_products: List[Product]) -> List[Difference]:
    """Compare both views by product id. The ledger side is the reference."""

    mirror_by_id = {p.id: p for p in mirror_products}
    ledger_ids = set()
    differences: List[Difference] = []

    for product in sorted(ledger_products, key=lambda p: p.id):
        ledger_ids.add(product.id)
        mirrored = mirror_by_id.get(product.id)
        if mirrored is None:
            differences.append(Difference(product.id, "missing_in_mirror"))
            continue
        for field in COMPARED_FIELDS:
            ledger_value = getattr(product, field)
            mirror_value = getattr(mirrored, field)
            if _normalize(field, ledger_value) != _normalize(field, mirror_value):
                differences.append(
                    Difference(product.id, "mismatch", field, ledger_value, mirror_value)
                )

    for product in mirror_products:
        if product.id not in ledger_ids:
            differences.append(Difference(product.id, "missing_in_ledger"))

    return differences


def reconcile_report():
    """Print ledger vs database differences."""

    from api.dependencies import get_gateway, get_mirror
    from services.product_reader import ProductReader

    reader = ProductReader(get_gateway(), get_mirror())
    ledger_products = reader.read_ledger()
    mirror_products = reader.read_mirror()
    differences = find_differences(ledger_products, mirror_products)

    print("=" * 50)
    print("RECONCILIATION REPORT")
    print("=" * 50)
    print(f"Ledger products:           {len(ledger_products)}")
    print(f"Database products:         {len(mirror_products)}")
    print(f"Differences:               {len(differences)}")
    print("=" * 50)

    for difference in differences:
        print(difference.describe())

    return 1 if differences else 0


if __name__ == "__main__":
    sys.exit(reconcile_report())
