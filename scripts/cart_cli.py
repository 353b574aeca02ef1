#!/usr/bin/env python3
"""Drive a file-backed cart from the command line.

Loads products from a JSON listing, opens the cart stored under
``--storage-dir`` and applies one command.  Running the script from two
shells against the same directory behaves like two tabs sharing a cart.

Usage
-----
::

    python scripts/cart_cli.py --products products.json show
    python scripts/cart_cli.py --products products.json add 3 12 --color navy --size M
    python scripts/cart_cli.py --products products.json update 3 20 --color navy --size M
    python scripts/cart_cli.py --products products.json remove 3 --color navy --size M
    python scripts/cart_cli.py --products products.json clear
    python scripts/cart_cli.py --products products.json quote 3 50

Options::

    --storage-dir DIR    Cart storage directory (default: $SWAGCART_STORAGE_DIR or ./.cart)
    --json               Print the cart as JSON instead of a table
    --strict             Refuse out-of-range quantities instead of clamping
    -v / --verbose       Enable DEBUG logging
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from swagcart import (  # noqa: E402
    CartCapacityError,
    CartConfig,
    CartEngine,
    CartError,
    CartResult,
    Product,
    ProductCatalog,
    VariantKey,
    quantity_limits,
)
from swagcart.catalog import parse_products  # noqa: E402

# ── helpers ──────────────────────────────────────────────────


def _money(value: float, currency: str) -> str:
    return f"{value:,.0f} {currency}"


def _load_catalog(path: Path, strict: bool) -> ProductCatalog:
    data = json.loads(path.read_text(encoding="utf-8"))
    return parse_products(data, strict_price_tables=strict)


def _print_cart(cart: CartEngine, currency: str, as_json: bool) -> None:
    if as_json:
        payload: dict[str, Any] = {
            "items": [line.to_wire() for line in cart.items],
            "totals": {"items": cart.count, "subtotal": cart.subtotal},
            "currency": currency,
        }
        print(json.dumps(payload, indent=2, ensure_ascii=False))
        return
    if not cart.items:
        print("Cart is empty.")
        return
    for line in cart.items:
        variant = ", ".join(v for v in (line.selected_color, line.selected_size) if v)
        label = f"{line.name} ({variant})" if variant else line.name
        print(
            f"  {line.sku:<12} {label:<40} x{line.quantity:<6} "
            f"{_money(line.unit_price, currency):>14} {_money(line.total_price, currency):>16}"
        )
    print(f"  {'':<12} {'Total':<40} x{cart.count:<6} {'':>14} {_money(cart.subtotal, currency):>16}")


def _report(result: CartResult) -> None:
    message = f"{result.outcome.value}"
    if result.key is not None:
        message += f" {result.key}"
    if result.adjusted:
        message += f" (quantity adjusted from {result.requested} to {result.quantity})"
    print(message)


def _require_product(catalog: ProductCatalog, product_id: int) -> Product:
    product = catalog.get(product_id)
    if product is None:
        raise SystemExit(f"Unknown product id {product_id}")
    return product


# ── main ─────────────────────────────────────────────────────


async def _run(args: argparse.Namespace) -> int:
    storage_dir = args.storage_dir or os.environ.get("SWAGCART_STORAGE_DIR") or ".cart"
    config = CartConfig.from_env(storage_dir=storage_dir, strict_price_tables=args.strict)

    catalog = _load_catalog(Path(args.products), args.strict)

    async with CartEngine(config) as cart:
        if args.command == "add":
            product = _require_product(catalog, args.product_id)
            if args.strict:
                quantity_limits(product, config.quantity_ceiling).require(args.quantity)
            _report(cart.add(product, args.quantity, color=args.color, size=args.size))
        elif args.command == "update":
            _report(cart.update(VariantKey(args.product_id, args.color, args.size), args.quantity))
        elif args.command == "remove":
            _report(cart.remove(VariantKey(args.product_id, args.color, args.size)))
        elif args.command == "clear":
            _report(cart.clear())
        elif args.command == "quote":
            product = _require_product(catalog, args.product_id)
            q = cart.quote(product, args.quantity)
            tier = q.applied_break.min_qty if q.applied_break is not None else None
            print(
                f"{product.name} x{q.quantity}: unit {_money(q.unit_price, config.currency)}, "
                f"total {_money(q.total, config.currency)}, discount {q.discount_percent:.1f}%, tier {tier}"
            )
            return 0

        cart.flush()
        _print_cart(cart, config.currency, args.json)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Manage a file-backed swagcart cart")
    parser.add_argument("--products", required=True, help="Products JSON listing")
    parser.add_argument("--storage-dir", default=None, help="Cart storage directory")
    parser.add_argument("--json", action="store_true", help="Print the cart as JSON")
    parser.add_argument("--strict", action="store_true", help="Refuse out-of-range quantities and bad price tables")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable DEBUG logging")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("show", help="Print the cart")
    sub.add_parser("clear", help="Empty the cart")
    for name in ("add", "update", "quote"):
        cmd = sub.add_parser(name)
        cmd.add_argument("product_id", type=int)
        cmd.add_argument("quantity", type=int)
        if name != "quote":
            cmd.add_argument("--color")
            cmd.add_argument("--size")
    remove = sub.add_parser("remove")
    remove.add_argument("product_id", type=int)
    remove.add_argument("--color")
    remove.add_argument("--size")

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return asyncio.run(_run(args))
    except CartCapacityError as exc:
        print(f"Quantity rejected: {exc}", file=sys.stderr)
        return 2
    except CartError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
