#!/usr/bin/env python3
"""Maintain the product to command mapping used by the order poller.

Changes are written to the catalog file immediately. A running service picks
them up after ``kill -HUP <pid>``.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from ordergate.config import load_settings
from ordergate.errors import NotFoundError, StorageError
from ordergate.products import ProductCatalog
from ordergate.storage.factory import open_dedup_store


def cmd_list(catalog: ProductCatalog, _args: argparse.Namespace) -> int:
    products = catalog.list_products()
    if not products:
        print("No products configured.")
        return 0
    print(f"Configured products ({len(products)}):")
    for name, commands in sorted(products.items()):
        print(f"- {name} ({len(commands)} command{'s' if len(commands) != 1 else ''})")
    return 0


def cmd_show(catalog: ProductCatalog, args: argparse.Namespace) -> int:
    commands = catalog.get(args.product)
    if commands is None:
        print(f"Product not found: {args.product}", file=sys.stderr)
        return 1
    print(f"{args.product}:")
    if not commands:
        print("  (no commands)")
    for index, command in enumerate(commands, start=1):
        print(f"  {index}. {command}")
    return 0


def cmd_add(catalog: ProductCatalog, args: argparse.Namespace) -> int:
    try:
        commands = catalog.add_command(args.product, args.command)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    print(f"Added command #{len(commands)} to {args.product}")
    return 0


def cmd_remove(catalog: ProductCatalog, args: argparse.Namespace) -> int:
    try:
        removed = catalog.remove_command(args.product, args.index)
    except NotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    print(f"Removed from {args.product}: {removed}")
    return 0


def cmd_delete(catalog: ProductCatalog, args: argparse.Namespace) -> int:
    try:
        removed = catalog.delete_product(args.product)
    except NotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    print(f"Deleted {args.product} ({len(removed)} commands)")
    return 0


def cmd_snippet(catalog: ProductCatalog, args: argparse.Namespace) -> int:
    print(catalog.render_snippet(args.product))
    return 0


def cmd_status(catalog: ProductCatalog, args: argparse.Namespace) -> int:
    settings = load_settings()
    print(f"Catalog: {catalog.path} ({len(catalog.list_products())} products)")
    print(f"Shopify credentials: {'configured' if settings.has_shopify_credentials() else 'missing'}")
    print(f"Storage backend: {settings.storage_backend}")
    try:
        store = open_dedup_store(settings)
    except StorageError as exc:
        print(f"Storage unavailable: {exc}", file=sys.stderr)
        return 1
    try:
        recent = store.list_recent(limit=args.limit)
    finally:
        store.close()
    print(f"Active storage: {store.backend}")
    print(f"Recent orders ({len(recent)}):")
    for record in recent:
        print("  " + json.dumps(record, ensure_ascii=False, sort_keys=True))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Ordergate product catalog manager")
    parser.add_argument("--products-path", default=None, help="catalog file (defaults to ORDERGATE_PRODUCTS_PATH)")
    sub = parser.add_subparsers(dest="command_name", required=True)

    sub.add_parser("list", help="list configured products").set_defaults(handler=cmd_list)

    show = sub.add_parser("show", help="show the commands of a product")
    show.add_argument("product")
    show.set_defaults(handler=cmd_show)

    add = sub.add_parser("add", help="append a command to a product")
    add.add_argument("product")
    add.add_argument("command", help="command template, use %%player%% for the buyer")
    add.set_defaults(handler=cmd_add)

    remove = sub.add_parser("remove", help="remove a command by its 1-based index")
    remove.add_argument("product")
    remove.add_argument("index", type=int)
    remove.set_defaults(handler=cmd_remove)

    delete = sub.add_parser("delete", help="delete a product and all of its commands")
    delete.add_argument("product")
    delete.set_defaults(handler=cmd_delete)

    snippet = sub.add_parser("snippet", help="print a catalog snippet for a product")
    snippet.add_argument("product")
    snippet.set_defaults(handler=cmd_snippet)

    status = sub.add_parser("status", help="show configuration and recently processed orders")
    status.add_argument("--limit", type=int, default=10)
    status.set_defaults(handler=cmd_status)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    products_path = Path(args.products_path) if args.products_path else load_settings().products_path
    catalog = ProductCatalog(products_path)
    return args.handler(catalog, args)


if __name__ == "__main__":
    raise SystemExit(main())
