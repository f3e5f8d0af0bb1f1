"""Command-line interface for storefront."""

import argparse
import asyncio
import json
import logging
import sys

from . import __version__
from .app import open_store
from .catalog import parse_products, seed_catalog
from .checkout import load_orders
from .config import StorefrontConfig, load_config
from .errors import StorefrontError
from .models import Order, Product, format_money


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def get_config(args: argparse.Namespace) -> StorefrontConfig:
    """Load config from the environment and configure logging."""
    config = load_config()
    configure_logging(args.log_level or config.log_level)
    return config


def format_product(product: Product) -> str:
    return f"{product.id[:8]}  {format_money(product.price):>9}  stock {product.stock:<4} {product.name}"


def format_order(order: Order) -> str:
    units = sum(item.quantity for item in order.items)
    return (
        f"{(order.id or '')[:8]}  {order.timestamp}  {order.status.value:<9} "
        f"{format_money(order.total_amount):>9}  {units} item(s)  user {order.user_id[:8]}"
    )


def cmd_seed(args: argparse.Namespace) -> int:
    """Write the demonstration products if the catalog is empty."""
    try:
        config = get_config(args)
        store = open_store(config)
        count = asyncio.run(seed_catalog(store, config.products_collection))
        if count:
            print(f"Seeded {count} products into {config.products_collection}")
        else:
            print("Catalog is not empty; nothing to seed.")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_products(args: argparse.Namespace) -> int:
    """List catalog products."""
    try:
        config = get_config(args)
        store = open_store(config)
        docs = asyncio.run(store.list_documents(config.products_collection))
        products, invalid = parse_products(docs)
        if invalid:
            print(f"Warning: skipped {len(invalid)} invalid product(s)", file=sys.stderr)

        if args.json:
            print(json.dumps([p.to_dict() for p in products], indent=2))
            return 0

        if not products:
            print("No products found.")
            return 0

        print(f"Products ({len(products)}):")
        for product in products:
            print(format_product(product))
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders(args: argparse.Namespace) -> int:
    """List placed orders."""
    try:
        config = get_config(args)
        store = open_store(config)
        orders = asyncio.run(
            load_orders(store, config.orders_collection, user_id=args.user)
        )

        if args.json:
            print(json.dumps([o.to_dict() for o in orders], indent=2))
            return 0

        if not orders:
            print("No orders found.")
            return 0

        print(f"Orders ({len(orders)}):")
        for order in orders:
            print(format_order(order))
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn

        config = get_config(args)

        print("Starting storefront API server...")
        print(f"Backend: {config.backend} ({config.data_dir}), app: {config.app_id}")
        print(f"API docs: http://{args.host}:{args.port}/docs")
        print()

        # When reload is enabled, uvicorn requires the app as an import string
        app_target = "storefront.api:app" if args.reload else None
        if app_target is None:
            from .api import app
            app_target = app

        uvicorn.run(
            app_target,
            host=args.host,
            port=args.port,
            reload=args.reload,
            workers=1,  # sessions and carts live in process memory
            log_level=config.log_level.lower(),
        )
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="storefront",
        description="Storefront catalog, cart and checkout backend",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: STOREFRONT_LOG_LEVEL or WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # seed
    subparsers.add_parser("seed", help="Seed demonstration products into an empty catalog")

    # products
    products_parser = subparsers.add_parser("products", help="List catalog products")
    products_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # orders
    orders_parser = subparsers.add_parser("orders", help="List placed orders")
    orders_parser.add_argument("--user", "-u", help="Only orders placed by this principal ID")
    orders_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument(
        "--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)"
    )
    serve_parser.add_argument(
        "--port", "-p", type=int, default=8000, help="Port to bind to (default: 8000)"
    )
    serve_parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )

    return parser


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    commands = {
        "seed": cmd_seed,
        "products": cmd_products,
        "orders": cmd_orders,
        "serve": cmd_serve,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        return cmd_func(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
