#!/usr/bin/env python3
"""
FieldCrypt Service entry point.

This script starts the FieldCrypt Service API server or demonstrates
transparent field encryption in action based on command line arguments.
"""

import argparse
import logging
import os
import sys

from indaleko_fieldcrypt.config import FieldCryptConfig
from indaleko_fieldcrypt.db.memory import MemoryEngine, RelationDef
from indaleko_fieldcrypt.encryption.cipher import is_cipher_string
from indaleko_fieldcrypt.encryption.field_cipher import FieldCipher
from indaleko_fieldcrypt.errors import ConfigurationError
from indaleko_fieldcrypt.field_crypt_service import FieldCryptService
from indaleko_fieldcrypt.logging_config import setup_logging
from indaleko_fieldcrypt.registry.field_registry import FieldRegistry


logger = logging.getLogger("indaleko_fieldcrypt.main")


def parse_args() -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(description="FieldCrypt Service")

    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host to bind to (default: 0.0.0.0)"
    )

    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)"
    )

    parser.add_argument(
        "--config",
        help="Path to configuration file"
    )

    parser.add_argument(
        "--mode",
        choices=["DEV", "PROD"],
        help="Override operation mode (DEV or PROD)"
    )

    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development"
    )

    parser.add_argument(
        "--demo",
        action="store_true",
        help="Run a demonstration against an in-memory engine"
    )

    return parser.parse_args()


def run_demo() -> None:
    """Create, query and read back protected records in memory."""
    print("Running FieldCrypt demo...")

    engine = MemoryEngine({
        "User": {"posts": RelationDef("Post", "author", many=True)},
        "Post": {"author": RelationDef("User", "posts", many=False)},
    })
    registry = FieldRegistry(
        {
            "User": {"name": {"mode": "hash"}, "email": {"mode": "encrypt", "strict": True}},
            "Post": {"content": {"mode": "encrypt"}},
        },
        engine.relation_targets(),
    )
    service = FieldCryptService(engine, registry, FieldCipher.from_config())

    users = service.model("User")
    user = users.create(
        data={
            "email": "007@hmss.gov.uk",
            "name": " François",
            "posts": {"create": [{"title": "Orders", "content": "You only live twice."}]},
        },
        include={"posts": True},
    )
    print(f"Created user {user['id']} with email {user['email']}")
    print(f"  Post content: {user['posts'][0]['content']}")

    stored = engine.raw_rows("User")[0]
    print(f"  Stored email is ciphertext: {is_cipher_string(stored['email'])}")
    print(f"  Stored name digest: {stored['name']}")

    found = users.find_first(where={"name": {"equals": "FRANCOIS"}})
    print(f"Lookup by normalized name found: {found['email'] if found else None}")

    users.find_many(orderBy={"name": "desc"})
    print("Demo completed successfully!")


def main() -> None:
    """Main entry point for the FieldCrypt Service."""
    args = parse_args()

    if args.mode:
        os.environ["INDALEKO_MODE"] = args.mode

    try:
        FieldCryptConfig.initialize(args.config)

        # Look for secrets file in standard location
        secrets_file = os.path.join(os.path.dirname(os.path.abspath(__file__)), ".secrets", "fieldcrypt.yaml")
        FieldCryptConfig.load_from_secrets_file(secrets_file)
    except ConfigurationError as e:
        print(f"CRITICAL: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging()

    mode = FieldCryptConfig.get("mode")
    logger.info("FieldCrypt Service - %s mode", mode)

    if args.demo:
        try:
            run_demo()
        except ConfigurationError as e:
            print(f"CRITICAL: {e}", file=sys.stderr)
            sys.exit(1)
        return

    from indaleko_fieldcrypt.service import get_service, start_api

    # Fail at startup, not on the first request
    try:
        get_service()
    except ConfigurationError as e:
        print(f"CRITICAL: {e}", file=sys.stderr)
        sys.exit(1)

    logger.info("Starting API server on %s:%s", args.host, args.port)
    try:
        start_api(host=args.host, port=args.port, reload=args.reload)
    except KeyboardInterrupt:
        print("Service stopped")
        sys.exit(0)


if __name__ == "__main__":
    main()
