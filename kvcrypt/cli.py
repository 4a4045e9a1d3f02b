#!/usr/bin/env python3
"""Read and write KMS-encrypted values from the command line.

Configuration comes from the environment (see kvcrypt.config).
"""
import argparse
import logging
import sys

from botocore.exceptions import BotoCoreError

from kvcrypt.config import build_store, load_settings
from kvcrypt.errors import ConfigurationError, NotFoundError, StoreError
from kvcrypt.logging.json_logger import configure_json_logging

logger = logging.getLogger(__name__)


def build_parser():
    p = argparse.ArgumentParser(prog='kvcrypt', description='KMS-encrypted key-value store')
    sub = p.add_subparsers(dest='command', required=True)

    get_p = sub.add_parser('get', help='Print the decrypted value stored under KEY')
    get_p.add_argument('key')

    set_p = sub.add_parser('set', help='Encrypt and store VALUE (or stdin) under KEY')
    set_p.add_argument('key')
    set_p.add_argument('value', nargs='?', help='Value to store; read from stdin when omitted')
    return p


def main(argv=None):
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings()
        configure_json_logging(siem_endpoint=settings.siem_endpoint, level=settings.log_level)
        store = build_store(settings)

        if args.command == 'get':
            value = store.get(args.key)
            sys.stdout.buffer.write(value + b'\n')
            sys.stdout.flush()
        else:
            value = args.value.encode('utf-8') if args.value is not None else sys.stdin.buffer.read()
            store.set(args.key, value)
    except (ConfigurationError, NotFoundError, StoreError, ValueError, BotoCoreError, OSError) as e:
        print(f"kvcrypt: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
