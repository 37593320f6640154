#!/usr/bin/env python3
"""
Validate the reconciliation audit hash chain in the configured database.

Usage:
  python3 scripts/verify_audit_chain.py [--config path/to/settlement.yaml]

Exit status 0 when the chain is intact, 2 when it is broken.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from settlement_config import get_active_config  # noqa: E402
from settlement_kernel.db.engine import init_engine_from_url, session_scope  # noqa: E402
from settlement_kernel.exceptions import AuditChainBrokenError  # noqa: E402
from settlement_kernel.logging_config import configure_logging  # noqa: E402
from settlement_kernel.services.audit_log_service import AuditLogService  # noqa: E402


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--config", type=Path, default=None,
                        help="Settlement YAML config (default: packaged defaults)")
    args = parser.parse_args(argv)

    config = get_active_config(args.config)
    configure_logging(level=config.logging.level)
    init_engine_from_url(
        config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
    )

    with session_scope() as session:
        try:
            AuditLogService(session).validate_chain()
        except AuditChainBrokenError as exc:
            print(f"BROKEN: {exc}")
            return 2

    print("OK: audit chain intact")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
