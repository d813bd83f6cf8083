from __future__ import annotations

from mto_import.cli.app import main

if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
