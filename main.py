from __future__ import annotations

from query_endpoint.runtime.lifecycle import main


if __name__ == "__main__":
    raise SystemExit(main())
