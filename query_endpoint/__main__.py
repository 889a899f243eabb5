from __future__ import annotations

from query_endpoint.runtime.lifecycle import main

raise SystemExit(main())
