#!/usr/bin/env python3
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

print(
    f"[cascade] ports={os.environ.get('CASCADE_PORTS', '9000-9003')} | "
    f"host={os.environ.get('CASCADE_HOST', '127.0.0.1')} | "
    f"gateway={os.environ.get('CASCADE_GATEWAY_HOST', '127.0.0.1')}:{os.environ.get('CASCADE_GATEWAY_PORT', '9420')}",
    file=sys.stderr,
)

from mirror_servers.cascade.main import main  # noqa: E402

if __name__ == "__main__":
    main()
