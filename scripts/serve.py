from __future__ import annotations

import asyncio

from ordernotify.apps.api.server import serve


def main() -> None:
    # Run the API with the process guardian so SIGINT/SIGTERM drain background tasks first.
    asyncio.run(serve())


if __name__ == "__main__":
    main()
