# scripts/list_routes.py
"""
Print the API routes the invite service mounts.

Usage:
  python scripts/list_routes.py
  python scripts/list_routes.py --prefix /api/v1/tokens
"""

import argparse

from fastapi.routing import APIRoute

from invite_service.main import app


def iter_api_routes(prefix: str = ""):
    for route in app.routes:
        if not isinstance(route, APIRoute):
            continue
        if prefix and not route.path.startswith(prefix):
            continue
        yield route


def main() -> None:
    parser = argparse.ArgumentParser(description="List invite service API routes")
    parser.add_argument("--prefix", default="", help="Only show paths starting with this prefix")
    args = parser.parse_args()

    rows = sorted(
        (r.path, ",".join(sorted(r.methods or ())), r.name, ",".join(str(t) for t in r.tags))
        for r in iter_api_routes(args.prefix)
    )
    for path, methods, name, tags in rows:
        print(f"{methods:<12} {path:<40} {name:<24} [{tags}]")
    print(f"{len(rows)} route(s)")


if __name__ == "__main__":
    main()
