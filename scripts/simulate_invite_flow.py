"""
End-to-end check of a running invite service.

Walks one token through its whole lifecycle and checks an unknown token:

  generate -> verify (valid) -> consume -> verify (used) -> consume (already_used)
  verify/consume of an id that was never generated -> not_found

Usage:

  export INVITE_BASE_URL="http://localhost:8000"
  export INVITE_ADMIN_KEY="..."          # only if ADMIN_API_KEY is set server-side
  python scripts/simulate_invite_flow.py

Exit code 0 when every step matches, 1 on the first mismatch.
"""

import logging
import os
import sys
from typing import Any, Dict, Optional

import requests
from requests import RequestException

logger = logging.getLogger("invite.simulation")
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

BASE_URL = os.environ.get("INVITE_BASE_URL", "http://localhost:8000").rstrip("/")
ADMIN_KEY = os.environ.get("INVITE_ADMIN_KEY")
UNKNOWN_TOKEN = "ZZZZZZZ"
TIMEOUT_S = 10


class SimulationFailed(Exception):
    pass


def _call(session: requests.Session, method: str, path: str, body: Optional[dict] = None) -> Dict[str, Any]:
    url = f"{BASE_URL}/api/v1{path}"
    headers = {"X-Admin-Key": ADMIN_KEY} if ADMIN_KEY else {}
    resp = session.request(method, url, json=body, headers=headers, timeout=TIMEOUT_S)
    logger.info("%s %s -> %s %s", method, path, resp.status_code, resp.text[:300])
    return resp.json()


def _expect(step: str, ok: bool) -> None:
    if not ok:
        raise SimulationFailed(step)
    logger.info("OK: %s", step)


def run() -> None:
    with requests.Session() as s:
        gen = _call(s, "POST", "/tokens/generate", {"count": 1, "recipient": "simulation"})
        _expect("generate one token", bool(gen.get("success")) and len(gen.get("generated", [])) == 1)
        token = gen["generated"][0]["token"]

        _expect("fresh token verifies", _call(s, "GET", f"/tokens/verify/{token}") == {"valid": True})

        con = _call(s, "POST", f"/tokens/consume/{token}", {"identity": "simulation@example.com"})
        _expect("first consume succeeds", con.get("success") is True)

        ver = _call(s, "GET", f"/tokens/verify/{token}")
        _expect("used token fails verify", ver == {"valid": False, "reason": "used"})

        again = _call(s, "POST", f"/tokens/consume/{token}")
        _expect("second consume reports already_used", again.get("error") == "already_used")

        unk = _call(s, "GET", f"/tokens/verify/{UNKNOWN_TOKEN}")
        _expect("unknown token verify is not_found", unk == {"valid": False, "reason": "not_found"})

        unk_con = _call(s, "POST", f"/tokens/consume/{UNKNOWN_TOKEN}")
        _expect("unknown token consume is not_found", unk_con.get("error") == "not_found")

        stats = _call(s, "GET", "/analytics")
        _expect("analytics lists the consumed token", any(r["token"] == token for r in stats.get("recent", [])))


def main() -> int:
    logger.info("Simulating invite flow against %s", BASE_URL)
    try:
        run()
    except SimulationFailed as exc:
        logger.error("FAILED: %s", exc)
        return 1
    except RequestException as exc:
        logger.error("Request failed: %s", exc)
        return 1
    logger.info("All steps passed.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
