from __future__ import annotations

import json
import time
from typing import Any

from fastapi.testclient import TestClient

from todosync_backend.config import settings
from todosync_backend.main import app


def _dump(title: str, resp: Any) -> None:
    print(f"\n== {title} ==")
    print("status:", resp.status_code)
    try:
        print(json.dumps(resp.json(), ensure_ascii=False, indent=2))
    except ValueError:
        print(resp.text[:1200])


def main() -> None:
    print("== Settings ==")
    print("DATABASE_URL:", settings.database_url)
    print("POKE_BACKEND:", settings.poke_backend)
    print("PULL_RESET_THRESHOLD:", settings.pull_reset_threshold)

    suffix = int(time.time())
    user_id = f"smoke{suffix}"
    group_id = f"g-{suffix}"
    client_id = f"c-{suffix}"
    list_id = f"l-{suffix}"
    params = {"userID": user_id}

    # Entering the client runs the app lifespan (schema create/check).
    with TestClient(app) as client:
        resp = client.post(
            settings.api_prefix + "/replicache/push",
            params=params,
            json={
                "clientGroupID": group_id,
                "mutations": [
                    {
                        "id": 1,
                        "clientID": client_id,
                        "name": "createList",
                        "args": {"id": list_id, "ownerID": user_id, "name": "smoke"},
                    },
                    {
                        "id": 2,
                        "clientID": client_id,
                        "name": "createTodo",
                        "args": {"id": f"t-{suffix}", "listID": list_id, "text": "check"},
                    },
                ],
            },
        )
        _dump("POST /replicache/push", resp)

        resp = client.post(
            settings.api_prefix + "/replicache/pull",
            params=params,
            json={"clientGroupID": group_id, "cookie": None},
        )
        _dump("POST /replicache/pull (reset)", resp)
        cookie = resp.json().get("cookie") if resp.status_code == 200 else None

        resp = client.post(
            settings.api_prefix + "/replicache/pull",
            params=params,
            json={"clientGroupID": group_id, "cookie": cookie},
        )
        _dump("POST /replicache/pull (incremental)", resp)


if __name__ == "__main__":
    main()
