"""In-memory Stash server for end-to-end tests.

Serves a single pull request (``PRJ/repo#1``) whose diff adds one file. It
enforces comment and pull request versions the way Stash does: a stale
``version`` query parameter gets a 409 with an ``errors`` envelope.

Mount it with respx::

    fake = FakeStash(["one", "two", "three"])
    with respx.mock:
        respx.route(host="stash.test").mock(side_effect=fake.handle)
"""

from __future__ import annotations

import json
import re

from httpx import Request, Response

BASE_URL = "http://stash.test"
PR_PATH = "/rest/api/1.0/projects/PRJ/repos/repo/pull-requests/1"
FROM_HASH = "a" * 40
TO_HASH = "b" * 40

_COMMENT_RE = re.compile(r"/comments/(\d+)$")


def _conflict(message: str) -> Response:
    return Response(409, json={"errors": [{"message": message, "exceptionName": "InvalidVersionException"}]})


class FakeStash:
    """Routes requests for one pull request to in-memory state."""

    def __init__(self, lines: list[str], path: str = "README.md") -> None:
        self.lines = lines
        self.path = path
        self.comments: dict[int, dict] = {}
        self.pr_version = 0
        self.pr_state = "OPEN"
        self.approved = False
        self.calls: list[tuple[str, str, dict[str, str]]] = []
        self.version_bumps_after_read = 0
        self._next_id = 1

    # -- helpers for tests -------------------------------------------------------

    def calls_to(self, method: str, suffix: str) -> list[dict[str, str]]:
        return [params for m, p, params in self.calls if m == method and p.endswith(suffix)]

    def add_line_comment(self, line: int, text: str) -> dict:
        return self._create({"text": text, "anchor": {"line": line, "lineType": "ADDED", "path": self.path}})

    # -- routing -----------------------------------------------------------------

    def handle(self, request: Request) -> Response:
        path = request.url.path
        params = dict(request.url.params)
        self.calls.append((request.method, path, params))

        if not path.startswith(PR_PATH):
            return Response(404, json={"errors": [{"message": f"no resource at {path}"}]})
        sub = path[len(PR_PATH) :]

        if request.method == "GET" and sub == "":
            return self._info()
        if request.method == "GET" and sub.startswith("/diff"):
            return Response(200, json=self._diff())
        if request.method == "GET" and sub == "/changes":
            return Response(200, json={"values": [{"path": {"toString": self.path}, "type": "ADD"}]})
        if request.method == "POST" and sub == "/comments":
            return Response(201, json=self._create(json.loads(request.content)))
        if request.method == "POST" and sub == "/approve":
            self.approved = True
            return Response(200, json={"approved": True})
        if request.method == "POST" and sub in {"/decline", "/merge"}:
            return self._transition(sub[1:], params)

        match = _COMMENT_RE.search(sub)
        if match:
            comment_id = int(match.group(1))
            if request.method == "PUT":
                return self._modify(comment_id, params, json.loads(request.content))
            if request.method == "DELETE":
                return self._delete(comment_id, params)

        return Response(405)

    def _info(self) -> Response:
        body = {"id": 1, "version": self.pr_version, "state": self.pr_state}
        if self.version_bumps_after_read:
            self.version_bumps_after_read -= 1
            self.pr_version += 1
        return Response(200, json=body)

    def _transition(self, action: str, params: dict[str, str]) -> Response:
        if int(params.get("version", -1)) != self.pr_version:
            return _conflict("You are attempting to modify a pull request based on out-of-date information.")
        self.pr_state = "DECLINED" if action == "decline" else "MERGED"
        self.pr_version += 1
        return Response(200, json={"id": 1, "version": self.pr_version, "state": self.pr_state})

    def _create(self, payload: dict) -> dict:
        comment = {
            "id": self._next_id,
            "version": 1,
            "text": payload["text"],
            "author": {"name": "reviewer"},
            "comments": [],
        }
        if "anchor" in payload:
            comment["anchor"] = payload["anchor"]
        if "parent" in payload:
            self.comments[payload["parent"]["id"]]["comments"].append(comment)
        self.comments[comment["id"]] = comment
        self._next_id += 1
        return comment

    def _modify(self, comment_id: int, params: dict[str, str], payload: dict) -> Response:
        comment = self.comments.get(comment_id)
        if comment is None:
            return Response(404, json={"errors": [{"message": f"Comment {comment_id} does not exist."}]})
        if int(params.get("version", -1)) != comment["version"]:
            return _conflict("You are attempting to modify a comment based on out-of-date information.")
        comment["text"] = payload["text"]
        comment["version"] += 1
        return Response(200, json=comment)

    def _delete(self, comment_id: int, params: dict[str, str]) -> Response:
        comment = self.comments.get(comment_id)
        if comment is None:
            return Response(404, json={"errors": [{"message": f"Comment {comment_id} does not exist."}]})
        if int(params.get("version", -1)) != comment["version"]:
            return _conflict("You are attempting to delete a comment based on out-of-date information.")
        del self.comments[comment_id]
        return Response(204)

    def _diff(self) -> dict:
        anchored = [c for c in self.comments.values() if c.get("anchor", {}).get("line")]
        lines = []
        for number, text in enumerate(self.lines, start=1):
            ids = [c["id"] for c in anchored if c["anchor"]["line"] == number]
            lines.append({"source": 0, "destination": number, "line": text, "commentIds": ids})
        return {
            "fromHash": FROM_HASH,
            "toHash": TO_HASH,
            "whitespace": "SHOW",
            "diffs": [
                {
                    "source": None,
                    "destination": {"toString": self.path, "name": self.path},
                    "hunks": [
                        {
                            "sourceLine": 0,
                            "sourceSpan": 0,
                            "destinationLine": 1,
                            "destinationSpan": len(self.lines),
                            "segments": [{"type": "ADDED", "lines": lines}],
                        },
                    ],
                    "lineComments": anchored,
                },
            ],
        }
