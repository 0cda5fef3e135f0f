"""
NearAsk CLI entrypoint.

This CLI is intended for quick local demos and debugging without a map frontend.
It always uses the JSON-document store (`storage.dir`, or `--data-dir`) so state
survives between invocations, and delegates every rule to `RequestService`.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any

from nearask.config.settings import Settings, get_settings
from nearask.core.env import resolve_project_path
from nearask.core.logging import configure_logging
from nearask.domain.errors import LifecycleError
from nearask.domain.models import Coordinate, Request, RequestDraft, Response
from nearask.lifecycle.service import RequestService
from nearask.storage.json_store import JsonDirectoryStore


def _service(args: argparse.Namespace, settings: Settings) -> RequestService:
    data_dir = args.data_dir or settings.storage.dir
    return RequestService(JsonDirectoryStore(resolve_project_path(data_dir)), settings=settings)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _request_line(r: Request) -> str:
    return f"{r.id}  [{r.status}]  {r.title}  ({r.location.lat:.5f}, {r.location.lon:.5f})  owner={r.owner_id}"


def _response_line(r: Response) -> str:
    done = f" completed={r.completed_at.isoformat()}" if r.completed_at else ""
    return f"{r.id}  request={r.request_id}  by={r.responder_id}{done}  {r.comment}"


def _cmd_create(args: argparse.Namespace, service: RequestService) -> int:
    draft = RequestDraft(
        title=args.title,
        description=args.description or "",
        location=Coordinate(lat=float(args.lat), lon=float(args.lon)),
    )
    request = service.create_request(args.user, draft)
    if args.json:
        _print_json(request.model_dump(mode="json"))
    else:
        print(request.id)
    return 0


def _cmd_nearby(args: argparse.Namespace, service: RequestService) -> int:
    center_cfg = service.settings.proximity.default_center
    lat = float(args.lat) if args.lat is not None else center_cfg.lat
    lon = float(args.lon) if args.lon is not None else center_cfg.lon
    hits = service.find_nearby(Coordinate(lat=lat, lon=lon), args.radius_km)

    if args.json:
        _print_json([h.model_dump(mode="json") for h in hits])
        return 0

    if not hits:
        print("No open requests nearby.")
        return 0
    for i, hit in enumerate(hits, start=1):
        print(f"{i:>2}. {hit.distance_km:8.3f} km  {_request_line(hit.request)}")
    return 0


def _cmd_show(args: argparse.Namespace, service: RequestService) -> int:
    detail = service.get_request_detail(args.request_id)
    if args.json:
        _print_json(detail.model_dump(mode="json"))
        return 0
    r = detail.request
    print(_request_line(r))
    if r.description:
        print(f"    {r.description}")
    if detail.response is not None:
        print(f"    response: {_response_line(detail.response)}")
    return 0


def _cmd_answer(args: argparse.Namespace, service: RequestService) -> int:
    response = service.submit_response(args.request_id, args.user, args.comment)
    if args.json:
        _print_json(response.model_dump(mode="json"))
    else:
        print(response.id)
    return 0


def _cmd_complete(args: argparse.Namespace, service: RequestService) -> int:
    response = service.complete_request(args.request_id, args.response_id, actor_id=args.user)
    if args.json:
        _print_json(response.model_dump(mode="json"))
    else:
        print(f"completed {args.request_id}")
    return 0


def _cmd_delete(args: argparse.Namespace, service: RequestService) -> int:
    service.delete_request(args.request_id, args.user)
    if not args.json:
        print(f"deleted {args.request_id}")
    return 0


def _cmd_mine(args: argparse.Namespace, service: RequestService) -> int:
    requests = service.list_owner_requests(args.user)
    if args.json:
        _print_json([r.model_dump(mode="json") for r in requests])
        return 0
    for r in requests:
        print(_request_line(r))
    return 0


def _cmd_answers(args: argparse.Namespace, service: RequestService) -> int:
    responses = service.list_responder_responses(args.user)
    if args.json:
        _print_json([r.model_dump(mode="json") for r in responses])
        return 0
    for r in responses:
        print(_response_line(r))
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the NearAsk CLI."""
    parser = argparse.ArgumentParser(prog="nearask")
    parser.add_argument("--data-dir", default=None, help="JSON store directory (default: storage.dir from config)")
    parser.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="Open a request at a location.")
    create.add_argument("--user", required=True)
    create.add_argument("--title", required=True)
    create.add_argument("--description", default="")
    create.add_argument("--lat", required=True, type=float)
    create.add_argument("--lon", required=True, type=float)
    create.set_defaults(func=_cmd_create)

    nearby = sub.add_parser("nearby", help="List open requests around a point, nearest first.")
    nearby.add_argument("--lat", type=float, default=None, help="Defaults to proximity.default_center")
    nearby.add_argument("--lon", type=float, default=None)
    nearby.add_argument("--radius-km", dest="radius_km", type=float, default=None)
    nearby.set_defaults(func=_cmd_nearby)

    show = sub.add_parser("show", help="Show a request and its response.")
    show.add_argument("request_id")
    show.set_defaults(func=_cmd_show)

    answer = sub.add_parser("answer", help="Answer an open request.")
    answer.add_argument("request_id")
    answer.add_argument("--user", required=True)
    answer.add_argument("--comment", required=True)
    answer.set_defaults(func=_cmd_answer)

    complete = sub.add_parser("complete", help="Mark an answered request completed (owner).")
    complete.add_argument("request_id")
    complete.add_argument("response_id")
    complete.add_argument("--user", required=True)
    complete.set_defaults(func=_cmd_complete)

    delete = sub.add_parser("delete", help="Delete a request and its response (owner).")
    delete.add_argument("request_id")
    delete.add_argument("--user", required=True)
    delete.set_defaults(func=_cmd_delete)

    mine = sub.add_parser("mine", help="List your requests, newest first.")
    mine.add_argument("--user", required=True)
    mine.set_defaults(func=_cmd_mine)

    answers = sub.add_parser("answers", help="List the answers you gave, newest first.")
    answers.add_argument("--user", required=True)
    answers.set_defaults(func=_cmd_answers)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m nearask.cli`."""
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()
    func: Any = getattr(args, "func")
    try:
        return int(func(args, _service(args, settings)))
    except LifecycleError as e:
        print(f"error: {e.code}: {e.message}", file=sys.stderr)
        return 2
    except ValueError as e:
        print(f"error: VALIDATION_ERROR: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
