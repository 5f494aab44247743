from __future__ import annotations

import argparse
import asyncio
import base64
import json
import mimetypes
import os
import sys
from typing import Sequence

from ..logging import get_logger, set_level
from ..orchestrator.context import build_context
from ..orchestrator.export import export_csv
from ..orchestrator.extraction import ExtractionError
from ..paths import expand_abs

LOG = get_logger("cli-main")


def _file_to_data_uri(path: str) -> str:
    mime, _ = mimetypes.guess_type(path)
    with open(path, "rb") as f:
        payload = base64.b64encode(f.read()).decode("ascii")
    return f"data:{mime or 'image/jpeg'};base64,{payload}"


def _handle_serve(ns: argparse.Namespace) -> int:
    from ..frontend.app import create_app
    import uvicorn

    set_level(ns.log_level)
    allow_origins = ns.allow_origins
    if allow_origins and len(allow_origins) == 1 and allow_origins[0] == "*":
        allow_origins = ["*"]
    app = create_app(root_dir=os.getcwd(), allow_origins=allow_origins)
    uvicorn.run(app, host=ns.host, port=ns.port, log_level=ns.log_level)
    return 0


def _handle_extract(ns: argparse.Namespace) -> int:
    source = expand_abs(ns.source)
    if not os.path.isfile(source):
        LOG.error(f"Source image not found: {source}")
        return 2
    ctx = build_context(os.getcwd())

    async def _run():
        try:
            return await ctx.extractor.extract(_file_to_data_uri(source))
        finally:
            await ctx.aclose()

    try:
        data = asyncio.run(_run())
    except ExtractionError as exc:
        LOG.error(f"Extraction failed: {exc} ({exc.detail})")
        return 1
    print(json.dumps(data.to_dict(), ensure_ascii=False, indent=2))
    flagged = data.needs_review()
    if flagged:
        LOG.warning(f"Review needed for: {', '.join(flagged)}")
    return 0


def _handle_export(ns: argparse.Namespace) -> int:
    ctx = build_context(os.getcwd())
    text = export_csv(ctx.store.list_all())
    if text is None:
        LOG.error("Nothing to export")
        return 1
    if ns.output:
        out = expand_abs(ns.output)
        os.makedirs(os.path.dirname(out) or ".", exist_ok=True)
        with open(out, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        LOG.info(f"Wrote: {out}")
    else:
        sys.stdout.write(text)
    return 0


def _handle_dashboard(_: argparse.Namespace) -> int:
    ctx = build_context(os.getcwd())

    async def _run():
        try:
            return await ctx.dashboard.refresh()
        finally:
            await ctx.aclose()

    view = asyncio.run(_run())
    if view.error:
        LOG.warning(f"Remote sheet unavailable: {view.error}")
    print(json.dumps(view.stats.to_dict(), ensure_ascii=False, indent=2))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    provided = list(argv) if argv is not None else sys.argv[1:]
    LOG.debug(f"CLI invoked with arguments: {provided}")

    parser = argparse.ArgumentParser(
        prog="registration-desk",
        description="Digitize registration forms: extract, review, sync to a sheet.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the JSON API used by the browser UI.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8001)
    serve.add_argument("--log-level", default="info")
    serve.add_argument(
        "--allow-origin",
        action="append",
        dest="allow_origins",
        help="Allowed CORS origin (can be provided multiple times, use '*' for any).",
    )
    serve.set_defaults(handler=_handle_serve)

    extract_cmd = subparsers.add_parser("extract", help="Extract fields from one form image and print JSON.")
    extract_cmd.add_argument("--source", required=True, help="Path to the form photo (JPG/PNG)")
    extract_cmd.set_defaults(handler=_handle_extract)

    export_cmd = subparsers.add_parser("export", help="Export completed records as CSV.")
    export_cmd.add_argument("--output", help="Write to this file instead of stdout")
    export_cmd.set_defaults(handler=_handle_export)

    dash_cmd = subparsers.add_parser("dashboard", help="Print merged dashboard statistics.")
    dash_cmd.set_defaults(handler=_handle_dashboard)

    args = parser.parse_args(provided)
    code = args.handler(args)
    LOG.info(f"Subcommand '{args.command}' finished with exit code {code}.")
    return code


if __name__ == "__main__":
    sys.exit(main())
