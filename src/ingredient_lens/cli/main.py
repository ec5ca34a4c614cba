from __future__ import annotations

import argparse
import getpass
import json
import os
import sys
from typing import Any, Dict, Sequence

from ..analysis.validation import InputValidationError
from ..client.auth import AuthClient
from ..client.barcode import ProductLookup
from ..client.errors import AnalysisError, BarcodeLookupError, SessionExpiredError
from ..client.history import HistoryClient
from ..client.local_cache import LocalHistoryCache
from ..client.pipeline import AnalysisPipeline
from ..client.remote import RemoteAnalyzerClient
from ..client.session import SessionGuard, SessionStore
from ..config import load_auth_url, load_backend, load_product_db_url, load_request_timeout
from ..domain.models import AnalysisRecord
from ..logging import get_logger
from ..paths import expand_abs, find_project_root

LOG = get_logger("cli-main")


class _Clients:
    """Client-side objects wired from env/.env under the current project root."""

    def __init__(self, root_dir: str) -> None:
        self.root = find_project_root(root_dir)
        self.base_url, self.api_key = load_backend(self.root)
        self.timeout = load_request_timeout(self.root)
        self.store = SessionStore(root_dir=self.root)
        self.cache = LocalHistoryCache(root_dir=self.root)
        self.guard = SessionGuard(self.auth().current_session)

    def auth(self) -> AuthClient:
        return AuthClient(load_auth_url(self.root) or self.base_url, self.api_key, self.store)

    def pipeline(self) -> AnalysisPipeline:
        remote = RemoteAnalyzerClient(self.base_url, api_key=self.api_key, timeout=self.timeout)
        return AnalysisPipeline(remote, self.guard, self.cache)

    def history(self) -> HistoryClient:
        return HistoryClient(self.base_url, self.guard, self.cache, api_key=self.api_key)


def _print_record(record: AnalysisRecord, *, as_json: bool) -> None:
    if as_json:
        print(json.dumps(record.as_dict(), ensure_ascii=False, indent=2))
        return
    print(record.judgment)
    print()
    for kf in record.key_factors:
        print(f"  - {kf.factor}: {kf.explanation}")
    print()
    print(f"Tradeoffs  : {record.tradeoffs}")
    print(f"Uncertainty: {record.uncertainty}")
    print(f"Confidence : {record.confidence}")
    if record.warning:
        print(f"Warning    : {record.warning}")


def _print_history_line(record: AnalysisRecord) -> None:
    marker = " [offline]" if record.offline else ""
    preview = record.input_text if len(record.input_text) <= 60 else record.input_text[:57] + "..."
    print(f"{record.id}  {record.created_at or '-'}  {record.confidence:<6}{marker}  {preview}")


def _read_analyze_input(ns: argparse.Namespace, clients: _Clients) -> str:
    if ns.barcode:
        product = ProductLookup(load_product_db_url(clients.root)).lookup(ns.barcode)
        brand = f" ({product.brand})" if product.brand else ""
        print(f"Product: {product.name}{brand} [{product.barcode}]", file=sys.stderr)
        return product.ingredients
    if ns.file:
        with open(expand_abs(ns.file), "r", encoding="utf-8") as f:
            return f.read()
    return ns.text or ""


def _handle_analyze(ns: argparse.Namespace) -> int:
    clients = _Clients(os.getcwd())
    try:
        raw = _read_analyze_input(ns, clients)
    except OSError as exc:
        LOG.error(f"Cannot read {ns.file}: {exc}")
        return 2
    except BarcodeLookupError as exc:
        print(exc.user_message, file=sys.stderr)
        return 1
    try:
        outcome = clients.pipeline().run(raw)
    except (InputValidationError, AnalysisError) as exc:
        LOG.debug(f"Analysis failed: {exc!r}")
        print(exc.user_message, file=sys.stderr)
        return 1
    if outcome.offline:
        print("Service unreachable - showing an approximate offline result.", file=sys.stderr)
    _print_record(outcome.record, as_json=ns.json)
    return 0


def _add_history_cli(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    hist = subparsers.add_parser("history", help="Browse and manage your saved analyses")
    hist_sub = hist.add_subparsers(dest="history_command", required=True)

    h_list = hist_sub.add_parser("list", help="List recent analyses (newest first)")
    h_list.add_argument("--limit", type=int, default=50)

    def _list(ns: argparse.Namespace) -> int:
        page = _Clients(os.getcwd()).history().list(ns.limit)
        if page.notice:
            print(page.notice, file=sys.stderr)
        if not page.items:
            print("No analyses yet.")
        for record in page.items:
            _print_history_line(record)
        return 0

    h_list.set_defaults(handler=_list)

    h_show = hist_sub.add_parser("show", help="Show a single analysis")
    h_show.add_argument("analysis_id")
    h_show.add_argument("--json", action="store_true")

    def _show(ns: argparse.Namespace) -> int:
        record = _Clients(os.getcwd()).history().get(ns.analysis_id)
        if record is None:
            print("Analysis not found.", file=sys.stderr)
            return 1
        _print_record(record, as_json=ns.json)
        return 0

    h_show.set_defaults(handler=_show)

    h_delete = hist_sub.add_parser("delete", help="Delete one analysis")
    h_delete.add_argument("analysis_id")

    def _delete(ns: argparse.Namespace) -> int:
        _Clients(os.getcwd()).history().delete(ns.analysis_id)
        print("Analysis deleted.")
        return 0

    h_delete.set_defaults(handler=_delete)

    h_clear = hist_sub.add_parser("clear", help="Delete all of your analyses")
    h_clear.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")

    def _clear(ns: argparse.Namespace) -> int:
        if not ns.yes:
            answer = input("Delete all saved analyses? This cannot be undone. [y/N] ")
            if answer.strip().lower() not in ("y", "yes"):
                print("Aborted.")
                return 0
        removed = _Clients(os.getcwd()).history().clear()
        print(f"Deleted {removed} analyses.")
        return 0

    h_clear.set_defaults(handler=_clear)

    h_count = hist_sub.add_parser("count", help="Number of saved analyses")

    def _count(_: argparse.Namespace) -> int:
        print(_Clients(os.getcwd()).history().count())
        return 0

    h_count.set_defaults(handler=_count)


def _add_auth_cli(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    auth = subparsers.add_parser("auth", help="Sign up, sign in and out")
    auth_sub = auth.add_subparsers(dest="auth_command", required=True)

    def _credentials(ns: argparse.Namespace) -> Dict[str, Any]:
        password = ns.password if ns.password is not None else getpass.getpass("Password: ")
        return {"email": ns.email, "password": password}

    for name, help_text in (("signup", "Create an account"), ("signin", "Sign in with email and password")):
        p = auth_sub.add_parser(name, help=help_text)
        p.add_argument("--email", required=True)
        p.add_argument("--password", help="Prompted for when omitted")

    def _signup(ns: argparse.Namespace) -> int:
        result = _Clients(os.getcwd()).auth().sign_up(**_credentials(ns))
        if not result.ok:
            print(result.error, file=sys.stderr)
            return 1
        if result.needs_confirmation:
            print("Check your email to confirm your account, then sign in.")
        else:
            print(f"Signed up and signed in as {result.session.email or result.session.user_id}.")
        return 0

    def _signin(ns: argparse.Namespace) -> int:
        result = _Clients(os.getcwd()).auth().sign_in(**_credentials(ns))
        if not result.ok:
            print(result.error, file=sys.stderr)
            return 1
        print(f"Signed in as {result.session.email or result.session.user_id}.")
        return 0

    def _signout(_: argparse.Namespace) -> int:
        result = _Clients(os.getcwd()).auth().sign_out()
        if not result.ok:
            print(result.error, file=sys.stderr)
        print("Signed out.")
        return 0

    def _whoami(ns: argparse.Namespace) -> int:
        clients = _Clients(os.getcwd())
        session = clients.guard.require_session()
        if ns.verify and clients.auth().current_user_id() != session.user_id:
            print(SessionExpiredError.default_message, file=sys.stderr)
            return 1
        print(session.email or session.user_id)
        return 0

    def _refresh(_: argparse.Namespace) -> int:
        result = _Clients(os.getcwd()).auth().refresh()
        if not result.ok:
            print(result.error, file=sys.stderr)
            return 1
        print(f"Session refreshed for {result.session.email or result.session.user_id}.")
        return 0

    auth_sub.choices["signup"].set_defaults(handler=_signup)
    auth_sub.choices["signin"].set_defaults(handler=_signin)
    auth_sub.add_parser("signout", help="Sign out and forget the stored session").set_defaults(handler=_signout)
    whoami = auth_sub.add_parser("whoami", help="Show the signed-in account")
    whoami.add_argument("--verify", action="store_true", help="Confirm the token with the auth backend")
    whoami.set_defaults(handler=_whoami)
    auth_sub.add_parser("refresh", help="Exchange the refresh token for a new session").set_defaults(handler=_refresh)


def main(argv: Sequence[str] | None = None) -> int:
    provided = list(argv) if argv is not None else sys.argv[1:]
    LOG.debug(f"CLI invoked with arguments: {provided}")

    parser = argparse.ArgumentParser(
        prog="ingredient-lens",
        description="Analyze packaged-food ingredient lists and manage your analysis history.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze = subparsers.add_parser("analyze", help="Analyze an ingredient list")
    source = analyze.add_mutually_exclusive_group(required=True)
    source.add_argument("--text", help="Ingredient list as printed on the package")
    source.add_argument("--file", help="Read the ingredient list from a text file")
    source.add_argument("--barcode", help="Look the ingredient list up by product barcode (Open Food Facts)")
    analyze.add_argument("--json", action="store_true", help="Print the result as JSON")
    analyze.set_defaults(handler=_handle_analyze)

    _add_history_cli(subparsers)
    _add_auth_cli(subparsers)

    init_db = subparsers.add_parser("init-db", help="Create/ensure the analysis DB schema exists")

    def _init_db(_: argparse.Namespace) -> int:
        from ..analysis.service import AnalysisService
        from ..analysis.db import AnalysisDatabase

        svc = AnalysisService(AnalysisDatabase(root_dir=os.getcwd()))
        path = svc.init_database()
        LOG.info(f"Analysis DB ready at: {path}")
        print(path)
        return 0

    init_db.set_defaults(handler=_init_db)

    serve = subparsers.add_parser("serve", help="Run the analysis function and history API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8001)
    serve.add_argument("--reload", action="store_true", help="Enable auto-reload (development only)")
    serve.add_argument("--log-level", default="info")
    serve.add_argument(
        "--allow-origin",
        action="append",
        dest="allow_origins",
        help="Allowed CORS origin (can be provided multiple times, use '*' for any).",
    )

    def _serve(ns: argparse.Namespace) -> int:
        from ..analysis.server.app import create_app
        import uvicorn

        app = create_app(root_dir=os.getcwd(), allow_origins=ns.allow_origins)
        uvicorn.run(app, host=ns.host, port=ns.port, reload=ns.reload, log_level=ns.log_level)
        return 0

    serve.set_defaults(handler=_serve)

    args = parser.parse_args(provided)
    try:
        code = args.handler(args)
    except AnalysisError as exc:
        LOG.debug(f"Subcommand '{args.command}' failed: {exc!r}")
        print(exc.user_message, file=sys.stderr)
        code = 1
    LOG.debug(f"Subcommand '{args.command}' finished with exit code {code}.")
    return code


if __name__ == "__main__":
    sys.exit(main())
