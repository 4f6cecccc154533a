import argparse
from pathlib import Path

from . import __version__
from .cleanup import delete_old_closed_requests
from .database import TargetType
from .engine import ConsensusEngine
from .env import Settings, load_env
from .github_import import GitHubImportError, import_github_leaks
from .logger import configure_logger, get_logger
from .scheduler import EvaluationQueue
from .schema import ValidationError
from .storage import IntakeError, LeakStore, StorageError

TARGET_TYPE_CHOICES = [t.value for t in TargetType]


def _store(args: argparse.Namespace, settings: Settings) -> LeakStore:
    return LeakStore(Path(args.db) if args.db else settings.db_path)


def cmd_init_db(args: argparse.Namespace, settings: Settings) -> None:
    store = _store(args, settings)
    print(f"Database ready: {store.db_path}")


def cmd_add_user(args: argparse.Namespace, settings: Settings) -> None:
    user_id = _store(args, settings).create_user(args.name, args.email, args.image or "")
    print(f"User: {user_id}")


def cmd_create_request(args: argparse.Namespace, settings: Settings) -> None:
    request_id = _store(args, settings).create_request(
        user_id=args.user,
        target_name=args.target_name,
        provider=args.provider,
        target_type=args.target_type,
        target_url=args.target_url,
    )
    print(f"Request: {request_id}")


def cmd_submit(args: argparse.Namespace, settings: Settings) -> None:
    if args.text_file:
        text_path = Path(args.text_file)
        if not text_path.exists():
            raise SystemExit(f"Input file not found: {text_path}")
        leak_text = text_path.read_text(encoding="utf-8")
    else:
        leak_text = args.text

    store = _store(args, settings)
    engine = ConsensusEngine(store)
    with EvaluationQueue(engine, max_workers=settings.workers, max_retries=settings.eval_retries) as queue:
        store.on_submission = queue.schedule
        leak_id = store.submit_leak(
            user_id=args.user,
            target_name=args.target_name,
            provider=args.provider,
            leak_text=leak_text,
            target_type=args.target_type,
            request_id=args.request,
            leak_context=args.context,
            url=args.url,
            access_notes=args.access_notes,
            requires_login=args.requires_login,
            is_paid=args.paid,
            has_tool_prompts=args.tool_prompts,
        )
        results = queue.join()

    print(f"Leak: {leak_id}")
    for result in results:
        print(f"Request {result.request_id}: {result.outcome.value}")
    get_logger().log_metrics_summary()


def cmd_close_request(args: argparse.Namespace, settings: Settings) -> None:
    _store(args, settings).close_request(args.request, args.user)
    print(f"Request {args.request} closed")


def cmd_evaluate(args: argparse.Namespace, settings: Settings) -> None:
    result = ConsensusEngine(_store(args, settings)).evaluate_request(args.request)
    print(f"Outcome: {result.outcome.value}")
    if result.decision is not None:
        print(f"  Leak: {result.decision.leak_id}")
        print(f"  Verifiers: {', '.join(str(v) for v in result.decision.verifier_ids)}")
    get_logger().log_metrics_summary()


def cmd_show_request(args: argparse.Namespace, settings: Settings) -> None:
    store = _store(args, settings)
    request = store.get_request(args.request)
    if request is None:
        raise SystemExit(f"Request not found: {args.request}")
    print(f"ID: {request['id']}")
    print(f"  Target: {request['target_name']} ({request['target_type']}, {request['provider']})")
    print(f"  URL: {request['target_url']}")
    status = f"closed by {request['closed_by']}" if request["closed"] else "open"
    print(f"  Status: {status}")
    print(f"  Submissions: {len(request['leaks'])}")
    for leak_id in request["leaks"]:
        leak = store.get_leak(leak_id)
        mark = "verified" if leak["is_fully_verified"] else "pending"
        print(f"    [{mark}] leak {leak_id} by user {leak['submitted_by']}")


def _print_request_line(request: dict) -> None:
    line = f"[{request['id']}] {request['target_name']} ({request['target_type']}, {request['provider']}) by {request['submitter_name']}"
    if "confirmation_count" in request:
        line += f" | {request['confirmation_count']} leaks, {request['unique_submitters']} submitters"
    print(line)


def cmd_list_requests(args: argparse.Namespace, settings: Settings) -> None:
    store = _store(args, settings)
    if args.status:
        open_requests = store.list_requests_with_verification_status()
    else:
        open_requests = store.list_open_requests(user_id=args.user)
    print(f"Open requests: {len(open_requests)}")
    for request in open_requests:
        _print_request_line(request)


def cmd_search(args: argparse.Namespace, settings: Settings) -> None:
    matches = _store(args, settings).search_requests(args.query)
    print(f"Matches: {len(matches)}")
    for request in matches:
        _print_request_line(request)


def cmd_unverified(args: argparse.Namespace, settings: Settings) -> None:
    leaks = _store(args, settings).list_unverified_leaks()
    print(f"Unverified leaks: {len(leaks)}")
    for leak in leaks:
        request = f"request {leak['request_id']}" if leak["request_id"] is not None else "no request"
        print(f"  leak {leak['id']}: {leak['target_name']} ({leak['provider']}) by user {leak['submitted_by']}, {request}")


def cmd_providers(args: argparse.Namespace, settings: Settings) -> None:
    providers = _store(args, settings).list_providers()
    print(f"Providers: {len(providers)}")
    for entry in providers:
        print(f"  {entry['provider']}: {entry['leak_count']} leaks ({', '.join(entry['target_types'])})")
        print(f"    e.g. {', '.join(entry['sample_targets'])}; latest {entry['latest_leak_at']:%Y-%m-%d %H:%M}")


def cmd_points(args: argparse.Namespace, settings: Settings) -> None:
    points = _store(args, settings).get_user_points(args.user)
    if points is None:
        raise SystemExit(f"User not found: {args.user}")
    print(f"Points: {points}")


def cmd_import_github(args: argparse.Namespace, settings: Settings) -> None:
    count = import_github_leaks(
        _store(args, settings),
        repo=args.repo or settings.github_repo,
        branch=args.branch or settings.github_branch,
        token=settings.github_token,
    )
    print(f"Successfully imported {count} leaks")


def cmd_cleanup(args: argparse.Namespace, settings: Settings) -> None:
    before, after = delete_old_closed_requests(_store(args, settings), days=args.days)
    print(f"Done. removed={before - after} remaining={after}")


def main():
    # Load .env if present (LEAKHUB_DB_PATH, GITHUB_API_TOKEN, etc.)
    load_env()
    settings = Settings.from_env()
    configure_logger(level=settings.log_level, log_dir=settings.log_dir)

    parser = argparse.ArgumentParser(prog="leakhub", description="LeakHub: crowdsourced leak verification")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--db", help="Path to SQLite database (default: $LEAKHUB_DB_PATH or data/leakhub.db)")

    subparsers = parser.add_subparsers(dest="command")
    ini = subparsers.add_parser("init-db", help="Create the database tables")
    ini.set_defaults(func=cmd_init_db)

    usr = subparsers.add_parser("add-user", help="Register a user")
    usr.add_argument("--name", required=True, help="Display name")
    usr.add_argument("--email", required=True, help="Unique email")
    usr.add_argument("--image", help="Avatar URL")
    usr.set_defaults(func=cmd_add_user)

    req = subparsers.add_parser("create-request", help="Open a request for a target")
    req.add_argument("--user", type=int, required=True, help="Requesting user id")
    req.add_argument("--target-name", required=True, help="Name of the model/app/tool")
    req.add_argument("--provider", required=True, help="Provider of the target")
    req.add_argument("--target-type", required=True, choices=TARGET_TYPE_CHOICES, help="Kind of target")
    req.add_argument("--target-url", required=True, help="http(s) URL of the target")
    req.set_defaults(func=cmd_create_request)

    sub = subparsers.add_parser("submit", help="Submit a leak and evaluate its request")
    sub.add_argument("--user", type=int, required=True, help="Submitting user id")
    sub.add_argument("--request", type=int, help="Request the leak answers")
    sub.add_argument("--target-name", required=True, help="Name of the model/app/tool")
    sub.add_argument("--provider", required=True, help="Provider of the target")
    sub.add_argument("--target-type", required=True, choices=TARGET_TYPE_CHOICES, help="Kind of target")
    txt = sub.add_mutually_exclusive_group(required=True)
    txt.add_argument("--text", help="Leak text")
    txt.add_argument("--text-file", help="Path to a file holding the leak text")
    sub.add_argument("--context", help="Free-form context")
    sub.add_argument("--url", help="Where the leak was obtained")
    sub.add_argument("--access-notes", help="How to reach the target")
    sub.add_argument("--requires-login", action="store_true", default=None, help="Target needs a login")
    sub.add_argument("--paid", action="store_true", default=None, help="Target is paid")
    sub.add_argument("--tool-prompts", action="store_true", default=None, help="Leak includes tool prompts")
    sub.set_defaults(func=cmd_submit)

    cls = subparsers.add_parser("close-request", help="Close one of your requests")
    cls.add_argument("--request", type=int, required=True, help="Request id")
    cls.add_argument("--user", type=int, required=True, help="Owner user id")
    cls.set_defaults(func=cmd_close_request)

    evl = subparsers.add_parser("evaluate", help="Run consensus for a request now")
    evl.add_argument("--request", type=int, required=True, help="Request id")
    evl.set_defaults(func=cmd_evaluate)

    shw = subparsers.add_parser("show-request", help="Show a request and its submissions")
    shw.add_argument("--request", type=int, required=True, help="Request id")
    shw.set_defaults(func=cmd_show_request)

    lst = subparsers.add_parser("list-requests", help="List open requests, newest first")
    lst.add_argument("--user", type=int, help="Only this user's requests")
    lst.add_argument("--status", action="store_true", help="Show leak and submitter counts")
    lst.set_defaults(func=cmd_list_requests)

    sch = subparsers.add_parser("search", help="Search open requests by target name")
    sch.add_argument("query", help="Words the target name must contain")
    sch.set_defaults(func=cmd_search)

    unv = subparsers.add_parser("unverified", help="List leaks awaiting verification")
    unv.set_defaults(func=cmd_unverified)

    prv = subparsers.add_parser("providers", help="Verified leaks grouped by provider")
    prv.set_defaults(func=cmd_providers)

    pts = subparsers.add_parser("points", help="Show a user's points")
    pts.add_argument("--user", type=int, required=True, help="User id")
    pts.set_defaults(func=cmd_points)

    imp = subparsers.add_parser("import-github", help="Import verified leaks from a GitHub repository")
    imp.add_argument("--repo", help="owner/name (default: $LEAKHUB_GITHUB_REPO)")
    imp.add_argument("--branch", help="Branch (default: $LEAKHUB_GITHUB_BRANCH)")
    imp.set_defaults(func=cmd_import_github)

    cln = subparsers.add_parser("cleanup", help="Delete old user-closed requests")
    cln.add_argument("--days", type=int, default=1, help="Age threshold in days (default: 1)")
    cln.set_defaults(func=cmd_cleanup)

    args = parser.parse_args()

    if args.version:
        print(__version__)
        return

    if not hasattr(args, "func"):
        parser.print_help()
        return

    try:
        args.func(args, settings)
    except ValidationError as e:
        print("Invalid:")
        for error in e.errors:
            print(f" - {error}")
        raise SystemExit(2)
    except (IntakeError, GitHubImportError) as e:
        raise SystemExit(str(e))
    except StorageError as e:
        raise SystemExit(f"Storage failure, try again: {e}")


if __name__ == "__main__":
    main()
