"""
Sprig CLI

Every command prints structured JSON when --json is passed and
human-readable text otherwise.

Usage:
    sprig init [--branch NAME]
    sprig add FILE
    sprig rm FILE
    sprig commit MESSAGE
    sprig log
    sprig global-log
    sprig find MESSAGE
    sprig status
    sprig checkout BRANCH
    sprig checkout --file FILE [COMMIT_ID]
    sprig branch NAME
    sprig rm-branch NAME
    sprig reset COMMIT_ID
    sprig merge BRANCH
"""

import argparse
import json
import logging
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from .errors import SprigError
from .repo import Repository


@contextmanager
def open_repo(args):
    """Open a Repository with guaranteed cleanup on any exit path."""
    repo = Repository.find(Path(args.path or "."))
    try:
        yield repo
    finally:
        repo.close()


def file_arg(args, filename: str) -> str:
    """Resolve a file argument against the directory the command runs in."""
    return str(Path(args.path or ".").resolve() / filename)


def format_time(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).astimezone().strftime(
        "%a %b %d %H:%M:%S %Y %z"
    )


def print_json(data):
    print(json.dumps(data, indent=2, default=str))


def get_verbosity(args) -> int:
    """Return verbosity level: 0=quiet, 1=normal, 2=verbose."""
    if getattr(args, 'json', False):
        return 1
    if getattr(args, 'verbose', False):
        return 2
    if getattr(args, 'quiet', False):
        return 0
    return 1


def _display_hash(h: str, verbosity: int) -> str:
    """Return full or short hash based on verbosity."""
    if not h:
        return "none"
    if verbosity >= 2:
        return h
    return h[:12]


def _commit_entry(commit_hash, commit) -> dict:
    return {"id": commit_hash, **commit.to_dict()}


def _print_log_entry(commit_hash, commit):
    print("===")
    print(f"commit {commit_hash}")
    if commit.is_merge:
        print(f"Merge: {commit.parent[:7]} {commit.merge_parent[:7]}")
    print(f"Date: {format_time(commit.timestamp)}")
    print(commit.message)
    print()


# ── Commands ──────────────────────────────────────────────────

def cmd_init(args):
    v = get_verbosity(args)
    path = Path(args.path or ".").resolve()
    with Repository.init(path, initial_branch=args.branch) as repo:
        if args.json:
            print_json({"root": str(path), "head": repo.head(), "branch": repo.active_branch})
        elif v == 0:
            print(repo.head())
        else:
            print(f"Initialized Sprig repository at {path}")
            print(f"  Branch: {repo.active_branch}")
            print(f"  Root:   {_display_hash(repo.head(), v)}")


def cmd_add(args):
    with open_repo(args) as repo:
        blob_hash = repo.add(file_arg(args, args.file))
        if args.json:
            print_json({"file": args.file, "blob": blob_hash})


def cmd_rm(args):
    with open_repo(args) as repo:
        repo.rm(file_arg(args, args.file))
        if args.json:
            print_json({"file": args.file, "removed": True})


def cmd_commit(args):
    v = get_verbosity(args)
    with open_repo(args) as repo:
        commit_hash = repo.commit(args.message)
        if args.json:
            print_json({"commit": commit_hash, "branch": repo.active_branch})
        elif v == 0:
            print(commit_hash)
        elif v >= 2:
            print(f"[{repo.active_branch} {_display_hash(commit_hash, v)}] {args.message}")


def cmd_log(args):
    with open_repo(args) as repo:
        entries = repo.log()
        if args.json:
            print_json([_commit_entry(h, c) for h, c in entries])
            return
        for commit_hash, commit in entries:
            _print_log_entry(commit_hash, commit)


def cmd_global_log(args):
    with open_repo(args) as repo:
        entries = repo.global_log()
        if args.json:
            print_json([_commit_entry(h, c) for h, c in entries])
            return
        for commit_hash, commit in entries:
            _print_log_entry(commit_hash, commit)


def cmd_find(args):
    with open_repo(args) as repo:
        found = repo.find_commits(args.message)
        if args.json:
            print_json(found)
            return
        for commit_hash in found:
            print(commit_hash)


def cmd_status(args):
    with open_repo(args) as repo:
        status = repo.status()
        if args.json:
            print_json(status)
            return

        print("=== Branches ===")
        for name in status["branches"]:
            print(f"*{name}" if name == status["active"] else name)
        print()
        print("=== Staged Files ===")
        for name in status["staged"]:
            print(name)
        print()
        print("=== Removed Files ===")
        for name in status["removed"]:
            print(name)
        print()
        print("=== Modifications Not Staged For Commit ===")
        for name, kind in status["modified"]:
            print(f"{name} ({kind})")
        print()
        print("=== Untracked Files ===")
        for name in status["untracked"]:
            print(name)
        print()
        if get_verbosity(args) >= 2:
            storage = status["storage"]
            print(f"Storage: {storage['total_objects']} objects, "
                  f"{storage['total_bytes']:,} bytes")


def cmd_checkout(args):
    with open_repo(args) as repo:
        if args.file:
            if args.target:
                repo.checkout_file_from_commit(args.target, file_arg(args, args.file))
            else:
                repo.checkout_file(file_arg(args, args.file))
            result = {"file": args.file, "commit": args.target or repo.head()}
        else:
            if not args.target:
                raise SprigError("Incorrect operands.")
            repo.checkout_branch(args.target)
            result = {"branch": repo.active_branch, "head": repo.head()}
        if args.json:
            print_json(result)


def cmd_branch(args):
    with open_repo(args) as repo:
        repo.branch(args.name)
        if args.json:
            print_json({"branch": args.name, "head": repo.head()})


def cmd_rm_branch(args):
    with open_repo(args) as repo:
        repo.rm_branch(args.name)
        if args.json:
            print_json({"branch": args.name, "removed": True})


def cmd_reset(args):
    v = get_verbosity(args)
    with open_repo(args) as repo:
        repo.reset(args.commit)
        if args.json:
            print_json({"branch": repo.active_branch, "head": repo.head()})
        elif v >= 2:
            print(f"{repo.active_branch} is now at {repo.head()}")


def cmd_merge(args):
    v = get_verbosity(args)
    with open_repo(args) as repo:
        result = repo.merge(args.branch)
        if args.json:
            print_json(result.to_dict())
            return
        if result.fast_forward:
            print("Current branch fast-forwarded.")
        elif v >= 2:
            print(f"Merge commit: {result.commit}")
        if result.conflict:
            print("Encountered a merge conflict.")
            if v >= 2:
                for name in result.conflicts:
                    print(f"  {name}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sprig",
        description="Sprig: a small local version-control system",
    )
    parser.add_argument("--path", "-C", default=".", help="Repository path")
    parser.add_argument("--json", "-j", action="store_true", help="JSON output")

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    verbosity.add_argument("--quiet", "-q", action="store_true", help="Quiet output")

    sub = parser.add_subparsers(dest="command", help="Available commands")

    # init
    p = sub.add_parser("init", help="Initialize a new repository")
    p.add_argument("--branch", "-b", default="master", help="Name of the initial branch")
    p.set_defaults(func=cmd_init)

    # add
    p = sub.add_parser("add", help="Stage a file for the next commit")
    p.add_argument("file")
    p.set_defaults(func=cmd_add)

    # rm
    p = sub.add_parser("rm", help="Unstage a file or stage it for removal")
    p.add_argument("file")
    p.set_defaults(func=cmd_rm)

    # commit
    p = sub.add_parser("commit", help="Record staged changes")
    p.add_argument("message", nargs="?", default="")
    p.set_defaults(func=cmd_commit)

    # log
    p = sub.add_parser("log", help="Show history of the current branch")
    p.set_defaults(func=cmd_log)

    # global-log
    p = sub.add_parser("global-log", help="Show every commit ever made")
    p.set_defaults(func=cmd_global_log)

    # find
    p = sub.add_parser("find", help="Find commits by exact message")
    p.add_argument("message")
    p.set_defaults(func=cmd_find)

    # status
    p = sub.add_parser("status", help="Show repository status")
    p.set_defaults(func=cmd_status)

    # checkout
    p = sub.add_parser("checkout", help="Switch branches or restore a file")
    p.add_argument("target", nargs="?", default=None,
                   help="Branch name, or commit id when --file is given")
    p.add_argument("--file", "-f", default=None, help="Restore only this file")
    p.set_defaults(func=cmd_checkout)

    # branch
    p = sub.add_parser("branch", help="Create a branch at the current head")
    p.add_argument("name")
    p.set_defaults(func=cmd_branch)

    # rm-branch
    p = sub.add_parser("rm-branch", help="Delete a branch pointer")
    p.add_argument("name")
    p.set_defaults(func=cmd_rm_branch)

    # reset
    p = sub.add_parser("reset", help="Move the current branch to a commit")
    p.add_argument("commit")
    p.set_defaults(func=cmd_reset)

    # merge
    p = sub.add_parser("merge", help="Merge a branch into the current branch")
    p.add_argument("branch")
    p.set_defaults(func=cmd_merge)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except SprigError as e:
        if args.json:
            print_json({"error": str(e)})
        else:
            print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
