#!/usr/bin/env python3
"""
asset-size-diff — GitHub Action helper that reports JS/CSS asset size changes in a pull request.

Features:
- Builds the app at the base ref and at the PR head (install + production build)
- Measures raw and gzip sizes of every JS/CSS file under the assets directory
- Strips content-hash fingerprints so assets match across the two builds
- Per-file deltas (bigger / smaller / same), removed files, per-type totals
- Markdown report on stdout, in a file, as a step output and as a PR comment
- Offline mode: diff two pre-collected size JSON files (--base-json / --pr-json)

Exit codes:
  0 = report produced (or no pull request to report on)
  2 = configuration/runtime error
"""

import argparse
import gzip
import json
import logging
import os
import re
import shlex
import shutil
import subprocess
import sys
import uuid
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional

from github import Auth, Github

log = logging.getLogger("asset_size_diff")

# -------------------------------
# Constants
# -------------------------------
DEC_KB = 1000
BYTE_UNITS = ["B", "kB", "MB", "GB", "TB", "PB"]

ASSET_TYPES = ("js", "css")
DEFAULT_BUILD_COMMAND = "npx ember build -prod"
DEFAULT_ASSETS_DIR = "dist/assets"

COMMENT_MARKER = "<!-- asset-size-diff -->"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

SizeEntry = Dict[str, int]
SizeMap = Dict[str, SizeEntry]


def configure_logging(level: str) -> None:
    log.setLevel(getattr(logging, level.upper(), logging.INFO))
    log.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
    log.addHandler(handler)


# -------------------------------
# Process helpers
# -------------------------------
class CommandResult(NamedTuple):
    code: int
    out: str
    err: str

    @property
    def ok(self) -> bool:
        return self.code == 0


def run(cmd: List[str], cwd: Optional[str] = None) -> CommandResult:
    log.info("Running: %s", " ".join(cmd))
    proc = subprocess.Popen(cmd, cwd=cwd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
    out, err = proc.communicate()
    return CommandResult(proc.returncode, out, err)


def check_run(cmd: List[str], cwd: Optional[str] = None) -> CommandResult:
    result = run(cmd, cwd=cwd)
    if not result.ok:
        raise RuntimeError(f"{' '.join(cmd)!r} exited with {result.code}: {result.err.strip() or result.out.strip()}")
    return result


# -------------------------------
# Configuration
# -------------------------------
class Config:
    def __init__(self,
                 cwd: str,
                 build_command: List[str],
                 assets_dir: str = DEFAULT_ASSETS_DIR,
                 install_command: Optional[List[str]] = None,
                 token: Optional[str] = None,
                 event_path: Optional[str] = None,
                 github_output: Optional[str] = None,
                 output: Optional[str] = None,
                 comment: bool = True,
                 include_totals: bool = True):
        self.cwd = cwd
        self.build_command = build_command
        self.assets_dir = assets_dir.strip("/")
        self.install_command = install_command
        self.token = token
        self.event_path = event_path
        self.github_output = github_output
        self.output = output
        self.comment = comment
        self.include_totals = include_totals

    @property
    def patterns(self) -> List[str]:
        return [f"{self.assets_dir}/*.{ext}" for ext in ASSET_TYPES]


def resolve_install_command(cwd: str) -> List[str]:
    if os.path.isfile(os.path.join(cwd, "yarn.lock")):
        return ["yarn", "--frozen-lockfile"]

    lock_path = os.path.join(cwd, "package-lock.json")
    if os.path.isfile(lock_path):
        with open(lock_path, "r", encoding="utf-8") as f:
            package_lock = json.load(f)
        npm_version = check_run(["npm", "-v"], cwd=cwd).out.strip()
        # lockfile v2 needs npm 7 to install faithfully
        if package_lock.get("lockfileVersion") == 2 and not npm_version.startswith("7"):
            return ["npx", "npm@7", "ci"]
        return ["npm", "ci"]

    log.warning("No package-lock.json or yarn.lock detected! We strongly recommend committing one")
    return ["npm", "install"]


def load_config(args: argparse.Namespace, resolve_install: bool = True) -> Config:
    cwd = os.path.abspath(args.cwd)
    return Config(
        cwd=cwd,
        build_command=shlex.split(args.build_command),
        assets_dir=args.assets_dir,
        install_command=resolve_install_command(cwd) if resolve_install else None,
        token=args.token or None,
        event_path=os.getenv("GITHUB_EVENT_PATH"),
        github_output=os.getenv("GITHUB_OUTPUT"),
        output=args.output or None,
        comment=not args.no_comment,
        include_totals=not args.no_totals,
    )


# -------------------------------
# Fingerprints
# -------------------------------
def fingerprint_pattern(assets_dir: str = DEFAULT_ASSETS_DIR) -> "re.Pattern[str]":
    return re.compile(re.escape(assets_dir.strip("/")) + r"/([\w-]+)-[0-9a-fA-F]{32}(\.\w+)")


def normalise_fingerprints(sizes: SizeMap, assets_dir: str = DEFAULT_ASSETS_DIR) -> SizeMap:
    pattern = fingerprint_pattern(assets_dir)
    out: SizeMap = {}
    for key, entry in sizes.items():
        m = pattern.search(key)
        if not m:
            log.info("Ignoring file %s as it does not match known asset file pattern", key)
            continue
        name, ext = m.groups()
        out[f"{name}{ext}"] = entry
    return out


# -------------------------------
# Totals / deltas
# -------------------------------
def human_bytes(n: int, signed: bool = False) -> str:
    if n < 0:
        sign = "-"
    elif n > 0 and signed:
        sign = "+"
    else:
        sign = ""
    value = float(abs(n))
    unit = 0
    while value >= DEC_KB and unit < len(BYTE_UNITS) - 1:
        value /= DEC_KB
        unit += 1
    if unit == 0:
        return f"{sign}{abs(n)} B"
    # three significant digits, trailing zeros dropped
    return f"{sign}{float(f'{value:.3g}'):g} {BYTE_UNITS[unit]}"


def diff_sizes(base: SizeMap, pr: SizeMap) -> SizeMap:
    out: SizeMap = {}
    for key, new_size in pr.items():
        origin_size = base.get(key)
        if origin_size is None:
            out[key] = {"raw": new_size["raw"], "gzip": new_size["gzip"]}
        else:
            out[key] = {
                "raw": new_size["raw"] - origin_size["raw"],
                "gzip": new_size["gzip"] - origin_size["gzip"],
            }
    return out


def removed_files(base: SizeMap, pr: SizeMap) -> SizeMap:
    return {key: dict(entry) for key, entry in base.items() if key not in pr}


def asset_type(filename: str) -> Optional[str]:
    for ext in ASSET_TYPES:
        if filename.endswith(f".{ext}"):
            return ext
    return None


def sum_asset_sizes(report: SizeMap) -> SizeMap:
    totals: SizeMap = {ext: {"raw": 0, "gzip": 0} for ext in ASSET_TYPES}
    for filename, entry in report.items():
        kind = asset_type(filename)
        if kind is None:
            continue
        totals[kind]["raw"] += entry["raw"]
        totals[kind]["gzip"] += entry["gzip"]
    return totals


def diff_totals(base_totals: SizeMap, pr_totals: SizeMap) -> SizeMap:
    """
    Change in per-type totals between the PR branch and the base branch.
    Both inputs come from sum_asset_sizes, so every asset type is present.
    """
    return {
        kind: {
            "raw": pr_totals[kind]["raw"] - base_totals[kind]["raw"],
            "gzip": pr_totals[kind]["gzip"] - base_totals[kind]["gzip"],
        }
        for kind in ASSET_TYPES
    }


# -------------------------------
# Build / measure
# -------------------------------
def collect_asset_sizes(cwd: str, patterns: List[str]) -> SizeMap:
    root = Path(cwd)
    sizes: SizeMap = {}
    for pattern in patterns:
        for path in sorted(root.glob(pattern)):
            if not path.is_file():
                continue
            data = path.read_bytes()
            sizes[path.relative_to(root).as_posix()] = {
                "raw": len(data),
                "gzip": len(gzip.compress(data, compresslevel=9)),
            }
    return sizes


def get_asset_sizes(config: Config) -> SizeMap:
    if config.install_command is None:
        raise RuntimeError("No install command resolved; cannot build")
    # stale fingerprinted files from a previous build would shadow this one
    assets = Path(config.cwd) / config.assets_dir
    if assets.is_dir():
        shutil.rmtree(assets)
    check_run(config.install_command, cwd=config.cwd)
    check_run(config.build_command, cwd=config.cwd)
    sizes = collect_asset_sizes(config.cwd, config.patterns)
    log.info("Collected sizes for %d asset(s) under %s", len(sizes), config.assets_dir)
    return sizes


def checkout(ref: str, cwd: str) -> None:
    target = ref
    if not run(["git", "rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"], cwd=cwd).ok:
        check_run(["git", "fetch", "--no-tags", "--depth=1", "origin", ref], cwd=cwd)
        target = "FETCH_HEAD"
    check_run(["git", "checkout", "--force", target], cwd=cwd)


def measure_branch(ref: str, config: Config) -> SizeMap:
    log.info("Measuring assets at %s", ref)
    checkout(ref, config.cwd)
    return get_asset_sizes(config)


def load_size_map(path: str) -> SizeMap:
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    if not isinstance(raw, dict):
        raise ValueError(f"Size report {path!r} must be a JSON object of filename -> {{raw, gzip}}")
    sizes: SizeMap = {}
    for key, entry in raw.items():
        if not isinstance(entry, dict) or not isinstance(entry.get("raw"), int) or not isinstance(entry.get("gzip"), int):
            raise ValueError(f"Size report {path!r}: entry {key!r} needs integer 'raw' and 'gzip'")
        sizes[key] = {"raw": entry["raw"], "gzip": entry["gzip"]}
    return sizes


# -------------------------------
# Pull request access
# -------------------------------
def make_github_client(token: Optional[str]) -> Github:
    if token:
        return Github(auth=Auth.Token(token), timeout=30, retry=0)
    return Github(timeout=30, retry=0)


def load_event(path: Optional[str]) -> Dict[str, Any]:
    if not path or not os.path.isfile(path):
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def get_pull_request(event: Dict[str, Any], client: Github) -> Any:
    pr = event.get("pull_request")
    if not pr:
        log.info("Could not get pull request number from context, exiting")
        return None
    base_repo = pr["base"]["repo"]
    repo = client.get_repo(f"{base_repo['owner']['login']}/{base_repo['name']}")
    return repo.get_pull(pr["number"])


def post_comment(pull: Any, report: str) -> Any:
    body = f"{COMMENT_MARKER}\n{report}"
    for comment in pull.get_issue_comments():
        if comment.body and comment.body.startswith(COMMENT_MARKER):
            log.info("Updating existing size report comment %s", comment.id)
            comment.edit(body)
            return comment
    log.info("Creating size report comment on #%s", pull.number)
    return pull.create_issue_comment(body)


def write_github_output(path: str, name: str, value: str) -> None:
    delimiter = f"ASD_EOF_{uuid.uuid4().hex}"
    with open(path, "a", encoding="utf-8") as f:
        f.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")


# -------------------------------
# Markdown report
# -------------------------------
def report_table(rows: List[Any], signed: bool = True) -> List[str]:
    lines = ["File | raw | gzip", "--- | --- | ---"]
    for name, entry in rows:
        lines.append(f"{name}|{human_bytes(entry['raw'], signed)}|{human_bytes(entry['gzip'], signed)}")
    return lines


def build_output_text(file_diffs: SizeMap,
                      total_diffs: Optional[SizeMap] = None,
                      totals: Optional[SizeMap] = None,
                      removed: Optional[SizeMap] = None) -> str:
    bigger = [(f, d) for f, d in file_diffs.items() if d["raw"] > 0]
    smaller = [(f, d) for f, d in file_diffs.items() if d["raw"] < 0]
    same = [(f, d) for f, d in file_diffs.items() if d["raw"] == 0]

    lines: List[str] = []

    def section(heading: str, table: List[str]) -> None:
        lines.append(heading)
        lines.append("")
        lines.extend(table)
        lines.append("")

    if bigger:
        section("Files that got Bigger 🚨:", report_table(bigger))
    if smaller:
        section("Files that got Smaller 🎉:", report_table(smaller))
    if same:
        section("Files that stayed the same size 🤷:", report_table(same))
    if removed:
        section("Files that were removed 🗑️:", report_table(list(removed.items()), signed=False))
    if total_diffs:
        section("Total Sizes diff 📊:", report_table([(kind, total_diffs[kind]) for kind in ASSET_TYPES]))
    if totals:
        section("Total Sizes ⛄:", report_table([(kind, totals[kind]) for kind in ASSET_TYPES], signed=False))
    return "\n".join(lines).strip()


# -------------------------------
# CLI
# -------------------------------
def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="asset-size-diff — JS/CSS asset size report for pull requests")
    p.add_argument("--cwd", default=os.getenv("ASD_CWD", "."), help="Project directory to build (default: current directory).")
    p.add_argument("--build-command", default=os.getenv("ASD_BUILD_COMMAND", DEFAULT_BUILD_COMMAND),
                   help=f"Production build command (default: {DEFAULT_BUILD_COMMAND!r}).")
    p.add_argument("--assets-dir", default=os.getenv("ASD_ASSETS_DIR", DEFAULT_ASSETS_DIR),
                   help=f"Build output directory holding JS/CSS assets (default: {DEFAULT_ASSETS_DIR}).")
    p.add_argument("--base-ref", default=None, help="Base ref/commit to build (default: the pull request base SHA).")
    p.add_argument("--head-ref", default=None, help="Head ref/commit to build (default: the pull request head SHA).")
    p.add_argument("--base-json", default=None, help="Pre-collected base size report; skips building.")
    p.add_argument("--pr-json", default=None, help="Pre-collected PR size report; skips building.")
    p.add_argument("--token", default=os.getenv("GITHUB_TOKEN", ""), help="GitHub token (default: env GITHUB_TOKEN).")
    p.add_argument("--output", default=os.getenv("ASD_OUTPUT", ""), help="Also write the report to this file.")
    p.add_argument("--no-comment", action="store_true", help="Do not post the report as a pull request comment.")
    p.add_argument("--no-totals", action="store_true", help="Leave the per-type total tables out of the report.")
    p.add_argument("--json", action="store_true", help="Also print JSON payload.")
    p.add_argument("--log-level", default=os.getenv("ASD_LOG_LEVEL", "info"), help="Logging level (default: info).")
    return p


# -------------------------------
# Main
# -------------------------------
def main(argv: Optional[List[str]] = None) -> int:
    try:
        args = build_parser().parse_args(argv)
        configure_logging(args.log_level)

        offline = bool(args.base_json or args.pr_json)
        if offline and not (args.base_json and args.pr_json):
            raise ValueError("--base-json and --pr-json must be given together")

        config = load_config(args, resolve_install=not offline)

        pull = None
        if offline:
            base_sizes = load_size_map(args.base_json)
            pr_sizes = load_size_map(args.pr_json)
        else:
            base_ref, head_ref = args.base_ref, args.head_ref
            explicit_refs = bool(base_ref and head_ref)
            event = load_event(config.event_path)
            # with explicit refs the pull request is only needed for the comment
            if not explicit_refs or (config.comment and config.token and event.get("pull_request")):
                pull = get_pull_request(event, make_github_client(config.token))
            if not explicit_refs:
                if pull is None:
                    return 0
                base_ref = base_ref or pull.base.sha
                head_ref = head_ref or pull.head.sha
            base_sizes = measure_branch(base_ref, config)
            pr_sizes = measure_branch(head_ref, config)

        base = normalise_fingerprints(base_sizes, config.assets_dir)
        pr = normalise_fingerprints(pr_sizes, config.assets_dir)
        file_diffs = diff_sizes(base, pr)
        removed = removed_files(base, pr)

        base_totals = sum_asset_sizes(base_sizes)
        pr_totals = sum_asset_sizes(pr_sizes)
        total_diffs = diff_totals(base_totals, pr_totals)

        if config.include_totals:
            report = build_output_text(file_diffs, total_diffs, pr_totals, removed)
        else:
            report = build_output_text(file_diffs, removed=removed)

        print(report)
        if config.output:
            with open(config.output, "w", encoding="utf-8") as f:
                f.write(report + "\n")
        if config.github_output:
            write_github_output(config.github_output, "report", report)
        if pull is not None and config.comment and config.token:
            post_comment(pull, report)

        if args.json:
            payload = {
                "base": base,
                "pr": pr,
                "file_diffs": file_diffs,
                "removed": removed,
                "total_diffs": total_diffs,
                "totals": pr_totals,
            }
            print("\n===JSON===")
            print(json.dumps(payload, indent=2))
        return 0

    except Exception as e:
        print(f"[asset-size-diff] ERROR: {e}", file=sys.stderr)
        return 2

if __name__ == "__main__":
    sys.exit(main())
