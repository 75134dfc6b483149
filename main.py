from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from typing import Optional, Sequence

from aggregator import hub_health, series_averages, skill_gaps, team_stats, training_needs_summary, trend
from cloud_sync import FileSessionStore, HttpSessionStore, RemoteSessionStore, sync_with_cloud
from coaching_agent import CoachingAgent
from hub_config import HubConfig, load_hub_config
from rubric_loader import load_rubric
from serialization import rubric_to_storage, sessions_to_ledger_csv
from sessions import CloudSettings
from store import AuditHub, JsonFileStore

LOGGER = logging.getLogger(__name__)


def build_hub(config: HubConfig) -> AuditHub:
    # Config only seeds the cloud settings; once saved, the stored ones win.
    default_cloud = CloudSettings(enabled=config.cloud_enabled, workspace_id=config.workspace_id)
    return AuditHub(JsonFileStore(config.data_dir), default_cloud=default_cloud)


def build_remote(config: HubConfig) -> Optional[RemoteSessionStore]:
    if config.remote_url:
        return HttpSessionStore(config.remote_url, token=config.remote_token, timeout=config.remote_timeout)
    if config.cloud_file:
        return FileSessionStore(config.cloud_file)
    return None


def build_agent(config: HubConfig) -> CoachingAgent:
    return CoachingAgent(
        model=config.ollama_model,
        temperature=config.temperature,
        base_url=config.ollama_base_url,
        timeout=config.llm_timeout,
    )


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


# ------------------------------------------------------------
# Commands
# ------------------------------------------------------------


def cmd_import(args, config: HubConfig) -> int:
    hub = build_hub(config)
    text = args.file.read()
    outcome = hub.import_text(text, stable_ids=args.stable_ids)
    print(outcome.summary())
    _print_json(
        {
            "data_rows": outcome.result.data_rows,
            "imported": outcome.result.imported,
            "added": outcome.added,
            "skipped": outcome.result.skipped,
            "skip_reasons": dict(outcome.result.skip_reasons),
            "revision": outcome.revision,
        }
    )
    return 0


def cmd_sanitize(args, config: HubConfig) -> int:
    hub = build_hub(config)
    health = hub_health(hub.sessions, hub.rubric)
    if args.dry_run:
        _print_json(asdict(health))
        return 0
    outcome = hub.sanitize()
    print(outcome.result.summary())
    return 0


def cmd_dashboard(args, config: HubConfig) -> int:
    hub = build_hub(config)
    sessions, rubric = hub.sessions, hub.rubric
    _print_json(
        {
            "health": asdict(hub_health(sessions, rubric)),
            "team": asdict(team_stats(sessions)),
            "series_averages": series_averages(sessions, rubric),
            "critical_gaps": [asdict(gap) for gap in skill_gaps(sessions, rubric, limit=config.top_gaps)],
            "trend": [{"date": date.isoformat(), "score": score} for date, score in trend(sessions)],
        }
    )
    return 0


def cmd_report(args, config: HubConfig) -> int:
    hub = build_hub(config)
    summary = training_needs_summary(hub.sessions, hub.rubric, top_n=config.top_gaps)
    print(build_agent(config).training_needs_report(summary))
    return 0


def cmd_export(args, config: HubConfig) -> int:
    hub = build_hub(config)
    if not hub.sessions:
        print("No data to export", file=sys.stderr)
        return 1
    args.out.write(sessions_to_ledger_csv(hub.sessions))
    return 0


def cmd_sync(args, config: HubConfig) -> int:
    remote = build_remote(config)
    if remote is None:
        print("No remote store configured (set remote_url or cloud_file).", file=sys.stderr)
        return 1
    hub = build_hub(config)
    added = sync_with_cloud(hub, remote)
    print(f"Synchronized {added} new records.")
    return 0


def cmd_rubric(args, config: HubConfig) -> int:
    hub = build_hub(config)
    if args.action == "load":
        if not args.path:
            print("rubric load needs a file path", file=sys.stderr)
            return 2
        definition = load_rubric(args.path)
        revision = hub.update_rubric(definition.rubric)
        print(f"Loaded rubric '{definition.name}' ({len(definition.rubric)} items), revision {revision}.")
        return 0
    _print_json(rubric_to_storage(hub.rubric))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Retail audit hub: bulk import, standards and reports.")
    parser.add_argument("--config", help="YAML or JSON config file.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    p_import = sub.add_parser("import", help="Import pasted spreadsheet rows (CSV/TSV).")
    p_import.add_argument(
        "file",
        nargs="?",
        type=argparse.FileType("r", encoding="utf-8"),
        default="-",
        help="Path to the exported sheet (defaults to stdin).",
    )
    p_import.add_argument(
        "--stable-ids",
        action="store_true",
        help="Derive record ids from row content so re-importing the same rows adds nothing.",
    )
    p_import.set_defaults(func=cmd_import)

    p_sanitize = sub.add_parser("sanitize", help="Clamp stored scores to the current rubric maxima.")
    p_sanitize.add_argument("--dry-run", action="store_true", help="Only report hub compliance.")
    p_sanitize.set_defaults(func=cmd_sanitize)

    sub.add_parser("dashboard", help="Print dashboard statistics as JSON.").set_defaults(func=cmd_dashboard)
    sub.add_parser("report", help="Generate the training-needs report.").set_defaults(func=cmd_report)

    p_export = sub.add_parser("export", help="Write the master ledger as CSV.")
    p_export.add_argument(
        "out",
        nargs="?",
        type=argparse.FileType("w", encoding="utf-8"),
        default="-",
        help="Output path (defaults to stdout).",
    )
    p_export.set_defaults(func=cmd_export)

    sub.add_parser("sync", help="Fetch workspace records from the remote store.").set_defaults(func=cmd_sync)

    p_rubric = sub.add_parser("rubric", help="Show the rubric or replace it from a file.")
    p_rubric.add_argument("action", choices=["show", "load"])
    p_rubric.add_argument("path", nargs="?")
    p_rubric.set_defaults(func=cmd_rubric)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = load_hub_config(args.config)
    try:
        return args.func(args, config)
    except (ValueError, OSError) as exc:
        LOGGER.debug("Command failed", exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
