#!/usr/bin/env python3
"""
One-shot Signal Sync

Builds the reference store, fetches signals for the last N hours, merges
assigned Asana tasks, and prints the visible signals newest first. With
--synthesize the signals are also clustered into a prioritized plan.

Usage:
    python scripts/sync_signals.py [--hours 72] [--no-tasks] [--json] [--synthesize [--profile-name NAME]]
"""

import sys
import json
import asyncio
import argparse
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


async def run(args) -> int:
    from relay.common.config import load_config, require_slack_token
    from relay.common.errors import ConfigurationError, ConnectivityError
    from relay.ingest import ReferenceStoreBuilder, SignalFetcher, SlackClient
    from relay.orchestrator import ExcludeList
    from relay.tracker import AsanaAdapter

    config = load_config()
    try:
        token = require_slack_token(config)
    except ConfigurationError as e:
        print(f"[Sync] ERROR: {e}", file=sys.stderr)
        return 2

    excludes = ExcludeList(config.exclude_list_path)
    end = datetime.now(timezone.utc)
    start = end - timedelta(hours=args.hours)

    async with SlackClient(token, timeout=config.slack.timeout, page_delay=config.slack.page_delay) as client:
        try:
            store = await ReferenceStoreBuilder(client).build()
        except ConnectivityError as e:
            print(f"[Sync] ERROR: {e}", file=sys.stderr)
            return 1

        fetcher = SignalFetcher(
            client,
            search_query=config.slack.search_query,
            write_back_authors=config.slack.write_back_authors,
        )
        signals = await fetcher.fetch(store, start, end)
        visible = excludes.filter(signals)
        threads = await fetcher.fetch_threads(visible, store) if args.synthesize else {}

    if not args.no_tasks and config.asana.token:
        async with AsanaAdapter(config.asana.token, timeout=config.asana.timeout) as asana:
            tasks = await asana.list_assigned_items()
            categories = await asana.list_categories()
        visible.extend(excludes.filter(tasks))
    else:
        categories = []

    visible.sort(key=lambda s: s.created, reverse=True)

    if args.synthesize:
        return synthesize(config, visible, categories, threads, args)

    if args.json:
        print(json.dumps([s.model_dump(mode="json") for s in visible], indent=2, ensure_ascii=False))
        return 0

    print(f"[Sync] {len(visible)} signal(s) between {start:%Y-%m-%d %H:%M} and {end:%Y-%m-%d %H:%M} UTC")
    for signal in visible:
        print(f"  {signal.created:%m-%d %H:%M}  {signal.metadata.source_label:<24}  "
              f"{signal.metadata.author:<20}  {signal.title[:80]}")
    return 0


def synthesize(config, signals, categories, threads, args) -> int:
    from relay.common.errors import AiHardFailError
    from relay.common.llm_client import LLMClient
    from relay.suggest import SuggestionEngine, UserProfile

    llm_client = LLMClient(
        provider=config.llm.provider,
        google_api_key=config.llm.google_api_key or None,
        anthropic_api_key=config.llm.anthropic_api_key or None,
        openai_api_key=config.llm.openai_api_key or None,
    )
    engine = SuggestionEngine.from_llm_client(llm_client, config.llm.models)
    profile = UserProfile(name=args.profile_name) if args.profile_name else None

    try:
        result = engine.synthesize_workload(signals, categories, profile, threads)
    except AiHardFailError as e:
        print(f"[Synthesize] ERROR: {e}", file=sys.stderr)
        return 1

    if result.exhausted:
        print("[Synthesize] No model available, try again later", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps([t.model_dump(mode="json") for t in result.suggestions], indent=2, ensure_ascii=False))
        return 0

    print(f"[Synthesize] {len(result.suggestions)} task(s) from {len(signals)} signal(s) via {result.model}")
    for task in result.suggestions:
        print(f"  {task.title}  ({task.project}, {len(task.source_links)} source(s))")
        for subtask in task.subtasks:
            print(f"      - {subtask}")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Fetch and print Relay signals for a time window")
    parser.add_argument("--hours", type=int, default=72, help="Window size in hours, ending now")
    parser.add_argument("--no-tasks", action="store_true", help="Skip assigned Asana tasks")
    parser.add_argument("--json", action="store_true", help="Print signals as JSON")
    parser.add_argument("--synthesize", action="store_true", help="Cluster the signals into a prioritized plan")
    parser.add_argument("--profile-name", default="", help="Whose plan it is, for --synthesize")
    args = parser.parse_args()

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
