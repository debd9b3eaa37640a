#!/usr/bin/env python3
"""
git-pr-manager - Dependency Bot Merge Example

This example walks through a full run:
1. Build configuration from a mapping and the environment
2. Create authenticated provider handles
3. Evaluate open pull requests
4. Merge the ready ones (dry run unless GITPR_MERGE=1)
"""

import logging
import os
import sys

from gitpr import (
    Config,
    ConfigurationError,
    Context,
    GitPRError,
    MergeExecutor,
    MergeOptions,
    ProcessOptions,
    Processor,
    configure_logging,
    create_providers,
)
from gitpr.types.results import MergeSummary, ProcessSummary


def build_config() -> Config:
    """Configuration for one GitHub repository; the token comes from GITHUB_TOKEN."""
    repository = os.environ.get("GITPR_REPOSITORY", "owner/repo")
    return Config.from_dict(
        {
            "pr_filters": {
                "allowed_actors": ["dependabot[bot]", "renovate[bot]"],
                "skip_labels": ["do-not-merge"],
                "max_age": "30d",
            },
            "repositories": {
                "github": [
                    {"name": repository, "merge_strategy": "squash", "require_checks": True},
                ],
            },
            "behavior": {
                "concurrency": 4,
                "rate_limit": {"requests_per_second": 5, "burst": 10},
            },
        },
        env=os.environ,
    )


def main() -> None:
    """Run the process-then-merge workflow."""
    configure_logging(level=logging.INFO)
    print("=== git-pr-manager Example ===\n")

    print("1. Loading configuration...")
    try:
        config = build_config()
    except ConfigurationError as e:
        print(f"   Invalid configuration: {e.message}")
        sys.exit(1)

    print("2. Creating providers...")
    providers = create_providers(config)
    print(f"   Providers: {', '.join(sorted(providers))}")

    ctx = Context.background().with_timeout(300)
    try:
        print("3. Processing pull requests...")
        results = Processor(providers, config).process_all(ctx, ProcessOptions())
        summary = ProcessSummary.from_results(results)
        print(
            f"   {summary.total_prs} PRs in {summary.total_repositories} repositories, "
            f"{summary.ready_prs} ready, {summary.skipped_prs} skipped"
        )
        for result in results:
            for processed in result.pull_requests:
                pr = processed.pull_request
                print(f"   {result.repository.full_name}#{pr.number}: {processed.reason}")

        dry_run = os.environ.get("GITPR_MERGE") != "1"
        print(f"4. Merging ready pull requests (dry_run={dry_run})...")
        merged = MergeExecutor(providers, config).merge_all(
            ctx, results, MergeOptions(dry_run=dry_run)
        )
        merge_summary = MergeSummary.from_results(merged, dry_run=dry_run)
        print(
            f"   {merge_summary.successful} merged, {merge_summary.skipped} skipped, "
            f"{merge_summary.failed} failed"
        )
    except GitPRError as e:
        print(f"   Error: {e}")
        sys.exit(1)
    finally:
        ctx.cancel()

    print("\n=== Example Complete ===")


if __name__ == "__main__":
    main()
