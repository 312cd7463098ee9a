"""
featurewarden CLI.

Commands:
- capabilities: detect (or re-detect) what the project can run
- agents: which agent CLIs are installed
- verify: verify one feature from ai/feature_list.json
- history, stats: read the verification store
- migrate, clear: maintain the verification store
"""

import json
import sys

import click

from featurewarden import __version__
from featurewarden.agents import check_available_agents
from featurewarden.capabilities import detect_capabilities, format_capabilities, invalidate_cache
from featurewarden.errors import WardenError
from featurewarden.log import configure_logging
from featurewarden.models.feature import FEATURE_LIST_PATH, load_feature_list
from featurewarden.models.verification import FeatureVerificationSummary
from featurewarden.report import VERDICT_ICONS, format_date
from featurewarden.store import VerificationStore, migrate_results_json
from featurewarden.store.migration import MIGRATION_NOT_NEEDED
from featurewarden.verifier import VerificationOrchestrator, VerifyOptions


project_option = click.option(
    "-p", "--project", "project",
    default=".",
    type=click.Path(exists=True, file_okay=False),
    help="Project root (default: current directory)",
)


@click.group()
@click.version_option(version=__version__)
def cli():
    """featurewarden - Verify features against their acceptance criteria.

    Detects project capabilities, runs the relevant checks and records
    every verification run under ai/verification/.
    """
    configure_logging()


# ============================================================================
# Capabilities
# ============================================================================

@cli.command()
@project_option
@click.option("--force", is_flag=True, help="Ignore caches and rediscover")
@click.option("--clear", "clear_cache", is_flag=True, help="Delete ai/capabilities.json and exit")
def capabilities(project, force, clear_cache):
    """Show the project's test, lint, typecheck, build and e2e commands."""
    if clear_cache:
        invalidate_cache(project)
        click.echo("Capability cache cleared.")
        return

    caps = detect_capabilities(project, force=force)
    click.echo("Project capabilities:")
    click.echo(format_capabilities(caps))


@cli.command()
def agents():
    """Show which agent CLIs are installed."""
    for name, installed in check_available_agents().items():
        click.echo(f"  {name}: {'installed' if installed else 'not found'}")


# ============================================================================
# Verification
# ============================================================================

@cli.command()
@click.argument("feature_id")
@project_option
@click.option("--skip-checks", is_flag=True, help="Skip automated checks, AI judgment only")
@click.option("--test-mode", default="full", type=click.Choice(["full", "quick", "skip"]),
              help="full: all tests, quick: only tests relevant to the change, skip: no tests")
@click.option("--test-pattern", default=None, help="Override the feature's test pattern (quick mode)")
@click.option("--skip-e2e", is_flag=True, help="Do not run e2e tests")
@click.option("--e2e-tags", default=None, help="Comma-separated e2e tags (default: the feature's tags)")
@click.option("--e2e-mode", default=None, type=click.Choice(["full", "smoke", "tags"]),
              help="E2E selection (default: derived from tags and test mode)")
@click.option("--parallel/--sequential", default=None, help="Run unit-style checks concurrently")
@click.option("--timeout", "timeout_ms", default=None, type=int, help="AI timeout in milliseconds")
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON")
def verify(feature_id, project, skip_checks, test_mode, test_pattern, skip_e2e, e2e_tags,
           e2e_mode, parallel, timeout_ms, as_json):
    """Verify FEATURE_ID against its acceptance criteria."""
    feature_list = load_feature_list(project)
    if feature_list is None:
        click.echo(f"Error: No feature list at {FEATURE_LIST_PATH}", err=True)
        sys.exit(1)

    feature = feature_list.get(feature_id)
    if feature is None:
        click.echo(f"Error: Feature '{feature_id}' not found", err=True)
        sys.exit(1)

    options = VerifyOptions(
        skip_checks=skip_checks,
        test_mode=test_mode,
        test_pattern=test_pattern,
        skip_e2e=skip_e2e,
        e2e_tags=[t.strip() for t in e2e_tags.split(",") if t.strip()] if e2e_tags else None,
        e2e_mode=e2e_mode,
        parallel=parallel,
        timeout_ms=timeout_ms,
    )

    click.echo(f"Verifying {feature.id}...")
    try:
        result = VerificationOrchestrator(project).verify(feature, feature_list.metadata, options)
    except WardenError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        summary = FeatureVerificationSummary.from_result(result)
        icon = VERDICT_ICONS.get(summary.verdict, "?")
        click.echo(f"{icon} {summary.verdict.upper()}: {summary.summary} (verified by {summary.verified_by})")
        if result.overall_reasoning:
            click.echo(f"  {result.overall_reasoning}")

    if result.verdict == "fail":
        sys.exit(1)


# ============================================================================
# Store
# ============================================================================

@cli.command()
@click.argument("feature_id")
@project_option
def history(feature_id, project):
    """List recorded verification runs for FEATURE_ID, oldest first."""
    runs = VerificationStore(project).get_history(feature_id)
    if not runs:
        click.echo(f"No verification history for {feature_id}")
        return

    for meta in runs:
        satisfied = sum(1 for c in meta.criteria_results if c.satisfied)
        click.echo(
            f"#{meta.run_number:03d} {format_date(meta.timestamp)} "
            f"{meta.verdict} ({satisfied}/{len(meta.criteria_results)} criteria, {meta.verified_by})"
        )


@cli.command()
@project_option
def stats(project):
    """Counts of features by latest verdict."""
    counts = VerificationStore(project).stats()
    click.echo(f"Total:        {counts['total']}")
    click.echo(f"Passing:      {counts['passing']}")
    click.echo(f"Failing:      {counts['failing']}")
    click.echo(f"Needs review: {counts['needs_review']}")


@cli.command()
@project_option
def migrate(project):
    """Migrate a legacy results.json into per-run history."""
    migrated = migrate_results_json(project)
    if migrated == MIGRATION_NOT_NEEDED:
        click.echo("Nothing to migrate.")
    else:
        click.echo(f"Migrated {migrated} feature(s).")


@cli.command()
@click.argument("feature_id")
@project_option
def clear(feature_id, project):
    """Forget the latest result for FEATURE_ID (run history is kept)."""
    store = VerificationStore(project)
    if not store.has_verification(feature_id):
        click.echo(f"No verification recorded for {feature_id}")
        return
    try:
        store.clear(feature_id)
    except OSError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"Cleared verification for {feature_id}")


def main():
    cli()


if __name__ == "__main__":
    main()
