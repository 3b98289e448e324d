"""
Main CLI for savor using Click.

Commands open the database named by the configuration, run one store or
pipeline operation and print the result. Errors are mapped to exit codes;
tracebacks are only shown with -vv.
"""

import functools
import json
import sys
from pathlib import Path
from typing import Any, Callable

import click
import pydantic

from . import __version__
from .articles import Article, ArticleStore
from .config.loader import load_config
from .config.schema import AppConfig
from .diff import compute_diff, diff_stats, summarize_diff
from .errors import CapabilityError, NotFoundError, StorageConsistencyError, ValidationError
from .evolution import CycleCancelledError, EvolutionPipeline, parse_analysis
from .llm import LLMAdapter
from .logging import configure_logging
from .skills import SkillStore, export_json, export_markdown
from .status import get_onboarding_status
from .storage import Database

# Exit codes
EXIT_SUCCESS = 0
EXIT_FAILED = 1
EXIT_CONFIG_ERROR = 3
EXIT_NOT_FOUND = 4
EXIT_INTERRUPTED = 130


class CliState:
    """Global options, plus the config and database built from them on demand."""

    def __init__(self, config_path: Path | None, cli_args: dict[str, Any], quiet: bool):
        self.config_path = config_path
        self.cli_args = cli_args
        self.quiet = quiet
        self._config: AppConfig | None = None
        self._database: Database | None = None

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            self._config = load_config(config_path=self.config_path, cli_args=self.cli_args)
            configure_logging(self._config.logging, quiet=self.quiet)
        return self._config

    @property
    def database(self) -> Database:
        if self._database is None:
            self._database = Database(self.config.storage)
            SkillStore(self._database).reconcile()
        return self._database

    def pipeline(self) -> EvolutionPipeline:
        return EvolutionPipeline(self.database, LLMAdapter(self.config.llm), self.config)

    def close(self) -> None:
        if self._database is not None:
            self._database.close()


def _handle_errors(fn: Callable) -> Callable:
    """Map savor errors to messages on stderr and exit codes."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        state = click.get_current_context().find_object(CliState)
        verbose = (state.cli_args.get("verbose") or 0) if state else 0
        try:
            return fn(*args, **kwargs)
        except FileNotFoundError as e:
            _fail(f"Error: {e}", EXIT_CONFIG_ERROR)
        except pydantic.ValidationError as e:
            _fail(f"Invalid configuration: {e}", EXIT_CONFIG_ERROR)
        except NotFoundError as e:
            _fail(f"Error: {e}", EXIT_NOT_FOUND)
        except CycleCancelledError as e:
            _fail(f"Cancelled: {e}", EXIT_INTERRUPTED)
        except (ValidationError, CapabilityError, StorageConsistencyError) as e:
            if verbose >= 2:
                raise
            _fail(f"Error: {e}", EXIT_FAILED)
        except KeyboardInterrupt:
            _fail("\nInterrupted", EXIT_INTERRUPTED)

    return wrapper


def _fail(message: str, code: int) -> None:
    click.echo(message, err=True)
    sys.exit(code)


def _state() -> CliState:
    return click.get_current_context().find_object(CliState)


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ValidationError(f"{path} is not valid UTF-8 text") from e


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False, default=str))


@click.group()
@click.version_option(version=__version__, prog_name="savor")
@click.option(
    "-c",
    "--config",
    type=click.Path(path_type=Path),
    help="Path to the YAML configuration file",
)
@click.option("-v", "--verbose", count=True, help="Technical logs (-v info, -vv debug)")
@click.option("--log-file", type=click.Path(path_type=Path), help="Write JSON logs to this file")
@click.option("--db", type=click.Path(path_type=Path), help="SQLite database path")
@click.option("--model", help="LLM model to use (e.g.: gpt-4o, deepseek-chat)")
@click.option("--api-base", help="LLM API base URL")
@click.option("--quiet", is_flag=True, help="Only print results")
@click.pass_context
def main(
    ctx: click.Context,
    config: Path | None,
    verbose: int,
    log_file: Path | None,
    db: Path | None,
    model: str | None,
    api_base: str | None,
    quiet: bool,
) -> None:
    """savor - A writing style that learns from your edits.

    Keep a versioned style Skill, draft articles under it, and evolve it
    from the way you rewrite those drafts.
    """
    cli_args = {
        "verbose": verbose or None,
        "log_file": log_file,
        "db": db,
        "model": model,
        "api_base": api_base,
    }
    state = CliState(config, cli_args, quiet)
    ctx.obj = state
    ctx.call_on_close(state.close)


# ── SKILL COMMANDS ───────────────────────────────────────────────────────


@main.group()
def skill() -> None:
    """Manage style skills and their versions."""


@skill.command("create")
@click.argument("name")
@click.option("--category", help="Category (default: General)")
@click.option("--description", help="Short description")
@click.option(
    "--content-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Markdown file with the initial style content",
)
@_handle_errors
def skill_create(name: str, category: str | None, description: str | None, content_file: Path | None) -> None:
    """Create a skill with its version 1."""
    content = _read_text(content_file) if content_file else ""
    created = SkillStore(_state().database).create_skill(
        name, category=category, description=description, content_markdown=content
    )
    click.echo(f"Skill {created.id} created: {created.name} (v1)")


@skill.command("from-samples")
@click.argument("name")
@click.option(
    "--samples-file",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Your own writing; separate samples with a line holding only ---",
)
@click.option("--category", help="Category (default: General)")
@click.option("--description", help="Short description")
@_handle_errors
def skill_from_samples(name: str, samples_file: Path, category: str | None, description: str | None) -> None:
    """Extract a new skill from writing samples."""
    created = _state().pipeline().create_skill_from_samples(
        name, category, description, _read_text(samples_file)
    )
    click.echo(f"Skill {created.id} created from samples: {created.name} (v1)")


@skill.command("list")
@_handle_errors
def skill_list() -> None:
    """List skills, most recently updated first."""
    skills = SkillStore(_state().database).list_skills()
    if not skills:
        click.echo("  No skills yet. Create one with: savor skill create NAME")
        return
    for s in skills:
        click.echo(f"  {s.id:>4}  {s.name:30s} v{s.current_version:<4} {s.category}")


@skill.command("show")
@click.argument("skill_id", type=int)
@click.option("--json", "as_json", is_flag=True, help="Print as JSON")
@_handle_errors
def skill_show(skill_id: int, as_json: bool) -> None:
    """Show a skill and its current content."""
    store = SkillStore(_state().database)
    found = store.get_skill(skill_id)
    current = store.get_current_version(skill_id)
    if as_json:
        _echo_json({**found.to_dict(), "content": current.to_dict()})
        return
    click.echo(f"{found.name}  [{found.category}]  v{found.current_version}")
    if found.description:
        click.echo(found.description)
    click.echo(f"\n{current.content_markdown}")


@skill.command("update")
@click.argument("skill_id", type=int)
@click.option("--name", help="New name")
@click.option("--category", help="New category")
@click.option("--description", help="New description")
@_handle_errors
def skill_update(skill_id: int, name: str | None, category: str | None, description: str | None) -> None:
    """Update skill metadata. Content changes go through evolve."""
    updated = SkillStore(_state().database).update_skill(
        skill_id, name=name, category=category, description=description
    )
    click.echo(f"Skill {updated.id} updated")


@skill.command("delete")
@click.argument("skill_id", type=int)
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@_handle_errors
def skill_delete(skill_id: int, yes: bool) -> None:
    """Delete a skill and all its versions. Articles are kept."""
    if not yes:
        click.confirm(f"Delete skill {skill_id} and its whole history?", abort=True)
    if not SkillStore(_state().database).delete_skill(skill_id):
        raise NotFoundError("Skill", skill_id)
    click.echo(f"Skill {skill_id} deleted")


@skill.command("versions")
@click.argument("skill_id", type=int)
@_handle_errors
def skill_versions(skill_id: int) -> None:
    """List a skill's versions, newest first."""
    store = SkillStore(_state().database)
    current = store.get_skill(skill_id).current_version
    for v in store.list_versions(skill_id):
        marker = "*" if v.version_number == current else " "
        created = v.created_at.strftime("%Y-%m-%d %H:%M")
        click.echo(f" {marker} v{v.version_number:<4} {created}  {v.change_summary}")


@skill.command("version")
@click.argument("skill_id", type=int)
@click.argument("number", type=int)
@_handle_errors
def skill_version(skill_id: int, number: int) -> None:
    """Print the content of one version."""
    click.echo(SkillStore(_state().database).get_version(skill_id, number).content_markdown)


@skill.command("evolve")
@click.argument("skill_id", type=int)
@click.option(
    "--content-file",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Markdown file with the new content",
)
@click.option("--summary", required=True, help="What changed and why")
@_handle_errors
def skill_evolve(skill_id: int, content_file: Path, summary: str) -> None:
    """Append a new version by hand."""
    version = SkillStore(_state().database).evolve(skill_id, _read_text(content_file), summary)
    click.echo(f"Skill {skill_id} evolved to v{version.version_number}")


@skill.command("export")
@click.argument("skill_id", type=int)
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["markdown", "json"]),
    default="markdown",
    show_default=True,
)
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path), help="Write to a file")
@_handle_errors
def skill_export(skill_id: int, fmt: str, output: Path | None) -> None:
    """Export the current version as a ready-to-use system prompt."""
    database = _state().database
    text = export_markdown(database, skill_id) if fmt == "markdown" else export_json(database, skill_id)
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text, encoding="utf-8")
        click.echo(f"Exported to {output}", err=True)
    else:
        click.echo(text, nl=False)


# ── ARTICLE COMMANDS ─────────────────────────────────────────────────────


@main.group()
def article() -> None:
    """Generate, refine and analyze articles."""


@article.command("generate")
@click.argument("skill_id", type=int)
@click.argument("topic")
@_handle_errors
def article_generate(skill_id: int, topic: str) -> None:
    """Draft an article on TOPIC under the skill's current version."""
    pipeline = _state().pipeline()
    cycle = pipeline.request_draft(None, skill_id, topic)
    draft = pipeline.articles.get_article(cycle.article_id)
    click.echo(f"Article {draft.id} (skill {skill_id} v{draft.skill_version_used})", err=True)
    click.echo(draft.ai_generated_content)


@article.command("list")
@click.option("--skill", "skill_id", type=int, help="Only articles of this skill")
@_handle_errors
def article_list(skill_id: int | None) -> None:
    """List articles, most recently updated first."""
    articles = ArticleStore(_state().database).list_articles(skill_id=skill_id)
    if not articles:
        click.echo("  No articles yet.")
        return
    for a in articles:
        click.echo(f"  {a.id:>4}  {a.title[:40]:40s} {a.status:<10} {_origin(a)}")


def _origin(a: Article) -> str:
    if a.skill_id is not None:
        return f"skill {a.skill_id} v{a.skill_version_used}"
    if a.skill_version_used is not None:
        return f"deleted skill, v{a.skill_version_used}"
    return "no skill"


@article.command("show")
@click.argument("article_id", type=int)
@click.option("--draft", is_flag=True, help="Show the AI draft instead of your edit")
@click.option("--json", "as_json", is_flag=True, help="Print as JSON")
@_handle_errors
def article_show(article_id: int, draft: bool, as_json: bool) -> None:
    """Print an article (your edit, or the draft if not edited yet)."""
    found = ArticleStore(_state().database).get_article(article_id)
    if as_json:
        _echo_json(found.to_dict())
        return
    if draft or not found.user_refined_content:
        click.echo(found.ai_generated_content)
    else:
        click.echo(found.user_refined_content)


@article.command("save")
@click.argument("article_id", type=int)
@click.option(
    "--content-file",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="File with your refined version",
)
@_handle_errors
def article_save(article_id: int, content_file: Path) -> None:
    """Save your refined version of an article."""
    ArticleStore(_state().database).save_article(article_id, _read_text(content_file))
    click.echo(f"Article {article_id} saved")


@article.command("finalize")
@click.argument("article_id", type=int)
@_handle_errors
def article_finalize(article_id: int) -> None:
    """Mark an article as finished."""
    ArticleStore(_state().database).finalize_article(article_id)
    click.echo(f"Article {article_id} finalized")


@article.command("delete")
@click.argument("article_id", type=int)
@_handle_errors
def article_delete(article_id: int) -> None:
    """Delete an article and its diff records."""
    if not ArticleStore(_state().database).delete_article(article_id):
        raise NotFoundError("Article", article_id)
    click.echo(f"Article {article_id} deleted")


@article.command("analyze")
@click.argument("article_id", type=int)
@click.option(
    "--content-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Save this refined version before analyzing",
)
@_handle_errors
def article_analyze(article_id: int, content_file: Path | None) -> None:
    """Analyze how your edit differs from the draft."""
    modified = _read_text(content_file) if content_file else None
    record = _state().pipeline().analyze_article(article_id, modified=modified)

    analysis = parse_analysis(record.analysis_result)
    click.echo(f"Diff record {record.id}", err=True)
    if analysis is None:
        click.echo(record.analysis_result)
        return
    if summary := analysis.get("summary"):
        click.echo(f"Summary: {summary}\n")
    for key, items in json.loads(record.extracted_rules).items():
        click.echo(f"{key}:")
        for item in items:
            click.echo(f"  - {item}")
    click.echo(f"\nApply with: savor article apply {record.id}")


@article.command("apply")
@click.argument("record_id", type=int)
@click.option("--summary", help="Change summary (default: the analysis summary)")
@_handle_errors
def article_apply(record_id: int, summary: str | None) -> None:
    """Evolve the article's skill with the rules of a diff record."""
    version = _state().pipeline().apply_analysis(record_id, change_summary=summary)
    click.echo(f"Skill {version.skill_id} evolved to v{version.version_number}")


# ── DIFF ─────────────────────────────────────────────────────────────────


@main.command("diff")
@click.argument("original", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("modified", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Print chunks as JSON")
@_handle_errors
def diff_cmd(original: Path, modified: Path, as_json: bool) -> None:
    """Line diff between two files, as the analysis sees it."""
    chunks = compute_diff(_read_text(original), _read_text(modified))
    if as_json:
        _echo_json([c.to_dict() for c in chunks])
        return
    click.echo(summarize_diff(chunks), nl=False)
    stats = diff_stats(chunks)
    click.echo(f"\n+{stats.inserted} -{stats.deleted} ({stats.equal} unchanged)", err=True)


# ── SETUP COMMANDS ───────────────────────────────────────────────────────


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Print as JSON")
@_handle_errors
def status(as_json: bool) -> None:
    """Show what is left to set up."""
    state = _state()
    result = get_onboarding_status(state.database, state.config.llm)
    if as_json:
        _echo_json(result.to_dict())
        return

    def mark(ok: bool) -> str:
        return "✓" if ok else "✗"

    click.echo(f"  {mark(result.llm_configured)} LLM configured ({state.config.llm.provider}/{state.config.llm.model})")
    click.echo(f"  {mark(result.has_skills)} At least one skill")
    click.echo(f"  {mark(result.has_articles)} At least one article")


@main.command("validate-config")
def validate_config() -> None:
    """Validate the configuration file and environment."""
    state = _state()
    try:
        app_config = load_config(config_path=state.config_path, cli_args=state.cli_args)
        click.echo("Valid configuration")
        click.echo(f"  Provider: {app_config.llm.provider}")
        click.echo(f"  Model: {app_config.llm.model}")
        click.echo(f"  Database: {app_config.storage.path}")
    except FileNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_CONFIG_ERROR)
    except pydantic.ValidationError as e:
        click.echo(f"Invalid configuration: {e}", err=True)
        sys.exit(EXIT_CONFIG_ERROR)


@main.command("test-connection")
@_handle_errors
def test_connection() -> None:
    """Send a one-line request to the configured model."""
    config = _state().config
    reply = LLMAdapter(config.llm).test_connection()
    click.echo(f"Connected to {config.llm.provider}/{config.llm.model}: {reply.strip()}")


if __name__ == "__main__":
    main()
