"""CLI entry point for journey-autogen."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

import journey_autogen

app = typer.Typer(
    name="journey-autogen",
    help="Map journey steps to test primitives and refine failing Playwright tests.",
    no_args_is_help=True,
)
state_app = typer.Typer(help="Inspect or clear saved refinement state.", no_args_is_help=True)
app.add_typer(state_app, name="state")
patterns_app = typer.Typer(
    help="List the core step patterns, or manage learned ones.",
    invoke_without_command=True,
)
app.add_typer(patterns_app, name="patterns")
learned_app = typer.Typer(help="Manage patterns learned from successful mappings.", no_args_is_help=True)
patterns_app.add_typer(learned_app, name="learned")
console = Console()

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_MAX_ATTEMPTS = 3
CONFIG_KEYS = ("telemetry", "model", "max_attempts", "glossary")


@app.callback()
def main(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Show debug logging"
    ),
) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )


def _store_config(key: str) -> Optional[str]:
    try:
        from journey_autogen.data.store import DataStore

        store = DataStore()
        value = store.get_config(key)
        store.close()
        return value
    except Exception as e:
        logger.debug("Could not read config %s: %s", key, e)
        return None


def _resolve_model(model: Optional[str]) -> str:
    """Resolve model from CLI flag → env var → config → default."""
    if model:
        return model
    env_model = os.environ.get("JOURNEY_AUTOGEN_MODEL")
    if env_model:
        return env_model
    return _store_config("model") or DEFAULT_MODEL


def _resolve_max_attempts(max_attempts: Optional[int]) -> int:
    if max_attempts:
        return max_attempts
    raw = os.environ.get("JOURNEY_AUTOGEN_MAX_ATTEMPTS") or _store_config("max_attempts")
    try:
        return int(raw) if raw else DEFAULT_MAX_ATTEMPTS
    except ValueError:
        console.print(f"[yellow]Ignoring invalid max_attempts {raw!r}[/]")
        return DEFAULT_MAX_ATTEMPTS


def _load_glossary(path: Optional[str], extended: Optional[str] = None) -> None:
    """Rebuild the shared registry from the configured glossaries."""
    from journey_autogen.core.glossary import reset_default_registry

    resolved = path or os.environ.get("JOURNEY_AUTOGEN_GLOSSARY") or _store_config("glossary")
    registry = reset_default_registry(resolved or None)
    if not extended:
        return
    result = registry.load_extended(extended)
    if not result.loaded:
        console.print(f"[red]{escape(result.error)}[/]")
        raise typer.Exit(1)
    logger.debug("Loaded %d extended glossary entries", result.entry_count)


def _build_matcher(store):
    from journey_autogen.core.matcher import PatternMatcher
    from journey_autogen.data.llkb import LearnedPatternIndex

    return PatternMatcher(learned=LearnedPatternIndex(store))


def _record_blocked(store, step: str, journey_id: str) -> None:
    """Best-effort telemetry for a step nothing could map."""
    from journey_autogen.core.blocked import BlockedStepRecord, analyze_blocked_step

    if not store.telemetry_enabled():
        return
    try:
        store.record_blocked_step(
            BlockedStepRecord.from_analysis(analyze_blocked_step(step), journey_id)
        )
    except Exception as e:
        logger.debug("Failed to record blocked step: %s", e)


# ── Mapping ──────────────────────────────────────────────────────────


@app.command()
def match(
    text: str = typer.Argument(..., help="Step text, e.g. \"User clicks 'Save' button\""),
    glossary: Optional[str] = typer.Option(
        None, "--glossary", "-g", help="Path to a YAML glossary"
    ),
    extended_glossary: Optional[str] = typer.Option(
        None, "--extended-glossary", "-x", help="Path to an extended glossary JSON export"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the primitive as JSON"),
) -> None:
    """Map one step to an IR primitive."""
    from journey_autogen.core.blocked import analyze_blocked_step
    from journey_autogen.core.step_mapper import map_step_text
    from journey_autogen.data.store import DataStore

    _load_glossary(glossary, extended_glossary)
    store = DataStore()
    mapping = map_step_text(text, _build_matcher(store))

    if as_json:
        console.print_json(json.dumps(mapping.primitive.to_dict()))
    elif not mapping.blocked:
        m = mapping.match
        source = f"{m.source} ({m.pattern_name})" if m and m.pattern_name else (
            m.source if m else "hints"
        )
        console.print(f"[green]{mapping.primitive.type}[/] via {source}")
        console.print_json(json.dumps(mapping.primitive.to_dict()))

    if mapping.blocked:
        _record_blocked(store, text, "cli")
        analysis = analyze_blocked_step(text)
        console.print(f"[red]{mapping.message}[/]  [dim]category: {analysis.category}[/]")
        if analysis.nearest_pattern:
            near = analysis.nearest_pattern
            console.print(f"  nearest pattern: {near.name} (distance {near.distance})")
        for s in analysis.suggestions:
            console.print(f"  try: [cyan]{s.text}[/] [dim]{s.explanation}[/]")
        if analysis.machine_hint:
            console.print(f"  or add a hint: [cyan]{analysis.machine_hint}[/]")
        store.close()
        raise typer.Exit(1)
    store.close()


@app.command("map")
def map_file(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Journey markdown file"),
    journey_id: Optional[str] = typer.Option(None, "--journey-id", "-j"),
    glossary: Optional[str] = typer.Option(None, "--glossary", "-g"),
    extended_glossary: Optional[str] = typer.Option(None, "--extended-glossary", "-x"),
    as_json: bool = typer.Option(False, "--json", help="Print the IR steps as JSON"),
) -> None:
    """Map every step of a journey file (structured or numbered) to IR."""
    from journey_autogen.core.step_mapper import (
        get_mapping_stats,
        map_acceptance_criterion,
        map_procedural_step,
        map_step_text,
        parse_acceptance_criteria,
        parse_numbered_steps,
        parse_structured_steps,
        structured_steps_to_ir,
    )
    from journey_autogen.data.store import DataStore

    _load_glossary(glossary, extended_glossary)
    store = DataStore()
    matcher = _build_matcher(store)
    markdown = file.read_text()
    jid = journey_id or file.stem

    structured = parse_structured_steps(markdown, matcher)
    if structured:
        steps = structured_steps_to_ir(structured)
        mappings = [a.mapping for s in structured for a in s.actions if a.mapping]
    else:
        procedural = parse_numbered_steps(markdown)
        criteria = parse_acceptance_criteria(markdown)
        steps, mappings = [], []
        if criteria:
            for ac in criteria:
                step, ac_mappings = map_acceptance_criterion(ac, procedural, matcher)
                steps.append(step)
                mappings.extend(ac_mappings)
        else:
            for ps in procedural:
                steps.append(map_procedural_step(ps, matcher))
                mappings.append(map_step_text(ps.text, matcher))

    if not steps:
        console.print("[yellow]No steps found (expected '### Step N:' or '## Procedure').[/]")
        store.close()
        raise typer.Exit(1)

    for m in mappings:
        if m.blocked:
            _record_blocked(store, m.source_text, jid)
    store.close()

    if as_json:
        console.print_json(json.dumps([
            {
                "id": s.id,
                "description": s.description,
                "actions": [p.to_dict() for p in s.actions],
                "assertions": [p.to_dict() for p in s.assertions],
                "notes": s.notes,
            }
            for s in steps
        ]))
    else:
        table = Table(title=f"Journey {jid}")
        table.add_column("Step", style="cyan")
        table.add_column("Description")
        table.add_column("Actions", style="green")
        table.add_column("Assertions", style="magenta")
        for s in steps:
            table.add_row(
                s.id,
                s.description,
                ", ".join(p.type for p in s.actions),
                ", ".join(p.type for p in s.assertions),
            )
        console.print(table)

    stats = get_mapping_stats(mappings)
    console.print(
        f"{stats['mapped']}/{stats['total']} steps mapped "
        f"({stats['mapping_rate']:.0%}), {stats['blocked']} blocked"
    )
    raise typer.Exit(0 if stats["blocked"] == 0 else 1)


@patterns_app.callback()
def patterns(
    ctx: typer.Context,
    group: Optional[str] = typer.Option(None, "--group", help="Only show one pattern group"),
) -> None:
    """List the core step patterns in match order."""
    if ctx.invoked_subcommand is not None:
        return
    from journey_autogen.core.patterns import ALL_PATTERNS, PATTERN_VERSION

    table = Table(title=f"Step patterns (v{PATTERN_VERSION})")
    table.add_column("#", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Group")
    table.add_column("Primitive", style="green")
    table.add_column("Example", style="dim")
    shown = 0
    for i, p in enumerate(ALL_PATTERNS, 1):
        if group and p.group != group:
            continue
        table.add_row(str(i), p.name, p.group, p.primitive_type, p.examples[0] if p.examples else "")
        shown += 1
    console.print(table)
    console.print(f"{shown} patterns")


# ── Learned patterns ─────────────────────────────────────────────────


def _learned_index():
    from journey_autogen.data.llkb import LearnedPatternIndex
    from journey_autogen.data.store import DataStore

    return LearnedPatternIndex(DataStore())


@learned_app.command("list")
def learned_list(
    include_promoted: bool = typer.Option(False, "--all", help="Include promoted patterns"),
    min_confidence: float = typer.Option(0.0, "--min-confidence"),
) -> None:
    """List learned patterns, most confident first."""
    index = _learned_index()
    found = [p for p in index.all(include_promoted=include_promoted) if p.confidence >= min_confidence]
    index.store.close()
    if not found:
        console.print("[yellow]No learned patterns.[/]")
        return

    table = Table(title="Learned patterns")
    table.add_column("ID", style="dim")
    table.add_column("Text", style="cyan")
    table.add_column("Primitive", style="green")
    table.add_column("Confidence", justify="right")
    table.add_column("OK/Fail", justify="right")
    table.add_column("Journeys", justify="right")
    for p in sorted(found, key=lambda p: p.confidence, reverse=True):
        table.add_row(
            p.id,
            escape(p.original_text) + (" [magenta](promoted)[/]" if p.promoted else ""),
            p.primitive.type,
            f"{p.confidence:.2f}",
            f"{p.success_count}/{p.fail_count}",
            str(len(p.source_journeys)),
        )
    console.print(table)


@learned_app.command("stats")
def learned_stats() -> None:
    """Summarize the learned pattern store."""
    index = _learned_index()
    stats = index.stats()
    index.store.close()
    console.print(f"total: {stats.total}")
    console.print(f"promoted: {stats.promoted}")
    console.print(f"high confidence: {stats.high_confidence}")
    console.print(f"low confidence: {stats.low_confidence}")
    console.print(f"average confidence: {stats.avg_confidence:.2f}")
    console.print(f"successes/failures: {stats.total_successes}/{stats.total_failures}")


@learned_app.command("promote")
def learned_promote(
    min_journeys: int = typer.Option(1, "--min-journeys", help="Minimum distinct source journeys"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show candidates without promoting"),
) -> None:
    """Mark high-confidence learned patterns as promoted to core."""
    index = _learned_index()
    candidates = index.get_promotable(min_source_journeys=min_journeys)
    if not candidates:
        index.store.close()
        console.print("[yellow]No patterns ready for promotion.[/]")
        return

    for c in candidates:
        console.print(
            f"[cyan]{escape(c.pattern.original_text)}[/] -> {escape(c.regex)}"
            f"  [dim]priority {c.priority:.1f}[/]"
        )
    if dry_run:
        index.store.close()
        console.print(f"{len(candidates)} candidates (dry run)")
        return
    promoted = index.mark_promoted([c.pattern.id for c in candidates])
    index.store.close()
    console.print(f"[green]Promoted {promoted} patterns[/]")


@learned_app.command("prune")
def learned_prune(
    min_confidence: float = typer.Option(0.3, "--min-confidence"),
    min_success: int = typer.Option(1, "--min-success"),
    max_age_days: int = typer.Option(90, "--max-age-days", help="Drop never-used patterns older than this"),
) -> None:
    """Delete weak learned patterns. Promoted patterns are kept."""
    index = _learned_index()
    removed = index.prune(
        min_confidence=min_confidence, min_success=min_success, max_age_days=max_age_days
    )
    index.store.close()
    console.print(f"Pruned {removed} patterns")


@learned_app.command("export")
def learned_export(
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to a file instead of stdout"),
    min_confidence: float = typer.Option(0.7, "--min-confidence"),
) -> None:
    """Export confident learned patterns as trigger regexes."""
    index = _learned_index()
    exported = index.export_config(min_confidence=min_confidence)
    index.store.close()
    if output is None:
        console.print_json(json.dumps(exported))
        return
    output.write_text(json.dumps(exported, indent=2) + "\n")
    console.print(f"[green]Exported {len(exported['patterns'])} patterns to {output}[/]")


@learned_app.command("import")
def learned_import(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="learned-patterns.json export"),
) -> None:
    """Import learned patterns from a JSON export."""
    index = _learned_index()
    try:
        imported = index.import_json(str(file))
    except (OSError, ValueError) as e:
        console.print(f"[red]Import failed: {escape(str(e))}[/]")
        raise typer.Exit(1)
    finally:
        index.store.close()
    console.print(f"[green]Imported {imported} patterns[/]")


@learned_app.command("clear")
def learned_clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
) -> None:
    """Delete every learned pattern, promoted ones included."""
    index = _learned_index()
    ids = [p.id for p in index.all()]
    if ids and not yes and not typer.confirm(f"Delete {len(ids)} learned patterns?"):
        index.store.close()
        raise typer.Exit(1)
    removed = index.store.delete_learned_patterns(ids)
    index.store.close()
    console.print(f"Cleared {removed} patterns")


# ── Refinement ───────────────────────────────────────────────────────


@app.command()
def refine(
    test_file: str = typer.Argument(..., help="Playwright test file, relative to --cwd"),
    journey_id: Optional[str] = typer.Option(None, "--journey-id", "-j"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="LLM model to use"),
    max_attempts: Optional[int] = typer.Option(None, "--max-attempts", help="Maximum fix attempts"),
    resume: bool = typer.Option(True, "--resume/--no-resume", help="Continue from saved state"),
    cwd: str = typer.Option(".", "--cwd", help="Playwright project directory"),
    timeout: float = typer.Option(120.0, "--timeout", help="Seconds per test run"),
) -> None:
    """Run a failing test and let the LLM repair it."""
    from journey_autogen.core.fix_generator import LLMFixGenerator
    from journey_autogen.core.providers import detect_provider, get_provider_class
    from journey_autogen.core.refinement import RefinementLoop, RefinementOptions
    from journey_autogen.core.runner import PlaywrightRunner
    from journey_autogen.data.state import StateStore, state_key
    from journey_autogen.data.store import DataStore

    resolved_model = _resolve_model(model)
    provider_name = detect_provider(resolved_model)
    try:
        provider_class = get_provider_class(provider_name)
    except ImportError as e:
        console.print(f"[red]Error: {e}[/]")
        raise typer.Exit(1)

    has_key, key_name = provider_class.check_api_key()
    if not has_key:
        console.print(
            f"[red]Error: {key_name} environment variable not set.[/]\n"
            f"Set it with: export {key_name}='your-key-here'",
        )
        raise typer.Exit(1)

    path = Path(cwd, test_file)
    if not path.is_file():
        console.print(f"[red]Test file not found: {path}[/]")
        raise typer.Exit(1)
    original_code = path.read_text()

    store = DataStore()
    states = StateStore(store)
    saved = states.load(test_file) if resume else None
    if not resume:
        states.clear(test_file)

    runner = PlaywrightRunner(cwd=cwd, timeout=timeout)
    console.print(f"[dim]Running {test_file}...[/]")
    initial = asyncio.run(runner.run_test(test_file, original_code))
    if initial.passed:
        console.print("[green]Test already passes, nothing to refine.[/]")
        states.clear(test_file)
        store.close()
        raise typer.Exit(0)

    loop = RefinementLoop(
        generator=LLMFixGenerator(resolved_model, test_file=test_file),
        runner=runner,
        options=RefinementOptions(max_attempts=_resolve_max_attempts(max_attempts)),
        console=console,
    )

    def _persist(_attempt) -> None:
        try:
            states.save(test_file, loop.export_state())
        except Exception as e:
            logger.warning("Could not save refinement state: %s", e)

    loop.on_attempt_complete = _persist

    result = asyncio.run(loop.run(
        journey_id or state_key(test_file),
        test_file,
        original_code,
        initial.errors,
        resume_from=saved,
    ))

    # Leave the best code we have on disk, not whatever the last attempt wrote
    path.write_text(result.fixed_code or result.session.current_code)

    if result.lessons_learned:
        try:
            store.save_lessons(result.lessons_learned)
        except Exception as e:
            logger.warning("Could not save lessons: %s", e)

    if result.success:
        states.clear(test_file)
    store.close()
    raise typer.Exit(0 if result.success else 1)


@state_app.command("show")
def state_show(test_file: str = typer.Argument(...)) -> None:
    """Show saved refinement state for a test file."""
    from journey_autogen.data.state import StateStore, state_key
    from journey_autogen.data.store import DataStore

    store = DataStore()
    state = StateStore(store).load(test_file)
    store.close()
    if state is None:
        console.print(f"[yellow]No saved state for {state_key(test_file)}[/]")
        raise typer.Exit(1)

    breaker = state.circuit_breaker_state
    console.print(f"[bold]{state_key(test_file)}[/]: {len(state.attempts)} attempts")
    if breaker.get("is_open"):
        console.print(f"  circuit breaker: [red]open[/] ({breaker.get('open_reason')})")
    else:
        console.print("  circuit breaker: [green]closed[/]")
    if state.error_count_history:
        console.print(f"  error counts: {' → '.join(str(n) for n in state.error_count_history)}")

    table = Table()
    table.add_column("#", justify="right")
    table.add_column("Outcome")
    table.add_column("Fix")
    table.add_column("Errors after", justify="right")
    for a in state.attempts:
        fix = a.applied_fix or (a.proposed_fixes[0] if a.proposed_fixes else None)
        table.add_row(
            str(a.attempt_number),
            a.outcome.value,
            fix.description if fix else (a.note or "-"),
            str(len(a.new_errors)),
        )
    console.print(table)


@state_app.command("clear")
def state_clear(test_file: str = typer.Argument(...)) -> None:
    """Delete saved refinement state so the next run starts fresh."""
    from journey_autogen.data.state import StateStore, state_key
    from journey_autogen.data.store import DataStore

    store = DataStore()
    removed = StateStore(store).clear(test_file)
    store.close()
    if removed:
        console.print(f"[green]Cleared state for {state_key(test_file)}[/]")
    else:
        console.print(f"[yellow]No saved state for {state_key(test_file)}[/]")


@app.command()
def lessons(
    lesson_type: Optional[str] = typer.Option(
        None, "--type", "-t", help="selector_pattern, wait_strategy, flow_pattern or error_fix"
    ),
    journey_id: Optional[str] = typer.Option(None, "--journey-id", "-j"),
) -> None:
    """List lessons recorded by successful fixes."""
    from journey_autogen.data.store import DataStore

    store = DataStore()
    found = store.get_lessons(lesson_type=lesson_type, journey_id=journey_id)
    store.close()
    if not found:
        console.print("[yellow]No lessons recorded.[/]")
        return

    table = Table(title="Lessons learned")
    table.add_column("Type", style="cyan")
    table.add_column("Journey")
    table.add_column("Error")
    table.add_column("Pattern")
    table.add_column("Confidence", justify="right")
    for lesson in found:
        table.add_row(
            lesson.type.value,
            lesson.journey_id,
            lesson.error_category,
            lesson.pattern,
            f"{lesson.confidence:.2f}",
        )
    console.print(table)


# ── Config / version ─────────────────────────────────────────────────


@app.command()
def config(
    action: str = typer.Argument(
        "get", help="Action: get or set"
    ),
    key: Optional[str] = typer.Argument(
        None, help=f"Config key ({', '.join(CONFIG_KEYS)})"
    ),
    value: Optional[str] = typer.Argument(
        None, help="Value to set"
    ),
) -> None:
    """View or modify configuration."""
    from journey_autogen.data.store import DataStore

    store = DataStore()

    if action == "get":
        if key:
            val = store.get_config(key)
            if val is not None:
                console.print(f"{key} = {val}")
            else:
                console.print(f"[yellow]{key} is not set[/]")
        else:
            for k in CONFIG_KEYS:
                val = store.get_config(k)
                console.print(f"{k} = {val or '(not set)'}")
    elif action == "set":
        if not key or value is None:
            console.print("[red]Usage: journey-autogen config set <key> <value>[/]")
            raise typer.Exit(1)
        if key not in CONFIG_KEYS:
            console.print(
                f"[red]Unknown config key: {key}. "
                f"Valid keys: {', '.join(CONFIG_KEYS)}[/]"
            )
            raise typer.Exit(1)
        if key == "telemetry" and value not in ("on", "off", "true", "false"):
            console.print("[red]Telemetry value must be on/off or true/false[/]")
            raise typer.Exit(1)
        if key == "max_attempts" and not (value.isdigit() and int(value) > 0):
            console.print("[red]max_attempts must be a positive integer[/]")
            raise typer.Exit(1)
        store.set_config(key, value)
        console.print(f"[green]Set {key} = {value}[/]")
    else:
        console.print("[red]Unknown action. Use 'get' or 'set'.[/]")
        raise typer.Exit(1)

    store.close()


@app.command()
def version() -> None:
    """Print version."""
    console.print(f"journey-autogen {journey_autogen.__version__}")


if __name__ == "__main__":
    app()
