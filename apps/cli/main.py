"""Typer CLI entrypoint for postsmith."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer

from apps.cli.io import read_text_input, write_json_atomic, write_text_atomic
from core.config.loader import load_definition, load_preset
from core.config.models import TemplateDefinition
from core.extraction.entries import parse_document
from core.extraction.inference import SUPPORTED_MODES, infer_pattern
from core.extraction.models import EntryParseResult
from core.extraction.variant_selector import select_variant
from core.orchestrator.pipeline import (
    compile_definition,
    run_import,
    run_render,
    run_render_batch,
    with_stored_variants,
)
from core.patterns.models import FieldDefinition, Variant
from core.store.entry_store import EntryStore
from core.templating.parser import collect_directive_keys, collect_variables
from core.utils.errors import TemplateSyntaxError

app = typer.Typer(help="Postsmith bulletin template CLI", rich_markup_mode=None)

_EXIT_NOTHING_FOUND = 2
_EXIT_TEMPLATE_ERROR = 3


@app.callback()
def cli_callback() -> None:
    """CLI root callback to keep subcommands explicit."""


@app.command("check")
def check_command(
    definition: Annotated[Path | None, typer.Option(dir_okay=False)] = None,
    preset: Annotated[str | None, typer.Option()] = None,
) -> None:
    """Parse a definition's template and list its directive keys and variables."""

    loaded = _load_definition_or_exit(definition, preset)
    try:
        nodes = compile_definition(loaded)
    except TemplateSyntaxError as exc:
        typer.echo(f"ERROR: template syntax: {exc}")
        raise typer.Exit(code=_EXIT_TEMPLATE_ERROR) from exc

    keys = collect_directive_keys(nodes)
    typer.echo(f"INFO: conditions={','.join(keys['conditions']) or '-'}")
    typer.echo(f"INFO: loops={','.join(keys['loops']) or '-'}")
    typer.echo(f"INFO: variables={','.join(collect_variables(nodes)) or '-'}")

    unconfigured = [key for key in keys["conditions"] if key not in loaded.render.conditions]
    if unconfigured:
        typer.echo(
            "WARNING(render): conditions fall back to generic truthiness "
            f"({', '.join(unconfigured)})."
        )
    typer.echo("INFO: success")


@app.command("extract")
def extract_command(
    text: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)],
    definition: Annotated[Path | None, typer.Option(dir_okay=False)] = None,
    preset: Annotated[str | None, typer.Option()] = None,
    variant: Annotated[str | None, typer.Option()] = None,
    output_format: Annotated[str, typer.Option("--format")] = "human",
    out: Annotated[Path | None, typer.Option(help="Also write the JSON report here.")] = None,
) -> None:
    """Extract entries from raw text without touching any store."""

    normalized_format = output_format.lower().strip()
    if normalized_format not in {"human", "json"}:
        typer.echo("ERROR: --format must be one of: human, json.")
        raise typer.Exit(code=1)

    loaded = _load_definition_or_exit(definition, preset)
    raw_text = read_text_input(text)
    selected = _resolve_variant_or_exit(loaded, raw_text, variant)
    result = parse_document(raw_text, selected, loaded.merge)
    payload = _extract_payload(selected, result)

    if normalized_format == "json":
        typer.echo(json.dumps(payload, ensure_ascii=False, sort_keys=True, indent=2))
    else:
        typer.echo(f"INFO: variant={selected.id} blocks={result.block_count}")
        for outcome in result.report.outcomes:
            suffix = f" = {outcome.value}" if outcome.value is not None else ""
            typer.echo(f"  {outcome.field_id}: {outcome.status}{suffix}")
        summary = result.report.summary()
        typer.echo(
            f"INFO: entries={len(result.entries)} found={summary['found']} "
            f"not_found={summary['not_found']} pattern_error={summary['pattern_error']}"
        )

    if result.skipped_blocks:
        typer.echo(f"WARNING(extract): skipped blocks without a key (count={result.skipped_blocks}).")
    if result.report.error_count:
        typer.echo(f"WARNING(pattern): invalid patterns (count={result.report.error_count}).")

    if out is not None:
        write_json_atomic(out, payload)
        typer.echo(f"INFO: wrote report to {out}")

    if result.report.found_count == 0:
        typer.echo("ERROR: nothing extracted")
        raise typer.Exit(code=_EXIT_NOTHING_FOUND)


@app.command("infer")
def infer_command(
    text: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)],
    start: Annotated[int, typer.Option(...)],
    end: Annotated[int, typer.Option(...)],
    mode: Annotated[str, typer.Option()] = "auto",
    store: Annotated[Path | None, typer.Option(file_okay=False)] = None,
    template_id: Annotated[str | None, typer.Option()] = None,
    variant: Annotated[str | None, typer.Option()] = None,
    field_id: Annotated[str | None, typer.Option()] = None,
    primary_key: Annotated[
        bool, typer.Option("--primary-key", help="Mark the saved field as the variant's key.")
    ] = False,
) -> None:
    """Infer before/after anchors for a selected span; optionally save it as a field."""

    normalized_mode = mode.lower().strip()
    if normalized_mode not in SUPPORTED_MODES:
        typer.echo(f"ERROR: --mode must be one of: {', '.join(SUPPORTED_MODES)}.")
        raise typer.Exit(code=1)

    raw_text = read_text_input(text)
    try:
        inferred = infer_pattern(raw_text, start, end, normalized_mode)
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=1) from exc

    typer.echo(json.dumps(inferred.model_dump(mode="json"), ensure_ascii=False, sort_keys=True))

    if store is None:
        return
    if template_id is None or variant is None:
        typer.echo("ERROR: --store requires --template-id and --variant.")
        raise typer.Exit(code=1)

    entry_store = EntryStore(store)
    try:
        variants = entry_store.load_variants(template_id)
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=1) from exc
    target = next((item for item in variants if item.id == variant), None)
    if target is None:
        target = Variant(id=variant, name=variant, sample_text=raw_text)
        variants.append(target)

    new_field = FieldDefinition(
        id=field_id or inferred.suggested_id,
        label=inferred.suggested_label,
        pattern=inferred.to_pattern(),
    )
    target.fields = [item for item in target.fields if item.id != new_field.id] + [new_field]
    if primary_key:
        target.set_primary_key(new_field.id)

    entry_store.save_variants(template_id, variants)
    typer.echo(f"INFO: saved field {new_field.id} to variant {variant}")


@app.command("import")
def import_command(
    text: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)],
    store: Annotated[Path, typer.Option(..., file_okay=False)],
    definition: Annotated[Path | None, typer.Option(dir_okay=False)] = None,
    preset: Annotated[str | None, typer.Option()] = None,
    variant: Annotated[str | None, typer.Option()] = None,
) -> None:
    """Parse raw text and merge the entries into the local store."""

    loaded = _load_definition_or_exit(definition, preset)
    entry_store = EntryStore(store)
    try:
        effective = with_stored_variants(loaded, entry_store.load_variants(loaded.id))
        existing = entry_store.load_entry_map(loaded.id)
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=1) from exc

    try:
        result = run_import(
            read_text_input(text),
            effective,
            existing=existing,
            variant_id=variant,
        )
    except KeyError as exc:
        typer.echo(f"ERROR: unknown variant: {variant}")
        raise typer.Exit(code=1) from exc

    for key in result.changed_keys:
        entry_store.save_entry(loaded.id, result.entries[key])

    typer.echo(f"INFO: variant={result.variant_id}")
    if result.skipped_blocks:
        typer.echo(f"WARNING(import): skipped blocks without a key (count={result.skipped_blocks}).")
    if result.report.error_count:
        typer.echo(f"WARNING(pattern): invalid patterns (count={result.report.error_count}).")

    if not result.changed_keys:
        typer.echo("ERROR: no entries parsed")
        raise typer.Exit(code=_EXIT_NOTHING_FOUND)

    typer.echo(f"INFO: created={','.join(result.created_keys) or '-'}")
    typer.echo(f"INFO: updated={','.join(result.updated_keys) or '-'}")
    typer.echo("INFO: success")


@app.command("render")
def render_command(
    store: Annotated[Path, typer.Option(..., file_okay=False)],
    out: Annotated[Path, typer.Option(...)],
    definition: Annotated[Path | None, typer.Option(dir_okay=False)] = None,
    preset: Annotated[str | None, typer.Option()] = None,
    key: Annotated[str | None, typer.Option()] = None,
    force: Annotated[
        bool, typer.Option("--force", help="Overwrite the output when it already exists.")
    ] = False,
) -> None:
    """Render one stored entry (or all of them) to a text file."""

    loaded = _load_definition_or_exit(definition, preset)

    if out.exists() and not force:
        typer.echo(f"ERROR: output already exists: {out} (use --force to overwrite)")
        raise typer.Exit(code=1)
    if out.exists():
        typer.echo(f"INFO: overwriting existing output: {out.name}")

    try:
        nodes = compile_definition(loaded)
    except TemplateSyntaxError as exc:
        typer.echo(f"ERROR: template syntax: {exc}")
        raise typer.Exit(code=_EXIT_TEMPLATE_ERROR) from exc

    entry_store = EntryStore(store)
    try:
        stored = entry_store.load_entries(loaded.id)
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=1) from exc

    if key is not None:
        entry = next((item for item in stored if item.key == key), None)
        if entry is None:
            typer.echo(f"ERROR: entry not found: {key}")
            raise typer.Exit(code=_EXIT_NOTHING_FOUND)
        rendered = run_render(loaded, entry, nodes)
        count = 1
    else:
        if not stored:
            typer.echo("ERROR: store has no entries")
            raise typer.Exit(code=_EXIT_NOTHING_FOUND)
        rendered = run_render_batch(loaded, stored, nodes)
        count = len(stored)

    write_text_atomic(out, rendered)
    typer.echo(f"INFO: rendered {count} entries to {out}")
    typer.echo("INFO: success")


@app.command("delete")
def delete_command(
    store: Annotated[Path, typer.Option(..., file_okay=False)],
    template_id: Annotated[str, typer.Option(...)],
    key: Annotated[str, typer.Option(...)],
) -> None:
    """Remove one entry from the store."""

    try:
        deleted = EntryStore(store).delete_entry(template_id, key)
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=1) from exc

    if not deleted:
        typer.echo(f"ERROR: entry not found: {key}")
        raise typer.Exit(code=_EXIT_NOTHING_FOUND)
    typer.echo(f"INFO: deleted {key}")


def _load_definition_or_exit(definition: Path | None, preset: str | None) -> TemplateDefinition:
    if (definition is None) == (preset is None):
        typer.echo("ERROR: exactly one of --definition or --preset is required.")
        raise typer.Exit(code=1)

    try:
        if definition is not None:
            return load_definition(definition)
        return load_preset(preset or "")
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=1) from exc


def _resolve_variant_or_exit(loaded: TemplateDefinition, text: str, variant_id: str | None) -> Variant:
    if variant_id is None:
        return select_variant(text, loaded.parser.variants, loaded.parser.default_variant)
    try:
        return loaded.parser.get_variant(variant_id)
    except KeyError as exc:
        typer.echo(f"ERROR: unknown variant: {variant_id}")
        raise typer.Exit(code=1) from exc


def _extract_payload(variant: Variant, result: EntryParseResult) -> dict[str, object]:
    return {
        "variant_id": variant.id,
        "block_count": result.block_count,
        "skipped_blocks": result.skipped_blocks,
        "summary": result.report.summary(),
        "outcomes": [outcome.model_dump(mode="json") for outcome in result.report.outcomes],
        "entries": [entry.model_dump(mode="json") for entry in result.entries],
    }


def main() -> None:
    """Console script entrypoint."""

    app()


if __name__ == "__main__":
    main()
