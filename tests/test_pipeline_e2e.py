from __future__ import annotations

import pytest

from core.config.loader import load_preset
from core.config.models import TemplateDefinition
from core.extraction.models import Entry, MergeConfig
from core.orchestrator.pipeline import (
    run_import,
    run_render,
    run_render_batch,
    with_stored_variants,
)
from core.patterns.models import DetectionRule, FieldDefinition, ParserConfig, Pattern, Variant
from core.templating.conditions import RenderConfig

SCENARIO_TEXT = (
    "[b]Foo [Win64] [Branch: stable] (Clean Steam Files)[/b] ... "
    "Version:[/b] [i]2024-01-01 [Build 123][/i]"
)

RAW_DEPOTS = """Depots & Manifests
[url=][color=#00aa00][b]Foo & Bar: Remastered [Linux64] [Branch: public] (Clean Steam Files)[/b][/color][/url]
[size=85][color=white][b] [Linux64] [public] Version:[/b] [i]2024-01-02 [Build 124][/i][/color][/size]
[url=][color=#00aa00][b]Foo & Bar: Remastered [Win64] [Branch: public] (Clean Steam Files)[/b][/color][/url]
[size=85][color=white][b] [Win64] [public] Version:[/b] [i]2024-01-01 - 12:00:00 UTC [Build 123][/i][/color][/size]
"""


def _scenario_variant(variant_id: str = "raw") -> Variant:
    return Variant(
        id=variant_id,
        detection_rules=[DetectionRule(type="contains", value="Clean Steam Files")],
        fields=[
            FieldDefinition(id="gameName", is_primary_key=True, pattern=Pattern(regex=r"\[b\](.+?) \[")),
            FieldDefinition(
                id="platform", scope="sub_record", pattern=Pattern(regex=r"\[(Win\d+|Linux\d+|Mac)\]")
            ),
            FieldDefinition(id="branch", scope="sub_record", pattern=Pattern(before="[Branch: ", after="]")),
            FieldDefinition(id="buildId", scope="sub_record", pattern=Pattern(before="[Build ", after="]")),
        ],
    )


def _scenario_definition() -> TemplateDefinition:
    return TemplateDefinition(
        id="steam",
        source="{gameName}\n<LOOPOPEN:files>[{file.platform}] [Build {file.buildId}]<LOOPCLOSE:files>\n",
        parser=ParserConfig(variants=[_scenario_variant()]),
        merge=MergeConfig(sub_record_key=("platform", "branch")),
        render=RenderConfig(sub_records_key="files"),
    )


def test_import_then_reimport_updates_sub_record_in_place() -> None:
    definition = _scenario_definition()

    first = run_import(SCENARIO_TEXT, definition)

    assert first.variant_id == "raw"
    assert first.created_keys == ["Foo"]
    assert first.updated_keys == []
    assert first.entries["Foo"].sub_records == [
        {"platform": "Win64", "branch": "stable", "buildId": "123"}
    ]

    second = run_import(SCENARIO_TEXT, definition, first.entries)

    assert second.created_keys == []
    assert second.updated_keys == ["Foo"]
    assert second.entries == first.entries

    third = run_import(SCENARIO_TEXT.replace("123", "124"), definition, second.entries)

    assert third.entries["Foo"].sub_records == [
        {"platform": "Win64", "branch": "stable", "buildId": "124"}
    ]


def test_import_does_not_mutate_existing_mapping() -> None:
    definition = _scenario_definition()
    existing = {"Bar": Entry(key="Bar", fields={"gameName": "Bar"})}

    result = run_import(SCENARIO_TEXT, definition, existing)

    assert set(result.entries) == {"Bar", "Foo"}
    assert set(existing) == {"Bar"}


def test_import_with_unknown_variant_raises_key_error() -> None:
    with pytest.raises(KeyError):
        run_import(SCENARIO_TEXT, _scenario_definition(), variant_id="nope")


def test_render_batch_equals_joined_single_renders() -> None:
    definition = _scenario_definition()
    entries = [
        Entry(key="a", fields={"gameName": "A"}, sub_records=[{"platform": "Win64", "buildId": "1"}]),
        Entry(key="b", fields={"gameName": "B"}),
        Entry(
            key="c",
            fields={"gameName": "C"},
            sub_records=[{"platform": "Win64", "buildId": "2"}, {"platform": "Mac", "buildId": "3"}],
        ),
    ]

    batch = run_render_batch(definition, entries)

    assert batch == "\n".join(run_render(definition, entry) for entry in entries)
    assert batch == "A\n[Win64] [Build 1]\nB\nC\n[Win64] [Build 2]\n[Mac] [Build 3]"


def test_stored_variants_replace_definition_parser() -> None:
    definition = _scenario_definition()
    stored = [_scenario_variant("custom"), _scenario_variant("raw")]

    effective = with_stored_variants(definition, stored)

    assert [variant.id for variant in effective.parser.variants] == ["custom", "raw"]
    assert effective.parser.default_variant == "raw"
    assert with_stored_variants(definition, []) is definition

    only_custom = with_stored_variants(definition, [_scenario_variant("custom")])
    assert only_custom.parser.default_variant == "custom"


def test_steam_release_preset_imports_and_renders_bulletin() -> None:
    definition = load_preset("steam_release")

    result = run_import(RAW_DEPOTS, definition)

    assert result.variant_id == "raw_depots"
    assert result.created_keys == ["Foo and Bar Remastered"]
    entry = result.entries["Foo and Bar Remastered"]
    assert entry.fields == {"gameTitle": "Foo & Bar: Remastered"}
    assert [record["platform"] for record in entry.sub_records] == ["Win64", "Linux64"]

    win = entry.sub_records[0]
    assert win["shortDate"] == "2024-01-01"
    assert win["fullDate"] == "2024-01-01 - 12:00:00 UTC"
    assert win["patchNoteUrl"] == "https://steamdb.info/patchnotes/123/"
    assert win["includeCracked"] is True

    output = run_render(definition, entry)

    assert output.startswith("[color=#ee11d5]Clean Steam Files:[/color]")
    assert (
        "[url=][color=#00aa00][b]Foo & Bar: Remastered [Win64] [Branch: public] "
        "(Clean Steam Files)[/b][/color][/url]"
    ) in output
    assert (
        "[size=85][color=white][b] [Win64] [public] Version:[/b] "
        "[i]2024-01-01 [Build 123][/i][/color][/size]"
    ) in output
    assert "[color=#ee11d5]Cracked:[/color]" in output
    assert "(Cracked: Detanup01 Goldberg Fork)" in output
    assert (
        "[size=88][color=white][b] Version:[/b] "
        "[i]2024-01-01 - 12:00:00 UTC [Build 123][/i][/color][/size]"
    ) in output
    assert "[url=https://steamdb.info/patchnotes/124/]https://steamdb.info/patchnotes/124/[/url]" in output
    assert output.index("[Win64]") < output.index("[Linux64]")
    assert "{" not in output
    assert "\n\n\n" not in output


def test_steam_release_reimport_keeps_user_urls_and_flags_changed_builds() -> None:
    definition = load_preset("steam_release")
    key = "Foo and Bar Remastered"
    first = run_import(RAW_DEPOTS, definition)

    entry = first.entries[key]
    records = [dict(record) for record in entry.sub_records]
    records[0].update({"cleanUrl": "https://drive/win", "cleanUrlNeedsUpdate": False})
    records[1].update({"cleanUrl": "https://drive/linux", "cleanUrlNeedsUpdate": False})
    existing = {key: entry.model_copy(update={"sub_records": records})}

    second = run_import(RAW_DEPOTS.replace("Build 123", "Build 125"), definition, existing)

    assert second.updated_keys == [key]
    win, linux = second.entries[key].sub_records
    assert (win["buildId"], win["cleanUrl"], win["cleanUrlNeedsUpdate"]) == (
        "125",
        "https://drive/win",
        True,
    )
    assert win["patchNoteUrl"] == "https://steamdb.info/patchnotes/125/"
    assert (linux["buildId"], linux["cleanUrl"], linux["cleanUrlNeedsUpdate"]) == (
        "124",
        "https://drive/linux",
        False,
    )


def test_steam_release_hides_cracked_section_when_nothing_is_cracked() -> None:
    definition = load_preset("steam_release")
    entry = Entry(
        key="Foo",
        fields={"gameTitle": "Foo", "gameVersion": "1.0.2"},
        sub_records=[
            {
                "platform": "Win64",
                "branch": "public",
                "shortDate": "2024-01-01",
                "fullDate": "2024-01-01",
                "buildId": "1",
                "cleanUrl": "https://drive/win",
                "includeCracked": False,
                "patchNoteUrl": "https://steamdb.info/patchnotes/1/",
            }
        ],
    )

    output = run_render(definition, entry)

    assert output.startswith("Version: 1.0.2\n\n[color=#ee11d5]Clean Steam Files:[/color]")
    assert "Cracked:" not in output
    assert "[url=https://drive/win]" in output
