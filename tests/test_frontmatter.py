"""Tests for front matter parsing (strict schema and lenient fallback)."""

from cfgsync.models import ResourceKind
from cfgsync.parsing.frontmatter import (
    CommandFrontMatter,
    ParsedMetadata,
    lenient_parse,
    parse_front_matter,
    split_front_matter,
)


# --- Splitting Tests ---


def test_split_front_matter():
    block, body = split_front_matter("---\nname: x\n---\nBody text\n")
    assert block.strip() == "name: x"
    assert body.strip() == "Body text"


def test_split_front_matter_absent():
    block, body = split_front_matter("Just a document\n")
    assert block is None
    assert body == "Just a document\n"


def test_split_front_matter_must_lead_the_document():
    block, _ = split_front_matter("Intro\n---\nname: x\n---\n")
    assert block is None


def test_split_front_matter_strips_bom():
    block, _ = split_front_matter("\ufeff---\nname: x\n---\n")
    assert block.strip() == "name: x"


# --- Strict Parse Tests ---


def test_parse_command_front_matter():
    text = (
        "---\n"
        "name: deploy\n"
        "description: Ship the current branch\n"
        "category: workflow\n"
        "allowedTools: Read, Write\n"
        "mcp_servers: [github]\n"
        "---\n"
        "Deploy it.\n"
    )
    parsed = parse_front_matter(text, ResourceKind.COMMAND)
    assert parsed.strict
    assert parsed.name == "deploy"
    assert parsed.description == "Ship the current branch"
    assert parsed.fields["category"] == "workflow"
    assert parsed.fields["allowed_tools"] == ["Read", "Write"]
    assert parsed.fields["mcp_servers"] == ["github"]
    assert parsed.fields["personas"] == []


def test_parse_agent_front_matter():
    text = "---\nname: planner\nmodel: opus\ntools:\n  - Read\n  - Grep\n---\n"
    parsed = parse_front_matter(text, ResourceKind.AGENT)
    assert parsed.strict
    assert parsed.fields == {"model": "opus", "tools": ["Read", "Grep"]}


def test_parse_skill_ignores_unknown_keys():
    text = "---\nname: pdf\ndescription: Work with PDFs\nlicense: MIT\n---\n"
    parsed = parse_front_matter(text, ResourceKind.SKILL)
    assert parsed.name == "pdf"
    assert parsed.fields == {}


def test_parse_without_front_matter():
    parsed = parse_front_matter("# Heading\n", ResourceKind.COMMAND)
    assert parsed.name is None
    assert parsed.description is None
    assert parsed.fields == {}


# --- Lenient Parse Tests ---


def test_unquoted_colon_falls_back_to_lenient():
    text = "---\nname: fix\ndescription: Fix: the thing: now\ncategory: dev\n---\n"
    parsed = parse_front_matter(text, ResourceKind.COMMAND)
    assert not parsed.strict
    assert parsed.name == "fix"
    assert parsed.description == "Fix: the thing: now"
    assert parsed.fields["category"] == "dev"


def test_lenient_multiline_description():
    text = (
        "---\n"
        "name: planner\n"
        "description: first line\n"
        "  second line\n"
        "tools: [Read, Grep\n"
        "---\n"
    )
    parsed = parse_front_matter(text, ResourceKind.AGENT)
    assert not parsed.strict
    assert parsed.description == "first line second line"
    assert parsed.fields["tools"] == ["Read", "Grep"]
    assert parsed.fields["model"] is None


def test_lenient_block_list_and_quotes():
    block = 'name: lint: strict\npersonas:\n  - reviewer\n  - "qa"\n'
    parsed = lenient_parse(block, CommandFrontMatter)
    assert parsed.name == "lint: strict"
    assert parsed.fields["personas"] == ["reviewer", "qa"]
    assert parsed.fields["allowed_tools"] == []


def test_lenient_accepts_alias_keys():
    text = "---\nname: a: b\nallowedTools: Bash, Edit\n---\n"
    parsed = parse_front_matter(text, ResourceKind.COMMAND)
    assert parsed.fields["allowed_tools"] == ["Bash", "Edit"]


def test_non_mapping_front_matter_never_raises():
    parsed = parse_front_matter("---\n- a\n- b\n---\n", ResourceKind.COMMAND)
    assert not parsed.strict
    assert parsed.name is None


def test_first_occurrence_of_a_key_wins():
    parsed = lenient_parse("name: one: x\nname: two\n")
    assert parsed.name == "one: x"


# --- Merge Tests ---


def test_merged_over_keeps_fallback_for_empty_values():
    parsed = ParsedMetadata(fields={"category": "", "model": "opus", "tools": []})
    merged = parsed.merged_over({"category": "old", "tools": ["Read"], "x": 1})
    assert merged == {"category": "old", "tools": ["Read"], "model": "opus", "x": 1}
