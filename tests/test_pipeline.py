"""
End-to-end tests: analyze(), report rendering and the CLI, all against the
in-memory client.
"""

import json
from datetime import datetime, timezone

import pytest

import wiki_reliability
from wiki_reliability import (
    Analysis,
    Choice,
    DisambiguationError,
    InvalidWikiUrl,
    ResolutionFailure,
    SearchMode,
    TitleNotFound,
    Verdict,
    analysis_to_dict,
    analyze,
    main,
    render_report_md,
)

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)

HELSINKI_HTML = "".join(
    f'<p>Paragraph {i} about the city.<sup id="cite_ref-{i}" class="reference">[{i}]</sup></p>'
    for i in range(20)
) + "<h2>History</h2><h2>Culture</h2><h2>Transport</h2>"

HELSINKI_REVISIONS = [
    {"revid": 3, "timestamp": "2024-05-30T10:00:00Z", "user": "Alice", "tags": []},
    {"revid": 2, "timestamp": "2024-05-12T10:00:00Z", "user": "Bob", "tags": []},
    {"revid": 1, "timestamp": "2024-04-02T10:00:00Z", "user": "Carol", "tags": []},
]


@pytest.fixture(autouse=True)
def fixed_clock(monkeypatch):
    monkeypatch.setattr(wiki_reliability, "utc_now", lambda: NOW)


@pytest.fixture
def client(make_client):
    return make_client(
        pages={
            "Helsinki": {},
            "Helsinki Cathedral": {},
            "Mercury": {"disambiguation": True},
            "Mercury (planet)": {},
            "Turku": {},
        },
        redirects={"Helsingfors": "Helsinki"},
        searches={
            (SearchMode.PREFIX, "Helsingfors"): [],
            (SearchMode.FULL_TEXT, "Helsingfors"): ["Helsinki", "Helsinki Cathedral"],
            (SearchMode.PREFIX, "Mercury ("): ["Mercury (planet)"],
            (SearchMode.FULL_TEXT, "Helsinky"): ["Helsinki"],
        },
        articles={
            "Helsinki": {"html": HELSINKI_HTML, "templates": ["Template:Good article"]},
            "Turku": {"html": "<p>Short.</p>", "wikitext": "Old city.{{Citation needed}}"},
        },
        revisions={"Helsinki": HELSINKI_REVISIONS},
    )


# =============================================================================
# ANALYZE
# =============================================================================

def test_analyze_resolves_then_scores(client):
    a = analyze(title="Helsingfors", lang="fi", client=client)

    assert isinstance(a, Analysis)
    assert a.title == "Helsinki"
    assert a.lang == "fi"
    assert a.resolved_from == "Helsingfors"
    assert a.suggestions == ["Helsinki", "Helsinki Cathedral"]
    assert a.signals.reference_count == 20
    assert a.signals.unique_editors == 3
    assert a.signals.is_good_article is True
    assert a.result.rejected is False
    assert 0 <= a.result.score <= 100
    assert [e.label for e in a.evidence] == ["Article", "History", "Talk"]
    assert ("parse_page", "Helsinki", "fi", "text|wikitext|templates") in client.calls


def test_analyze_exact_title_has_no_resolved_from(client):
    a = analyze(title="Helsinki", lang="fi", client=client)
    assert a.resolved_from is None


def test_analyze_prefer_choice_skips_collection(client):
    choice = analyze(title="Helsingfors", lang="fi", prefer_choice=True, client=client)

    assert isinstance(choice, Choice)
    assert choice.suggestions == ["Helsinki", "Helsinki Cathedral"]
    assert choice.resolved_from == "Helsingfors"
    assert client.called("parse_page") == []
    assert client.called("revisions") == []


def test_analyze_missing_title(client):
    with pytest.raises(TitleNotFound) as exc:
        analyze(title="Helsinky", lang="fi", client=client)

    assert exc.value.reason is ResolutionFailure.MISSING
    assert exc.value.suggestions == ["Helsinki"]
    assert client.called("parse_page") == []


def test_analyze_disambiguation(client):
    with pytest.raises(DisambiguationError) as exc:
        analyze(title="Mercury", lang="en", client=client)

    assert exc.value.reason is ResolutionFailure.DISAMBIGUATION
    assert exc.value.suggestions == ["Mercury (planet)"]


def test_analyze_url_skips_resolution(client):
    a = analyze(url="https://en.wikipedia.org/wiki/Helsinki", lang="fi", client=client)

    assert a.title == "Helsinki"
    assert a.lang == "en"
    assert a.suggestions == []
    assert client.called("query_titles") == []
    assert client.called("search") == []


def test_analyze_invalid_url(client):
    with pytest.raises(InvalidWikiUrl):
        analyze(url="https://example.com/wiki/Helsinki", client=client)


def test_analyze_needs_title_or_url(client):
    with pytest.raises(ValueError):
        analyze(client=client)


def test_analyze_strict_profile_rejects(client):
    a = analyze(title="Turku", lang="en", policy=wiki_reliability.PROFILES["strict"], client=client)

    assert a.result.rejected is True
    assert a.result.score == 0.0
    assert a.result.verdict is Verdict.WEAK


# =============================================================================
# REPORTS
# =============================================================================

def test_analysis_to_dict_is_json_serializable(client):
    a = analyze(title="Helsingfors", lang="fi", client=client)
    d = json.loads(json.dumps(analysis_to_dict(a)))

    assert d["title"] == "Helsinki"
    assert d["resolved_from"] == "Helsingfors"
    assert d["verdict"] == a.result.verdict.value
    assert d["signals"]["reference_count"] == 20
    assert d["policy"]["weights"]["references"] == 30
    assert set(d["highlights"]) == {"positives", "negatives"}
    assert len(d["evidence"]) == 3


def test_markdown_report(client):
    a = analyze(title="Helsingfors", lang="fi", client=client)
    md = render_report_md(a)

    assert md.startswith("# Wiki Reliability Report")
    assert "## Helsinki (fi)" in md
    assert f"**Verdict:** {a.result.verdict.value}" in md
    assert "**Resolved from:** Helsingfors" in md
    assert "### Score Breakdown" in md
    assert "(https://fi.wikipedia.org/wiki/Helsinki)" in md
    assert "### Other Candidates\n- Helsinki Cathedral" in md


def test_markdown_report_for_rejected_article(client):
    a = analyze(title="Turku", lang="en", policy=wiki_reliability.PROFILES["strict"], client=client)
    md = render_report_md(a)

    assert "**Rejected:** citation needed" in md
    assert "### Highlights" not in md
    assert "### Score Breakdown" not in md


# =============================================================================
# CLI
# =============================================================================

@pytest.fixture
def cli_client(monkeypatch, client):
    monkeypatch.setattr(wiki_reliability, "WikiClient", lambda **kwargs: client)
    return client


def test_cli_scores_and_writes_reports(cli_client, tmp_path, capsys):
    out_json = tmp_path / "report.json"
    out_md = tmp_path / "report.md"
    code = main(["Helsingfors", "--lang", "fi", "--out-json", str(out_json), "--out-md", str(out_md)])

    assert code == 0
    out = capsys.readouterr().out
    assert "Helsinki (fi)" in out
    assert "Verdict:" in out
    assert json.loads(out_json.read_text(encoding="utf-8"))["title"] == "Helsinki"
    assert out_md.read_text(encoding="utf-8").startswith("# Wiki Reliability Report")


def test_cli_strict_rejection(cli_client, capsys):
    assert main(["Turku", "--lang", "en", "--profile", "strict"]) == 0
    out = capsys.readouterr().out
    assert "Verdict: Weak" in out
    assert "Rejected: citation needed" in out


def test_cli_choose(cli_client, capsys):
    assert main(["Helsingfors", "--lang", "fi", "--choose"]) == 0
    out = capsys.readouterr().out
    assert "Candidates:" in out
    assert "  - Helsinki Cathedral" in out


def test_cli_not_found_lists_suggestions(cli_client, capsys):
    assert main(["Helsinky", "--lang", "fi"]) == 1
    out = capsys.readouterr().out
    assert "Article not found: Helsinky" in out
    assert "Did you mean:" in out
    assert "  - Helsinki" in out


def test_cli_usage_errors(cli_client, tmp_path, capsys):
    assert main([]) == 2
    assert main(["--url", "https://example.com/wiki/X"]) == 2

    bad_policy = tmp_path / "policy.json"
    bad_policy.write_text(json.dumps({"weights": {"bogus": 1}}), encoding="utf-8")
    assert main(["Helsinki", "--policy-file", str(bad_policy)]) == 2
    assert main(["Helsinki", "--policy-file", str(tmp_path / "missing.json")]) == 2


def test_cli_upstream_failure(cli_client, capsys):
    # "Mercury (planet)" exists but has no article body to fetch
    assert main(["--url", "https://en.wikipedia.org/wiki/Mercury_(planet)"]) == 3
    assert "Upstream request failed" in capsys.readouterr().out


def test_cli_rejects_mistyped_policy_values(cli_client, tmp_path, capsys):
    policy_file = tmp_path / "policy.json"

    policy_file.write_text(json.dumps({"weights": {"references": None}}), encoding="utf-8")
    assert main(["Helsinki", "--policy-file", str(policy_file)]) == 2

    policy_file.write_text(json.dumps({"reject_if": {"has_problem_templates": "false"}}), encoding="utf-8")
    assert main(["Helsinki", "--policy-file", str(policy_file)]) == 2

    assert "Invalid policy" in capsys.readouterr().out
    assert cli_client.calls == []
