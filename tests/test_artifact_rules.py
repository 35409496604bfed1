import pytest

from artifact_rules import (
    DEFAULT_RULES,
    ArtifactRule,
    Matcher,
    ProjectType,
    RuleFileError,
    load_rules,
)


def listing(*names):
    return frozenset(names)


def test_target_with_cargo_toml_is_rust():
    matcher = Matcher()
    assert matcher.classify("target", listing("Cargo.toml", "src")) is ProjectType.RUST


def test_target_without_confirming_sibling_is_unclassified():
    matcher = Matcher()
    assert matcher.classify("target", listing("README.md", "src")) is None


def test_markers_without_siblings_always_match():
    matcher = Matcher()
    assert matcher.classify("node_modules", listing()) is ProjectType.NODE
    assert matcher.classify("__pycache__", listing()) is ProjectType.PYTHON
    assert matcher.classify(".venv", listing()) is ProjectType.PYTHON
    assert matcher.classify("venv", listing()) is ProjectType.PYTHON
    assert matcher.classify(".next", listing()) is ProjectType.NEXTJS
    assert matcher.classify(".nuxt", listing()) is ProjectType.NUXTJS


def test_shared_build_marker_is_disambiguated_by_sibling():
    matcher = Matcher()
    assert matcher.classify("build", listing("pom.xml")) is ProjectType.MAVEN
    assert matcher.classify("build", listing("build.gradle")) is ProjectType.GRADLE
    assert matcher.classify("build", listing("build.gradle.kts")) is ProjectType.GRADLE
    assert matcher.classify(".gradle", listing("build.gradle.kts")) is ProjectType.GRADLE
    assert matcher.classify("build", listing("setup.py")) is None


def test_dotnet_siblings_are_glob_patterns():
    matcher = Matcher()
    assert matcher.classify("bin", listing("App.csproj")) is ProjectType.DOTNET
    assert matcher.classify("obj", listing("Solution.sln")) is ProjectType.DOTNET
    assert matcher.classify("obj", listing("Lib.fsproj")) is ProjectType.DOTNET
    assert matcher.classify("bin", listing("csproj.txt")) is None


def test_table_order_decides_between_confirmed_rules():
    matcher = Matcher()
    both = listing("Cargo.toml", "pom.xml")
    assert matcher.classify("target", both) is ProjectType.RUST
    assert matcher.classify("build", listing("pom.xml", "build.gradle")) is ProjectType.MAVEN


def test_disabled_types_never_participate():
    matcher = Matcher(enabled={ProjectType.MAVEN})
    assert matcher.classify("target", listing("Cargo.toml", "pom.xml")) is ProjectType.MAVEN
    assert matcher.classify("target", listing("Cargo.toml")) is None
    assert matcher.classify("node_modules", listing()) is None


def test_match_returns_the_rule():
    rule = Matcher().match("node_modules", listing())
    assert rule.marker == "node_modules"
    assert rule.description


def test_names_are_case_sensitive():
    matcher = Matcher()
    assert matcher.classify("Node_Modules", listing()) is None
    assert matcher.classify("target", listing("cargo.toml")) is None


def test_project_type_from_name():
    assert ProjectType.from_name(" Rust ") is ProjectType.RUST
    assert ProjectType.from_name("dotnet") is ProjectType.DOTNET
    with pytest.raises(ValueError, match="Unknown project type"):
        ProjectType.from_name("cobol")


def test_every_project_type_has_a_label_and_a_rule():
    covered = {rule.project_type for rule in DEFAULT_RULES}
    assert covered == set(ProjectType)
    assert ProjectType.DOTNET.label == ".NET"
    assert ProjectType.MAVEN.label == "Java (Maven)"


def test_load_rules(tmp_path):
    rules_file = tmp_path / "rules.toml"
    rules_file.write_text(
        """
[[rules]]
marker = "dist"
type = "node"
siblings = ["package.json"]
description = "Bundler output"

[[rules]]
marker = ".eggs"
type = "python"
"""
    )

    rules = load_rules(rules_file)

    assert rules == [
        ArtifactRule("dist", ProjectType.NODE, ("package.json",), "Bundler output"),
        ArtifactRule(".eggs", ProjectType.PYTHON, (), ""),
    ]
    matcher = Matcher([*DEFAULT_RULES, *rules])
    assert matcher.classify("dist", listing("package.json")) is ProjectType.NODE
    assert matcher.classify("dist", listing()) is None


@pytest.mark.parametrize(
    "content, message",
    [
        ('[[rules]]\nmarker = "dist"\ntype = "cobol"\n', "Unknown project type"),
        ('[[rules]]\ntype = "node"\n', "missing 'marker'"),
        ('[[rules]]\nmarker = "a/b"\ntype = "node"\n', "invalid marker"),
        ('[[rules]]\nmarker = "dist"\ntype = "node"\nsiblings = [1]\n', "list of strings"),
        ("[[rules]\n", "rules.toml"),
    ],
)
def test_load_rules_rejects_bad_files(tmp_path, content, message):
    rules_file = tmp_path / "rules.toml"
    rules_file.write_text(content)

    with pytest.raises(RuleFileError, match=message):
        load_rules(rules_file)


def test_load_rules_missing_file(tmp_path):
    with pytest.raises(RuleFileError):
        load_rules(tmp_path / "absent.toml")
