import io
import json
import zipfile

import pytest

from microed.plugin_installer import (
    PluginCatalog,
    PluginDependency,
    PluginManager,
    PluginPackage,
    ResolveError,
    fetch_channel,
    fetch_repository,
    join_dependencies,
    parse_packages,
    static_version,
)
from microed.versions import parse_range, parse_version

DEPENDENCY_JS = """
[{
  "Name": "Foo",
  "Versions": [{ "Version": "1.0.0" }, { "Version": "1.5.0" },{ "Version": "2.0.0" }]
}, {
  "Name": "Bar",
  "Versions": [{ "Version": "1.0.0", "Require": {"Foo": ">1.0.0 <2.0.0"} }]
}, {
  "Name": "Unresolvable",
  "Versions": [{ "Version": "1.0.0", "Require": {"Foo": "<=1.0.0", "Bar": ">0.0.0"} }]
	}]
"""


def _find(selected, name):
    return next((v for v in selected if v.package.name == name), None)


def make_zip(path, entries):
    with zipfile.ZipFile(path, "w") as archive:
        for name, content in entries.items():
            archive.writestr(name, content)
    return path.as_uri()


def write_repo(path, packages):
    path.write_text(json.dumps(packages), encoding="utf-8")
    return path.as_uri()


def test_dependency_resolving():
    catalog = PluginCatalog(parse_packages(DEPENDENCY_JS))
    selected = catalog.resolve([], [PluginDependency("Bar", parse_range(">=1.0.0"))])
    assert _find(selected, "Foo").version == parse_version("1.5.0")
    assert _find(selected, "Bar").version == parse_version("1.0.0")


def test_unresolvable_dependency():
    catalog = PluginCatalog(parse_packages(DEPENDENCY_JS))
    with pytest.raises(ResolveError):
        catalog.resolve([], [PluginDependency("Unresolvable", parse_range(">0.0.0"))])


def test_resolve_unknown_package_raises():
    catalog = PluginCatalog(parse_packages(DEPENDENCY_JS))
    with pytest.raises(ResolveError, match='"Nope"'):
        catalog.resolve([], [PluginDependency("Nope", parse_range(">=0.0.0"))])


def test_resolve_keeps_selected_version():
    catalog = PluginCatalog(parse_packages(DEPENDENCY_JS))
    pinned = static_version("Foo", "1.0.0")
    with pytest.raises(ResolveError):
        catalog.resolve([pinned], [PluginDependency("Bar", parse_range(">=1.0.0"))])


def test_parse_packages_links_versions_to_package():
    packages = parse_packages(DEPENDENCY_JS)
    assert [p.name for p in packages] == ["Foo", "Bar", "Unresolvable"]
    assert all(v.package is packages[0] for v in packages[0].versions)


def test_core_requirement_dropped_when_core_unknown():
    text = '[{"Name": "a", "Versions": [{"Version": "1.0.0", "Require": {"micro": ">=2.0.0"}}]}]'
    assert [d.name for d in parse_packages(text, True)[0].versions[0].require] == ["micro"]
    assert parse_packages(text, False)[0].versions[0].require == []


def test_parse_packages_rejects_bad_version():
    with pytest.raises(ValueError):
        parse_packages('[{"Name": "a", "Versions": [{"Version": "1.0"}]}]')


def test_join_dependencies_intersects_ranges():
    joined = join_dependencies(
        [PluginDependency("a", parse_range(">=1.0.0"))],
        [PluginDependency("a", parse_range("<2.0.0")), PluginDependency("b", parse_range("1.0.0"))],
    )
    assert [d.name for d in joined] == ["a", "b"]
    assert joined[0].range(parse_version("1.5.0"))
    assert not joined[0].range(parse_version("2.0.0"))
    assert not joined[0].range(parse_version("0.5.0"))


@pytest.mark.parametrize(
    "text,expected",
    [("", "0.0.0-unknown"), ("1.2", "1.2.0"), ("abc", "0.0.0-abc"), ("v2.0.0", "2.0.0")],
)
def test_static_version(text, expected):
    version = static_version("p", text)
    assert str(version.version) == expected
    assert version.package.versions == [version]


def test_package_match_and_str():
    package = PluginPackage(name="Linter", description="Runs checks", author="someone", tags=["lint"])
    assert package.match("LINT")
    assert package.match("checks")
    assert not package.match("format")
    assert str(package) == "Plugin: Linter\nAuthor: someone\n\nRuns checks"


def test_download_and_install_strips_common_prefix(tmp_path):
    url = make_zip(tmp_path / "foo.zip", {"foo/foo.lua": "print(1)", "foo/help/foo.md": "# help"})
    package = PluginPackage(name="foo")
    version = static_version("foo", "1.0.0")
    version.package = package
    version.url = url
    out = io.StringIO()
    version.download_and_install(tmp_path / "plug", out)
    assert (tmp_path / "plug" / "foo" / "foo.lua").read_text() == "print(1)"
    assert (tmp_path / "plug" / "foo" / "help" / "foo.md").read_text() == "# help"
    assert out.getvalue().startswith('Downloading "foo" (1.0.0)')


def test_download_and_install_rejects_non_zip(tmp_path):
    bad = tmp_path / "bad.zip"
    bad.write_text("not a zip")
    version = static_version("foo", "1.0.0")
    version.url = bad.as_uri()
    with pytest.raises(zipfile.BadZipFile):
        version.download_and_install(tmp_path / "plug", io.StringIO())


def test_fetch_repository_takes_first_package(tmp_path):
    url = write_repo(tmp_path / "repo.json", [{"Name": "one"}, {"Name": "two"}])
    assert [p.name for p in fetch_repository(url, io.StringIO())] == ["one"]


def test_fetch_repository_reports_failure(tmp_path):
    out = io.StringIO()
    assert fetch_repository((tmp_path / "missing.json").as_uri(), out) == []
    assert out.getvalue().startswith("Failed to query plugin repository:")


def test_fetch_repository_reports_bad_data(tmp_path):
    path = tmp_path / "repo.json"
    path.write_text("{not json")
    out = io.StringIO()
    assert fetch_repository(path.as_uri(), out) == []
    assert out.getvalue().startswith("Failed to decode repository data:")


def test_fetch_channel_collects_repositories(tmp_path):
    first = write_repo(tmp_path / "a.json", [{"Name": "a"}])
    second = write_repo(tmp_path / "b.json", [{"Name": "b"}])
    channel = tmp_path / "channel.json"
    channel.write_text(json.dumps([first, second]))
    names = sorted(p.name for p in fetch_channel(channel.as_uri(), io.StringIO()))
    assert names == ["a", "b"]


@pytest.fixture
def foo_repo(tmp_path):
    zip_url = make_zip(tmp_path / "foo.zip", {"foo/foo.lua": "x", "foo/README.md": "r"})
    return write_repo(
        tmp_path / "foo.json",
        [{"Name": "foo", "Description": "Foo plugin", "Versions": [{"Version": "1.0.0", "Url": zip_url}]}],
    )


def test_manager_install_command(tmp_path, foo_repo):
    out = io.StringIO()
    manager = PluginManager(tmp_path / "cfg", "2.0.0", {}, [], [foo_repo], out)
    manager.command("install", ["foo"])
    assert (tmp_path / "cfg" / "plug" / "foo" / "foo.lua").read_text() == "x"
    assert "One or more plugins installed." in out.getvalue()
    assert manager.installed == {"foo": "1.0.0"}

    out.truncate(0)
    out.seek(0)
    manager.command("install", ["foo"])
    assert "foo  is already installed" in out.getvalue()
    assert "Nothing to install / update" in out.getvalue()


def test_manager_unknown_and_invalid_commands(tmp_path, foo_repo):
    out = io.StringIO()
    manager = PluginManager(tmp_path, "2.0.0", {}, [], [foo_repo], out)
    manager.command("install", ["zzz"])
    manager.command("frobnicate", [])
    assert out.getvalue() == 'Unknown plugin "zzz"\nInvalid plugin command\n'


def test_manager_search_respects_core_requirement(tmp_path, foo_repo):
    bar_repo = write_repo(
        tmp_path / "bar.json",
        [{"Name": "bar", "Versions": [{"Version": "1.0.0", "Require": {"micro": ">=3.0.0"}}]}],
    )
    known = PluginManager(tmp_path, "2.0.0", {}, [], [bar_repo, foo_repo], io.StringIO())
    assert [p.name for p in known.search([])] == ["foo"]
    unknown = PluginManager(tmp_path, "", {}, [], [bar_repo, foo_repo], io.StringIO())
    assert [p.name for p in unknown.search([])] == ["bar", "foo"]
    assert [p.name for p in unknown.search(["foo"])] == ["foo"]


def test_manager_update_replaces_old_version(tmp_path):
    zip_url = make_zip(tmp_path / "foo.zip", {"foo.lua": "new"})
    repo = write_repo(
        tmp_path / "foo.json",
        [{"Name": "foo", "Versions": [{"Version": "1.0.0", "Url": zip_url}, {"Version": "1.1.0", "Url": zip_url}]}],
    )
    out = io.StringIO()
    manager = PluginManager(tmp_path / "cfg", "2.0.0", {"foo": "1.0.0"}, [], [repo], out)
    manager.update([])
    assert "Uninstalling foo" in out.getvalue()
    assert manager.installed == {"foo": "1.1.0"}
    assert (tmp_path / "cfg" / "plug" / "foo" / "foo.lua").read_text() == "new"


def test_manager_remove_and_list(tmp_path):
    plug = tmp_path / "plug" / "renamed"
    plug.mkdir(parents=True)
    (plug / "info.json").write_text('[{"Name": "foo"}]')
    out = io.StringIO()
    manager = PluginManager(tmp_path, "2.0.0", {"foo": "1.0.0", "bar": "1.2"}, [], [], out)
    manager.command("list", [])
    manager.command("remove", ["foo"])
    manager.command("remove", ["foo"])
    assert not plug.exists()
    assert out.getvalue() == (
        "The following plugins are currently installed:\n"
        "foo (1.0.0)\nbar (1.2.0)\n"
        "Removed  foo \n"
        "No plugins removed\n"
    )


def test_manager_available(tmp_path, foo_repo):
    out = io.StringIO()
    manager = PluginManager(tmp_path, "2.0.0", {}, [], [foo_repo], out)
    manager.command("available", [])
    assert out.getvalue() == "Available Plugins:\nfoo\n"