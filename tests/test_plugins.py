import json

import pytest

from microed.plugins import (
    Plugin,
    PluginError,
    PluginInfo,
    PluginRegistry,
    parse_plugin_info,
)
from microed.rtfiles import RuntimeFiles, RuntimeType
from microed.settings import Settings


@pytest.fixture
def config_dir(tmp_path):
    (tmp_path / "init.lua").write_text("-- init")
    plug = tmp_path / "plug"
    foo = plug / "foo"
    foo.mkdir(parents=True)
    (foo / "foo.lua").write_text("-- foo")
    (foo / "extra.yaml").write_text("filetype: extra")
    colors = foo / "colors"
    colors.mkdir()
    (colors / "dark.micro").write_text('color-link default "white"')
    bar = plug / "bar"
    bar.mkdir()
    (bar / "bar.lua").write_text("-- bar")
    (bar / "info.json").write_text(
        json.dumps([{"Name": "baz", "Description": "d", "Website": "w"}])
    )
    bad = plug / "bad-name"
    bad.mkdir()
    (bad / "x.lua").write_text("")
    (plug / "empty").mkdir()
    (plug / "stray.lua").write_text("")
    return tmp_path


@pytest.fixture
def registry(config_dir):
    settings = Settings(config_dir)
    reg = PluginRegistry(settings, RuntimeFiles())
    reg.discover(config_dir)
    return reg


def test_parse_plugin_info():
    info = parse_plugin_info(b'[{"Name": "x", "Description": "d", "Website": "w"}]')
    assert info == PluginInfo(name="x", description="d", website="w")


def test_parse_plugin_info_ignores_unknown_and_missing():
    info = parse_plugin_info('[{"name": "x", "Other": 1}]')
    assert info == PluginInfo(name="x")


@pytest.mark.parametrize("data", [b"not json", b"[]", b'{"Name": "x"}', b'[{"Name": 3}]'])
def test_parse_plugin_info_errors(data):
    with pytest.raises(PluginError):
        parse_plugin_info(data)


def test_discover_names(registry):
    assert [p.name for p in registry.plugins] == ["initlua", "baz", "foo"]


def test_discover_uses_info(registry):
    baz = registry.find_any("baz")
    assert baz.dir_name == "bar"
    assert baz.info == PluginInfo(name="baz", description="d", website="w")
    assert [s.name for s in baz.srcs] == ["bar"]


def test_discover_init_lua(registry):
    init = registry.find_any("initlua")
    assert init.dir_name == "initlua"
    assert init.srcs[0].data() == b"-- init"


def test_discover_empty_config(tmp_path):
    reg = PluginRegistry(Settings(tmp_path), RuntimeFiles())
    assert reg.discover(tmp_path) == []


def test_is_loaded(tmp_path):
    settings = Settings(tmp_path)
    plugin = Plugin(name="foo", dir_name="foo")
    assert plugin.is_loaded(settings) is True
    settings.register_common_option("foo", True)
    assert plugin.is_loaded(settings) is False
    plugin.loaded = True
    assert plugin.is_loaded(settings) is True
    settings.global_settings["foo"] = False
    assert plugin.is_loaded(settings) is False


def test_find_respects_disabled(registry):
    registry.settings.global_settings["foo"] = False
    assert registry.find("foo") is None
    assert registry.find_any("foo").name == "foo"
    assert registry.find("missing") is None


def test_add_runtime_file(registry):
    registry.add_runtime_file("foo", RuntimeType.SYNTAX, "extra.yaml")
    assert registry.runtime_files.read(RuntimeType.SYNTAX, "extra") == "filetype: extra"
    assert [f.name for f in registry.runtime_files.list_real(RuntimeType.SYNTAX)] == ["extra"]


def test_add_runtime_file_errors(registry):
    with pytest.raises(PluginError):
        registry.add_runtime_file("nope", RuntimeType.SYNTAX, "extra.yaml")
    with pytest.raises(PluginError):
        registry.add_runtime_file("foo", RuntimeType.SYNTAX, "missing.yaml")


def test_add_runtime_files_from_directory(registry):
    registry.add_runtime_files_from_directory("foo", RuntimeType.COLORSCHEME, "colors", "*.micro")
    assert registry.runtime_files.names(RuntimeType.COLORSCHEME) == ["dark"]
    registry.add_runtime_files_from_directory("foo", RuntimeType.HELP, "absent", "*.md")
    assert registry.runtime_files.list(RuntimeType.HELP) == []
    with pytest.raises(PluginError):
        registry.add_runtime_files_from_directory("nope", RuntimeType.HELP, "colors", "*")