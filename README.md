# microed

Building blocks for a terminal text editor: editor options and
`settings.json`, the configuration directory, runtime files,
colorschemes, plugin discovery, a plugin installer with dependency
resolution, and helpers for running shell commands and background jobs.

The package uses only the Python standard library.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Modules

- `microed.settings`: option defaults, validation and the settings file.
  `Settings(config_dir, colorscheme_exists=None)` holds the global options
  in `global_settings`. `read()` loads `settings.json` (comments and
  trailing commas are allowed, a boolean `autosave` becomes `8.0` or
  `0.0`), `init_global()` applies it, and `init_local(settings, path)`
  applies its `"ft:<filetype>"` and glob sections to a buffer's settings.
  `write(filename)` and `overwrite(filename)` save the options changed this
  session (those named in `modified`, leaving out those in `volatile`).
  `native_value(option, real_value, value)` converts typed-in text to the
  option's type and `validate(option, value)` checks it; both raise
  `SettingsError` (or `InvalidValueError`). Plugins can add options with
  `register_common_option`, `register_global_option` and their `_plug`
  variants. Also `parse_bool` and `default_bindings`.
- `microed.config_dir`: `init_config_dir(flag_config_dir=None)` returns the
  configuration directory, taken from the argument if it exists, otherwise
  `$MICRO_CONFIG_HOME`, `$XDG_CONFIG_HOME/micro` or `~/.config/micro`,
  creating it if needed. `ConfigDirError` carries the directory in use when
  the one asked for does not exist.
- `microed.autosave`: `AutoSaver(interval, callback)` calls `callback`
  every `interval` seconds on a daemon thread until `stop()` is called or
  the interval drops below one.
- `microed.rtfiles`: `RuntimeFiles` registers runtime files by kind
  (`RuntimeType.COLORSCHEME`, `SYNTAX`, `HELP`, `PLUGIN`, `SYNTAX_HEADER`,
  and new kinds from `new_filetype()`). Files are `RealFile`, `NamedFile`
  or `MemoryFile`; `find`, `read`, `names`, `list` and `list_real` look them
  up, and `init_from_config(config_dir)` registers the files in the
  `colorschemes`, `syntax` and `help` subdirectories.
- `microed.plugins`: `PluginRegistry.discover(config_dir)` finds `init.lua`
  and the plugin directories under `<config_dir>/plug`, reading a JSON info
  file with `parse_plugin_info` when there is one. `find`, `find_any`,
  `add_runtime_file` and `add_runtime_files_from_directory` work on the
  plugins found.
- `microed.colorscheme`: `Color`, `Style`, `string_to_color`,
  `string_to_style` and `get_color256`. `Colorscheme` parses `color-link`
  and `include` statements (`parse`, `load`, `load_default`) and looks up
  styles for syntax groups with `get_color`.
- `microed.shell`: `exec_command`, `run_command` (splits a line as a shell
  would), `run_background_shell` (returns a function that runs the command
  and returns its output or an error message) and `run_interactive_shell`.
- `microed.jobs`: `JobQueue.start(cmd, ...)` runs a line through `sh -c`
  and `JobQueue.spawn(name, args, ...)` runs a program; output chunks and
  the final output are queued as `JobCallback`s that `run_pending()` or
  `get()` hand to the main loop. `Job` has `send`, `stop` and `wait`.
- `microed.versions`: semantic versions (`parse_version`, `parse_tolerant`,
  `Version`) and ranges such as `">=1.0.0 <2.0.0 || 3.x"` (`parse_range`,
  `any_version`, `VersionRange`).
- `microed.plugin_installer`: `parse_packages` reads a repository's package
  list, `PluginCatalog.resolve` picks versions that satisfy every
  requirement (newest first, raising `ResolveError` otherwise), and
  `PluginManager` fetches channels and repositories over HTTP and installs,
  updates, removes, lists and searches plugins; `command(cmd, args)` takes
  `install`, `remove`, `update`, `list`, `search` or `available`.

## Examples

```python
from microed.colorscheme import Color, string_to_style

style = string_to_style("bold cyan,brightcyan")
assert style.bold
assert style.fg == Color.palette(6)
assert style.bg == Color.palette(14)
```

```python
from microed.settings import Settings

settings = Settings("/tmp/microed-config")
assert settings.native_value("tabsize", 4.0, "8") == 8.0
```

```python
from microed.plugin_installer import PluginCatalog, PluginDependency, parse_packages
from microed.versions import parse_range

text = '[{"Name": "Foo", "Versions": [{"Version": "1.0.0"}, {"Version": "1.5.0"}]}]'
catalog = PluginCatalog(parse_packages(text))
chosen = catalog.resolve([], [PluginDependency("Foo", parse_range("<1.5.0"))])
assert [str(v.version) for v in chosen] == ["1.0.0"]
```

```python
from microed.jobs import JobQueue

jobs = JobQueue()
job = jobs.start("echo hello", on_exit=lambda output, args: print(output, end=""))
job.wait(5)
jobs.run_pending()
```

## What this package does not do

- It has no editor: no buffers, no screen drawing, no key handling and no
  command to start it.
- Plugins are found and described, but their Lua scripts are not run.
- No colorschemes, syntax files or help pages come with it; only files
  registered in a `RuntimeFiles` (for example from the configuration
  directory) are known.