"""Tests for re-executing source files."""

import importlib
import sys
from pathlib import Path

import pytest

from freshen.reload.loader import SCRIPT_RUN_NAME, ModuleLoader, modules_for, reloading


class TestModuleLoader:
    """Tests for ModuleLoader."""

    def test_reexecutes_imported_module(self, source_dir: Path, rewrite):
        path = source_dir / "counter_mod.py"
        path.write_text("VALUE = 1\n")
        original = importlib.import_module("counter_mod")
        assert original.VALUE == 1

        rewrite(path, "VALUE = 2\n")
        loader = ModuleLoader()
        loader.forget(path)
        assert "counter_mod" not in sys.modules

        loader.load(path)

        reloaded = sys.modules["counter_mod"]
        assert reloaded.VALUE == 2
        assert reloaded is not original
        assert Path(reloaded.__file__).resolve() == path

    def test_uses_current_source_not_bytecode(self, source_dir: Path):
        """Same size, same second: the new text still wins."""
        path = source_dir / "same_size.py"
        path.write_text("VALUE = 'a'\n")
        importlib.import_module("same_size")

        path.write_text("VALUE = 'b'\n")
        loader = ModuleLoader()
        loader.forget(path)
        loader.load(path)

        assert sys.modules["same_size"].VALUE == "b"

    def test_failed_load_leaves_module_unloaded(self, source_dir: Path, rewrite):
        path = source_dir / "fragile.py"
        path.write_text("VALUE = 1\n")
        importlib.import_module("fragile")
        loader = ModuleLoader()

        rewrite(path, "VALUE = (\n")
        loader.forget(path)
        with pytest.raises(SyntaxError):
            loader.load(path)
        assert "fragile" not in sys.modules

        rewrite(path, "raise RuntimeError('boom')\n")
        loader.forget(path)
        with pytest.raises(RuntimeError, match="boom"):
            loader.load(path)
        assert "fragile" not in sys.modules

        # The module name is remembered after failures
        rewrite(path, "VALUE = 3\n")
        loader.forget(path)
        loader.load(path)
        assert sys.modules["fragile"].VALUE == 3

    def test_runs_unimported_file_as_script(self, source_dir: Path):
        (source_dir / "sink.py").write_text("RESULTS = []\n")
        sink = importlib.import_module("sink")
        script = source_dir / "script.py"
        script.write_text(
            "import sink\n"
            "sink.RESULTS.append(__name__)\n"
            "if __name__ == '__main__':\n"
            "    sink.RESULTS.append('main block')\n"
        )
        loader = ModuleLoader()

        loader.forget(script)
        loader.load(script)
        loader.forget(script)
        loader.load(script)

        assert sink.RESULTS == [SCRIPT_RUN_NAME, SCRIPT_RUN_NAME]

    def test_rebinds_submodule_on_package(self, source_dir: Path, rewrite):
        package = source_dir / "shop"
        package.mkdir()
        (package / "__init__.py").write_text("")
        child = package / "views.py"
        child.write_text("NAME = 'old'\n")
        importlib.import_module("shop.views")

        rewrite(child, "NAME = 'new'\n")
        loader = ModuleLoader()
        loader.forget(child)
        loader.load(child)

        assert sys.modules["shop"].views is sys.modules["shop.views"]
        assert sys.modules["shop"].views.NAME == "new"

    def test_relative_imports_work_after_reload(self, source_dir: Path, rewrite):
        package = source_dir / "blog"
        package.mkdir()
        (package / "__init__.py").write_text("")
        (package / "models.py").write_text("TITLE = 'post'\n")
        views = package / "views.py"
        views.write_text("from .models import TITLE\nHEADING = TITLE\n")
        importlib.import_module("blog.views")

        rewrite(views, "from .models import TITLE\nHEADING = TITLE.upper()\n")
        loader = ModuleLoader()
        loader.forget(views)
        loader.load(views)

        assert sys.modules["blog.views"].HEADING == "POST"


def test_modules_for_excludes_main(source_dir: Path, monkeypatch):
    path = source_dir / "entry.py"
    path.write_text("")
    module = importlib.import_module("entry")
    monkeypatch.setitem(sys.modules, "__main__", module)

    assert modules_for(path) == ["entry"]


def test_reloading_names_the_file_while_it_runs(source_dir: Path):
    (source_dir / "sink.py").write_text("SEEN = []\n")
    sink = importlib.import_module("sink")
    path = source_dir / "observer.py"
    path.write_text("import sink\nfrom freshen.reload.loader import reloading\nsink.SEEN.append(reloading())\n")
    importlib.import_module("observer")
    loader = ModuleLoader()

    loader.forget(path)
    loader.load(path)

    assert sink.SEEN == [None, path]
    assert reloading() is None
