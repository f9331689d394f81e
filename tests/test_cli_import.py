"""Regression tests for importing the data layer without the web stack."""

from __future__ import annotations

import importlib
import sys
import types
import unittest
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


class CLIImportTests(unittest.TestCase):
    def setUp(self) -> None:
        self._saved_modules = {
            name: module
            for name, module in sys.modules.items()
            if name == "storerate" or name.startswith("storerate.")
        }

    def tearDown(self) -> None:
        self._clear_storerate_modules()
        sys.modules.update(self._saved_modules)

    @staticmethod
    def _clear_storerate_modules() -> None:
        for name in [m for m in list(sys.modules.keys()) if m == "storerate" or m.startswith("storerate.")]:
            sys.modules.pop(name, None)

    def test_import_database_without_fastapi(self) -> None:
        """Scripts that only touch storage must not pull in fastapi."""

        self._clear_storerate_modules()

        fastapi_module: types.ModuleType | None = sys.modules.pop("fastapi", None)
        sys.modules["fastapi"] = None
        try:
            database_module = importlib.import_module("storerate.database")
            self.assertTrue(hasattr(database_module, "Database"))

            package = sys.modules.get("storerate")
            self.assertIsNotNone(package)
            self.assertTrue(hasattr(package, "Database"))
            self.assertTrue(hasattr(package, "DirectoryService"))
            self.assertNotIn("storerate.api", sys.modules)
        finally:
            sys.modules.pop("fastapi", None)
            if fastapi_module is not None:
                sys.modules["fastapi"] = fastapi_module


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
