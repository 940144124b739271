"""End-to-end tests for the sg command line."""

import io
import os
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path

import yaml

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "packages" / "core_engine" / "src"))
sys.path.insert(0, str(ROOT / "packages" / "cli" / "src"))

from sg_cli.main import build_parser, main

SHOP_DDL = """
CREATE TABLE Customers (Id INT NOT NULL PRIMARY KEY, Name NVARCHAR(100) NOT NULL);
CREATE TABLE Orders (Id INT NOT NULL PRIMARY KEY, CustomerId INT NULL, Note NVARCHAR(50));
"""


def _run(*argv):
    out, err = io.StringIO(), io.StringIO()
    with redirect_stdout(out), redirect_stderr(err):
        code = main(list(argv))
    return code, out.getvalue(), err.getvalue()


class CLITestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        # Keep any sqlgem.yaml in the caller's working directory out of the way.
        self._cwd = os.getcwd()
        os.chdir(self.tmp)

    def tearDown(self):
        os.chdir(self._cwd)
        self._tmp.cleanup()

    def write(self, name, text):
        path = self.tmp / name
        path.write_text(text, encoding="utf-8")
        return str(path)

    def import_shop(self):
        sql = self.write("shop.sql", SHOP_DDL)
        model = str(self.tmp / "shop.yaml")
        code, _out, _err = _run("import", "sql", sql, "--out", model)
        self.assertEqual(code, 0)
        return model


class TestParser(unittest.TestCase):
    def test_subcommands_are_registered(self):
        parser = build_parser()
        args = parser.parse_args(["generate", "sql", "m.yaml", "--idempotent"])
        self.assertTrue(args.idempotent)
        args = parser.parse_args(["index", "add", "m.yaml", "Orders", "--columns", "A,B", "--unique"])
        self.assertEqual(args.columns, "A,B")
        self.assertTrue(args.unique)
        args = parser.parse_args(["connect", "m.yaml", "Orders.CustomerId", "Customers.Id"])
        self.assertEqual(args.source, "Orders.CustomerId")


class TestWorkspace(CLITestCase):
    def test_init_creates_config_and_model(self):
        code, out, _err = _run("init", "--path", str(self.tmp / "ws"), "--name", "Shop")
        self.assertEqual(code, 0)
        self.assertTrue((self.tmp / "ws" / "sqlgem.yaml").exists())
        model = yaml.safe_load((self.tmp / "ws" / "Shop.yaml").read_text(encoding="utf-8"))
        self.assertEqual(model["database"]["name"], "Shop")
        self.assertIn("Created", out)

        code, out, _err = _run("init", "--path", str(self.tmp / "ws"), "--name", "Shop")
        self.assertEqual(code, 0)
        self.assertIn("already initialized", out)

    def test_import_and_validate(self):
        model = self.import_shop()
        document = yaml.safe_load(Path(model).read_text(encoding="utf-8"))
        self.assertEqual(document["database"]["name"], "shop")
        code, out, _err = _run("validate", model)
        self.assertEqual(code, 0)
        self.assertIn("No issues found.", out)

    def test_validate_reports_schema_errors(self):
        bad = self.write("bad.yaml", "database:\n  schemas: []\n")
        code, out, _err = _run("validate", bad)
        self.assertEqual(code, 1)
        self.assertIn("MODEL_SCHEMA_INVALID", out)

    def test_generate_sql(self):
        model = self.import_shop()
        target = str(self.tmp / "out.sql")
        code, out, _err = _run("generate", "sql", model, "--idempotent", "--out", target)
        self.assertEqual(code, 0)
        self.assertIn("Wrote SQL DDL", out)
        text = Path(target).read_text(encoding="utf-8")
        self.assertIn("-- Idempotent DDL: Safe to run multiple times", text)
        self.assertIn("CREATE TABLE [dbo].[Orders]", text)

    def test_config_flag(self):
        config = self.write("custom.yaml", "idempotent: true\n")
        model = self.import_shop()
        code, out, _err = _run("--config", config, "generate", "sql", model)
        self.assertEqual(code, 0)
        self.assertIn("IF NOT EXISTS", out)

    def test_missing_file_is_an_error(self):
        code, _out, err = _run("validate", str(self.tmp / "nope.sql"))
        self.assertEqual(code, 1)
        self.assertIn("Error:", err)


class TestEdits(CLITestCase):
    def test_connect_and_disconnect(self):
        model = self.import_shop()
        code, out, _err = _run("connect", model, "Customers.Id", "Orders.CustomerId")
        self.assertEqual(code, 0, out)
        document = yaml.safe_load(Path(model).read_text(encoding="utf-8"))
        orders = document["database"]["schemas"][0]["tables"][1]
        self.assertEqual(orders["columns"][1]["foreign_key_ref"]["table"], "Customers")

        code, _out, _err = _run("disconnect", model, "Orders.CustomerId", "Customers.Id")
        self.assertEqual(code, 0)
        document = yaml.safe_load(Path(model).read_text(encoding="utf-8"))
        orders = document["database"]["schemas"][0]["tables"][1]
        self.assertNotIn("foreign_key_ref", orders["columns"][1])

    def test_rejected_edit_prints_message_and_keeps_file(self):
        model = self.import_shop()
        before = Path(model).read_text(encoding="utf-8")
        code, _out, err = _run("connect", model, "Orders.Note", "Customers.Name")
        self.assertEqual(code, 1)
        self.assertIn(
            "Error [NO_REFERENCEABLE_COLUMN]: Cannot create relationship: one column must be PRIMARY KEY or UNIQUE.",
            err,
        )
        self.assertEqual(Path(model).read_text(encoding="utf-8"), before)

    def test_index_commands(self):
        model = self.import_shop()
        code, _out, err = _run("index", "add", model, "Orders", "--columns", "Note", "--clustered")
        self.assertEqual(code, 1)
        self.assertIn("CLUSTERED_INDEX_CONFLICT", err)

        code, _out, _err = _run("index", "add", model, "Orders", "--columns", "CustomerId,Note")
        self.assertEqual(code, 0)
        document = yaml.safe_load(Path(model).read_text(encoding="utf-8"))
        orders = document["database"]["schemas"][0]["tables"][1]
        self.assertEqual(orders["indexes"][0]["name"], "IX_Orders_CustomerId_Note")

        code, _out, _err = _run("index", "remove", model, "Orders", "IX_Orders_CustomerId_Note")
        self.assertEqual(code, 0)

    def test_schema_and_table_commands(self):
        model = self.import_shop()
        self.assertEqual(_run("schema", "add", model, "sales")[0], 0)

        definition = self.write(
            "region.yaml",
            yaml.safe_dump(
                {
                    "table": {
                        "name": "Regions",
                        "columns": [{"name": "Id", "type": "INT", "is_primary_key": True}],
                    }
                }
            ),
        )
        self.assertEqual(_run("table", "add", model, definition, "--schema", "sales")[0], 0)
        document = yaml.safe_load(Path(model).read_text(encoding="utf-8"))
        sales = document["database"]["schemas"][1]
        self.assertEqual(sales["name"], "sales")
        self.assertEqual(sales["tables"][0]["primary_key"]["name"], "PK_Regions")

        self.assertEqual(_run("table", "delete", model, "Regions", "--schema", "sales")[0], 0)
        code, _out, err = _run("table", "delete", model, "Regions", "--schema", "sales")
        self.assertEqual(code, 1)
        self.assertIn("TABLE_NOT_FOUND", err)

    def test_table_update_from_sql_model(self):
        model = self.write("shop.sql", SHOP_DDL)
        definition = self.write(
            "orders.yaml",
            yaml.safe_dump(
                {
                    "name": "Orders",
                    "columns": [
                        {"name": "Id", "type": "INT", "is_primary_key": True},
                        {"name": "CustomerId", "type": "INT"},
                    ],
                }
            ),
        )
        code, _out, _err = _run("table", "update", model, "Orders", definition)
        self.assertEqual(code, 0)
        text = Path(model).read_text(encoding="utf-8")
        self.assertIn("CREATE TABLE [dbo].[Orders]", text)
        self.assertNotIn("[Note]", text)


if __name__ == "__main__":
    unittest.main()
