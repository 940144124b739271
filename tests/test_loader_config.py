"""Model files on disk (.sql / .yaml), schema validation and project config."""

import sys
from pathlib import Path

import pytest
import yaml

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "packages" / "core_engine" / "src"))

from sg_core.config import ProjectConfig, load_config
from sg_core.importers import parse_ddl
from sg_core.loader import dump_yaml_model, load_database, save_database
from sg_core.model import database_to_dict
from sg_core.schema import schema_issues

DDL = """
CREATE TABLE Customers (Id INT IDENTITY(1,1) NOT NULL PRIMARY KEY, Name NVARCHAR(MAX));
CREATE TABLE Orders (Id INT NOT NULL PRIMARY KEY, CustomerId INT REFERENCES Customers(Id));
"""


class TestLoader:
    def test_sql_file_is_named_after_its_stem(self, tmp_path):
        path = tmp_path / "shop.sql"
        path.write_text(DDL, encoding="utf-8")
        result = load_database(str(path))
        assert result.database.name == "shop"
        assert result.database.find_table("dbo", "Orders") is not None

    def test_yaml_round_trip(self, tmp_path):
        db = parse_ddl(DDL, "Shop")
        path = tmp_path / "shop.yaml"
        save_database(db, str(path))
        loaded = load_database(str(path))
        assert database_to_dict(loaded.database) == database_to_dict(db)
        assert loaded.issues == []

    def test_sql_output_uses_config(self, tmp_path):
        db = parse_ddl(DDL, "Shop")
        path = tmp_path / "out.sql"
        save_database(db, str(path), ProjectConfig(idempotent=True))
        text = path.read_text(encoding="utf-8")
        assert "IF NOT EXISTS" in text
        assert database_to_dict(load_database(str(path)).database)["database"]["schemas"] == (
            database_to_dict(db)["database"]["schemas"]
        )

    def test_invalid_yaml_model(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"database": {"schemas": []}}), encoding="utf-8")
        with pytest.raises(ValueError, match="MODEL_SCHEMA_INVALID"):
            load_database(str(path))

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "model.json"
        path.write_text("{}", encoding="utf-8")
        with pytest.raises(ValueError, match="Unsupported"):
            load_database(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_database(str(tmp_path / "missing.sql"))

    def test_dumped_yaml_is_schema_valid(self):
        document = yaml.safe_load(dump_yaml_model(parse_ddl(DDL, "Shop")))
        assert schema_issues(document) == []
        column = document["database"]["schemas"][0]["tables"][0]["columns"][1]
        assert column["length"] == -1


class TestSchemaIssues:
    def test_paths_point_at_the_offending_node(self):
        document = {
            "database": {
                "name": "Db",
                "schemas": [{"name": "dbo", "tables": [{"name": "T", "columns": [{"name": "Id"}]}]}],
            }
        }
        issues = schema_issues(document)
        assert len(issues) == 1
        assert issues[0].code == "MODEL_SCHEMA_INVALID"
        assert issues[0].path == "/database/schemas/0/tables/0/columns/0"


class TestConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(str(tmp_path / "sqlgem.yaml"))
        assert config == ProjectConfig()
        assert config.to_dict() == {
            "default_schema": "dbo",
            "idempotent": False,
            "infer_referenced_primary_keys": True,
            "rename_referencing_columns": True,
        }

    def test_values_are_read(self, tmp_path):
        path = tmp_path / "sqlgem.yaml"
        path.write_text("default_schema: app\nidempotent: true\n", encoding="utf-8")
        config = load_config(str(path))
        assert config.default_schema == "app"
        assert config.idempotent is True
        assert config.rename_referencing_columns is True

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "sqlgem.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(str(path)) == ProjectConfig()

    @pytest.mark.parametrize(
        "text, message",
        [
            ("- a\n- b\n", "object/map"),
            ("colour: blue\n", "Unknown keys"),
            ("idempotent: 'yes'\n", "must be a bool"),
            ("default_schema: 3\n", "must be a str"),
        ],
    )
    def test_invalid_files(self, tmp_path, text, message):
        path = tmp_path / "sqlgem.yaml"
        path.write_text(text, encoding="utf-8")
        with pytest.raises(ValueError, match=message):
            load_config(str(path))
